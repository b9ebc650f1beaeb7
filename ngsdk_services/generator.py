"""Render an AngularJS ``$resource`` services module for a backend app."""

from __future__ import annotations

import json
from typing import Any

import structlog

from ngsdk_backend.application import BackendApplication
from ngsdk_backend.remoting import RemoteMethod, SharedClass, describe_app
from ngsdk_services.exceptions import GeneratorError
from ngsdk_services.options import GeneratorOptions

logger = structlog.get_logger(__name__)

INDENT = "  "

_PROLOGUE = """\
(function(window, angular, undefined) {
  'use strict';

  var urlBase = @@URL_BASE@@;
  var authHeader = 'authorization';

  function getHost(url) {
    var m = url.match(/^(?:https?:)?\\/\\/([^\\/]+)/);
    return m ? m[1] : null;
  }

  var urlBaseHost = getHost(urlBase) || location.host;

  /**
   * @ngdoc overview
   * @name @@MODULE@@
   * @module
   * @description
   *
   * The `@@MODULE@@` module provides services for interacting with
   * the models exposed by the backend via the REST API.
   */
  var module = angular.module(@@MODULE_JSON@@, ['ngResource']);
"""

_EPILOGUE = "})(window, window.angular);\n"

# Placeholders are replaced with the (optionally namespaced) service names.
_COMMON_MODULES = """\
  module
  .factory(@@AUTH_JSON@@, function() {
    var props = ['accessTokenId', 'currentUserId', 'rememberMe'];
    var propsPrefix = '$LoopBack$';

    function LoopBackAuth() {
      var self = this;
      props.forEach(function(name) {
        self[name] = load(name);
      });
      this.currentUserData = null;
    }

    LoopBackAuth.prototype.save = function() {
      var self = this;
      var storage = this.rememberMe ? localStorage : sessionStorage;
      props.forEach(function(name) {
        save(storage, name, self[name]);
      });
    };

    LoopBackAuth.prototype.setUser = function(accessTokenId, userId, userData) {
      this.accessTokenId = accessTokenId;
      this.currentUserId = userId;
      this.currentUserData = userData;
    };

    LoopBackAuth.prototype.clearUser = function() {
      this.accessTokenId = null;
      this.currentUserId = null;
      this.currentUserData = null;
    };

    LoopBackAuth.prototype.clearStorage = function() {
      props.forEach(function(name) {
        save(sessionStorage, name, null);
        save(localStorage, name, null);
      });
    };

    return new LoopBackAuth();

    function save(storage, name, value) {
      try {
        var key = propsPrefix + name;
        if (value == null) value = '';
        storage[key] = value;
      } catch (err) {
        console.log('Cannot access local/session storage:', err);
      }
    }

    function load(name) {
      var key = propsPrefix + name;
      return localStorage[key] || sessionStorage[key] || null;
    }
  })
  .config(['$httpProvider', function($httpProvider) {
    $httpProvider.interceptors.push(@@INTERCEPTOR_JSON@@);
  }])
  .factory(@@INTERCEPTOR_JSON@@, ['$q', @@AUTH_JSON@@,
    function($q, LoopBackAuth) {
      return {
        'request': function(config) {
          // filter out external requests
          var host = getHost(config.url);
          if (host && host !== urlBaseHost) {
            return config;
          }

          if (LoopBackAuth.accessTokenId) {
            config.headers[authHeader] = LoopBackAuth.accessTokenId;
          } else if (config.__isGetCurrentUser__) {
            // Return a stub 401 error for User.getCurrent() when
            // there is no user logged in
            var res = {
              body: { error: { status: 401 } },
              status: 401,
              config: config,
              headers: function() { return undefined; },
            };
            return $q.reject(res);
          }
          return config || $q.when(config);
        },
      };
    }])
  .provider(@@RESOURCE_JSON@@, function LoopBackResourceProvider() {
    this.setAuthHeader = function(header) {
      authHeader = header;
    };

    this.getAuthHeader = function() {
      return authHeader;
    };

    this.setUrlBase = function(url) {
      urlBase = url;
      urlBaseHost = getHost(urlBase) || location.host;
    };

    this.getUrlBase = function() {
      return urlBase;
    };

    this.$get = ['$resource', function($resource) {
      var LoopBackResource = function(url, params, actions) {
        var resource = $resource(url, params, actions);

        // Angular always calls POST on $save(); use upsert instead.
        resource.prototype.$save = function(success, error) {
          var result = resource.upsert.call(this, {}, this, success, error);
          return result.$promise || result;
        };
        return resource;
      };

      LoopBackResource.getUrlBase = function() {
        return urlBase;
      };

      LoopBackResource.getAuthHeader = function() {
        return authHeader;
      };

      return LoopBackResource;
    }];
  });
"""

_ALIASES = (
    ("updateOrCreate", "upsert"),
    ("updateById", "prototype$updateAttributes"),
    ("destroyById", "deleteById"),
    ("removeById", "deleteById"),
)

_LOGIN_INTERCEPTOR = [
    "params: {",
    "  include: 'user',",
    "},",
    "interceptor: {",
    "  response: function(response) {",
    "    var accessToken = response.data;",
    "    LoopBackAuth.setUser(accessToken.id, accessToken.userId, accessToken.user);",
    "    LoopBackAuth.rememberMe = response.config.params.rememberMe !== false;",
    "    LoopBackAuth.save();",
    "    return response.resource;",
    "  },",
    "},",
]

_LOGOUT_INTERCEPTOR = [
    "interceptor: {",
    "  response: function(response) {",
    "    LoopBackAuth.clearUser();",
    "    LoopBackAuth.clearStorage();",
    "    return response.resource;",
    "  },",
    "  responseError: function(responseError) {",
    "    LoopBackAuth.clearUser();",
    "    LoopBackAuth.clearStorage();",
    "    return $q.reject(responseError);",
    "  },",
    "},",
]

_USER_HELPERS = """\
R.getCachedCurrent = function() {
  var data = LoopBackAuth.currentUserData;
  return data ? new R(data) : null;
};

R.isAuthenticated = function() {
  return this.getCurrentId() != null;
};

R.getCurrentId = function() {
  return LoopBackAuth.currentUserId;
};
"""


def _js(value: Any, indent: int | None = None) -> str:
    try:
        return json.dumps(value, indent=indent)
    except (TypeError, ValueError) as exc:
        raise GeneratorError("Value cannot be rendered as JavaScript", details={"value": repr(value)}) from exc


def _indent(lines: list[str] | str, depth: int) -> list[str]:
    if isinstance(lines, str):
        lines = lines.splitlines()
    return [(INDENT * depth + line) if line else "" for line in lines]


def _action(shared: SharedClass, method: RemoteMethod) -> list[str]:
    url = shared.http_path + ("" if method.path == "/" else method.path)
    body: list[str] = []
    if method.name == "login":
        body.extend(_LOGIN_INTERCEPTOR)
    elif method.name == "logout":
        body.extend(_LOGOUT_INTERCEPTOR)
    if method.is_array:
        body.append("isArray: true,")
    body.append(f"url: urlBase + {_js(url)},")
    body.append(f"method: {_js(method.verb.upper())},")
    header = [f"// {method.description or method.name}", f"{_js(method.name)}: {{"]
    return header + _indent(body, 1) + ["},"]


def _get_current_action(shared: SharedClass) -> list[str]:
    return [
        "'getCurrent': {",
        f"  url: urlBase + {_js(shared.http_path)} + '/:id',",
        "  method: 'GET',",
        "  params: {",
        "    id: function() {",
        "      var id = LoopBackAuth.currentUserId;",
        "      if (id == null) id = '__anonymous__';",
        "      return id;",
        "    },",
        "  },",
        "  interceptor: {",
        "    response: function(response) {",
        "      LoopBackAuth.currentUserData = response.data;",
        "      return response.resource;",
        "    },",
        "    responseError: function(responseError) {",
        "      LoopBackAuth.clearUser();",
        "      LoopBackAuth.clearStorage();",
        "      return $q.reject(responseError);",
        "    },",
        "  },",
        "  __isGetCurrentUser__: true,",
        "},",
    ]


def _model_factory(shared: SharedClass, options: GeneratorOptions) -> list[str]:
    service_name = options.model_name(shared.name)
    is_user = shared.model.is_a("User")
    resource = options.common_name("LoopBackResource")
    auth = options.common_name("LoopBackAuth")

    actions: list[str] = []
    for method in shared.methods:
        actions.extend(_action(shared, method))
        actions.append("")
    if is_user:
        actions.extend(_get_current_action(shared))

    body: list[str] = [
        "var R = LoopBackResource(",
        f"  urlBase + {_js(shared.http_path + '/:id')},",
        "  { 'id': '@id' },",
        "  {",
        *_indent(actions, 2),
        "  }",
        ");",
        "",
    ]
    method_names = {method.name for method in shared.methods}
    for alias, target in _ALIASES:
        if target in method_names:
            body.append(f"R[{_js(alias)}] = R[{_js(target)}];")
    body.append("")
    if is_user:
        body.extend(_USER_HELPERS.splitlines())
        body.append("")
    body.append(f"R.modelName = {_js(service_name)};")
    if options.include_schema:
        schema_lines = _js(shared.model.to_schema(), indent=2).splitlines()
        body.append(f"R.schema = {schema_lines[0]}")
        body.extend(schema_lines[1:-1])
        body.append(f"{schema_lines[-1]};")
    body.extend(["", "return R;"])

    return [
        "/**",
        " * @ngdoc object",
        f" * @name {options.ng_module_name}.{service_name}",
        f" * @header {options.ng_module_name}.{service_name}",
        " * @object",
        " *",
        " * @description",
        " *",
        f" * A $resource object for interacting with the `{shared.name}` model.",
        " */",
        "module.factory(",
        f"  {_js(service_name)},",
        f"  [{_js(resource)}, {_js(auth)}, '$injector', '$q',",
        "    function(LoopBackResource, LoopBackAuth, $injector, $q) {",
        *_indent(body, 3),
        "    }]);",
        "",
    ]


def generate_services(app: BackendApplication, options: GeneratorOptions | dict[str, Any]) -> str:
    """Return the JavaScript source of the services module for ``app``."""
    if not isinstance(app, BackendApplication):
        raise GeneratorError("services() expects a backend application", details={"app": repr(app)})
    options = GeneratorOptions.parse(options)

    ignored = set(options.models_to_ignore)
    shared_classes = [shared for shared in describe_app(app) if shared.name not in ignored]

    prologue = (
        _PROLOGUE.replace("@@URL_BASE@@", _js(options.api_url.rstrip("/")))
        .replace("@@MODULE_JSON@@", _js(options.ng_module_name))
        .replace("@@MODULE@@", options.ng_module_name)
    )
    parts = [prologue]
    for shared in shared_classes:
        parts.append("\n".join(_indent(_model_factory(shared, options), 1)))
    if options.include_common_modules:
        parts.append(
            _COMMON_MODULES.replace("@@AUTH_JSON@@", _js(options.common_name("LoopBackAuth")))
            .replace("@@INTERCEPTOR_JSON@@", _js(options.common_name("LoopBackAuthRequestInterceptor")))
            .replace("@@RESOURCE_JSON@@", _js(options.common_name("LoopBackResource")))
        )
    parts.append(_EPILOGUE)

    logger.debug(
        "services.generated",
        module=options.ng_module_name,
        models=[shared.name for shared in shared_classes],
        ignored=sorted(ignored),
    )
    return "\n".join(parts)
