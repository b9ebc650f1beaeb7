"""Describes the remote methods each model exposes over REST.

Both the REST router and the client-script generator read this description,
so the generated client always matches the routes actually mounted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ngsdk_backend.models import Model

if TYPE_CHECKING:
    from ngsdk_backend.application import BackendApplication

READ = "READ"
WRITE = "WRITE"
EXECUTE = "EXECUTE"


@dataclass(frozen=True)
class Accept:
    arg: str
    source: str
    type: str = "any"
    required: bool = False


@dataclass(frozen=True)
class RemoteMethod:
    name: str
    verb: str
    path: str
    access_type: str
    is_array: bool = False
    accepts: tuple[Accept, ...] = ()
    description: str = ""
    relation: str | None = None

    @property
    def is_static(self) -> bool:
        return not self.name.startswith("prototype$")

    @property
    def acl_property(self) -> str:
        return self.name.removeprefix("prototype$")

    @property
    def route_path(self) -> str:
        """``/:id/orders`` becomes ``/{id}/orders``."""
        return "/".join("{" + part[1:] + "}" if part.startswith(":") else part for part in self.path.split("/"))


@dataclass
class SharedClass:
    model: Model
    methods: list[RemoteMethod] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.model.name

    @property
    def http_path(self) -> str:
        return "/" + self.model.plural


_ID = Accept("id", "path", required=True)
_FILTER = Accept("filter", "query", "object")
_WHERE = Accept("where", "query", "object")
_DATA = Accept("data", "body", "object")


def _model_methods() -> list[RemoteMethod]:
    # Fixed paths come before "/:id" so routing never mistakes "count" for an id.
    return [
        RemoteMethod("create", "post", "/", WRITE, accepts=(_DATA,), description="Create a new instance."),
        RemoteMethod("upsert", "put", "/", WRITE, accepts=(_DATA,), description="Update or insert an instance."),
        RemoteMethod("find", "get", "/", READ, is_array=True, accepts=(_FILTER,), description="Find all instances."),
        RemoteMethod("findOne", "get", "/findOne", READ, accepts=(_FILTER,), description="Find the first instance."),
        RemoteMethod("count", "get", "/count", READ, accepts=(_WHERE,), description="Count matching instances."),
        RemoteMethod("exists", "get", "/:id/exists", READ, accepts=(_ID,), description="Check whether an instance exists."),
        RemoteMethod("findById", "get", "/:id", READ, accepts=(_ID, _FILTER), description="Find an instance by id."),
        RemoteMethod(
            "prototype$updateAttributes",
            "put",
            "/:id",
            WRITE,
            accepts=(_ID, _DATA),
            description="Update attributes of an instance.",
        ),
        RemoteMethod("deleteById", "delete", "/:id", WRITE, accepts=(_ID,), description="Delete an instance by id."),
    ]


def _relation_methods(model: Model) -> list[RemoteMethod]:
    methods = []
    for name, relation in model.relations.items():
        path = f"/:id/{name}"
        if relation.type == "belongsTo":
            methods.append(
                RemoteMethod(f"prototype$__get__{name}", "get", path, READ, accepts=(_ID,), relation=name)
            )
            continue
        methods.extend(
            [
                RemoteMethod(
                    f"prototype$__get__{name}", "get", path, READ, is_array=True, accepts=(_ID, _FILTER), relation=name
                ),
                RemoteMethod(f"prototype$__create__{name}", "post", path, WRITE, accepts=(_ID, _DATA), relation=name),
                RemoteMethod(f"prototype$__delete__{name}", "delete", path, WRITE, accepts=(_ID,), relation=name),
                RemoteMethod(
                    f"prototype$__count__{name}", "get", f"{path}/count", READ, accepts=(_ID, _WHERE), relation=name
                ),
            ]
        )
    return methods


def _user_methods() -> list[RemoteMethod]:
    return [
        RemoteMethod(
            "login",
            "post",
            "/login",
            EXECUTE,
            accepts=(Accept("credentials", "body", "object", required=True), Accept("include", "query", "string")),
            description="Login a user with username/email and password.",
        ),
        RemoteMethod("logout", "post", "/logout", EXECUTE, description="Logout a user with access token."),
    ]


def describe_model(model: Model) -> SharedClass:
    methods = []
    if model.is_a("User"):
        # login/logout are fixed POST paths and must precede "/:id" routes.
        methods.extend(_user_methods())
    methods.extend(_model_methods())
    methods.extend(_relation_methods(model))
    return SharedClass(model=model, methods=methods)


def describe_app(app: BackendApplication) -> list[SharedClass]:
    """Shared classes for every model the app exposes over REST."""
    return [describe_model(model) for model in app.public_models()]

