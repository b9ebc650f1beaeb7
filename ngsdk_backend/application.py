"""The backend application: data sources, attached models, REST mount."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI
from starlette.types import Receive, Scope, Send

from ngsdk_backend.datasource import DataSource
from ngsdk_backend.exceptions import BackendError
from ngsdk_backend.models import Model
from ngsdk_backend.registry import model_builder
from ngsdk_backend.rest import backend_error_handler, create_rest_router

logger = structlog.get_logger(__name__)

AUTH_MODELS = ("User", "AccessToken", "Role", "RoleMapping")


class ModelNamespace(dict):
    """Models by name, also reachable as attributes (``app.models.Customer``)."""

    def __getattr__(self, name: str) -> Model:
        try:
            return self[name]
        except KeyError as exc:
            raise AttributeError(name) from exc


class BackendApplication:
    """An ASGI application serving the models registered on it."""

    def __init__(self, title: str = "ngsdk backend") -> None:
        self.settings: dict[str, Any] = {"restApiRoot": "/api"}
        self.data_sources: dict[str, DataSource] = {}
        self.models = ModelNamespace()
        self.auth_enabled = False
        self._public: dict[str, bool] = {}
        self.asgi = FastAPI(title=title, docs_url=None, redoc_url=None)
        self.asgi.add_exception_handler(BackendError, backend_error_handler)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.asgi(scope, receive, send)

    def set(self, key: str, value: Any) -> None:
        self.settings[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)

    def data_source(self, name: str, connector: str = "memory", **settings: Any) -> DataSource:
        data_source = DataSource(name, connector=connector, **settings)
        self.data_sources[name] = data_source
        return data_source

    def _resolve_data_source(self, data_source: DataSource | str | None) -> DataSource | None:
        if data_source is None or isinstance(data_source, DataSource):
            return data_source
        if data_source not in self.data_sources:
            raise BackendError(f"Unknown data source {data_source!r}", code="UNKNOWN_DATASOURCE")
        return self.data_sources[data_source]

    def model(self, model: Model, data_source: DataSource | str | None = None, public: bool = True, **options: Any) -> Model:
        """Attach ``model`` to this app (and optionally to a data source)."""
        resolved = self._resolve_data_source(data_source)
        if resolved is not None:
            model.attach_to(resolved)
        if model.is_a("User") and "AccessToken" not in self.models and resolved is not None:
            tokens = model_builder.get("AccessToken")
            if tokens is not None:
                tokens.attach_to(resolved)
        if options:
            logger.debug("backend.model_options_ignored", model=model.name, options=sorted(options))
        self.models[model.name] = model
        self._public[model.name] = bool(public)
        return model

    def public_models(self) -> list[Model]:
        return [model for name, model in self.models.items() if self._public.get(name, True)]

    def enable_auth(self, data_source: DataSource | str | None = None) -> None:
        """Attach the auth models to ``data_source`` and turn ACL checks on."""
        resolved = self._resolve_data_source(data_source)
        if resolved is not None:
            for name in AUTH_MODELS:
                model = model_builder.get(name)
                if model is None:
                    raise BackendError(f"Built-in model {name} is not registered", code="MODEL_NOT_ATTACHED")
                # Built-ins outlive apps; point them at this app's store.
                if name not in self.models or model.data_source is None:
                    model.attach_to(resolved)
        self.auth_enabled = True
        logger.debug("backend.auth_enabled", data_source=getattr(resolved, "name", None))

    def use_rest(self, root: str | None = None) -> None:
        root = root or self.get("restApiRoot", "/")
        prefix = "" if root == "/" else "/" + root.strip("/")
        self.asgi.include_router(create_rest_router(self), prefix=prefix)
        logger.debug("backend.rest_mounted", root=root, models=sorted(model.name for model in self.public_models()))
