"""Build the throw-away backend and client script for one ``/setup`` call."""

from __future__ import annotations

import json
from typing import Any

from fastapi.encoders import jsonable_encoder

from ngsdk_backend import BackendApplication, define_model, model_builder
from ngsdk_e2e.core.logging import get_logger
from ngsdk_e2e.schemas import SetupRequest
from ngsdk_services import services

logger = get_logger(__name__)

DATA_SOURCE_NAME = "db"

GENERATION_FAILED_SCRIPT = 'throw new Error("Error generating services script.");'

# Built-in models only: taken before any test had a chance to define its own.
INITIAL_REGISTRY = model_builder.snapshot()


def reset_registry() -> None:
    """Forget every model defined by earlier setups."""
    model_builder.restore(INITIAL_REGISTRY)


def build_backend(request: SetupRequest) -> BackendApplication:
    """Create a backend serving the models described by ``request``.

    The request must already have passed ``SetupRequest.check()``. When a
    model cannot be built the registry and the built-in models' data sources
    are put back, so the backend of the previous setup keeps working.
    """
    previous = model_builder.snapshot()
    builtin_sources = {name: model.data_source for name, model in INITIAL_REGISTRY.models.items()}
    reset_registry()
    try:
        app = _assemble_backend(request)
    except Exception as exc:
        model_builder.restore(previous)
        for name, data_source in builtin_sources.items():
            INITIAL_REGISTRY.models[name].data_source = data_source
        logger.warning("setup.backend_failed", name=request.name, error=str(exc), error_type=type(exc).__name__)
        raise

    logger.debug(
        "setup.backend_built",
        name=request.name,
        models=sorted(app.models),
        auth=bool(request.enable_auth),
    )
    return app


def _assemble_backend(request: SetupRequest) -> BackendApplication:
    app = BackendApplication(title=f"ngsdk e2e backend: {request.name}")
    db = app.data_source(DATA_SOURCE_NAME, connector="memory")

    for model_name, entry in request.model_entries().items():
        builtin = model_builder.get(model_name)
        if builtin is not None:
            options = {"data_source": db, **entry.options}
            app.model(builtin, **options)
        else:
            model = define_model(model_name, entry.properties, entry.options)
            app.model(model, data_source=db)

    if request.enable_auth:
        app.enable_auth(db)

    app.set("restApiRoot", "/")
    app.use_rest()
    return app


def generate_services_script(app: BackendApplication, request: SetupRequest, api_url: str) -> str:
    """Render the client script, falling back to one that throws on failure."""
    options = request.generator_options(api_url)
    try:
        if options is None:
            return services(app, request.name, api_url)
        return services(app, options)
    except Exception as exc:
        logger.error(
            "services.generation_failed",
            name=request.name,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return GENERATION_FAILED_SCRIPT


def render_test_data(name: str, data: Any) -> str:
    """Expose ``data`` to the browser tests as the ``testData`` value."""
    payload = json.dumps(jsonable_encoder(data), indent=2)
    return f"\nangular.module({json.dumps(name)}).value(\"testData\", {payload});\n"
