from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from ngsdk_e2e.core.exceptions import SetupRoutineFailed
from ngsdk_e2e.core.logging import get_logger
from ngsdk_e2e.provisioning import build_backend, generate_services_script, render_test_data
from ngsdk_e2e.schemas import SetupRequest
from ngsdk_e2e.setup_routine import SetupRoutine
from ngsdk_e2e.state import get_server_state

router = APIRouter(tags=["setup"])
logger = get_logger(__name__)


@router.post("/setup", summary="Provision a fresh backend for one browser test")
async def setup_backend(request: Request, payload: dict[str, Any] | None = Body(default=None)) -> Any:
    """Rebuild the backend from the posted models and return the services URL.

    The body carries ``name`` (the Angular module name), ``models`` (name to
    ``{properties, options}``), an optional ``enableAuth`` flag, an optional
    ``setupFn`` source and any generator options.
    """
    state = get_server_state(request)
    setup_request = SetupRequest.model_validate(payload or {})
    setup_request.check()

    routine = SetupRoutine(setup_request.name, setup_request.setup_fn)
    backend = build_backend(setup_request)
    state.backend = backend

    try:
        data = await routine.run(backend)
    except SetupRoutineFailed as exc:
        logger.error(
            "setup.routine_failed",
            name=setup_request.name,
            error=exc.message,
            error_type=exc.details.get("error_type"),
            exc_info=exc.cause if isinstance(exc.cause, BaseException) else False,
        )
        return JSONResponse(status_code=500, content=exc.to_dict())

    script = generate_services_script(backend, setup_request, state.api_url)
    script += render_test_data(setup_request.name, data)
    state.install_script(setup_request.name, script)

    logger.info("setup.completed", name=setup_request.name, models=sorted(backend.models))
    return {"servicesUrl": state.services_url(setup_request.name)}
