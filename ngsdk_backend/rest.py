"""REST layer: one FastAPI route per remote method of every public model."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from ngsdk_backend.auth import AccessContext, check_access, extract_token_id, resolve_token
from ngsdk_backend.exceptions import BackendError, BadRequestError, ModelNotFoundError
from ngsdk_backend.models import Model
from ngsdk_backend.remoting import RemoteMethod, describe_app

if TYPE_CHECKING:
    from ngsdk_backend.application import BackendApplication

logger = structlog.get_logger(__name__)


async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    """Render backend errors as ``{"error": {...}}`` bodies."""
    logger.debug("rest.error", path=request.url.path, code=exc.code, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def _json_param(request: Request, name: str) -> Any:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BadRequestError(f"Query parameter {name} is not valid JSON", details={name: raw}) from exc


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BadRequestError("Request body is not valid JSON") from exc


def _not_found(model: Model, record_id: Any) -> ModelNotFoundError:
    return ModelNotFoundError(f'Unknown "{model.name}" id "{record_id}".')


def _invoke(
    model: Model,
    method: RemoteMethod,
    request: Request,
    body: Any,
    token_id: str | None,
) -> tuple[Any, int]:
    record_id = request.path_params.get("id")
    name = method.name

    if name == "create":
        return model.create(body), 200
    if name == "upsert":
        return model.upsert(body), 200
    if name == "find":
        return model.find(_json_param(request, "filter")), 200
    if name == "findOne":
        found = model.find_one(_json_param(request, "filter"))
        if found is None:
            raise ModelNotFoundError(f"No {model.name} instance matches the filter")
        return found, 200
    if name == "count":
        return {"count": model.count(_json_param(request, "where"))}, 200
    if name == "exists":
        return {"exists": model.exists(record_id)}, 200
    if name == "findById":
        found = model.find_by_id(record_id, _json_param(request, "filter"))
        if found is None:
            raise _not_found(model, record_id)
        return found, 200
    if name == "prototype$updateAttributes":
        return model.update_attributes(record_id, body), 200
    if name == "deleteById":
        return model.delete_by_id(record_id), 200
    if name == "login":
        return model.login(body, include=request.query_params.get("include")), 200
    if name == "logout":
        model.logout(token_id)
        return None, 204

    relation = method.relation
    if name.startswith("prototype$__get__"):
        return model.get_related(record_id, relation, _json_param(request, "filter")), 200
    if name.startswith("prototype$__create__"):
        return model.create_related(record_id, relation, body), 200
    if name.startswith("prototype$__delete__"):
        model.delete_related(record_id, relation)
        return None, 204
    if name.startswith("prototype$__count__"):
        return {"count": model.count_related(record_id, relation, _json_param(request, "where"))}, 200

    raise BackendError(f"Remote method {model.name}.{name} is not implemented", code="NOT_IMPLEMENTED")


def _endpoint(
    app: BackendApplication, model: Model, method: RemoteMethod
) -> Callable[[Request], Awaitable[Response]]:
    async def endpoint(request: Request) -> Response:
        token_id = extract_token_id(request.headers, request.query_params)
        if app.auth_enabled:
            check_access(
                AccessContext(
                    model=model,
                    method=method.acl_property,
                    access_type=method.access_type,
                    token=resolve_token(token_id),
                    record_id=request.path_params.get("id"),
                )
            )
        body = await _json_body(request) if method.verb in ("post", "put") else None
        result, status_code = _invoke(model, method, request, body, token_id)
        if status_code == 204:
            return Response(status_code=204)
        return JSONResponse(status_code=status_code, content=jsonable_encoder(result))

    endpoint.__name__ = f"{model.name}_{method.name.replace('$', '_')}"
    return endpoint


def create_rest_router(app: BackendApplication) -> APIRouter:
    router = APIRouter()
    for shared in describe_app(app):
        for method in shared.methods:
            path = shared.http_path if method.path == "/" else shared.http_path + method.route_path
            router.add_api_route(
                path,
                _endpoint(app, shared.model, method),
                methods=[method.verb.upper()],
                name=f"{shared.name}.{method.name}",
                summary=method.description or None,
                tags=[shared.name],
            )
        logger.debug("rest.model_exposed", model=shared.name, path=shared.http_path, methods=len(shared.methods))
    return router
