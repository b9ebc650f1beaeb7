from __future__ import annotations

from urllib.parse import unquote

from fastapi import APIRouter, Request
from fastapi.responses import Response

from ngsdk_e2e.state import get_server_state

router = APIRouter(tags=["services"])


def _requested_name(request: Request) -> str | None:
    # ``services?<name>`` carries the bare name; ``?name=<name>`` works too
    if "name" in request.query_params:
        return request.query_params["name"]
    query = request.url.query
    if not query or "=" in query:
        return None
    return unquote(query)


@router.get("/services", summary="Client script produced by the last setup")
async def get_services_script(request: Request) -> Response:
    state = get_server_state(request)
    return Response(content=state.script_for(_requested_name(request)), media_type="application/javascript")
