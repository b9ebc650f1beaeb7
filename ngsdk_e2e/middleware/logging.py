"""Request/response logging middleware for the test server."""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request the browser tests make, proxied backend calls included.

    Each request gets an id bound to the logger so the ``request.start`` and
    ``request.end`` lines of one call can be matched up.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        logger = structlog.get_logger("ngsdk_e2e.requests").bind(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start_time = time.time()
        logger.debug("request.start", query=request.url.query or None)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request.error",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "request.end",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response
