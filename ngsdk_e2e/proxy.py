"""ASGI app mounted at ``/api`` that forwards into the current backend."""

from __future__ import annotations

from starlette.types import Receive, Scope, Send

from ngsdk_e2e.core.exceptions import BackendNotConfiguredError
from ngsdk_e2e.state import ServerState


class BackendProxy:
    """Dispatch each request to whichever backend the last setup installed.

    The backend is looked up per request, so a new ``/setup`` takes effect
    without remounting anything.
    """

    def __init__(self, state: ServerState) -> None:
        self.state = state

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        backend = self.state.backend
        if backend is None:
            raise BackendNotConfiguredError()
        await backend(scope, receive, send)
