"""Test server used by the AngularJS end-to-end suites.

Browser tests ``POST /setup`` a set of model definitions, load the generated
client script from ``/services`` and then talk to the backend through ``/api``.

Run it standalone::

    ngsdk-e2e-server --port 3838

or wrap a test runner, exiting with the runner's exit code::

    ngsdk-e2e-server --port 0 karma start --single-run
"""

from __future__ import annotations

import argparse
import socket
import subprocess
import sys
import threading
import time

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ngsdk_backend import User
from ngsdk_e2e.core.config import Settings, get_settings
from ngsdk_e2e.core.exceptions import E2EServerError
from ngsdk_e2e.core.logging import configure_logging
from ngsdk_e2e.middleware.logging import RequestLoggingMiddleware
from ngsdk_e2e.proxy import BackendProxy
from ngsdk_e2e.routers import services, setup
from ngsdk_e2e.state import ServerState

__version__ = "0.1.0"

logger = structlog.get_logger(__name__)


def create_app(settings: Settings | None = None, base_url: str | None = None) -> FastAPI:
    """Create and configure the test server application."""
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json_output)

    # Password hashing dominates test time otherwise
    User.settings["hash_iterations"] = settings.user_hash_iterations

    app = FastAPI(
        title="ngsdk e2e test server",
        description="Provisions throw-away backends for browser tests",
        version=__version__,
    )
    app.state.settings = settings
    app.state.server_state = ServerState(base_url=base_url or settings.base_url)

    # ========================================================================
    # Middleware Configuration
    # ========================================================================

    app.add_middleware(RequestLoggingMiddleware)

    # Browser tests are served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # Exception Handlers
    # ========================================================================

    @app.exception_handler(E2EServerError)
    async def e2e_error_handler(request: Request, exc: E2EServerError):
        logger.error("request.failed", path=request.url.path, error=exc.message, error_code=exc.error_code)
        return JSONResponse(status_code=500, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        logger.error(
            "request.unhandled_error",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        body = exc.to_dict() if hasattr(exc, "to_dict") else None
        return JSONResponse(
            status_code=500,
            content=body or {"error": type(exc).__name__, "message": str(exc), "details": None},
        )

    # ========================================================================
    # Routes
    # ========================================================================

    app.include_router(setup.router)
    app.include_router(services.router)
    app.mount("/api", BackendProxy(app.state.server_state))

    return app


# ============================================================================
# Command line
# ============================================================================


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket up front so port 0 resolves to a real port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((host, port))
    sock.set_inheritable(True)
    return sock


class E2EServer(uvicorn.Server):
    """uvicorn server that announces the base URL once it accepts connections."""

    def __init__(self, config: uvicorn.Config, base_url: str) -> None:
        super().__init__(config)
        self.base_url = base_url

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        await super().startup(sockets=sockets)
        if not self.should_exit:
            logger.info(
                "server.listening",
                message=f"Test server is listening on {self.base_url}",
                base_url=self.base_url,
            )


def _exit_code(returncode: int) -> int:
    # Killed by a signal: report it the way a shell would
    return 128 - returncode if returncode < 0 else returncode


def run_command(server: uvicorn.Server, sock: socket.socket, command: list[str], startup_timeout: float) -> int:
    """Serve in the background while ``command`` runs; return its exit code."""
    thread = threading.Thread(target=server.run, kwargs={"sockets": [sock]}, name="ngsdk-e2e-server", daemon=True)
    thread.start()

    deadline = time.monotonic() + startup_timeout
    while not server.started:
        if not thread.is_alive() or time.monotonic() > deadline:
            logger.error("server.start_failed", timeout=startup_timeout)
            server.should_exit = True
            return 1
        time.sleep(0.05)

    logger.info("runner.spawn", command=command)
    try:
        completed = subprocess.run(command, check=False)
    except OSError as exc:
        logger.error("runner.spawn_failed", command=command[0], error=str(exc))
        return 1
    finally:
        server.should_exit = True
        thread.join(timeout=startup_timeout)

    logger.info("runner.exited", command=command[0], returncode=completed.returncode)
    return _exit_code(completed.returncode)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ngsdk-e2e-server",
        description="Run the end-to-end test server, optionally wrapping a test runner command.",
    )
    parser.add_argument("--host", help="interface to listen on (default: NGSDK_E2E_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, help="port to listen on, 0 picks a free one (default: NGSDK_E2E_PORT, PORT or 3838)")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="command to run once the server is listening")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    overrides = {key: value for key, value in (("host", args.host), ("port", args.port)) if value is not None}
    if overrides:
        settings = settings.model_copy(update=overrides)

    sock = bind_socket(settings.host, settings.port)
    port = sock.getsockname()[1]
    base_url = f"http://{settings.public_host}:{port}/"

    app = create_app(settings, base_url=base_url)
    server = E2EServer(
        uvicorn.Config(app, log_level=settings.log_level.lower(), access_log=False, lifespan="off"),
        base_url=base_url,
    )

    if not args.command:
        server.run(sockets=[sock])
        return 0
    return run_command(server, sock, args.command, settings.startup_timeout)


if __name__ == "__main__":
    sys.exit(main())
