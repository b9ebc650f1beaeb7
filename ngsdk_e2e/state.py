"""Process-wide state shared by the setup, services and proxy handlers.

One browser test suite talks to the server at a time, so the slots below are
replaced wholesale by every ``/setup`` call without any locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request

from ngsdk_backend import BackendApplication

NO_SETUP_SCRIPT = 'throw new Error("Call /setup first.");\n'


@dataclass
class ServerState:
    base_url: str
    backend: BackendApplication | None = None
    services_script: str | None = None
    scripts: dict[str, str] = field(default_factory=dict)

    @property
    def api_url(self) -> str:
        return self.base_url + "api"

    def services_url(self, name: str) -> str:
        return f"{self.base_url}services?{name}"

    def install_script(self, name: str, script: str) -> None:
        self.scripts[name] = script
        self.services_script = script

    def script_for(self, name: str | None = None) -> str:
        """Script stored for ``name``, else the latest one."""
        if name and name in self.scripts:
            return self.scripts[name]
        if self.services_script is None:
            return NO_SETUP_SCRIPT
        return self.services_script


def get_server_state(request: Request) -> ServerState:
    return request.app.state.server_state
