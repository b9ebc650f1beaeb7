"""Generator of AngularJS client scripts for ngsdk backend applications."""

from __future__ import annotations

from typing import Any

from ngsdk_backend.application import BackendApplication
from ngsdk_services.exceptions import GeneratorError
from ngsdk_services.generator import generate_services
from ngsdk_services.options import GeneratorOptions

__all__ = ["GeneratorError", "GeneratorOptions", "generate_services", "services"]


def services(
    app: BackendApplication,
    module_name_or_options: str | dict[str, Any] | GeneratorOptions | None = None,
    api_url: str | None = None,
) -> str:
    """Generate the services script for ``app``.

    Two call styles are supported::

        services(app, "lbServices", "http://localhost:3000/api")
        services(app, {"ngModuleName": "lbServices", "apiUrl": "/api", "includeSchema": True})
    """
    if module_name_or_options is None or isinstance(module_name_or_options, str):
        options: dict[str, Any] = {}
        if module_name_or_options is not None:
            options["ngModuleName"] = module_name_or_options
        if api_url is not None:
            options["apiUrl"] = api_url
        return generate_services(app, options)
    return generate_services(app, module_name_or_options)
