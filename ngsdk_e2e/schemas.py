"""Request body of ``POST /setup``."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ngsdk_e2e.core.exceptions import SetupRequestError

# Presence of any of these switches the generator to its options API
GENERATOR_OPTION_KEYS = (
    "includeSchema",
    "includeCommonModules",
    "namespaceModels",
    "namespaceCommonModels",
    "namespaceDelimiter",
    "modelsToIgnore",
)


class ModelEntry(BaseModel):
    """One value of the ``models`` map."""

    properties: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class SetupRequest(BaseModel):
    """Body of a setup call.

    Fields are loosely typed on purpose: malformed values are reported by
    ``check()`` as a ``SetupRequestError`` rather than a 422.
    """

    name: Any = None
    models: Any = None
    enable_auth: Any = Field(default=False, alias="enableAuth")
    setup_fn: Any = Field(default=None, alias="setupFn")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def check(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise SetupRequestError('"name" is a required parameter')
        if not isinstance(self.models, dict):
            raise SetupRequestError('"models" must be a valid object')
        for model_name, entry in self.models.items():
            if entry is not None and not isinstance(entry, dict):
                raise SetupRequestError(
                    f'"models.{model_name}" must be an object',
                    details={"model": model_name},
                )
        if self.setup_fn is not None and not isinstance(self.setup_fn, str):
            raise SetupRequestError('"setupFn" must be the source of a function')

    def model_entries(self) -> dict[str, ModelEntry]:
        entries: dict[str, ModelEntry] = {}
        for model_name, entry in self.models.items():
            raw = entry or {}
            try:
                entries[model_name] = ModelEntry(
                    properties=raw.get("properties") or {},
                    options=raw.get("options") or {},
                )
            except PydanticValidationError as exc:
                raise SetupRequestError(
                    f'"models.{model_name}" has malformed properties or options',
                    details={"model": model_name, "errors": [error["msg"] for error in exc.errors(include_url=False)]},
                ) from exc
        return entries

    def generator_options(self, api_url: str) -> dict[str, Any] | None:
        """Options for the generator, or None to use its positional API."""
        extra = self.model_extra or {}
        if not any(key in extra for key in GENERATOR_OPTION_KEYS):
            return None
        options = self.model_dump(by_alias=True)
        options.update(ngModuleName=self.name, apiUrl=api_url)
        return options
