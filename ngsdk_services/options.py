from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ngsdk_services.exceptions import GeneratorError


class GeneratorOptions(BaseModel):
    """Options of the options-based ``services()`` API.

    Keys use the camelCase spelling clients send; unknown keys are ignored so
    a whole setup request can be passed through unchanged.
    """

    ng_module_name: str = Field(default="lbServices", alias="ngModuleName", min_length=1)
    api_url: str = Field(default="/", alias="apiUrl")
    include_schema: bool = Field(default=False, alias="includeSchema")
    include_common_modules: bool = Field(default=True, alias="includeCommonModules")
    namespace_models: bool = Field(default=False, alias="namespaceModels")
    namespace_common_models: bool = Field(default=False, alias="namespaceCommonModels")
    namespace_delimiter: str = Field(default=".", alias="namespaceDelimiter")
    models_to_ignore: list[str] = Field(default_factory=list, alias="modelsToIgnore")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def parse(cls, raw: GeneratorOptions | dict[str, Any]) -> GeneratorOptions:
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, dict):
            raise GeneratorError("Generator options must be an object", details={"options": repr(raw)})
        try:
            return cls.model_validate(raw)
        except PydanticValidationError as exc:
            raise GeneratorError(
                "Invalid generator options",
                details=[
                    {"option": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                    for error in exc.errors(include_url=False)
                ],
            ) from exc

    def model_name(self, name: str) -> str:
        if self.namespace_models:
            return f"{self.ng_module_name}{self.namespace_delimiter}{name}"
        return name

    def common_name(self, name: str) -> str:
        if self.namespace_common_models:
            return f"{self.ng_module_name}{self.namespace_delimiter}{name}"
        return name
