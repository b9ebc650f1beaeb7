"""Model definitions and the process-wide model registry."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ngsdk_backend.exceptions import ModelDefinitionError

if TYPE_CHECKING:
    from ngsdk_backend.models import Model

PROPERTY_TYPES = ("string", "number", "boolean", "date", "object", "array", "any")

_TYPE_ALIASES = {
    "str": "string",
    "text": "string",
    "int": "number",
    "integer": "number",
    "float": "number",
    "bool": "boolean",
    "datetime": "date",
    "dict": "object",
    "list": "array",
}


@dataclass
class PropertyDefinition:
    name: str
    type: str = "any"
    required: bool = False
    default: Any = None
    item_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": [self.item_type] if self.item_type else self.type}
        if self.required:
            payload["required"] = True
        if self.default is not None:
            payload["default"] = self.default
        return payload


@dataclass
class RelationDefinition:
    name: str
    type: str
    model: str
    foreign_key: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "model": self.model, "foreignKey": self.foreign_key}


@dataclass
class ModelDefinition:
    name: str
    properties: dict[str, PropertyDefinition] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)

    @property
    def plural(self) -> str:
        return self.settings.get("plural") or pluralize(self.name)

    @property
    def base(self) -> str | None:
        return self.settings.get("base")

    @property
    def hidden(self) -> list[str]:
        return list(self.settings.get("hidden") or [])

    @property
    def strict(self) -> bool:
        return bool(self.settings.get("strict", False))

    @property
    def acls(self) -> list[dict[str, Any]]:
        return list(self.settings.get("acls") or [])

    @property
    def relations(self) -> dict[str, RelationDefinition]:
        return normalize_relations(self.name, self.settings.get("relations") or {})

    def to_dict(self) -> dict[str, Any]:
        """Schema description embedded in generated clients."""
        return {
            "name": self.name,
            "plural": self.plural,
            "base": self.base,
            "properties": {name: prop.to_dict() for name, prop in self.properties.items()},
            "relations": {name: rel.to_dict() for name, rel in self.relations.items()},
        }


def pluralize(name: str) -> str:
    if re.search(r"[^aeiou]y$", name):
        return name[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", name):
        return name + "es"
    return name + "s"


def _normalize_type(model_name: str, prop_name: str, raw: Any) -> tuple[str, str | None]:
    if isinstance(raw, list):
        item = _normalize_type(model_name, prop_name, raw[0])[0] if raw else "any"
        return "array", item
    if not isinstance(raw, str):
        raise ModelDefinitionError(
            f"Property {model_name}.{prop_name} has an invalid type",
            details={"type": repr(raw)},
        )
    type_name = raw.strip().lower()
    type_name = _TYPE_ALIASES.get(type_name, type_name)
    if type_name not in PROPERTY_TYPES:
        raise ModelDefinitionError(
            f"Property {model_name}.{prop_name} has an unknown type {raw!r}",
            details={"supported": list(PROPERTY_TYPES)},
        )
    return type_name, None


def normalize_property(model_name: str, prop_name: str, spec: Any) -> PropertyDefinition:
    """Accepts ``"string"``, ``["string"]`` or ``{"type": ..., "required": ...}``."""
    if isinstance(spec, dict):
        type_name, item_type = _normalize_type(model_name, prop_name, spec.get("type", "any"))
        return PropertyDefinition(
            name=prop_name,
            type=type_name,
            required=bool(spec.get("required", False)),
            default=spec.get("default"),
            item_type=item_type,
        )
    type_name, item_type = _normalize_type(model_name, prop_name, spec)
    return PropertyDefinition(name=prop_name, type=type_name, item_type=item_type)


def normalize_relations(model_name: str, raw: dict[str, Any]) -> dict[str, RelationDefinition]:
    relations: dict[str, RelationDefinition] = {}
    for rel_name, spec in raw.items():
        if not isinstance(spec, dict) or spec.get("type") not in ("hasMany", "belongsTo"):
            raise ModelDefinitionError(
                f"Relation {model_name}.{rel_name} must be a hasMany or belongsTo object",
            )
        target = spec.get("model")
        if not target:
            raise ModelDefinitionError(f"Relation {model_name}.{rel_name} has no target model")
        if spec["type"] == "hasMany":
            default_fk = model_name[:1].lower() + model_name[1:] + "Id"
        else:
            default_fk = rel_name + "Id"
        relations[rel_name] = RelationDefinition(
            name=rel_name,
            type=spec["type"],
            model=target,
            foreign_key=spec.get("foreignKey") or default_fk,
        )
    return relations


def build_definition(name: str, properties: dict[str, Any] | None, settings: dict[str, Any] | None) -> ModelDefinition:
    if not isinstance(properties or {}, dict):
        raise ModelDefinitionError(f"Properties of model {name} must be an object")
    if not isinstance(settings or {}, dict):
        raise ModelDefinitionError(f"Options of model {name} must be an object")
    definition = ModelDefinition(
        name=name,
        properties={
            prop_name: normalize_property(name, prop_name, spec) for prop_name, spec in (properties or {}).items()
        },
        settings=dict(settings or {}),
    )
    # Broken relations fail at definition time, not on first request.
    normalize_relations(name, definition.settings.get("relations") or {})
    return definition


@dataclass
class RegistrySnapshot:
    models: dict[str, Model]
    definitions: dict[str, ModelDefinition]


class ModelBuilder:
    """Holds every model known to the process, keyed by name."""

    def __init__(self) -> None:
        self.models: dict[str, Model] = {}
        self.definitions: dict[str, ModelDefinition] = {}

    def register(self, model: Model) -> Model:
        self.models[model.name] = model
        self.definitions[model.name] = model.definition
        return model

    def get(self, name: str) -> Model | None:
        return self.models.get(name)

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(models=dict(self.models), definitions=dict(self.definitions))

    def restore(self, snapshot: RegistrySnapshot) -> None:
        self.models = dict(snapshot.models)
        self.definitions = dict(snapshot.definitions)


model_builder = ModelBuilder()
