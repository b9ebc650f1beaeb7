"""Model classes: validation, persistence through a data source, relations.

A ``Model`` is an object, not a Python class: every model registered by a
test is an instance whose methods (``create``, ``find``...) operate on the
records of the data source it is attached to. Records are plain dicts.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

import pydantic
import structlog
from pydantic import ConfigDict

from ngsdk_backend.datasource import DataSource
from ngsdk_backend.exceptions import (
    BackendError,
    BadRequestError,
    LoginFailedError,
    ModelDefinitionError,
    ModelNotFoundError,
    ValidationError,
)
from ngsdk_backend.registry import (
    ModelDefinition,
    PropertyDefinition,
    RelationDefinition,
    build_definition,
    model_builder,
)

logger = structlog.get_logger(__name__)

_PYTHON_TYPES: dict[str, Any] = {
    "string": str,
    "number": int | float,
    "boolean": bool,
    "date": datetime,
    "object": dict[str, Any],
    "array": list[Any],
    "any": Any,
}

ABSTRACT_BASES = ("Model", "PersistedModel")


def coerce_id(value: Any) -> Any:
    """Path segments arrive as strings; numeric ids are stored as ints."""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def _python_type(prop: PropertyDefinition) -> Any:
    if prop.type == "array" and prop.item_type:
        return list[_python_type(PropertyDefinition(name=prop.name, type=prop.item_type))]
    return _PYTHON_TYPES[prop.type]


class Model:
    """A persisted model attached to at most one data source."""

    def __init__(self, definition: ModelDefinition, base: Model | None = None) -> None:
        self.definition = definition
        self.base = base
        self.settings: dict[str, Any] = dict(base.settings) if base else {}
        self.data_source: DataSource | None = None
        self.schema = self._build_schema()

    def __repr__(self) -> str:
        return f"<Model {self.name}>"

    # ------------------------------------------------------------------
    # Definition accessors (own values layered over the base model's)
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def plural(self) -> str:
        return self.definition.plural

    @property
    def properties(self) -> dict[str, PropertyDefinition]:
        merged = dict(self.base.properties) if self.base else {}
        merged.update(self.definition.properties)
        return merged

    @property
    def hidden(self) -> list[str]:
        inherited = self.base.hidden if self.base else []
        return inherited + [name for name in self.definition.hidden if name not in inherited]

    @property
    def acls(self) -> list[dict[str, Any]]:
        return (self.base.acls if self.base else []) + self.definition.acls

    @property
    def relations(self) -> dict[str, RelationDefinition]:
        merged = dict(self.base.relations) if self.base else {}
        merged.update(self.definition.relations)
        return merged

    @property
    def strict(self) -> bool:
        if "strict" in self.definition.settings:
            return self.definition.strict
        return self.base.strict if self.base else False

    def is_a(self, name: str) -> bool:
        return self.name == name or (self.base is not None and self.base.is_a(name))

    def to_schema(self) -> dict[str, Any]:
        schema = self.definition.to_dict()
        schema["properties"] = {name: prop.to_dict() for name, prop in self.properties.items()}
        schema["relations"] = {name: rel.to_dict() for name, rel in self.relations.items()}
        return schema

    def _build_schema(self) -> type[pydantic.BaseModel]:
        fields: dict[str, Any] = {}
        for name, prop in self.properties.items():
            if name == "id":
                continue
            annotation = _python_type(prop)
            if prop.required:
                fields[name] = (annotation, ...)
            else:
                fields[name] = (Optional[annotation], prop.default)
        config = ConfigDict(extra="forbid" if self.strict else "allow")
        try:
            return pydantic.create_model(f"{self.name}Data", __config__=config, **fields)
        except (TypeError, NameError, pydantic.PydanticUserError) as exc:
            raise ModelDefinitionError(f"Model {self.name} cannot be built: {exc}") from exc

    # ------------------------------------------------------------------
    # Data source plumbing
    # ------------------------------------------------------------------

    def attach_to(self, data_source: DataSource) -> Model:
        self.data_source = data_source
        return self

    @property
    def _connector(self):
        if self.data_source is None:
            raise BackendError(
                f"Model {self.name} is not attached to a data source",
                code="MODEL_NOT_ATTACHED",
            )
        return self.data_source.connector

    def _validate(self, data: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError(f"{self.name} data must be an object", details={"data": repr(data)})
        record_id = data.get("id")
        payload = {key: value for key, value in data.items() if key != "id"}
        try:
            validated = self.schema.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                f"The {self.name} instance is not valid",
                details=[
                    {
                        "path": ".".join(str(part) for part in error["loc"]),
                        "message": error["msg"],
                        "type": error["type"],
                    }
                    for error in exc.errors(include_url=False)
                ],
            ) from exc
        record = {
            key: value
            for key, value in validated.model_dump(mode="json").items()
            if value is not None or key in payload
        }
        if record_id is not None:
            record["id"] = coerce_id(record_id)
        return record

    def _prepare(self, record: dict[str, Any], existing: dict[str, Any] | None = None) -> dict[str, Any]:
        """Hook for subclasses to transform validated data before storage."""
        return record

    def to_public(self, record: dict[str, Any] | None) -> dict[str, Any] | None:
        if record is None:
            return None
        hidden = set(self.hidden)
        return {key: value for key, value in record.items() if key not in hidden}

    # ------------------------------------------------------------------
    # Static methods
    # ------------------------------------------------------------------

    def create(self, data: dict[str, Any] | list[dict[str, Any]] | None = None, **fields: Any) -> Any:
        """Create one record (or several when ``data`` is a list)."""
        if isinstance(data, list):
            return [self.create(item) for item in data]
        payload = dict(data or {})
        payload.update(fields)
        record = self._prepare(self._validate(payload))
        created = self._connector.create(self.name, record)
        logger.debug("model.created", model=self.name, id=created["id"])
        return self.to_public(created)

    def find(self, filter: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        filter = filter or {}
        records = self._connector.all(self.name, {key: value for key, value in filter.items() if key != "include"})
        if filter.get("include"):
            records = [self._include(record, filter["include"]) for record in records]
        return [self.to_public(record) for record in records]

    def find_one(self, filter: dict[str, Any] | None = None) -> dict[str, Any] | None:
        found = self.find({**(filter or {}), "limit": 1})
        return found[0] if found else None

    def find_by_id(self, record_id: Any, filter: dict[str, Any] | None = None) -> dict[str, Any] | None:
        record = self._connector.find_by_id(self.name, coerce_id(record_id))
        if record is None:
            return None
        if filter and filter.get("include"):
            record = self._include(record, filter["include"])
        return self.to_public(record)

    def count(self, where: dict[str, Any] | None = None) -> int:
        return self._connector.count(self.name, where)

    def exists(self, record_id: Any) -> bool:
        return self._connector.find_by_id(self.name, coerce_id(record_id)) is not None

    def update_attributes(self, record_id: Any, changes: dict[str, Any]) -> dict[str, Any]:
        record_id = coerce_id(record_id)
        existing = self._connector.find_by_id(self.name, record_id)
        if existing is None:
            raise ModelNotFoundError(f'Unknown "{self.name}" id "{record_id}".')
        merged = self._validate({**existing, **(changes or {}), "id": record_id})
        updated = self._connector.update(self.name, record_id, self._prepare(merged, existing))
        return self.to_public(updated)

    def upsert(self, data: dict[str, Any]) -> dict[str, Any]:
        record_id = coerce_id((data or {}).get("id"))
        if record_id is not None and self.exists(record_id):
            return self.update_attributes(record_id, data)
        return self.create(data)

    def delete_by_id(self, record_id: Any) -> dict[str, int]:
        return {"count": int(self._connector.delete(self.name, coerce_id(record_id)))}

    def destroy_all(self, where: dict[str, Any] | None = None) -> dict[str, int]:
        return {"count": self._connector.delete_all(self.name, where)}

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def relation(self, name: str) -> RelationDefinition:
        relation = self.relations.get(name)
        if relation is None:
            raise BadRequestError(f"Model {self.name} has no relation {name!r}")
        return relation

    def related_model(self, relation: RelationDefinition) -> Model:
        target = model_builder.get(relation.model)
        if target is None:
            raise ModelDefinitionError(
                f"Relation {self.name}.{relation.name} targets unknown model {relation.model}",
            )
        return target

    def _owner(self, record_id: Any) -> dict[str, Any]:
        record = self._connector.find_by_id(self.name, coerce_id(record_id))
        if record is None:
            raise ModelNotFoundError(f'Unknown "{self.name}" id "{record_id}".')
        return record

    def get_related(self, record_id: Any, name: str, filter: dict[str, Any] | None = None) -> Any:
        owner = self._owner(record_id)
        relation = self.relation(name)
        target = self.related_model(relation)
        if relation.type == "belongsTo":
            return target.find_by_id(owner.get(relation.foreign_key)) if owner.get(relation.foreign_key) else None
        filter = dict(filter or {})
        where = {relation.foreign_key: owner["id"]}
        if filter.get("where"):
            where = {"and": [where, filter["where"]]}
        filter["where"] = where
        return target.find(filter)

    def create_related(self, record_id: Any, name: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        owner = self._owner(record_id)
        relation = self.relation(name)
        if relation.type != "hasMany":
            raise BadRequestError(f"Relation {self.name}.{name} does not support create")
        return self.related_model(relation).create({**(data or {}), relation.foreign_key: owner["id"]})

    def delete_related(self, record_id: Any, name: str) -> dict[str, int]:
        owner = self._owner(record_id)
        relation = self.relation(name)
        if relation.type != "hasMany":
            raise BadRequestError(f"Relation {self.name}.{name} does not support delete")
        return self.related_model(relation).destroy_all({relation.foreign_key: owner["id"]})

    def count_related(self, record_id: Any, name: str, where: dict[str, Any] | None = None) -> int:
        owner = self._owner(record_id)
        relation = self.relation(name)
        if relation.type != "hasMany":
            raise BadRequestError(f"Relation {self.name}.{name} does not support count")
        clause = {relation.foreign_key: owner["id"]}
        return self.related_model(relation).count({"and": [clause, where]} if where else clause)

    def _include(self, record: dict[str, Any], include: Any) -> dict[str, Any]:
        names = [include] if isinstance(include, str) else include
        if not isinstance(names, list):
            raise BadRequestError("include must be a relation name or an array of names")
        record = dict(record)
        for name in names:
            relation = self.relation(name)
            target = self.related_model(relation)
            if relation.type == "belongsTo":
                key = record.get(relation.foreign_key)
                record[name] = target.find_by_id(key) if key is not None else None
            else:
                record[name] = target.find({"where": {relation.foreign_key: record["id"]}})
        return record


# ============================================================================
# Built-in models
# ============================================================================

DEFAULT_TOKEN_TTL = 1209600  # two weeks, in seconds


def hash_password(password: str, iterations: int) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, hashed: str) -> bool:
    try:
        algorithm, iterations, salt, expected = hashed.split("$")
    except (AttributeError, ValueError):
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


class UserModel(Model):
    """User-derived models: hashed passwords plus login/logout."""

    def _prepare(self, record: dict[str, Any], existing: dict[str, Any] | None = None) -> dict[str, Any]:
        password = record.get("password")
        if password and (existing is None or password != existing.get("password")):
            record["password"] = hash_password(password, int(self.settings.get("hash_iterations", 10000)))
        return record

    def _token_model(self) -> Model:
        tokens = model_builder.get("AccessToken")
        if tokens is None:
            raise BackendError("AccessToken model is not registered", code="MODEL_NOT_ATTACHED")
        if tokens.data_source is None:
            tokens.attach_to(self.data_source)
        return tokens

    def login(self, credentials: dict[str, Any], include: str | None = None) -> dict[str, Any]:
        credentials = credentials or {}
        password = credentials.get("password")
        if credentials.get("email"):
            where = {"email": credentials["email"]}
        elif credentials.get("username"):
            where = {"username": credentials["username"]}
        else:
            raise BadRequestError("username or email is required", code="USERNAME_EMAIL_REQUIRED")

        matches = self._connector.all(self.name, {"where": where, "limit": 1})
        if not matches or not password or not verify_password(str(password), matches[0].get("password", "")):
            raise LoginFailedError("login failed")

        user = matches[0]
        token = self._token_model().create(
            id=secrets.token_hex(32),
            ttl=DEFAULT_TOKEN_TTL,
            created=datetime.now(timezone.utc).isoformat(),
            userId=user["id"],
        )
        if include == "user":
            token["user"] = self.to_public(user)
        logger.debug("user.login", model=self.name, user_id=user["id"])
        return token

    def logout(self, token_id: str | None) -> None:
        if not token_id:
            raise BadRequestError("accessToken is required to logout", code="ACCESS_TOKEN_REQUIRED")
        self._token_model().delete_by_id(token_id)


def define_model(name: str, properties: dict[str, Any] | None = None, options: dict[str, Any] | None = None) -> Model:
    """Create a model from a JSON-style description and register it."""
    definition = build_definition(name, properties, options)
    base = None
    if definition.base and definition.base not in ABSTRACT_BASES:
        base = model_builder.get(definition.base)
        if base is None:
            raise ModelDefinitionError(f"Model {name} extends unknown model {definition.base}")
    model_class = type(base) if base is not None else Model
    return model_builder.register(model_class(definition, base=base))


_EVERYONE_DENY = {"principalType": "ROLE", "principalId": "$everyone", "permission": "DENY", "property": "*"}


def _allow(principal: str, prop: str) -> dict[str, str]:
    return {"principalType": "ROLE", "principalId": principal, "permission": "ALLOW", "property": prop}


User: UserModel = model_builder.register(
    UserModel(
        build_definition(
            "User",
            {
                "username": "string",
                "email": {"type": "string", "required": True},
                "password": {"type": "string", "required": True},
                "emailVerified": "boolean",
            },
            {
                "hidden": ["password"],
                "acls": [
                    _EVERYONE_DENY,
                    _allow("$everyone", "create"),
                    _allow("$everyone", "login"),
                    _allow("$everyone", "logout"),
                    _allow("$owner", "findById"),
                    _allow("$owner", "updateAttributes"),
                    _allow("$owner", "deleteById"),
                ],
            },
        )
    )
)

AccessToken: Model = model_builder.register(
    Model(
        build_definition(
            "AccessToken",
            {"id": "string", "ttl": "number", "created": "date", "userId": "any"},
            {"acls": [_EVERYONE_DENY]},
        )
    )
)

Role: Model = model_builder.register(
    Model(build_definition("Role", {"name": {"type": "string", "required": True}, "description": "string"}, {}))
)

RoleMapping: Model = model_builder.register(
    Model(
        build_definition(
            "RoleMapping",
            {"principalType": "string", "principalId": "string", "roleId": "any"},
            {"relations": {"role": {"type": "belongsTo", "model": "Role", "foreignKey": "roleId"}}},
        )
    )
)
