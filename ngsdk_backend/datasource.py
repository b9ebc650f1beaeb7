"""Data sources and the in-memory connector backing every test backend."""

from __future__ import annotations

import copy
import re
from collections.abc import Callable
from typing import Any

import structlog

from ngsdk_backend.exceptions import BadRequestError, BackendError

logger = structlog.get_logger(__name__)


# ============================================================================
# Where clauses
# ============================================================================


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, arg: Any) -> bool:
        if value is None or arg is None:
            return False
        try:
            return op(value, arg)
        except TypeError:
            return False

    return check


def _like(flags: int = 0, negate: bool = False) -> Callable[[Any, Any], bool]:
    def check(value: Any, arg: Any) -> bool:
        if value is None:
            return negate
        pattern = re.escape(str(arg)).replace("%", ".*").replace("_", ".")
        found = re.search(pattern, str(value), flags) is not None
        return not found if negate else found

    return check


def _between(value: Any, arg: Any) -> bool:
    if not isinstance(arg, list) or len(arg) != 2:
        raise BadRequestError("between expects a two-element array", details={"between": arg})
    return _compare(lambda v, a: a[0] <= v <= a[1])(value, arg)


def _regexp(value: Any, arg: Any) -> bool:
    return value is not None and re.search(str(arg), str(value)) is not None


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "gt": _compare(lambda v, a: v > a),
    "gte": _compare(lambda v, a: v >= a),
    "lt": _compare(lambda v, a: v < a),
    "lte": _compare(lambda v, a: v <= a),
    "neq": lambda v, a: v != a,
    "inq": lambda v, a: v in (a or []),
    "nin": lambda v, a: v not in (a or []),
    "like": _like(),
    "nlike": _like(negate=True),
    "ilike": _like(re.IGNORECASE),
    "nilike": _like(re.IGNORECASE, negate=True),
    "between": _between,
    "regexp": _regexp,
}


def _is_operator_clause(condition: Any) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(key in OPERATORS for key in condition)


def matches_where(record: dict[str, Any], where: dict[str, Any] | None) -> bool:
    """Return True when ``record`` satisfies every clause of ``where``."""
    if not where:
        return True
    if not isinstance(where, dict):
        raise BadRequestError("where must be an object", details={"where": where})
    for key, condition in where.items():
        if key == "and":
            if not all(matches_where(record, clause) for clause in condition):
                return False
        elif key == "or":
            if not any(matches_where(record, clause) for clause in condition):
                return False
        elif _is_operator_clause(condition):
            value = record.get(key)
            if not all(OPERATORS[op](value, arg) for op, arg in condition.items()):
                return False
        elif record.get(key) != condition:
            return False
    return True


# ============================================================================
# Filters
# ============================================================================


def _parse_order(order: Any) -> list[tuple[str, bool]]:
    if isinstance(order, str):
        order = [order]
    if not isinstance(order, list):
        raise BadRequestError("order must be a string or an array", details={"order": order})
    parsed = []
    for item in order:
        parts = str(item).split()
        if not parts:
            continue
        descending = len(parts) > 1 and parts[1].upper() == "DESC"
        parsed.append((parts[0], descending))
    return parsed


def _sort_key(field_name: str) -> Callable[[dict[str, Any]], tuple[bool, Any]]:
    def key(record: dict[str, Any]) -> tuple[bool, Any]:
        value = record.get(field_name)
        return (value is None, value if value is not None else 0)

    return key


def _project(record: dict[str, Any], fields: Any) -> dict[str, Any]:
    if isinstance(fields, list):
        return {name: record[name] for name in fields if name in record}
    if isinstance(fields, dict):
        included = [name for name, keep in fields.items() if keep]
        if included:
            return {name: record[name] for name in included if name in record}
        excluded = {name for name, keep in fields.items() if not keep}
        return {name: value for name, value in record.items() if name not in excluded}
    raise BadRequestError("fields must be an array or an object", details={"fields": fields})


def _to_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise BadRequestError(f"{name} must be a number", details={name: value}) from exc
    if number < 0:
        raise BadRequestError(f"{name} must not be negative", details={name: value})
    return number


def apply_filter(records: list[dict[str, Any]], filter: dict[str, Any] | None) -> list[dict[str, Any]]:
    """Apply where/order/skip/limit/fields to a list of records."""
    filter = filter or {}
    if not isinstance(filter, dict):
        raise BadRequestError("filter must be an object", details={"filter": filter})

    result = [record for record in records if matches_where(record, filter.get("where"))]

    if filter.get("order"):
        # Stable sorts applied from the least significant key.
        for field_name, descending in reversed(_parse_order(filter["order"])):
            try:
                result.sort(key=_sort_key(field_name), reverse=descending)
            except TypeError as exc:
                raise BadRequestError(
                    f"Cannot order by {field_name}: values are not comparable",
                    details={"order": filter["order"]},
                ) from exc

    skip = filter.get("skip", filter.get("offset"))
    if skip is not None:
        result = result[_to_int("skip", skip) :]
    if filter.get("limit") is not None:
        result = result[: _to_int("limit", filter["limit"])]
    if filter.get("fields"):
        result = [_project(record, filter["fields"]) for record in result]
    return result


# ============================================================================
# Connector
# ============================================================================


class MemoryConnector:
    """Keeps one dict of records per model; ids are per-model counters."""

    name = "memory"

    def __init__(self) -> None:
        self._collections: dict[str, dict[Any, dict[str, Any]]] = {}
        self._last_ids: dict[str, int] = {}

    def _collection(self, model_name: str) -> dict[Any, dict[str, Any]]:
        return self._collections.setdefault(model_name, {})

    def _next_id(self, model_name: str) -> int:
        self._last_ids[model_name] = self._last_ids.get(model_name, 0) + 1
        return self._last_ids[model_name]

    def create(self, model_name: str, data: dict[str, Any]) -> dict[str, Any]:
        collection = self._collection(model_name)
        record = copy.deepcopy(data)
        if record.get("id") is None:
            record["id"] = self._next_id(model_name)
            while record["id"] in collection:
                record["id"] = self._next_id(model_name)
        elif record["id"] in collection:
            raise BackendError(
                f"Duplicate entry for {model_name}.id",
                code="DUPLICATE_ID",
                details={"id": record["id"]},
            )
        collection[record["id"]] = record
        return copy.deepcopy(record)

    def all(self, model_name: str, filter: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        records = list(self._collection(model_name).values())
        return copy.deepcopy(apply_filter(records, filter))

    def find_by_id(self, model_name: str, record_id: Any) -> dict[str, Any] | None:
        record = self._collection(model_name).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def update(self, model_name: str, record_id: Any, changes: dict[str, Any]) -> dict[str, Any] | None:
        record = self._collection(model_name).get(record_id)
        if record is None:
            return None
        record.update(copy.deepcopy({key: value for key, value in changes.items() if key != "id"}))
        return copy.deepcopy(record)

    def delete(self, model_name: str, record_id: Any) -> bool:
        return self._collection(model_name).pop(record_id, None) is not None

    def delete_all(self, model_name: str, where: dict[str, Any] | None = None) -> int:
        collection = self._collection(model_name)
        doomed = [key for key, record in collection.items() if matches_where(record, where)]
        for key in doomed:
            del collection[key]
        return len(doomed)

    def count(self, model_name: str, where: dict[str, Any] | None = None) -> int:
        return sum(1 for record in self._collection(model_name).values() if matches_where(record, where))


CONNECTORS: dict[str, type[MemoryConnector]] = {"memory": MemoryConnector}


class DataSource:
    """A named connector instance models attach to."""

    def __init__(self, name: str, connector: str = "memory", **settings: Any) -> None:
        if connector not in CONNECTORS:
            raise BackendError(
                f"Unsupported connector {connector!r}",
                code="UNSUPPORTED_CONNECTOR",
                details={"supported": sorted(CONNECTORS)},
            )
        self.name = name
        self.settings = settings
        self.connector = CONNECTORS[connector]()
        logger.debug("datasource.created", name=name, connector=connector)

    def __repr__(self) -> str:
        return f"<DataSource {self.name} ({self.connector.name})>"
