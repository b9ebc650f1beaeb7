"""Unit tests for where/filter evaluation and the memory connector."""

import pytest

from ngsdk_backend.datasource import DataSource, MemoryConnector, apply_filter, matches_where
from ngsdk_backend.exceptions import BackendError, BadRequestError

RECORDS = [
    {"id": 1, "name": "alice", "age": 31, "city": "Paris"},
    {"id": 2, "name": "bob", "age": 25, "city": "Berlin"},
    {"id": 3, "name": "carol", "age": 42, "city": "Paris"},
    {"id": 4, "name": "Dave", "age": None, "city": "Oslo"},
]


def _names(records):
    return [record["name"] for record in records]


# ============================================================================
# Where clauses
# ============================================================================


@pytest.mark.parametrize(
    ("where", "expected"),
    [
        ({"city": "Paris"}, ["alice", "carol"]),
        ({"age": {"gt": 30}}, ["alice", "carol"]),
        ({"age": {"gte": 25, "lt": 35}}, ["alice", "bob"]),
        ({"age": {"between": [26, 42]}}, ["alice", "carol"]),
        ({"city": {"neq": "Paris"}}, ["bob", "Dave"]),
        ({"name": {"inq": ["bob", "carol"]}}, ["bob", "carol"]),
        ({"name": {"nin": ["bob", "carol"]}}, ["alice", "Dave"]),
        ({"name": {"like": "%a%"}}, ["alice", "carol", "Dave"]),
        ({"name": {"nlike": "%a%"}}, ["bob"]),
        ({"name": {"ilike": "d%"}}, ["Dave"]),
        ({"or": [{"city": "Oslo"}, {"age": {"lt": 30}}]}, ["bob", "Dave"]),
        ({"and": [{"city": "Paris"}, {"age": {"gt": 40}}]}, ["carol"]),
    ],
)
def test_where_operators(where, expected):
    assert _names([record for record in RECORDS if matches_where(record, where)]) == expected


def test_comparisons_never_match_missing_values():
    assert not matches_where(RECORDS[3], {"age": {"lt": 100}})


def test_between_requires_two_values():
    with pytest.raises(BadRequestError):
        matches_where(RECORDS[0], {"age": {"between": [1]}})


# ============================================================================
# Filters
# ============================================================================


def test_order_skip_limit():
    result = apply_filter(RECORDS, {"where": {"age": {"gt": 0}}, "order": "age DESC", "skip": 1, "limit": 2})
    assert _names(result) == ["alice", "bob"]


def test_order_by_several_keys():
    result = apply_filter(RECORDS, {"order": ["city ASC", "name DESC"]})
    assert _names(result) == ["bob", "Dave", "carol", "alice"]


def test_ordering_incomparable_values_is_a_bad_request():
    with pytest.raises(BadRequestError) as exc_info:
        apply_filter([{"v": 1}, {"v": "a"}], {"order": "v DESC"})
    assert exc_info.value.details == {"order": "v DESC"}


def test_offset_is_an_alias_for_skip():
    assert _names(apply_filter(RECORDS, {"offset": 3})) == ["Dave"]


def test_fields_projection():
    assert apply_filter(RECORDS[:1], {"fields": ["name"]}) == [{"name": "alice"}]
    assert apply_filter(RECORDS[:1], {"fields": {"age": False, "city": False}}) == [{"id": 1, "name": "alice"}]


def test_negative_limit_is_rejected():
    with pytest.raises(BadRequestError):
        apply_filter(RECORDS, {"limit": -1})


# ============================================================================
# Connector
# ============================================================================


def test_connector_assigns_sequential_ids():
    connector = MemoryConnector()
    first = connector.create("Customer", {"name": "a"})
    second = connector.create("Customer", {"name": "b"})
    other = connector.create("Order", {"total": 1})

    assert (first["id"], second["id"], other["id"]) == (1, 2, 1)


def test_connector_rejects_duplicate_ids():
    connector = MemoryConnector()
    connector.create("Customer", {"id": 7})
    with pytest.raises(BackendError) as exc_info:
        connector.create("Customer", {"id": 7})
    assert exc_info.value.code == "DUPLICATE_ID"


def test_connector_returns_copies():
    connector = MemoryConnector()
    created = connector.create("Customer", {"name": "a", "tags": ["x"]})
    created["tags"].append("y")
    assert connector.find_by_id("Customer", created["id"])["tags"] == ["x"]


def test_connector_update_delete_count():
    connector = MemoryConnector()
    for name in ("a", "b", "c"):
        connector.create("Customer", {"name": name})

    assert connector.update("Customer", 2, {"name": "B"})["name"] == "B"
    assert connector.update("Customer", 99, {"name": "x"}) is None
    assert connector.delete("Customer", 1) is True
    assert connector.delete("Customer", 1) is False
    assert connector.count("Customer") == 2
    assert connector.delete_all("Customer", {"name": "B"}) == 1
    assert connector.count("Customer") == 1


def test_unknown_connector_is_rejected():
    with pytest.raises(BackendError) as exc_info:
        DataSource("db", connector="mongodb")
    assert exc_info.value.code == "UNSUPPORTED_CONNECTOR"
