"""Unit tests for model persistence, validation, relations and users."""

import pytest

from ngsdk_backend import AccessToken, User, define_model
from ngsdk_backend.exceptions import BackendError, BadRequestError, LoginFailedError, ModelNotFoundError, ValidationError
from ngsdk_backend.models import hash_password, verify_password

# ============================================================================
# CRUD
# ============================================================================


def test_create_assigns_id_and_drops_unset_properties(customer_models):
    customer, _ = customer_models
    created = customer.create({"name": "alice", "age": 31})

    assert created == {"id": 1, "name": "alice", "age": 31}
    assert customer.find_by_id(1) == created
    assert customer.count() == 1
    assert customer.exists("1")


def test_create_accepts_a_list(customer_models):
    customer, _ = customer_models
    created = customer.create([{"name": "a"}, {"name": "b"}])
    assert [record["id"] for record in created] == [1, 2]


def test_missing_required_property_is_a_validation_error(customer_models):
    customer, _ = customer_models
    with pytest.raises(ValidationError) as exc_info:
        customer.create({"age": 3})

    assert exc_info.value.status_code == 422
    assert exc_info.value.details[0]["path"] == "name"


def test_non_strict_models_keep_unknown_properties(customer_models):
    customer, _ = customer_models
    assert customer.create(name="a", nickname="al")["nickname"] == "al"


def test_strict_models_reject_unknown_properties(db):
    strict = define_model("Strict", {"name": "string"}, {"strict": True}).attach_to(db)
    with pytest.raises(ValidationError):
        strict.create(name="a", nickname="al")


def test_hidden_properties_are_stripped(db):
    account = define_model("Account", {"login": "string", "secret": "string"}, {"hidden": ["secret"]}).attach_to(db)
    created = account.create(login="a", secret="s3cr3t")

    assert "secret" not in created
    assert "secret" not in account.find()[0]


def test_find_filters_and_find_one(customer_models):
    customer, _ = customer_models
    customer.create([{"name": "a", "age": 20}, {"name": "b", "age": 30}, {"name": "c", "age": 40}])

    assert [record["name"] for record in customer.find({"where": {"age": {"gte": 30}}})] == ["b", "c"]
    assert customer.find_one({"order": "age DESC"})["name"] == "c"
    assert customer.find_one({"where": {"name": "zzz"}}) is None


def test_update_attributes_merges_and_revalidates(customer_models):
    customer, _ = customer_models
    created = customer.create(name="a", age=1)

    updated = customer.update_attributes(created["id"], {"age": 2})
    assert updated == {"id": created["id"], "name": "a", "age": 2}

    with pytest.raises(ValidationError):
        customer.update_attributes(created["id"], {"tags": "not-a-list"})
    with pytest.raises(ModelNotFoundError):
        customer.update_attributes(99, {"age": 2})


def test_upsert_updates_existing_and_creates_missing(customer_models):
    customer, _ = customer_models
    created = customer.upsert({"name": "a"})
    updated = customer.upsert({"id": created["id"], "name": "b"})

    assert updated["id"] == created["id"]
    assert updated["name"] == "b"
    assert customer.count() == 1


def test_delete_by_id_and_destroy_all(customer_models):
    customer, _ = customer_models
    customer.create([{"name": "a"}, {"name": "b"}, {"name": "c"}])

    assert customer.delete_by_id(1) == {"count": 1}
    assert customer.delete_by_id(1) == {"count": 0}
    assert customer.destroy_all({"name": "b"}) == {"count": 1}
    assert [record["name"] for record in customer.find()] == ["c"]


def test_model_without_data_source_cannot_persist():
    orphan = define_model("Orphan", {"name": "string"})
    with pytest.raises(BackendError, match="not attached"):
        orphan.create(name="a")


# ============================================================================
# Relations
# ============================================================================


def test_has_many_relation_helpers(customer_models):
    customer, order = customer_models
    owner = customer.create(name="alice")
    other = customer.create(name="bob")

    created = customer.create_related(owner["id"], "orders", {"total": 10})
    customer.create_related(owner["id"], "orders", {"total": 20})
    customer.create_related(other["id"], "orders", {"total": 30})

    assert created["customerId"] == owner["id"]
    assert [o["total"] for o in customer.get_related(owner["id"], "orders")] == [10, 20]
    assert [o["total"] for o in customer.get_related(owner["id"], "orders", {"where": {"total": {"gt": 15}}})] == [20]
    assert customer.count_related(owner["id"], "orders") == 2

    assert customer.delete_related(owner["id"], "orders") == {"count": 2}
    assert order.count() == 1


def test_belongs_to_relation_and_include(customer_models):
    customer, order = customer_models
    owner = customer.create(name="alice")
    placed = order.create(total=5, customerId=owner["id"])

    assert order.get_related(placed["id"], "customer") == owner
    assert order.find({"include": "customer"})[0]["customer"] == owner
    assert customer.find_by_id(owner["id"], {"include": ["orders"]})["orders"] == [placed]


def test_unknown_relation_is_a_bad_request(customer_models):
    customer, _ = customer_models
    owner = customer.create(name="alice")
    with pytest.raises(BadRequestError):
        customer.get_related(owner["id"], "invoices")


# ============================================================================
# Users
# ============================================================================


def test_password_hashing_round_trip():
    hashed = hash_password("secret", 4)
    assert hashed.startswith("pbkdf2_sha256$4$")
    assert verify_password("secret", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("secret", "plain-text")


def test_user_password_is_hashed_and_hidden(db):
    User.attach_to(db)
    created = User.create(email="a@example.com", password="secret")

    assert "password" not in created
    stored = db.connector.find_by_id("User", created["id"])
    assert stored["password"].startswith("pbkdf2_sha256$4$")


def test_login_issues_token_and_logout_revokes_it(db):
    User.attach_to(db)
    AccessToken.attach_to(db)
    user = User.create(email="a@example.com", password="secret")

    token = User.login({"email": "a@example.com", "password": "secret"}, include="user")

    assert len(token["id"]) == 64
    assert token["userId"] == user["id"]
    assert token["user"] == user
    assert AccessToken.exists(token["id"])

    User.logout(token["id"])
    assert not AccessToken.exists(token["id"])


def test_login_failures(db):
    User.attach_to(db)
    AccessToken.attach_to(db)
    User.create(username="alice", email="a@example.com", password="secret")

    with pytest.raises(LoginFailedError):
        User.login({"username": "alice", "password": "wrong"})
    with pytest.raises(LoginFailedError):
        User.login({"email": "nobody@example.com", "password": "secret"})
    with pytest.raises(BadRequestError):
        User.login({"password": "secret"})


def test_user_derived_models_inherit_login(db):
    customer = define_model("Member", {"name": "string"}, {"base": "User"}).attach_to(db)
    AccessToken.attach_to(db)
    customer.create(email="m@example.com", password="pw", name="m")

    assert customer.is_a("User")
    assert customer.login({"email": "m@example.com", "password": "pw"})["userId"] == 1
