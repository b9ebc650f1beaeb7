"""Integration tests for the REST routes a backend application mounts."""

import json

import pytest
from fastapi.testclient import TestClient

from ngsdk_backend import BackendApplication, User, define_model

pytestmark = pytest.mark.integration


def _filter(value):
    return {"filter": json.dumps(value)}


# ============================================================================
# CRUD routes
# ============================================================================


def test_create_find_count(client):
    response = client.post("/Customers", json={"name": "alice", "age": 31})
    assert response.status_code == 200
    assert response.json() == {"id": 1, "name": "alice", "age": 31}

    client.post("/Customers", json={"name": "bob", "age": 25})

    found = client.get("/Customers", params=_filter({"where": {"age": {"gt": 30}}}))
    assert [record["name"] for record in found.json()] == ["alice"]

    assert client.get("/Customers/count").json() == {"count": 2}
    assert client.get("/Customers/count", params={"where": json.dumps({"name": "bob"})}).json() == {"count": 1}


def test_find_by_id_update_delete(client):
    client.post("/Customers", json={"name": "alice"})

    assert client.get("/Customers/1").json()["name"] == "alice"
    assert client.get("/Customers/1/exists").json() == {"exists": True}

    updated = client.put("/Customers/1", json={"age": 40})
    assert updated.json() == {"id": 1, "name": "alice", "age": 40}

    assert client.delete("/Customers/1").json() == {"count": 1}
    assert client.get("/Customers/1/exists").json() == {"exists": False}


def test_upsert_and_find_one(client):
    client.put("/Customers", json={"name": "alice"})
    client.put("/Customers", json={"id": 1, "name": "alicia"})

    response = client.get("/Customers/findOne", params=_filter({"where": {"name": "alicia"}}))
    assert response.status_code == 200
    assert response.json()["id"] == 1
    assert client.get("/Customers/count").json() == {"count": 1}


def test_relation_routes(client):
    client.post("/Customers", json={"name": "alice"})

    created = client.post("/Customers/1/orders", json={"total": 5})
    assert created.json()["customerId"] == 1

    assert [order["total"] for order in client.get("/Customers/1/orders").json()] == [5]
    assert client.get("/Customers/1/orders/count").json() == {"count": 1}
    assert client.get("/Orders/1/customer").json()["name"] == "alice"
    assert client.get("/Customers", params=_filter({"include": "orders"})).json()[0]["orders"][0]["total"] == 5

    assert client.delete("/Customers/1/orders").status_code == 204
    assert client.get("/Orders/count").json() == {"count": 0}


# ============================================================================
# Error responses
# ============================================================================


def test_unknown_id_is_404_with_error_body(client):
    response = client.get("/Customers/99")
    assert response.status_code == 404
    error = response.json()["error"]
    assert error["statusCode"] == 404
    assert error["name"] == "ModelNotFoundError"
    assert error["code"] == "MODEL_NOT_FOUND"


def test_invalid_data_is_422(client):
    response = client.post("/Customers", json={"age": 3})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_FAILED"


def test_malformed_filter_is_400(client):
    response = client.get("/Customers", params={"filter": "{not json"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_ordering_mixed_values_is_400():
    app = BackendApplication()
    app.model(define_model("Item", {"v": "any"}), data_source=app.data_source("db"))
    app.set("restApiRoot", "/")
    app.use_rest()
    client = TestClient(app)
    client.post("/Items", json={"v": 1})
    client.post("/Items", json={"v": "a"})

    response = client.get("/Items", params=_filter({"order": "v"}))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"
    assert response.json()["error"]["details"] == {"order": "v"}


def test_find_one_without_match_is_404(client):
    response = client.get("/Customers/findOne", params=_filter({"where": {"name": "nobody"}}))
    assert response.status_code == 404


def test_private_models_are_not_exposed(customer_models):
    customer, order = customer_models
    app = BackendApplication()
    db = app.data_source("db")
    app.model(customer, data_source=db)
    app.model(order, data_source=db, public=False)
    app.use_rest()

    client = TestClient(app)
    assert client.get("/api/Customers").status_code == 200
    assert client.get("/api/Orders").status_code == 404


# ============================================================================
# Authentication
# ============================================================================


@pytest.fixture
def auth_client(customer_models):
    customer, _ = customer_models
    app = BackendApplication()
    db = app.data_source("db")
    app.model(User, data_source=db)
    app.model(customer, data_source=db)
    app.enable_auth(db)
    app.use_rest()
    return TestClient(app)


def _login(client, email, password="secret"):
    response = client.post("/api/Users/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()


def test_register_login_and_read_own_profile(auth_client):
    created = auth_client.post("/api/Users", json={"email": "a@example.com", "password": "secret"})
    assert created.status_code == 200
    assert "password" not in created.json()

    assert auth_client.get("/api/Users/1").status_code == 401

    token = _login(auth_client, "a@example.com")
    assert token["userId"] == 1

    profile = auth_client.get("/api/Users/1", headers={"Authorization": token["id"]})
    assert profile.status_code == 200
    assert profile.json()["email"] == "a@example.com"

    by_query = auth_client.get("/api/Users/1", params={"access_token": token["id"]})
    assert by_query.status_code == 200


def test_other_users_are_forbidden(auth_client):
    auth_client.post("/api/Users", json={"email": "a@example.com", "password": "secret"})
    auth_client.post("/api/Users", json={"email": "b@example.com", "password": "secret"})
    token = _login(auth_client, "a@example.com")

    response = auth_client.get("/api/Users/2", headers={"Authorization": f"Bearer {token['id']}"})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ACCESS_DENIED"


def test_login_with_wrong_password_is_401(auth_client):
    auth_client.post("/api/Users", json={"email": "a@example.com", "password": "secret"})
    response = auth_client.post("/api/Users/login", json={"email": "a@example.com", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "LOGIN_FAILED"


def test_logout_revokes_token(auth_client):
    auth_client.post("/api/Users", json={"email": "a@example.com", "password": "secret"})
    token = _login(auth_client, "a@example.com")
    headers = {"Authorization": token["id"]}

    assert auth_client.post("/api/Users/logout", headers=headers).status_code == 204
    assert auth_client.get("/api/Users/1", headers=headers).status_code == 401


def test_models_without_acls_stay_open(auth_client):
    assert auth_client.post("/api/Customers", json={"name": "alice"}).status_code == 200
    assert auth_client.get("/api/Customers").status_code == 200
