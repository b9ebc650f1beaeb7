"""Shared fixtures for backend-model tests."""

import pytest
from fastapi.testclient import TestClient

from ngsdk_backend import BackendApplication, DataSource, User, define_model, model_builder

# ============================================================================
# Registry Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_registry():
    """Forget models defined by a test once it finishes."""
    snapshot = model_builder.snapshot()
    yield
    model_builder.restore(snapshot)


@pytest.fixture(autouse=True)
def fast_password_hashing():
    previous = User.settings.get("hash_iterations")
    User.settings["hash_iterations"] = 4
    yield
    if previous is None:
        User.settings.pop("hash_iterations", None)
    else:
        User.settings["hash_iterations"] = previous


# ============================================================================
# Model Fixtures
# ============================================================================


@pytest.fixture
def db() -> DataSource:
    return DataSource("db")


@pytest.fixture
def customer_models(db):
    """Customer hasMany Order, Order belongsTo Customer, both attached to ``db``."""
    customer = define_model(
        "Customer",
        {"name": {"type": "string", "required": True}, "age": "number", "tags": ["string"]},
        {"relations": {"orders": {"type": "hasMany", "model": "Order"}}},
    )
    order = define_model(
        "Order",
        {"total": "number", "customerId": "number"},
        {"relations": {"customer": {"type": "belongsTo", "model": "Customer"}}},
    )
    customer.attach_to(db)
    order.attach_to(db)
    return customer, order


@pytest.fixture
def backend(customer_models) -> BackendApplication:
    app = BackendApplication()
    db = app.data_source("db")
    for model in customer_models:
        app.model(model, data_source=db)
    app.set("restApiRoot", "/")
    app.use_rest()
    return app


@pytest.fixture
def client(backend) -> TestClient:
    return TestClient(backend)
