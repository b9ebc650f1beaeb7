"""Shared fixtures for services generator tests."""

import pytest

from ngsdk_backend import BackendApplication, User, define_model, model_builder


@pytest.fixture(autouse=True)
def isolated_registry():
    snapshot = model_builder.snapshot()
    yield
    model_builder.restore(snapshot)


@pytest.fixture
def backend() -> BackendApplication:
    """Customer (hasMany orders), Order and the built-in User."""
    app = BackendApplication()
    db = app.data_source("db")
    customer = define_model(
        "Customer",
        {"name": {"type": "string", "required": True}},
        {"relations": {"orders": {"type": "hasMany", "model": "Order"}}},
    )
    order = define_model("Order", {"total": "number"})
    app.model(customer, data_source=db)
    app.model(order, data_source=db)
    app.model(User, data_source=db)
    return app
