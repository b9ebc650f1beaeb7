"""Backend-model framework for ephemeral test backends.

Models are described as JSON (properties + options), attached to an
in-memory data source and served over REST by a ``BackendApplication``.
"""

from ngsdk_backend.application import BackendApplication
from ngsdk_backend.datasource import DataSource
from ngsdk_backend.models import AccessToken, Model, Role, RoleMapping, User, define_model
from ngsdk_backend.registry import ModelBuilder, RegistrySnapshot, model_builder
from ngsdk_backend.remoting import RemoteMethod, SharedClass, describe_app, describe_model

__all__ = [
    "AccessToken",
    "BackendApplication",
    "DataSource",
    "Model",
    "ModelBuilder",
    "RegistrySnapshot",
    "RemoteMethod",
    "Role",
    "RoleMapping",
    "SharedClass",
    "User",
    "define_model",
    "describe_app",
    "describe_model",
    "model_builder",
]
