"""Adapters for the hosted backend the service delegates persistence to."""

from .base import Backend, DataStore, IdentityProvider, ObjectStorage, StoreError, Subscription
from .memory import create_memory_backend
from .rest import create_rest_backend

__all__ = [
    "Backend",
    "DataStore",
    "IdentityProvider",
    "ObjectStorage",
    "StoreError",
    "Subscription",
    "create_memory_backend",
    "create_rest_backend",
]
