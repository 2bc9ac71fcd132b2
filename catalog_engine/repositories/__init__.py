"""
Storage adapters.

One QueryAdapter implementation per engine, all answering the same
contract, plus the UnitOfWork that hands them to the services.

Engine-specific adapters live in their own modules (mongo, firestore, sql)
and are built by the ConnectionManager.
"""

from .base import QueryAdapter, prefix_upper_bound
from .memory import InMemoryAdapter, InMemoryStore
from .unit_of_work import ENTITY_REGISTRY, AdapterFactory, UnitOfWork

__all__ = [
    "QueryAdapter",
    "prefix_upper_bound",
    "InMemoryAdapter",
    "InMemoryStore",
    "UnitOfWork",
    "AdapterFactory",
    "ENTITY_REGISTRY",
]
