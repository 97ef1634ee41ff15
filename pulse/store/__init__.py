"""Persistence collaborators for the agent engine."""

from .base import Store
from .errors import NotFoundError, PersistenceError
from .memory import InMemoryStore
from .sql import SqlAlchemyStore

__all__ = [
    "InMemoryStore",
    "NotFoundError",
    "PersistenceError",
    "SqlAlchemyStore",
    "Store",
]
