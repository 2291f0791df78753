"""
Client record storage backends.
"""

from .base import ClientStore, ClientPage, StorageError, DuplicateOrganizationError
from .memory import InMemoryClientStore
from .redis_store import RedisClientStore

__all__ = [
    "ClientStore", "ClientPage", "StorageError", "DuplicateOrganizationError",
    "InMemoryClientStore", "RedisClientStore",
]
