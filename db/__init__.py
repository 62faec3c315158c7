"""Database stores and the process-wide store factory."""

from typing import Optional, Union

from config import settings

from .memory_store import InMemoryStore
from .supabase_client import SupabaseStore

Store = Union[InMemoryStore, SupabaseStore]

# Global store instance
_store: Optional[Store] = None


def get_store() -> Store:
    """Get or create the store selected by STORAGE_BACKEND."""
    global _store
    if _store is None:
        if settings.storage_backend == "memory":
            _store = InMemoryStore()
        else:
            _store = SupabaseStore()
    return _store


__all__ = ["InMemoryStore", "SupabaseStore", "get_store"]
