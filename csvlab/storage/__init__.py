"""Row storage backends."""

from typing import Optional

from config import env_manager

from .base import BaseRowStore, RowStoreInterface
from .memory import InMemoryRowStore
from .sqlite import SQLiteRowStore

_BACKENDS = {
    InMemoryRowStore.backend_name: InMemoryRowStore,
    SQLiteRowStore.backend_name: SQLiteRowStore,
}


async def open_row_store(backend: Optional[str] = None, path: Optional[str] = None) -> BaseRowStore:
    """Create and open a row store.

    Args:
        backend: "sqlite" or "memory"; defaults to the ``row_store_backend`` setting.
        path: Database file for the SQLite backend; defaults to ``row_store_path``.
    """
    backend = (backend or env_manager.get_setting("row_store_backend", "sqlite")).lower()
    if backend not in _BACKENDS:
        raise ValueError(f"Unknown row store backend: {backend}. Expected one of {sorted(_BACKENDS)}")

    if backend == SQLiteRowStore.backend_name:
        store = SQLiteRowStore(path=path)
    else:
        store = InMemoryRowStore()
    await store.open()
    return store


__all__ = [
    "RowStoreInterface",
    "BaseRowStore",
    "InMemoryRowStore",
    "SQLiteRowStore",
    "open_row_store",
]
