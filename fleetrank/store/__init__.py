"""Store package: SQLite-backed persistence for fleetrank."""

from typing import Optional

from ..catalog import load_catalog
from .sqlite_store import SQLiteStore

__all__ = [
    "SQLiteStore",
    "init_store",
    "get_store",
    "close_store",
]

store: Optional[SQLiteStore] = None


async def init_store(data_file: str, catalog_file: Optional[str] = None) -> SQLiteStore:
    """Initialize the global store (creates tables and seeds the catalog)."""
    global store
    catalog = load_catalog(catalog_file) if catalog_file else None
    store = SQLiteStore(data_file)
    await store.initialize(catalog)
    return store


async def close_store() -> None:
    global store
    if store is not None:
        await store.close()
        store = None


def get_store() -> SQLiteStore:
    """Get the global store instance."""
    if store is None:
        raise RuntimeError("Store not initialized. Call init_store() first.")
    return store
