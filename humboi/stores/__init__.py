"""
Store backends for humboi.

This module provides the client boundary to the transactional data service:
1. Protocols for clients, connections and snapshots
2. Backends: memory, sqlite, bigquery
3. make_client() to build a backend from configuration
"""

from typing import TYPE_CHECKING

from humboi.errors import ConfigError
from humboi.stores.base import (
    Datom,
    Snapshot,
    StoreClient,
    StoreConnection,
    TxResult,
)
from humboi.stores.memory import MemoryStoreClient
from humboi.stores.sqlite import SqliteStoreClient

if TYPE_CHECKING:
    from humboi.config import HumboiConfig

BACKENDS = ("memory", "sqlite", "bigquery")


def make_client(config: "HumboiConfig") -> StoreClient:
    """
    Build a store client for the configured backend.

    Raises:
        ConfigError: If the backend is unknown
        ClassifiedFailure: If the backend client cannot be constructed
    """
    backend = config.backend
    if backend == "memory":
        return MemoryStoreClient()
    if backend == "sqlite":
        return SqliteStoreClient(config.sqlite_path)
    if backend == "bigquery":
        from humboi.stores.bigquery import BigQueryStoreClient
        return BigQueryStoreClient(
            project=config.project,
            dataset_prefix=config.dataset_prefix,
            location=config.location,
        )
    raise ConfigError(f"Unknown backend: {backend}. Expected one of {', '.join(BACKENDS)}")


__all__ = [
    "BACKENDS",
    "Datom",
    "MemoryStoreClient",
    "Snapshot",
    "SqliteStoreClient",
    "StoreClient",
    "StoreConnection",
    "TxResult",
    "make_client",
]
