"""Storage SPI and implementations."""

from __future__ import annotations

from pathlib import Path

from ...config import GlobalConfig, StorageBackend
from .base import BaseStore
from .mongo_store import MongoStore
from .sqlite_store import SQLiteStore


def build_store(global_config: GlobalConfig, project_root: Path | None = None) -> BaseStore:
    storage = global_config.storage
    if storage.backend is StorageBackend.MONGODB:
        return MongoStore(storage.mongo_uri, database=storage.mongo_database)
    path = storage.sqlite_path
    if not path.is_absolute() and project_root is not None:
        path = (project_root / path).resolve()
    return SQLiteStore(path)


__all__ = ["BaseStore", "MongoStore", "SQLiteStore", "build_store"]
