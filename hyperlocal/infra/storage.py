"""SQLite connection management with the pipeline schema."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

SCHEMA = """
CREATE TABLE IF NOT EXISTS entities (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    city TEXT NOT NULL,
    country TEXT,
    timezone TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS artifacts (
    id TEXT PRIMARY KEY,
    slug TEXT NOT NULL UNIQUE,
    job TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    period_key TEXT,
    headline TEXT,
    body TEXT,
    preview TEXT,
    metadata TEXT,
    status TEXT NOT NULL,
    created_at TEXT,
    published_at TEXT,
    scheduled_for TEXT,
    resend_of TEXT
);
CREATE INDEX IF NOT EXISTS idx_artifacts_job_period ON artifacts(job, period_key);
CREATE INDEX IF NOT EXISTS idx_artifacts_status ON artifacts(status, scheduled_for);
CREATE TABLE IF NOT EXISTS runs (
    id TEXT PRIMARY KEY,
    job TEXT NOT NULL,
    started_at TEXT,
    finished_at TEXT,
    success INTEGER,
    partial INTEGER,
    summary TEXT
);
CREATE TABLE IF NOT EXISTS resends (
    id TEXT PRIMARY KEY,
    artifact_id TEXT NOT NULL,
    job TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    send_date TEXT NOT NULL,
    reason TEXT,
    created_at TEXT
);
"""


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(SCHEMA)
        conn.commit()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SCHEMA", "SQLiteManager"]
