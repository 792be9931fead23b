"""SQLite backend: UNIQUE constraints turn duplicate inserts into benign no-ops."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Mapping

from ...infra.storage import SQLiteManager
from .base import BaseStore, split_filter

COLUMNS: dict[str, tuple[str, ...]] = {
    "entities": ("id", "name", "city", "country", "timezone", "active"),
    "artifacts": (
        "id",
        "slug",
        "job",
        "entity_id",
        "period_key",
        "headline",
        "body",
        "preview",
        "metadata",
        "status",
        "created_at",
        "published_at",
        "scheduled_for",
        "resend_of",
    ),
    "runs": ("id", "job", "started_at", "finished_at", "success", "partial", "summary"),
    "resends": ("id", "artifact_id", "job", "entity_id", "send_date", "reason", "created_at"),
}
JSON_COLUMNS = {"metadata", "summary"}
BOOL_COLUMNS = {"active", "success", "partial"}

_SQL_OPERATORS = {"eq": "=", "lte": "<=", "gte": ">=", "lt": "<", "gt": ">", "ne": "!="}


class SQLiteStore(BaseStore):
    """Persist pipeline records into the shared SQLite schema."""

    def __init__(self, path: Path, manager: SQLiteManager | None = None) -> None:
        self.path = path
        self.manager = manager or SQLiteManager()
        self._conn = self.manager.connect(path)
        self._lock = Lock()

    def insert_if_absent(self, table: str, record: Mapping[str, Any], key: str) -> bool:
        self._check(table, key)
        if record.get(key) in (None, ""):
            raise ValueError(f"record lacks uniqueness key {key!r}")
        columns = [column for column in COLUMNS[table] if column in record]
        values = [self._encode(column, record[column]) for column in columns]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        with self._lock:
            try:
                self._conn.execute(sql, values)
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                if "UNIQUE" not in str(exc) and "PRIMARY KEY" not in str(exc):
                    raise
                return False
            self._conn.commit()
        return True

    def query(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check(table)
        clauses: list[str] = []
        params: list[Any] = []
        for name, value in (filters or {}).items():
            field, op = split_filter(name)
            self._check_column(table, field)
            if op == "in":
                items = list(value)
                if not items:
                    return []
                clauses.append(f"{field} IN ({', '.join('?' for _ in items)})")
                params.extend(self._encode(field, item) for item in items)
            elif value is None and op in ("eq", "ne"):
                clauses.append(f"{field} IS {'NOT ' if op == 'ne' else ''}NULL")
            else:
                clauses.append(f"{field} {_SQL_OPERATORS[op]} ?")
                params.append(self._encode(field, value))
        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_by:
            descending = order_by.startswith("-")
            column = order_by.lstrip("-")
            self._check_column(table, column)
            sql += f" ORDER BY {column} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._decode(row) for row in rows]

    def update(
        self,
        table: str,
        record_id: str,
        patch: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> bool:
        self._check(table)
        guard = dict(where or {})
        for column in (*patch, *guard):
            self._check_column(table, column)
        if not patch:
            return bool(self.query(table, {"id": record_id, **guard}, limit=1))
        assignments = ", ".join(f"{column} = ?" for column in patch)
        values = [self._encode(column, value) for column, value in patch.items()]
        conditions = "".join(f" AND {column} = ?" for column in guard)
        params = [self._encode(column, value) for column, value in guard.items()]
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?{conditions}",
                (*values, record_id, *params),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        self.manager.close_all()

    # ------------------------------------------------------------------
    @staticmethod
    def _check_column(table: str, column: str) -> None:
        if column not in COLUMNS[table]:
            raise ValueError(f"Unknown column {column!r} for {table}")

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if value is None:
            return None
        if column in JSON_COLUMNS:
            return json.dumps(value, ensure_ascii=False, default=str)
        if column in BOOL_COLUMNS:
            return int(bool(value))
        return value

    @staticmethod
    def _decode(row: sqlite3.Row) -> dict[str, Any]:
        record = dict(row)
        for column in JSON_COLUMNS & record.keys():
            if record[column] is not None:
                record[column] = json.loads(record[column])
        for column in BOOL_COLUMNS & record.keys():
            if record[column] is not None:
                record[column] = bool(record[column])
        return record


__all__ = ["SQLiteStore"]
