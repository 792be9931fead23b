"""Persistence Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

TABLES = ("entities", "artifacts", "runs", "resends")

# Fields whose uniqueness the backend enforces; ``insert_if_absent`` keys on one of them.
UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    "entities": ("id",),
    "artifacts": ("id", "slug"),
    "runs": ("id",),
    "resends": ("id",),
}

FILTER_OPERATORS = ("in", "lte", "gte", "lt", "gt", "ne")


def split_filter(name: str) -> tuple[str, str]:
    """``"created_at__gte"`` -> ``("created_at", "gte")``; bare names mean equality."""

    field, _, op = name.partition("__")
    if not op:
        return field, "eq"
    if op not in FILTER_OPERATORS:
        raise ValueError(f"Unsupported filter operator: {name}")
    return field, op


class BaseStore(ABC):
    """Uniform storage contract shared by the publish gate and the runner."""

    @abstractmethod
    def insert_if_absent(self, table: str, record: Mapping[str, Any], key: str) -> bool:
        """Insert ``record``; return ``False`` when ``key`` already exists."""

    @abstractmethod
    def query(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return records matching all filters."""

    @abstractmethod
    def update(
        self,
        table: str,
        record_id: str,
        patch: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> bool:
        """Apply ``patch`` to the record with ``record_id``.

        ``where`` holds column values the record must still have; the check and
        the write happen in one statement. Returns ``False`` when no record
        matched.
        """

    def get(self, table: str, record_id: str) -> dict[str, Any] | None:
        rows = self.query(table, {"id": record_id}, limit=1)
        return rows[0] if rows else None

    def close(self) -> None:
        """Release underlying resources."""

    @staticmethod
    def _check(table: str, key: str | None = None) -> None:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        if key is not None and key not in UNIQUE_KEYS[table]:
            raise ValueError(f"{key!r} is not a unique key of {table}")


__all__ = ["BaseStore", "FILTER_OPERATORS", "TABLES", "UNIQUE_KEYS", "split_filter"]
