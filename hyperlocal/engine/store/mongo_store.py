"""MongoDB backend: unique indexes turn duplicate inserts into benign no-ops."""

from __future__ import annotations

from typing import Any, Mapping

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import DuplicateKeyError

from .base import TABLES, UNIQUE_KEYS, BaseStore, split_filter

_MONGO_OPERATORS = {"in": "$in", "lte": "$lte", "gte": "$gte", "lt": "$lt", "gt": "$gt", "ne": "$ne"}


class MongoStore(BaseStore):
    """Write pipeline records into MongoDB collections named after the tables."""

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        database: str = "hyperlocal",
        client: MongoClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or MongoClient(uri)
        self.db = self.client[database]
        self._ensure_indexes()

    def _ensure_indexes(self) -> None:
        for table in TABLES:
            for key in UNIQUE_KEYS[table]:
                if key != "id":
                    self.db[table].create_index([(key, ASCENDING)], unique=True)

    def insert_if_absent(self, table: str, record: Mapping[str, Any], key: str) -> bool:
        self._check(table, key)
        if record.get(key) in (None, ""):
            raise ValueError(f"record lacks uniqueness key {key!r}")
        document = {("_id" if name == "id" else name): value for name, value in record.items()}
        try:
            self.db[table].insert_one(document)
        except DuplicateKeyError:
            return False
        return True

    def query(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check(table)
        selector: dict[str, Any] = {}
        for name, value in (filters or {}).items():
            field, op = split_filter(name)
            field = "_id" if field == "id" else field
            if op == "eq":
                selector[field] = value
            else:
                operand = list(value) if op == "in" else value
                selector.setdefault(field, {})[_MONGO_OPERATORS[op]] = operand
        cursor = self.db[table].find(selector)
        if order_by:
            column = order_by.lstrip("-")
            column = "_id" if column == "id" else column
            cursor = cursor.sort(column, DESCENDING if order_by.startswith("-") else ASCENDING)
        if limit is not None:
            cursor = cursor.limit(int(limit))
        return [self._decode(document) for document in cursor]

    def update(
        self,
        table: str,
        record_id: str,
        patch: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> bool:
        self._check(table)
        selector = {**dict(where or {}), "_id": record_id}
        if not patch:
            return self.db[table].find_one(selector) is not None
        result = self.db[table].update_one(selector, {"$set": dict(patch)})
        return result.matched_count > 0

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    @staticmethod
    def _decode(document: Mapping[str, Any]) -> dict[str, Any]:
        record = dict(document)
        if "_id" in record:
            record["id"] = record.pop("_id")
        return record


__all__ = ["MongoStore"]
