"""In-memory store implementations."""

import asyncio
import copy
from typing import Dict, List, Optional
from uuid import uuid4

import structlog

from .base import KeyValueStore, Row, RowStore

logger = structlog.get_logger()


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed local store, used for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._data[key] = value

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)


def _matches(row: Row, filters: Optional[Row]) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())


class InMemoryRowStore(RowStore):
    """Table store kept in process memory."""

    def __init__(self) -> None:
        """Initialize empty tables."""
        self._tables: Dict[str, List[Row]] = {}
        self._lock = asyncio.Lock()
        logger.info("row_store_initialized", backend="memory")

    def rows(self, table: str) -> List[Row]:
        """Snapshot of a table, for inspection."""
        return copy.deepcopy(self._tables.get(table, []))

    async def select(
        self,
        table: str,
        filters: Optional[Row] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        columns: str = "*",
    ) -> List[Row]:
        async with self._lock:
            found = [
                copy.deepcopy(row)
                for row in self._tables.get(table, [])
                if _matches(row, filters)
            ]
        if order_by:
            found.sort(key=lambda r: r.get(order_by) or "", reverse=not ascending)
        if columns != "*":
            wanted = [c.strip() for c in columns.split(",")]
            found = [{c: row.get(c) for c in wanted} for row in found]
        return found

    async def insert(self, table: str, rows: List[Row]) -> List[Row]:
        stored = []
        async with self._lock:
            target = self._tables.setdefault(table, [])
            for row in rows:
                row = copy.deepcopy(row)
                row.setdefault("id", uuid4().hex)
                target.append(row)
                stored.append(copy.deepcopy(row))
        logger.debug("rows_inserted", table=table, count=len(stored))
        return stored

    async def update(self, table: str, values: Row, filters: Row) -> List[Row]:
        changed = []
        async with self._lock:
            for row in self._tables.get(table, []):
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    changed.append(copy.deepcopy(row))
        return changed

    async def delete(self, table: str, filters: Row) -> List[Row]:
        async with self._lock:
            existing = self._tables.get(table, [])
            removed = [row for row in existing if _matches(row, filters)]
            self._tables[table] = [row for row in existing if not _matches(row, filters)]
        logger.debug("rows_deleted", table=table, count=len(removed))
        return removed
