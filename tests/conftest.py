"""Shared fixtures and store doubles."""

from typing import List, Optional

import pytest

from fitness_companion.domain.models import Session
from fitness_companion.repositories.base import RemoteStoreError, Row
from fitness_companion.repositories.memory import InMemoryKeyValueStore, InMemoryRowStore


class RecordingRowStore(InMemoryRowStore):
    """In-memory row store that can fail chosen operations and counts calls."""

    def __init__(self, failing: Optional[set] = None) -> None:
        super().__init__()
        self.failing = set(failing or ())
        self.calls: List[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise RemoteStoreError(f"{operation} unavailable")

    async def select(self, table, filters=None, order_by=None, ascending=True, columns="*"):
        self._check("select")
        return await super().select(table, filters, order_by, ascending, columns)

    async def insert(self, table: str, rows: List[Row]) -> List[Row]:
        self._check("insert")
        return await super().insert(table, rows)

    async def update(self, table: str, values: Row, filters: Row) -> List[Row]:
        self._check("update")
        return await super().update(table, values, filters)

    async def delete(self, table: str, filters: Row) -> List[Row]:
        self._check("delete")
        return await super().delete(table, filters)


@pytest.fixture
def local_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def remote_store() -> RecordingRowStore:
    return RecordingRowStore()


@pytest.fixture
def offline_remote() -> RecordingRowStore:
    return RecordingRowStore(failing={"select", "insert", "update", "delete"})


@pytest.fixture
def session() -> Session:
    return Session(user_id="user-1", access_token="token")
