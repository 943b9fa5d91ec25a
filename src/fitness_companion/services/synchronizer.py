"""Local/remote reconciliation for per-user record collections.

A synchronizer owns one collection (chat messages, mood entries, personal
records) mirrored in two places: a JSON blob under a single key of the
device's key-value store, and rows of a remote table filtered by
``user_id``. Remote data wins whenever it is reachable and non-empty;
records only known locally are pushed up. Every remote failure is logged
and counted, never raised, so callers always end up with a usable
in-memory collection.
"""

import json
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, Sequence, Set, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from ..metrics import CORRUPT_CACHE_READS, RECORDS_PUSHED, REMOTE_FAILURES
from ..repositories.base import KeyValueStore, Row, RowStore

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=BaseModel)

DEFAULT_BATCH_SIZE = 100


class DualStoreSynchronizer(Generic[RecordT]):
    """Keeps a local cache and a remote table eventually consistent."""

    def __init__(
        self,
        local: KeyValueStore,
        remote: Optional[RowStore],
        *,
        table: str,
        cache_key: str,
        record_type: Type[RecordT],
        order_by: str,
        seed: Optional[Callable[[], List[RecordT]]] = None,
        key_fields: Sequence[str] = ("id",),
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.local = local
        self.remote = remote
        self.table = table
        self.cache_key = cache_key
        self.record_type = record_type
        self.order_by = order_by
        self.key_fields = tuple(key_fields)
        self.batch_size = batch_size
        self._seed = seed or list
        self.records: List[RecordT] = []
        self._loaded = False

    # -- helpers ---------------------------------------------------------

    def identity(self, record: RecordT) -> tuple:
        """Merge identity of a record, in its stored (JSON) form."""
        values = record.model_dump(mode="json", include=set(self.key_fields))
        return tuple(values.get(field) for field in self.key_fields)

    def _row_identity(self, row: Row) -> tuple:
        return tuple(row.get(field) for field in self.key_fields)

    def _online(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and self.remote is not None

    def _sorted(self, records: Iterable[RecordT]) -> List[RecordT]:
        return sorted(records, key=lambda r: getattr(r, self.order_by))

    def _to_row(self, record: RecordT, user_id: str) -> Row:
        row = record.model_dump(mode="json")
        row["user_id"] = user_id
        return row

    def _parse(self, items: Iterable[Any], source: str) -> List[RecordT]:
        records = []
        for item in items:
            try:
                records.append(self.record_type.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "malformed_record_skipped",
                    table=self.table,
                    source=source,
                    errors=e.error_count(),
                )
        return records

    async def _guard(self, operation: str, call: Callable[[], Awaitable[List[Row]]]) -> Optional[List[Row]]:
        """Run a remote call; None means it failed."""
        try:
            return await call()
        except Exception as e:
            logger.error(
                "remote_call_failed",
                table=self.table,
                operation=operation,
                error=str(e),
            )
            REMOTE_FAILURES.labels(table=self.table, operation=operation).inc()
            return None

    async def _read_local(self) -> List[RecordT]:
        try:
            raw = await self.local.get(self.cache_key)
        except Exception as e:
            logger.error("local_read_failed", key=self.cache_key, error=str(e))
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("local_cache_corrupt", key=self.cache_key, error=str(e))
            CORRUPT_CACHE_READS.labels(key=self.cache_key).inc()
            return []
        if not isinstance(data, list):
            logger.warning("local_cache_corrupt", key=self.cache_key, error="not a list")
            CORRUPT_CACHE_READS.labels(key=self.cache_key).inc()
            return []
        return self._parse(data, source="local")

    async def _write_local(self, records: List[RecordT]) -> None:
        payload = json.dumps([r.model_dump(mode="json") for r in records])
        try:
            await self.local.set(self.cache_key, payload)
        except Exception as e:
            logger.error("local_write_failed", key=self.cache_key, error=str(e))

    async def _insert_remote(self, records: List[RecordT], user_id: Optional[str]) -> None:
        if not records or not self._online(user_id):
            return
        rows = [self._to_row(r, user_id) for r in records]
        await self._guard("insert", lambda: self.remote.insert(self.table, rows))

    async def _ensure_loaded(self) -> None:
        """Start from the cached collection when nothing was loaded yet."""
        if self._loaded:
            return
        cached = await self._read_local()
        self.records = self._sorted(cached) if cached else self._seed()
        self._loaded = True

    # -- operations ------------------------------------------------------

    async def load(self, user_id: Optional[str] = None) -> List[RecordT]:
        """Resolve the current collection from remote and local state."""
        local_records = await self._read_local()

        if self._online(user_id):
            rows = await self._guard(
                "select",
                lambda: self.remote.select(
                    self.table, {"user_id": user_id}, order_by=self.order_by
                ),
            )
            remote_records = self._parse(rows or [], source="remote")
            # Malformed rows still occupy their identity remotely
            known = None if rows is None else {self._row_identity(row) for row in rows}

            if remote_records:
                missing = [r for r in local_records if self.identity(r) not in known]
                if missing:
                    await self.push(missing, user_id, known_ids=known)
                records = self._sorted(remote_records + missing)
                await self._write_local(records)
            elif local_records:
                records = self._sorted(local_records)
                await self.push(records, user_id, known_ids=known)
            else:
                records = self._seed()
                await self._write_local(records)
                await self._insert_remote(records, user_id)
        else:
            if local_records:
                records = self._sorted(local_records)
            else:
                records = self._seed()
                await self._write_local(records)

        self.records = records
        self._loaded = True
        logger.info(
            "collection_loaded",
            table=self.table,
            count=len(records),
            online=self._online(user_id),
        )
        return list(records)

    async def push(
        self,
        records: Sequence[RecordT],
        user_id: Optional[str],
        known_ids: Optional[Set[tuple]] = None,
    ) -> int:
        """Insert records whose identity the remote table does not hold yet.

        When ``known_ids`` is not given the remote identities are queried
        first; if that query fails nothing is pushed.
        """
        if not records or not self._online(user_id):
            return 0

        if known_ids is None:
            rows = await self._guard(
                "select", lambda: self.remote.select(self.table, {"user_id": user_id})
            )
            if rows is None:
                return 0
            known_ids = {self._row_identity(row) for row in rows}

        pending = []
        seen = set(known_ids)
        for record in records:
            key = self.identity(record)
            if key not in seen:
                seen.add(key)
                pending.append(record)

        pushed = 0
        for start in range(0, len(pending), self.batch_size):
            batch = [self._to_row(r, user_id) for r in pending[start : start + self.batch_size]]
            if await self._guard("insert", lambda: self.remote.insert(self.table, batch)) is None:
                break
            pushed += len(batch)

        if pushed:
            RECORDS_PUSHED.labels(table=self.table).inc(pushed)
            logger.info("records_pushed", table=self.table, count=pushed, pending=len(pending))
        return pushed

    async def append(self, record: RecordT, user_id: Optional[str] = None) -> RecordT:
        """Add a record locally and, with a session, insert it remotely."""
        await self._ensure_loaded()
        self.records = self.records + [record]
        await self._write_local(self.records)
        await self._insert_remote([record], user_id)
        return record

    async def upsert(self, record: RecordT, user_id: Optional[str] = None) -> RecordT:
        """Add or replace the record sharing this record's key fields.

        Remotely the existing row is looked up by ``user_id`` plus the key
        fields and updated in place; the stored record adopts that row's id
        so both stores agree on identity.
        """
        await self._ensure_loaded()
        key = self.identity(record)
        self.records = self._sorted(
            [r for r in self.records if self.identity(r) != key] + [record]
        )
        await self._write_local(self.records)

        if not self._online(user_id):
            return record

        row = self._to_row(record, user_id)
        filters = {"user_id": user_id}
        filters.update({field: row[field] for field in self.key_fields})
        existing = await self._guard(
            "select", lambda: self.remote.select(self.table, filters, columns="id")
        )
        if existing is None:
            return record

        if existing:
            row_id = existing[0]["id"]
            if row_id != record.id:
                record = record.model_copy(update={"id": row_id})
                row["id"] = row_id
                self.records = [record if self.identity(r) == key else r for r in self.records]
                await self._write_local(self.records)
            await self._guard(
                "update",
                lambda: self.remote.update(self.table, row, {"id": row_id, "user_id": user_id}),
            )
        else:
            await self._guard("insert", lambda: self.remote.insert(self.table, [row]))
        return record

    async def replace(
        self, record_id: str, changes: dict, user_id: Optional[str] = None
    ) -> Optional[RecordT]:
        """Apply field changes to the record with the given id."""
        await self._ensure_loaded()
        current = next((r for r in self.records if r.id == record_id), None)
        if current is None:
            logger.warning("record_not_found", table=self.table, record_id=record_id)
            return None

        updated = self.record_type.model_validate({**current.model_dump(), **changes, "id": record_id})
        self.records = self._sorted(updated if r.id == record_id else r for r in self.records)
        await self._write_local(self.records)

        if self._online(user_id):
            row = self._to_row(updated, user_id)
            await self._guard(
                "update",
                lambda: self.remote.update(self.table, row, {"id": record_id, "user_id": user_id}),
            )
        return updated

    async def remove(self, record_id: str, user_id: Optional[str] = None) -> bool:
        """Delete the record with the given id; False when it was unknown."""
        await self._ensure_loaded()
        remaining = [r for r in self.records if r.id != record_id]
        if len(remaining) == len(self.records):
            logger.warning("record_not_found", table=self.table, record_id=record_id)
            return False

        self.records = remaining
        await self._write_local(self.records)
        if self._online(user_id):
            await self._guard(
                "delete",
                lambda: self.remote.delete(self.table, {"id": record_id, "user_id": user_id}),
            )
        return True

    async def clear(self, user_id: Optional[str] = None) -> List[RecordT]:
        """Reset both stores to the seed collection."""
        records = self._seed()
        self.records = records
        self._loaded = True
        await self._write_local(records)

        if self._online(user_id):
            await self._guard("delete", lambda: self.remote.delete(self.table, {"user_id": user_id}))
            await self._insert_remote(records, user_id)

        logger.info("collection_cleared", table=self.table, online=self._online(user_id))
        return list(records)
