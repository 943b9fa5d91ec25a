"""Test suite for local/remote reconciliation."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from fitness_companion.domain.models import GREETING, Message, Sender
from fitness_companion.metrics import CUSTOM_REGISTRY
from fitness_companion.services.synchronizer import DualStoreSynchronizer

CACHE_KEY = "trainerConversations"
BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_sync(local, remote=None, batch_size=100):
    return DualStoreSynchronizer(
        local,
        remote,
        table="messages",
        cache_key=CACHE_KEY,
        record_type=Message,
        order_by="timestamp",
        seed=lambda: [Message.greeting()],
        batch_size=batch_size,
    )


def message(id, minutes, body="hi", sender=Sender.USER):
    return Message(id=id, sender=sender, body=body, timestamp=BASE_TIME + timedelta(minutes=minutes))


def cache_payload(*messages):
    return json.dumps([m.model_dump(mode="json") for m in messages])


def remote_ids(remote, user_id="user-1"):
    return sorted(row["id"] for row in remote.rows("messages") if row["user_id"] == user_id)


@pytest.mark.asyncio
async def test_reseed_without_session_is_idempotent(local_store):
    """Test two offline loads on an empty cache yield the same single greeting."""
    first = await make_sync(local_store).load()
    second = await make_sync(local_store).load()

    assert len(first) == 1 and len(second) == 1
    assert first[0].body == second[0].body == GREETING
    assert first[0].sender == Sender.ASSISTANT
    assert json.loads(await local_store.get(CACHE_KEY))[0]["body"] == GREETING


@pytest.mark.asyncio
async def test_offline_load_makes_no_remote_calls(local_store, remote_store):
    """Test that loading without a user never touches the remote store."""
    await make_sync(local_store, remote_store).load(None)
    assert remote_store.calls == []


@pytest.mark.asyncio
async def test_load_merges_local_only_records_into_remote(local_store, remote_store):
    """Test local {A, B} and remote {A} converge to {A, B} everywhere."""
    a, b = message("a", 0, "first"), message("b", 5, "second")
    await local_store.set(CACHE_KEY, cache_payload(a, b))
    await remote_store.insert("messages", [{**a.model_dump(mode="json"), "user_id": "user-1"}])

    records = await make_sync(local_store, remote_store).load("user-1")

    assert [r.id for r in records] == ["a", "b"]
    assert remote_ids(remote_store) == ["a", "b"]
    cached = json.loads(await local_store.get(CACHE_KEY))
    assert [m["id"] for m in cached] == ["a", "b"]


@pytest.mark.asyncio
async def test_remote_records_replace_local_cache(local_store, remote_store):
    """Test non-empty remote data is adopted and written to the cache."""
    remote_message = message("r1", 1, "from the cloud")
    await remote_store.insert(
        "messages", [{**remote_message.model_dump(mode="json"), "user_id": "user-1"}]
    )

    records = await make_sync(local_store, remote_store).load("user-1")

    assert [r.body for r in records] == ["from the cloud"]
    assert json.loads(await local_store.get(CACHE_KEY))[0]["id"] == "r1"


@pytest.mark.asyncio
async def test_remote_rows_are_scoped_to_user(local_store, remote_store):
    """Test rows owned by another user are ignored."""
    other = message("x", 0, "not mine")
    await remote_store.insert("messages", [{**other.model_dump(mode="json"), "user_id": "user-2"}])

    records = await make_sync(local_store, remote_store).load("user-1")

    assert [r.body for r in records] == [GREETING]
    assert remote_ids(remote_store, "user-2") == ["x"]


@pytest.mark.asyncio
async def test_empty_everywhere_seeds_both_stores(local_store, remote_store):
    """Test a fresh user gets the greeting locally and remotely."""
    records = await make_sync(local_store, remote_store).load("user-1")

    assert len(records) == 1
    assert remote_ids(remote_store) == [records[0].id]


@pytest.mark.asyncio
async def test_remote_empty_pushes_local_records(local_store, remote_store):
    """Test records held only locally are uploaded when the remote table is empty."""
    await local_store.set(CACHE_KEY, cache_payload(message("a", 0), message("b", 1)))

    records = await make_sync(local_store, remote_store).load("user-1")

    assert [r.id for r in records] == ["a", "b"]
    assert remote_ids(remote_store) == ["a", "b"]


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_local(local_store, offline_remote):
    """Test an unreachable backend degrades to cached data without raising."""
    before = CUSTOM_REGISTRY.get_sample_value(
        "sync_remote_failures_total", {"table": "messages", "operation": "select"}
    ) or 0.0
    await local_store.set(CACHE_KEY, cache_payload(message("a", 0, "cached")))

    records = await make_sync(local_store, offline_remote).load("user-1")

    assert [r.body for r in records] == ["cached"]
    after = CUSTOM_REGISTRY.get_sample_value(
        "sync_remote_failures_total", {"table": "messages", "operation": "select"}
    )
    assert after > before


@pytest.mark.asyncio
async def test_corrupt_cache_is_reseeded(local_store):
    """Test unreadable cached JSON is treated as empty."""
    await local_store.set(CACHE_KEY, "{not json")

    records = await make_sync(local_store).load()

    assert [r.body for r in records] == [GREETING]
    assert json.loads(await local_store.get(CACHE_KEY))[0]["body"] == GREETING


@pytest.mark.asyncio
async def test_malformed_cached_records_are_skipped(local_store):
    """Test one bad entry does not discard the rest of the cache."""
    good = message("good", 0, "kept").model_dump(mode="json")
    await local_store.set(CACHE_KEY, json.dumps([good, {"sender": "robot"}, "junk"]))

    records = await make_sync(local_store).load()

    assert [r.id for r in records] == ["good"]


@pytest.mark.asyncio
async def test_push_inserts_in_batches(local_store, remote_store):
    """Test pushes are split into inserts of at most batch_size rows."""
    sync = make_sync(local_store, remote_store, batch_size=2)
    records = [message(f"m{i}", i) for i in range(5)]

    pushed = await sync.push(records, "user-1", known_ids={("m0",)})

    assert pushed == 4
    assert remote_store.calls.count("insert") == 2
    assert remote_ids(remote_store) == ["m1", "m2", "m3", "m4"]


@pytest.mark.asyncio
async def test_push_queries_known_ids_when_not_given(local_store, remote_store):
    """Test push skips records the remote already holds."""
    existing = message("m0", 0)
    await remote_store.insert("messages", [{**existing.model_dump(mode="json"), "user_id": "user-1"}])
    sync = make_sync(local_store, remote_store)

    pushed = await sync.push([existing, message("m1", 1)], "user-1")

    assert pushed == 1
    assert remote_ids(remote_store) == ["m0", "m1"]


@pytest.mark.asyncio
async def test_push_aborts_when_remote_ids_unknown(local_store, offline_remote):
    """Test nothing is inserted when the remote identities cannot be read."""
    pushed = await make_sync(local_store, offline_remote).push([message("m0", 0)], "user-1")

    assert pushed == 0
    assert "insert" not in offline_remote.calls


@pytest.mark.asyncio
async def test_append_survives_remote_failure(local_store, remote_store):
    """Test a failed remote insert keeps the local append."""
    sync = make_sync(local_store, remote_store)
    await sync.load("user-1")
    remote_store.failing.add("insert")

    await sync.append(message("late", 60, "still here"), "user-1")

    assert sync.records[-1].id == "late"
    cached = json.loads(await local_store.get(CACHE_KEY))
    assert cached[-1]["id"] == "late"
    assert "late" not in remote_ids(remote_store)


@pytest.mark.asyncio
async def test_clear_resets_both_stores(local_store, remote_store):
    """Test clear leaves exactly the seed locally and remotely."""
    sync = make_sync(local_store, remote_store)
    await sync.load("user-1")
    for i in range(3):
        await sync.append(message(f"m{i}", i), "user-1")

    records = await sync.clear("user-1")

    assert len(records) == 1
    assert records[0].sender == Sender.ASSISTANT
    assert remote_ids(remote_store) == [records[0].id]


@pytest.mark.asyncio
async def test_clear_heals_after_failed_reinsert(local_store, remote_store):
    """Test a clear whose reinsert failed is repaired by the next load."""
    sync = make_sync(local_store, remote_store)
    await sync.load("user-1")
    remote_store.failing.add("insert")
    records = await sync.clear("user-1")
    assert remote_ids(remote_store) == []

    remote_store.failing.clear()
    await make_sync(local_store, remote_store).load("user-1")

    assert remote_ids(remote_store) == [records[0].id]


@pytest.mark.asyncio
async def test_replace_and_remove(local_store, remote_store):
    """Test single-record edits reach both stores."""
    sync = make_sync(local_store, remote_store)
    await sync.load("user-1")
    await sync.append(message("m1", 1, "typo"), "user-1")

    updated = await sync.replace("m1", {"body": "fixed"}, "user-1")
    assert updated.body == "fixed"
    assert [r["body"] for r in remote_store.rows("messages") if r["id"] == "m1"] == ["fixed"]

    assert await sync.remove("m1", "user-1") is True
    assert "m1" not in remote_ids(remote_store)
    assert await sync.remove("m1", "user-1") is False
    assert await sync.replace("missing", {"body": "x"}) is None


@pytest.mark.asyncio
async def test_first_write_keeps_existing_cache(local_store):
    """Test writing before load extends the cached collection."""
    await local_store.set(CACHE_KEY, cache_payload(message("a", 0), message("b", 1)))
    sync = make_sync(local_store)

    await sync.append(message("c", 2), None)

    assert [r.id for r in sync.records] == ["a", "b", "c"]
    assert [m["id"] for m in json.loads(await local_store.get(CACHE_KEY))] == ["a", "b", "c"]
    assert await make_sync(local_store).remove("a") is True
    assert [m["id"] for m in json.loads(await local_store.get(CACHE_KEY))] == ["b", "c"]


@pytest.mark.asyncio
async def test_malformed_remote_rows_are_not_pushed_again(local_store, remote_store):
    """Test ids held by unparseable remote rows count as already present."""
    await remote_store.insert("messages", [{"id": "m0", "user_id": "user-1", "sender": "robot"}])
    await local_store.set(CACHE_KEY, cache_payload(message("m0", 0), message("m1", 1)))

    records = await make_sync(local_store, remote_store).load("user-1")

    assert [r.id for r in records] == ["m0", "m1"]
    assert remote_ids(remote_store) == ["m0", "m1"]


@pytest.mark.asyncio
async def test_naive_cached_timestamps_are_read_as_utc(local_store):
    """Test a cached timestamp without an offset sorts against aware ones."""
    aware = message("a", 10)
    naive = {"id": "b", "sender": "user", "body": "old", "timestamp": "2026-03-01T09:05:00"}
    await local_store.set(
        CACHE_KEY, json.dumps([aware.model_dump(mode="json"), naive])
    )

    records = await make_sync(local_store).load()

    assert [r.id for r in records] == ["b", "a"]
    assert records[0].timestamp == BASE_TIME + timedelta(minutes=5)
