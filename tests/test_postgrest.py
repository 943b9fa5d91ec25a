"""Test suite for the PostgREST row store."""

import json

import httpx
import pytest

from fitness_companion.repositories.base import RemoteStoreError
from fitness_companion.repositories.postgrest import PostgrestRowStore
from fitness_companion.services.synchronizer import DualStoreSynchronizer
from fitness_companion.domain.models import Message


def make_store(handler, access_token=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PostgrestRowStore("https://project.supabase.co/", "anon-key", access_token, client=client)


@pytest.mark.asyncio
async def test_select_builds_postgrest_query():
    """Test filters, ordering and auth headers on a select."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "1", "user_id": "u1"}])

    store = make_store(handler, access_token="jwt")
    rows = await store.select("messages", {"user_id": "u1"}, order_by="timestamp")
    await store.aclose()

    assert rows == [{"id": "1", "user_id": "u1"}]
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/messages"
    assert request.url.params["user_id"] == "eq.u1"
    assert request.url.params["order"] == "timestamp.asc"
    assert request.url.params["select"] == "*"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer jwt"


@pytest.mark.asyncio
async def test_insert_update_delete_requests():
    """Test write verbs, bodies and the representation preference."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content) if request.content else None
        if isinstance(body, dict):
            body = [body]
        return httpx.Response(201 if request.method == "POST" else 200, json=body or [])

    store = make_store(handler)
    inserted = await store.insert("mood_entries", [{"id": "m1", "calendar_date": "2026-10-19"}])
    updated = await store.update("mood_entries", {"mood_label": "Bad"}, {"id": "m1", "user_id": "u1"})
    deleted = await store.delete("mood_entries", {"user_id": "u1"})
    await store.aclose()

    assert inserted == [{"id": "m1", "calendar_date": "2026-10-19"}]
    assert updated == [{"mood_label": "Bad"}]
    assert deleted == []
    assert [r.method for r in seen] == ["POST", "PATCH", "DELETE"]
    assert all(r.headers["prefer"] == "return=representation" for r in seen)
    assert seen[1].url.params["id"] == "eq.m1"
    assert seen[2].url.params["user_id"] == "eq.u1"


@pytest.mark.asyncio
async def test_empty_insert_makes_no_request():
    """Test inserting nothing is a no-op."""
    def handler(request):
        raise AssertionError("no request expected")

    store = make_store(handler)
    assert await store.insert("messages", []) == []
    await store.aclose()


@pytest.mark.asyncio
async def test_unfiltered_writes_are_refused():
    """Test updates and deletes require filters."""
    store = make_store(lambda request: httpx.Response(200, json=[]))
    with pytest.raises(ValueError):
        await store.update("messages", {"body": "x"}, {})
    with pytest.raises(ValueError):
        await store.delete("messages", {})
    await store.aclose()


@pytest.mark.asyncio
async def test_http_errors_become_remote_store_errors():
    """Test status and transport failures are wrapped."""
    rejecting = make_store(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(RemoteStoreError):
        await rejecting.select("messages", {"user_id": "u1"})
    await rejecting.aclose()

    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    offline = make_store(unreachable)
    with pytest.raises(RemoteStoreError):
        await offline.insert("messages", [{"id": "1"}])
    await offline.aclose()


@pytest.mark.asyncio
async def test_synchronizer_degrades_on_http_failure(local_store):
    """Test a broken backend still yields the seeded collection."""
    store = make_store(lambda request: httpx.Response(503, text="maintenance"))
    sync = DualStoreSynchronizer(
        local_store,
        store,
        table="messages",
        cache_key="trainerConversations",
        record_type=Message,
        order_by="timestamp",
        seed=lambda: [Message.greeting()],
    )

    records = await sync.load("u1")
    await store.aclose()

    assert len(records) == 1
    assert await local_store.get("trainerConversations") is not None
