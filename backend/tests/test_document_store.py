import asyncio
import json
import time

import fakeredis
import pytest
from redis.exceptions import ConnectionError

from app.common.document_store import (
    SERVER_TIMESTAMP,
    apply_query,
    paths_overlap,
    split_path,
)
from app.common.exceptions import StoreUnavailable
from app.common.redis_store import RedisDocumentStore, children_key, doc_key


def test_split_path_rejects_empty_segments():
    assert split_path("/users/alice/") == ("users", "alice")
    with pytest.raises(ValueError):
        split_path("users//alice")
    with pytest.raises(ValueError):
        split_path("")


def test_paths_overlap_covers_ancestors_only():
    assert paths_overlap("high_fives", "high_fives/abc")
    assert paths_overlap("high_fives/abc", "high_fives")
    assert not paths_overlap("high_five_sessions/a_b", "high_five_sessions/c_d")


def test_apply_query_filters_and_orders():
    children = {
        "x": {"n": 3, "s": "b"},
        "y": {"n": 1, "s": "a"},
        "z": {"n": 2, "s": "a"},
        "w": {"s": "c"},
    }
    assert [d["n"] for d in apply_query(children, order_by="n", start_at=2)] == [2, 3]
    assert [d["n"] for d in apply_query(children, order_by="n", end_at=2)] == [1, 2]
    assert [d["n"] for d in apply_query(children, order_by="s", equal_to="a")] == [1, 2]
    assert len(apply_query(children, order_by="n", limit=1)) == 1
    assert apply_query(None) == []


async def snapshot_where(sub, predicate, timeout: float = 1.0):
    async def scan():
        async for snapshot in sub:
            if predicate(snapshot):
                return snapshot

    return await asyncio.wait_for(scan(), timeout)


async def test_server_timestamp_resolved_at_write(store, clock):
    clock.set(4242)
    saved = await store.set("users/alice", {"id": "alice", "lastHeartbeat": SERVER_TIMESTAMP})
    assert saved["lastHeartbeat"] == 4242
    assert (await store.get("users/alice"))["lastHeartbeat"] == 4242


async def test_redis_server_timestamp_comes_from_time(redis_store):
    before = int(time.time() * 1000)
    saved = await redis_store.set("users/alice", {"id": "alice", "lastHeartbeat": SERVER_TIMESTAMP})
    merged = await redis_store.update("users/alice", {"lastUpdated": SERVER_TIMESTAMP})
    after = int(time.time() * 1000)

    assert before - 1000 <= saved["lastHeartbeat"] <= after + 1000
    assert merged["lastUpdated"] >= saved["lastHeartbeat"]
    assert (await redis_store.get("users/alice"))["lastHeartbeat"] == saved["lastHeartbeat"]
    assert before - 1000 <= await redis_store.now() <= after + 1000


async def test_update_merges_fields(any_store):
    await any_store.set("users/alice", {"id": "alice", "username": "Alice"})
    merged = await any_store.update("users/alice", {"fcmToken": "tok"})
    assert merged == {"id": "alice", "username": "Alice", "fcmToken": "tok"}
    assert await any_store.get("users/alice") == merged


async def test_collection_read_and_delete_prunes_parent(any_store):
    await any_store.set("notifications/bob/1", {"type": "high_five_request"})
    await any_store.set("notifications/bob/2", {"type": "high_five_ready"})
    assert set((await any_store.get("notifications/bob")).keys()) == {"1", "2"}

    await any_store.delete("notifications/bob/1")
    await any_store.delete("notifications/bob/2")
    assert await any_store.get("notifications/bob") is None
    assert await any_store.get("notifications") is None


async def test_delete_removes_whole_subtree(any_store):
    await any_store.set("notifications/bob/1", {"type": "high_five_request"})
    await any_store.set("notifications/carol/1", {"type": "high_five_ready"})

    await any_store.delete("notifications/bob")
    assert await any_store.get("notifications/bob/1") is None
    assert list((await any_store.get("notifications")).keys()) == ["carol"]


async def test_query_over_collection(any_store):
    await any_store.set("high_fives/h1", {"id": "h1", "status": "pending", "createdAt": 30})
    await any_store.set("high_fives/h2", {"id": "h2", "status": "completed", "createdAt": 10})
    await any_store.set("high_fives/h3", {"id": "h3", "status": "pending", "createdAt": 20})

    pending = await any_store.query("high_fives", order_by="status", equal_to="pending")
    assert {d["id"] for d in pending} == {"h1", "h3"}

    oldest = await any_store.query("high_fives", order_by="createdAt", end_at=20)
    assert [d["id"] for d in oldest] == ["h2", "h3"]
    assert await any_store.query("sessions_nobody_wrote") == []


def match_pending(current):
    if current is None or current["status"] != "pending":
        return None
    current["status"] = "matched"
    return current


async def test_transaction_is_conditional(any_store):
    await any_store.set("high_fives/h1", {"id": "h1", "status": "pending"})

    committed, doc = await any_store.transaction("high_fives/h1", match_pending)
    assert committed and doc["status"] == "matched"

    committed, doc = await any_store.transaction("high_fives/h1", match_pending)
    assert not committed
    assert doc["status"] == "matched"
    assert (await any_store.get("high_fives/h1"))["status"] == "matched"


async def test_transaction_on_missing_document(any_store):
    committed, doc = await any_store.transaction("high_fives/nope", match_pending)
    assert not committed
    assert doc is None
    assert await any_store.get("high_fives") is None


async def test_redis_transaction_rereads_after_concurrent_write(redis_store, redis_server):
    await redis_store.set("high_fives/h1", {"id": "h1", "status": "pending"})
    other_writer = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    seen = []

    def match_after_timer_fired(current):
        seen.append(current["status"])
        if len(seen) == 1:
            # the expiry timer commits between our read and our write
            other_writer.set(doc_key("high_fives/h1"), json.dumps({"id": "h1", "status": "expired"}))
        return match_pending(current)

    committed, doc = await redis_store.transaction("high_fives/h1", match_after_timer_fired)

    assert seen == ["pending", "expired"]
    assert not committed
    assert doc["status"] == "expired"
    assert (await redis_store.get("high_fives/h1"))["status"] == "expired"


async def test_subscription_delivers_snapshots_until_cancelled(store):
    sub = await store.subscribe("high_five_sessions/alice_bob")
    assert await sub.__anext__() is None

    await store.set("high_five_sessions/alice_bob", {"id": "alice_bob", "readyA": False})
    await store.set("high_five_sessions/carol_dave", {"id": "carol_dave"})
    await store.update("high_five_sessions/alice_bob", {"readyA": True})

    assert (await sub.__anext__())["readyA"] is False
    assert (await sub.__anext__())["readyA"] is True

    await sub.cancel()
    assert store.subscription_count == 0
    await store.update("high_five_sessions/alice_bob", {"readyB": True})
    with pytest.raises(StopAsyncIteration):
        await sub.__anext__()


async def test_subscription_follows_path_on_both_stores(any_store):
    sub = await any_store.subscribe("high_five_sessions/alice_bob")
    assert await asyncio.wait_for(sub.__anext__(), 1.0) is None

    await any_store.set("high_five_sessions/carol_dave", {"id": "carol_dave"})
    await any_store.set("high_five_sessions/alice_bob", {"id": "alice_bob", "readyA": False})
    await any_store.update("high_five_sessions/alice_bob", {"readyA": True})

    snapshot = await snapshot_where(sub, lambda s: s and s.get("readyA") is True)
    assert snapshot["id"] == "alice_bob"

    await sub.cancel()
    await any_store.update("high_five_sessions/alice_bob", {"readyB": True})
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(sub.__anext__(), 1.0)


async def test_collection_subscription_sees_new_children(any_store):
    async with await any_store.subscribe("high_fives") as sub:
        assert await asyncio.wait_for(sub.__anext__(), 1.0) is None
        await any_store.set("high_fives/h1", {"id": "h1", "status": "pending"})
        snapshot = await snapshot_where(sub, lambda s: s is not None)
        assert snapshot == {"h1": {"id": "h1", "status": "pending"}}
    assert sub.cancelled


async def test_subscription_as_context_manager(store):
    async with await store.subscribe("high_fives") as sub:
        assert store.subscription_count == 1
        assert sub.path == "high_fives"
    assert store.subscription_count == 0


class _DownRedis:
    def __getattr__(self, name):
        async def unavailable(*args, **kwargs):
            raise ConnectionError("connection refused")

        return unavailable


async def test_redis_store_maps_connection_errors():
    store = RedisDocumentStore(client_factory=_DownRedis)
    with pytest.raises(StoreUnavailable) as exc:
        await store.get("users/alice")
    assert exc.value.code == "STORE_UNAVAILABLE"
    with pytest.raises(StoreUnavailable):
        await store.now()


def test_redis_key_layout():
    assert doc_key("/high_five_sessions/alice_bob/") == "hf:doc:high_five_sessions/alice_bob"
    assert children_key("high_fives") == "hf:children:high_fives"
