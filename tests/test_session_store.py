import asyncio
import threading
from functools import partial

import anyio
import pytest
from pymongo.errors import DuplicateKeyError

from walletauth.session_store import (
    CallbackRecord,
    InMemorySessionStore,
    MongoSessionStore,
    SetResult,
)

from .conftest import FakeClock

pytestmark = pytest.mark.anyio

SID = "moodle-0123456789abcdef-1700000000"


def _record(status="SUCCESS", **result):
    return CallbackRecord(status=status, result=result, timestamp=1)


async def test_first_writer_wins(store):
    assert await store.set_if_absent(SID, _record(studentId="S1")) is SetResult.COMMITTED
    assert await store.set_if_absent(SID, _record("FAILED")) is SetResult.ALREADY_PRESENT

    rec = await store.get(SID)
    assert rec.status == "SUCCESS"
    assert rec.result == {"studentId": "S1"}


async def test_threaded_writers_commit_once(store):
    writers = 25
    barrier = threading.Barrier(writers, timeout=5)
    outcomes = []

    def write(i):
        barrier.wait()
        outcomes.append(asyncio.run(store.set_if_absent(SID, _record(studentId=f"S{i}"))))

    limiter = anyio.CapacityLimiter(writers)
    async with anyio.create_task_group() as tg:
        for i in range(writers):
            tg.start_soon(partial(anyio.to_thread.run_sync, write, i, limiter=limiter))

    assert outcomes.count(SetResult.COMMITTED) == 1
    assert outcomes.count(SetResult.ALREADY_PRESENT) == writers - 1


async def test_entries_expire_after_ttl():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_seconds=3600, clock=clock)
    await store.set_if_absent(SID, _record())

    clock.advance(3599)
    assert await store.get(SID) is not None

    clock.advance(1)
    assert await store.get(SID) is None
    # an expired key behaves as if it never existed
    assert await store.set_if_absent(SID, _record("FAILED")) is SetResult.COMMITTED


async def test_delete_reports_whether_it_removed_something(store):
    assert await store.delete(SID) is False
    await store.set_if_absent(SID, _record())
    assert await store.delete(SID) is True
    assert await store.delete(SID) is False
    assert await store.get(SID) is None


async def test_purge_expired():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_seconds=10, clock=clock)
    await store.set_if_absent("a", _record())
    clock.advance(5)
    await store.set_if_absent("b", _record())
    clock.advance(6)

    assert store.purge_expired() == 1
    assert await store.get("b") is not None


async def test_writes_sweep_abandoned_entries():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_seconds=3600, sweep_interval=60, clock=clock)
    for i in range(200):
        await store.set_if_absent(f"abandoned-{i}", _record())
    assert store.entry_count() == 200

    clock.advance(3600)
    # none of the abandoned keys is read again
    await store.set_if_absent("fresh", _record())

    assert store.entry_count() == 1
    assert await store.get("fresh") is not None


async def test_keys_with_structural_characters(store):
    key = "moodle-0123456789abcdef-1700000000/../$.x"
    await store.set_if_absent(key, _record())
    assert await store.get(key) is not None


# ---------------------------------------------------------------------
# Mongo backend against a fake collection
# ---------------------------------------------------------------------

class _DeleteResult:
    def __init__(self, n):
        self.deleted_count = n


class FakeCollection:
    """Just enough of motor's collection API for the queries the store issues."""

    def __init__(self):
        self.docs = {}
        self.indexes = []

    def _match(self, doc, query):
        if doc is None:
            return False
        exp = query.get("expires_at", {}).get("$gt")
        return exp is None or doc["expires_at"] > exp

    async def create_index(self, key, **kwargs):
        self.indexes.append((key, kwargs))

    async def insert_one(self, doc):
        if doc["_id"] in self.docs:
            raise DuplicateKeyError("E11000 duplicate key")
        self.docs[doc["_id"]] = doc

    async def find_one(self, query):
        doc = self.docs.get(query["_id"])
        return doc if self._match(doc, query) else None

    async def delete_one(self, query):
        doc = self.docs.get(query["_id"])
        if self._match(doc, query):
            del self.docs[query["_id"]]
            return _DeleteResult(1)
        return _DeleteResult(0)


async def test_mongo_store_duplicate_key_is_already_present():
    col = FakeCollection()
    store = MongoSessionStore(col, ttl_seconds=3600, clock=FakeClock())

    assert await store.set_if_absent(SID, _record(studentId="S1")) is SetResult.COMMITTED
    assert await store.set_if_absent(SID, _record("FAILED")) is SetResult.ALREADY_PRESENT

    rec = await store.get(SID)
    assert rec.status == "SUCCESS"
    assert rec.result == {"studentId": "S1"}

    assert await store.delete(SID) is True
    assert await store.get(SID) is None


async def test_mongo_store_hides_expired_documents():
    clock = FakeClock()
    col = FakeCollection()
    store = MongoSessionStore(col, ttl_seconds=60, clock=clock)
    await store.set_if_absent(SID, _record())

    clock.advance(61)
    assert await store.get(SID) is None
    assert await store.delete(SID) is False


async def test_mongo_store_creates_ttl_index():
    col = FakeCollection()
    await MongoSessionStore(col).ensure_indexes()
    assert col.indexes == [("expires_at", {"expireAfterSeconds": 0})]
