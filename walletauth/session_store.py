from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from pymongo.errors import DuplicateKeyError

log = logging.getLogger("walletauth.store")


@dataclass
class CallbackRecord:
    status: str
    result: Dict[str, str] = field(default_factory=dict)
    timestamp: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == "SUCCESS"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallbackRecord":
        return cls(
            status=data.get("status") or "FAILED",
            result=dict(data.get("result") or {}),
            timestamp=int(data.get("timestamp") or 0),
        )


class SetResult(str, Enum):
    COMMITTED = "committed"
    ALREADY_PRESENT = "already_present"


class SessionStore(Protocol):
    async def get(self, sid: str) -> Optional[CallbackRecord]: ...

    async def set_if_absent(self, sid: str, record: CallbackRecord) -> SetResult: ...

    async def delete(self, sid: str) -> bool: ...


@dataclass
class _Entry:
    record: CallbackRecord
    expires_at: float


class InMemorySessionStore:
    """
    Simple store for dev/single-instance.
    Use MongoSessionStore when several workers share callbacks.

    Reads expire their own key lazily. Every write also sweeps the whole
    dict once ``sweep_interval`` seconds have passed, so sessions nobody
    comes back for are dropped too.
    """
    def __init__(self, ttl_seconds: int = 3600, *, sweep_interval: float = 60.0, clock=time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._store: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def entry_count(self) -> int:
        return len(self._store)

    def _live(self, sid: str) -> Optional[_Entry]:
        entry = self._store.get(sid)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._store.pop(sid, None)
            return None
        return entry

    def _sweep(self, now: float) -> int:
        dead = [k for k, e in self._store.items() if e.expires_at <= now]
        for k in dead:
            self._store.pop(k, None)
        self._last_sweep = now
        if dead:
            log.debug("swept expired entries=%d remaining=%d", len(dead), len(self._store))
        return len(dead)

    async def get(self, sid: str) -> Optional[CallbackRecord]:
        with self._lock:
            entry = self._live(sid)
            return entry.record if entry else None

    async def set_if_absent(self, sid: str, record: CallbackRecord) -> SetResult:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)
            if self._live(sid) is not None:
                return SetResult.ALREADY_PRESENT
            self._store[sid] = _Entry(record=record, expires_at=now + self.ttl_seconds)
            return SetResult.COMMITTED

    async def delete(self, sid: str) -> bool:
        with self._lock:
            entry = self._live(sid)
            self._store.pop(sid, None)
            return entry is not None

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._sweep(now)


class MongoSessionStore:
    """
    Callback results in a MongoDB collection keyed by session id.

    The unique ``_id`` index turns ``insert_one`` into the compare-and-set:
    the first callback inserts, every later one hits a duplicate key.
    Mongo's TTL monitor reaps documents lazily, so reads re-check ``expires_at``.
    """
    def __init__(self, collection, ttl_seconds: int = 3600, *, clock=time.time) -> None:
        self._col = collection
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def ensure_indexes(self) -> None:
        await self._col.create_index("expires_at", expireAfterSeconds=0)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    async def get(self, sid: str) -> Optional[CallbackRecord]:
        doc = await self._col.find_one({"_id": sid, "expires_at": {"$gt": self._now()}})
        return CallbackRecord.from_dict(doc) if doc else None

    async def set_if_absent(self, sid: str, record: CallbackRecord) -> SetResult:
        now = self._clock()
        doc = {
            "_id": sid,
            **record.to_dict(),
            "expires_at": datetime.fromtimestamp(now + self.ttl_seconds, tz=timezone.utc),
        }
        try:
            await self._col.insert_one(doc)
        except DuplicateKeyError:
            log.debug("set_if_absent duplicate sid=%s", sid)
            return SetResult.ALREADY_PRESENT
        return SetResult.COMMITTED

    async def delete(self, sid: str) -> bool:
        res = await self._col.delete_one({"_id": sid, "expires_at": {"$gt": self._now()}})
        return res.deleted_count == 1
