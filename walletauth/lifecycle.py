from __future__ import annotations

import re
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .session_store import CallbackRecord


class SessionState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLAIMED = "claimed"
    EXPIRED = "expired"


@dataclass
class Session:
    """What exists of a session at creation. Its later state lives in the store and the client context."""
    session_id: str
    anti_replay_token: str
    created_at: int
    want_url: str


class SessionLifecycle:
    """
    Mints session ids and anti-replay tokens and validates ids coming back in.

    Ids look like ``{prefix}-{16 hex}-{unix timestamp}``. The fixed shape is
    what keeps client-controlled input out of storage keys, so every id that
    crosses an HTTP boundary goes through ``validate_shape`` first.
    """

    def __init__(self, prefix: str = "wallet", *, clock=time.time) -> None:
        self.prefix = prefix
        self._clock = clock
        self._shape = re.compile(rf"{re.escape(prefix)}-[a-f0-9]{{16}}-[0-9]+")

    def create_session(self, want_url: str = "/") -> Session:
        now = int(self._clock())
        session_id = f"{self.prefix}-{secrets.token_hex(8)}-{now}"
        return Session(
            session_id=session_id,
            anti_replay_token=secrets.token_hex(16),
            created_at=now,
            want_url=want_url or "/",
        )

    def validate_shape(self, session_id: object) -> bool:
        if not isinstance(session_id, str):
            return False
        return self._shape.fullmatch(session_id) is not None

    def validate_freshness(self, session_id: str, max_age: int) -> bool:
        ts = session_timestamp(session_id)
        if ts is None:
            return False
        return abs(int(self._clock()) - ts) <= max_age

    def state_of(self, session_id: str, record: Optional[CallbackRecord], ttl: int) -> SessionState:
        """Server-side state of a session from its store entry and the age in its id."""
        if record is not None:
            return SessionState.SUCCEEDED if record.succeeded else SessionState.FAILED
        if not self.validate_freshness(session_id, ttl):
            return SessionState.EXPIRED
        return SessionState.PENDING


def session_timestamp(session_id: str) -> Optional[int]:
    tail = session_id.rsplit("-", 1)[-1]
    if not tail.isascii() or not tail.isdigit():
        return None
    return int(tail)
