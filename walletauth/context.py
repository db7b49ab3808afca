from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from .lifecycle import Session, SessionState


@dataclass
class ClientContext:
    """
    What the browser side of a login attempt carries between requests.

    The broker never keeps this itself; callers hand it in on every poll and
    redeem and persist whatever comes back.
    """
    session_id: str
    anti_replay_token: str
    want_url: str = "/"
    created_at: int = 0
    state: SessionState = SessionState.PENDING
    status: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_session(cls, session: Session) -> "ClientContext":
        return cls(
            session_id=session.session_id,
            anti_replay_token=session.anti_replay_token,
            want_url=session.want_url,
            created_at=session.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientContext":
        return cls(
            session_id=str(data["session_id"]),
            anti_replay_token=str(data["anti_replay_token"]),
            want_url=data.get("want_url") or "/",
            created_at=int(data.get("created_at") or 0),
            state=SessionState(data.get("state") or SessionState.PENDING.value),
            status=data.get("status"),
            attributes=dict(data.get("attributes") or {}),
        )


class ContextCodec:
    """Signs client contexts into cookie values and back."""

    def __init__(self, secret: str, *, max_age: int) -> None:
        self._serializer = URLSafeTimedSerializer(secret, salt="walletauth-context")
        self.max_age = max_age

    def dumps(self, ctx: ClientContext) -> str:
        return self._serializer.dumps(ctx.to_dict())

    def loads(self, raw: Optional[str]) -> Optional[ClientContext]:
        if not raw:
            return None
        try:
            data = self._serializer.loads(raw, max_age=self.max_age)
            return ClientContext.from_dict(data)
        except BadSignature:
            return None
        except (KeyError, TypeError, ValueError):
            return None
