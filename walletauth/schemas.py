from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class LoginStarted(BaseModel):
    """
    Everything the browser needs to show the QR code and start polling.
    `state` is the anti-replay token; it only ever travels over this channel.
    """
    session_id: str
    state: str
    request_uri: str
    created_at: int
    poll_interval_ms: int
    max_attempts: int


class StatusResponse(BaseModel):
    status: str                  # pending | success | failed | error
    message: str = ""


class CallbackAck(BaseModel):
    success: bool = True
    note: Optional[str] = None
