from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import ORJSONResponse, RedirectResponse

from ..broker import SessionBroker
from ..context import ClientContext, ContextCodec
from ..schemas import CallbackAck, LoginStarted, StatusResponse
from ..session_store import SetResult
from ..settings import Settings

router = APIRouter(prefix="/auth/wallet", tags=["wallet-auth"])
log = logging.getLogger("walletauth.auth")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _broker(request: Request) -> SessionBroker:
    return request.app.state.broker


def _codec(request: Request) -> ContextCodec:
    return request.app.state.context_codec


def _load_context(request: Request) -> Optional[ClientContext]:
    raw = request.cookies.get(_settings(request).CONTEXT_COOKIE_NAME)
    return _codec(request).loads(raw)


def _set_context_cookie(request: Request, resp: Response, ctx: ClientContext) -> None:
    s = _settings(request)
    resp.set_cookie(
        key=s.CONTEXT_COOKIE_NAME,
        value=_codec(request).dumps(ctx),
        httponly=True,
        secure=s.COOKIE_SECURE,
        samesite=s.COOKIE_SAMESITE,
        domain=s.COOKIE_DOMAIN,
        max_age=s.STORE_TTL_SECONDS,
        path="/",
    )


def _clear_context_cookie(request: Request, resp: Response) -> None:
    s = _settings(request)
    resp.delete_cookie(
        key=s.CONTEXT_COOKIE_NAME,
        domain=s.COOKIE_DOMAIN,
        path="/",
    )


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None


async def _read_redeem_params(request: Request) -> tuple[str, str]:
    ctype = request.headers.get("content-type", "")
    if ctype.startswith("application/json"):
        body = await _read_json(request)
        body = body if isinstance(body, dict) else {}
    else:
        body = await request.form()
    return str(body.get("session_id") or ""), str(body.get("state") or "")


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------

@router.post("/login", response_model=LoginStarted)
async def login(request: Request, want_url: str = "/") -> Response:
    s = _settings(request)
    started = await _broker(request).start(want_url)

    body = LoginStarted(
        session_id=started.session.session_id,
        state=started.session.anti_replay_token,
        request_uri=started.request_uri,
        created_at=started.session.created_at,
        poll_interval_ms=int(s.POLL_INTERVAL_SECONDS * 1000),
        max_attempts=s.POLL_MAX_ATTEMPTS,
    )
    resp = ORJSONResponse(body.model_dump())
    _set_context_cookie(request, resp, started.context)
    return resp


# ---------------------------------------------------------------------
# Status poll (browser)
# ---------------------------------------------------------------------

@router.get("/status", response_model=StatusResponse)
async def status(request: Request, session_id: str = "") -> Response:
    ctx = _load_context(request)
    result = await _broker(request).poll(session_id, ctx)

    if result.status == "error":
        log.info("[status] rejected sid=%s reason=%s", session_id[:64], result.message)

    resp = ORJSONResponse(StatusResponse(status=result.status, message=result.message).model_dump())
    if result.context is not None and result.context is not ctx:
        _set_context_cookie(request, resp, result.context)
    return resp


# ---------------------------------------------------------------------
# Verifier webhook (public)
# ---------------------------------------------------------------------

@router.post("/callback", response_model=CallbackAck)
async def callback(request: Request, session_id: str = "") -> Response:
    body = await _read_json(request)
    outcome = await _broker(request).ingest_callback(session_id, body)

    if outcome is SetResult.ALREADY_PRESENT:
        return ORJSONResponse(CallbackAck(note="Already processed").model_dump(exclude_none=True))
    return ORJSONResponse(CallbackAck().model_dump(exclude_none=True))


# ---------------------------------------------------------------------
# Redeem (browser, once)
# ---------------------------------------------------------------------

@router.post("/complete")
async def complete(request: Request) -> Response:
    session_id, state = await _read_redeem_params(request)
    ctx = _load_context(request)

    redemption = await _broker(request).redeem(session_id, state, ctx)

    resp = RedirectResponse(redemption.redirect_url, status_code=303)
    _clear_context_cookie(request, resp)
    return resp
