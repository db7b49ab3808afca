from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from .context import ClientContext
from .core.identity_client import IdentityOutcome, IdentityResolver
from .core.verifier_client import VerifierClient
from .errors import (
    BadPayload,
    Expired,
    InvalidFormat,
    InvalidState,
    MissingSessionId,
    NoUserIdentifier,
    VerificationFailed,
)
from .lifecycle import Session, SessionLifecycle, SessionState
from .redirects import safe_redirect
from .sanitize import clean_alpha, clean_result
from .session_store import CallbackRecord, SessionStore, SetResult
from .settings import Settings

log = logging.getLogger("walletauth.broker")

TERMINAL_STATUSES = ("SUCCESS", "FAILED")


@dataclass
class StartedSession:
    session: Session
    context: ClientContext
    request_uri: str


@dataclass
class PollResult:
    status: str
    context: Optional[ClientContext]
    message: str = ""


@dataclass
class Redemption:
    identity: IdentityOutcome
    redirect_url: str
    attributes: Dict[str, str]


class SessionBroker:
    """
    Owns the create / poll / callback / redeem sequence for wallet logins.

    The store holds the verifier's terminal result, the client context holds
    the anti-replay token and whatever the client has observed. Only the
    callback writes to the store and only redemption deletes from it.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        store: SessionStore,
        verifier: VerifierClient,
        identity: IdentityResolver,
        clock=time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.verifier = verifier
        self.identity = identity
        self._clock = clock
        self.lifecycle = SessionLifecycle(settings.SESSION_ID_PREFIX, clock=clock)

    # -----------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------

    async def start(self, want_url: str = "/") -> StartedSession:
        session = self.lifecycle.create_session(want_url)
        request_uri = await self.verifier.open_authorization_request(session.session_id)
        log.info("session created sid=%s want_url=%s", session.session_id, session.want_url)
        return StartedSession(
            session=session,
            context=ClientContext.for_session(session),
            request_uri=request_uri,
        )

    def check_session_id(self, session_id: Optional[str]) -> str:
        sid = (session_id or "").strip()
        if not sid:
            raise MissingSessionId()
        if not self.lifecycle.validate_shape(sid):
            raise InvalidFormat()
        return sid

    # -----------------------------------------------------------------
    # Callback (verifier -> us)
    # -----------------------------------------------------------------

    async def ingest_callback(self, session_id: Optional[str], body: Any) -> SetResult:
        if not isinstance(body, dict) or body.get("status") is None:
            raise BadPayload()

        status = clean_alpha(body["status"]).upper()
        if status not in TERMINAL_STATUSES:
            raise BadPayload("Invalid payload: unknown status")
        result = clean_result(body.get("result"))

        sid = self.check_session_id(session_id)
        if not self.lifecycle.validate_freshness(sid, self.settings.CALLBACK_MAX_AGE_SECONDS):
            raise Expired()

        record = CallbackRecord(status=status, result=result, timestamp=int(self._clock()))
        outcome = await self.store.set_if_absent(sid, record)

        if outcome is SetResult.ALREADY_PRESENT:
            log.info("callback duplicate sid=%s", sid)
        else:
            log.info("callback committed sid=%s status=%s fields=%d", sid, status, len(result))
        return outcome

    # -----------------------------------------------------------------
    # Poll (browser -> us)
    # -----------------------------------------------------------------

    async def poll(self, session_id: Optional[str], ctx: Optional[ClientContext]) -> PollResult:
        try:
            sid = self.check_session_id(session_id)
        except (MissingSessionId, InvalidFormat) as e:
            return PollResult(status="error", context=ctx, message=e.message)

        if ctx is None or ctx.session_id != sid:
            return PollResult(status="error", context=ctx, message="Session mismatch")

        record = await self.store.get(sid)
        state = self.lifecycle.state_of(sid, record, self.settings.STORE_TTL_SECONDS)

        if state is SessionState.PENDING:
            return PollResult(status="pending", context=ctx)
        if state is SessionState.EXPIRED:
            # same answer as "no result yet"; only the context remembers why
            updated = ctx if ctx.state is SessionState.EXPIRED else replace(ctx, state=SessionState.EXPIRED)
            return PollResult(status="pending", context=updated)

        # first read of a terminal result: succeeded -> claimed, failed stays failed
        if state is SessionState.SUCCEEDED:
            attributes = dict(record.result) if self.settings.RESULT_CACHING == "context" else {}
            updated = replace(ctx, state=SessionState.CLAIMED, status=record.status, attributes=attributes)
            return PollResult(status="success", context=updated)

        updated = replace(ctx, state=SessionState.FAILED, status=record.status, attributes={})
        return PollResult(status="failed", context=updated)

    # -----------------------------------------------------------------
    # Redeem (browser -> us, once)
    # -----------------------------------------------------------------

    def _check_binding(self, session_id: Optional[str], token: Optional[str], ctx: Optional[ClientContext]) -> str:
        sid = (session_id or "").strip()
        if (
            ctx is None
            or not sid
            or not token
            or not hmac.compare_digest(ctx.session_id.encode(), sid.encode())
            or not hmac.compare_digest(ctx.anti_replay_token.encode(), token.encode())
        ):
            raise InvalidState()
        if not self.lifecycle.validate_shape(sid):
            raise InvalidState()
        return sid

    async def _observed_attributes(self, sid: str, ctx: ClientContext) -> Dict[str, str]:
        if ctx.status != "SUCCESS":
            raise VerificationFailed()

        if self.settings.RESULT_CACHING == "context":
            attributes = ctx.attributes
        else:
            record = await self.store.get(sid)
            if record is None:
                # already redeemed, or expired with it
                raise InvalidState()
            attributes = record.result if record.succeeded else {}

        if not attributes:
            raise VerificationFailed()
        return dict(attributes)

    def _display_name(self, attributes: Dict[str, str]) -> Tuple[str, str]:
        given = attributes.get("given_name") or self.settings.DEFAULT_FIRSTNAME
        family = attributes.get("family_name") or self.settings.DEFAULT_LASTNAME
        return given, family

    async def redeem(
        self,
        session_id: Optional[str],
        token: Optional[str],
        ctx: Optional[ClientContext],
    ) -> Redemption:
        sid = self._check_binding(session_id, token, ctx)

        if not self.lifecycle.validate_freshness(sid, self.settings.STORE_TTL_SECONDS):
            raise Expired()

        attributes = await self._observed_attributes(sid, ctx)

        identifier = (attributes.get(self.settings.USER_ID_FIELD) or "").strip()
        if not identifier:
            log.warning(
                "redeem missing identifier sid=%s field=%s keys=%s",
                sid,
                self.settings.USER_ID_FIELD,
                sorted(attributes),
            )
            raise NoUserIdentifier()

        # Claim before hand-off: whoever deletes the entry owns the result.
        if not await self.store.delete(sid):
            log.info("redeem lost claim sid=%s", sid)
            raise InvalidState()

        given_name, family_name = self._display_name(attributes)
        outcome = await self.identity.resolve(
            identifier=identifier,
            attributes=attributes,
            given_name=given_name,
            family_name=family_name,
        )

        redirect_url = safe_redirect(
            ctx.want_url,
            is_admin=outcome.is_admin,
            base_url=self.settings.base_url,
            default=self.settings.DEFAULT_REDIRECT,
            admin_marker=self.settings.ADMIN_PATH_MARKER,
        )
        log.info("redeem complete sid=%s user_id=%s redirect=%s", sid, outcome.user_id, redirect_url)
        return Redemption(identity=outcome, redirect_url=redirect_url, attributes=attributes)

