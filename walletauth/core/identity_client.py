from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from ..errors import IdentityRejected, IdentityUnavailable
from ..settings import Settings

log = logging.getLogger("walletauth.identity")


@dataclass
class IdentityOutcome:
    user_id: str
    is_admin: bool = False


class IdentityResolver:
    """
    Client for the host user directory.

    The directory owns find-or-create policy; this side only guarantees the
    attributes come from one verifier-confirmed, sanitized result.
    """
    def __init__(self, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._transport = transport

    async def resolve(
        self,
        *,
        identifier: str,
        attributes: Dict[str, str],
        given_name: str,
        family_name: str,
    ) -> IdentityOutcome:
        payload = {
            "identifier": identifier,
            "attributes": attributes,
            "given_name": given_name,
            "family_name": family_name,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.IDENTITY_TIMEOUT_SECONDS,
                transport=self._transport,
            ) as client:
                resp = await client.post(self.settings.identity_resolve_url, json=payload)
                if resp.status_code in (403, 404):
                    log.info("identity rejected identifier=%s status=%s", identifier, resp.status_code)
                    raise IdentityRejected()
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            log.exception("identity resolve failed identifier=%s err=%s", identifier, e)
            raise IdentityUnavailable() from e
        except ValueError as e:
            log.exception("identity resolve bad body identifier=%s", identifier)
            raise IdentityUnavailable() from e

        user_id = data.get("user_id") if isinstance(data, dict) else None
        if not user_id:
            raise IdentityUnavailable()

        outcome = IdentityOutcome(user_id=str(user_id), is_admin=bool(data.get("is_admin")))
        log.info("identity resolved identifier=%s user_id=%s admin=%s", identifier, outcome.user_id, outcome.is_admin)
        return outcome
