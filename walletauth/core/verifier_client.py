from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import VerifierNotConfigured, VerifierUnreachable
from ..settings import Settings

log = logging.getLogger("walletauth.verifier")

REQUEST_URI_SCHEME = "openid4vp://"


def build_presentation_request(
    *,
    callback_url: str,
    credential_name: str,
    required_fields: List[str],
) -> Dict[str, Any]:
    """
    Presentation-exchange request body: one constraint per requested
    credentialSubject field plus a type filter on the credential name.
    """
    fields: List[Dict[str, Any]] = []
    destinations: Dict[str, str] = {}

    for name in required_fields:
        name = name.strip()
        if not name:
            continue
        fields.append({"path": [f"$.vc.credentialSubject.{name}"], "id": name})
        destinations[name] = f"$.{name}"

    fields.append(
        {
            "path": ["$.vc.type"],
            "id": credential_name,
            "filter": {"type": "string", "pattern": credential_name},
        }
    )

    return {
        "credential_type": "any",
        "callback_url": callback_url,
        "constraints": {"fields": fields},
        "destinations": destinations,
    }


class VerifierClient:
    def __init__(self, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._transport = transport

    def callback_url_for(self, session_id: str) -> str:
        return str(httpx.URL(self.settings.callback_url, params={"session_id": session_id}))

    async def open_authorization_request(self, session_id: str) -> str:
        """Registers a presentation request and returns the wallet request URI."""
        base = (self.settings.VERIFIER_URL or "").rstrip("/")
        if not base:
            raise VerifierNotConfigured()

        url = f"{base}/authorization-request"
        payload = build_presentation_request(
            callback_url=self.callback_url_for(session_id),
            credential_name=self.settings.CREDENTIAL_NAME,
            required_fields=self.settings.REQUIRED_FIELDS,
        )
        log.debug("authorization request sid=%s url=%s payload=%s", session_id, url, payload)

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.VERIFIER_TIMEOUT_SECONDS,
                verify=self.settings.SSL_VERIFY,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    url,
                    params={"presentation-type": "presentation-exchange"},
                    json=payload,
                    headers={"Accept": "text/plain"},
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("verifier init failed sid=%s err=%s", session_id, e)
            raise VerifierUnreachable() from e

        request_uri = resp.text.strip()
        if not request_uri.startswith(REQUEST_URI_SCHEME):
            log.warning("verifier init bad response sid=%s body=%s", session_id, request_uri[:100])
            raise VerifierUnreachable()

        log.info("verifier request opened sid=%s", session_id)
        return request_uri
