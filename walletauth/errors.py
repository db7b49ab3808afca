from __future__ import annotations


class BrokerError(Exception):
    """
    Base for every failure the broker reports at its HTTP boundary.

    Subclasses pin an HTTP status and a stable machine-readable code; the
    message is what the caller gets to see, so keep it free of internals.
    """
    status_code: int = 400
    code: str = "broker_error"
    default_message: str = "Authentication request rejected"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidFormat(BrokerError):
    code = "invalid_format"
    default_message = "Invalid session id format"


class MissingSessionId(BrokerError):
    code = "missing_session_id"
    default_message = "Missing session id"


class BadPayload(BrokerError):
    code = "bad_payload"
    default_message = "Invalid payload: missing status"


class Expired(BrokerError):
    status_code = 410
    code = "expired"
    default_message = "Session expired"


class InvalidState(BrokerError):
    code = "invalid_state"
    default_message = (
        "Invalid authentication state. This may be a session timeout or security issue. "
        "Please try logging in again."
    )


class VerificationFailed(BrokerError):
    code = "verification_failed"
    default_message = "Wallet verification failed. Please try again."


class NoUserIdentifier(BrokerError):
    status_code = 422
    code = "no_user_identifier"
    default_message = (
        "No user identifier received from wallet. "
        "The wallet credential may be missing required attributes."
    )


class VerifierNotConfigured(BrokerError):
    status_code = 503
    code = "verifier_not_configured"
    default_message = "Verifier URL not configured."


class VerifierUnreachable(BrokerError):
    status_code = 502
    code = "auth_init_failed"
    default_message = (
        "Failed to initialize wallet authentication. "
        "Please check the verifier configuration and try again."
    )


class IdentityRejected(BrokerError):
    status_code = 403
    code = "user_not_found"
    default_message = "User not found and auto-creation is disabled. Please contact your administrator."


class IdentityUnavailable(BrokerError):
    status_code = 502
    code = "identity_unavailable"
    default_message = "Could not complete login. Please contact your administrator."
