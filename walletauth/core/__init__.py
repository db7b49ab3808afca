from .identity_client import IdentityOutcome, IdentityResolver
from .poller import poll_until_terminal
from .verifier_client import VerifierClient

__all__ = ["IdentityOutcome", "IdentityResolver", "VerifierClient", "poll_until_terminal"]
