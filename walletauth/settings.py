from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import AnyUrl, Field, Json
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WALLETAUTH_", env_file=".env", extra="ignore")

    # Verifier
    VERIFIER_URL: Optional[str] = Field(default="https://api.be-ys.com/vp-verifier/v1")
    VERIFIER_TIMEOUT_SECONDS: int = Field(default=10)
    SSL_VERIFY: bool = Field(default=True)

    CREDENTIAL_NAME: str = Field(default="StudentStatusCredential")
    REQUIRED_FIELDS: List[str] = Field(
        default_factory=lambda: ["given_name", "family_name", "studentId", "email"]
    )
    USER_ID_FIELD: str = Field(default="studentId")
    DEFAULT_FIRSTNAME: str = Field(default="Wallet")
    DEFAULT_LASTNAME: str = Field(default="User")

    # Externally reachable base URL, used to build the webhook URL handed to the verifier
    PUBLIC_BASE_URL: AnyUrl = Field(default="http://localhost:8050")
    CALLBACK_PATH: str = Field(default="/auth/wallet/callback")

    # Session broker
    SESSION_ID_PREFIX: str = Field(default="wallet")
    STORE_TTL_SECONDS: int = Field(default=3600)
    # memory backend only; Mongo expires through its TTL index
    STORE_SWEEP_SECONDS: float = Field(default=60.0)
    CALLBACK_MAX_AGE_SECONDS: int = Field(default=600)
    # "context" copies the verified attributes into the context cookie. That
    # cookie is signed, not encrypted, so the browser can read them.
    # "store" keeps them server-side until redemption.
    RESULT_CACHING: Literal["context", "store"] = Field(default="store")
    STORE_BACKEND: Literal["memory", "mongo"] = Field(default="memory")

    MONGO_URI: str = Field(default="mongodb://localhost:27017")
    MONGO_DB: str = Field(default="walletauth")
    MONGO_COLLECTION: str = Field(default="auth_sessions")

    # Client poll loop
    POLL_INTERVAL_SECONDS: float = Field(default=2.0)
    POLL_MAX_ATTEMPTS: int = Field(default=150)

    # Identity resolution (host user directory)
    IDENTITY_BASE_URL: AnyUrl = Field(default="http://directory-service:8040")
    IDENTITY_RESOLVE_PATH: str = Field(default="/identities/resolve")
    IDENTITY_TIMEOUT_SECONDS: int = Field(default=5)

    # Client context cookie
    CONTEXT_COOKIE_NAME: str = Field(default="walletauth_ctx")
    COOKIE_DOMAIN: Optional[str] = Field(default=None)
    COOKIE_SECURE: bool = Field(default=False)
    COOKIE_SAMESITE: str = Field(default="lax")
    SESSION_SIGNING_SECRET: str = Field(...)

    # Redirects
    DEFAULT_REDIRECT: str = Field(default="/")
    ADMIN_PATH_MARKER: str = Field(default="/admin/")

    CORS_ALLOW_ORIGINS: Json[List[str]] = Field(default="[]")
    LOG_LEVEL: str = Field(default="INFO")
    PORT: int = Field(default=8050)

    @property
    def base_url(self) -> str:
        return str(self.PUBLIC_BASE_URL).rstrip("/")

    @property
    def callback_url(self) -> str:
        return f"{self.base_url}{self.CALLBACK_PATH}"

    @property
    def identity_resolve_url(self) -> str:
        return f"{str(self.IDENTITY_BASE_URL).rstrip('/')}{self.IDENTITY_RESOLVE_PATH}"


settings = Settings()
