import os

os.environ.setdefault("WALLETAUTH_SESSION_SIGNING_SECRET", "test-signing-secret")

from typing import Dict, List

import httpx
import pytest

from walletauth.core.identity_client import IdentityOutcome
from walletauth.main import create_app
from walletauth.session_store import InMemorySessionStore
from walletauth.settings import Settings

NOW = 1_700_000_000
REQUEST_URI = "openid4vp://authorize?request_uri=https://verifier.test/r/1"


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVerifier:
    def __init__(self) -> None:
        self.opened: List[str] = []

    async def open_authorization_request(self, session_id: str) -> str:
        self.opened.append(session_id)
        return REQUEST_URI


class FakeIdentity:
    def __init__(self, *, is_admin: bool = False) -> None:
        self.calls: List[Dict] = []
        self.is_admin = is_admin

    async def resolve(self, *, identifier, attributes, given_name, family_name) -> IdentityOutcome:
        self.calls.append(
            {
                "identifier": identifier,
                "attributes": attributes,
                "given_name": given_name,
                "family_name": family_name,
            }
        )
        return IdentityOutcome(user_id=f"user-{identifier}", is_admin=self.is_admin)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        SESSION_SIGNING_SECRET="test-signing-secret",
        SESSION_ID_PREFIX="moodle",
        PUBLIC_BASE_URL="https://lms.example.test",
        VERIFIER_URL="https://verifier.test/v1",
        RESULT_CACHING="context",
    )


@pytest.fixture
def store(clock):
    return InMemorySessionStore(ttl_seconds=3600, clock=clock)


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def app(settings, store, verifier, identity, clock):
    return create_app(settings, store=store, verifier=verifier, identity=identity, clock=clock)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
