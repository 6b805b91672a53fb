"""Pytest fixtures for SIWE auth backend tests."""
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from httpx import AsyncClient, ASGITransport
from siwe import SiweMessage

from siwe_auth import config
from siwe_auth.main import build_app_state, create_app
from siwe_auth.nonce_store import InMemoryNonceStore
from siwe_auth.services.signature_service import SignatureVerifier, SiweSignatureVerifier
from siwe_auth.services.verification_service import VerificationEngine


# =============================================================================
# Test constants
# =============================================================================

# Throwaway key, never holds funds
TEST_PRIVATE_KEY = "0x" + "11" * 32
OTHER_PRIVATE_KEY = "0x" + "22" * 32

GOOD_HOST = "good.com"
VERIFY_URI = "https://good.com/authorize/verify"
ISSUED_AT = "2026-10-18T12:00:00.000Z"
# Fake clock starts at ISSUED_AT so inline-nonce windows line up with test messages
CLOCK_START = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc).timestamp()
TEST_JWT_SECRET = "test-jwt-secret"


class FakeClock:
    """Settable clock; returns seconds like time.time()."""

    def __init__(self, now: float = CLOCK_START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubSignatureVerifier(SignatureVerifier):
    """Returns a fixed answer and records what it was asked."""

    def __init__(self, result: bool = True):
        self.result = result
        self.calls: list[tuple[str, str]] = []

    async def verify(self, message: str, signature: str) -> bool:
        self.calls.append((message, signature))
        return self.result


def build_message(
    address: str,
    nonce: str,
    domain: str = GOOD_HOST,
    uri: str = VERIFY_URI,
    statement: str = "Sign in to the test app.",
    issued_at: str = ISSUED_AT,
) -> str:
    """Renders an EIP-4361 message for the given fields."""
    return SiweMessage(
        domain=domain,
        address=address,
        statement=statement,
        uri=uri,
        version="1",
        chain_id=1,
        nonce=nonce,
        issued_at=issued_at,
    ).prepare_message()


def sign(message: str, private_key: str = TEST_PRIVATE_KEY) -> str:
    signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def account():
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryNonceStore:
    return InMemoryNonceStore(clock=clock)


@pytest.fixture
def stub_verifier() -> StubSignatureVerifier:
    return StubSignatureVerifier(result=True)


@pytest.fixture
def engine(store: InMemoryNonceStore, stub_verifier: StubSignatureVerifier, clock: FakeClock) -> VerificationEngine:
    return VerificationEngine(store, stub_verifier, clock=clock)


@pytest.fixture
def jwt_secret(monkeypatch) -> str:
    monkeypatch.setattr(config, "JWT_SECRET_KEY", TEST_JWT_SECRET)
    monkeypatch.setattr(config, "SIWE_GENERIC_ERRORS", False)
    return TEST_JWT_SECRET


@pytest.fixture
async def client(store: InMemoryNonceStore, clock: FakeClock, jwt_secret: str) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to an in-memory store and the real siwe signature verifier.

    ASGITransport does not run lifespan handlers, so app state is built here.
    """
    app = create_app()
    build_app_state(app, store=store, signature_verifier=SiweSignatureVerifier(), clock=clock)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=f"https://{GOOD_HOST}") as ac:
        yield ac
