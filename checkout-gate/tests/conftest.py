"""Shared fixtures for checkout gate tests."""
from __future__ import annotations

import re

import pytest
from fastapi.testclient import TestClient

from app import build_gate, create_app
from config import Settings
from gate import CheckoutGate
from models import GateSettings, RequestContext, RouteKind
from passwords import Argon2SecretHasher
from store import InMemoryCredentialStore

TEST_SECRET_KEY = "test-secret-key-for-testing"
ADMIN_TOKEN = "admin-token-for-testing"
PASSWORD = "letmein-staging"
HOST = "staging.example.com"
SITE_URL = "https://staging.example.com"
T0 = 1_700_000_000.0

NONCE_RE = re.compile(r'name="nonce" value="([^"]+)"')


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fast_hasher() -> Argon2SecretHasher:
    return Argon2SecretHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def hasher() -> Argon2SecretHasher:
    return fast_hasher()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def password_hash(hasher) -> str:
    return hasher.hash(PASSWORD)


@pytest.fixture
def store(password_hash) -> InMemoryCredentialStore:
    """Store protecting HOST with PASSWORD."""
    return InMemoryCredentialStore(
        GateSettings(protected_hosts=[HOST], password_hash=password_hash)
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(SECRET_KEY=TEST_SECRET_KEY, ADMIN_TOKEN=ADMIN_TOKEN)


@pytest.fixture
def gate(settings, store, hasher, clock) -> CheckoutGate:
    return build_gate(settings, store=store, hasher=hasher, clock=clock)


def make_ctx(**overrides) -> RequestContext:
    """Build a GET request for the guarded route on HOST."""
    defaults = dict(
        host=HOST,
        site_url=SITE_URL,
        route=RouteKind.GUARDED,
        method="GET",
        session_id="session-1",
    )
    defaults.update(overrides)
    return RequestContext(**defaults)


@pytest.fixture
def client(settings, hasher, clock) -> TestClient:
    """App on host 'testserver' with an empty configuration."""
    app = create_app(settings=settings, store=InMemoryCredentialStore(),
                     hasher=hasher, clock=clock)
    return TestClient(app)


def admin_headers() -> dict:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


def extract_nonce(html: str) -> str:
    match = NONCE_RE.search(html)
    assert match, "challenge page has no nonce field"
    return match.group(1)
