"""Application factory and entry point.

Run with:
    uvicorn app:app --reload
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import FastAPI

from api import build_gate_router, build_storefront_router
from config import DEFAULT_SECRET, Settings
from gate import CheckoutGate
from middleware import GateMiddleware
from nonces import NonceService
from passwords import Argon2SecretHasher, SecretHasher
from store import CredentialStore, InMemoryCredentialStore, JsonFileCredentialStore
from submission import SubmissionHandler
from tokens import TokenCodec, derive_key

logger = logging.getLogger(__name__)


def build_gate(
    settings: Settings,
    store: CredentialStore | None = None,
    hasher: SecretHasher | None = None,
    clock: Callable[[], float] = time.time,
) -> CheckoutGate:
    """Wire a gate from settings. Store and hasher may be injected."""
    if store is None:
        if settings.STORE_PATH:
            store = JsonFileCredentialStore(settings.STORE_PATH)
        else:
            store = InMemoryCredentialStore()
    if hasher is None:
        hasher = Argon2SecretHasher()

    nonces = NonceService(derive_key(settings.SECRET_KEY, "nonce"),
                          settings.NONCE_LIFETIME)
    return CheckoutGate(
        store=store,
        codec=TokenCodec.from_secret(settings.SECRET_KEY, settings.TOKEN_TTL),
        submissions=SubmissionHandler(hasher, nonces),
        nonces=nonces,
        guarded_path=settings.GUARDED_PATH,
        clock=clock,
    )


def install_gate(app: FastAPI, gate: CheckoutGate, settings: Settings) -> None:
    """Put the gate in front of an existing FastAPI application."""
    app.state.gate = gate
    app.state.gate_settings = settings
    app.add_middleware(GateMiddleware, gate=gate, settings=settings)
    app.include_router(build_gate_router(settings))


def create_app(
    settings: Settings | None = None,
    store: CredentialStore | None = None,
    hasher: SecretHasher | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build and return the FastAPI application.

    Accepts optional settings, store, hasher and clock for testing.
    """
    if settings is None:
        settings = Settings()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.SECRET_KEY == DEFAULT_SECRET:
        logger.warning("CHECKOUT_GATE_SECRET_KEY is not set; using the default")

    gate = build_gate(settings, store=store, hasher=hasher, clock=clock)

    app = FastAPI(
        title="Checkout Gate",
        description=(
            "Password-protects the checkout page on whitelisted hosts "
            "(development and staging copies). Hosts that match no pattern, "
            "or a gate without a password, stay open."
        ),
        version="0.1.0",
    )
    install_gate(app, gate, settings)
    app.include_router(build_storefront_router(settings))
    return app


# Default app instance for `uvicorn app:app`
app = create_app()
