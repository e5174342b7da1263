"""Stateless anti-forgery tokens for the password form.

A nonce is an HMAC over ``tick|action|binding`` where ``tick`` advances every
half lifetime, so a nonce stays valid for between one half and one full
lifetime. ``binding`` ties the nonce to one browser session id.

Branches: NONCE-CURRENT, NONCE-PREVIOUS, NONCE-INVALID
"""
from __future__ import annotations

import hashlib
import hmac
import math
import secrets

NONCE_LENGTH = 20
VERIFY_ACTION = "checkout-gate-verify"


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


class NonceService:
    """Creates and checks nonces for a single signing key."""

    def __init__(self, key: bytes, lifetime: int = 86400) -> None:
        if lifetime < 2:
            raise ValueError("Nonce lifetime must be at least 2 seconds")
        self._key = key
        self.lifetime = lifetime

    def tick(self, now: float) -> int:
        return math.ceil(now / (self.lifetime / 2))

    def _digest(self, tick: int, action: str, binding: str) -> str:
        data = f"{tick}|{action}|{binding}".encode("utf-8")
        return hmac.new(self._key, data, hashlib.sha256).hexdigest()[:NONCE_LENGTH]

    def create(self, action: str, binding: str, now: float) -> str:
        return self._digest(self.tick(now), action, binding)

    def verify(self, nonce: str | None, action: str, binding: str,
               now: float) -> bool:
        """Accept nonces minted in the current or the previous tick.

        Branches: NONCE-CURRENT, NONCE-PREVIOUS, NONCE-INVALID
        """
        if not nonce or not binding:                              # NONCE-INVALID
            return False

        provided = nonce.encode("utf-8")
        tick = self.tick(now)

        expected = self._digest(tick, action, binding).encode("ascii")
        if hmac.compare_digest(provided, expected):               # NONCE-CURRENT
            return True

        expected = self._digest(tick - 1, action, binding).encode("ascii")
        if hmac.compare_digest(provided, expected):               # NONCE-PREVIOUS
            return True

        return False                                              # NONCE-INVALID
