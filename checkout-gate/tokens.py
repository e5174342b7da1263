"""Signed, time-bound checkout access tokens.

Token format: ``hex(hmac_sha256(key, password_hash|site_identity|expires_at))|expires_at``.

The token is bound to the stored password hash (rotating the password
invalidates every outstanding token) and to the site identity (a token
copied from one deployment is useless on another). Nothing is stored
server-side; validity is recomputed on every request.

Branches: TOKEN-ISSUE, TOKEN-VALID, TOKEN-MALFORMED, TOKEN-EXPIRED,
TOKEN-BAD-SIG
"""
from __future__ import annotations

import hashlib
import hmac

SEPARATOR = "|"

# Ten digits covers Unix time until the year 2286.
MAX_EXPIRY_DIGITS = 12


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(secret: str, purpose: str) -> bytes:
    """Derive a per-purpose signing key from the deployment secret."""
    if not secret:
        raise ValueError("Secret must not be empty")
    return hmac.new(
        secret.encode("utf-8"),
        f"checkout-gate:{purpose}".encode("utf-8"),
        hashlib.sha256,
    ).digest()


def _sign(key: bytes, password_hash: str, site_identity: str,
          expires_at: int) -> str:
    data = SEPARATOR.join([password_hash, site_identity, str(expires_at)])
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Issue / verify
# ---------------------------------------------------------------------------

def issue_token(
    key: bytes,
    password_hash: str,
    site_identity: str,
    now: float,
    ttl: int,
) -> str:
    """Create a token that expires ``ttl`` seconds after ``now``.

    Branches: TOKEN-ISSUE
    """
    expires_at = int(now) + ttl
    signature = _sign(key, password_hash, site_identity, expires_at)
    return f"{signature}{SEPARATOR}{expires_at}"


def verify_token(
    key: bytes,
    token: str | None,
    password_hash: str,
    site_identity: str,
    now: float,
) -> bool:
    """Return True only if the token is well formed, unexpired and signed
    for exactly this password hash and site identity.

    Branches: TOKEN-VALID, TOKEN-MALFORMED, TOKEN-EXPIRED, TOKEN-BAD-SIG
    """
    if not token or not password_hash:                            # TOKEN-MALFORMED
        return False

    parts = token.split(SEPARATOR)
    if len(parts) != 2:                                           # TOKEN-MALFORMED
        return False

    provided_sig, expires_raw = parts
    if not (expires_raw.isascii() and expires_raw.isdigit()):     # TOKEN-MALFORMED
        return False
    if len(expires_raw) > MAX_EXPIRY_DIGITS:                      # TOKEN-MALFORMED
        return False

    expires_at = int(expires_raw)
    if expires_at < now:                                          # TOKEN-EXPIRED
        return False

    expected_sig = _sign(key, password_hash, site_identity, expires_at)
    if not hmac.compare_digest(                                   # TOKEN-BAD-SIG
        provided_sig.encode("utf-8"), expected_sig.encode("utf-8")
    ):
        return False

    return True                                                   # TOKEN-VALID


class TokenCodec:
    """Binds the token functions to one signing key and lifetime."""

    def __init__(self, key: bytes, ttl: int) -> None:
        self._key = key
        self.ttl = ttl

    @classmethod
    def from_secret(cls, secret: str, ttl: int) -> TokenCodec:
        return cls(derive_key(secret, "auth-token"), ttl)

    def issue(self, password_hash: str, site_identity: str, now: float) -> str:
        return issue_token(self._key, password_hash, site_identity, now, self.ttl)

    def verify(self, token: str | None, password_hash: str,
               site_identity: str, now: float) -> bool:
        return verify_token(self._key, token, password_hash, site_identity, now)
