"""Password hashing for the shared checkout secret (argon2id).

The gate never compares secrets itself; it asks a hasher. Any object with
``hash`` and ``verify`` methods can be injected, which keeps the algorithm
swappable.

Branches: PWD-EMPTY, PWD-VALID, VERIFY-MATCH, VERIFY-MISMATCH,
VERIFY-BAD-FMT
"""
from __future__ import annotations

from typing import Protocol

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError


class SecretHasher(Protocol):
    def hash(self, secret: str) -> str: ...

    def verify(self, secret: str, stored_hash: str) -> bool: ...


class Argon2SecretHasher:
    """argon2id hasher. Cost parameters default to argon2-cffi's profile."""

    def __init__(self, time_cost: int | None = None,
                 memory_cost: int | None = None,
                 parallelism: int | None = None) -> None:
        params = {
            "time_cost": time_cost,
            "memory_cost": memory_cost,
            "parallelism": parallelism,
        }
        self._ph = PasswordHasher(
            **{k: v for k, v in params.items() if v is not None}
        )

    def hash(self, secret: str) -> str:
        """Hash a non-empty secret.

        Branches: PWD-EMPTY, PWD-VALID
        """
        if not secret:                                            # PWD-EMPTY
            raise ValueError("Password must not be empty")
        return self._ph.hash(secret)                              # PWD-VALID

    def verify(self, secret: str, stored_hash: str) -> bool:
        """Check ``secret`` against ``stored_hash``; never raises.

        Branches: VERIFY-MATCH, VERIFY-MISMATCH, VERIFY-BAD-FMT
        """
        if not secret or not stored_hash:
            return False
        try:
            self._ph.verify(stored_hash, secret)
        except VerificationError:                                 # VERIFY-MISMATCH
            return False
        except InvalidHashError:                                  # VERIFY-BAD-FMT
            return False
        return True                                               # VERIFY-MATCH
