"""Gate models.

Pydantic models for the persisted configuration and the settings API, and
frozen dataclasses for the per-request context and the decisions the gate
hands back to the HTTP adapter. No business logic lives here -- only
structure and basic field normalisation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, Field, field_validator

from hosts import sanitize_patterns


# ---------------------------------------------------------------------------
# Configuration models
# ---------------------------------------------------------------------------

class GateSettings(BaseModel):
    """Persisted gate configuration. Replaced wholesale on every save."""

    protected_hosts: list[str] = Field(default_factory=list)
    password_hash: str = ""

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


class SettingsUpdate(BaseModel):
    """Administrator input. ``password`` empty or missing keeps the old hash."""

    protected_hosts: list[str] = Field(default_factory=list)
    password: str | None = None

    @field_validator("protected_hosts", mode="before")
    @classmethod
    def split_hosts(cls, v: Any) -> list[str]:
        # Textarea input arrives as one newline-separated string.
        if v is None:
            return []
        if isinstance(v, str):
            return v.splitlines()
        return v

    @field_validator("protected_hosts")
    @classmethod
    def clean_hosts(cls, v: list[str]) -> list[str]:
        return sanitize_patterns(v)


class ProtectionStatus(str, Enum):
    PROTECTED = "protected"
    MATCHED_NO_PASSWORD = "matched_no_password"
    OPEN = "open"


class SettingsStatus(BaseModel):
    """Settings view returned to administrators. Never includes the hash."""

    protected_hosts: list[str]
    has_password: bool
    current_host: str
    status: ProtectionStatus


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

class RouteKind(str, Enum):
    OTHER = "other"
    GUARDED = "guarded"
    CONFIRMATION = "confirmation"
    ASYNC = "async"


@dataclass(frozen=True)
class RequestContext:
    """Everything the gate needs to know about one request."""

    host: str
    site_url: str
    route: RouteKind = RouteKind.GUARDED
    method: str = "GET"
    cookies: Mapping[str, str] = field(default_factory=dict)
    form: Mapping[str, str] = field(default_factory=dict)
    session_id: str = ""

    @property
    def is_post(self) -> bool:
        return self.method.upper() == "POST"


# ---------------------------------------------------------------------------
# Submission and gate decisions
# ---------------------------------------------------------------------------

class SubmissionOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class SubmissionResult:
    outcome: SubmissionOutcome
    # Internal only; never shown to the visitor.
    reason: str = ""

    @property
    def accepted(self) -> bool:
        return self.outcome is SubmissionOutcome.ACCEPTED


@dataclass(frozen=True)
class Allow:
    reason: str = ""


@dataclass(frozen=True)
class Challenge:
    nonce: str
    failed: bool = False


@dataclass(frozen=True)
class RedirectTo:
    url: str
    token: str | None = None


@dataclass(frozen=True)
class JsonResult:
    success: bool
    payload: dict[str, Any]
    token: str | None = None


Decision = Union[Allow, Challenge, RedirectTo, JsonResult]
