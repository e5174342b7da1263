"""Host whitelist matching and sanitisation.

Patterns are either a literal ``host[:port]`` (bracketed for IPv6, as in
``[::1]:8080``) or a ``*.domain`` wildcard.
They are compared as plain strings; nothing is ever interpreted as a glob
or a regular expression beyond the single leading ``*.`` rule.

Branches: HOST-EMPTY, HOST-EXACT, HOST-WILDCARD-SUB, HOST-WILDCARD-APEX,
HOST-NO-MATCH
"""
from __future__ import annotations

import re
from typing import Iterable

WILDCARD_PREFIX = "*."

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_PATTERN_RE = re.compile(
    r"^(?:(\*\.)?[a-z0-9_-]+(\.[a-z0-9_-]+)*|\[[0-9a-f:.]+\])(:\d{1,5})?$"
)


def normalize_host(host: str) -> str:
    return (host or "").strip().lower()


def is_protected(current_host: str, patterns: Iterable[str]) -> bool:
    """Return True if ``current_host`` matches any pattern.

    Branches: HOST-EMPTY, HOST-EXACT, HOST-WILDCARD-SUB, HOST-WILDCARD-APEX,
    HOST-NO-MATCH
    """
    patterns = list(patterns)
    if not patterns:                                              # HOST-EMPTY
        return False

    host = normalize_host(current_host)
    for pattern in patterns:
        pattern = normalize_host(pattern)
        if not pattern:
            continue

        if host == pattern:                                       # HOST-EXACT
            return True

        if pattern.startswith(WILDCARD_PREFIX):
            domain = pattern[len(WILDCARD_PREFIX):]
            if not domain:
                continue
            if host == domain:                                    # HOST-WILDCARD-APEX
                return True
            if host.endswith("." + domain):                       # HOST-WILDCARD-SUB
                return True

    return False                                                  # HOST-NO-MATCH


def sanitize_pattern(raw: str) -> str | None:
    """Reduce one raw entry to its pattern form, or None if unusable.

    Drops the scheme and anything from the first ``/`` on, then lowercases.
    """
    value = (raw or "").strip()
    value = _SCHEME_RE.sub("", value)
    value = value.split("/", 1)[0].strip().lower()
    if not value or not _PATTERN_RE.match(value):
        return None
    return value


def sanitize_patterns(raw: str | Iterable[str] | None) -> list[str]:
    """Turn newline text or a list of entries into a clean pattern list.

    Malformed entries are dropped silently. Order of first appearance is
    kept; duplicates are removed.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        entries = raw.splitlines()
    else:
        entries = [e for e in raw if isinstance(e, str)]

    sanitized: list[str] = []
    for entry in entries:
        pattern = sanitize_pattern(entry)
        if pattern is not None and pattern not in sanitized:
            sanitized.append(pattern)
    return sanitized
