"""Executable contract for the checkout gate.

Defines machine-readable contracts for every gate operation:
- Preconditions: what inputs must satisfy
- Postconditions: what the output must satisfy given valid inputs
- Algebraic properties: relationships that must always hold
- Branch map: every decision point in the implementation

Validation tools iterate over the contract to drive conformance tests and
search for counterexamples.

Layers
------
Rule              named validation predicate over a GateSettings object
OperationSpec     per-operation contract (pre/post/properties)
BranchSpec        every decision point white-box tests must cover
GateContract      the full contract for a configured gate
build_contract()  constructs a GateContract for a given configuration
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

COOKIE_NAME = "checkout_gate_auth"
SESSION_COOKIE_NAME = "checkout_gate_sid"
SECRET_FIELD = "secret"
NONCE_FIELD = "nonce"
DEFAULT_TOKEN_TTL = 86400  # 24 hours
DEFAULT_NONCE_LIFETIME = 86400
FAILURE_MESSAGE = "Incorrect password. Please try again."


# ---------------------------------------------------------------------------
# Rule: a named, executable predicate over a settings object
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    """A named validation rule for gate configuration."""

    id: str
    name: str
    description: str
    check: Callable[[Any], bool]


def _hosts(s: Any) -> list:
    return list(getattr(s, "protected_hosts", None) or [])


def _hosts_are_strings(s: Any) -> bool:
    return all(isinstance(h, str) and h for h in _hosts(s))


def _hosts_lowercase(s: Any) -> bool:
    return all(h == h.lower() for h in _hosts(s))


def _hosts_no_scheme(s: Any) -> bool:
    return all("://" not in h for h in _hosts(s))


def _hosts_no_path(s: Any) -> bool:
    return all("/" not in h for h in _hosts(s))


def _hosts_no_whitespace(s: Any) -> bool:
    return all(not any(c.isspace() for c in h) for h in _hosts(s))


def _hosts_unique(s: Any) -> bool:
    hosts = _hosts(s)
    return len(hosts) == len(set(hosts))


def _hosts_wildcard_prefix_only(s: Any) -> bool:
    for h in _hosts(s):
        rest = h[2:] if h.startswith("*.") else h
        if "*" in rest or not rest:
            return False
    return True


def _hash_is_string(s: Any) -> bool:
    return isinstance(getattr(s, "password_hash", None), str)


SETTINGS_RULES: list[Rule] = [
    Rule(
        id="CFG-HOST-STR",
        name="hosts_are_strings",
        description="Every protected host must be a non-empty string",
        check=_hosts_are_strings,
    ),
    Rule(
        id="CFG-HOST-LOWER",
        name="hosts_lowercase",
        description="Protected hosts must be lowercase",
        check=_hosts_lowercase,
    ),
    Rule(
        id="CFG-HOST-SCHEME",
        name="hosts_no_scheme",
        description="Protected hosts must not include a scheme",
        check=_hosts_no_scheme,
    ),
    Rule(
        id="CFG-HOST-PATH",
        name="hosts_no_path",
        description="Protected hosts must not include a path",
        check=_hosts_no_path,
    ),
    Rule(
        id="CFG-HOST-SPACE",
        name="hosts_no_whitespace",
        description="Protected hosts must not contain whitespace",
        check=_hosts_no_whitespace,
    ),
    Rule(
        id="CFG-HOST-UNIQUE",
        name="hosts_unique",
        description="Protected hosts must not repeat",
        check=_hosts_unique,
    ),
    Rule(
        id="CFG-HOST-WILDCARD",
        name="hosts_wildcard_prefix_only",
        description="A wildcard may only appear as a leading '*.'",
        check=_hosts_wildcard_prefix_only,
    ),
    Rule(
        id="CFG-HASH-STR",
        name="hash_is_string",
        description="Password hash must be a string (empty means unset)",
        check=_hash_is_string,
    ),
]


# ---------------------------------------------------------------------------
# Validation report
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    rule_id: str
    rule_name: str
    passed: bool
    description: str


@dataclass(frozen=True)
class ValidationReport:
    results: list[ValidationResult]

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.results if not r.passed]

    def summary(self) -> str:
        total = len(self.results)
        failed = len(self.failures)
        if failed == 0:
            return f"All {total} rules passed"
        lines = [f"{failed}/{total} rules failed:"]
        for f in self.failures:
            lines.append(f"  [{f.rule_id}] {f.rule_name}: {f.description}")
        return "\n".join(lines)


def validate_settings(settings: Any) -> ValidationReport:
    """Run all settings rules against a configuration and return a report."""
    results = []
    for rule in SETTINGS_RULES:
        try:
            passed = rule.check(settings)
        except Exception:
            passed = False
        results.append(
            ValidationResult(
                rule_id=rule.id,
                rule_name=rule.name,
                passed=passed,
                description=rule.description,
            )
        )
    return ValidationReport(results=results)


# ---------------------------------------------------------------------------
# Operation-level contracts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Precondition:
    name: str
    description: str
    check: Callable[..., bool]


@dataclass(frozen=True)
class Postcondition:
    name: str
    description: str
    check: Callable[..., bool]


@dataclass(frozen=True)
class AlgebraicProperty:
    name: str
    description: str
    arity: int
    check: Callable[..., bool]


@dataclass(frozen=True)
class OperationSpec:
    name: str
    preconditions: list[Precondition]
    postconditions: list[Postcondition]
    properties: list[AlgebraicProperty]


@dataclass(frozen=True)
class BranchSpec:
    """A decision point in the implementation that must be exercised."""

    id: str
    description: str
    condition: str
    operation: str


@dataclass(frozen=True)
class GateContract:
    """Complete contract for the checkout gate."""

    token_ttl: int
    operations: dict[str, OperationSpec]
    branches: list[BranchSpec]
    settings_rules: list[Rule]

    @property
    def all_properties(self) -> list[tuple[str, AlgebraicProperty]]:
        out: list[tuple[str, AlgebraicProperty]] = []
        for name, op in self.operations.items():
            for prop in op.properties:
                out.append((name, prop))
        return out

    @property
    def branch_ids(self) -> set[str]:
        return {b.id for b in self.branches}


# ---------------------------------------------------------------------------
# Contract builder
# ---------------------------------------------------------------------------

_KEY = b"contract-signing-key"
_T0 = 1_700_000_000


def build_contract(token_ttl: int = DEFAULT_TOKEN_TTL) -> GateContract:
    """Construct the full gate contract.

    Property checks receive the implementing module as their first argument
    so the same contract can be run against any implementation.
    """

    # -- is_protected --------------------------------------------------------
    is_protected_spec = OperationSpec(
        name="is_protected",
        preconditions=[],
        postconditions=[
            Postcondition(
                "returns_bool",
                "Result is a bool",
                lambda host, patterns, result: isinstance(result, bool),
            ),
        ],
        properties=[
            AlgebraicProperty(
                "empty_set_never_protects",
                "is_protected(h, []) is False",
                1,
                lambda hosts_mod, h: hosts_mod.is_protected(h, []) is False,
            ),
            AlgebraicProperty(
                "exact_match_case_insensitive",
                "is_protected(h, [h.upper()]) is True",
                1,
                lambda hosts_mod, h: hosts_mod.is_protected(h, [h.upper()]),
            ),
            AlgebraicProperty(
                "wildcard_covers_subdomain_and_apex",
                "'*.d' protects 'x.d' and 'd'",
                2,
                lambda hosts_mod, sub, d: (
                    hosts_mod.is_protected(f"{sub}.{d}", [f"*.{d}"])
                    and hosts_mod.is_protected(d, [f"*.{d}"])
                ),
            ),
            AlgebraicProperty(
                "wildcard_rejects_suffix_lookalike",
                "'*.d' does not protect 'notd'",
                1,
                lambda hosts_mod, d: not hosts_mod.is_protected(
                    f"not{d}", [f"*.{d}"]
                ),
            ),
        ],
    )

    # -- sanitize_patterns ---------------------------------------------------
    sanitize_spec = OperationSpec(
        name="sanitize_patterns",
        preconditions=[],
        postconditions=[
            Postcondition(
                "result_satisfies_settings_rules",
                "Sanitised hosts pass every settings rule",
                lambda raw, result: validate_settings(
                    _HostsOnly(result)
                ).passed,
            ),
        ],
        properties=[
            AlgebraicProperty(
                "idempotent",
                "sanitize(sanitize(x)) == sanitize(x)",
                1,
                lambda hosts_mod, raw: (
                    hosts_mod.sanitize_patterns(
                        hosts_mod.sanitize_patterns(raw)
                    )
                    == hosts_mod.sanitize_patterns(raw)
                ),
            ),
        ],
    )

    # -- issue_token / verify_token ------------------------------------------
    issue_token_spec = OperationSpec(
        name="issue_token",
        preconditions=[
            Precondition(
                "ttl_positive",
                "Token lifetime must be positive",
                lambda ttl: ttl > 0,
            ),
        ],
        postconditions=[
            Postcondition(
                "token_two_parts",
                "Token has exactly two '|'-separated parts",
                lambda result: len(result.split("|")) == 2,
            ),
            Postcondition(
                "expiry_is_decimal",
                "Second part is a decimal timestamp",
                lambda result: result.split("|")[1].isdigit(),
            ),
        ],
        properties=[
            AlgebraicProperty(
                "roundtrip_before_expiry",
                "verify(issue(h, s, t0, ttl), h, s, t0 + ttl - 1)",
                2,
                lambda tokens_mod, h, s: tokens_mod.verify_token(
                    _KEY,
                    tokens_mod.issue_token(_KEY, h, s, _T0, token_ttl),
                    h, s, _T0 + token_ttl - 1,
                ),
            ),
            AlgebraicProperty(
                "rejected_after_expiry",
                "not verify(issue(h, s, t0, ttl), h, s, t0 + ttl + 1)",
                2,
                lambda tokens_mod, h, s: not tokens_mod.verify_token(
                    _KEY,
                    tokens_mod.issue_token(_KEY, h, s, _T0, token_ttl),
                    h, s, _T0 + token_ttl + 1,
                ),
            ),
        ],
    )

    verify_token_spec = OperationSpec(
        name="verify_token",
        preconditions=[],
        postconditions=[
            Postcondition(
                "returns_bool",
                "Verification is binary",
                lambda result: isinstance(result, bool),
            ),
        ],
        properties=[
            AlgebraicProperty(
                "site_binding",
                "A token minted for one site is rejected on another",
                3,
                lambda tokens_mod, h, a, b: a == b or not tokens_mod.verify_token(
                    _KEY, tokens_mod.issue_token(_KEY, h, a, _T0, token_ttl),
                    h, b, _T0,
                ),
            ),
            AlgebraicProperty(
                "hash_binding",
                "Rotating the password hash invalidates the token",
                3,
                lambda tokens_mod, h1, h2, s: h1 == h2 or not tokens_mod.verify_token(
                    _KEY, tokens_mod.issue_token(_KEY, h1, s, _T0, token_ttl),
                    h2, s, _T0,
                ),
            ),
        ],
    )

    # -- branches ------------------------------------------------------------
    branches = [
        # Host matching
        BranchSpec("HOST-EMPTY", "No patterns configured", "patterns == []",
                   "is_protected"),
        BranchSpec("HOST-EXACT", "Literal pattern equals host",
                   "host == pattern", "is_protected"),
        BranchSpec("HOST-WILDCARD-SUB", "Host is a subdomain of a wildcard",
                   "host.endswith('.' + domain)", "is_protected"),
        BranchSpec("HOST-WILDCARD-APEX", "Host equals a wildcard's domain",
                   "host == domain", "is_protected"),
        BranchSpec("HOST-NO-MATCH", "No pattern matches",
                   "all patterns miss", "is_protected"),
        # Token codec
        BranchSpec("TOKEN-ISSUE", "Token issued", "always", "issue_token"),
        BranchSpec("TOKEN-VALID", "Token passes every check",
                   "well formed, unexpired, signature matches", "verify_token"),
        BranchSpec("TOKEN-MALFORMED", "Token cannot be parsed",
                   "not two parts or non-numeric expiry", "verify_token"),
        BranchSpec("TOKEN-EXPIRED", "Token expiry passed",
                   "expires_at < now", "verify_token"),
        BranchSpec("TOKEN-BAD-SIG", "Signature mismatch",
                   "recomputed signature differs", "verify_token"),
        # Anti-forgery
        BranchSpec("NONCE-CURRENT", "Nonce from the current tick",
                   "digest(tick) matches", "verify_nonce"),
        BranchSpec("NONCE-PREVIOUS", "Nonce from the previous tick",
                   "digest(tick - 1) matches", "verify_nonce"),
        BranchSpec("NONCE-INVALID", "Nonce missing or unknown",
                   "no digest matches", "verify_nonce"),
        # Password hashing
        BranchSpec("PWD-EMPTY", "Empty password cannot be hashed",
                   "secret == ''", "hash_password"),
        BranchSpec("PWD-VALID", "Password hashed", "secret != ''",
                   "hash_password"),
        BranchSpec("VERIFY-MATCH", "Secret matches stored hash",
                   "argon2 verify succeeds", "verify_password"),
        BranchSpec("VERIFY-MISMATCH", "Secret does not match",
                   "argon2 verify fails", "verify_password"),
        BranchSpec("VERIFY-BAD-FMT", "Stored hash unreadable",
                   "argon2 cannot parse hash", "verify_password"),
        # Submission
        BranchSpec("SUBMIT-BAD-NONCE", "Anti-forgery check failed",
                   "nonce missing or invalid", "attempt"),
        BranchSpec("SUBMIT-NO-SECRET", "No secret submitted",
                   "secret missing or empty", "attempt"),
        BranchSpec("SUBMIT-NO-PASSWORD", "No password configured",
                   "stored_hash == ''", "attempt"),
        BranchSpec("SUBMIT-ACCEPTED", "Secret verified",
                   "hasher.verify is True", "attempt"),
        BranchSpec("SUBMIT-REJECTED", "Secret wrong",
                   "hasher.verify is False", "attempt"),
        # Gate decision
        BranchSpec("GATE-NOT-GUARDED", "Request is not the guarded route",
                   "route != GUARDED", "decide"),
        BranchSpec("GATE-BYPASS", "Async endpoint or confirmation endpoint",
                   "route in (ASYNC, CONFIRMATION)", "decide"),
        BranchSpec("GATE-HOST-OPEN", "Host not in the protected set",
                   "not is_protected(host)", "decide"),
        BranchSpec("GATE-NO-PASSWORD", "No password configured",
                   "password_hash == ''", "decide"),
        BranchSpec("GATE-TOKEN-VALID", "Caller holds a valid token",
                   "verify_token is True", "decide"),
        BranchSpec("GATE-SUBMIT-ACCEPTED", "Form submission accepted",
                   "attempt is Accepted", "decide"),
        BranchSpec("GATE-CHALLENGE", "Show the password form",
                   "no earlier state matched", "decide"),
        BranchSpec("GATE-ERROR-OPEN", "Failure before the host is known to be gated",
                   "clock or store raised", "decide"),
        BranchSpec("GATE-ERROR-CLOSED", "Failure while checking credentials",
                   "codec, submission or nonce raised", "decide"),
        # Async endpoint
        BranchSpec("ASYNC-ACCEPTED", "Async submission accepted",
                   "attempt is Accepted", "verify_async"),
        BranchSpec("ASYNC-REJECTED", "Async submission rejected",
                   "attempt is Rejected", "verify_async"),
        # Settings API
        BranchSpec("ADMIN-DISABLED", "Settings API switched off",
                   "ADMIN_TOKEN == ''", "require_admin"),
        BranchSpec("ADMIN-NO-TOKEN", "No bearer token sent",
                   "authorization header missing", "require_admin"),
        BranchSpec("ADMIN-BAD-TOKEN", "Bearer token does not match",
                   "token != ADMIN_TOKEN", "require_admin"),
        # Settings
        BranchSpec("SAVE-KEEP-HASH", "Empty password keeps the stored hash",
                   "update.password in ('', None)", "save_settings"),
        BranchSpec("SAVE-NEW-HASH", "Non-empty password is hashed",
                   "update.password != ''", "save_settings"),
    ]

    return GateContract(
        token_ttl=token_ttl,
        operations={
            "is_protected": is_protected_spec,
            "sanitize_patterns": sanitize_spec,
            "issue_token": issue_token_spec,
            "verify_token": verify_token_spec,
        },
        branches=branches,
        settings_rules=SETTINGS_RULES,
    )


@dataclass(frozen=True)
class _HostsOnly:
    protected_hosts: list[str]
    password_hash: str = ""
