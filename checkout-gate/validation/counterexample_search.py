"""Counterexample search -- discovers gaps in implementation or tests.

This module runs independently of the test suite.  It systematically
searches for:

1. Postcondition violations: inputs where an operation's result breaks
   the contract.
2. Property violations: algebraic relationships that fail for some
   input combination.
3. Gate violations: request shapes for which the gate decides something
   it must never decide (challenging an open host, unlocking without
   the password, raising instead of failing open).

Run directly::

    cd checkout-gate
    python -m validation.counterexample_search
"""
from __future__ import annotations

import itertools
import sys
from dataclasses import dataclass, field

sys.path.insert(0, ".")

import hosts
import tokens
from contract import COOKIE_NAME, NONCE_FIELD, SECRET_FIELD, GateContract, build_contract
from gate import CheckoutGate
from models import Allow, Challenge, GateSettings, RedirectTo, RequestContext, RouteKind
from nonces import VERIFY_ACTION, NonceService
from passwords import Argon2SecretHasher
from store import InMemoryCredentialStore
from submission import SubmissionHandler
from tokens import TokenCodec


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class Counterexample:
    category: str
    operation: str
    inputs: tuple
    expected: str
    actual: str
    description: str


@dataclass
class SearchReport:
    counterexamples: list[Counterexample] = field(default_factory=list)
    checks_run: int = 0

    @property
    def passed(self) -> bool:
        return len(self.counterexamples) == 0

    def summary(self) -> str:
        lines = [
            "Counterexample Search Report",
            "=" * 40,
            f"Total checks: {self.checks_run}",
            f"Counterexamples found: {len(self.counterexamples)}",
        ]
        if self.counterexamples:
            lines.append("")
            for i, cx in enumerate(self.counterexamples, 1):
                lines.append(f"  [{i}] {cx.category} / {cx.operation}")
                lines.append(f"      Inputs:   {cx.inputs}")
                lines.append(f"      Expected: {cx.expected}")
                lines.append(f"      Actual:   {cx.actual}")
                lines.append(f"      {cx.description}")
        else:
            lines.append("\nNo counterexamples found -- all checks passed.")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Sample inputs
# ---------------------------------------------------------------------------

HOSTS = [
    "example.com",
    "staging.example.com",
    "a.b.staging.example.com",
    "notexample.com",
    "localhost",
    "localhost:8080",
    "127.0.0.1:8000",
    "STAGING.Example.COM",
    "",
]

PATTERN_SETS = [
    [],
    ["staging.example.com"],
    ["*.example.com"],
    ["*.staging.example.com", "localhost:8080"],
    ["example.com", "*.dev.example.com"],
]

RAW_ENTRIES = [
    "https://Staging.Example.com/checkout/",
    "http://localhost:8080",
    "*.example.com",
    "*.*.example.com",
    "   ",
    "staging example.com",
    "ftp://files.example.com/x",
    "example.com\nexample.com",
    "ünïcode.example.com",
    "*.",
]

HASHES = ["$argon2id$v=19$m=8,t=1,p=1$c2FsdA$aGFzaA", "h", "a|b", "é"]
SITES = ["https://staging.example.com", "http://localhost:8080", "x|y", "é"]
MALFORMED_TOKENS = [
    None, "", "|", "abc", "a|b|c", "sig|", "sig|abc", "sig|-1", "sig|1.5",
    "sig|٣", "é|1", "|" * 10, "sig|" + "9" * 5000,
]

KEY = b"counterexample-key"
T0 = 1_700_000_000


# ---------------------------------------------------------------------------
# Search: host matching
# ---------------------------------------------------------------------------

def search_host_properties(
    contract: GateContract,
) -> tuple[list[Counterexample], int]:
    """Run every is_protected property and postcondition over sample hosts."""
    cxs: list[Counterexample] = []
    checks = 0
    op = contract.operations["is_protected"]

    for host, patterns in itertools.product(HOSTS, PATTERN_SETS):
        checks += 1
        try:
            result = hosts.is_protected(host, patterns)
        except Exception as e:
            cxs.append(Counterexample(
                category="unexpected_error",
                operation="is_protected",
                inputs=(host, patterns),
                expected="bool",
                actual=f"{type(e).__name__}: {e}",
                description="is_protected raised",
            ))
            continue
        for post in op.postconditions:
            if not post.check(host, patterns, result):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="is_protected",
                    inputs=(host, patterns),
                    expected=post.description,
                    actual=f"result={result!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    labels = [h for h in HOSTS if h and ":" not in h]
    for prop in op.properties:
        if prop.arity == 1:
            samples = [(h,) for h in labels]
        else:
            samples = [("www", h) for h in labels]
        for args in samples:
            checks += 1
            if not prop.check(hosts, *args):
                cxs.append(Counterexample(
                    category="property_violation",
                    operation="is_protected",
                    inputs=args,
                    expected=prop.description,
                    actual="False",
                    description=f"Property '{prop.name}' violated",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: sanitising
# ---------------------------------------------------------------------------

def search_sanitize_properties(
    contract: GateContract,
) -> tuple[list[Counterexample], int]:
    """Sanitised output must pass the settings rules and be a fixed point."""
    cxs: list[Counterexample] = []
    checks = 0
    op = contract.operations["sanitize_patterns"]

    inputs = [RAW_ENTRIES, "\n".join(RAW_ENTRIES)]
    inputs += [[a, b] for a, b in itertools.combinations(RAW_ENTRIES, 2)]

    for raw in inputs:
        checks += 1
        result = hosts.sanitize_patterns(raw)
        for post in op.postconditions:
            if not post.check(raw, result):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="sanitize_patterns",
                    inputs=(raw,),
                    expected=post.description,
                    actual=f"result={result!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))
        for prop in op.properties:
            checks += 1
            if not prop.check(hosts, raw):
                cxs.append(Counterexample(
                    category="property_violation",
                    operation="sanitize_patterns",
                    inputs=(raw,),
                    expected=prop.description,
                    actual=f"result={result!r}",
                    description=f"Property '{prop.name}' violated",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: tokens
# ---------------------------------------------------------------------------

def search_token_properties(
    contract: GateContract,
) -> tuple[list[Counterexample], int]:
    """Token postconditions, binding properties and malformed input."""
    cxs: list[Counterexample] = []
    checks = 0

    issue_op = contract.operations["issue_token"]
    for h, site in itertools.product(HASHES, SITES):
        checks += 1
        token = tokens.issue_token(KEY, h, site, T0, contract.token_ttl)
        for post in issue_op.postconditions:
            if not post.check(token):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="issue_token",
                    inputs=(h, site),
                    expected=post.description,
                    actual=f"token={token!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    for op_name in ("issue_token", "verify_token"):
        for prop in contract.operations[op_name].properties:
            if prop.arity == 2:
                samples = list(itertools.product(HASHES, SITES))
            else:
                samples = [
                    (a, b, c)
                    for a, b, c in itertools.product(HASHES, HASHES, SITES)
                ] + [
                    (h, a, b)
                    for h, a, b in itertools.product(HASHES, SITES, SITES)
                ]
            for args in samples:
                checks += 1
                if not prop.check(tokens, *args):
                    cxs.append(Counterexample(
                        category="property_violation",
                        operation=op_name,
                        inputs=args,
                        expected=prop.description,
                        actual="False",
                        description=f"Property '{prop.name}' violated",
                    ))

    for token in MALFORMED_TOKENS:
        checks += 1
        try:
            ok = tokens.verify_token(KEY, token, HASHES[0], SITES[0], T0)
        except Exception as e:
            cxs.append(Counterexample(
                category="unexpected_error",
                operation="verify_token",
                inputs=(token,),
                expected="False",
                actual=f"{type(e).__name__}: {e}",
                description="Malformed token must be rejected, not raise",
            ))
            continue
        if ok is not False:
            cxs.append(Counterexample(
                category="property_violation",
                operation="verify_token",
                inputs=(token,),
                expected="False",
                actual=repr(ok),
                description="Malformed token accepted",
            ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: gate decisions
# ---------------------------------------------------------------------------

def _build_gate(patterns: list[str], password: str | None,
                hasher: Argon2SecretHasher) -> CheckoutGate:
    password_hash = hasher.hash(password) if password else ""
    store = InMemoryCredentialStore(
        GateSettings(protected_hosts=patterns, password_hash=password_hash)
    )
    nonces = NonceService(b"counterexample-nonce-key")
    return CheckoutGate(
        store=store,
        codec=TokenCodec(KEY, 3600),
        submissions=SubmissionHandler(hasher, nonces),
        nonces=nonces,
        clock=lambda: float(T0),
    )


def search_gate_decisions() -> tuple[list[Counterexample], int]:
    """Every request shape on every configuration.

    Open hosts and non-guarded routes must always be allowed; a protected
    host with a password must never be allowed without proof of it.
    """
    cxs: list[Counterexample] = []
    checks = 0
    password = "counterexample-password"
    hasher = Argon2SecretHasher(time_cost=1, memory_cost=8, parallelism=1)

    routes = list(RouteKind)
    secrets_tried = [None, "", "wrong", password]
    cookies_tried = [
        {},
        {COOKIE_NAME: "forged|9999999999"},
        {COOKIE_NAME: "forged|" + "9" * 5000},
    ]

    for patterns, configured in itertools.product(PATTERN_SETS,
                                                  [None, password]):
        gate = _build_gate(patterns, configured, hasher)
        good_nonce = gate.nonces.create(VERIFY_ACTION, "sid", T0)

        for host, route, secret, cookies in itertools.product(
            HOSTS[:6], routes, secrets_tried, cookies_tried,
        ):
            form = {NONCE_FIELD: good_nonce}
            if secret is not None:
                form[SECRET_FIELD] = secret
            ctx = RequestContext(
                host=host,
                site_url="https://" + (host or "unknown"),
                route=route,
                method="POST" if secret is not None else "GET",
                cookies=cookies,
                form=form,
                session_id="sid",
            )
            checks += 1
            inputs = (patterns, bool(configured), host, route.value, secret,
                      bool(cookies))

            try:
                decision = gate.decide(ctx)
            except Exception as e:
                cxs.append(Counterexample(
                    category="unexpected_error",
                    operation="decide",
                    inputs=inputs,
                    expected="a decision",
                    actual=f"{type(e).__name__}: {e}",
                    description="decide must never raise",
                ))
                continue

            guarded = (route is RouteKind.GUARDED
                       and hosts.is_protected(host, patterns) and configured)

            if not guarded and not isinstance(decision, Allow):
                cxs.append(Counterexample(
                    category="gate_violation",
                    operation="decide",
                    inputs=inputs,
                    expected="Allow",
                    actual=repr(decision),
                    description="Request outside the gate was challenged",
                ))
            if guarded and isinstance(decision, Allow):
                cxs.append(Counterexample(
                    category="gate_violation",
                    operation="decide",
                    inputs=inputs,
                    expected="Challenge or RedirectTo",
                    actual=repr(decision),
                    description="Protected checkout reached without password",
                ))
            if isinstance(decision, RedirectTo) and secret != password:
                cxs.append(Counterexample(
                    category="gate_violation",
                    operation="decide",
                    inputs=inputs,
                    expected="Challenge",
                    actual=repr(decision),
                    description="Token issued for a wrong secret",
                ))
            if (isinstance(decision, Challenge)
                    and decision.failed != (secret is not None)):
                cxs.append(Counterexample(
                    category="gate_violation",
                    operation="decide",
                    inputs=inputs,
                    expected=f"failed={secret is not None}",
                    actual=repr(decision),
                    description="Failure flag does not match submission",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Top-level runner
# ---------------------------------------------------------------------------

def run_search() -> SearchReport:
    """Run complete counterexample search."""
    contract = build_contract()
    report = SearchReport()

    for search_fn in (
        lambda: search_host_properties(contract),
        lambda: search_sanitize_properties(contract),
        lambda: search_token_properties(contract),
        search_gate_decisions,
    ):
        cxs, checks = search_fn()
        report.counterexamples.extend(cxs)
        report.checks_run += checks

    return report


def main() -> None:
    """Run counterexample search and report results."""
    print("Running checkout gate counterexample search...\n")
    report = run_search()
    print(report.summary())

    if not report.passed:
        sys.exit(1)


if __name__ == "__main__":
    main()
