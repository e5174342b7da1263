"""Contract conformance tests.

These tests are *driven by* the contract: they iterate over every settings
rule, postcondition and algebraic property defined in
``contract.build_contract`` and check the implementation satisfies them.
New rules and properties are picked up without writing new test code.
"""
from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

import hosts
import tokens
from contract import SETTINGS_RULES, build_contract, validate_settings
from models import GateSettings
from test_whitebox import BRANCH_COVERAGE
from validation.counterexample_search import run_search

CONTRACT = build_contract(token_ttl=3600)
KEY = b"contract-signing-key"
T0 = 1_700_000_000

label = st.from_regex(r"[a-z0-9]{1,10}", fullmatch=True)
domain = st.lists(label, min_size=1, max_size=3).map(".".join)
text = st.text(min_size=1, max_size=40)

# Arguments for each property, by operation and arity.
_ARGS = {
    ("is_protected", 1): st.tuples(domain),
    ("is_protected", 2): st.tuples(label, domain),
    ("sanitize_patterns", 1): st.tuples(st.lists(st.text(max_size=30), max_size=6)),
    ("issue_token", 2): st.tuples(text, text),
    ("verify_token", 3): st.tuples(text, text, text),
}
_MODULES = {
    "is_protected": hosts,
    "sanitize_patterns": hosts,
    "issue_token": tokens,
    "verify_token": tokens,
}


def _good_settings(**overrides) -> GateSettings:
    """Build a known-valid configuration, optionally overriding fields."""
    defaults = dict(
        protected_hosts=["staging.example.com", "*.dev.example.com",
                         "localhost:8080"],
        password_hash="$argon2id$v=19$m=8,t=1,p=1$c2FsdA$aGFzaA",
    )
    defaults.update(overrides)
    return GateSettings(**defaults)


def _find_rule(rule_id: str):
    for r in SETTINGS_RULES:
        if r.id == rule_id:
            return r
    raise ValueError(f"Rule not found: {rule_id}")


# ===================================================================
# SETTINGS RULES
# ===================================================================

class TestAllRulesPassForValidSettings:
    """Every settings rule must pass for a well-formed configuration."""

    def test_good_settings_pass_all(self):
        report = validate_settings(_good_settings())
        assert report.passed, report.summary()

    def test_empty_settings_pass_all(self):
        report = validate_settings(GateSettings())
        assert report.passed, report.summary()

    @pytest.mark.parametrize("rule", SETTINGS_RULES, ids=lambda r: r.id)
    def test_rule_passes_for_valid(self, rule):
        assert rule.check(_good_settings()) is True, f"Rule {rule.id} should pass"


class TestIndividualRuleDetection:
    """Each rule should detect its specific violation."""

    @pytest.mark.parametrize("rule_id,hosts_value", [
        ("CFG-HOST-STR", [""]),
        ("CFG-HOST-LOWER", ["Staging.example.com"]),
        ("CFG-HOST-SCHEME", ["https://x.com"]),
        ("CFG-HOST-PATH", ["x.com/checkout"]),
        ("CFG-HOST-SPACE", ["x .com"]),
        ("CFG-HOST-UNIQUE", ["x.com", "x.com"]),
        ("CFG-HOST-WILDCARD", ["x.*.com"]),
        ("CFG-HOST-WILDCARD", ["*."]),
    ])
    def test_host_rule_detects_violation(self, rule_id, hosts_value):
        rule = _find_rule(rule_id)
        assert rule.check(_good_settings(protected_hosts=hosts_value)) is False

    def test_hash_rule_detects_non_string(self):
        rule = _find_rule("CFG-HASH-STR")
        bad = _good_settings().model_copy(update={"password_hash": None})
        assert rule.check(bad) is False

    def test_empty_hash_is_allowed(self):
        rule = _find_rule("CFG-HASH-STR")
        assert rule.check(_good_settings(password_hash="")) is True


class TestValidationReport:

    def test_report_summary_all_pass(self):
        report = validate_settings(_good_settings())
        assert "All" in report.summary()
        assert "passed" in report.summary()

    def test_report_summary_with_failures(self):
        report = validate_settings(_good_settings(protected_hosts=["A.com/x"]))
        assert not report.passed
        assert {f.rule_id for f in report.failures} == {
            "CFG-HOST-LOWER", "CFG-HOST-PATH",
        }
        assert "failed" in report.summary()

    def test_rule_that_raises_counts_as_failure(self):
        report = validate_settings(object())
        assert not report.passed


# ===================================================================
# POSTCONDITIONS
# ===================================================================

class TestPostconditions:

    @given(host=domain, patterns=st.lists(domain, max_size=4))
    @settings(max_examples=100)
    def test_is_protected_postconditions(self, host, patterns):
        result = hosts.is_protected(host, patterns)
        for post in CONTRACT.operations["is_protected"].postconditions:
            assert post.check(host, patterns, result), post.name

    @given(raw=st.lists(st.text(max_size=30), max_size=6))
    @settings(max_examples=200)
    def test_sanitize_postconditions(self, raw):
        result = hosts.sanitize_patterns(raw)
        for post in CONTRACT.operations["sanitize_patterns"].postconditions:
            assert post.check(raw, result), post.name

    @given(h=text, site=text)
    @settings(max_examples=100)
    def test_issue_token_postconditions(self, h, site):
        result = tokens.issue_token(KEY, h, site, T0, CONTRACT.token_ttl)
        for post in CONTRACT.operations["issue_token"].postconditions:
            assert post.check(result), post.name

    @given(token=st.text(max_size=80))
    @settings(max_examples=100)
    def test_verify_token_postconditions(self, token):
        result = tokens.verify_token(KEY, token, "h", "s", T0)
        for post in CONTRACT.operations["verify_token"].postconditions:
            assert post.check(result), post.name

    def test_issue_token_preconditions(self):
        for pre in CONTRACT.operations["issue_token"].preconditions:
            assert pre.check(CONTRACT.token_ttl), pre.name


# ===================================================================
# ALGEBRAIC PROPERTIES
# ===================================================================

class TestAlgebraicProperties:
    """Every algebraic property in the contract holds for random inputs."""

    @pytest.mark.parametrize(
        "op_name,prop", CONTRACT.all_properties,
        ids=[f"{op}:{p.name}" for op, p in CONTRACT.all_properties],
    )
    def test_property(self, op_name, prop):
        args_st = _ARGS[(op_name, prop.arity)]
        module = _MODULES[op_name]

        @given(args=args_st)
        @settings(max_examples=100)
        def check(args):
            assert prop.check(module, *args), (
                f"Property '{prop.name}' failed for {op_name}{args}"
            )

        check()

    def test_every_property_has_a_strategy(self):
        for op_name, prop in CONTRACT.all_properties:
            assert (op_name, prop.arity) in _ARGS, (op_name, prop.name)


# ===================================================================
# BRANCH COVERAGE
# ===================================================================

class TestBranchCoverage:

    def test_every_branch_has_a_test(self):
        missing = CONTRACT.branch_ids - set(BRANCH_COVERAGE)
        assert not missing, f"Branches without tests: {sorted(missing)}"

    def test_no_unknown_branches_in_matrix(self):
        unknown = set(BRANCH_COVERAGE) - CONTRACT.branch_ids
        assert not unknown, f"Unknown branches: {sorted(unknown)}"

    def test_branch_ids_unique(self):
        ids = [b.id for b in CONTRACT.branches]
        assert len(ids) == len(set(ids))


# ===================================================================
# COUNTEREXAMPLE SEARCH
# ===================================================================

class TestCounterexampleSearch:

    def test_search_finds_nothing(self):
        report = run_search()
        assert report.checks_run > 0
        assert report.passed, report.summary()
