"""Tests for the fixpoint canonicalizer."""

import logging

import pytest
from hypothesis import assume, given, settings, strategies as st

from mathequiv.canonicalizer import (
    DEFAULT_MAX_ITERATIONS, CanonicalizationResult, Canonicalizer, canonicalize,
)
from mathequiv.errors import CanonicalizationNonConvergence, ConfigurationError
from mathequiv.parser import parse_latex
from mathequiv.rules import RuleLibrary, rule
from mathequiv.tree import BinaryOp, Number, Power, Symbol, UnaryOp

a, b = Symbol("a"), Symbol("b")


@rule("a-to-b", 1, when=lambda n: n == a)
def a_to_b(node):
    return b


@rule("b-to-a", 1, when=lambda n: n == b)
def b_to_a(node):
    return a


PING_PONG = RuleLibrary([a_to_b, b_to_a])

leaves = st.one_of(
    st.sampled_from([Symbol("x"), Symbol("y"), Symbol("z")]),
    st.integers(min_value=0, max_value=9).map(Number),
)
trees = st.recursive(
    leaves,
    lambda children: st.one_of(
        st.tuples(st.sampled_from(["+", "-", "*", "juxt"]), children, children)
        .map(lambda t: BinaryOp(*t)),
        children.map(lambda c: UnaryOp("-", c)),
        st.tuples(children, st.integers(min_value=2, max_value=3))
        .map(lambda t: Power(t[0], Number(t[1]))),
    ),
    max_leaves=8,
)


class TestCanonicalize:
    """Tests for the rewrite loop."""

    def test_result(self):
        result = canonicalize(parse_latex("2x + 3x"))
        assert isinstance(result, CanonicalizationResult)
        assert result.canonical_string == "5 \\cdot x"
        assert result.converged
        assert result.iterations == 2
        assert result.applied_rules == (
            "explicit-multiplication", "explicit-multiplication", "combine-like-terms",
        )

    def test_nothing_to_do(self):
        """A tree no rule touches converges after one pass."""
        result = canonicalize(Symbol("x"))
        assert result.converged
        assert result.iterations == 1
        assert result.applied_rules == ()
        assert result.tree == Symbol("x")

    def test_region_names(self):
        assert canonicalize(parse_latex("1,000"), "eu").canonical_string == "1"

    def test_unknown_region(self):
        with pytest.raises(ConfigurationError):
            canonicalize(Symbol("x"), "MARS")

    @pytest.mark.parametrize("bad", [0, -1, True, 2.5, "5"])
    def test_bad_max_iterations(self, bad):
        with pytest.raises(ConfigurationError) as exc_info:
            canonicalize(Symbol("x"), max_iterations=bad)
        assert exc_info.value.field == "max_iterations"

    def test_float_tolerance(self):
        result = canonicalize(Number(3.14159), float_tolerance=0.01)
        assert result.canonical_string == "3.14"

    def test_custom_library(self):
        """An empty library leaves the tree as parsed."""
        result = Canonicalizer(RuleLibrary()).canonicalize(parse_latex("b + a"))
        assert result.canonical_string == "b + a"
        assert result.converged

    def test_default_iterations(self):
        assert DEFAULT_MAX_ITERATIONS == 100


class TestNonConvergence:
    """Tests for rule sets without a fixpoint."""

    def test_returns_partial_result(self):
        result = Canonicalizer(PING_PONG).canonicalize(a, max_iterations=5)
        assert not result.converged
        assert result.iterations == 5
        assert result.canonical_string == "b"

    def test_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="mathequiv.canonicalizer"):
            Canonicalizer(PING_PONG).canonicalize(a, max_iterations=4)
        record = next(r for r in caplog.records if "did not converge" in r.getMessage())
        assert record.iterations == 4
        assert record.partial == "a"

    def test_strict_raises(self):
        with pytest.raises(CanonicalizationNonConvergence) as exc_info:
            Canonicalizer(PING_PONG).canonicalize(a, max_iterations=3, strict=True)
        assert exc_info.value.iterations == 3
        assert exc_info.value.to_dict()["code"] == "NON_CONVERGENCE"


class TestTrace:
    """Tests for rewrite traces."""

    @pytest.fixture
    def result(self):
        return canonicalize(parse_latex("2x + 3x"), trace=True)

    def test_no_trace_by_default(self):
        assert canonicalize(parse_latex("2x + 3x")).trace is None

    def test_steps(self, result):
        trace = result.trace
        assert len(trace) == 3
        assert trace.rules_applied() == list(result.applied_rules)
        assert trace.final == result.tree
        assert [step.iteration for step in trace] == [1, 1, 1]

    def test_rule_counts(self, result):
        assert result.trace.rule_counts() == {
            "explicit-multiplication": 2, "combine-like-terms": 1,
        }

    def test_formats(self, result):
        trace = result.trace
        assert trace.format("rules") == (
            "explicit-multiplication -> explicit-multiplication -> combine-like-terms"
        )
        assert trace.format("compact").startswith("2 x + 3 x --[")
        assert trace.format("compact").endswith("--> 5 \\cdot x")
        assert trace.format().startswith("Initial: 2 x + 3 x")
        assert trace.format("chain").splitlines()[-1] == "5 \\cdot x"

    def test_summary(self, result):
        assert result.trace.summary() == (
            "3 steps using 2 unique rules. Most used: explicit-multiplication (2x)"
        )

    def test_to_dict(self, result):
        data = result.trace.to_dict()
        assert data["step_count"] == 3
        assert data["steps"][-1]["rule_name"] == "combine-like-terms"
        assert data["steps"][-1]["after"] == "5 \\cdot x"

    def test_empty_trace(self):
        trace = canonicalize(Symbol("x"), trace=True).trace
        assert not trace
        assert trace.summary() == "No rewriting performed"
        assert trace.format("rules") == "(no rules applied)"


class TestProperties:
    """Properties that hold for every tree."""

    @settings(max_examples=50, deadline=None)
    @given(tree=trees)
    def test_deterministic(self, tree):
        """The same input always gives the same canonical string."""
        assert canonicalize(tree).canonical_string == canonicalize(tree).canonical_string

    @settings(max_examples=50, deadline=None)
    @given(tree=trees)
    def test_idempotent(self, tree):
        """Canonicalizing a canonical tree changes nothing."""
        first = canonicalize(tree)
        assume(first.converged)
        second = canonicalize(first.tree)
        assert second.tree == first.tree
        assert second.canonical_string == first.canonical_string
        assert second.converged

    @settings(max_examples=50, deadline=None)
    @given(left=trees, right=trees)
    def test_addition_commutes(self, left, right):
        forward = canonicalize(BinaryOp("+", left, right))
        backward = canonicalize(BinaryOp("+", right, left))
        assume(forward.converged and backward.converged)
        assert forward.canonical_string == backward.canonical_string
