"""Tests for trigonometric rules."""

from fractions import Fraction as Rational

import pytest

from mathequiv.canonicalizer import canonicalize
from mathequiv.parser import parse_latex
from mathequiv.tree import BinaryOp, Fraction, FunctionCall, Number, Power, Sqrt, Symbol, UnaryOp
from mathequiv.trig import (
    TRIG_RULES, angle_multiple, cos_exact, pythagorean_identity, sin_exact, tan_exact,
    tangent_as_ratio, trig_special_values,
)

x = Symbol("x")
HALF = Fraction(Number(1), Number(2))


def canon(markup: str) -> str:
    return canonicalize(parse_latex(markup)).canonical_string


def sin(arg):
    return FunctionCall("sin", (arg,))


def cos(arg):
    return FunctionCall("cos", (arg,))


class TestAngles:
    """Tests for reading angles as multiples of pi."""

    @pytest.mark.parametrize("markup,expected", [
        ("\\pi", Rational(1)),
        ("\\frac{\\pi}{6}", Rational(1, 6)),
        ("2\\pi", Rational(2)),
        ("0", Rational(0)),
    ])
    def test_multiples(self, markup, expected):
        assert angle_multiple(parse_latex(markup)) == expected

    def test_not_an_angle(self):
        assert angle_multiple(x) is None
        assert angle_multiple(Number(1)) is None


class TestExactValues:
    """Tests for the special value tables."""

    def test_sin(self):
        assert sin_exact(30) == HALF
        assert sin_exact(150) == HALF
        assert sin_exact(210) == UnaryOp("-", HALF)
        assert sin_exact(180) == Number(0)
        assert sin_exact(20) is None

    def test_cos(self):
        assert cos_exact(0) == Number(1)
        assert cos_exact(180) == Number(-1)
        assert cos_exact(60) == HALF

    def test_tan(self):
        assert tan_exact(45) == Number(1)
        assert tan_exact(135) == Number(-1)
        assert tan_exact(90) is None


class TestRules:
    """Tests for individual trigonometric rules."""

    def test_special_value(self):
        assert trig_special_values.apply(sin(Symbol("pi"))) == Number(0)

    def test_special_value_unknown_angle(self):
        """Angles outside the table are left alone."""
        node = sin(Fraction(Symbol("pi"), Number(5)))
        assert trig_special_values.apply(node) is None

    def test_pythagorean_identity(self):
        tree = BinaryOp("+", Power(sin(x), Number(2)), Power(cos(x), Number(2)))
        assert pythagorean_identity.apply(tree) == Number(1)

    def test_pythagorean_needs_same_argument(self):
        tree = BinaryOp("+", Power(sin(x), Number(2)), Power(cos(Symbol("y")), Number(2)))
        assert pythagorean_identity.apply(tree) is None

    def test_pythagorean_needs_same_coefficient(self):
        tree = BinaryOp("+", BinaryOp("*", Number(2), Power(sin(x), Number(2))),
                        Power(cos(x), Number(2)))
        assert pythagorean_identity.apply(tree) is None

    def test_tangent_as_ratio(self):
        assert tangent_as_ratio.apply(FunctionCall("tan", (x,))) == Fraction(sin(x), cos(x))

    def test_category(self):
        assert {r.category for r in TRIG_RULES} == {"trig"}


class TestCanonicalForms:
    """End-to-end canonical strings for trigonometric expressions."""

    @pytest.mark.parametrize("markup,expected", [
        ("\\sin(\\frac{\\pi}{6})", "\\frac{1}{2}"),
        ("\\sin(\\pi/4)", "\\frac{\\sqrt{2}}{2}"),
        ("\\cos(\\pi)", "-1"),
        ("\\sin(2\\pi)", "0"),
        ("\\tan(\\frac{\\pi}{4})", "1"),
        ("\\sin^2 x + \\cos^2 x", "1"),
        ("3\\sin^2 x + 3\\cos^2 x", "3"),
        ("x + \\sin^2 x + \\cos^2 x", "1 + x"),
        ("\\sin(-x)", "-\\sin(x)"),
        ("\\cos(-x)", "\\cos(x)"),
        ("\\tan x", "\\frac{\\sin(x)}{\\cos(x)}"),
        ("\\sin(\\frac{\\pi}{5})", "\\sin(\\frac{\\pi}{5})"),
    ])
    def test_canonical_string(self, markup, expected):
        assert canon(markup) == expected

    def test_identity_in_either_order(self):
        assert canon("\\cos^2 x + \\sin^2 x") == canon("1")

    def test_root_values_kept_exact(self):
        assert canon("\\cos(\\frac{\\pi}{6})") == str(Fraction(Sqrt(Number(3)), Number(2)))
