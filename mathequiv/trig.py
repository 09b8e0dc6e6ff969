"""
Trigonometric canonicalization rules.

Special values cover sin, cos and tan at rational multiples of pi whose
angle is a multiple of 30 or 45 degrees. The values are exact trees, e.g.
sin(pi/4) becomes \\frac{\\sqrt{2}}{2}.
"""

from fractions import Fraction as Rational
from typing import List, Optional, Tuple

from .algebra import (build_sum, is_sum, negate, numeric_value, positive_form,
                      split_term, sum_terms)
from .rules import Rule, rule
from .tree import Fraction, FunctionCall, Node, Number, Power, Sqrt, Symbol, UnaryOp

CATEGORY = "trig"

_HALF = Fraction(Number(1), Number(2))
_SQRT2_OVER_2 = Fraction(Sqrt(Number(2)), Number(2))
_SQRT3_OVER_2 = Fraction(Sqrt(Number(3)), Number(2))
_SQRT3_OVER_3 = Fraction(Sqrt(Number(3)), Number(3))
_SQRT3 = Sqrt(Number(3))

# sin on [0, 90] and tan on [0, 90), in degrees
_SIN_DEGREES = {0: Number(0), 30: _HALF, 45: _SQRT2_OVER_2, 60: _SQRT3_OVER_2, 90: Number(1)}
_TAN_DEGREES = {0: Number(0), 30: _SQRT3_OVER_3, 45: Number(1), 60: _SQRT3}


def _call(name: str, node: Node) -> Optional[Node]:
    """The single argument of ``name(arg)``, or None."""
    if isinstance(node, FunctionCall) and node.name == name and len(node.args) == 1:
        return node.args[0]
    return None


def angle_multiple(node: Node) -> Optional[Rational]:
    """The angle as a rational multiple of pi, if it is one.

    Examples:
        \\frac{\\pi}{6} -> 1/6,  2\\pi -> 2,  0 -> 0,  x -> None
    """
    value = numeric_value(node)
    if value is not None:
        return Rational(0) if value == 0 else None
    if isinstance(node, Symbol):
        return Rational(1) if node.name == "pi" else None
    if isinstance(node, Fraction):
        denominator = numeric_value(node.denominator)
        if denominator is None or isinstance(denominator, float) or denominator == 0:
            return None
        inner = angle_multiple(node.numerator)
        return None if inner is None else inner / denominator
    coef, factors = split_term(node)
    if isinstance(coef, float) or len(factors) != 1 or factors[0] is node:
        return None
    inner = angle_multiple(factors[0])
    return None if inner is None else inner * coef


def _signed(value: Node, negative: bool) -> Node:
    return negate(value) if negative else value


def sin_exact(degrees: int) -> Optional[Node]:
    degrees %= 360
    negative = degrees >= 180
    if negative:
        degrees -= 180
    if degrees > 90:
        degrees = 180 - degrees
    value = _SIN_DEGREES.get(degrees)
    return None if value is None else _signed(value, negative and degrees != 0)


def cos_exact(degrees: int) -> Optional[Node]:
    return sin_exact(degrees + 90)


def tan_exact(degrees: int) -> Optional[Node]:
    degrees %= 180
    if degrees == 90:
        return None
    negative = degrees > 90
    if negative:
        degrees = 180 - degrees
    value = _TAN_DEGREES.get(degrees)
    return None if value is None else _signed(value, negative)


_EXACT = {"sin": sin_exact, "cos": cos_exact, "tan": tan_exact}


def _special_angle(node: Node) -> Optional[Tuple[str, int]]:
    if not (isinstance(node, FunctionCall) and node.name in _EXACT and len(node.args) == 1):
        return None
    multiple = angle_multiple(node.args[0])
    if multiple is None:
        return None
    degrees = multiple * 180
    if degrees.denominator != 1:
        return None
    return node.name, int(degrees)


@rule("trig-special-values", 95, "sin, cos and tan at multiples of 30 and 45 degrees",
      when=lambda n: _special_angle(n) is not None, category=CATEGORY)
def trig_special_values(node: FunctionCall) -> Node:
    name, degrees = _special_angle(node)
    value = _EXACT[name](degrees)
    return node if value is None else value


def _squared_trig(factors: List[Node]) -> Optional[Tuple[str, Node]]:
    if len(factors) != 1:
        return None
    factor = factors[0]
    if not (isinstance(factor, Power) and isinstance(factor.exponent, Number)
            and factor.exponent.value == 2):
        return None
    for name in ("sin", "cos"):
        arg = _call(name, factor.base)
        if arg is not None:
            return name, arg
    return None


@rule("pythagorean-identity", 100, "c sin^2(u) + c cos^2(u) = c",
      when=is_sum, category=CATEGORY)
def pythagorean_identity(node: Node) -> Node:
    terms = sum_terms(node)
    for i, (coef, factors) in enumerate(terms):
        squared = _squared_trig(factors)
        if squared is None:
            continue
        partner = "cos" if squared[0] == "sin" else "sin"
        for j in range(i + 1, len(terms)):
            other_coef, other_factors = terms[j]
            other = _squared_trig(other_factors)
            if other is not None and other[0] == partner and other[1] == squared[1] \
                    and other_coef == coef:
                rest = terms[:i] + [(coef, [])] + terms[i + 1:j] + terms[j + 1:]
                return build_sum(rest)
    return node


def _negated_argument(name: str):
    def test(node: Node) -> bool:
        arg = _call(name, node)
        return arg is not None and positive_form(arg) is not None
    return test


@rule("sine-odd-function", 90, "sin(-u) = -sin(u)",
      when=_negated_argument("sin"), category=CATEGORY)
def sine_odd_function(node: FunctionCall) -> Node:
    return UnaryOp("-", FunctionCall("sin", (positive_form(node.args[0]),)))


@rule("cosine-even-function", 90, "cos(-u) = cos(u)",
      when=_negated_argument("cos"), category=CATEGORY)
def cosine_even_function(node: FunctionCall) -> Node:
    return FunctionCall("cos", (positive_form(node.args[0]),))


@rule("tangent-as-ratio", 75, "tan(u) = sin(u) / cos(u)",
      when=lambda n: _call("tan", n) is not None, category=CATEGORY)
def tangent_as_ratio(node: FunctionCall) -> Node:
    arg = node.args[0]
    return Fraction(FunctionCall("sin", (arg,)), FunctionCall("cos", (arg,)))


TRIG_RULES: List[Rule] = [
    pythagorean_identity,
    trig_special_values,
    sine_odd_function,
    cosine_even_function,
    tangent_as_ratio,
]
