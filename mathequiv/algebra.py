"""
Algebraic canonicalization rules.

Most rules here work on a "term" view of the tree: a sum is a list of
``(coefficient, factors)`` pairs, where the coefficient is an exact int or
rational (or a float) and the factors are the non-numeric parts of the
product. Building sums and products always goes through ``build_sum`` and
``make_term`` so that every rule produces the same shapes:

    - sums are left-associated chains of "+" and "-"
    - only the first term of a sum carries a sign (a negative number or a
      unary minus); later terms are subtracted instead
    - the numeric coefficient of a term comes first: 4 * x, not x * 4
    - negative rationals are written -\\frac{p}{q}
"""

import math
from fractions import Fraction as Rational
from typing import Dict, List, Optional, Tuple, Union

from .rules import Rule, rule
from .tree import (
    BinaryOp, Fraction, Grouped, MULTIPLICATIVE_OPS, Node, Number, Power,
    Sqrt, Symbol, UnaryOp, to_string,
)

Numeric = Union[int, float, Rational]
Term = Tuple[Numeric, List[Node]]

CATEGORY = "algebra"


# ============================================================
# Numbers
# ============================================================

def numeric_value(node: Node) -> Optional[Numeric]:
    """Exact value of a numeric tree (number, integer fraction, negation)."""
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Fraction):
        n, d = node.numerator, node.denominator
        if isinstance(n, Number) and isinstance(d, Number) \
                and isinstance(n.value, int) and isinstance(d.value, int) and d.value != 0:
            return Rational(n.value, d.value)
        return None
    if isinstance(node, UnaryOp) and node.op == "-":
        inner = numeric_value(node.operand)
        return None if inner is None else -inner
    return None


def number_node(value: Numeric) -> Node:
    """Tree for a number; rationals become (possibly negated) fractions."""
    if isinstance(value, Rational):
        if value.denominator == 1:
            return Number(int(value.numerator))
        if value < 0:
            return UnaryOp("-", number_node(-value))
        return Fraction(Number(value.numerator), Number(value.denominator))
    return Number(value)


def negate(node: Node) -> Node:
    if isinstance(node, Number):
        return Number(-node.value)
    if isinstance(node, UnaryOp) and node.op == "-":
        return node.operand
    return UnaryOp("-", node)


def _finite(value: Numeric) -> bool:
    return not isinstance(value, float) or math.isfinite(value)


# ============================================================
# Terms and factors
# ============================================================

def is_transparent_group(node: Node) -> bool:
    """Parentheses and brackets that only group (not tuples or intervals)."""
    return (isinstance(node, Grouped) and node.left in ("(", "[")
            and not (isinstance(node.body, BinaryOp) and node.body.op == ","))


def product_factors(node: Node) -> List[Node]:
    """Flatten a product into its factors; a unary minus becomes a -1 factor."""
    if isinstance(node, BinaryOp) and node.op in MULTIPLICATIVE_OPS:
        return product_factors(node.left) + product_factors(node.right)
    if isinstance(node, UnaryOp):
        if node.op == "-":
            return [Number(-1)] + product_factors(node.operand)
        return product_factors(node.operand)
    if is_transparent_group(node) and isinstance(node.body, (BinaryOp, UnaryOp)) \
            and not (isinstance(node.body, BinaryOp) and node.body.op in ("+", "-")):
        return product_factors(node.body)
    return [node]


def split_term(node: Node) -> Term:
    """Split a term into its numeric coefficient and remaining factors.

    Example:
        split_term(-2x * 3y) -> (-6, [x, y])
    """
    coef: Numeric = 1
    factors = []
    for factor in product_factors(node):
        value = numeric_value(factor)
        if value is None:
            factors.append(factor)
        else:
            try:
                coef = coef * value
            except OverflowError:
                factors.append(factor)
    return coef, factors


def build_product(factors: List[Node]) -> Node:
    result = factors[0]
    for factor in factors[1:]:
        result = BinaryOp("*", result, factor)
    return result


def make_term(coef: Numeric, factors: List[Node]) -> Node:
    """Inverse of split_term: coefficient first, then the factors."""
    if coef < 0:
        return negate(make_term(-coef, factors))
    if not factors or coef == 0:
        return number_node(coef)
    if coef == 1:
        return build_product(factors)
    return build_product([number_node(coef)] + factors)


def positive_form(node: Node) -> Optional[Node]:
    """If ``node`` has a negative coefficient, the node with it negated."""
    coef, factors = split_term(node)
    if coef < 0:
        return make_term(-coef, factors)
    return None


def signed_terms(node: Node, sign: int = 1) -> List[Tuple[int, Node]]:
    """The terms of a (possibly nested) sum with their signs."""
    if isinstance(node, BinaryOp) and node.op == "+":
        return signed_terms(node.left, sign) + signed_terms(node.right, sign)
    if isinstance(node, BinaryOp) and node.op == "-":
        return signed_terms(node.left, sign) + signed_terms(node.right, -sign)
    if isinstance(node, UnaryOp):
        return signed_terms(node.operand, -sign if node.op == "-" else sign)
    if is_transparent_group(node):
        return signed_terms(node.body, sign)
    return [(sign, node)]


def sum_terms(node: Node) -> List[Term]:
    """A sum as a list of (coefficient, factors) pairs, signs folded in."""
    terms = []
    for sign, term in signed_terms(node):
        coef, factors = split_term(term)
        terms.append((sign * coef, factors))
    return terms


def build_sum(terms: List[Term]) -> Node:
    """Left-associated sum; later negative terms are subtracted."""
    if not terms:
        return Number(0)
    coef, factors = terms[0]
    result = make_term(coef, factors)
    for coef, factors in terms[1:]:
        if coef < 0:
            result = BinaryOp("-", result, make_term(-coef, factors))
        else:
            result = BinaryOp("+", result, make_term(coef, factors))
    return result


def is_sum(node: Node) -> bool:
    return isinstance(node, BinaryOp) and node.op in ("+", "-")


def is_simple_factor(node: Node) -> bool:
    """A symbol, or a symbol raised to a number."""
    if isinstance(node, Symbol):
        return True
    return (isinstance(node, Power) and isinstance(node.base, Symbol)
            and isinstance(node.exponent, Number))


def _factor_key(node: Node):
    return (0 if is_simple_factor(node) else 1, to_string(node), node.digest)


def _term_key(term: Term):
    coef, factors = term
    if not factors:
        return (0, "", b"", coef)
    product = build_product(factors)
    group = 1 if all(is_simple_factor(f) for f in factors) else 2
    return (group, to_string(product), product.digest, coef)


# ============================================================
# Arithmetic
# ============================================================

def _arithmetic(op: str, a: Numeric, b: Numeric) -> Optional[Numeric]:
    try:
        return _exact_arithmetic(op, a, b)
    except OverflowError:
        # A huge exact integer met a float.
        return None


def _exact_arithmetic(op: str, a: Numeric, b: Numeric) -> Optional[Numeric]:
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op in MULTIPLICATIVE_OPS:
        return a * b
    if op == "/":
        if b == 0:
            return None
        if isinstance(a, float) or isinstance(b, float):
            return a / b
        return Rational(a) / Rational(b)
    return None


def _power(base: Numeric, exponent: Numeric) -> Optional[Numeric]:
    if isinstance(exponent, Rational):
        if exponent.denominator != 1:
            return None
        exponent = int(exponent)
    if not isinstance(exponent, int) or abs(exponent) > 64:
        return None
    if base == 0 and exponent < 0:
        return None
    if isinstance(base, float):
        try:
            return base ** exponent
        except OverflowError:
            return None
    return Rational(base) ** exponent


def integer_root(n: int, k: int) -> Optional[int]:
    """Exact k-th root of a non-negative integer, if there is one."""
    if n < 0 or k < 2:
        return None
    if k == 2:
        r = math.isqrt(n)
        return r if r * r == n else None
    try:
        r = round(n ** (1.0 / k))
    except OverflowError:
        return None
    for candidate in (r - 1, r, r + 1):
        if candidate >= 0 and candidate ** k == n:
            return candidate
    return None


# ============================================================
# Rules
# ============================================================

@rule("unwrap-redundant-grouping", 100, "Parentheses that only group can be dropped",
      when=is_transparent_group, category=CATEGORY)
def unwrap_redundant_grouping(node: Grouped) -> Node:
    return node.body


@rule("flatten-addition", 100, "Nested sums become one chain of signed terms",
      when=is_sum, category=CATEGORY)
def flatten_addition(node: BinaryOp) -> Node:
    return build_sum(sum_terms(node))


def _is_double_negation(node: Node) -> bool:
    if not isinstance(node, UnaryOp):
        return False
    if node.op == "+":
        return True
    return isinstance(node.operand, UnaryOp)


@rule("collapse-double-negation", 95, "--x is x and unary plus has no effect",
      when=_is_double_negation, category=CATEGORY)
def collapse_double_negation(node: UnaryOp) -> Node:
    if node.op == "+":
        return node.operand
    inner = node.operand
    if inner.op == "-":
        return inner.operand
    return UnaryOp("-", inner.operand)


def _is_foldable(node: Node) -> bool:
    return isinstance(node, (UnaryOp, Fraction, BinaryOp, Power, Sqrt))


@rule("fold-numeric-constants", 90, "Evaluate arithmetic on numbers exactly",
      when=_is_foldable, category=CATEGORY)
def fold_numeric_constants(node: Node) -> Node:
    if isinstance(node, UnaryOp):
        if node.op == "-" and isinstance(node.operand, Number):
            return Number(-node.operand.value)
        return node

    if isinstance(node, Fraction):
        n, d = numeric_value(node.numerator), numeric_value(node.denominator)
        if n is None or d is None or d == 0:
            return node
        if isinstance(n, float) or isinstance(d, float):
            try:
                return Number(n / d)
            except OverflowError:
                return node
        return number_node(Rational(n) / Rational(d))

    if isinstance(node, BinaryOp):
        a, b = numeric_value(node.left), numeric_value(node.right)
        if a is None or b is None:
            return node
        result = _arithmetic(node.op, a, b)
        if result is None or not _finite(result):
            return node
        return number_node(result)

    if isinstance(node, Power):
        base, exponent = numeric_value(node.base), numeric_value(node.exponent)
        if base is None or exponent is None:
            return node
        result = _power(base, exponent)
        if result is None or not _finite(result):
            return node
        return number_node(result)

    if isinstance(node, Sqrt):
        body = node.body
        if not (isinstance(body, Number) and isinstance(body.value, int)):
            return node
        k = 2
        if node.index is not None:
            if not (isinstance(node.index, Number) and isinstance(node.index.value, int)):
                return node
            k = node.index.value
        root = integer_root(body.value, k)
        return node if root is None else Number(root)

    return node


@rule("normalize-fraction-signs", 85, "Signs move out of numerator and denominator",
      when=lambda n: isinstance(n, Fraction), category=CATEGORY)
def normalize_fraction_signs(node: Fraction) -> Node:
    numerator, denominator = node.numerator, node.denominator
    negative = False
    flipped = positive_form(numerator)
    if flipped is not None:
        numerator, negative = flipped, not negative
    flipped = positive_form(denominator)
    if flipped is not None:
        denominator, negative = flipped, not negative
    if numerator is node.numerator and denominator is node.denominator:
        return node
    result = Fraction(numerator, denominator)
    return UnaryOp("-", result) if negative else result


@rule("combine-like-terms", 80, "Terms with the same variable part are added",
      when=is_sum, category=CATEGORY)
def combine_like_terms(node: BinaryOp) -> Node:
    groups: Dict[Tuple[bytes, ...], List] = {}
    for coef, factors in sum_terms(node):
        key = tuple(sorted(f.digest for f in factors))
        if key in groups:
            groups[key][0] += coef
        else:
            groups[key] = [coef, factors]
    return build_sum([(coef, factors) for coef, factors in groups.values() if coef != 0])


@rule("division-as-fraction", 72, "a / b is written as a fraction",
      when=lambda n: isinstance(n, BinaryOp) and n.op == "/", category=CATEGORY)
def division_as_fraction(node: BinaryOp) -> Node:
    return Fraction(node.left, node.right)


@rule("explicit-multiplication", 70, "Juxtaposition, cdot and times become *",
      when=lambda n: isinstance(n, BinaryOp) and n.op in ("cdot", "times", "juxt"),
      category=CATEGORY)
def explicit_multiplication(node: BinaryOp) -> Node:
    return BinaryOp("*", node.left, node.right)


def _square_factor(factor: Node) -> Node:
    if isinstance(factor, Power):
        exponent = numeric_value(factor.exponent)
        if exponent is not None:
            return Power(factor.base, number_node(exponent * 2))
    return Power(factor, Number(2))


def _is_binomial_square(node: Node) -> bool:
    return (isinstance(node, Power) and isinstance(node.exponent, Number)
            and node.exponent.value == 2 and is_sum(node.base)
            and len(signed_terms(node.base)) == 2)


@rule("expand-binomial-square", 60, "(a + b)^2 = a^2 + 2ab + b^2",
      when=_is_binomial_square, category=CATEGORY)
def expand_binomial_square(node: Power) -> Node:
    (c1, f1), (c2, f2) = sum_terms(node.base)
    return build_sum([
        (c1 * c1, [_square_factor(f) for f in f1]),
        (2 * c1 * c2, f1 + f2),
        (c2 * c2, [_square_factor(f) for f in f2]),
    ])


@rule("sort-addition-terms", 40, "Constants first, then terms by variable part",
      when=is_sum, category=CATEGORY)
def sort_addition_terms(node: BinaryOp) -> Node:
    return build_sum(sorted(sum_terms(node), key=_term_key))


@rule("sort-multiplication-factors", 35, "Coefficient first, then factors in order",
      when=lambda n: isinstance(n, BinaryOp) and n.op == "*", category=CATEGORY)
def sort_multiplication_factors(node: BinaryOp) -> Node:
    coef, factors = split_term(node)
    return make_term(coef, sorted(factors, key=_factor_key))


ALGEBRA_RULES: List[Rule] = [
    unwrap_redundant_grouping,
    flatten_addition,
    collapse_double_negation,
    fold_numeric_constants,
    normalize_fraction_signs,
    combine_like_terms,
    division_as_fraction,
    explicit_multiplication,
    expand_binomial_square,
    sort_addition_terms,
    sort_multiplication_factors,
]
