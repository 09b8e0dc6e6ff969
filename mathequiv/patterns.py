"""
Pattern matching and instantiation over the s-expression view of trees.

Declarative rules are written as ``pattern => skeleton`` pairs over the
nested-list view produced by ``mathequiv.tree.to_sexpr``.

Pattern syntax:
    ?x or ?x:expr      - match any expression, bind to x
    ?x:const           - match a number only
    ?x:var             - match a symbol only
    ?x:free(v)         - match an expression not containing the symbol v
                         (or the symbol bound to v)
    literal            - match exactly

Skeleton syntax:
    :x                 - substitute the bound value of x
    (! op args...)     - compute op over numeric args using a fold prelude;
                         left as (op args...) when it cannot be folded
    literal            - use as-is

Example:
    pattern = parse_sexpr("(+ ?x 0)")
    bindings = match(pattern, ["+", "y", 0])      # {"x": "y"}
    instantiate(parse_sexpr(":x"), bindings)      # "y"
"""

import re
from typing import Any, Callable, Dict, List, Optional, Union

from .tree import SexprType

NumericType = Union[int, float]
BindingsType = Dict[str, Any]

# FoldHandler: receives the numeric args, returns a result or None (can't fold)
FoldHandler = Callable[[List[NumericType]], Optional[NumericType]]
FoldFuncsType = Dict[str, FoldHandler]


# ============================================================
# Fold Operation Builders
# ============================================================

def nary_fold(identity: NumericType,
              binary_op: Callable[[NumericType, NumericType], NumericType]) -> FoldHandler:
    """Create an n-ary folder with an identity element.

    Examples:
        nary_fold(0, lambda a, b: a + b)  # (+) = 0, (+ x y z) = x+y+z
    """
    def handler(args: List[NumericType]) -> NumericType:
        result = identity
        for a in args:
            result = binary_op(result, a)
        return result
    return handler


def unary_only(f: Callable[[NumericType], NumericType]) -> FoldHandler:
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) != 1:
            return None
        return f(args[0])
    return handler


def binary_only(f: Callable[[NumericType, NumericType], Optional[NumericType]]) -> FoldHandler:
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) != 2:
            return None
        return f(args[0], args[1])
    return handler


def _exact_div(a: NumericType, b: NumericType) -> Optional[NumericType]:
    # Inexact integer quotients stay symbolic so no precision is lost.
    if b == 0:
        return None
    if isinstance(a, int) and isinstance(b, int) and a % b != 0:
        return None
    return a / b


def _small_power(a: NumericType, b: NumericType) -> Optional[NumericType]:
    if not isinstance(b, int) or b < 0 or b > 64:
        return None
    return a ** b


ARITHMETIC_PRELUDE: FoldFuncsType = {
    "+": nary_fold(0, lambda a, b: a + b),
    "*": nary_fold(1, lambda a, b: a * b),
    "-": binary_only(lambda a, b: a - b),
    "neg": unary_only(lambda a: -a),
    "/": binary_only(_exact_div),
    "frac": binary_only(_exact_div),
    "^": binary_only(_small_power),
}


# ============================================================
# Pattern text
# ============================================================

# ?x:free(v) is one atom even though it contains parentheses.
_SEXPR_TOKEN = re.compile(r"\?[^\s()]+:free\([^\s()]*\)|[()]|[^\s()]+")


def parse_sexpr(s: str) -> SexprType:
    """
    Parse an s-expression string (with pattern syntax) into a nested list.

    Examples:
        "(+ x 1)"        -> ["+", "x", 1]
        "(* ?c:const ?x)" -> ["*", ["?c", "c"], ["?", "x"]]
        ":x"             -> [":", "x"]
    """
    tokens = _SEXPR_TOKEN.findall(s)
    if not tokens:
        raise ValueError("Empty s-expression")
    expr, rest = _read(tokens, 0)
    if rest != len(tokens):
        raise ValueError(f"Trailing text in s-expression: {s!r}")
    return expr


def _read(tokens: List[str], i: int):
    if i >= len(tokens):
        raise ValueError("Unbalanced parentheses in s-expression")
    tok = tokens[i]
    if tok == "(":
        items = []
        i += 1
        while i < len(tokens) and tokens[i] != ")":
            item, i = _read(tokens, i)
            items.append(item)
        if i >= len(tokens):
            raise ValueError("Unbalanced parentheses in s-expression")
        return items, i + 1
    if tok == ")":
        raise ValueError("Unexpected ')' in s-expression")
    return _atom(tok), i + 1


def _atom(tok: str) -> SexprType:
    try:
        return int(tok)
    except ValueError:
        pass
    try:
        return float(tok)
    except ValueError:
        pass

    if tok.startswith("?") and len(tok) > 1:
        rest = tok[1:]
        if ":" not in rest:
            return ["?", rest]
        name, kind = rest.split(":", 1)
        if kind == "const":
            return ["?c", name]
        if kind == "var":
            return ["?v", name]
        if kind == "expr":
            return ["?", name]
        if kind.startswith("free(") and kind.endswith(")"):
            return ["?free", name, kind[5:-1].strip()]
        raise ValueError(f"Unknown pattern type {kind!r} in {tok!r}")

    if tok.startswith(":") and len(tok) > 1:
        return [":", tok[1:]]

    return tok


def format_sexpr(expr: SexprType) -> str:
    """
    Format an expression or pattern back to DSL text.

    Examples:
        ["+", "x", 1] -> "(+ x 1)"
        ["?c", "n"]   -> "?n:const"
    """
    if isinstance(expr, list):
        if len(expr) == 2 and expr[0] == "?":
            return f"?{expr[1]}"
        if len(expr) == 2 and expr[0] == ":":
            return f":{expr[1]}"
        if len(expr) == 2 and expr[0] == "?c":
            return f"?{expr[1]}:const"
        if len(expr) == 2 and expr[0] == "?v":
            return f"?{expr[1]}:var"
        if len(expr) == 3 and expr[0] == "?free":
            return f"?{expr[1]}:free({expr[2]})"
        return "(" + " ".join(format_sexpr(e) for e in expr) + ")"
    return str(expr)


# ============================================================
# Matching
# ============================================================

def _is_pattern_var(pat: Any, *kinds: str) -> bool:
    return isinstance(pat, list) and len(pat) >= 2 and pat[0] in kinds


def is_constant(exp: SexprType) -> bool:
    return isinstance(exp, (int, float)) and not isinstance(exp, bool)


def free_in(var: str, exp: SexprType) -> bool:
    """True if the symbol ``var`` occurs in ``exp`` (outside head position)."""
    if isinstance(exp, str):
        return exp == var
    if isinstance(exp, list) and exp:
        return any(free_in(var, sub) for sub in exp[1:])
    return False


def _bind(name: str, value: SexprType, bindings: BindingsType) -> Optional[BindingsType]:
    if name in bindings:
        return bindings if bindings[name] == value else None
    extended = dict(bindings)
    extended[name] = value
    return extended


def match(pat: SexprType, exp: SexprType,
          bindings: Optional[BindingsType] = None) -> Optional[BindingsType]:
    """
    Match a pattern against an expression.

    Returns:
        The (extended) bindings on success, None on failure. A variable
        used twice must bind equal values both times.
    """
    if bindings is None:
        bindings = {}

    if _is_pattern_var(pat, "?"):
        return _bind(pat[1], exp, bindings)
    if _is_pattern_var(pat, "?c"):
        return _bind(pat[1], exp, bindings) if is_constant(exp) else None
    if _is_pattern_var(pat, "?v"):
        return _bind(pat[1], exp, bindings) if isinstance(exp, str) else None
    if _is_pattern_var(pat, "?free"):
        excluded = bindings.get(pat[2], pat[2])
        if isinstance(excluded, str) and not free_in(excluded, exp):
            return _bind(pat[1], exp, bindings)
        return None

    if isinstance(pat, list):
        if not isinstance(exp, list) or len(pat) != len(exp):
            return None
        for p, e in zip(pat, exp):
            bindings = match(p, e, bindings)
            if bindings is None:
                return None
        return bindings

    if is_constant(pat):
        return bindings if is_constant(exp) and pat == exp else None
    return bindings if pat == exp else None


# ============================================================
# Instantiation
# ============================================================

def instantiate(skeleton: SexprType, bindings: BindingsType,
                fold_funcs: Optional[FoldFuncsType] = None) -> SexprType:
    """
    Instantiate a skeleton with bindings.

    Raises:
        KeyError: if the skeleton references an unbound variable
    """
    if isinstance(skeleton, list):
        if len(skeleton) == 2 and skeleton[0] == ":":
            return bindings[skeleton[1]]
        if len(skeleton) >= 2 and skeleton[0] == "!":
            op = skeleton[1]
            args = [instantiate(a, bindings, fold_funcs) for a in skeleton[2:]]
            folded = _try_fold(op, args, fold_funcs)
            if folded is not None:
                return folded
            return [op] + args
        return [instantiate(s, bindings, fold_funcs) for s in skeleton]
    return skeleton


def _try_fold(op: str, args: List[SexprType],
              fold_funcs: Optional[FoldFuncsType]) -> Optional[NumericType]:
    if not fold_funcs or op not in fold_funcs:
        return None
    if not all(is_constant(a) for a in args):
        return None
    try:
        result = fold_funcs[op](args)
    except (ArithmeticError, ValueError):
        return None
    if result is None:
        return None
    if isinstance(result, float) and result.is_integer():
        return int(result)
    return result
