"""
Immutable expression trees.

A parsed expression is a tree of frozen dataclass nodes. Every node computes a
16-byte content digest when it is built, from its kind, its payload and the
digests of its children. Equality and hashing go through that digest, so
comparing two trees is O(1) no matter how large they are, and source spans
never take part in it.

Node kinds:
    Number(value)                 int or float; integral floats become ints
    Symbol(name)                  x, y, pi, x_1, alpha, ...
    UnaryOp(op, operand)          op in {"-", "+"}
    BinaryOp(op, left, right)     op in {"+", "-", "*", "/", ",", "cdot", "times", "juxt"}
    Power(base, exponent)
    Fraction(numerator, denominator)
    Sqrt(body, index=None)
    FunctionCall(name, args)
    Grouped(left, body, right)    delimiters (), [], \\{\\}, ||

Besides the LaTeX-like canonical string (``to_string``) every tree has an
s-expression view (``to_sexpr`` / ``from_sexpr``) that the pattern language
in ``mathequiv.patterns`` matches against:

    x + 2          ->  ["+", "x", 2]
    -x             ->  ["neg", "x"]
    x^{2}          ->  ["^", "x", 2]
    \\frac{a}{b}    ->  ["frac", "a", "b"]
    \\sqrt[3]{x}    ->  ["root", "x", 3]
    \\sin(x)        ->  ["sin", "x"]
    (x)            ->  ["paren", "x"]
"""

import hashlib
import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterator, List, Optional, Sequence, Set, Tuple, Union

NumericType = Union[int, float]

ADDITIVE_OPS = ("+", "-")
MULTIPLICATIVE_OPS = ("*", "cdot", "times", "juxt")
BINARY_OPS = ADDITIVE_OPS + MULTIPLICATIVE_OPS + ("/", ",")
UNARY_OPS = ("-", "+")

DELIMITERS = {"(": ")", "[": "]", "\\{": "\\}", "|": "|"}

GREEK_LETTERS = frozenset([
    "alpha", "beta", "gamma", "delta", "epsilon", "varepsilon", "zeta", "eta",
    "theta", "vartheta", "iota", "kappa", "lambda", "mu", "nu", "xi", "pi",
    "rho", "sigma", "tau", "upsilon", "phi", "varphi", "chi", "psi", "omega",
    "Gamma", "Delta", "Theta", "Lambda", "Xi", "Pi", "Sigma", "Phi", "Psi",
    "Omega", "infty",
])

# Function names printed as LaTeX commands; anything else uses \operatorname.
LATEX_FUNCTIONS = frozenset([
    "sin", "cos", "tan", "cot", "sec", "csc", "arcsin", "arccos", "arctan",
    "sinh", "cosh", "tanh", "log", "ln", "exp",
])


# ============================================================
# Nodes
# ============================================================

@dataclass(frozen=True)
class Span:
    """Half-open [start, end) character range in the source markup."""

    start: int
    end: int


class Node:
    """Base class for expression tree nodes."""

    kind = "node"

    def __post_init__(self):
        object.__setattr__(self, "_digest", self._compute_digest())

    def _payload(self) -> Tuple:
        return ()

    def _compute_digest(self) -> bytes:
        h = hashlib.blake2b(digest_size=16)
        h.update(repr((self.kind,) + self._payload()).encode("utf-8"))
        for child in self.children():
            h.update(b"\x00")
            h.update(child.digest)
        return h.digest()

    @property
    def digest(self) -> bytes:
        """Content digest; equal trees have equal digests."""
        return self._digest

    def children(self) -> Tuple["Node", ...]:
        return ()

    def with_children(self, children: Sequence["Node"]) -> "Node":
        """Rebuild this node around new children (same order as children())."""
        return self

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self._digest == other._digest

    def __ne__(self, other: Any) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self) -> int:
        return int.from_bytes(self._digest[:8], "big")

    def __str__(self) -> str:
        return to_string(self)


@dataclass(frozen=True, eq=False)
class Number(Node):
    value: NumericType
    literal: Optional[str] = field(default=None, compare=False)
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "num"

    def __post_init__(self):
        value = self.value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Number value must be int or float, got {type(value).__name__}")
        if isinstance(value, float) and value.is_integer() and abs(value) < 2 ** 53:
            object.__setattr__(self, "value", int(value))
        super().__post_init__()

    def _payload(self) -> Tuple:
        return (self.value,)

    @property
    def is_integer(self) -> bool:
        return isinstance(self.value, int)


@dataclass(frozen=True, eq=False)
class Symbol(Node):
    name: str
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "sym"

    def _payload(self) -> Tuple:
        return (self.name,)


@dataclass(frozen=True, eq=False)
class UnaryOp(Node):
    op: str
    operand: Node
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "unary"

    def _payload(self) -> Tuple:
        return (self.op,)

    def children(self) -> Tuple[Node, ...]:
        return (self.operand,)

    def with_children(self, children: Sequence[Node]) -> Node:
        return replace(self, operand=children[0])


@dataclass(frozen=True, eq=False)
class BinaryOp(Node):
    op: str
    left: Node
    right: Node
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "binary"

    def _payload(self) -> Tuple:
        return (self.op,)

    def children(self) -> Tuple[Node, ...]:
        return (self.left, self.right)

    def with_children(self, children: Sequence[Node]) -> Node:
        return replace(self, left=children[0], right=children[1])


@dataclass(frozen=True, eq=False)
class Power(Node):
    base: Node
    exponent: Node
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "pow"

    def children(self) -> Tuple[Node, ...]:
        return (self.base, self.exponent)

    def with_children(self, children: Sequence[Node]) -> Node:
        return replace(self, base=children[0], exponent=children[1])


@dataclass(frozen=True, eq=False)
class Fraction(Node):
    numerator: Node
    denominator: Node
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "frac"

    def children(self) -> Tuple[Node, ...]:
        return (self.numerator, self.denominator)

    def with_children(self, children: Sequence[Node]) -> Node:
        return replace(self, numerator=children[0], denominator=children[1])


@dataclass(frozen=True, eq=False)
class Sqrt(Node):
    body: Node
    index: Optional[Node] = None
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "sqrt"

    def children(self) -> Tuple[Node, ...]:
        if self.index is None:
            return (self.body,)
        return (self.body, self.index)

    def with_children(self, children: Sequence[Node]) -> Node:
        if self.index is None:
            return replace(self, body=children[0])
        return replace(self, body=children[0], index=children[1])


@dataclass(frozen=True, eq=False)
class FunctionCall(Node):
    name: str
    args: Tuple[Node, ...]
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "call"

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))
        super().__post_init__()

    def _payload(self) -> Tuple:
        return (self.name, len(self.args))

    def children(self) -> Tuple[Node, ...]:
        return self.args

    def with_children(self, children: Sequence[Node]) -> Node:
        return replace(self, args=tuple(children))


@dataclass(frozen=True, eq=False)
class Grouped(Node):
    left: str
    body: Node
    right: str
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    kind = "group"

    def __post_init__(self):
        if DELIMITERS.get(self.left) != self.right:
            raise ValueError(f"Mismatched delimiters {self.left!r} and {self.right!r}")
        super().__post_init__()

    def _payload(self) -> Tuple:
        return (self.left, self.right)

    def children(self) -> Tuple[Node, ...]:
        return (self.body,)

    def with_children(self, children: Sequence[Node]) -> Node:
        return replace(self, body=children[0])


def paren(body: Node) -> Grouped:
    """Wrap a node in round parentheses."""
    return Grouped("(", body, ")")


# ============================================================
# Traversal helpers
# ============================================================

def walk(node: Node) -> Iterator[Node]:
    """Pre-order iteration over every node of a tree."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children()))


def symbols(node: Node) -> Set[str]:
    """Names of all symbols occurring in a tree."""
    return {n.name for n in walk(node) if isinstance(n, Symbol)}


def is_constant(node: Node) -> bool:
    """True if the tree contains no symbols."""
    return not any(isinstance(n, Symbol) for n in walk(node))


def size(node: Node) -> int:
    return sum(1 for _ in walk(node))


# ============================================================
# Canonical string
# ============================================================

PREC_COMMA = 0
PREC_SUM = 1
PREC_PRODUCT = 2
PREC_UNARY = 3
PREC_POWER = 4
PREC_ATOM = 5

_BINARY_PREC = {
    ",": PREC_COMMA,
    "+": PREC_SUM, "-": PREC_SUM,
    "*": PREC_PRODUCT, "cdot": PREC_PRODUCT, "times": PREC_PRODUCT,
    "juxt": PREC_PRODUCT, "/": PREC_PRODUCT,
}

_BINARY_TEXT = {
    ",": ", ", "+": " + ", "-": " - ", "*": " \\cdot ", "cdot": " \\cdot ",
    "times": " \\times ", "juxt": " ", "/": " / ",
}


def precedence(node: Node) -> int:
    if isinstance(node, BinaryOp):
        return _BINARY_PREC[node.op]
    if isinstance(node, UnaryOp):
        return PREC_UNARY
    if isinstance(node, Number) and node.value < 0:
        return PREC_UNARY
    if isinstance(node, Power):
        return PREC_POWER
    return PREC_ATOM


def format_number(value: NumericType, tolerance: float = 1e-6) -> str:
    """Deterministic text for a number.

    Floats within ``tolerance`` of an integer print as that integer; other
    floats are rounded to the number of decimals the tolerance resolves.

    Examples:
        format_number(3) -> "3"
        format_number(0.9999999) -> "1"
        format_number(0.1 + 0.2) -> "0.3"
    """
    if isinstance(value, int):
        return str(value)
    if math.isnan(value) or math.isinf(value):
        return str(value)
    nearest = round(value)
    if abs(value - nearest) <= tolerance:
        return str(int(nearest))
    if tolerance > 0:
        decimals = min(15, max(1, math.ceil(-math.log10(tolerance))))
    else:
        decimals = 15
    text = f"{value:.{decimals}f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def to_string(node: Node, tolerance: float = 1e-6) -> str:
    """Precedence-aware, deterministic serialization of a tree.

    Right operands at the same precedence level are parenthesized, so
    ``a + (b + c)`` and ``(a + b) + c`` print differently.
    """
    def wrap(child: Node, needs: bool) -> str:
        text = render(child)
        return f"({text})" if needs else text

    def render(n: Node) -> str:
        if isinstance(n, Number):
            return format_number(n.value, tolerance)
        if isinstance(n, Symbol):
            return _symbol_text(n.name)
        if isinstance(n, UnaryOp):
            return n.op + wrap(n.operand, precedence(n.operand) <= PREC_UNARY)
        if isinstance(n, BinaryOp):
            p = _BINARY_PREC[n.op]
            left = wrap(n.left, precedence(n.left) < p)
            right = wrap(n.right, precedence(n.right) <= p)
            return left + _BINARY_TEXT[n.op] + right
        if isinstance(n, Power):
            base_is_simple = (
                isinstance(n.base, (Symbol, Grouped, FunctionCall))
                or (isinstance(n.base, Number) and n.base.value >= 0)
            )
            return f"{wrap(n.base, not base_is_simple)}^{{{render(n.exponent)}}}"
        if isinstance(n, Fraction):
            return f"\\frac{{{render(n.numerator)}}}{{{render(n.denominator)}}}"
        if isinstance(n, Sqrt):
            if n.index is None:
                return f"\\sqrt{{{render(n.body)}}}"
            return f"\\sqrt[{render(n.index)}]{{{render(n.body)}}}"
        if isinstance(n, FunctionCall):
            head = f"\\{n.name}" if n.name in LATEX_FUNCTIONS else f"\\operatorname{{{n.name}}}"
            return head + "(" + ", ".join(render(a) for a in n.args) + ")"
        if isinstance(n, Grouped):
            return n.left + render(n.body) + n.right
        raise TypeError(f"Unknown node type: {type(n).__name__}")

    return render(node)


def _symbol_text(name: str) -> str:
    head, sep, sub = name.partition("_")
    text = f"\\{head}" if head in GREEK_LETTERS else head
    if sep:
        text += f"_{sub}" if len(sub) == 1 else f"_{{{sub}}}"
    return text


# ============================================================
# S-expression view
# ============================================================

SexprType = Union[int, float, str, List]

_GROUP_HEADS = {"(": "paren", "[": "bracket", "\\{": "brace", "|": "abs"}
_HEAD_GROUPS = {head: delim for delim, head in _GROUP_HEADS.items()}
_UNARY_HEADS = {"-": "neg", "+": "pos"}
_HEAD_UNARY = {head: op for op, head in _UNARY_HEADS.items()}

RESERVED_HEADS = frozenset(
    set(BINARY_OPS) | set(_GROUP_HEADS.values()) | set(_UNARY_HEADS.values())
    | {"^", "frac", "sqrt", "root", "fn"}
)


def to_sexpr(node: Node) -> SexprType:
    """Nested-list view of a tree for pattern matching."""
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Symbol):
        return node.name
    if isinstance(node, UnaryOp):
        return [_UNARY_HEADS[node.op], to_sexpr(node.operand)]
    if isinstance(node, BinaryOp):
        return [node.op, to_sexpr(node.left), to_sexpr(node.right)]
    if isinstance(node, Power):
        return ["^", to_sexpr(node.base), to_sexpr(node.exponent)]
    if isinstance(node, Fraction):
        return ["frac", to_sexpr(node.numerator), to_sexpr(node.denominator)]
    if isinstance(node, Sqrt):
        if node.index is None:
            return ["sqrt", to_sexpr(node.body)]
        return ["root", to_sexpr(node.body), to_sexpr(node.index)]
    if isinstance(node, FunctionCall):
        args = [to_sexpr(a) for a in node.args]
        if node.name in RESERVED_HEADS:
            return ["fn", node.name] + args
        return [node.name] + args
    if isinstance(node, Grouped):
        return [_GROUP_HEADS[node.left], to_sexpr(node.body)]
    raise TypeError(f"Unknown node type: {type(node).__name__}")


def sexpr_head(node: Node) -> Optional[str]:
    """Head symbol of a node's s-expression view; None for atoms."""
    if isinstance(node, (Number, Symbol)):
        return None
    if isinstance(node, UnaryOp):
        return _UNARY_HEADS[node.op]
    if isinstance(node, BinaryOp):
        return node.op
    if isinstance(node, Power):
        return "^"
    if isinstance(node, Fraction):
        return "frac"
    if isinstance(node, Sqrt):
        return "sqrt" if node.index is None else "root"
    if isinstance(node, FunctionCall):
        return "fn" if node.name in RESERVED_HEADS else node.name
    if isinstance(node, Grouped):
        return _GROUP_HEADS[node.left]
    raise TypeError(f"Unknown node type: {type(node).__name__}")


def from_sexpr(expr: SexprType) -> Node:
    """Inverse of to_sexpr.

    Binary heads given more than two arguments fold to the left, so
    ``["+", "a", "b", "c"]`` builds ``a + b + c``.
    """
    if isinstance(expr, bool):
        raise ValueError(f"Cannot build a tree from {expr!r}")
    if isinstance(expr, (int, float)):
        return Number(expr)
    if isinstance(expr, str):
        return Symbol(expr)
    if not isinstance(expr, list) or not expr or not isinstance(expr[0], str):
        raise ValueError(f"Cannot build a tree from {expr!r}")

    head, raw_args = expr[0], expr[1:]
    args = [from_sexpr(a) for a in raw_args] if head != "fn" else None

    if head in BINARY_OPS:
        if len(args) < 2:
            raise ValueError(f"{head!r} needs at least two arguments: {expr!r}")
        result = args[0]
        for arg in args[1:]:
            result = BinaryOp(head, result, arg)
        return result
    if head in _HEAD_UNARY:
        _expect_arity(expr, args, 1)
        return UnaryOp(_HEAD_UNARY[head], args[0])
    if head == "^":
        _expect_arity(expr, args, 2)
        return Power(args[0], args[1])
    if head == "frac":
        _expect_arity(expr, args, 2)
        return Fraction(args[0], args[1])
    if head == "sqrt":
        _expect_arity(expr, args, 1)
        return Sqrt(args[0])
    if head == "root":
        _expect_arity(expr, args, 2)
        return Sqrt(args[0], args[1])
    if head in _HEAD_GROUPS:
        _expect_arity(expr, args, 1)
        left = _HEAD_GROUPS[head]
        return Grouped(left, args[0], DELIMITERS[left])
    if head == "fn":
        if len(raw_args) < 1 or not isinstance(raw_args[0], str):
            raise ValueError(f"'fn' needs a function name: {expr!r}")
        return FunctionCall(raw_args[0], tuple(from_sexpr(a) for a in raw_args[1:]))
    return FunctionCall(head, tuple(args))


def _expect_arity(expr: List, args: List[Node], n: int) -> None:
    if len(args) != n:
        raise ValueError(f"{expr[0]!r} takes {n} argument(s): {expr!r}")
