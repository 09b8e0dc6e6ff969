"""
Symbolic fallback engines.

When two canonical strings differ, the checker asks a full computer algebra
system. The engine answers two questions:

    difference_is_zero(a, b)  does a - b simplify to zero?
    simplified_form(t)        a comparable string for the simplified tree

The default engine is SymPy. Anything the engine cannot represent raises
FallbackEngineError; the checker turns that into a verdict.
"""

import math
from abc import ABC, abstractmethod
from typing import Callable, Dict

import sympy as sp

from .errors import FallbackEngineError
from .tree import (BinaryOp, Fraction, FunctionCall, Grouped, Node, Number, Power, Sqrt,
                   Symbol, UnaryOp)


class SymbolicFallback(ABC):
    """Interface for a symbolic engine used by the slow path."""

    name = "symbolic"

    @abstractmethod
    def difference_is_zero(self, left: Node, right: Node, tolerance: float = 1e-6) -> bool:
        ...

    @abstractmethod
    def simplified_form(self, tree: Node) -> str:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


_FUNCTIONS: Dict[str, Callable] = {
    "sin": sp.sin, "cos": sp.cos, "tan": sp.tan,
    "cot": sp.cot, "sec": sp.sec, "csc": sp.csc,
    "arcsin": sp.asin, "arccos": sp.acos, "arctan": sp.atan,
    "sinh": sp.sinh, "cosh": sp.cosh, "tanh": sp.tanh,
    "exp": sp.exp, "ln": sp.log,
}

_CONSTANTS = {"pi": sp.pi, "infty": sp.oo}


class SympyFallback(SymbolicFallback):
    """SymPy-backed fallback.

    ``\\log`` with no base is the natural logarithm, ``\\log_b`` uses base b.
    Only ``pi`` and ``infty`` are constants; every other name, including
    ``e`` and ``i``, is a free symbol.
    """

    name = "sympy"

    def to_sympy(self, node: Node) -> sp.Expr:
        """Convert a tree to a SymPy expression."""
        if isinstance(node, Number):
            value = node.value
            if isinstance(value, int):
                return sp.Integer(value)
            if math.isfinite(value):
                return sp.Rational(repr(value))
            return sp.Float(value)

        if isinstance(node, Symbol):
            if node.name in _CONSTANTS:
                return _CONSTANTS[node.name]
            return sp.Symbol(node.name)

        if isinstance(node, UnaryOp):
            operand = self.to_sympy(node.operand)
            return -operand if node.op == "-" else operand

        if isinstance(node, BinaryOp):
            if node.op == ",":
                raise FallbackEngineError("Comma lists have no symbolic meaning",
                                          details={"expression": str(node)})
            left = self.to_sympy(node.left)
            right = self.to_sympy(node.right)
            if node.op == "+":
                return left + right
            if node.op == "-":
                return left - right
            if node.op == "/":
                return left / right
            return left * right

        if isinstance(node, Power):
            return self.to_sympy(node.base) ** self.to_sympy(node.exponent)

        if isinstance(node, Fraction):
            return self.to_sympy(node.numerator) / self.to_sympy(node.denominator)

        if isinstance(node, Sqrt):
            body = self.to_sympy(node.body)
            if node.index is None:
                return sp.sqrt(body)
            return sp.root(body, self.to_sympy(node.index))

        if isinstance(node, Grouped):
            body = self.to_sympy(node.body)
            return sp.Abs(body) if node.left == "|" else body

        if isinstance(node, FunctionCall):
            return self._call(node)

        raise FallbackEngineError(f"Unsupported node type: {type(node).__name__}")

    def _call(self, node: FunctionCall) -> sp.Expr:
        args = [self.to_sympy(a) for a in node.args]
        if node.name == "log":
            if len(args) == 1:
                return sp.log(args[0])
            if len(args) == 2:
                return sp.log(args[0], args[1])
        elif node.name in _FUNCTIONS and len(args) == 1:
            return _FUNCTIONS[node.name](args[0])
        return sp.Function(node.name)(*args)

    def difference_is_zero(self, left: Node, right: Node, tolerance: float = 1e-6) -> bool:
        try:
            difference = sp.simplify(self.to_sympy(left) - self.to_sympy(right))
            if difference == 0:
                return True
            if difference.has(sp.nan, sp.zoo, sp.oo, -sp.oo):
                return False
            if difference.is_number:
                return abs(complex(sp.N(difference))) <= tolerance
            return False
        except FallbackEngineError:
            raise
        except Exception as exc:
            raise FallbackEngineError(f"SymPy failed on difference: {exc}",
                                      details={"engine": self.name}) from exc

    def simplified_form(self, tree: Node) -> str:
        try:
            return sp.srepr(sp.simplify(self.to_sympy(tree)))
        except FallbackEngineError:
            raise
        except Exception as exc:
            raise FallbackEngineError(f"SymPy failed to simplify: {exc}",
                                      details={"engine": self.name}) from exc
