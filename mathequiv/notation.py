"""
Region-specific number notation.

The same characters mean different numbers in different regions: "1,000"
is one thousand in the US and UK but one (with a decimal comma) in most of
Europe, where "1.000" is the thousand. These rules read the digits the
parser kept in ``Number.literal`` and run before everything else.
"""

import re
from typing import List

from .config import Region
from .rules import Rule, rule
from .tree import BinaryOp, Node, Number

CATEGORY = "notation"

_GROUP_OF_THREE = re.compile(r"\d{3}")
_DOTTED_THOUSANDS = re.compile(r"[1-9]\d{0,2}(\.\d{3})+")
_DIGITS = re.compile(r"\d+")


def _comma_pair(node: Node) -> bool:
    return (isinstance(node, BinaryOp) and node.op == ","
            and isinstance(node.left, Number) and isinstance(node.left.value, int)
            and isinstance(node.right, Number) and isinstance(node.right.value, int)
            and node.right.value >= 0)


def _decimal_comma_pair(node: Node) -> bool:
    # A number read from an earlier decimal comma is not a whole part.
    return _comma_pair(node) and "," not in (node.left.literal or "")


def _right_digits(node: BinaryOp) -> str:
    literal = node.right.literal
    return literal if literal is not None and _DIGITS.fullmatch(literal) else str(node.right.value)


def _is_thousands_group(node: Node) -> bool:
    if not _comma_pair(node):
        return False
    left_literal = node.left.literal
    if left_literal is not None and len(left_literal.lstrip("-")) > 3:
        return False
    right_literal = node.right.literal
    return right_literal is not None and _GROUP_OF_THREE.fullmatch(right_literal) is not None


@rule("thousands-separator", 110, "1,000 is one thousand",
      when=_is_thousands_group, regions=[Region.US, Region.UK], category=CATEGORY)
def thousands_separator(node: BinaryOp) -> Node:
    left = node.left.value
    sign = -1 if left < 0 else 1
    return Number(sign * (abs(left) * 1000 + node.right.value))


@rule("decimal-comma", 110, "3,5 is three and a half",
      when=_decimal_comma_pair, regions=[Region.EU], category=CATEGORY)
def decimal_comma(node: BinaryOp) -> Node:
    left = node.left.value
    digits = _right_digits(node)
    value = float(f"{abs(left)}.{digits}")
    return Number(-value if left < 0 else value, literal=f"{left},{digits}")


@rule("dotted-thousands", 110, "1.000 is one thousand",
      when=lambda n: (isinstance(n, Number) and n.literal is not None
                      and _DOTTED_THOUSANDS.fullmatch(n.literal) is not None),
      regions=[Region.EU], category=CATEGORY)
def dotted_thousands(node: Number) -> Node:
    return Number(int(node.literal.replace(".", "")))


NOTATION_RULES: List[Rule] = [
    thousands_separator,
    decimal_comma,
    dotted_thousands,
]
