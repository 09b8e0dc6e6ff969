"""
Markup parsers: LaTeX-style strings to expression trees.

The checker only depends on the narrow MarkupParser interface, so the
default LatexParser can be swapped for any other implementation that turns a
string into a tree (or raises ParseError). A parser's ``version`` is part of
the cache fingerprint.

Supported LaTeX subset:
    numbers        3, 0.25, .5
    variables      x, xy (= x times y), x_1, x_{12}, \\alpha, \\pi
    operators      + - * / ^ \\cdot \\times \\div, implicit multiplication
    grouping       ( ) [ ] \\{ \\} | |, \\left ... \\right, {...}
    fractions      \\frac{a}{b}, \\dfrac, \\tfrac, \\frac12
    roots          \\sqrt{x}, \\sqrt[3]{x}
    functions      \\sin x, \\sin(2x), \\sin^2 x, \\sin^{-1} x, \\log_2 x,
                   \\operatorname{name}(x)
"""

import re
from abc import ABC, abstractmethod
from collections import namedtuple
from typing import List, Optional

from .errors import ParseError
from .tree import (
    BinaryOp, DELIMITERS, FunctionCall, GREEK_LETTERS, Grouped, Node, Number,
    Power, Span, Sqrt, Symbol, UnaryOp, Fraction,
)


class MarkupParser(ABC):
    """Turns a markup string into an expression tree."""

    version = "abstract"

    @abstractmethod
    def parse(self, markup: str) -> Node:
        """Parse markup, raising ParseError if it is malformed."""

    def __call__(self, markup: str) -> Node:
        return self.parse(markup)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(version={self.version!r})"


FUNCTIONS = frozenset([
    "sin", "cos", "tan", "cot", "sec", "csc", "arcsin", "arccos", "arctan",
    "sinh", "cosh", "tanh", "log", "ln", "exp",
])

INVERSE_FUNCTIONS = {"sin": "arcsin", "cos": "arccos", "tan": "arctan"}

FRACTION_COMMANDS = frozenset(["\\frac", "\\dfrac", "\\tfrac"])

MULTIPLY_COMMANDS = {"\\cdot": "cdot", "\\times": "times", "\\div": "/"}

# Dropped while tokenizing.
IGNORED_COMMANDS = frozenset([
    "\\,", "\\;", "\\:", "\\!", "\\ ", "\\quad", "\\qquad",
    "\\left", "\\right", "\\displaystyle",
])

RELATIONS = frozenset([
    "=", "<", ">", "\\leq", "\\geq", "\\le", "\\ge", "\\neq", "\\ne",
    "\\approx", "\\equiv", "\\lt", "\\gt",
])

# Unicode look-alikes that show up in pasted or recognized input.
_UNICODE_OPERATORS = {
    "−": "-", "·": "\\cdot", "⋅": "\\cdot", "×": "\\times",
    "÷": "\\div",
}

Token = namedtuple("Token", ["kind", "text", "start", "end"])

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<num>\d+(?:\.\d+)?|\.\d+)
  | (?P<cmd>\\(?:[A-Za-z]+|.))
  | (?P<letter>[A-Za-z])
  | (?P<op>.)
""", re.VERBOSE | re.DOTALL)


def tokenize(markup: str) -> List[Token]:
    """Split markup into tokens, ending with an "eof" token."""
    tokens = []
    for m in _TOKEN_RE.finditer(markup):
        kind = m.lastgroup
        text = m.group()
        if kind == "ws":
            continue
        if kind == "op" and text in _UNICODE_OPERATORS:
            text = _UNICODE_OPERATORS[text]
            kind = "op" if len(text) == 1 else "cmd"
        if kind == "cmd" and text in IGNORED_COMMANDS:
            continue
        tokens.append(Token(kind, text, m.start(), m.end()))
    tokens.append(Token("eof", "", len(markup), len(markup)))
    return tokens


class LatexParser(MarkupParser):
    """Recursive-descent parser for a LaTeX math subset.

    Example:
        >>> tree = LatexParser().parse(r"\\frac{x}{2} + 1")
        >>> str(tree)
        '\\\\frac{x}{2} + 1'
    """

    version = "latex-1"

    def parse(self, markup: str) -> Node:
        if not isinstance(markup, str):
            raise ParseError(f"Markup must be a string, got {type(markup).__name__}")
        return _Reader(markup).read()


def parse_latex(markup: str) -> Node:
    """Parse with the default LatexParser."""
    return LatexParser().parse(markup)


class _Reader:
    """Single-use parsing state for one markup string."""

    def __init__(self, markup: str):
        self.markup = markup
        self.tokens = tokenize(markup)
        self.pos = 0
        self.last_end = 0
        self.abs_depth = 0

    # -- token helpers -------------------------------------------------

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != "eof":
            self.pos += 1
            self.last_end = tok.end
        return tok

    def at(self, text: str) -> bool:
        tok = self.peek()
        return tok.kind != "eof" and tok.text == text

    def expect(self, text: str) -> Token:
        if not self.at(text):
            raise self.error(f"Expected {text!r}", self.peek())
        return self.advance()

    def span_from(self, start: int) -> Span:
        return Span(start, self.last_end)

    def error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        position = tok.start if tok is not None else self.last_end
        return ParseError(message, position=position, markup=self.markup)

    def unexpected(self, tok: Token) -> ParseError:
        if tok.kind == "eof":
            return self.error("Unexpected end of input", tok)
        if tok.text in RELATIONS:
            return self.error(f"Relation {tok.text!r} is not an expression", tok)
        return self.error(f"Unexpected {tok.text!r}", tok)

    def starts_factor(self, tok: Token) -> bool:
        """Can this token begin an implicitly multiplied factor?"""
        if tok.kind in ("num", "letter"):
            return True
        if tok.kind == "op":
            return tok.text in ("(", "[", "{") or (tok.text == "|" and self.abs_depth == 0)
        if tok.kind == "cmd":
            name = tok.text[1:]
            return (tok.text in FRACTION_COMMANDS or name in FUNCTIONS
                    or name in GREEK_LETTERS
                    or tok.text in ("\\sqrt", "\\operatorname", "\\{"))
        return False

    # -- grammar -------------------------------------------------------

    def read(self) -> Node:
        if self.peek().kind == "eof":
            raise self.error("Empty expression", self.peek())
        node = self.comma_list()
        if self.peek().kind != "eof":
            raise self.unexpected(self.peek())
        return node

    def comma_list(self) -> Node:
        start = self.peek().start
        node = self.sum()
        while self.at(","):
            self.advance()
            right = self.sum()
            node = BinaryOp(",", node, right, span=self.span_from(start))
        return node

    def sum(self) -> Node:
        start = self.peek().start
        node = self.term()
        while self.at("+") or self.at("-"):
            op = self.advance().text
            right = self.term()
            node = BinaryOp(op, node, right, span=self.span_from(start))
        return node

    def term(self) -> Node:
        start = self.peek().start
        node = self.signed()
        while True:
            tok = self.peek()
            if tok.kind == "op" and tok.text in ("*", "/"):
                self.advance()
                op = tok.text
                right = self.signed()
            elif tok.kind == "cmd" and tok.text in MULTIPLY_COMMANDS:
                self.advance()
                op = MULTIPLY_COMMANDS[tok.text]
                right = self.signed()
            elif self.starts_factor(tok):
                op = "juxt"
                right = self.power()
            else:
                break
            node = BinaryOp(op, node, right, span=self.span_from(start))
        return node

    def signed(self) -> Node:
        tok = self.peek()
        if tok.kind == "op" and tok.text in ("-", "+"):
            self.advance()
            operand = self.signed()
            return UnaryOp(tok.text, operand, span=self.span_from(tok.start))
        return self.power()

    def power(self) -> Node:
        start = self.peek().start
        node = self.primary()
        if self.at("^"):
            self.advance()
            exponent = self.script_argument()
            node = Power(node, exponent, span=self.span_from(start))
            if self.at("^"):
                raise self.error("Double superscript", self.peek())
        return node

    def script_argument(self) -> Node:
        """Argument of ^, \\frac and friends: a brace group or a single token."""
        tok = self.peek()
        if tok.kind == "op" and tok.text == "{":
            self.advance()
            if self.at("}"):
                raise self.error("Empty group", self.peek())
            node = self.comma_list()
            self.expect("}")
            return node
        if tok.kind == "num":
            return self.single_digit()
        if tok.kind == "letter":
            self.advance()
            return Symbol(tok.text, span=self.span_from(tok.start))
        if tok.kind == "cmd" and tok.text[1:] in GREEK_LETTERS:
            self.advance()
            return Symbol(tok.text[1:], span=self.span_from(tok.start))
        if tok.kind == "op" and tok.text in ("-", "+"):
            self.advance()
            operand = self.script_argument()
            return UnaryOp(tok.text, operand, span=self.span_from(tok.start))
        if tok.kind == "eof":
            raise self.error("Missing argument", tok)
        raise self.unexpected(tok)

    def single_digit(self) -> Number:
        """Take one digit off a number token, as TeX does for x^23."""
        tok = self.advance()
        if tok.text.startswith(".") or len(tok.text) == 1:
            return self.make_number(tok)
        head, rest = tok.text[0], tok.text[1:]
        self.pos -= 1
        self.tokens[self.pos] = Token("num", rest, tok.start + 1, tok.end)
        self.last_end = tok.start + 1
        return Number(int(head), literal=head, span=Span(tok.start, tok.start + 1))

    def make_number(self, tok: Token) -> Number:
        value = float(tok.text) if "." in tok.text else int(tok.text)
        return Number(value, literal=tok.text, span=Span(tok.start, tok.end))

    def primary(self) -> Node:
        tok = self.peek()
        if tok.kind == "num":
            self.advance()
            return self.make_number(tok)
        if tok.kind == "letter":
            self.advance()
            name = tok.text
            if self.at("_"):
                name += "_" + self.subscript_text()
            return Symbol(name, span=self.span_from(tok.start))
        if tok.kind == "op":
            if tok.text in ("(", "[", "|"):
                self.advance()
                return self.group(tok)
            if tok.text == "{":
                self.advance()
                if self.at("}"):
                    raise self.error("Empty group", self.peek())
                node = self.comma_list()
                self.expect("}")
                return node
            raise self.unexpected(tok)
        if tok.kind == "cmd":
            return self.command()
        raise self.unexpected(tok)

    def group(self, open_tok: Token) -> Grouped:
        close = DELIMITERS[open_tok.text]
        if open_tok.text == "|":
            self.abs_depth += 1
        if self.at(close):
            raise self.error("Empty group", self.peek())
        body = self.comma_list()
        if not self.at(close):
            raise self.error(f"Expected {close!r} to close {open_tok.text!r}", self.peek())
        self.advance()
        if open_tok.text == "|":
            self.abs_depth -= 1
        return Grouped(open_tok.text, body, close, span=self.span_from(open_tok.start))

    def subscript_text(self) -> str:
        self.expect("_")
        tok = self.peek()
        if tok.kind == "op" and tok.text == "{":
            self.advance()
            parts = []
            while not self.at("}"):
                part = self.advance()
                if part.kind not in ("num", "letter"):
                    raise self.error("Subscripts may only contain letters and digits", part)
                parts.append(part.text)
            self.expect("}")
            if not parts:
                raise self.error("Empty subscript", tok)
            return "".join(parts)
        if tok.kind == "num":
            return str(self.single_digit().value)
        if tok.kind == "letter":
            self.advance()
            return tok.text
        raise self.error("Missing subscript", tok)

    def command(self) -> Node:
        tok = self.advance()
        name = tok.text[1:]
        if tok.text in FRACTION_COMMANDS:
            numerator = self.script_argument()
            denominator = self.script_argument()
            return Fraction(numerator, denominator, span=self.span_from(tok.start))
        if tok.text == "\\sqrt":
            index = None
            if self.at("["):
                self.advance()
                index = self.sum()
                self.expect("]")
            body = self.script_argument()
            return Sqrt(body, index, span=self.span_from(tok.start))
        if tok.text == "\\operatorname":
            return self.function(self.brace_text(), tok.start)
        if name in FUNCTIONS:
            return self.function(name, tok.start)
        if name in GREEK_LETTERS:
            return Symbol(name, span=self.span_from(tok.start))
        if tok.text == "\\{":
            return self.group(tok)
        if tok.text in MULTIPLY_COMMANDS or tok.text in RELATIONS:
            raise self.unexpected(tok)
        raise self.error(f"Unknown command {tok.text!r}", tok)

    def brace_text(self) -> str:
        self.expect("{")
        parts = []
        while not self.at("}"):
            part = self.advance()
            if part.kind != "letter":
                raise self.error("Operator names may only contain letters", part)
            parts.append(part.text)
        self.expect("}")
        if not parts:
            raise self.error("Empty operator name")
        return "".join(parts)

    def function(self, name: str, start: int) -> Node:
        base = None
        exponent = None
        for _ in range(2):
            if self.at("_") and base is None:
                self.advance()
                base = self.script_argument()
            elif self.at("^") and exponent is None:
                self.advance()
                exponent = self.script_argument()
        if exponent is not None and name in INVERSE_FUNCTIONS and _is_minus_one(exponent):
            name = INVERSE_FUNCTIONS[name]
            exponent = None

        if self.at("("):
            self.advance()
            if self.at(")"):
                raise self.error(f"Missing argument for {name!r}", self.peek())
            body = self.comma_list()
            self.expect(")")
            args = _split_commas(body)
        else:
            args = [self.implicit_argument(name)]
        if base is not None:
            args.append(base)

        node: Node = FunctionCall(name, tuple(args), span=self.span_from(start))
        if exponent is not None:
            node = Power(node, exponent, span=self.span_from(start))
        return node

    def implicit_argument(self, name: str) -> Node:
        """Argument written without parentheses: \\sin x, \\sin 2x, \\cos \\theta."""
        tok = self.peek()
        if not self.starts_factor(tok) or (tok.kind == "op" and tok.text == "|"):
            raise self.error(f"Missing argument for {name!r}", tok)
        start = tok.start
        node = self.power()
        while self.peek().kind in ("num", "letter") or (
                self.peek().kind == "cmd" and self.peek().text[1:] in GREEK_LETTERS):
            node = BinaryOp("juxt", node, self.power(), span=self.span_from(start))
        return node


def _is_minus_one(node: Node) -> bool:
    return (isinstance(node, UnaryOp) and node.op == "-"
            and isinstance(node.operand, Number) and node.operand.value == 1)


def _split_commas(node: Node) -> List[Node]:
    if isinstance(node, BinaryOp) and node.op == ",":
        return _split_commas(node.left) + [node.right]
    return [node]
