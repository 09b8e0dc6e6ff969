"""Tests for the LaTeX markup parser."""

import pytest

from mathequiv.errors import ParseError
from mathequiv.parser import LatexParser, MarkupParser, parse_latex, tokenize
from mathequiv.tree import (
    BinaryOp, Fraction, FunctionCall, Grouped, Number, Power, Span, Sqrt, Symbol,
    UnaryOp,
)

x, y, a, b = (Symbol(n) for n in "xyab")


class MarkupParserContract:
    """Behavior every MarkupParser must have; subclass with a ``parser`` fixture."""

    def test_is_markup_parser(self, parser):
        assert isinstance(parser, MarkupParser)
        assert isinstance(parser.version, str)

    def test_deterministic(self, parser):
        """Parsing the same markup twice gives equal trees."""
        assert parser.parse("x^2 + 4x + 4") == parser.parse("x^2 + 4x + 4")

    def test_callable(self, parser):
        assert parser("x") == parser.parse("x")

    def test_error_carries_position(self, parser):
        """Malformed input raises ParseError with a position."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("x + ")
        assert exc_info.value.position is not None

    def test_non_string(self, parser):
        with pytest.raises(ParseError):
            parser.parse(42)


class TestLatexParserContract(MarkupParserContract):

    @pytest.fixture
    def parser(self):
        return LatexParser()


class TestTokenize:
    """Tests for the tokenizer."""

    def test_kinds(self):
        kinds = [t.kind for t in tokenize("2x + \\alpha")]
        assert kinds == ["num", "letter", "op", "cmd", "eof"]

    def test_spacing_commands_dropped(self):
        texts = [t.text for t in tokenize("a \\, b \\quad c")]
        assert texts == ["a", "b", "c", ""]

    def test_unicode_operators(self):
        """Unicode look-alikes map to LaTeX operators."""
        texts = [t.text for t in tokenize("2 × 3 − 1")]
        assert texts == ["2", "\\times", "3", "-", "1", ""]


class TestArithmetic:
    """Tests for operators and precedence."""

    def test_sum(self):
        assert parse_latex("x + 1") == BinaryOp("+", x, Number(1))

    def test_left_associative(self):
        assert parse_latex("a - b - x") == BinaryOp("-", BinaryOp("-", a, b), x)

    def test_product_binds_tighter(self):
        assert parse_latex("a + b * x") == BinaryOp("+", a, BinaryOp("*", b, x))

    def test_implicit_multiplication(self):
        assert parse_latex("2x") == BinaryOp("juxt", Number(2), x)
        assert parse_latex("xy") == BinaryOp("juxt", x, y)

    def test_multiplication_commands(self):
        assert parse_latex("a \\cdot b") == BinaryOp("cdot", a, b)
        assert parse_latex("a \\times b") == BinaryOp("times", a, b)
        assert parse_latex("a \\div b") == BinaryOp("/", a, b)

    def test_unary(self):
        assert parse_latex("-x") == UnaryOp("-", x)
        assert parse_latex("--x") == UnaryOp("-", UnaryOp("-", x))
        assert parse_latex("+x") == UnaryOp("+", x)

    def test_power(self):
        assert parse_latex("x^2") == Power(x, Number(2))
        assert parse_latex("x^{a+b}") == Power(x, BinaryOp("+", a, b))
        assert parse_latex("x^-1") == Power(x, UnaryOp("-", Number(1)))

    def test_power_takes_one_digit(self):
        """x^23 is x squared times 3, as in TeX."""
        assert parse_latex("x^23") == BinaryOp("juxt", Power(x, Number(2)), Number(3))

    def test_power_binds_tighter_than_unary(self):
        assert parse_latex("-x^2") == UnaryOp("-", Power(x, Number(2)))


class TestNumbers:
    """Tests for numeric literals."""

    def test_integer(self):
        n = parse_latex("42")
        assert n == Number(42)
        assert n.literal == "42"

    def test_decimal(self):
        assert parse_latex("0.25") == Number(0.25)
        assert parse_latex(".5") == Number(0.5)

    def test_literal_kept_for_grouping(self):
        """Digit groups keep their text so notation rules can read them."""
        tree = parse_latex("1,000")
        assert isinstance(tree, BinaryOp) and tree.op == ","
        assert tree.left == Number(1)
        assert tree.right.literal == "000"

    def test_dotted_literal(self):
        assert parse_latex("1.000").literal == "1.000"


class TestSymbols:
    """Tests for variables and constants."""

    def test_subscripts(self):
        assert parse_latex("x_1") == Symbol("x_1")
        assert parse_latex("x_{12}") == Symbol("x_12")
        assert parse_latex("x_n") == Symbol("x_n")

    def test_greek(self):
        assert parse_latex("\\alpha") == Symbol("alpha")
        assert parse_latex("\\pi r^2") == BinaryOp("juxt", Symbol("pi"), Power(Symbol("r"), Number(2)))


class TestStructures:
    """Tests for fractions, roots, groups and functions."""

    def test_fraction(self):
        assert parse_latex("\\frac{1}{2}") == Fraction(Number(1), Number(2))
        assert parse_latex("\\frac12") == Fraction(Number(1), Number(2))
        assert parse_latex("\\dfrac{x}{y}") == Fraction(x, y)

    def test_sqrt(self):
        assert parse_latex("\\sqrt{x}") == Sqrt(x)
        assert parse_latex("\\sqrt[3]{x}") == Sqrt(x, Number(3))

    def test_groups(self):
        assert parse_latex("(x)") == Grouped("(", x, ")")
        assert parse_latex("[x]") == Grouped("[", x, "]")
        assert parse_latex("\\{x\\}") == Grouped("\\{", x, "\\}")
        assert parse_latex("\\left( x \\right)") == Grouped("(", x, ")")

    def test_braces_are_transparent(self):
        assert parse_latex("{x + 1}") == BinaryOp("+", x, Number(1))

    def test_absolute_values(self):
        """Bars open and close absolute values without confusion."""
        assert parse_latex("|x|") == Grouped("|", x, "|")
        assert parse_latex("|x| + |y|") == BinaryOp("+", Grouped("|", x, "|"), Grouped("|", y, "|"))

    def test_function_with_parentheses(self):
        assert parse_latex("\\sin(2x)") == FunctionCall("sin", (BinaryOp("juxt", Number(2), x),))

    def test_function_implicit_argument(self):
        assert parse_latex("\\sin x") == FunctionCall("sin", (x,))
        assert parse_latex("\\cos \\theta") == FunctionCall("cos", (Symbol("theta"),))

    def test_function_power(self):
        """\\sin^2 x is the square of the sine."""
        assert parse_latex("\\sin^2 x") == Power(FunctionCall("sin", (x,)), Number(2))

    def test_inverse_function(self):
        assert parse_latex("\\sin^{-1} x") == FunctionCall("arcsin", (x,))

    def test_log_base(self):
        """The base of a logarithm becomes its last argument."""
        assert parse_latex("\\log_2 x") == FunctionCall("log", (x, Number(2)))

    def test_operatorname(self):
        assert parse_latex("\\operatorname{f}(x, y)") == FunctionCall("f", (x, y))


class TestSpans:
    """Tests for source positions."""

    def test_symbol_span(self):
        tree = parse_latex("x + y")
        assert tree.right.span == Span(4, 5)
        assert tree.span == Span(0, 5)


class TestErrors:
    """Tests for malformed input."""

    @pytest.mark.parametrize("markup,message", [
        ("", "Empty expression"),
        ("   ", "Empty expression"),
        ("x = y", "Relation"),
        ("\\invalid{syntax}", "Unknown command"),
        ("x^2^3", "Double superscript"),
        ("()", "Empty group"),
        ("(x", "Expected ')'"),
        ("x)", "Unexpected"),
        ("x +", "Unexpected end of input"),
        ("\\sin", "Missing argument"),
    ])
    def test_messages(self, markup, message):
        with pytest.raises(ParseError) as exc_info:
            parse_latex(markup)
        assert message in str(exc_info.value)

    def test_position(self):
        """The position points at the offending token."""
        with pytest.raises(ParseError) as exc_info:
            parse_latex("x + \\foo")
        assert exc_info.value.position == 4
        assert exc_info.value.markup == "x + \\foo"
        assert "(at position 4)" in str(exc_info.value)

    def test_error_dict(self):
        with pytest.raises(ParseError) as exc_info:
            parse_latex("")
        data = exc_info.value.to_dict()
        assert data["code"] == "PARSE_ERROR"
        assert data["details"]["position"] == 0
