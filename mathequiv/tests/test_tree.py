"""Tests for expression trees, serialization and the s-expression view."""

import pytest

from mathequiv.tree import (
    BinaryOp, Fraction, FunctionCall, Grouped, Number, Power, Span, Sqrt, Symbol,
    UnaryOp, format_number, from_sexpr, is_constant, paren, sexpr_head, size,
    symbols, to_sexpr, to_string, walk,
)

x, y, a, b, c = (Symbol(n) for n in "xyabc")


class TestNodes:
    """Tests for node construction and identity."""

    def test_integral_float_becomes_int(self):
        """Integral floats are stored as ints."""
        n = Number(2.0)
        assert n.value == 2
        assert isinstance(n.value, int)

    def test_bool_rejected(self):
        """Booleans are not numbers."""
        with pytest.raises(TypeError):
            Number(True)

    def test_equality_ignores_span(self):
        """Spans do not take part in equality."""
        assert Symbol("x", span=Span(0, 1)) == Symbol("x")
        assert hash(Symbol("x", span=Span(3, 4))) == hash(Symbol("x"))

    def test_equality_ignores_literal(self):
        """The source literal of a number does not change its identity."""
        assert Number(7, literal="007") == Number(7)

    def test_structural_equality(self):
        """Independently built equal trees are equal and share a digest."""
        t1 = BinaryOp("+", Power(x, Number(2)), Number(1))
        t2 = BinaryOp("+", Power(Symbol("x"), Number(2)), Number(1))
        assert t1 == t2
        assert t1.digest == t2.digest

    def test_order_matters(self):
        """Operand order is part of the structure."""
        assert BinaryOp("+", x, y) != BinaryOp("+", y, x)

    def test_kind_matters(self):
        """A fraction and a division are different trees."""
        assert Fraction(a, b) != BinaryOp("/", a, b)

    def test_mismatched_delimiters(self):
        """Grouped checks its delimiters."""
        with pytest.raises(ValueError):
            Grouped("(", x, "]")

    def test_with_children(self):
        """with_children rebuilds around new children."""
        node = BinaryOp("+", x, y)
        rebuilt = node.with_children([a, b])
        assert rebuilt == BinaryOp("+", a, b)
        assert node == BinaryOp("+", x, y)

    def test_function_args_tuple(self):
        """Function arguments are stored as a tuple."""
        call = FunctionCall("f", [x, y])
        assert call.args == (x, y)

    def test_usable_as_dict_key(self):
        """Trees hash by content."""
        seen = {BinaryOp("*", Number(2), x): "term"}
        assert seen[BinaryOp("*", Number(2), Symbol("x"))] == "term"


class TestTraversal:
    """Tests for traversal helpers."""

    def test_walk_preorder(self):
        """walk yields parents before children, left to right."""
        tree = BinaryOp("+", x, Power(y, Number(2)))
        kinds = [type(n).__name__ for n in walk(tree)]
        assert kinds == ["BinaryOp", "Symbol", "Power", "Symbol", "Number"]

    def test_symbols(self):
        """symbols collects every name."""
        tree = BinaryOp("+", x, FunctionCall("sin", (y,)))
        assert symbols(tree) == {"x", "y"}

    def test_is_constant(self):
        """Constant trees contain no symbols."""
        assert is_constant(Fraction(Number(1), Number(2)))
        assert not is_constant(BinaryOp("*", Number(2), x))

    def test_size(self):
        """size counts nodes."""
        assert size(BinaryOp("+", x, y)) == 3

    def test_paren(self):
        """paren wraps in round brackets."""
        assert paren(x) == Grouped("(", x, ")")


class TestToString:
    """Tests for canonical string output."""

    def test_product(self):
        """Explicit products print with cdot."""
        assert to_string(BinaryOp("*", Number(2), x)) == "2 \\cdot x"

    def test_juxtaposition(self):
        """Juxtaposition prints as a space."""
        assert to_string(BinaryOp("juxt", Number(2), x)) == "2 x"

    def test_right_operand_parenthesized(self):
        """Same-precedence right operands get parentheses."""
        assert to_string(BinaryOp("-", a, BinaryOp("-", b, c))) == "a - (b - c)"
        assert to_string(BinaryOp("-", BinaryOp("-", a, b), c)) == "a - b - c"

    def test_sum_inside_product(self):
        """Lower-precedence children are parenthesized."""
        tree = BinaryOp("*", BinaryOp("+", a, b), c)
        assert to_string(tree) == "(a + b) \\cdot c"

    def test_power_base(self):
        """Compound and negative bases are parenthesized."""
        assert to_string(Power(x, Number(2))) == "x^{2}"
        assert to_string(Power(BinaryOp("+", x, Number(1)), Number(2))) == "(x + 1)^{2}"
        assert to_string(Power(Number(-2), Number(2))) == "(-2)^{2}"

    def test_unary(self):
        """Unary minus wraps sums and other unary operators."""
        assert to_string(UnaryOp("-", x)) == "-x"
        assert to_string(UnaryOp("-", BinaryOp("+", a, b))) == "-(a + b)"
        assert to_string(UnaryOp("-", UnaryOp("-", x))) == "-(-x)"

    def test_fraction_and_roots(self):
        """Fractions and roots use LaTeX commands."""
        assert to_string(Fraction(Number(1), Number(2))) == "\\frac{1}{2}"
        assert to_string(Sqrt(x)) == "\\sqrt{x}"
        assert to_string(Sqrt(x, Number(3))) == "\\sqrt[3]{x}"

    def test_functions(self):
        """Known functions print as commands, others as operatorname."""
        assert to_string(FunctionCall("sin", (x,))) == "\\sin(x)"
        assert to_string(FunctionCall("f", (x, y))) == "\\operatorname{f}(x, y)"

    def test_symbols(self):
        """Greek letters and subscripts."""
        assert to_string(Symbol("alpha")) == "\\alpha"
        assert to_string(Symbol("x_1")) == "x_1"
        assert to_string(Symbol("x_12")) == "x_{12}"

    def test_grouped(self):
        """Grouped nodes keep their delimiters."""
        assert to_string(Grouped("|", x, "|")) == "|x|"

    def test_str_is_to_string(self):
        """str() of a node is its canonical string."""
        assert str(BinaryOp("+", x, Number(1))) == "x + 1"


class TestFormatNumber:
    """Tests for deterministic number text."""

    def test_integers(self):
        assert format_number(3) == "3"
        assert format_number(-12) == "-12"

    def test_snaps_to_integer(self):
        """Floats within tolerance of an integer print as the integer."""
        assert format_number(0.9999999) == "1"
        assert format_number(2.0000001) == "2"

    def test_rounds_float_noise(self):
        """Float noise below the tolerance is hidden."""
        assert format_number(0.1 + 0.2) == "0.3"

    def test_keeps_significant_decimals(self):
        assert format_number(2.5) == "2.5"
        assert format_number(-0.125) == "-0.125"

    def test_tolerance_controls_decimals(self):
        """A coarser tolerance prints fewer decimals."""
        assert format_number(3.14159, tolerance=0.01) == "3.14"


class TestSexpr:
    """Tests for the s-expression view."""

    def test_binary(self):
        assert to_sexpr(BinaryOp("+", x, Number(2))) == ["+", "x", 2]

    def test_unary_and_groups(self):
        assert to_sexpr(UnaryOp("-", x)) == ["neg", "x"]
        assert to_sexpr(Grouped("|", x, "|")) == ["abs", "x"]

    def test_roots(self):
        assert to_sexpr(Sqrt(x)) == ["sqrt", "x"]
        assert to_sexpr(Sqrt(x, Number(3))) == ["root", "x", 3]

    def test_function_named_like_head(self):
        """Functions whose name is a head are written with fn."""
        assert to_sexpr(FunctionCall("sin", (x,))) == ["sin", "x"]
        assert to_sexpr(FunctionCall("frac", (x,))) == ["fn", "frac", "x"]

    def test_head(self):
        assert sexpr_head(Power(x, Number(2))) == "^"
        assert sexpr_head(x) is None
        assert sexpr_head(Sqrt(x, Number(3))) == "root"

    def test_from_sexpr_inverts(self):
        """from_sexpr rebuilds the tree to_sexpr describes."""
        tree = BinaryOp("+", Fraction(UnaryOp("-", x), Number(2)),
                        FunctionCall("frac", (Sqrt(y, Number(3)),)))
        assert from_sexpr(to_sexpr(tree)) == tree

    def test_from_sexpr_folds_left(self):
        """Extra arguments of a binary head fold to the left."""
        assert from_sexpr(["+", "a", "b", "c"]) == BinaryOp("+", BinaryOp("+", a, b), c)

    @pytest.mark.parametrize("bad", [
        ["^", "x"],
        ["neg", "x", "y"],
        [],
        [1, 2],
        ["fn"],
        True,
    ])
    def test_from_sexpr_rejects(self, bad):
        """Malformed s-expressions raise ValueError."""
        with pytest.raises(ValueError):
            from_sexpr(bad)
