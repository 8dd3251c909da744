"""Tests for folder module."""

import pytest

from stringlift.core.folder import ConstantFolder, fold_binary
from stringlift.core.generator import generate_code
from stringlift.core.parser import parse_javascript


def _fold(code: str, quote: str = "'") -> tuple[str, int]:
    program = parse_javascript(code).program
    folder = ConstantFolder(quote_char=quote)
    changes = folder.run(program)
    return generate_code(code, program), changes


class TestStringFold:
    """Tests for string concatenation folding."""

    def test_concatenation_chain(self):
        """Test a chain of string literals folds to one literal."""
        code, changes = _fold("x = 'a' + 'b' + 'c';")

        assert code == "x = 'abc';"
        assert changes == 2

    def test_mixed_quotes_render_with_configured_quote(self):
        """Test folded strings use the configured quote character."""
        code, _ = _fold("x = \"it's\" + ' ok';", quote='"')

        assert code == 'x = "it\'s ok";'

    def test_partial_chain(self):
        """Test folding stops at the first non-literal operand."""
        code, _ = _fold("x = 'a' + 'b' + name + 'c' + 'd';")

        assert code == "x = 'ab' + name + 'c' + 'd';"


class TestNumericFold:
    """Tests for numeric constant folding."""

    def test_arithmetic(self):
        """Test arithmetic over numeric literals."""
        code, _ = _fold("x = 2 * 3 + 1;")

        assert code == "x = 7;"

    def test_hex_and_fraction(self):
        """Test hexadecimal operands and fractional results."""
        code, _ = _fold("x = 0x6 * 0x7 - 0x2 / 0x4;")

        assert code == "x = 41.5;"

    def test_negated_subexpression(self):
        """Test a sign over a folded subexpression."""
        code, _ = _fold("x = -(2 * 3);")

        assert code == "x = -6;"

    def test_negative_literal_left_alone(self):
        """Test a bare negative literal is already simplest."""
        code, changes = _fold("x = -5;")

        assert code == "x = -5;"
        assert changes == 0

    @pytest.mark.parametrize("source", [
        "x = 1 / 0;",
        "x = 0 * -1;",
        "x = 'a' + 1;",
        "x = 1 + 'a';",
        "x = 5 % 2;",
    ])
    def test_left_unfolded(self, source):
        """Test expressions without a plain finite folded form."""
        code, changes = _fold(source)

        assert code == source
        assert changes == 0

    def test_fold_binary(self):
        """Test double semantics and integral normalisation."""
        assert fold_binary("+", 0.1, 0.2) == 0.30000000000000004
        assert fold_binary("/", 6, 3) == 2
        assert isinstance(fold_binary("/", 6, 3), int)
        assert fold_binary("/", 1, 0) is None


class TestConstantFolder:
    """Tests for ConstantFolder bookkeeping."""

    def test_fixed_point(self):
        """Test a second run finds nothing left to fold."""
        program = parse_javascript("x = 'a' + 'b'; y = 1 + 2;").program
        folder = ConstantFolder()

        assert folder.run(program) == 2
        assert folder.run(program) == 0
        assert folder.folded == 2

    def test_prune(self):
        """Test pruned subtrees are not folded."""
        code = "function keep() { return 1 + 2; }\nx = 3 + 4;"
        program = parse_javascript(code).program
        folder = ConstantFolder(prune=lambda node: node.type == "FunctionDeclaration")
        folder.run(program)

        assert generate_code(code, program) == "function keep() { return 1 + 2; }\nx = 7;"
