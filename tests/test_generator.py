"""Tests for generator module."""

import pytest

from stringlift.core.generator import generate_code, render_number, render_string, save_output
from stringlift.core.parser import make_literal, parse_javascript, transform


class TestRenderString:
    """Tests for render_string."""

    def test_plain(self):
        """Test plain text is quoted unchanged."""
        assert render_string("hello") == "'hello'"
        assert render_string("hello", '"') == '"hello"'

    def test_escapes_quote_and_backslash(self):
        """Test the active quote and backslashes are escaped."""
        assert render_string("it's \\ fine") == "'it\\'s \\\\ fine'"
        assert render_string('say "hi"', '"') == '"say \\"hi\\""'
        assert render_string('say "hi"') == "'say \"hi\"'"

    def test_control_characters(self):
        """Test line terminators and other control characters."""
        assert render_string("a\nb\tc") == "'a\\nb\\tc'"
        assert render_string("\x00\x1b") == "'\\x00\\x1b'"
        assert render_string("\u2028") == "'\\u2028'"

    def test_non_ascii_kept(self):
        """Test printable non-ASCII text is emitted as-is."""
        assert render_string("héllo wörld") == "'héllo wörld'"


class TestRenderNumber:
    """Tests for render_number."""

    @pytest.mark.parametrize("value,expected", [
        (7, "7"),
        (-3, "-3"),
        (41.5, "41.5"),
        (2.0, "2"),
        (0.30000000000000004, "0.30000000000000004"),
        (1e21, "1e+21"),
        (1e-7, "1e-7"),
        (1e-5, "0.00001"),
        (1e-6, "0.000001"),
        (-0.25, "-0.25"),
        (1.5e-7, "1.5e-7"),
        (2.5e21, "2.5e+21"),
        (1.5e300, "1.5e+300"),
    ])
    def test_number_format(self, value, expected):
        """Test JavaScript Number-to-String formatting."""
        assert render_number(value) == expected

    def test_non_finite_rejected(self):
        """Test non-finite numbers cannot be rendered."""
        with pytest.raises(ValueError):
            render_number(float("inf"))


class TestGenerateCode:
    """Tests for generate_code."""

    def test_untouched_program(self, simple_code):
        """Test an unmodified tree reproduces the source exactly."""
        program = parse_javascript(simple_code).program

        assert generate_code(simple_code, program) == simple_code

    def test_splices_replacements(self):
        """Test replaced nodes are re-rendered in place."""
        code = "log(decode(1, 'k'),   other);  // keep\n"
        program = parse_javascript(code).program

        def visit(node):
            if node.type == "CallExpression" and node.callee.name == "decode":
                return make_literal("x\ny", render_string("x\ny"), node)
            return node

        transform(program, visit)

        assert generate_code(code, program) == "log('x\\ny',   other);  // keep\n"

    def test_sign_does_not_merge(self):
        """Test a negative replacement after a minus stays separate."""
        code = "x = a -b;"
        program = parse_javascript(code).program

        def visit(node):
            if node.type == "Identifier" and node.name == "b":
                return make_literal(-1, "-1", node)
            return node

        transform(program, visit)

        assert generate_code(code, program) == "x = a - -1;"


class TestSaveOutput:
    """Tests for save_output."""

    def test_creates_parent_dirs(self, tmp_path):
        """Test output directories are created."""
        target = tmp_path / "out" / "nested" / "file.js"
        save_output("var a = 1;\n", target)

        assert target.read_text(encoding="utf-8") == "var a = 1;\n"
