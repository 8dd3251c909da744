"""Constant folding of string concatenation and numeric arithmetic."""

import logging
import math
from typing import Callable, Optional

from esprima.nodes import Node

from stringlift.core.generator import render_number, render_string
from stringlift.core.parser import (
    is_evaluated,
    is_numeric_literal,
    is_string_literal,
    make_literal,
    node_type,
    numeric_value,
    transform,
)

logger = logging.getLogger(__name__)

_ARITHMETIC = frozenset({"+", "-", "*", "/"})


def fold_binary(operator: str, left: float, right: float) -> Optional[float]:
    """Evaluate with double semantics; None when the result is not a plain finite number."""
    left, right = float(left), float(right)
    if operator == "+":
        result = left + right
    elif operator == "-":
        result = left - right
    elif operator == "*":
        result = left * right
    elif operator == "/":
        if right == 0:
            return None
        result = left / right
    else:
        return None
    return _normalize(result)


def _normalize(result: float) -> Optional[float]:
    if not math.isfinite(result):
        return None
    if result == 0 and math.copysign(1.0, result) < 0:
        return None
    if result.is_integer() and abs(result) <= 2 ** 53:
        return int(result)
    return result


class ConstantFolder:
    """Applies the string and numeric folds until neither changes the tree."""

    def __init__(
        self,
        quote_char: str = "'",
        max_passes: int = 100,
        prune: Optional[Callable[[Node], bool]] = None,
    ):
        self.quote_char = quote_char
        self.max_passes = max_passes
        self.prune = prune
        self.folded = 0

    def fold_strings(self, program: Node) -> int:
        """``'a' + 'b'`` -> ``'ab'``. Returns the number of folds."""
        changes = 0

        def visit(node: Node) -> Node:
            nonlocal changes
            if (
                node_type(node) == "BinaryExpression"
                and node.operator == "+"
                and is_string_literal(node.left)
                and is_string_literal(node.right)
            ):
                value = node.left.value + node.right.value
                changes += 1
                return make_literal(value, render_string(value, self.quote_char), node)
            return node

        transform(program, visit, prune=self.prune)
        return changes

    def fold_numbers(self, program: Node) -> int:
        """Collapse arithmetic over numeric literals. Returns the number of folds."""
        changes = 0

        def visit(node: Node) -> Node:
            nonlocal changes
            value = self._numeric_fold(node)
            if value is None:
                return node
            changes += 1
            return make_literal(value, render_number(value), node)

        transform(program, visit, prune=self.prune)
        return changes

    def _numeric_fold(self, node: Node) -> Optional[float]:
        kind = node_type(node)
        if kind == "BinaryExpression" and node.operator in _ARITHMETIC:
            left = numeric_value(node.left)
            right = numeric_value(node.right)
            if left is None or right is None:
                return None
            return fold_binary(node.operator, left, right)
        if kind == "UnaryExpression" and node.operator in ("-", "+"):
            argument = node.argument
            # A sign on a source literal is already in simplest form
            if is_numeric_literal(argument) and not is_evaluated(argument):
                return None
            value = numeric_value(node)
            if value is None:
                return None
            return _normalize(float(value))
        return None

    def run(self, program: Node) -> int:
        """Fold to a local fixed point. Returns the total number of folds."""
        total = 0
        for _ in range(self.max_passes):
            changes = self.fold_strings(program) + self.fold_numbers(program)
            total += changes
            if changes == 0:
                break
        else:
            logger.warning("Constant folding stopped after %d passes", self.max_passes)
        self.folded += total
        return total
