"""JavaScript parsing and syntax-tree helpers built on esprima."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import esprima
from esprima.error_handler import Error as EsprimaError
from esprima.nodes import Node

from stringlift.core.diagnostics import ParseError

logger = logging.getLogger(__name__)

# Node attributes that never hold child nodes
_NON_CHILD_FIELDS = frozenset({"type", "range", "loc", "parent"})


@dataclass
class Position:
    """Position in source code (0-indexed row, 0-indexed column)."""
    row: int
    column: int

    def __str__(self) -> str:
        return f"{self.row + 1}:{self.column}"


@dataclass
class ParseResult:
    """Result of parsing JavaScript code."""
    source_code: str
    program: Node


def parse_javascript(source_code: str) -> ParseResult:
    """Parse JavaScript code into an ESTree program with ranges and locations.

    Args:
        source_code: The JavaScript source code to parse

    Returns:
        ParseResult holding the program node

    Raises:
        ParseError: The source is not valid JavaScript
    """
    try:
        program = esprima.parseScript(source_code, range=True, loc=True)
    except EsprimaError as e:
        line = getattr(e, "lineNumber", None) or 1
        column = getattr(e, "column", None) or 1
        raise ParseError(str(e), Position(row=line - 1, column=max(0, column - 1))) from e
    except RecursionError as e:
        raise ParseError("input nests too deeply to parse") from e

    logger.debug("Parsed %d top-level statements", len(program.body))
    return ParseResult(source_code=source_code, program=program)


def read_source(file_path: Path) -> str:
    """Read a script as UTF-8 text.

    Raises:
        ParseError: The file is not valid UTF-8
    """
    data = file_path.read_bytes()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        line = data[:e.start].count(b"\n")
        raise ParseError(
            f"{file_path.name} is not valid UTF-8: {e.reason} at byte {e.start}",
            Position(row=line, column=e.start - (data.rfind(b"\n", 0, e.start) + 1)),
        ) from e


def node_type(node: Any) -> Optional[str]:
    return node.type if isinstance(node, Node) else None


def node_position(node: Node) -> Optional[Position]:
    """Start position of a node, if the parser recorded one."""
    loc = getattr(node, "loc", None)
    if loc is None:
        return None
    return Position(row=loc.start.line - 1, column=loc.start.column)


def node_source(source_code: str, node: Node) -> str:
    """Original source text of a node."""
    start, end = node.range
    return source_code[start:end]


def child_slots(node: Node) -> Iterator[tuple[Node, str, Optional[int]]]:
    """Yield (child, field, index) for each direct child, in field order."""
    for field, value in list(vars(node).items()):
        if field in _NON_CHILD_FIELDS or field.startswith("_"):
            continue
        if isinstance(value, Node):
            yield value, field, None
        elif isinstance(value, list):
            for index, item in enumerate(value):
                if isinstance(item, Node):
                    yield item, field, index


def iter_children(node: Node) -> Iterator[Node]:
    for child, _field, _index in child_slots(node):
        yield child


def walk(
    root: Node,
    prune: Optional[Callable[[Node], bool]] = None,
) -> Iterator[Node]:
    """Pre-order traversal. Subtrees whose root satisfies ``prune`` are skipped."""
    stack = [root]
    while stack:
        node = stack.pop()
        if prune is not None and prune(node):
            continue
        yield node
        children = list(iter_children(node))
        stack.extend(reversed(children))


def transform(
    root: Node,
    callback: Callable[[Node], Node],
    prune: Optional[Callable[[Node], bool]] = None,
) -> Node:
    """Post-order rewrite. ``callback`` returns the node itself or its replacement.

    Children are visited (and possibly replaced) before their parent's callback
    runs. Iterative so that long operator chains do not exhaust the stack.
    """
    result = root
    stack: list[tuple[Node, Optional[Node], Optional[str], Optional[int], bool]] = [
        (root, None, None, None, False)
    ]
    while stack:
        node, parent, field, index, expanded = stack.pop()
        if not expanded:
            if prune is not None and prune(node):
                continue
            stack.append((node, parent, field, index, True))
            slots = list(child_slots(node))
            for child, child_field, child_index in reversed(slots):
                stack.append((child, node, child_field, child_index, False))
            continue

        replacement = callback(node)
        if replacement is node:
            continue
        if parent is None:
            result = replacement
        elif index is None:
            setattr(parent, field, replacement)
        else:
            getattr(parent, field)[index] = replacement
    return result


def is_string_literal(node: Any) -> bool:
    if node_type(node) != "Literal" or not isinstance(node.value, str):
        return False
    raw = getattr(node, "raw", None) or ""
    return raw[:1] in ("'", '"')


def is_numeric_literal(node: Any) -> bool:
    if node_type(node) != "Literal":
        return False
    value = node.value
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def numeric_value(node: Any) -> Optional[float]:
    """Value of a numeric literal, optionally under unary sign operators."""
    if is_numeric_literal(node):
        return node.value
    if node_type(node) == "UnaryExpression" and node.operator in ("-", "+"):
        inner = numeric_value(node.argument)
        if inner is None:
            return None
        return -inner if node.operator == "-" else inner
    return None


def property_name(member: Node) -> Optional[str]:
    """Static property name of a MemberExpression (``a.b`` or ``a['b']``)."""
    if node_type(member) != "MemberExpression":
        return None
    prop = member.property
    if not member.computed and node_type(prop) == "Identifier":
        return prop.name
    if member.computed and is_string_literal(prop):
        return prop.value
    return None


def make_literal(value: Any, raw: str, replaced: Node) -> Node:
    """Build a literal node that takes the place of ``replaced``.

    The new node keeps the replaced node's span and is marked as already
    evaluated.
    """
    literal = esprima.nodes.Literal(value, raw)
    literal.range = list(replaced.range) if getattr(replaced, "range", None) else None
    literal.loc = getattr(replaced, "loc", None)
    literal.evaluated = True
    return literal


def is_evaluated(node: Any) -> bool:
    return isinstance(node, Node) and getattr(node, "evaluated", False) is True
