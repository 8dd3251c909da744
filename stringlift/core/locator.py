"""Structural detection of the string-table, shuffle and decode helpers.

Every helper shape is a named entry in ``PATTERNS``: a list of predicates over
a top-level statement, any of which may match. Support for another obfuscator
configuration is added by registering a further predicate under the same name
rather than by branching inside the locator.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from esprima.nodes import Node

from stringlift.config import PatternConfig
from stringlift.core.diagnostics import AmbiguousPattern, PatternNotFound
from stringlift.core.parser import (
    is_string_literal,
    node_position,
    node_type,
    property_name,
    walk,
)

logger = logging.getLogger(__name__)


@dataclass
class MatchContext:
    """What predicates may consult besides the candidate node."""
    patterns: PatternConfig
    string_table_name: Optional[str] = None


Predicate = Callable[[Node, MatchContext], bool]

PATTERNS: dict[str, list[Predicate]] = {
    "string_table_fn": [],
    "shuffle_unit": [],
    "decode_fn": [],
}


def register_pattern(name: str) -> Callable[[Predicate], Predicate]:
    """Add a predicate to the named pattern."""
    def decorator(predicate: Predicate) -> Predicate:
        PATTERNS.setdefault(name, []).append(predicate)
        return predicate
    return decorator


def matches(name: str, node: Node, context: MatchContext) -> bool:
    return any(predicate(node, context) for predicate in PATTERNS[name])


@dataclass
class LocatorResult:
    """The three cooperating helpers of one obfuscated script."""
    string_table_fn: Node
    shuffle_unit: Optional[Node]
    decode_fns: list[Node] = field(default_factory=list)

    @property
    def string_table_name(self) -> str:
        return self.string_table_fn.id.name

    @property
    def decoder_names(self) -> list[str]:
        return [fn.id.name for fn in self.decode_fns]

    def helper_nodes(self) -> list[Node]:
        nodes = [self.string_table_fn, *self.decode_fns]
        if self.shuffle_unit is not None:
            nodes.append(self.shuffle_unit)
        return nodes


# Shape helpers

def _first_statement(fn: Node) -> Optional[Node]:
    body = getattr(fn, "body", None)
    if node_type(body) != "BlockStatement" or not body.body:
        return None
    return body.body[0]


def _first_initializer(fn: Node) -> Optional[Node]:
    """Initializer of the first declarator of a function's first statement."""
    statement = _first_statement(fn)
    if node_type(statement) != "VariableDeclaration" or not statement.declarations:
        return None
    return statement.declarations[0].init


def iife_function(statement: Node) -> Optional[Node]:
    """The function expression invoked by an IIFE statement, if any.

    Accepts ``(function(){...})()``, ``(function(){...}())`` and the
    ``!function(){...}()`` / ``void function(){...}()`` prefixed forms.
    """
    if node_type(statement) != "ExpressionStatement":
        return None
    expression = statement.expression
    if node_type(expression) == "UnaryExpression" and expression.operator in ("!", "void", "+", "-", "~"):
        expression = expression.argument
    if node_type(expression) != "CallExpression":
        return None
    callee = expression.callee
    if node_type(callee) in ("FunctionExpression", "ArrowFunctionExpression"):
        return callee
    return None


def _is_double_negated_empty_array(test: Node) -> bool:
    if node_type(test) != "UnaryExpression" or test.operator != "!":
        return False
    inner = test.argument
    if node_type(inner) != "UnaryExpression" or inner.operator != "!":
        return False
    array = inner.argument
    return node_type(array) == "ArrayExpression" and not array.elements


def _is_true_literal(test: Node) -> bool:
    return node_type(test) == "Literal" and test.value is True


def _is_negated_zero(test: Node) -> bool:
    return (
        node_type(test) == "UnaryExpression"
        and test.operator == "!"
        and node_type(test.argument) == "Literal"
        and test.argument.value == 0
        and test.argument.value is not False
    )


LOOP_TEST_SHAPES: dict[str, Callable[[Node], bool]] = {
    "double_negated_array": _is_double_negated_empty_array,
    "true_literal": _is_true_literal,
    "negated_zero": _is_negated_zero,
}


def _is_rotate_call(node: Node, rotate_methods: list[tuple[str, str]]) -> bool:
    """``x.push(x.shift())`` or ``x['push'](x['shift']())`` for a configured pair."""
    if node_type(node) != "CallExpression" or len(node.arguments) != 1:
        return False
    outer = property_name(node.callee)
    inner_call = node.arguments[0]
    if node_type(inner_call) != "CallExpression" or inner_call.arguments:
        return False
    inner = property_name(inner_call.callee)
    return any(outer == insert and inner == remove for insert, remove in rotate_methods)


def _contains_rotate(node: Optional[Node], rotate_methods: list[tuple[str, str]]) -> bool:
    if node is None:
        return False
    return any(_is_rotate_call(child, rotate_methods) for child in walk(node))


def _is_guarded_rotation(statement: Node, patterns: PatternConfig) -> bool:
    """A try/catch that rotates the table when the attempt fails."""
    if node_type(statement) != "TryStatement" or statement.handler is None:
        return False
    if patterns.require_catch_rotate:
        return _contains_rotate(statement.handler.body, patterns.rotate_methods)
    return _contains_rotate(statement, patterns.rotate_methods)


def _is_shuffle_loop(statement: Node, patterns: PatternConfig) -> bool:
    if node_type(statement) != "WhileStatement":
        return False
    if not any(LOOP_TEST_SHAPES[shape](statement.test) for shape in patterns.loop_tests):
        return False
    return any(
        _is_guarded_rotation(candidate, patterns)
        for candidate in walk(statement.body)
        if node_type(candidate) == "TryStatement"
    )


# Registered predicates

@register_pattern("string_table_fn")
def string_array_function(node: Node, context: MatchContext) -> bool:
    """``function t() { var a = ['..', '..']; ... }``"""
    if node_type(node) != "FunctionDeclaration" or node.id is None:
        return False
    init = _first_initializer(node)
    if node_type(init) != "ArrayExpression" or not init.elements:
        return False
    return all(is_string_literal(element) for element in init.elements)


@register_pattern("shuffle_unit")
def rotating_iife(node: Node, context: MatchContext) -> bool:
    """``(function (t, n) { ... while (!![]) { try {...} catch (e) { t.push(t.shift()) } } }(...))``"""
    fn = iife_function(node)
    if fn is None or node_type(fn.body) != "BlockStatement":
        return False
    return any(_is_shuffle_loop(statement, context.patterns) for statement in fn.body.body)


@register_pattern("decode_fn")
def table_reading_function(node: Node, context: MatchContext) -> bool:
    """``function d(i, k) { var a = t(); ... }``"""
    if node_type(node) != "FunctionDeclaration" or node.id is None:
        return False
    if context.string_table_name is None or node.id.name == context.string_table_name:
        return False
    init = _first_initializer(node)
    return (
        node_type(init) == "CallExpression"
        and node_type(init.callee) == "Identifier"
        and init.callee.name == context.string_table_name
    )


def _unique(name: str, candidates: list[Node], description: str) -> Node:
    if not candidates:
        raise PatternNotFound(f"no {description} found")
    if len(candidates) > 1:
        locations = [node_position(candidate) for candidate in candidates]
        where = ", ".join(str(location) for location in locations if location is not None)
        raise AmbiguousPattern(
            f"{len(candidates)} candidates match the {description} shape ({where})",
            [location for location in locations if location is not None],
        )
    logger.debug("Matched %s at %s", name, node_position(candidates[0]))
    return candidates[0]


def locate_helpers(program: Node, patterns: Optional[PatternConfig] = None) -> LocatorResult:
    """Find the string table, shuffle routine and decoders among top-level statements.

    Args:
        program: Parsed program node
        patterns: Structural-pattern tuning

    Returns:
        LocatorResult with the matched nodes (references into ``program``)

    Raises:
        PatternNotFound: A required helper shape has no candidate
        AmbiguousPattern: The string table or shuffle routine is not unique
    """
    context = MatchContext(patterns=patterns or PatternConfig())
    statements = list(program.body)

    table = _unique(
        "string_table_fn",
        [s for s in statements if matches("string_table_fn", s, context)],
        "string-table function",
    )
    context.string_table_name = table.id.name

    shuffle_candidates = [s for s in statements if matches("shuffle_unit", s, context)]
    if not shuffle_candidates and not context.patterns.require_shuffle:
        shuffle = None
    else:
        shuffle = _unique("shuffle_unit", shuffle_candidates, "shuffle routine")

    decoders = [s for s in statements if matches("decode_fn", s, context)]
    logger.info(
        "Located string table %s, %s, %d decoder(s)",
        table.id.name,
        "shuffle routine" if shuffle is not None else "no shuffle routine",
        len(decoders),
    )
    return LocatorResult(string_table_fn=table, shuffle_unit=shuffle, decode_fns=decoders)
