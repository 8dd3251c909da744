"""Lexical scope analysis used to bind call sites to their callees."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from esprima.nodes import Node

from stringlift.core.parser import iter_children, node_type

logger = logging.getLogger(__name__)

_FUNCTION_TYPES = frozenset({"FunctionDeclaration", "FunctionExpression", "ArrowFunctionExpression"})
_BLOCK_SCOPE_TYPES = frozenset({
    "BlockStatement",
    "ForStatement",
    "ForInStatement",
    "ForOfStatement",
    "SwitchStatement",
})


@dataclass
class Binding:
    """A declared name in a scope."""
    name: str
    binding_type: str  # variable, parameter, function, class, catch
    node: Node  # declaring node (FunctionDeclaration, VariableDeclarator, ...)
    scope_id: str
    init: Optional[Node] = None
    init_scope_id: Optional[str] = None
    assignments: int = 0


@dataclass
class Scope:
    """A lexical scope."""
    scope_id: str
    scope_type: str  # program, function, block, catch
    bindings: dict[str, Binding] = field(default_factory=dict)
    parent_id: Optional[str] = None


class ScopeAnalysis:
    """Scope tree for one program, with a node-to-scope index."""

    def __init__(self, program: Node):
        self.scopes: dict[str, Scope] = {}
        self._node_scopes: dict[int, tuple[Node, str]] = {}
        self._counter = 0
        root = self._new_scope("program", None)
        self._declare_pass(program, root.scope_id, root.scope_id)
        self._assignment_pass(program)
        logger.debug("Scope analysis: %d scopes", len(self.scopes))

    def scope_of(self, node: Node) -> Optional[Scope]:
        """Innermost scope enclosing ``node``."""
        entry = self._node_scopes.get(id(node))
        if entry is None or entry[0] is not node:
            return None
        return self.scopes[entry[1]]

    def resolve(self, name: str, scope: Optional[Scope]) -> Optional[Binding]:
        """Find the binding visible as ``name`` from ``scope``."""
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = self.scopes.get(scope.parent_id) if scope.parent_id else None
        return None

    def _new_scope(self, scope_type: str, parent_id: Optional[str]) -> Scope:
        scope = Scope(
            scope_id=f"scope_{self._counter}",
            scope_type=scope_type,
            parent_id=parent_id,
        )
        self._counter += 1
        self.scopes[scope.scope_id] = scope
        return scope

    def _declare(self, scope_id: str, binding: Binding) -> None:
        bindings = self.scopes[scope_id].bindings
        # Re-declaration (var twice, function over var) keeps the first entry
        # but counts as an extra assignment.
        existing = bindings.get(binding.name)
        if existing is not None:
            existing.assignments += 1
            return
        bindings[binding.name] = binding

    def _declare_pass(self, node: Node, scope_id: str, function_scope_id: str) -> None:
        """Record bindings and the enclosing scope of every node.

        ``function_scope_id`` is where ``var`` declarations hoist to.
        """
        stack: list[tuple[Node, str, str]] = [(node, scope_id, function_scope_id)]
        while stack:
            current, scope_id, function_scope_id = stack.pop()
            self._node_scopes[id(current)] = (current, scope_id)
            kind = current.type

            if kind in _FUNCTION_TYPES:
                if kind == "FunctionDeclaration" and current.id is not None:
                    self._declare(scope_id, Binding(
                        name=current.id.name,
                        binding_type="function",
                        node=current,
                        scope_id=scope_id,
                    ))
                inner = self._new_scope("function", scope_id)
                if kind == "FunctionExpression" and current.id is not None:
                    self._declare(inner.scope_id, Binding(
                        name=current.id.name,
                        binding_type="function",
                        node=current,
                        scope_id=inner.scope_id,
                    ))
                for param in current.params:
                    for name in _pattern_names(param):
                        self._declare(inner.scope_id, Binding(
                            name=name,
                            binding_type="parameter",
                            node=param,
                            scope_id=inner.scope_id,
                        ))
                    stack.append((param, inner.scope_id, inner.scope_id))
                body = current.body
                if node_type(body) == "BlockStatement":
                    # The function body shares the function scope
                    self._node_scopes[id(body)] = (body, inner.scope_id)
                    for statement in reversed(body.body):
                        stack.append((statement, inner.scope_id, inner.scope_id))
                elif body is not None:
                    stack.append((body, inner.scope_id, inner.scope_id))
                continue

            if kind == "CatchClause":
                inner = self._new_scope("catch", scope_id)
                if current.param is not None:
                    for name in _pattern_names(current.param):
                        self._declare(inner.scope_id, Binding(
                            name=name,
                            binding_type="catch",
                            node=current.param,
                            scope_id=inner.scope_id,
                        ))
                stack.append((current.body, inner.scope_id, function_scope_id))
                continue

            if kind in _BLOCK_SCOPE_TYPES:
                inner = self._new_scope("block", scope_id)
                scope_id = inner.scope_id

            if kind == "VariableDeclaration":
                target = function_scope_id if current.kind == "var" else scope_id
                for declarator in current.declarations:
                    for name in _pattern_names(declarator.id):
                        self._declare(target, Binding(
                            name=name,
                            binding_type="variable",
                            node=declarator,
                            scope_id=target,
                            init=declarator.init if node_type(declarator.id) == "Identifier" else None,
                            init_scope_id=scope_id,
                        ))
            elif kind == "ClassDeclaration" and current.id is not None:
                self._declare(scope_id, Binding(
                    name=current.id.name,
                    binding_type="class",
                    node=current,
                    scope_id=scope_id,
                ))

            children = [
                (child, scope_id, function_scope_id)
                for child in iter_children(current)
            ]
            stack.extend(reversed(children))

    def _assignment_pass(self, program: Node) -> None:
        """Count writes to each binding outside its declaration.

        Covers plain and destructuring assignment, ``++``/``--`` and the
        left-hand side of ``for-in``/``for-of`` when it is not a declaration.
        """
        stack = [program]
        while stack:
            current = stack.pop()
            target = None
            if current.type == "AssignmentExpression":
                target = current.left
            elif current.type == "UpdateExpression":
                target = current.argument
            elif current.type in ("ForInStatement", "ForOfStatement"):
                if node_type(current.left) != "VariableDeclaration":
                    target = current.left
            for name in _pattern_names(target):
                binding = self.resolve(name, self.scope_of(current))
                if binding is not None:
                    binding.assignments += 1
            stack.extend(iter_children(current))


def _pattern_names(pattern: Optional[Node]) -> list[str]:
    """Identifiers bound by a declaration pattern."""
    kind = node_type(pattern)
    if kind == "Identifier":
        return [pattern.name]
    if kind == "AssignmentPattern":
        return _pattern_names(pattern.left)
    if kind == "RestElement":
        return _pattern_names(pattern.argument)
    if kind == "ArrayPattern":
        names = []
        for element in pattern.elements:
            names.extend(_pattern_names(element))
        return names
    if kind == "ObjectPattern":
        names = []
        for prop in pattern.properties:
            value = prop.argument if node_type(prop) == "RestElement" else prop.value
            names.extend(_pattern_names(value))
        return names
    return []
