"""Replacement of decode call sites with the strings they produce."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from esprima.nodes import Node

from stringlift.core.analyzer import Binding, ScopeAnalysis
from stringlift.core.diagnostics import (
    Diagnostic,
    DiagnosticKind,
    ExtractionFailure,
    ExtractionTimeout,
    HostAccessError,
)
from stringlift.core.generator import render_string
from stringlift.core.parser import (
    is_string_literal,
    make_literal,
    node_position,
    node_type,
    numeric_value,
    transform,
)

logger = logging.getLogger(__name__)

_MAX_ALIAS_HOPS = 32


@dataclass
class CalleeResolution:
    """Outcome of binding a call site's callee."""
    decoder_name: Optional[str] = None
    via_alias: bool = False
    reason: str = ""


class DecodeRewriter:
    """Rewrites ``decoder(<number>, '<key>')`` calls to string literals.

    Callees are bound by lexical scope: the callee identifier is resolved at
    the call site and followed through ``var alias = name`` declarations
    until it reaches a located decode function. An alias chain that ends at
    an undeclared name, or passes through a reassigned binding, is
    unresolvable and the call site is reported as skipped. A chain that
    reaches some other declared function is not a decode call.

    A decoder that fails by referencing a stripped global is reported once
    as an extraction failure and its remaining call sites are left alone.
    """

    def __init__(
        self,
        analysis: ScopeAnalysis,
        decoder_nodes: dict[str, Node],
        decoders: dict[str, Callable[[float, str], object]],
        diagnostics: list[Diagnostic],
        max_key_length: int = 16,
        quote_char: str = "'",
        prune: Optional[Callable[[Node], bool]] = None,
    ):
        self.analysis = analysis
        self.decoders = decoders
        self.diagnostics = diagnostics
        self.max_key_length = max_key_length
        self.quote_char = quote_char
        self.prune = prune
        self._decoder_by_node = {id(node): (node, name) for name, node in decoder_nodes.items()}
        self._reported: set[tuple[int, int]] = set()
        self.disabled: set[str] = set()
        self.rewritten = 0
        self.skipped = 0

    def rewrite(self, program: Node) -> int:
        """Run one pass over the whole tree. Returns the number of replacements."""
        changes = 0

        def visit(node: Node) -> Node:
            nonlocal changes
            replacement = self._rewrite_call(node)
            if replacement is not node:
                changes += 1
            return replacement

        transform(program, visit, prune=self.prune)
        self.rewritten += changes
        logger.debug("Rewrite pass replaced %d call site(s)", changes)
        return changes

    def is_decode_shape(self, node: Node) -> bool:
        """Two arguments: a numeric literal and a short string literal."""
        if node_type(node) != "CallExpression" or len(node.arguments) != 2:
            return False
        if node_type(node.callee) != "Identifier":
            return False
        index, key = node.arguments
        return (
            numeric_value(index) is not None
            and is_string_literal(key)
            and len(key.value) <= self.max_key_length
        )

    def resolve_callee(self, call: Node) -> Optional[CalleeResolution]:
        """Bind the callee of ``call``; None when it is not a decode call at all."""
        scope = self.analysis.scope_of(call)
        binding = self.analysis.resolve(call.callee.name, scope)
        via_alias = False
        seen: set[int] = set()

        for _ in range(_MAX_ALIAS_HOPS):
            if binding is None:
                if via_alias:
                    return CalleeResolution(via_alias=True, reason="alias does not resolve to a declaration")
                return None
            decoder = self._decoder_name(binding)
            if decoder is not None:
                return CalleeResolution(decoder_name=decoder, via_alias=via_alias)
            if not _is_alias(binding):
                # Bound to something other than an alias or a decoder
                return None
            if binding.assignments or id(binding) in seen:
                return CalleeResolution(via_alias=True, reason=f"alias {binding.name} is reassigned or circular")
            seen.add(id(binding))
            via_alias = True
            binding = self.analysis.resolve(binding.init.name, self.analysis.scopes.get(binding.init_scope_id))
        return CalleeResolution(via_alias=True, reason="alias chain too long")

    def _decoder_name(self, binding: Binding) -> Optional[str]:
        entry = self._decoder_by_node.get(id(binding.node))
        if entry is None or entry[0] is not binding.node:
            return None
        return entry[1]

    def _rewrite_call(self, node: Node) -> Node:
        if not self.is_decode_shape(node):
            return node
        resolution = self.resolve_callee(node)
        if resolution is None:
            return node
        if resolution.decoder_name is None:
            self._skip(node, f"cannot bind {node.callee.name}: {resolution.reason}")
            return node

        if resolution.decoder_name in self.disabled:
            return node
        decode = self.decoders.get(resolution.decoder_name)
        if decode is None:
            self._skip(node, f"decoder {resolution.decoder_name} is unavailable")
            return node

        index_value = numeric_value(node.arguments[0])
        if float(index_value).is_integer():
            index_value = int(index_value)
        key = node.arguments[1].value
        try:
            result = decode(index_value, key)
        except HostAccessError as e:
            self._disable(resolution.decoder_name, e)
            return node
        except (ExtractionFailure, ExtractionTimeout) as e:
            self._skip(node, e.message)
            return node

        if not isinstance(result, str):
            self._skip(node, f"{resolution.decoder_name} returned {type(result).__name__}, not a string")
            return node

        logger.debug("%s(%r, %r) -> %r", resolution.decoder_name, index_value, key, result)
        return make_literal(result, render_string(result, self.quote_char), node)

    def _disable(self, decoder_name: str, error: HostAccessError) -> None:
        """Stop calling a decoder whose body touches a stripped global."""
        self.disabled.add(decoder_name)
        logger.warning("Decoder %s disabled: %s", decoder_name, error.message)
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.EXTRACTION_FAILURE,
            location=node_position(self._decoder_node(decoder_name)),
            message=error.message,
        ))

    def _decoder_node(self, decoder_name: str) -> Optional[Node]:
        for node, name in self._decoder_by_node.values():
            if name == decoder_name:
                return node
        return None

    def _skip(self, node: Node, message: str) -> None:
        key = tuple(node.range)
        if key in self._reported:
            return
        self._reported.add(key)
        self.skipped += 1
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.REWRITE_SKIPPED,
            location=node_position(node),
            message=message,
        ))


def _is_alias(binding: Binding) -> bool:
    return binding.binding_type == "variable" and node_type(binding.init) == "Identifier"
