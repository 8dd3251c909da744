"""End-to-end deobfuscation of one script."""

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Callable, Optional

from esprima.nodes import Node

from stringlift.config import PipelineConfig
from stringlift.core.analyzer import ScopeAnalysis
from stringlift.core.diagnostics import (
    AmbiguousPattern,
    Diagnostic,
    DiagnosticKind,
    ExtractionFailure,
    ExtractionTimeout,
    PatternNotFound,
)
from stringlift.core.extractor import extract_unit
from stringlift.core.folder import ConstantFolder
from stringlift.core.generator import generate_code
from stringlift.core.locator import LocatorResult, locate_helpers
from stringlift.core.parser import parse_javascript
from stringlift.core.rewriter import DecodeRewriter
from stringlift.core.sandbox import Sandbox

logger = logging.getLogger(__name__)

Pass = Callable[[Node], int]


@dataclass
class DeobfuscationResult:
    """Output of one run."""
    code: str
    diagnostics: list[Diagnostic] = field(default_factory=list)
    stats: dict = field(default_factory=dict)
    located: Optional[LocatorResult] = None


class PassScheduler:
    """Runs passes in order, cycle after cycle, until a cycle changes nothing.

    Each pass returns how many nodes it changed. ``max_cycles`` bounds the
    loop in case a faulty pass keeps reporting changes.
    """

    def __init__(self, passes: list[Pass], max_cycles: int, diagnostics: list[Diagnostic]):
        self.passes = passes
        self.max_cycles = max_cycles
        self.diagnostics = diagnostics
        self.history: list[int] = []

    def run(self, program: Node) -> int:
        """Returns the number of cycles executed."""
        for cycle in range(1, self.max_cycles + 1):
            changes = sum(run_pass(program) for run_pass in self.passes)
            self.history.append(changes)
            logger.debug("Cycle %d: %d change(s)", cycle, changes)
            if changes == 0:
                return cycle
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.CYCLE_LIMIT_REACHED,
            location=None,
            message=f"stopped after {self.max_cycles} cycles without reaching a fixed point",
        ))
        logger.warning("No fixed point after %d cycles", self.max_cycles)
        return self.max_cycles


def deobfuscate(source_code: str, config: Optional[PipelineConfig] = None) -> DeobfuscationResult:
    """Recover string literals and constants from an obfuscated script.

    Args:
        source_code: JavaScript source text
        config: Pipeline options (defaults when omitted)

    Returns:
        DeobfuscationResult with the rewritten code and recorded diagnostics

    Raises:
        ParseError: The source is not valid JavaScript
    """
    config = config or PipelineConfig()
    diagnostics: list[Diagnostic] = []
    stats = {
        "decoders": 0,
        "rewritten": 0,
        "skipped": 0,
        "folded": 0,
        "cycles": 0,
    }

    parse_result = parse_javascript(source_code)
    program = parse_result.program

    try:
        located = locate_helpers(program, config.patterns)
    except (PatternNotFound, AmbiguousPattern) as e:
        logger.info("No rewriting performed: %s", e.message)
        diagnostics.append(e.to_diagnostic())
        return DeobfuscationResult(code=source_code, diagnostics=diagnostics, stats=stats)

    stats["decoders"] = len(located.decode_fns)
    helper_ids = set() if config.rewrite_helpers else {id(node) for node in located.helper_nodes()}

    def prune(node: Node) -> bool:
        return id(node) in helper_ids

    folder = ConstantFolder(
        quote_char=config.quote_char,
        max_passes=config.max_fold_passes,
        prune=prune,
    )

    with ExitStack() as stack:
        passes: list[Pass] = []
        rewriter = None
        if located.decode_fns:
            unit = extract_unit(source_code, located)
            try:
                decoders = stack.enter_context(
                    Sandbox(unit, config.allowed_globals, config.timeout_ms)
                )
            except (ExtractionFailure, ExtractionTimeout) as e:
                logger.warning("Decoders disabled: %s", e.message)
                diagnostics.append(e.to_diagnostic())
            else:
                rewriter = DecodeRewriter(
                    analysis=ScopeAnalysis(program),
                    decoder_nodes={fn.id.name: fn for fn in located.decode_fns},
                    decoders=decoders,
                    diagnostics=diagnostics,
                    max_key_length=config.patterns.max_key_length,
                    quote_char=config.quote_char,
                    prune=prune,
                )
                passes.append(rewriter.rewrite)
        passes.append(folder.run)

        scheduler = PassScheduler(passes, config.max_cycles, diagnostics)
        stats["cycles"] = scheduler.run(program)

    if rewriter is not None:
        stats["rewritten"] = rewriter.rewritten
        stats["skipped"] = rewriter.skipped
    stats["folded"] = folder.folded

    code = generate_code(source_code, program)
    logger.info(
        "Rewrote %d call site(s), skipped %d, folded %d expression(s) in %d cycle(s)",
        stats["rewritten"],
        stats["skipped"],
        stats["folded"],
        stats["cycles"],
    )
    return DeobfuscationResult(code=code, diagnostics=diagnostics, stats=stats, located=located)
