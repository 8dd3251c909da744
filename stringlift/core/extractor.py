"""Assembly of the minimal program unit that reproduces string decoding."""

import json
import logging
from dataclasses import dataclass

from stringlift.core.locator import LocatorResult
from stringlift.core.parser import node_source

logger = logging.getLogger(__name__)

EXPORT_NAME = "__stringlift_decoders__"


@dataclass
class ExtractedUnit:
    """Self-contained source for the sandbox plus the names it exports."""
    source: str
    decoder_names: list[str]
    export_name: str = EXPORT_NAME

    def export_expression(self, decoder_name: str) -> str:
        return f"{self.export_name}[{json.dumps(decoder_name)}]"


def extract_unit(source_code: str, located: LocatorResult) -> ExtractedUnit:
    """Build the helper-only program.

    Statements keep their original relative order: the shuffle call mutates
    the table that the decoders read, so it has to run where it ran in the
    original script, before any decoder is first invoked from outside.

    Args:
        source_code: Original source text the located nodes point into
        located: Locator output

    Returns:
        ExtractedUnit ending with a synthetic export of every decoder
    """
    statements = sorted(located.helper_nodes(), key=lambda node: node.range[0])
    parts = []
    for node in statements:
        text = node_source(source_code, node)
        if node.type == "ExpressionStatement" and not text.rstrip().endswith(";"):
            text += ";"
        parts.append(text)

    # Forwarding closures: decoders redefine their own binding on first call.
    exports = ",\n".join(
        f"  {json.dumps(name)}: function (index, key) {{ return {name}(index, key); }}"
        for name in located.decoder_names
    )
    parts.append(f"var {EXPORT_NAME} = {{\n{exports}\n}};")

    unit = ExtractedUnit(source="\n".join(parts) + "\n", decoder_names=located.decoder_names)
    logger.debug("Extracted unit: %d statements, %d chars", len(statements), len(unit.source))
    return unit
