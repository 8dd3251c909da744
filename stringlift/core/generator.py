"""Code generation by splicing rewritten nodes back into the original source."""

import logging
import math
from decimal import Decimal
from pathlib import Path

from esprima.nodes import Node
from rich.console import Console

from stringlift.core.parser import is_evaluated, walk

console = Console()
logger = logging.getLogger(__name__)

_SIMPLE_ESCAPES = {
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
}


def render_string(value: str, quote: str = "'") -> str:
    """Render a JavaScript string literal."""
    out = [quote]
    for ch in value:
        code = ord(ch)
        if ch == quote:
            out.append("\\" + ch)
        elif ch in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[ch])
        elif code < 0x20 or code == 0x7F:
            out.append(f"\\x{code:02x}")
        elif code in (0x2028, 0x2029) or 0xD800 <= code <= 0xDFFF:
            out.append(f"\\u{code:04x}")
        else:
            out.append(ch)
    out.append(quote)
    return "".join(out)


def render_number(value: float) -> str:
    """Render a finite number the way JavaScript's Number#toString does for literals."""
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise ValueError(f"cannot render non-finite number {value!r}")
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))

    # Shortest round-trip digits, laid out by the Number::toString rules.
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(map(str, digit_tuple)).rstrip("0") or "0"
    k = len(digits)
    n = exponent + len(digit_tuple)

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if n > 0 else '-'}{abs(n - 1)}"
    return sign + text


def generate_code(source_code: str, program: Node) -> str:
    """Render the program, reusing original text for everything not replaced.

    Args:
        source_code: Source the program was parsed from
        program: Program node, possibly with replaced subtrees

    Returns:
        Source code with each top-most replaced node re-rendered in place
    """
    replaced = [node for node in walk(program) if _is_replacement(node)]
    if not replaced:
        return source_code

    parts = []
    cursor = 0
    for node in sorted(replaced, key=lambda n: n.range[0]):
        start, end = node.range
        text = node.raw
        # Keep "a - -1" from collapsing into a decrement.
        if text[:1] in "-+" and start > 0 and source_code[start - 1] in "-+":
            text = " " + text
        parts.append(source_code[cursor:start])
        parts.append(text)
        cursor = end
    parts.append(source_code[cursor:])
    logger.debug("Spliced %d replacement(s) into output", len(replaced))
    return "".join(parts)


def _is_replacement(node: Node) -> bool:
    return is_evaluated(node) and getattr(node, "range", None) is not None


def save_output(
    code: str,
    output_path: Path,
    create_dirs: bool = True,
) -> None:
    """Save code to file.

    Args:
        code: Source code to save
        output_path: Path to save to
        create_dirs: Whether to create parent directories
    """
    if create_dirs:
        output_path.parent.mkdir(parents=True, exist_ok=True)

    output_path.write_text(code, encoding="utf-8")
    console.print(f"[green]Saved output to: {output_path}[/green]")
