"""Core deobfuscation functionality."""

from stringlift.core.diagnostics import Diagnostic, DiagnosticKind
from stringlift.core.locator import LocatorResult, locate_helpers
from stringlift.core.parser import parse_javascript
from stringlift.core.generator import generate_code
from stringlift.core.pipeline import DeobfuscationResult, deobfuscate

__all__ = [
    "deobfuscate",
    "locate_helpers",
    "parse_javascript",
    "generate_code",
    "DeobfuscationResult",
    "Diagnostic",
    "DiagnosticKind",
    "LocatorResult",
]
