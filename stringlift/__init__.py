"""Stringlift - static string recovery for string-array obfuscated JavaScript."""

__version__ = "0.1.0"
__author__ = "stringlift"

from stringlift.config import PatternConfig, PipelineConfig
from stringlift.core.pipeline import deobfuscate
from stringlift.core.parser import parse_javascript
from stringlift.core.generator import generate_code

__all__ = [
    "__version__",
    "PatternConfig",
    "PipelineConfig",
    "deobfuscate",
    "parse_javascript",
    "generate_code",
]
