"""Configuration management for stringlift."""

import json
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

LoopTestShape = Literal["double_negated_array", "true_literal", "negated_zero"]

DEFAULT_ALLOWED_GLOBALS = [
    "Array",
    "String",
    "Number",
    "Boolean",
    "Object",
    "Function",
    "Math",
    "JSON",
    "RegExp",
    "Error",
    "TypeError",
    "RangeError",
    "SyntaxError",
    "ReferenceError",
    "parseInt",
    "parseFloat",
    "isNaN",
    "isFinite",
    "decodeURIComponent",
    "encodeURIComponent",
    "decodeURI",
    "encodeURI",
    "escape",
    "unescape",
    "undefined",
    "NaN",
    "Infinity",
]


class PatternConfig(BaseModel):
    """Structural-pattern tuning for helper detection."""

    loop_tests: list[LoopTestShape] = Field(
        default_factory=lambda: ["double_negated_array"],
        description="Accepted shapes for the shuffle loop condition",
    )
    rotate_methods: list[tuple[str, str]] = Field(
        default_factory=lambda: [("push", "shift")],
        description="(insert, remove) method pairs that rotate the string table",
    )
    require_catch_rotate: bool = Field(
        default=True,
        description="Require the rotation to appear in the catch handler of the shuffle loop",
    )
    require_shuffle: bool = Field(
        default=True,
        description="Fail with PatternNotFound when no shuffle routine is present",
    )
    max_key_length: int = Field(default=16, ge=1, description="Longest per-call key string accepted")

    @classmethod
    def from_file(cls, path: Path) -> "PatternConfig":
        """Load pattern tuning from a JSON file."""
        return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))


class PipelineConfig(BaseModel):
    """Options for one deobfuscation run."""

    patterns: PatternConfig = Field(default_factory=PatternConfig)
    timeout_ms: int = Field(default=2000, ge=1, description="Sandbox wall-clock budget per evaluation")
    max_cycles: int = Field(default=25, ge=1, description="Upper bound on rewrite/fold cycles")
    max_fold_passes: int = Field(default=100, ge=1, description="Upper bound on fold passes per cycle")
    allowed_globals: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_GLOBALS),
        description="Host built-ins left visible inside the sandbox",
    )
    quote_char: Literal["'", '"'] = Field(default="'", description="Quote used for rewritten strings")
    rewrite_helpers: bool = Field(
        default=False,
        description="Also rewrite call sites inside the located helper routines",
    )


class Settings(BaseSettings):
    """Command-line settings, overridable through STRINGLIFT_* variables or .env."""

    timeout_ms: int = Field(default=2000, ge=1)
    max_cycles: int = Field(default=25, ge=1)
    quote_char: Literal["'", '"'] = Field(default="'")
    rewrite_helpers: bool = Field(default=False)
    patterns_file: Optional[Path] = Field(default=None, description="JSON file with PatternConfig fields")

    # Output Settings
    output_suffix: str = Field(default=".deobfuscated.js", description="Suffix for output files")
    beautify: bool = Field(default=False, description="Reformat output with jsbeautifier")

    model_config = {
        "env_prefix": "STRINGLIFT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def pipeline_config(self) -> PipelineConfig:
        patterns = PatternConfig.from_file(self.patterns_file) if self.patterns_file else PatternConfig()
        return PipelineConfig(
            patterns=patterns,
            timeout_ms=self.timeout_ms,
            max_cycles=self.max_cycles,
            quote_char=self.quote_char,
            rewrite_helpers=self.rewrite_helpers,
        )


def load_settings(**overrides) -> Settings:
    """Load settings from .env files and the environment, then apply overrides."""
    # 1. Current working directory
    load_dotenv()
    # 2. Home directory config
    load_dotenv(Path.home() / ".config" / "stringlift" / ".env")
    return Settings(**{key: value for key, value in overrides.items() if value is not None})
