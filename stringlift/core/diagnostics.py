"""Error taxonomy and non-fatal diagnostics for a deobfuscation run."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from stringlift.core.parser import Position


class DiagnosticKind(str, Enum):
    """Kinds of events recorded during a run."""
    PATTERN_NOT_FOUND = "PatternNotFound"
    AMBIGUOUS_PATTERN = "AmbiguousPattern"
    EXTRACTION_FAILURE = "ExtractionFailure"
    EXTRACTION_TIMEOUT = "ExtractionTimeout"
    REWRITE_SKIPPED = "RewriteSkipped"
    CYCLE_LIMIT_REACHED = "CycleLimitReached"


@dataclass
class Diagnostic:
    """A recorded, non-fatal event."""
    kind: DiagnosticKind
    location: Optional["Position"]
    message: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "line": self.location.row + 1 if self.location else None,
            "column": self.location.column if self.location else None,
            "message": self.message,
        }


class StringliftError(Exception):
    """Base class for pipeline errors."""

    kind: Optional[DiagnosticKind] = None

    def __init__(self, message: str, location: Optional["Position"] = None):
        super().__init__(message)
        self.message = message
        self.location = location

    def to_diagnostic(self) -> Diagnostic:
        if self.kind is None:
            raise TypeError(f"{type(self).__name__} has no diagnostic form")
        return Diagnostic(kind=self.kind, location=self.location, message=self.message)


class ParseError(StringliftError):
    """Malformed input. Fatal for the script."""


class PatternNotFound(StringliftError):
    """No candidate matched a required helper shape."""
    kind = DiagnosticKind.PATTERN_NOT_FOUND


class AmbiguousPattern(StringliftError):
    """More than one candidate matched a shape assumed to be unique."""
    kind = DiagnosticKind.AMBIGUOUS_PATTERN

    def __init__(self, message: str, locations: list["Position"]):
        super().__init__(message, locations[0] if locations else None)
        self.locations = locations


class ExtractionFailure(StringliftError):
    """The extracted unit raised while being evaluated."""
    kind = DiagnosticKind.EXTRACTION_FAILURE

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ExtractionTimeout(StringliftError):
    """The extracted unit exceeded its wall-clock budget."""
    kind = DiagnosticKind.EXTRACTION_TIMEOUT


class HostAccessError(ExtractionFailure):
    """Sandboxed code referenced a global that was stripped from the context."""
