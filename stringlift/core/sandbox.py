"""Isolated evaluation of the extracted unit in a fresh V8 context.

This isolates the snippet from host state; it is not a security boundary.
"""

import json
import logging
import re
from typing import Callable, Optional

from py_mini_racer import JSEvalException, JSTimeoutException, MiniRacer

from stringlift.core.diagnostics import ExtractionFailure, ExtractionTimeout, HostAccessError
from stringlift.core.extractor import ExtractedUnit

logger = logging.getLogger(__name__)

Decoder = Callable[[float, str], object]

_REFERENCE_ERROR = re.compile(r"\bReferenceError\b")

# Removes every global outside the allow-list before the unit runs.
_STRIP_GLOBALS = """
(function (allowed) {
  var host = globalThis;
  var names = Object.getOwnPropertyNames(host);
  for (var i = 0; i < names.length; i++) {
    if (allowed.indexOf(names[i]) === -1) {
      try { delete host[names[i]]; } catch (e) {}
    }
  }
})(%s);
"""


class Sandbox:
    """Scoped evaluation context yielding host-callable decoders.

    Usage::

        with Sandbox(unit, allowed_globals, timeout_ms) as decoders:
            decoders["_0x2f"](0x1a0, "abcd")

    A new context is created on enter and closed on exit, on evaluation
    failure and on timeout alike.
    """

    def __init__(self, unit: ExtractedUnit, allowed_globals: list[str], timeout_ms: int = 2000):
        self.unit = unit
        self.allowed_globals = list(allowed_globals)
        self.timeout_ms = timeout_ms
        self._ctx: Optional[MiniRacer] = None

    def __enter__(self) -> dict[str, Decoder]:
        self.open()
        return {name: self._bind(name) for name in self.unit.decoder_names}

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._ctx is not None

    def open(self) -> None:
        """Create the context, strip globals and evaluate the unit."""
        try:
            self._ctx = MiniRacer()
            self._ctx.eval(_STRIP_GLOBALS % json.dumps(self.allowed_globals))
            self._ctx.eval(self.unit.source, timeout=self.timeout_ms)
        except JSTimeoutException as e:
            self.close()
            raise ExtractionTimeout(
                f"extracted unit did not finish within {self.timeout_ms} ms"
            ) from e
        except JSEvalException as e:
            self.close()
            raise _failure(f"extracted unit raised: {_describe(e)}", e) from e
        logger.debug("Sandbox ready with %d decoder(s)", len(self.unit.decoder_names))

    def close(self) -> None:
        if self._ctx is None:
            return
        ctx, self._ctx = self._ctx, None
        ctx.close()

    def call(self, decoder_name: str, index: float, key: str) -> object:
        """Invoke one exported decoder with literal arguments."""
        if self._ctx is None:
            raise ExtractionFailure("sandbox is closed")
        try:
            return self._ctx.call(
                self.unit.export_expression(decoder_name),
                index,
                key,
                timeout=self.timeout_ms,
            )
        except JSTimeoutException as e:
            raise ExtractionTimeout(
                f"{decoder_name}({index!r}, {key!r}) did not return within {self.timeout_ms} ms"
            ) from e
        except JSEvalException as e:
            raise _failure(f"{decoder_name} raised: {_describe(e)}", e) from e

    def _bind(self, decoder_name: str) -> Decoder:
        def decode(index: float, key: str) -> object:
            return self.call(decoder_name, index, key)
        decode.__name__ = decoder_name
        return decode


def _describe(error: BaseException, limit: int = 300) -> str:
    text = " ".join(str(error).split())
    if not text:
        return type(error).__name__
    return text if len(text) <= limit else text[:limit - 3] + "..."


def _failure(message: str, error: JSEvalException) -> ExtractionFailure:
    """A ReferenceError means the code reached for a stripped global."""
    if _REFERENCE_ERROR.search(str(error)):
        return HostAccessError(message, cause=error)
    return ExtractionFailure(message, cause=error)
