# aspectengine/core/errors.py
"""
Error taxonomy for the engine.

Every engine failure carries a stable ``code`` (used by the HTTP layer for the
JSON ``error`` field and the metrics label) plus a free-form ``context`` bag.
"No aspect" / "no pattern" is never an error: those are ``None`` or ``[]``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "EngineError",
    "InvalidInput",
    "ConfigurationError",
    "ProviderFailure",
    "SearchFailed",
]


class EngineError(ValueError):
    code = "engine_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(f"{self.code}: {message}")
        self.message = message
        self.context = context

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.context:
            out["details"] = {k: v for k, v in self.context.items()}
        return out


class InvalidInput(EngineError):
    """Null/missing position, self-pair, unknown body, malformed request."""
    code = "invalid_input"


class ConfigurationError(EngineError):
    """Aspect type missing from, or disabled in, the catalog; bad orb override."""
    code = "configuration_error"


class ProviderFailure(EngineError, RuntimeError):
    """The external position provider could not produce a position."""
    code = "provider_failure"

    def __init__(self, message: str, *, body: Optional[str] = None, jd: Optional[float] = None, **context: Any):
        super().__init__(message, body=body, jd=jd, **context)
        self.body = body
        self.jd = jd


class SearchFailed(ProviderFailure):
    """A multi-sample search where not a single provider call succeeded."""
    code = "search_failed"
