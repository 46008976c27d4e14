# aspectengine/core/provider.py
"""
Position-provider seam.

The engine never computes positions itself. Anything with a
``position(body, jd) -> BodyPosition`` method qualifies; a failure must be
raised as ProviderFailure (or InvalidInput for an unknown body), never
returned as a sentinel.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, runtime_checkable

from aspectengine.core.errors import EngineError, InvalidInput, ProviderFailure, SearchFailed
from aspectengine.core.models import BodyPosition, as_position

log = logging.getLogger(__name__)

__all__ = [
    "PositionProvider",
    "CallableProvider",
    "StaticProvider",
    "positions_for",
    "safe_position",
]


@runtime_checkable
class PositionProvider(Protocol):
    def position(self, body: str, jd: float) -> BodyPosition: ...


def _check(body: str, jd: float, pos: Any) -> BodyPosition:
    if pos is None:
        raise ProviderFailure(f"no position for '{body}'", body=body, jd=jd)
    if not isinstance(pos, BodyPosition):
        try:
            pos = as_position(body, pos)
        except InvalidInput as e:
            raise ProviderFailure(f"malformed position for '{body}': {e.message}", body=body, jd=jd)
    if not math.isfinite(pos.longitude):
        raise ProviderFailure(f"non-finite longitude for '{body}'", body=body, jd=jd)
    return pos


class CallableProvider:
    """Adapt ``fn(body, jd)`` into a provider; any non-engine error becomes ProviderFailure."""

    def __init__(self, fn: Callable[[str, float], Any], name: str = "callable"):
        self._fn = fn
        self.name = name

    def position(self, body: str, jd: float) -> BodyPosition:
        try:
            raw = self._fn(body, jd)
        except EngineError:
            raise
        except Exception as e:
            raise ProviderFailure(f"{self.name}: {type(e).__name__}: {e}", body=body, jd=jd) from e
        return _check(body, jd, raw)

    def __repr__(self) -> str:
        return f"CallableProvider({self.name!r})"


class StaticProvider:
    """
    Fixed chart: the same position for a body at every instant.

    ``missing="fail"`` raises ProviderFailure for bodies not in the chart;
    ``missing="invalid"`` raises InvalidInput instead.
    """

    def __init__(self, positions: Mapping[str, Any], missing: str = "fail"):
        self._rows: Dict[str, BodyPosition] = {str(k): as_position(str(k), v) for k, v in positions.items()}
        self._missing = missing

    def position(self, body: str, jd: float) -> BodyPosition:
        pos = self._rows.get(body)
        if pos is None:
            if self._missing == "invalid":
                raise InvalidInput(f"unknown body '{body}'", body=body)
            raise ProviderFailure(f"no position for '{body}'", body=body, jd=jd)
        return pos

    def bodies(self) -> List[str]:
        return list(self._rows)


def safe_position(provider: PositionProvider, body: str, jd: float) -> Optional[BodyPosition]:
    """Single lookup for multi-sample loops: ProviderFailure is logged and mapped to None."""
    try:
        return _check(body, jd, provider.position(body, jd))
    except ProviderFailure as e:
        log.debug("sample skipped: body=%s jd=%.6f (%s)", body, jd, e.message)
        return None


def positions_for(
    provider: PositionProvider,
    bodies: Iterable[str],
    jd: float,
    skip_failures: bool = False,
) -> List[BodyPosition]:
    """
    Position set at one instant, in ``bodies`` order.

    Without ``skip_failures`` the first ProviderFailure propagates. With it,
    failed bodies are dropped (WARNING) and an empty result is SearchFailed.
    """
    names = list(bodies)
    if not names:
        raise InvalidInput("no bodies requested")
    out: List[BodyPosition] = []
    failed: List[str] = []
    for name in names:
        if not skip_failures:
            out.append(_check(name, jd, provider.position(name, jd)))
            continue
        try:
            out.append(_check(name, jd, provider.position(name, jd)))
        except ProviderFailure as e:
            log.warning("position lookup failed, body omitted: body=%s jd=%.6f (%s)", name, jd, e.message)
            failed.append(name)
    if not out:
        raise SearchFailed("no body position could be computed", jd=jd, failed=failed)
    return out
