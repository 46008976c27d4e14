# aspectengine/core/aspects.py
"""
Pairwise aspect resolution.

Matching rule
-------------
The raw separation ``d`` (shortest arc, [0, 180]) is tested against the catalog
in declaration order. The first *enabled* entry with ``|d - angle| <= orb``
wins, even if a later entry would be closer. No match means no aspect.

Applying / separating
---------------------
``motion`` is a first-order heuristic from instantaneous speeds only:

    speed_diff = speed1 - speed2
    |speed_diff| < 0.01 °/day   -> "stationary"
    speed_diff > 0              -> applying iff d < angle
    speed_diff < 0              -> applying iff d > angle

It assumes both bodies keep their current speed. It does not account for
acceleration or stations and is not a promise that the aspect will perfect.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from aspectengine.core.angles import angular_distance
from aspectengine.core.catalog import AspectCatalog, AspectTypeConfig, default_catalog
from aspectengine.core.errors import InvalidInput
from aspectengine.core.models import Aspect, BodyPosition, Motion, as_position

log = logging.getLogger(__name__)

__all__ = [
    "STATIONARY_THRESHOLD",
    "motion_of",
    "match_distance",
    "check_longitudes",
    "resolve_pair",
    "resolve_all",
    "resolve_between",
    "aspect_strength",
    "coerce_positions",
]

STATIONARY_THRESHOLD = 0.01         # deg/day

PositionsLike = Union[Mapping[str, Any], Iterable[BodyPosition]]


def _catalog(catalog: Optional[AspectCatalog]) -> AspectCatalog:
    return catalog if catalog is not None else default_catalog()


def coerce_positions(positions: PositionsLike) -> List[BodyPosition]:
    """
    Normalise a position set to a list of BodyPosition, preserving order.

    Accepts a mapping ``{name: lon | {lon, speed, ...} | BodyPosition}`` or an
    iterable of BodyPosition.
    """
    if positions is None:
        raise InvalidInput("position set is missing")
    if isinstance(positions, Mapping):
        return [as_position(str(k), v) for k, v in positions.items()]
    out: List[BodyPosition] = []
    for p in positions:
        if not isinstance(p, BodyPosition):
            raise InvalidInput("position set entries must be BodyPosition", value=repr(p))
        out.append(p)
    return out


def motion_of(distance: float, angle: float, speed1: float, speed2: float) -> Motion:
    speed_diff = float(speed1) - float(speed2)
    if abs(speed_diff) < STATIONARY_THRESHOLD:
        return "stationary"
    if speed_diff > 0:
        return "applying" if distance < angle else "separating"
    return "applying" if distance > angle else "separating"


def match_distance(d: float, catalog: Optional[AspectCatalog] = None) -> Optional[Tuple[AspectTypeConfig, float]]:
    """First enabled catalog entry whose orb window contains ``d``."""
    for entry in _catalog(catalog):
        if not entry.enabled:
            continue
        diff = abs(d - entry.angle)
        if diff <= entry.orb:
            return entry, diff
    return None


def check_longitudes(lon1: float, lon2: float, catalog: Optional[AspectCatalog] = None) -> Optional[Tuple[AspectTypeConfig, float]]:
    """Longitude-only check: ``(entry, difference)`` or None."""
    return match_distance(angular_distance(lon1, lon2), catalog)


def _build(p1: BodyPosition, p2: BodyPosition, catalog: AspectCatalog) -> Optional[Aspect]:
    d = angular_distance(p1.longitude, p2.longitude)
    hit = match_distance(d, catalog)
    if hit is None:
        return None
    entry, diff = hit
    return Aspect(
        body1=p1.name,
        body2=p2.name,
        aspect=entry,
        distance=d,
        difference=diff,
        motion=motion_of(d, entry.angle, p1.speed, p2.speed),
        exact=diff <= entry.tight_orb,
    )


def resolve_pair(p1: Optional[BodyPosition], p2: Optional[BodyPosition], catalog: Optional[AspectCatalog] = None) -> Optional[Aspect]:
    """Aspect between two positions of one chart, or None."""
    if p1 is None or p2 is None:
        raise InvalidInput("missing position", body1=getattr(p1, "name", None), body2=getattr(p2, "name", None))
    if p1.name == p2.name:
        raise InvalidInput(f"self-pair '{p1.name}'", body=p1.name)
    return _build(p1, p2, _catalog(catalog))


def _unique(positions: Sequence[BodyPosition], label: str) -> None:
    seen = set()
    for p in positions:
        if p.name in seen:
            raise InvalidInput(f"duplicate body '{p.name}' in {label}", body=p.name)
        seen.add(p.name)


def resolve_all(positions: PositionsLike, catalog: Optional[AspectCatalog] = None) -> List[Aspect]:
    """All aspects among a position set, pairs (i < j) in input order."""
    rows = coerce_positions(positions)
    _unique(rows, "position set")
    cat = _catalog(catalog)
    out: List[Aspect] = []
    for i in range(len(rows)):
        for j in range(i + 1, len(rows)):
            hit = _build(rows[i], rows[j], cat)
            if hit is not None:
                out.append(hit)
    log.debug("resolve_all: %d bodies -> %d aspects", len(rows), len(out))
    return out


def resolve_between(moving: PositionsLike, fixed: PositionsLike, catalog: Optional[AspectCatalog] = None) -> List[Aspect]:
    """
    Aspects across two charts (moving body first in every result).

    A name present in both sets is two different points (transit Sun and
    natal Sun) and is resolved like any other pair.
    """
    a = coerce_positions(moving)
    b = coerce_positions(fixed)
    _unique(a, "first chart")
    _unique(b, "second chart")
    cat = _catalog(catalog)
    out: List[Aspect] = []
    for p in a:
        for q in b:
            hit = _build(p, q, cat)
            if hit is not None:
                out.append(hit)
    log.debug("resolve_between: %dx%d -> %d aspects", len(a), len(b), len(out))
    return out


def aspect_strength(aspect: Aspect) -> float:
    return aspect.strength
