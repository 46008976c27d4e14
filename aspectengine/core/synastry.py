# aspectengine/core/synastry.py
# -*- coding: utf-8 -*-
"""
Synastry: inter-chart aspects, a bounded compatibility score, and the
midpoint composite.

Public APIs
-----------
harmony_of(aspect_name) -> "harmonious" | "challenging" | "neutral"
compatibility_score(aspects) -> float in [0, 100]
compute_synastry(chart_a, chart_b, catalog=None) -> dict
composite_midpoints(chart_a, chart_b) -> list[BodyPosition]

Scoring
-------
Start at 50. Each aspect contributes by harmony class, scaled by its
strength (1 - difference/orb, floored at 0): harmonious +5, challenging -3,
neutral 0. The total is clamped to [0, 100]; an empty set scores exactly 50.
The score is a heuristic aggregate, not a claim of predictive validity.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Sequence

from aspectengine.core.angles import midpoint
from aspectengine.core.aspects import PositionsLike, coerce_positions, resolve_between
from aspectengine.core.catalog import AspectCatalog
from aspectengine.core.models import Aspect, BodyPosition

__all__ = [
    "HARMONIOUS",
    "CHALLENGING",
    "NEUTRAL",
    "harmony_of",
    "compatibility_score",
    "score_breakdown",
    "compute_synastry",
    "composite_midpoints",
]

Harmony = Literal["harmonious", "challenging", "neutral"]

HARMONIOUS = frozenset({"trine", "sextile", "quintile", "biquintile"})
CHALLENGING = frozenset({"square", "opposition", "semisquare", "sesquiquadrate", "quincunx"})
NEUTRAL = frozenset({"conjunction", "semisextile"})

BASE_SCORE = 50.0
_WEIGHTS: Dict[str, float] = {"harmonious": 5.0, "challenging": -3.0, "neutral": 0.0}


def harmony_of(aspect_name: str) -> Harmony:
    if aspect_name in HARMONIOUS:
        return "harmonious"
    if aspect_name in CHALLENGING:
        return "challenging"
    return "neutral"


def _contribution(a: Aspect) -> float:
    return _WEIGHTS[harmony_of(a.aspect.name)] * a.strength


def compatibility_score(aspects: Sequence[Aspect]) -> float:
    score = BASE_SCORE
    for a in aspects:
        score += _contribution(a)
    return max(0.0, min(100.0, score))


def score_breakdown(aspects: Sequence[Aspect]) -> Dict[str, Dict[str, float]]:
    """Count and summed contribution per harmony class."""
    out: Dict[str, Dict[str, float]] = {k: {"count": 0, "points": 0.0} for k in _WEIGHTS}
    for a in aspects:
        bucket = out[harmony_of(a.aspect.name)]
        bucket["count"] += 1
        bucket["points"] += _contribution(a)
    return out


def composite_midpoints(chart_a: PositionsLike, chart_b: PositionsLike) -> List[BodyPosition]:
    """Circular midpoint of every body present in both charts, in chart A order."""
    rows_b = {p.name: p for p in coerce_positions(chart_b)}
    out: List[BodyPosition] = []
    for p in coerce_positions(chart_a):
        q = rows_b.get(p.name)
        if q is None:
            continue
        out.append(BodyPosition(
            name=p.name,
            longitude=midpoint(p.longitude, q.longitude),
            latitude=0.5 * (p.latitude + q.latitude),
            distance=0.5 * (p.distance + q.distance),
            speed=0.5 * (p.speed + q.speed),
        ))
    return out


def compute_synastry(
    chart_a: PositionsLike,
    chart_b: PositionsLike,
    catalog: Optional[AspectCatalog] = None,
    *,
    composite: bool = True,
) -> Dict[str, Any]:
    """
    Inter-chart aspects (A bodies first), score, per-class breakdown and,
    optionally, the midpoint composite.
    """
    rows_a = coerce_positions(chart_a)
    rows_b = coerce_positions(chart_b)
    aspects = resolve_between(rows_a, rows_b, catalog)
    result: Dict[str, Any] = {
        "aspects": aspects,
        "score": compatibility_score(aspects),
        "breakdown": score_breakdown(aspects),
        "composite": composite_midpoints(rows_a, rows_b) if composite else None,
        "meta": {
            "bodies_a": [p.name for p in rows_a],
            "bodies_b": [p.name for p in rows_b],
            "notes": ["score is a heuristic aggregate; not a claim of predictive validity"],
        },
    }
    return result
