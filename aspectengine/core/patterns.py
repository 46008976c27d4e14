# aspectengine/core/patterns.py
"""
Multi-body pattern detection over a resolved aspect set.

Search order is fixed: closed triangles, then tension crosses, then sign
clusters. Triangles and crosses are discovered once per traversal path, so the
raw search can report the same body set several times; ``detect_patterns``
drops repeats by (kind, sorted bodies) unless ``dedupe=False``.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from aspectengine.core.angles import sign_index, sign_name
from aspectengine.core.aspects import PositionsLike, coerce_positions
from aspectengine.core.catalog import AspectCatalog, default_catalog
from aspectengine.core.models import Aspect, Pattern

log = logging.getLogger(__name__)

__all__ = [
    "find_closed_triangles",
    "find_tension_crosses",
    "find_clusters",
    "dedupe_patterns",
    "detect_patterns",
]


def _of_type(aspects: Sequence[Aspect], name: str) -> List[Aspect]:
    return [a for a in aspects if a.aspect.name == name]


def _joined(aspects: Sequence[Aspect], x: str, y: str) -> bool:
    for a in aspects:
        if (a.body1 == x and a.body2 == y) or (a.body1 == y and a.body2 == x):
            return True
    return False


def _triangle_label(aspect_type: str) -> str:
    if aspect_type == "trine":
        return "Grand Trine"
    return f"Closed {aspect_type} triangle"


# ─────────────────────────────────────────────────────────────────────────────
# Closed triangles
# ─────────────────────────────────────────────────────────────────────────────

def find_closed_triangles(aspects: Sequence[Aspect], aspect_type: str = "trine") -> List[Pattern]:
    """
    For each pair (i < j) of ``aspect_type`` aspects sharing exactly one body,
    look for a third aspect of the same type joining the two outer bodies.
    The first closer found is reported; the search then moves to the next pair.
    """
    typed = _of_type(aspects, aspect_type)
    label = _triangle_label(aspect_type)
    out: List[Pattern] = []
    for i in range(len(typed)):
        a = typed[i]
        ends_a = {a.body1, a.body2}
        for j in range(i + 1, len(typed)):
            b = typed[j]
            shared = ends_a & {b.body1, b.body2}
            if len(shared) != 1:
                continue
            hub = next(iter(shared))
            outer_a = a.other(hub)
            outer_b = b.other(hub)
            if _joined(typed, outer_a, outer_b):
                bodies = (a.body1, a.body2, outer_b)
                out.append(Pattern(
                    kind="closed_triangle",
                    bodies=bodies,
                    description=f"{label}: {', '.join(bodies)}",
                ))
    return out

# ─────────────────────────────────────────────────────────────────────────────
# Tension crosses (T-square)
# ─────────────────────────────────────────────────────────────────────────────

def find_tension_crosses(
    aspects: Sequence[Aspect],
    opposition: str = "opposition",
    square: str = "square",
) -> List[Pattern]:
    """
    For each opposition (p1, p2) find a body x outside the pair that is
    square to one end; emit when x is square to the other end as well.
    """
    opps = _of_type(aspects, opposition)
    squares = _of_type(aspects, square)
    out: List[Pattern] = []
    for opp in opps:
        p1, p2 = opp.body1, opp.body2
        for sq in squares:
            if sq.involves(p1):
                touched = p1
            elif sq.involves(p2):
                touched = p2
            else:
                continue
            apex = sq.other(touched)
            if apex in (p1, p2):
                continue
            far = p2 if touched == p1 else p1
            if _joined(squares, apex, far):
                out.append(Pattern(
                    kind="tension_cross",
                    bodies=(p1, p2, apex),
                    description=f"T-Square: {p1} opp {p2}, both square {apex}",
                ))
    return out

# ─────────────────────────────────────────────────────────────────────────────
# Sign clusters (stellium)
# ─────────────────────────────────────────────────────────────────────────────

def find_clusters(positions: PositionsLike, min_size: int = 3) -> List[Pattern]:
    """
    Bodies sharing one 30° sign, reported per sign in zodiac order.

    Every member is listed, so a crowded sign gives a cluster of more than six.
    """
    rows = coerce_positions(positions)
    buckets: Dict[int, List[str]] = {}
    for p in rows:
        buckets.setdefault(sign_index(p.longitude), []).append(p.name)
    out: List[Pattern] = []
    for idx in range(12):
        members = buckets.get(idx, [])
        if len(members) >= int(min_size):
            out.append(Pattern(
                kind="cluster",
                bodies=tuple(members),
                description=f"Stellium in {sign_name(idx)} ({len(members)} planets)",
                sign=idx,
            ))
    return out

# ─────────────────────────────────────────────────────────────────────────────
# Façade
# ─────────────────────────────────────────────────────────────────────────────

def dedupe_patterns(patterns: Sequence[Pattern]) -> List[Pattern]:
    """Keep the first pattern per (kind, sorted bodies)."""
    seen: Set[Tuple[str, Tuple[str, ...]]] = set()
    out: List[Pattern] = []
    for p in patterns:
        if p.key in seen:
            continue
        seen.add(p.key)
        out.append(p)
    removed = len(patterns) - len(out)
    if removed:
        log.debug("dedupe_patterns: dropped %d repeated pattern(s)", removed)
    return out


def detect_patterns(
    positions: PositionsLike,
    aspects: Sequence[Aspect],
    catalog: Optional[AspectCatalog] = None,
    dedupe: bool = True,
    *,
    triangle_type: str = "trine",
    min_cluster: int = 3,
) -> List[Pattern]:
    cat = catalog if catalog is not None else default_catalog()
    # ConfigurationError here means "cannot search", not "nothing found"
    for needed in (triangle_type, "opposition", "square"):
        cat.require(needed)

    found: List[Pattern] = []
    found.extend(find_closed_triangles(aspects, triangle_type))
    found.extend(find_tension_crosses(aspects))
    found.extend(find_clusters(positions, min_cluster))
    return dedupe_patterns(found) if dedupe else found
