# aspectengine/core/progressions.py
"""
Symbolic time mappings (progressions) and solar-arc directions.

    age          = (target_jd - birth_jd) / 365.25
    secondary    = birth_jd + age             1 day  <-> 1 year
    tertiary     = birth_jd + age * 27.3      1 day  <-> 1 lunar month
    minor        = birth_jd + age / 27.3      1 month <-> 1 year

The mapper does arithmetic only; positions for the mapped instant come from
the position provider.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Literal, Mapping, Optional

from aspectengine.core.angles import normalize
from aspectengine.core.aspects import PositionsLike, coerce_positions, resolve_all
from aspectengine.core.catalog import AspectCatalog
from aspectengine.core.errors import InvalidInput
from aspectengine.core.models import BodyPosition, DirectedChart
from aspectengine.core.provider import PositionProvider, positions_for
from aspectengine.core.timescales import from_julian_day, to_julian_day

log = logging.getLogger(__name__)

__all__ = [
    "DAYS_PER_YEAR",
    "LUNAR_MONTH_DAYS",
    "METHODS",
    "age_in_years",
    "progressed_jd",
    "progressed_datetime",
    "progressed_chart",
    "solar_arc",
    "directed_chart",
    "solar_arc_chart",
]

ProgressionMethod = Literal["secondary", "tertiary", "minor"]

DAYS_PER_YEAR = 365.25
LUNAR_MONTH_DAYS = 27.3
METHODS = ("secondary", "tertiary", "minor")


def age_in_years(birth_jd: float, target_jd: float) -> float:
    return (float(target_jd) - float(birth_jd)) / DAYS_PER_YEAR


def progressed_jd(birth_jd: float, target_jd: float, method: ProgressionMethod = "secondary") -> float:
    age = age_in_years(birth_jd, target_jd)
    m = (method or "").strip().lower()
    if m == "secondary":
        return float(birth_jd) + age
    if m == "tertiary":
        return float(birth_jd) + age * LUNAR_MONTH_DAYS
    if m == "minor":
        return float(birth_jd) + age / LUNAR_MONTH_DAYS
    raise InvalidInput(f"unknown progression method '{method}'", method=method, supported=list(METHODS))


def progressed_datetime(birth: datetime, target: datetime, method: ProgressionMethod = "secondary") -> datetime:
    return from_julian_day(progressed_jd(to_julian_day(birth), to_julian_day(target), method))


def progressed_chart(
    provider: PositionProvider,
    bodies: Iterable[str],
    birth_jd: float,
    target_jd: float,
    method: ProgressionMethod = "secondary",
    *,
    skip_failures: bool = False,
) -> List[BodyPosition]:
    """Positions at the progressed instant, in ``bodies`` order."""
    pjd = progressed_jd(birth_jd, target_jd, method)
    log.debug("progressed_chart: method=%s birth=%.5f target=%.5f -> %.5f", method, birth_jd, target_jd, pjd)
    return positions_for(provider, bodies, pjd, skip_failures=skip_failures)


def _find(rows: List[BodyPosition], name: str) -> Optional[BodyPosition]:
    for p in rows:
        if p.name == name:
            return p
    return None


def solar_arc(
    provider: PositionProvider,
    natal: PositionsLike,
    birth_jd: float,
    target_jd: float,
    sun: str = "Sun",
) -> float:
    """Secondary-progressed Sun minus natal Sun, in [0, 360)."""
    rows = coerce_positions(natal)
    natal_sun = _find(rows, sun)
    if natal_sun is None:
        raise InvalidInput(f"natal chart has no '{sun}'", body=sun)
    prog = positions_for(provider, [sun], progressed_jd(birth_jd, target_jd, "secondary"))[0]
    return normalize(prog.longitude - natal_sun.longitude)


def directed_chart(
    natal: PositionsLike,
    arc: float,
    angles: Optional[Mapping[str, float]] = None,
    catalog: Optional[AspectCatalog] = None,
) -> DirectedChart:
    """Shift every body and every angle/cusp by ``arc`` and re-resolve aspects."""
    try:
        arc = float(arc)
    except (TypeError, ValueError):
        raise InvalidInput("arc must be a number", arc=arc)
    rows = coerce_positions(natal)
    shifted = tuple(p.shifted(arc) for p in rows)
    moved: Dict[str, float] = {}
    for k, v in (angles or {}).items():
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise InvalidInput(f"angle '{k}' must be a number", angle=k)
        moved[str(k)] = normalize(float(v) + arc)
    return DirectedChart(
        arc=normalize(arc),
        positions=shifted,
        angles=moved,
        aspects=tuple(resolve_all(list(shifted), catalog)),
    )


def solar_arc_chart(
    provider: PositionProvider,
    natal: PositionsLike,
    birth_jd: float,
    target_jd: float,
    angles: Optional[Mapping[str, float]] = None,
    catalog: Optional[AspectCatalog] = None,
    sun: str = "Sun",
) -> DirectedChart:
    rows = coerce_positions(natal)
    arc = solar_arc(provider, rows, birth_jd, target_jd, sun=sun)
    return directed_chart(rows, arc, angles, catalog)
