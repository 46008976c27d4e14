# aspectengine/core/transits.py
"""
Transit timing: exact-aspect search plus transit listing and ranking.

``find_exact_transit`` is a two-stage grid search:

  1. coarse  – sample [start, end] every ``coarse_step`` days, keep the
               sample with the smallest |d - angle| (earliest wins ties);
  2. refine  – resample best ± ``window`` days every ``fine_step`` days; the
               coarse best is kept unless strictly improved.

The result is the best *sample*, at roughly ``fine_step`` resolution. With
several crossings in the interval only one is returned, and a minimum that
lies outside the refine window around the coarse optimum is missed.
``method="bisection"`` narrows a bracketing sign change between adjacent
coarse samples instead, and falls back to the grid refine when there is none.

Failed provider samples are skipped; a search in which nothing succeeded
raises SearchFailed.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Callable, Iterable, List, Literal, Optional, Sequence, Tuple

from aspectengine.core.angles import angular_distance, normalize, signed_delta
from aspectengine.core.aspects import PositionsLike, coerce_positions, resolve_between
from aspectengine.core.catalog import AspectCatalog, AspectTypeConfig, default_catalog
from aspectengine.core.errors import InvalidInput, ProviderFailure, SearchFailed
from aspectengine.core.models import TransitEvent, TransitScore
from aspectengine.core.provider import PositionProvider, positions_for, safe_position
from aspectengine.core.timescales import from_julian_day

log = logging.getLogger(__name__)

__all__ = [
    "OUTER_BODIES",
    "find_exact_transit",
    "find_return",
    "transits_at",
    "transits_over_period",
    "transit_strength",
    "analyze_importance",
    "most_important",
    "filter_by_body",
    "filter_by_aspect",
    "format_event",
]

SearchMethod = Literal["grid", "bisection"]

OUTER_BODIES = frozenset({"Jupiter", "Saturn", "Uranus", "Neptune", "Pluto"})
_EMPHATIC = frozenset({"conjunction", "opposition", "square"})

_EPS_JD = 1e-9


def _describe(transiting: str, aspect: str, natal: str) -> str:
    return f"Transit {transiting} {aspect} natal {natal}"


def _check_interval(start_jd: float, end_jd: float) -> Tuple[float, float]:
    try:
        s, e = float(start_jd), float(end_jd)
    except (TypeError, ValueError):
        raise InvalidInput("interval bounds must be numbers", start=start_jd, end=end_jd)
    if not (math.isfinite(s) and math.isfinite(e)):
        raise InvalidInput("interval bounds must be finite", start=s, end=e)
    if s > e:
        raise InvalidInput("interval start is after its end", start=s, end=e)
    return s, e


def _grid(t0: float, t1: float, step: float) -> List[float]:
    """t0, t0+step, ... <= t1 (index-based, no float drift)."""
    n = int(math.floor((t1 - t0) / step + _EPS_JD))
    return [t0 + k * step for k in range(n + 1)]

# ─────────────────────────────────────────────────────────────────────────────
# Bisection refine
# ─────────────────────────────────────────────────────────────────────────────

def _refine_zero(f: Callable[[float], Optional[float]], t0: float, t1: float, f0: float, f1: float,
                 *, max_iter: int = 64, tol_days: float = 1e-5) -> Optional[float]:
    if f0 == 0.0:
        return t0
    if f1 == 0.0:
        return t1
    if f0 * f1 > 0.0:
        return None
    a, b = t0, t1
    fa = f0
    for _ in range(max_iter):
        m = 0.5 * (a + b)
        fm = f(m)
        if fm is None:
            return None
        if fm == 0.0 or (b - a) <= tol_days:
            return m
        if fa * fm <= 0.0:
            b = m
        else:
            a, fa = m, fm
    return 0.5 * (a + b)


def _signed_error(lon: float, reference: float, angle: float) -> float:
    """
    Continuous signed error whose zero is the exact aspect.

    |d - angle| never changes sign at 0° or 180°, so those two use the signed
    arc to the target point instead.
    """
    if angle <= 0.0 or angle >= 180.0:
        return signed_delta(normalize(reference + angle), lon)
    return angular_distance(lon, reference) - angle


def _bracket_near(samples: Sequence[Tuple[float, float]], best_t: float) -> Optional[Tuple[float, float, float, float]]:
    chosen = None
    for (t0, f0), (t1, f1) in zip(samples, samples[1:]):
        if f0 * f1 > 0.0:
            continue
        # a jump across ±180 of the signed arc is a wrap, not a crossing
        if abs(f0) + abs(f1) > 90.0:
            continue
        gap = abs(0.5 * (t0 + t1) - best_t)
        if chosen is None or gap < chosen[0]:
            chosen = (gap, (t0, f0, t1, f1))
    return chosen[1] if chosen else None

# ─────────────────────────────────────────────────────────────────────────────
# Exact search
# ─────────────────────────────────────────────────────────────────────────────

def find_exact_transit(
    provider: PositionProvider,
    body: str,
    reference_lon: float,
    aspect: Any,
    start_jd: float,
    end_jd: float,
    *,
    catalog: Optional[AspectCatalog] = None,
    coarse_step: float = 1.0,
    fine_step: float = 1.0 / 24.0,
    window: float = 1.0,
    method: SearchMethod = "grid",
    tol_days: float = 1e-5,
    natal: str = "reference",
) -> TransitEvent:
    """
    Instant in [start_jd, end_jd] where ``body`` is closest to ``aspect``
    (name, angle or catalog entry) from ``reference_lon``.
    """
    start, end = _check_interval(start_jd, end_jd)
    if coarse_step <= 0 or fine_step <= 0 or window < 0:
        raise InvalidInput("search steps must be positive", coarse_step=coarse_step, fine_step=fine_step, window=window)
    if method not in ("grid", "bisection"):
        raise InvalidInput(f"unknown search method '{method}'", method=method)
    cat = catalog if catalog is not None else default_catalog()
    entry: AspectTypeConfig = cat.resolve(aspect)
    ref = normalize(reference_lon)
    angle = entry.angle

    attempted = 0
    succeeded = 0

    def lon_at(t: float) -> Optional[float]:
        nonlocal attempted, succeeded
        attempted += 1
        pos = safe_position(provider, body, t)
        if pos is None:
            return None
        succeeded += 1
        return pos.longitude

    best_t: Optional[float] = None
    best_diff = math.inf
    coarse: List[Tuple[float, float]] = []

    for t in _grid(start, end, coarse_step):
        lon = lon_at(t)
        if lon is None:
            continue
        diff = abs(angular_distance(lon, ref) - angle)
        coarse.append((t, _signed_error(lon, ref, angle)))
        if diff < best_diff:
            best_diff, best_t = diff, t

    if best_t is None:
        raise SearchFailed(
            f"no position for '{body}' in the search interval",
            body=body, start=start, end=end, attempted=attempted,
        )
    log.debug("coarse: body=%s best_jd=%.5f diff=%.5f (%d/%d samples)", body, best_t, best_diff, succeeded, attempted)

    refined = False
    if method == "bisection":
        br = _bracket_near(coarse, best_t)
        if br is not None:
            def f(t: float) -> Optional[float]:
                lon = lon_at(t)
                return None if lon is None else _signed_error(lon, ref, angle)

            t_root = _refine_zero(f, br[0], br[2], br[1], br[3], tol_days=tol_days)
            if t_root is not None:
                lon = lon_at(t_root)
                if lon is not None:
                    diff = abs(angular_distance(lon, ref) - angle)
                    if diff < best_diff:
                        best_diff, best_t = diff, t_root
                    refined = True
        if not refined:
            log.debug("bisection: no usable bracket, falling back to grid refine")

    if not refined:
        lo = best_t - window
        for t in _grid(lo, best_t + window, fine_step):
            lon = lon_at(t)
            if lon is None:
                continue
            diff = abs(angular_distance(lon, ref) - angle)
            if diff < best_diff:
                best_diff, best_t = diff, t

    skipped = attempted - succeeded
    if skipped:
        log.warning("find_exact_transit: %d of %d samples skipped for %s", skipped, attempted, body)
    log.debug("refine: body=%s best_jd=%.6f diff=%.6f method=%s", body, best_t, best_diff, method)

    return TransitEvent(
        transiting=body,
        natal=natal,
        aspect=entry.name,
        jd=best_t,
        when=from_julian_day(best_t),
        orb=best_diff,
        exact=best_diff <= entry.tight_orb,
        description=_describe(body, entry.name, natal),
    )


def find_return(
    provider: PositionProvider,
    body: str,
    natal_lon: float,
    start_jd: float,
    span_days: float = 5.0,
    *,
    catalog: Optional[AspectCatalog] = None,
    **search: Any,
) -> TransitEvent:
    """Planetary return: conjunction of ``body`` with its natal longitude."""
    return find_exact_transit(
        provider, body, natal_lon, "conjunction", start_jd, float(start_jd) + float(span_days),
        catalog=catalog, natal=body, **search,
    )

# ─────────────────────────────────────────────────────────────────────────────
# Listing
# ─────────────────────────────────────────────────────────────────────────────

def transits_at(
    provider: PositionProvider,
    natal: PositionsLike,
    jd: float,
    bodies: Iterable[str],
    catalog: Optional[AspectCatalog] = None,
    *,
    skip_failures: bool = False,
) -> List[TransitEvent]:
    """Aspects from transiting ``bodies`` at ``jd`` to the natal positions."""
    natal_rows = coerce_positions(natal)
    moving = positions_for(provider, bodies, jd, skip_failures=skip_failures)
    when = from_julian_day(jd)
    return [
        TransitEvent(
            transiting=a.body1,
            natal=a.body2,
            aspect=a.aspect.name,
            jd=float(jd),
            when=when,
            orb=a.difference,
            exact=a.exact,
            description=_describe(a.body1, a.aspect.name, a.body2),
        )
        for a in resolve_between(moving, natal_rows, catalog)
    ]


def transits_over_period(
    provider: PositionProvider,
    natal: PositionsLike,
    start_jd: float,
    end_jd: float,
    bodies: Iterable[str],
    step: float = 1.0,
    catalog: Optional[AspectCatalog] = None,
) -> List[TransitEvent]:
    """Transits sampled every ``step`` days; days with no usable position are skipped."""
    start, end = _check_interval(start_jd, end_jd)
    if step <= 0:
        raise InvalidInput("step must be positive", step=step)
    names = list(bodies)
    natal_rows = coerce_positions(natal)
    out: List[TransitEvent] = []
    days = 0
    ok_days = 0
    for t in _grid(start, end, step):
        days += 1
        try:
            out.extend(transits_at(provider, natal_rows, t, names, catalog, skip_failures=True))
        except ProviderFailure as e:
            log.warning("transits_over_period: jd=%.5f skipped (%s)", t, e.message)
            continue
        ok_days += 1
    if ok_days == 0:
        raise SearchFailed("no sample in the period produced positions", start=start, end=end, samples=days)
    log.debug("transits_over_period: %d events over %d/%d samples", len(out), ok_days, days)
    return out

# ─────────────────────────────────────────────────────────────────────────────
# Ranking & filters
# ─────────────────────────────────────────────────────────────────────────────

def transit_strength(event: TransitEvent) -> float:
    strength = 50.0
    if event.transiting in OUTER_BODIES:
        strength += 20.0
    if event.exact:
        strength += 20.0
    if event.aspect in _EMPHATIC:
        strength += 10.0
    strength *= 1.0 - event.orb / 10.0
    return max(0.0, min(100.0, strength))


def analyze_importance(events: Sequence[TransitEvent]) -> List[TransitScore]:
    out: List[TransitScore] = []
    for ev in events:
        s = transit_strength(ev)
        out.append(TransitScore(
            event=ev,
            strength=s,
            major=ev.transiting in OUTER_BODIES,
            interpretation=f"{_describe(ev.transiting, ev.aspect, ev.natal)} - Strength: {s:.0f}%",
        ))
    return out


def most_important(events: Sequence[TransitEvent]) -> Optional[TransitEvent]:
    """Strongest event; the earliest listed wins ties. None when empty."""
    best: Optional[TransitEvent] = None
    best_s = -math.inf
    for ev in events:
        s = transit_strength(ev)
        if s > best_s:
            best, best_s = ev, s
    return best


def filter_by_body(events: Sequence[TransitEvent], body: str) -> List[TransitEvent]:
    return [ev for ev in events if ev.transiting == body]


def filter_by_aspect(events: Sequence[TransitEvent], aspect: str) -> List[TransitEvent]:
    return [ev for ev in events if ev.aspect == aspect]


def format_event(event: TransitEvent) -> str:
    tail = " EXACT" if event.exact else ""
    return (
        f"{_describe(event.transiting, event.aspect, event.natal)} "
        f"on {event.when:%Y-%m-%d} (orb: {event.orb:.2f}°){tail}"
    )
