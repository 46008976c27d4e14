# aspectengine/core/ephemeris_adapter.py
# -----------------------------------------------------------------------------
# Skyfield-backed position provider (service default)
#
# • DE421 (or any JPL SPK readable by jplephem) loaded once, thread-safe
# • Geocentric apparent ecliptic-of-date longitude/latitude/distance
# • Longitude speed by symmetric difference, per-body step (±h days)
# • Every backend failure surfaces as ProviderFailure; unknown bodies as
#   InvalidInput. Nothing is returned as a sentinel.
#
# Input instants are UTC Julian days; UT1 is taken as UTC (|DUT1| < 0.9 s,
# far below anything an aspect orb can see).
# -----------------------------------------------------------------------------
from __future__ import annotations

import logging
import math
import os
import threading
from typing import Any, Dict, List, Optional, Tuple

from aspectengine.core.angles import normalize, signed_delta
from aspectengine.core.errors import InvalidInput, ProviderFailure
from aspectengine.core.models import BodyPosition

log = logging.getLogger(__name__)

__all__ = [
    "SkyfieldProvider",
    "resolve_kernel_path",
    "SUPPORTED_BODIES",
]

EPHEMERIS_NAME_DEFAULT = "de421.bsp"

# DE421 nominal span (UTC JD)
DE421_JD_MIN = float(os.getenv("ASPECT_DE421_JD_MIN", "2414992.5"))  # 1899-12-31
DE421_JD_MAX = float(os.getenv("ASPECT_DE421_JD_MAX", "2469807.5"))  # 2053-10-09

_PLANET_KEYS: Dict[str, str] = {
    "Sun": "sun",
    "Moon": "moon",
    "Mercury": "mercury",
    "Venus": "venus",
    "Mars": "mars",
    "Jupiter": "jupiter barycenter",
    "Saturn": "saturn barycenter",
    "Uranus": "uranus barycenter",
    "Neptune": "neptune barycenter",
    "Pluto": "pluto barycenter",
}
_CANON = {k.lower(): k for k in _PLANET_KEYS}
SUPPORTED_BODIES: Tuple[str, ...] = tuple(_PLANET_KEYS)

# Velocity half-steps (days)
_SPEED_STEP_MAP = {
    "Moon": 0.05,     # ±1.2 h
    "Mercury": 0.25,  # ±6 h
    "Venus": 0.33,    # ±8 h
}
_SPEED_STEP_DEFAULT = float(os.getenv("ASPECT_SPEED_STEP_DEFAULT", "0.5"))  # ±12 h


def _speed_step_for(name: str) -> float:
    return _SPEED_STEP_MAP.get(name, _SPEED_STEP_DEFAULT)


def resolve_kernel_path(configured: Optional[str] = None) -> Optional[str]:
    """ASPECT_EPHEMERIS, then the configured path, then ./data/de421.bsp."""
    for cand in (os.getenv("ASPECT_EPHEMERIS"), configured):
        if cand and os.path.isfile(cand):
            return cand
    fallback = os.path.join(os.getcwd(), "data", EPHEMERIS_NAME_DEFAULT)
    return fallback if os.path.isfile(fallback) else None


def _looks_like_lfs_pointer(path: str) -> bool:
    try:
        if os.path.getsize(path) <= 512:
            with open(path, "rb") as f:
                head = f.read(128)
            return head.startswith(b"version https://git-lfs.github.com/spec/v1")
    except OSError:
        return False
    return False


class SkyfieldProvider:
    """PositionProvider over a local JPL kernel."""

    def __init__(self, kernel_path: Optional[str] = None, *, enforce_range: bool = True):
        self._configured = kernel_path
        self.enforce_range = enforce_range
        self._lock = threading.Lock()
        self._ts = None
        self._main = None
        self._path: Optional[str] = None
        self._ecl = None

    # ---- kernel bootstrap ----------------------------------------------------
    def _ensure_loaded(self) -> None:
        if self._main is not None:
            return
        with self._lock:
            if self._main is not None:
                return
            path = resolve_kernel_path(self._configured)
            if not path:
                raise ProviderFailure(
                    "no local ephemeris kernel (set ASPECT_EPHEMERIS or ephemeris.path)",
                    stage="kernel",
                )
            if _looks_like_lfs_pointer(path):
                raise ProviderFailure(f"kernel looks like a Git LFS pointer: {path}", stage="kernel")
            from skyfield.api import load
            from skyfield.framelib import ecliptic_frame
            try:
                main = load(path)
            except Exception as e:
                raise ProviderFailure(f"Skyfield failed to load kernel: {path}", stage="kernel", error=str(e)) from e
            self._ts = load.timescale()
            self._ecl = ecliptic_frame
            self._path = path
            self._main = main
            log.info("ephemeris kernel loaded: %s", os.path.basename(path))

    @property
    def kernel_name(self) -> str:
        return os.path.basename(self._path) if self._path else EPHEMERIS_NAME_DEFAULT

    def diagnostics(self) -> Dict[str, Any]:
        path = resolve_kernel_path(self._configured)
        return {
            "kernel_path": path,
            "kernel_loaded": self._main is not None,
            "kernel": self.kernel_name,
            "bodies": list(SUPPORTED_BODIES),
            "jd_range": [DE421_JD_MIN, DE421_JD_MAX] if self.enforce_range else None,
        }

    # ---- sampling --------------------------------------------------------------
    def _lon_lat_dist(self, body: Any, jd: float) -> Tuple[float, float, float]:
        earth = self._main["earth"]
        t = self._ts.ut1_jd(jd)
        lat, lon, dist = earth.at(t).observe(body).apparent().frame_latlon(self._ecl)
        return normalize(float(lon.degrees)), float(lat.degrees), float(dist.au)

    def position(self, body: str, jd: float) -> BodyPosition:
        name = _CANON.get((body or "").strip().lower())
        if name is None:
            raise InvalidInput(f"unknown body '{body}'", body=body, supported=list(SUPPORTED_BODIES))
        jdf = float(jd)
        if self.enforce_range and not (DE421_JD_MIN <= jdf <= DE421_JD_MAX):
            raise ProviderFailure("julian day outside ephemeris span", body=name, jd=jdf)

        self._ensure_loaded()
        try:
            target = self._main[_PLANET_KEYS[name]]
            lon, lat, dist = self._lon_lat_dist(target, jdf)
            h = _speed_step_for(name)
            lon_m, _, _ = self._lon_lat_dist(target, jdf - h)
            lon_p, _, _ = self._lon_lat_dist(target, jdf + h)
        except Exception as e:
            raise ProviderFailure(f"{type(e).__name__}: {e}", body=name, jd=jdf) from e

        speed = signed_delta(lon_m, lon_p) / (2.0 * h)
        if not (math.isfinite(lon) and math.isfinite(speed)):
            raise ProviderFailure("non-finite ephemeris result", body=name, jd=jdf)
        return BodyPosition(name=name, longitude=lon, latitude=lat, distance=dist, speed=speed)

    def positions(self, bodies: List[str], jd: float) -> List[BodyPosition]:
        return [self.position(b, jd) for b in bodies]
