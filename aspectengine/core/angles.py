# aspectengine/core/angles.py
from __future__ import annotations

import math

__all__ = [
    "normalize",
    "angular_distance",
    "signed_delta",
    "midpoint",
    "sign_index",
    "sign_name",
    "degree_in_sign",
    "SIGN_NAMES",
]

SIGN_NAMES = (
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
)

_ZERO_TOL = 1e-12


def normalize(angle: float) -> float:
    """Wrap any angle into [0, 360)."""
    v = float(angle) % 360.0
    # fmod artefacts like 359.9999999999999 from tiny negatives fold back to 0
    if math.isclose(v, 0.0, abs_tol=_ZERO_TOL) or math.isclose(v, 360.0, abs_tol=_ZERO_TOL):
        return 0.0
    return v


def signed_delta(a: float, b: float) -> float:
    """Shortest signed arc a→b in degrees, range (-180, +180]."""
    d = normalize(b) - normalize(a)
    if d > 180.0:
        d -= 360.0
    elif d <= -180.0:
        d += 360.0
    return d


def angular_distance(a: float, b: float) -> float:
    """Smallest separation on the circle, in [0, 180]. Symmetric in (a, b)."""
    d = abs(normalize(a) - normalize(b))
    return 360.0 - d if d > 180.0 else d


def midpoint(a: float, b: float) -> float:
    """Circular midpoint along the shorter arc."""
    return normalize(a + signed_delta(a, b) * 0.5)


def sign_index(lon: float) -> int:
    return int(math.floor(normalize(lon) / 30.0)) % 12


def sign_name(idx: int) -> str:
    if 0 <= idx < 12:
        return SIGN_NAMES[idx]
    return "Unknown"


def degree_in_sign(lon: float) -> float:
    return normalize(lon) % 30.0
