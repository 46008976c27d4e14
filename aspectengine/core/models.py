# aspectengine/core/models.py
from __future__ import annotations

import math
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from aspectengine.core.angles import normalize, sign_index, sign_name
from aspectengine.core.catalog import AspectTypeConfig
from aspectengine.core.errors import InvalidInput

__all__ = [
    "Motion",
    "PatternKind",
    "BodyPosition",
    "Aspect",
    "Pattern",
    "TransitEvent",
    "TransitScore",
    "DirectedChart",
    "as_position",
]

Motion = Literal["applying", "separating", "stationary"]
PatternKind = Literal["closed_triangle", "tension_cross", "cluster"]

# ─────────────────────────────────────────────────────────────────────────────
# Positions
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BodyPosition:
    name: str
    longitude: float
    latitude: float = 0.0
    distance: float = 0.0
    speed: float = 0.0              # deg/day; negative = retrograde

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidInput("body name must be a non-empty string", name=self.name)
        try:
            lon = float(self.longitude)
            spd = float(self.speed)
            lat = float(self.latitude or 0.0)
            dist = float(self.distance or 0.0)
        except (TypeError, ValueError):
            raise InvalidInput(f"position for '{self.name}' is not numeric", body=self.name)
        if not all(math.isfinite(v) for v in (lon, spd, lat, dist)):
            raise InvalidInput(f"position for '{self.name}' is not finite", body=self.name)
        object.__setattr__(self, "longitude", normalize(lon))
        object.__setattr__(self, "speed", spd)
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "distance", dist)

    @property
    def retrograde(self) -> bool:
        return self.speed < 0.0

    @property
    def sign(self) -> int:
        return sign_index(self.longitude)

    @property
    def sign_name(self) -> str:
        return sign_name(self.sign)

    def shifted(self, arc: float) -> "BodyPosition":
        return BodyPosition(self.name, normalize(self.longitude + arc), self.latitude, self.distance, self.speed)

    def as_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["retrograde"] = self.retrograde
        d["sign"] = self.sign_name
        return d


def as_position(name: str, value: Any) -> BodyPosition:
    """
    Coerce a loose row into a BodyPosition.

    Accepts a BodyPosition, a bare longitude, or a mapping with
    ``lon``/``longitude`` and optional ``speed``/``lat``/``latitude``/``distance``.
    """
    if isinstance(value, BodyPosition):
        return value
    if value is None:
        raise InvalidInput(f"missing position for '{name}'", body=name)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return BodyPosition(name=name, longitude=float(value))
    if isinstance(value, dict):
        lon = value.get("lon", value.get("longitude"))
        if lon is None:
            raise InvalidInput(f"missing longitude for '{name}'", body=name)
        return BodyPosition(
            name=name,
            longitude=lon,
            latitude=value.get("lat", value.get("latitude", 0.0)) or 0.0,
            distance=value.get("distance", 0.0) or 0.0,
            speed=value.get("speed", value.get("speed_deg_per_day", 0.0)) or 0.0,
        )
    raise InvalidInput(f"cannot read position for '{name}'", body=name, value=repr(value))

# ─────────────────────────────────────────────────────────────────────────────
# Aspects & patterns
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Aspect:
    body1: str
    body2: str
    aspect: AspectTypeConfig
    distance: float                 # raw angular distance, [0, 180]
    difference: float               # |distance - aspect.angle|
    motion: Motion
    exact: bool

    @property
    def name(self) -> str:
        return self.aspect.name

    @property
    def strength(self) -> float:
        """1 at exact, 0 at the edge of the orb."""
        orb = self.aspect.orb
        if orb <= 0.0:
            return 1.0 if self.difference <= 0.0 else 0.0
        return max(0.0, 1.0 - self.difference / orb)

    def involves(self, body: str) -> bool:
        return body == self.body1 or body == self.body2

    def other(self, body: str) -> Optional[str]:
        if body == self.body1:
            return self.body2
        if body == self.body2:
            return self.body1
        return None

    def describe(self) -> str:
        tail = ", exact" if self.exact else ""
        return f"{self.body1} {self.aspect.name} {self.body2} ({self.difference:.2f}° {self.motion}{tail})"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "body1": self.body1,
            "body2": self.body2,
            "aspect": self.aspect.name,
            "angle": float(self.aspect.angle),
            "orb": float(self.aspect.orb),
            "distance": float(self.distance),
            "difference": float(self.difference),
            "motion": self.motion,
            "exact": bool(self.exact),
            "strength": float(self.strength),
            "description": self.describe(),
        }


@dataclass(frozen=True)
class Pattern:
    kind: PatternKind
    bodies: Tuple[str, ...]         # 3 names; a cluster holds its whole sign
    description: str
    sign: Optional[int] = None      # cluster only

    @property
    def key(self) -> Tuple[str, Tuple[str, ...]]:
        return (self.kind, tuple(sorted(self.bodies)))

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "kind": self.kind,
            "bodies": list(self.bodies),
            "description": self.description,
        }
        if self.sign is not None:
            d["sign"] = sign_name(self.sign)
        return d

# ─────────────────────────────────────────────────────────────────────────────
# Timing
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransitEvent:
    transiting: str
    natal: str
    aspect: str
    jd: float
    when: datetime
    orb: float                      # |distance - angle| at jd
    exact: bool
    description: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "transiting": self.transiting,
            "natal": self.natal,
            "aspect": self.aspect,
            "jd": float(self.jd),
            "when": self.when.isoformat().replace("+00:00", "Z"),
            "orb": float(self.orb),
            "exact": bool(self.exact),
            "description": self.description,
        }


@dataclass(frozen=True)
class TransitScore:
    event: TransitEvent
    strength: float                 # 0..100
    major: bool                     # outer-body transit
    interpretation: str = ""

    def as_dict(self) -> Dict[str, Any]:
        d = self.event.as_dict()
        d.update(strength=float(self.strength), major=bool(self.major), interpretation=self.interpretation)
        return d


@dataclass(frozen=True)
class DirectedChart:
    arc: float
    positions: Tuple[BodyPosition, ...]
    angles: Dict[str, float] = field(default_factory=dict)
    aspects: Tuple[Aspect, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "arc": float(self.arc),
            "positions": [p.as_dict() for p in self.positions],
            "angles": {k: float(v) for k, v in self.angles.items()},
            "aspects": [a.as_dict() for a in self.aspects],
        }

    def longitudes(self) -> Dict[str, float]:
        return {p.name: p.longitude for p in self.positions}

    def names(self) -> List[str]:
        return [p.name for p in self.positions]
