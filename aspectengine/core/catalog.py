# aspectengine/core/catalog.py
"""
Aspect catalog: the ordered table of target angles and orbs.

The catalog is a value, not a module global. Callers build one (usually the
defaults, optionally overridden from config) and pass it to the resolver.
"Runtime overrides" are builder calls that return a new catalog, so a
catalog that is being read by one computation can never change underneath it.

Declaration order matters: the resolver takes the first enabled entry whose
orb window contains the measured distance.
"""
from __future__ import annotations

from dataclasses import dataclass, replace, asdict
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from aspectengine.core.errors import ConfigurationError

__all__ = [
    "AspectTypeConfig",
    "AspectCatalog",
    "DEFAULT_ASPECTS",
    "default_catalog",
]

# ─────────────────────────────────────────────────────────────────────────────
# Entries
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AspectTypeConfig:
    name: str
    angle: float            # exact target angle, 0..180
    orb: float              # "in aspect" tolerance
    tight_orb: float        # "exact" tolerance (never wider than orb)
    rank: int               # declaration order
    major: bool = True
    enabled: bool = True
    symbol: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# name, angle, orb, tight, major, symbol
_DEFAULT_ROWS: Tuple[Tuple[str, float, float, float, bool, str], ...] = (
    ("conjunction",    0.0,   8.0, 3.0, True,  "☌"),
    ("opposition",     180.0, 8.0, 3.0, True,  "☍"),
    ("trine",          120.0, 8.0, 3.0, True,  "△"),
    ("square",         90.0,  8.0, 3.0, True,  "□"),
    ("sextile",        60.0,  6.0, 2.0, True,  "⚹"),
    ("quincunx",       150.0, 3.0, 1.0, False, "⚻"),
    ("semisextile",    30.0,  3.0, 1.0, False, "⚺"),
    ("semisquare",     45.0,  3.0, 1.0, False, "∠"),
    ("sesquiquadrate", 135.0, 3.0, 1.0, False, "⚼"),
    ("quintile",       72.0,  2.0, 0.5, False, "Q"),
    ("biquintile",     144.0, 2.0, 0.5, False, "bQ"),
)

DEFAULT_ASPECTS: Tuple[AspectTypeConfig, ...] = tuple(
    AspectTypeConfig(name=n, angle=a, orb=o, tight_orb=t, rank=i, major=m, symbol=s)
    for i, (n, a, o, t, m, s) in enumerate(_DEFAULT_ROWS)
)

# ─────────────────────────────────────────────────────────────────────────────
# Catalog
# ─────────────────────────────────────────────────────────────────────────────

def _check_orb(name: str, value: Any) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"orb for '{name}' must be a number", aspect=name, value=value)
    if not (v >= 0.0 and v <= 180.0):
        raise ConfigurationError(f"orb for '{name}' must be within [0, 180]", aspect=name, value=v)
    return v


class AspectCatalog:
    """Immutable, ordered collection of AspectTypeConfig entries."""

    __slots__ = ("_entries", "_by_name")

    def __init__(self, entries: Iterable[AspectTypeConfig]):
        ordered = sorted(entries, key=lambda e: e.rank)
        by_name: Dict[str, AspectTypeConfig] = {}
        for e in ordered:
            if e.name in by_name:
                raise ConfigurationError(f"duplicate aspect type '{e.name}'", aspect=e.name)
            if not 0.0 <= e.angle <= 180.0:
                raise ConfigurationError(f"angle for '{e.name}' must be within [0, 180]", aspect=e.name, angle=e.angle)
            orb = _check_orb(e.name, e.orb)
            tight = _check_orb(e.name, e.tight_orb)
            if tight > orb:
                raise ConfigurationError(
                    f"tight orb for '{e.name}' is wider than its orb", aspect=e.name, orb=orb, tight_orb=tight,
                )
            by_name[e.name] = e
        self._entries: Tuple[AspectTypeConfig, ...] = tuple(ordered)
        self._by_name = by_name

    # ---------- read ----------
    def __iter__(self) -> Iterator[AspectTypeConfig]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AspectCatalog):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return hash(self._entries)

    def __repr__(self) -> str:
        names = ", ".join(e.name if e.enabled else f"{e.name}(off)" for e in self._entries)
        return f"AspectCatalog([{names}])"

    def active(self) -> List[AspectTypeConfig]:
        return [e for e in self._entries if e.enabled]

    def get(self, name: str) -> Optional[AspectTypeConfig]:
        return self._by_name.get(name)

    def require(self, name: str) -> AspectTypeConfig:
        """Entry by name; ConfigurationError if unknown or disabled."""
        entry = self._by_name.get(name)
        if entry is None:
            raise ConfigurationError(f"aspect type '{name}' is not configured", aspect=name)
        if not entry.enabled:
            raise ConfigurationError(f"aspect type '{name}' is disabled", aspect=name)
        return entry

    def by_angle(self, angle: float) -> AspectTypeConfig:
        """First enabled entry whose target angle equals ``angle``."""
        for e in self._entries:
            if e.enabled and abs(e.angle - float(angle)) < 1e-9:
                return e
        raise ConfigurationError(f"no enabled aspect type at {float(angle):g}°", angle=float(angle))

    def resolve(self, aspect: Any) -> AspectTypeConfig:
        """Accept an entry, a name, or an angle and return the configured entry."""
        if isinstance(aspect, AspectTypeConfig):
            return self.require(aspect.name)
        if isinstance(aspect, str):
            return self.require(aspect)
        if isinstance(aspect, (int, float)):
            return self.by_angle(float(aspect))
        raise ConfigurationError(f"cannot resolve aspect type from {aspect!r}")

    def as_list(self) -> List[Dict[str, Any]]:
        return [e.as_dict() for e in self._entries]

    # ---------- builders (return new catalogs) ----------
    def _replace(self, name: str, **changes: Any) -> "AspectCatalog":
        if name not in self._by_name:
            raise ConfigurationError(f"aspect type '{name}' is not configured", aspect=name)
        return AspectCatalog(replace(e, **changes) if e.name == name else e for e in self._entries)

    def with_orb(self, name: str, orb: float) -> "AspectCatalog":
        v = _check_orb(name, orb)
        entry = self.get(name)
        tight = min(entry.tight_orb, v) if entry is not None else v
        return self._replace(name, orb=v, tight_orb=tight)

    def with_tight_orb(self, name: str, tight_orb: float) -> "AspectCatalog":
        v = _check_orb(name, tight_orb)
        entry = self.get(name)
        if entry is not None and v > entry.orb:
            v = entry.orb
        return self._replace(name, tight_orb=v)

    def with_orbs(self, orbs: Mapping[str, Any]) -> "AspectCatalog":
        cat = self
        for name, value in (orbs or {}).items():
            cat = cat.with_orb(str(name), value)
        return cat

    def enabled(self, name: str, flag: bool = True) -> "AspectCatalog":
        return self._replace(name, enabled=bool(flag))

    def only(self, names: Iterable[str]) -> "AspectCatalog":
        """Enable exactly ``names``; everything else is switched off."""
        wanted = {str(n) for n in names}
        unknown = sorted(wanted - set(self._by_name))
        if unknown:
            raise ConfigurationError("unknown aspect types requested", aspects=unknown)
        return AspectCatalog(replace(e, enabled=e.name in wanted) for e in self._entries)

    def extended(self, entry: AspectTypeConfig) -> "AspectCatalog":
        """Append an entry after the current last rank."""
        rank = (self._entries[-1].rank + 1) if self._entries else 0
        return AspectCatalog(list(self._entries) + [replace(entry, rank=rank)])

    def reset(self) -> "AspectCatalog":
        return default_catalog()


def default_catalog() -> AspectCatalog:
    return AspectCatalog(DEFAULT_ASPECTS)
