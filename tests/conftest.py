# tests/conftest.py
from __future__ import annotations

"""
Pytest configuration for the aspect engine suite.

- Registers Hypothesis profiles for local dev and CI.
- Freezes the process TZ to UTC.
- Provides deterministic fake position providers (linear longitudes) so no
  ephemeris kernel is needed, plus a Flask test client wired to them.
- Adds a 'slow' marker.
"""

import os
from typing import Callable, Dict, Iterable, Optional

import pytest
from hypothesis import settings, HealthCheck

from aspectengine.core.errors import ProviderFailure
from aspectengine.core.models import BodyPosition


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # avoid flaky timeouts on slower runners
        max_examples=60,         # fast local runs
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,        # a bit more coverage in CI
        suppress_health_check=[HealthCheck.too_slow],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")
    config.addinivalue_line("filterwarnings", "ignore::DeprecationWarning")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Fake providers
# ──────────────────────────────────────────────────────────────────────────────
J0 = 2451545.0  # J2000, epoch of the fake linear ephemeris

BASE_LON = {  # arbitrary deterministic base angles
    "Sun": 10.0, "Moon": 20.0, "Mercury": 30.0, "Venus": 40.0, "Mars": 50.0,
    "Jupiter": 60.0, "Saturn": 70.0, "Uranus": 80.0, "Neptune": 90.0, "Pluto": 100.0,
}
BASE_SPD = {  # constant "speeds" (deg/day)
    "Sun": 0.9856, "Moon": 13.1764, "Mercury": 1.2, "Venus": 1.0, "Mars": 0.5,
    "Jupiter": 0.08, "Saturn": 0.03, "Uranus": 0.01, "Neptune": 0.006, "Pluto": 0.004,
}


class LinearProvider:
    """lon(t) = base + speed * (t - J0); optional failure predicate per (body, jd)."""

    def __init__(
        self,
        base: Optional[Dict[str, float]] = None,
        speed: Optional[Dict[str, float]] = None,
        fail: Optional[Callable[[str, float], bool]] = None,
    ):
        self.base = dict(BASE_LON if base is None else base)
        self.speed = dict(BASE_SPD if speed is None else speed)
        self.fail = fail
        self.calls = 0

    def position(self, body: str, jd: float) -> BodyPosition:
        self.calls += 1
        if body not in self.base:
            raise ProviderFailure(f"unknown body '{body}'", body=body, jd=jd)
        if self.fail is not None and self.fail(body, jd):
            raise ProviderFailure("simulated outage", body=body, jd=jd)
        spd = self.speed.get(body, 0.0)
        return BodyPosition(name=body, longitude=self.base[body] + spd * (jd - J0), speed=spd)


@pytest.fixture
def linear_provider() -> Callable[..., LinearProvider]:
    """Factory: linear_provider(base=..., speed=..., fail=...)."""
    def _make(base=None, speed=None, fail=None) -> LinearProvider:
        return LinearProvider(base, speed, fail)
    return _make


@pytest.fixture
def provider() -> LinearProvider:
    return LinearProvider()


def positions(lons: Dict[str, float], speeds: Optional[Dict[str, float]] = None) -> Iterable[BodyPosition]:
    speeds = speeds or {}
    return [BodyPosition(name=n, longitude=v, speed=speeds.get(n, 0.0)) for n, v in lons.items()]


@pytest.fixture
def make_positions():
    return positions


# ──────────────────────────────────────────────────────────────────────────────
# Flask
# ──────────────────────────────────────────────────────────────────────────────
@pytest.fixture
def app(provider):
    from aspectengine.main import create_app
    flask_app = create_app(provider=provider, config={})
    flask_app.testing = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session", autouse=True)
def freeze_tz_env():
    """Ensure the process TZ is UTC so nothing depends on the runner's zone."""
    prev = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    try:
        yield
    finally:
        if prev is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = prev


@pytest.fixture(scope="session")
def ensure_erfa():
    """Fail early if pyERFA isn't importable or lacks the calendar functions."""
    import erfa
    assert hasattr(erfa, "cal2jd"), "ERFA.cal2jd not available"
    assert hasattr(erfa, "jd2cal"), "ERFA.jd2cal not available"
    return erfa
