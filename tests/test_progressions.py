from __future__ import annotations

from datetime import datetime, timezone

import pytest

from aspectengine.core.errors import InvalidInput, ProviderFailure, SearchFailed
from aspectengine.core.models import BodyPosition
from aspectengine.core.provider import CallableProvider
from aspectengine.core.progressions import (
    DAYS_PER_YEAR,
    LUNAR_MONTH_DAYS,
    age_in_years,
    directed_chart,
    progressed_chart,
    progressed_datetime,
    progressed_jd,
    solar_arc,
    solar_arc_chart,
)

J0 = 2451545.0


def test_age_in_years() -> None:
    assert age_in_years(J0, J0 + DAYS_PER_YEAR * 30) == pytest.approx(30.0)
    assert age_in_years(J0, J0) == 0.0


@pytest.mark.parametrize(
    "method,expected_offset",
    [
        ("secondary", 30.0),
        ("tertiary", 30.0 * LUNAR_MONTH_DAYS),
        ("minor", 30.0 / LUNAR_MONTH_DAYS),
        ("  Secondary ", 30.0),
    ],
)
def test_progressed_jd_methods(method, expected_offset) -> None:
    target = J0 + 30.0 * DAYS_PER_YEAR
    assert progressed_jd(J0, target, method) == pytest.approx(J0 + expected_offset)


def test_unknown_method_rejected() -> None:
    with pytest.raises(InvalidInput):
        progressed_jd(J0, J0 + 100.0, "solar")


def test_progressed_datetime_same_instant_is_identity() -> None:
    birth = datetime(1990, 6, 15, 8, 30, tzinfo=timezone.utc)
    assert progressed_datetime(birth, birth) == birth


def test_progressed_datetime_one_year_is_one_day() -> None:
    birth = datetime(2000, 1, 1, 12, tzinfo=timezone.utc)
    target = datetime(2001, 1, 1, 18, tzinfo=timezone.utc)       # 366.25 days later
    got = progressed_datetime(birth, target)
    assert got.date() == datetime(2000, 1, 2).date()


def test_progressed_chart_reads_positions_at_mapped_instant(provider) -> None:
    target = J0 + 10.0 * DAYS_PER_YEAR
    rows = progressed_chart(provider, ["Sun", "Mars"], J0, target)
    assert [p.name for p in rows] == ["Sun", "Mars"]
    assert rows[0].longitude == pytest.approx(10.0 + 0.9856 * 10.0)
    assert rows[1].longitude == pytest.approx(50.0 + 0.5 * 10.0)


def test_progressed_chart_skip_failures(linear_provider) -> None:
    p = linear_provider(fail=lambda body, jd: body == "Moon")
    rows = progressed_chart(p, ["Sun", "Moon"], J0, J0 + DAYS_PER_YEAR, skip_failures=True)
    assert [r.name for r in rows] == ["Sun"]

    everything_down = linear_provider(fail=lambda body, jd: True)
    with pytest.raises(SearchFailed):
        progressed_chart(everything_down, ["Sun"], J0, J0 + DAYS_PER_YEAR, skip_failures=True)


def test_solar_arc_is_progressed_minus_natal_sun(linear_provider) -> None:
    p = linear_provider(base={"Sun": 350.0}, speed={"Sun": 1.0})
    natal = {"Sun": 350.0, "Moon": 45.0}
    arc = solar_arc(p, natal, J0, J0 + 20.0 * DAYS_PER_YEAR)
    assert arc == pytest.approx(20.0)


class _RowProvider:
    def __init__(self, row):
        self.row = row

    def position(self, body, jd):
        return self.row


def test_solar_arc_accepts_loose_provider_rows() -> None:
    p = _RowProvider({"lon": 5.0, "speed": 1.0})
    assert solar_arc(p, {"Sun": 350.0}, J0, J0 + 10.0 * DAYS_PER_YEAR) == pytest.approx(15.0)
    assert solar_arc(_RowProvider(20.0), {"Sun": 350.0}, J0, J0 + DAYS_PER_YEAR) == pytest.approx(30.0)

    with pytest.raises(ProviderFailure):
        solar_arc(_RowProvider(None), {"Sun": 350.0}, J0, J0 + DAYS_PER_YEAR)
    with pytest.raises(ProviderFailure):
        solar_arc(CallableProvider(lambda body, jd: None, "empty"), {"Sun": 350.0}, J0, J0 + DAYS_PER_YEAR)


def test_solar_arc_requires_natal_sun(provider) -> None:
    with pytest.raises(InvalidInput):
        solar_arc(provider, {"Moon": 10.0}, J0, J0 + DAYS_PER_YEAR)


def test_directed_chart_shifts_bodies_and_angles() -> None:
    natal = [BodyPosition("Sun", 350.0, speed=1.0), BodyPosition("Moon", 110.0)]
    chart = directed_chart(natal, 20.0, angles={"ASC": 345.0, "MC": 255.0})
    assert chart.longitudes() == pytest.approx({"Sun": 10.0, "Moon": 130.0})
    assert chart.angles == pytest.approx({"ASC": 5.0, "MC": 275.0})
    assert chart.names() == ["Sun", "Moon"]
    # a uniform shift keeps every mutual aspect
    assert [a.name for a in chart.aspects] == ["trine"]
    assert chart.as_dict()["arc"] == 20.0


def test_directed_chart_normalizes_arc() -> None:
    chart = directed_chart({"Sun": 10.0}, -30.0)
    assert chart.arc == 330.0
    assert chart.longitudes()["Sun"] == pytest.approx(340.0)


@pytest.mark.parametrize("bad", [None, "north", [1.0]])
def test_directed_chart_rejects_bad_arc(bad) -> None:
    with pytest.raises(InvalidInput):
        directed_chart({"Sun": 10.0}, bad)


def test_directed_chart_rejects_bad_angle() -> None:
    with pytest.raises(InvalidInput):
        directed_chart({"Sun": 10.0}, 5.0, angles={"ASC": "Leo"})


def test_solar_arc_chart(linear_provider) -> None:
    p = linear_provider(base={"Sun": 0.0}, speed={"Sun": 1.0})
    chart = solar_arc_chart(p, {"Sun": 0.0, "Mars": 90.0}, J0, J0 + 15.0 * DAYS_PER_YEAR, angles={"MC": 270.0})
    assert chart.arc == pytest.approx(15.0)
    assert chart.longitudes() == pytest.approx({"Sun": 15.0, "Mars": 105.0})
    assert chart.angles["MC"] == pytest.approx(285.0)
