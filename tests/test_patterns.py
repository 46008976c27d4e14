from __future__ import annotations

import pytest

from aspectengine.core.aspects import resolve_all
from aspectengine.core.catalog import default_catalog
from aspectengine.core.errors import ConfigurationError
from aspectengine.core.patterns import (
    dedupe_patterns,
    detect_patterns,
    find_closed_triangles,
    find_clusters,
    find_tension_crosses,
)


def _detect(rows, **kw):
    return detect_patterns(rows, resolve_all(rows), **kw)


def test_grand_trine_reported_once(make_positions) -> None:
    rows = make_positions({"A": 10.0, "B": 130.0, "C": 250.0})
    found = _detect(rows)
    assert len(found) == 1
    p = found[0]
    assert p.kind == "closed_triangle"
    assert sorted(p.bodies) == ["A", "B", "C"]
    assert p.description == "Grand Trine: A, B, C"


def test_grand_trine_raw_search_repeats_per_path(make_positions) -> None:
    rows = make_positions({"A": 10.0, "B": 130.0, "C": 250.0})
    raw = find_closed_triangles(resolve_all(rows))
    assert len(raw) == 3
    assert len({p.key for p in raw}) == 1
    assert len(_detect(rows, dedupe=False)) == 3


def test_open_triangle_is_not_a_pattern(make_positions) -> None:
    # A-B and A-C are trines, B-C is 110° apart
    rows = make_positions({"A": 0.0, "B": 125.0, "C": 235.0})
    assert find_closed_triangles(resolve_all(rows)) == []


def test_tension_cross(make_positions) -> None:
    rows = make_positions({"A": 0.0, "B": 95.0, "C": 180.0})
    found = _detect(rows)
    assert [p.kind for p in found] == ["tension_cross"]
    assert sorted(found[0].bodies) == ["A", "B", "C"]
    assert found[0].description == "T-Square: A opp C, both square B"

    raw = find_tension_crosses(resolve_all(rows))
    assert len(raw) == 2
    assert len(_detect(rows, dedupe=False)) == 2


def test_apex_must_square_both_ends(make_positions) -> None:
    # D squares A (85°) but sits 101° from C
    rows = make_positions({"A": 0.0, "C": 186.0, "D": 85.0})
    aspects = resolve_all(rows)
    assert sorted(a.name for a in aspects) == ["opposition", "square"]
    assert find_tension_crosses(aspects) == []


def test_cluster_by_sign(make_positions) -> None:
    rows = make_positions({"Sun": 2.0, "Mercury": 15.0, "Venus": 28.0, "Mars": 31.0, "Jupiter": 200.0})
    found = find_clusters(rows)
    assert len(found) == 1
    assert found[0].bodies == ("Sun", "Mercury", "Venus")
    assert found[0].sign == 0
    assert found[0].description == "Stellium in Aries (3 planets)"
    assert found[0].as_dict()["sign"] == "Aries"
    assert find_clusters(rows, min_size=4) == []


def test_crowded_sign_keeps_every_member(make_positions) -> None:
    names = ["Sun", "Moon", "Mercury", "Venus", "Mars", "Jupiter", "Saturn", "Uranus"]
    rows = make_positions({n: 120.0 + i for i, n in enumerate(names)})
    (found,) = find_clusters(rows)
    assert found.bodies == tuple(names)
    assert found.description == "Stellium in Leo (8 planets)"


def test_clusters_follow_zodiac_order(make_positions) -> None:
    rows = make_positions({"a": 200.0, "b": 201.0, "c": 202.0, "d": 40.0, "e": 41.0, "f": 42.0})
    assert [p.sign for p in find_clusters(rows)] == [1, 6]


def test_search_order_triangles_then_crosses_then_clusters(make_positions) -> None:
    rows = make_positions({"A": 10.0, "B": 130.0, "C": 250.0, "D": 12.0, "E": 14.0})
    kinds = [p.kind for p in _detect(rows)]
    assert kinds[0] == "closed_triangle"
    assert kinds[-1] == "cluster"
    assert kinds == sorted(kinds, key=["closed_triangle", "tension_cross", "cluster"].index)


def test_no_patterns_is_empty_list(make_positions) -> None:
    rows = make_positions({"A": 0.0, "B": 100.0})
    assert _detect(rows) == []


@pytest.mark.parametrize("missing", ["trine", "opposition", "square"])
def test_missing_required_type_is_configuration_error(make_positions, missing) -> None:
    cat = default_catalog().enabled(missing, False)
    rows = make_positions({"A": 0.0, "B": 120.0})
    with pytest.raises(ConfigurationError):
        detect_patterns(rows, resolve_all(rows, cat), cat)


def test_other_triangle_types_are_labelled_by_name(make_positions) -> None:
    rows = make_positions({"A": 0.0, "B": 2.0, "C": 4.0})
    raw = find_closed_triangles(resolve_all(rows), aspect_type="conjunction")
    assert len(raw) == 3
    assert raw[0].description == "Closed conjunction triangle: A, B, C"
    found = detect_patterns(rows, resolve_all(rows), triangle_type="conjunction")
    assert [p.kind for p in found] == ["closed_triangle", "cluster"]


def test_dedupe_keeps_first_occurrence(make_positions) -> None:
    rows = make_positions({"A": 10.0, "B": 130.0, "C": 250.0})
    raw = find_closed_triangles(resolve_all(rows))
    kept = dedupe_patterns(raw)
    assert kept == [raw[0]]
