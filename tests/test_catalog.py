from __future__ import annotations

from dataclasses import replace

import pytest

from aspectengine.core.catalog import AspectCatalog, AspectTypeConfig, default_catalog
from aspectengine.core.aspects import resolve_pair
from aspectengine.core.errors import ConfigurationError
from aspectengine.core.models import BodyPosition


def test_default_catalog_order_and_orbs() -> None:
    cat = default_catalog()
    names = [e.name for e in cat]
    assert names == [
        "conjunction", "opposition", "trine", "square", "sextile",
        "quincunx", "semisextile", "semisquare", "sesquiquadrate",
        "quintile", "biquintile",
    ]
    for major in ("conjunction", "opposition", "trine", "square"):
        e = cat.require(major)
        assert (e.orb, e.tight_orb, e.major) == (8.0, 3.0, True)
    assert (cat.require("sextile").orb, cat.require("sextile").tight_orb) == (6.0, 2.0)
    assert (cat.require("quintile").orb, cat.require("quintile").tight_orb) == (2.0, 0.5)
    assert cat.require("quincunx").angle == 150.0
    assert all(e.tight_orb <= e.orb for e in cat)


def test_with_orb_returns_new_catalog_and_leaves_original() -> None:
    cat = default_catalog()
    wider = cat.with_orb("trine", 10.0)
    assert wider.require("trine").orb == 10.0
    assert cat.require("trine").orb == 8.0
    assert wider is not cat
    assert wider != cat


def test_narrowing_orb_clamps_tight_orb() -> None:
    cat = default_catalog().with_orb("square", 2.0)
    e = cat.require("square")
    assert e.orb == 2.0
    assert e.tight_orb == 2.0


def test_tight_orb_never_exceeds_orb() -> None:
    cat = default_catalog().with_tight_orb("sextile", 9.0)
    e = cat.require("sextile")
    assert e.tight_orb == e.orb == 6.0


@pytest.mark.parametrize("bad", [-1.0, "wide", None, 181.0])
def test_invalid_orb_override_rejected(bad) -> None:
    with pytest.raises(ConfigurationError):
        default_catalog().with_orb("trine", bad)


def test_require_unknown_and_disabled() -> None:
    cat = default_catalog().enabled("quintile", False)
    with pytest.raises(ConfigurationError):
        cat.require("septile")
    with pytest.raises(ConfigurationError):
        cat.require("quintile")
    assert cat.get("quintile") is not None
    assert cat.get("septile") is None


def test_only_enables_exactly_named() -> None:
    cat = default_catalog().only(["trine", "square"])
    assert [e.name for e in cat.active()] == ["trine", "square"]
    with pytest.raises(ConfigurationError):
        default_catalog().only(["trine", "septile"])


def test_reset_restores_defaults() -> None:
    cat = default_catalog().with_orb("trine", 1.0).enabled("square", False)
    assert cat.reset() == default_catalog()


def test_resolve_by_name_angle_and_entry() -> None:
    cat = default_catalog()
    assert cat.resolve("square").angle == 90.0
    assert cat.resolve(120).name == "trine"
    assert cat.resolve(cat.require("sextile")).name == "sextile"
    with pytest.raises(ConfigurationError):
        cat.resolve(100.0)


def test_constructor_rejects_duplicates_and_bad_angles() -> None:
    e = AspectTypeConfig("x", 10.0, 1.0, 0.5, rank=0)
    with pytest.raises(ConfigurationError):
        AspectCatalog([e, AspectTypeConfig("x", 20.0, 1.0, 0.5, rank=1)])
    with pytest.raises(ConfigurationError):
        AspectCatalog([AspectTypeConfig("y", 200.0, 1.0, 0.5, rank=0)])


def test_extended_appends_after_last_rank() -> None:
    septile = AspectTypeConfig("septile", 360.0 / 7.0, 1.0, 0.3, rank=0, major=False)
    cat = default_catalog().extended(septile)
    assert [e.name for e in cat][-1] == "septile"
    assert cat.require("septile").rank == 11


@pytest.mark.parametrize(
    "orb,tight",
    [
        (2.0, 5.0),       # tight wider than orb
        (-1.0, -2.0),
        (3.0, -0.5),
        ("wide", 1.0),
    ],
)
def test_constructor_enforces_orb_invariant(orb, tight) -> None:
    entry = AspectTypeConfig("square", 90.0, orb, tight, rank=0)
    with pytest.raises(ConfigurationError):
        AspectCatalog([entry])
    with pytest.raises(ConfigurationError):
        default_catalog().only(["trine"]).extended(replace(entry, name="septile"))


def test_custom_catalog_exact_stays_inside_tight_orb() -> None:
    cat = AspectCatalog([AspectTypeConfig("square", 90.0, 2.0, 2.0, rank=0)])
    a = resolve_pair(BodyPosition("A", 0.0), BodyPosition("B", 91.5), cat)
    assert a.exact is True
    assert a.difference <= a.aspect.tight_orb <= a.aspect.orb
