# aspectengine/api/routes.py
"""
Aspect engine — API routes
- Catalog
- Aspects (set / pair) and patterns
- Synastry
- Progressions and solar-arc directions
- Transit timing (exact search, period listing)

Notes:
- Engine errors propagate to the app-level handlers (main._register_errors),
  which map them to {"ok": false, "error": code, ...} with a stable status.
- Per-request "orbs" / "tight_orbs" / "aspects" build a request-local catalog
  from the process catalog; the process catalog is never modified.
- Instants are JD numbers (UTC) or ISO-8601 strings.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from aspectengine.version import VERSION
from aspectengine.core.aspects import resolve_all, resolve_pair
from aspectengine.core.catalog import AspectCatalog
from aspectengine.core.errors import InvalidInput
from aspectengine.core.models import BodyPosition, as_position
from aspectengine.core.patterns import detect_patterns
from aspectengine.core.progressions import (
    METHODS,
    age_in_years,
    directed_chart,
    progressed_chart,
    progressed_jd,
    solar_arc,
)
from aspectengine.core.synastry import compute_synastry
from aspectengine.core.timescales import from_julian_day, parse_instant
from aspectengine.core.transits import (
    analyze_importance,
    filter_by_aspect,
    filter_by_body,
    find_exact_transit,
    most_important,
    transits_over_period,
)

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)

MAX_PERIOD_DAYS = float(os.getenv("ASPECT_MAX_PERIOD_DAYS", "366"))
MAX_SAMPLES = int(os.getenv("ASPECT_MAX_SAMPLES", "20000"))


# ───────────────────────── helpers ─────────────────────────
def _engine() -> Dict[str, Any]:
    return current_app.extensions["aspectengine"]


def _body_json() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def _check_span(start: float, end: float, step: float) -> None:
    """Reject intervals a single request should not sample."""
    if end - start > MAX_PERIOD_DAYS:
        raise InvalidInput(f"period longer than {MAX_PERIOD_DAYS:g} days", start=start, end=end)
    if not step > 0:
        raise InvalidInput("'step' must be positive", step=step)
    if (end - start) / step > MAX_SAMPLES:
        raise InvalidInput(f"more than {MAX_SAMPLES} samples requested", start=start, end=end, step=step)


def _iso(jd: float) -> str:
    return from_julian_day(jd).isoformat().replace("+00:00", "Z")


def _catalog_for(body: Dict[str, Any]) -> AspectCatalog:
    cat: AspectCatalog = _engine()["catalog"]
    only = body.get("aspects")
    if only is not None:
        if not isinstance(only, list):
            raise InvalidInput("'aspects' must be a list of aspect names")
        cat = cat.only(only)
    orbs = body.get("orbs")
    if orbs is not None:
        if not isinstance(orbs, dict):
            raise InvalidInput("'orbs' must be an object {name: degrees}")
        cat = cat.with_orbs(orbs)
    tight = body.get("tight_orbs")
    if tight is not None:
        if not isinstance(tight, dict):
            raise InvalidInput("'tight_orbs' must be an object {name: degrees}")
        for name, value in tight.items():
            cat = cat.with_tight_orb(str(name), value)
    return cat


def _positions(value: Any, field: str) -> List[BodyPosition]:
    """
    Accepts {"Sun": 10.0}, {"Sun": {"lon": 10, "speed": 1}} or
    [{"name": "Sun", "lon": 10, "speed": 1}, ...].
    """
    if isinstance(value, dict):
        if not value:
            raise InvalidInput(f"'{field}' is empty")
        return [as_position(str(k), v) for k, v in value.items()]
    if isinstance(value, list):
        if not value:
            raise InvalidInput(f"'{field}' is empty")
        out: List[BodyPosition] = []
        for row in value:
            if not isinstance(row, dict) or not isinstance(row.get("name"), str):
                raise InvalidInput(f"each '{field}' row needs a 'name'", field=field)
            out.append(as_position(row["name"], row))
        return out
    raise InvalidInput(f"'{field}' must be an object or a list of rows", field=field)


def _single(value: Any, field: str) -> BodyPosition:
    if not isinstance(value, dict) or not isinstance(value.get("name"), str):
        raise InvalidInput(f"'{field}' must be an object with 'name' and 'lon'", field=field)
    return as_position(value["name"], value)


def _instant(body: Dict[str, Any], key: str) -> float:
    if body.get(key) is None:
        raise InvalidInput(f"'{key}' is required (JD number or ISO-8601 string)", field=key)
    return parse_instant(body[key])


def _names(value: Any, field: str) -> List[str]:
    if not isinstance(value, list) or not value or not all(isinstance(x, str) for x in value):
        raise InvalidInput(f"'{field}' must be a non-empty list of body names", field=field)
    return list(value)


def _method(body: Dict[str, Any]) -> str:
    method = str(body.get("method") or "secondary").strip().lower()
    if method not in METHODS:
        raise InvalidInput(f"unknown progression method '{method}'", method=method, supported=list(METHODS))
    return method


# ───────────────────────── ops ─────────────────────────
@api.get("/api/health")
def health():
    return jsonify({"ok": True, "status": "up", "version": VERSION}), 200


@api.get("/api/catalog")
def catalog_info():
    cat: AspectCatalog = _engine()["catalog"]
    return jsonify({"ok": True, "catalog": cat.as_list(), "version": VERSION}), 200


# ───────────────────────── aspects & patterns ─────────────────────────
@api.post("/api/aspects")
def aspects():
    body = _body_json()
    cat = _catalog_for(body)
    rows = _positions(body.get("bodies"), "bodies")
    found = resolve_all(rows, cat)
    out: Dict[str, Any] = {"ok": True, "aspects": [a.as_dict() for a in found]}
    if body.get("patterns"):
        dedupe = bool(body.get("dedupe", _engine()["dedupe"]))
        out["patterns"] = [p.as_dict() for p in detect_patterns(rows, found, cat, dedupe)]
    return jsonify(out), 200


@api.post("/api/aspects/pair")
def aspect_pair():
    body = _body_json()
    cat = _catalog_for(body)
    hit = resolve_pair(_single(body.get("a"), "a"), _single(body.get("b"), "b"), cat)
    return jsonify({"ok": True, "aspect": hit.as_dict() if hit else None}), 200


@api.post("/api/patterns")
def patterns():
    body = _body_json()
    cat = _catalog_for(body)
    rows = _positions(body.get("bodies"), "bodies")
    dedupe = bool(body.get("dedupe", _engine()["dedupe"]))
    try:
        min_cluster = int(body.get("min_cluster", 3))
    except (TypeError, ValueError):
        raise InvalidInput("'min_cluster' must be an integer")
    found = resolve_all(rows, cat)
    pats = detect_patterns(rows, found, cat, dedupe, min_cluster=min_cluster)
    return jsonify({
        "ok": True,
        "patterns": [p.as_dict() for p in pats],
        "aspect_count": len(found),
        "deduplicated": dedupe,
    }), 200


# ───────────────────────── synastry ─────────────────────────
@api.post("/api/synastry")
def synastry():
    body = _body_json()
    cat = _catalog_for(body)
    res = compute_synastry(
        _positions(body.get("chart_a"), "chart_a"),
        _positions(body.get("chart_b"), "chart_b"),
        cat,
        composite=bool(body.get("composite", True)),
    )
    return jsonify({
        "ok": True,
        "score": res["score"],
        "breakdown": res["breakdown"],
        "aspects": [a.as_dict() for a in res["aspects"]],
        "composite": [p.as_dict() for p in res["composite"]] if res["composite"] is not None else None,
        "meta": res["meta"],
    }), 200


# ───────────────────────── progressions & directions ─────────────────────────
@api.post("/api/progressions/date")
def progression_date():
    body = _body_json()
    birth = _instant(body, "birth")
    target = _instant(body, "target")
    method = _method(body)
    pjd = progressed_jd(birth, target, method)
    return jsonify({
        "ok": True,
        "method": method,
        "age_years": age_in_years(birth, target),
        "progressed_jd": pjd,
        "progressed": _iso(pjd),
    }), 200


@api.post("/api/progressions/chart")
def progression_chart():
    body = _body_json()
    cat = _catalog_for(body)
    birth = _instant(body, "birth")
    target = _instant(body, "target")
    method = _method(body)
    rows = progressed_chart(
        _engine()["provider"],
        _names(body.get("bodies"), "bodies"),
        birth,
        target,
        method,
        skip_failures=bool(body.get("skip_failures", False)),
    )
    pjd = progressed_jd(birth, target, method)
    return jsonify({
        "ok": True,
        "method": method,
        "progressed_jd": pjd,
        "progressed": _iso(pjd),
        "positions": [p.as_dict() for p in rows],
        "aspects": [a.as_dict() for a in resolve_all(rows, cat)],
    }), 200


@api.post("/api/directions/solar-arc")
def solar_arc_directions():
    body = _body_json()
    cat = _catalog_for(body)
    natal = _positions(body.get("natal"), "natal")
    angles = body.get("angles") or {}
    if not isinstance(angles, dict):
        raise InvalidInput("'angles' must be an object {name: degrees}")
    if body.get("arc") is not None:
        try:
            arc = float(body["arc"])
        except (TypeError, ValueError):
            raise InvalidInput("'arc' must be a number")
    else:
        arc = solar_arc(_engine()["provider"], natal, _instant(body, "birth"), _instant(body, "target"))
    chart = directed_chart(natal, arc, angles, cat)
    return jsonify({"ok": True, **chart.as_dict()}), 200


# ───────────────────────── transits ─────────────────────────
@api.post("/api/transits/exact")
def transit_exact():
    body = _body_json()
    cat = _catalog_for(body)
    name = body.get("body")
    if not isinstance(name, str) or not name:
        raise InvalidInput("'body' is required")
    ref = body.get("reference")
    if isinstance(ref, bool) or not isinstance(ref, (int, float)):
        raise InvalidInput("'reference' must be a longitude in degrees")
    aspect = body.get("aspect", "conjunction")
    settings = dict(_engine()["transit"])
    if body.get("method"):
        settings["method"] = str(body["method"]).strip().lower()
    start = _instant(body, "start")
    end = _instant(body, "end")
    _check_span(start, end, float(settings.get("coarse_step", 1.0)))
    ev = find_exact_transit(
        _engine()["provider"],
        name,
        float(ref),
        aspect,
        start,
        end,
        catalog=cat,
        natal=str(body.get("natal") or "reference"),
        **settings,
    )
    return jsonify({"ok": True, "event": ev.as_dict(), "method": settings["method"]}), 200


@api.post("/api/transits/period")
def transit_period():
    body = _body_json()
    cat = _catalog_for(body)
    start = _instant(body, "start")
    end = _instant(body, "end")
    try:
        step = float(body.get("step", 1.0))
    except (TypeError, ValueError):
        raise InvalidInput("'step' must be a number of days")
    _check_span(start, end, step)
    events = transits_over_period(
        _engine()["provider"],
        _positions(body.get("natal"), "natal"),
        start,
        end,
        _names(body.get("bodies"), "bodies"),
        step,
        cat,
    )
    if body.get("filter_body"):
        events = filter_by_body(events, str(body["filter_body"]))
    if body.get("filter_aspect"):
        events = filter_by_aspect(events, str(body["filter_aspect"]))
    top: Optional[Any] = most_important(events)
    return jsonify({
        "ok": True,
        "count": len(events),
        "transits": [s.as_dict() for s in analyze_importance(events)],
        "most_important": top.as_dict() if top else None,
    }), 200
