# aspectengine/utils/config.py
import json
import logging
import os

import yaml

from aspectengine.core.catalog import AspectCatalog, default_catalog
from aspectengine.core.errors import ConfigurationError

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/defaults.yaml"

_TRANSIT_DEFAULTS = {
    "coarse_step_days": 1.0,
    "fine_step_hours": 1.0,
    "window_days": 1.0,
    "method": "grid",
}


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.catalog and cfg['catalog'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value


def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj


def _load_json(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f) or {}
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"cannot read JSON overrides from {path}", path=path, error=str(e))


def load_config(path=None):
    """
    Load YAML config from `path` (default: $ASPECT_CONFIG or config/defaults.yaml).

    Env overrides:
      - ASPECT_ORBS            JSON file {name: orb}, merged over catalog.orbs
      - ASPECT_TRANSIT_METHOD  overrides transits.method
    A missing file yields an empty config (all defaults).
    Returns an AttrDict for convenient access.
    """
    path = path or os.getenv("ASPECT_CONFIG", DEFAULT_CONFIG_PATH)
    data = {}
    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {path}", path=path, error=str(e))
        if not isinstance(data, dict):
            raise ConfigurationError(f"config root must be a mapping: {path}", path=path)
    else:
        log.info("config file %s not found; using built-in defaults", path)

    orbs_path = os.getenv("ASPECT_ORBS")
    if orbs_path:
        extra = _load_json(orbs_path)
        if not isinstance(extra, dict):
            raise ConfigurationError("ASPECT_ORBS must hold a JSON object", path=orbs_path)
        cat = data.setdefault("catalog", {}) or {}
        data["catalog"] = cat
        cat["orbs"] = {**(cat.get("orbs") or {}), **extra}

    method = os.getenv("ASPECT_TRANSIT_METHOD")
    if method:
        tr = data.get("transits") or {}
        tr["method"] = method
        data["transits"] = tr

    return _to_attr(data)


def catalog_from_config(cfg, base=None) -> AspectCatalog:
    """
    Build an AspectCatalog from the `catalog` section:
      orbs:       {name: orb}
      tight_orbs: {name: orb}
      disabled:   [name, ...]
      only:       [name, ...]   (optional; enables exactly these)
    """
    cat = base if base is not None else default_catalog()
    section = (cfg or {}).get("catalog") or {}
    if not isinstance(section, dict):
        raise ConfigurationError("'catalog' must be a mapping")

    only = section.get("only")
    if only:
        cat = cat.only(only)
    for name in section.get("disabled") or []:
        cat = cat.enabled(str(name), False)
    cat = cat.with_orbs(section.get("orbs") or {})
    for name, value in (section.get("tight_orbs") or {}).items():
        cat = cat.with_tight_orb(str(name), value)
    return cat


def transit_settings(cfg):
    """Keyword arguments for find_exact_transit from the `transits` section."""
    section = {**_TRANSIT_DEFAULTS, **((cfg or {}).get("transits") or {})}
    try:
        out = {
            "coarse_step": float(section["coarse_step_days"]),
            "fine_step": float(section["fine_step_hours"]) / 24.0,
            "window": float(section["window_days"]),
            "method": str(section["method"]).strip().lower(),
        }
    except (TypeError, ValueError) as e:
        raise ConfigurationError("invalid 'transits' settings", error=str(e))
    if out["method"] not in ("grid", "bisection"):
        raise ConfigurationError(f"unknown transit search method '{out['method']}'", method=out["method"])
    if out["coarse_step"] <= 0 or out["fine_step"] <= 0 or out["window"] < 0:
        raise ConfigurationError("transit search steps must be positive", **out)
    return out


def pattern_dedupe(cfg) -> bool:
    section = (cfg or {}).get("patterns") or {}
    return bool(section.get("dedupe", True))


def ephemeris_path(cfg):
    section = (cfg or {}).get("ephemeris") or {}
    return section.get("path")
