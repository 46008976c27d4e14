# aspectengine/main.py
from __future__ import annotations

import logging
import os
import traceback
from time import perf_counter
from typing import Any, Dict, Final, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from aspectengine.api.routes import api as _routes_bp
from aspectengine.core.ephemeris_adapter import SkyfieldProvider
from aspectengine.core.errors import (
    ConfigurationError,
    EngineError,
    InvalidInput,
    ProviderFailure,
    SearchFailed,
)
from aspectengine.core.provider import PositionProvider
from aspectengine.utils.config import (
    catalog_from_config,
    ephemeris_path,
    load_config,
    pattern_dedupe,
    transit_settings,
)
from aspectengine.version import VERSION

DEBUG_VERBOSE = os.getenv("ASPECT_DEBUG_VERBOSE", "0").lower() in ("1", "true", "yes", "on")

# ───────────────────────── Prometheus ─────────────────────────
MET_REQUESTS: Final = Counter("aspect_api_requests_total", "API requests", ["route"])
MET_ERRORS: Final = Counter("aspect_engine_errors_total", "Engine errors by code", ["code"])
GAUGE_APP_UP: Final = Gauge("aspect_app_up", "1 if app is running")
REQ_LATENCY: Final = Histogram("aspect_request_seconds", "API request latency", ["route"])

# Most specific first; isinstance walks this in order
_STATUS: Final = (
    (SearchFailed, 502),
    (ProviderFailure, 502),
    (ConfigurationError, 422),
    (InvalidInput, 400),
)

_SEEDED_ROUTES: Final = (
    "/health", "/healthz", "/metrics",
    "/api/health", "/api/catalog",
    "/api/aspects", "/api/aspects/pair", "/api/patterns", "/api/synastry",
    "/api/progressions/date", "/api/progressions/chart", "/api/directions/solar-arc",
    "/api/transits/exact", "/api/transits/period",
)


def status_for(err: EngineError) -> int:
    for cls, code in _STATUS:
        if isinstance(err, cls):
            return code
    return 400


# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))


def _register_errors(app: Flask) -> None:
    @app.errorhandler(EngineError)
    def _engine(e: EngineError):
        http = status_for(e)
        MET_ERRORS.labels(code=e.code).inc()
        app.logger.warning("%s at %s %s: %s", e.code, request.method, request.path, e.message)
        return jsonify(ok=False, path=request.path, **e.as_dict()), http

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return jsonify(
            ok=False,
            error="http_error",
            code=e.code,
            name=e.name,
            message=e.description,
            path=request.path,
        ), e.code

    @app.errorhandler(Exception)
    def _any(e: Exception):
        tb = traceback.format_exc()
        MET_ERRORS.labels(code="internal_error").inc()
        app.logger.error("UNHANDLED %s at %s %s\n%s", type(e).__name__, request.method, request.path, tb)
        return jsonify(
            ok=False,
            error="internal_error",
            type=type(e).__name__,
            message=str(e) if DEBUG_VERBOSE else "internal error",
            path=request.path,
        ), 500


# ───────────────────────── health & metrics ─────────────────────────
def _register_health(app: Flask) -> None:
    @app.route("/", methods=["GET"])
    def root():
        return jsonify(ok=True, service="aspect-engine", version=VERSION, health="/health"), 200

    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(ok=True, status="ok"), 200


def _metrics_auth_ok() -> bool:
    auth = request.authorization
    user = os.getenv("METRICS_USER", "")
    pw = os.getenv("METRICS_PASS", "")
    return bool(
        auth and auth.type == "basic" and auth.username == user and auth.password == pw and user and pw
    )


def _register_metrics(app: Flask) -> None:
    for route in _SEEDED_ROUTES:
        MET_REQUESTS.labels(route=route).inc(0)
        REQ_LATENCY.labels(route=route).observe(0.0)
    for code in ("invalid_input", "configuration_error", "provider_failure", "search_failed", "internal_error"):
        MET_ERRORS.labels(code=code).inc(0)
    GAUGE_APP_UP.set(1.0)

    @app.before_request
    def _before():
        p = request.path or ""
        if p.startswith("/api/") or p in ("/health", "/healthz", "/metrics"):
            MET_REQUESTS.labels(route=p).inc()
            request._t0 = perf_counter()

    @app.after_request
    def _after(resp):
        p = request.path or ""
        t0 = getattr(request, "_t0", None)
        if t0 is not None and p != "/metrics":
            REQ_LATENCY.labels(route=p).observe(perf_counter() - t0)
        return resp

    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        GAUGE_APP_UP.set(1.0)
        data = generate_latest(REGISTRY)
        return Response(data, mimetype=CONTENT_TYPE_LATEST)


def _register_cors(app: Flask) -> None:
    allowed_origin = os.environ.get("CORS_ALLOW_ORIGIN") or "*"
    CORS(
        app,
        resources={r"/.*": {"origins": allowed_origin}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )


# ───────────────────────── app factory ─────────────────────────
def create_app(
    provider: Optional[PositionProvider] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Flask:
    """
    Build the service.

    ``provider`` defaults to the Skyfield kernel provider; ``config`` defaults
    to load_config() ($ASPECT_CONFIG or config/defaults.yaml). A bad config
    fails startup with ConfigurationError.
    """
    app = Flask(__name__)
    app.json.sort_keys = False
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    cfg = config if config is not None else load_config()
    app.cfg = cfg  # type: ignore[attr-defined]
    app.extensions["aspectengine"] = {
        "catalog": catalog_from_config(cfg),
        "transit": transit_settings(cfg),
        "dedupe": pattern_dedupe(cfg),
        "provider": provider if provider is not None else SkyfieldProvider(ephemeris_path(cfg)),
    }

    _register_metrics(app)
    _register_health(app)
    _register_errors(app)
    app.register_blueprint(_routes_bp)
    _register_cors(app)

    state = app.extensions["aspectengine"]
    app.logger.info(
        "App initialized; version=%s provider=%s aspects=%d transit_method=%s",
        VERSION, type(state["provider"]).__name__, len(state["catalog"].active()), state["transit"]["method"],
    )
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
