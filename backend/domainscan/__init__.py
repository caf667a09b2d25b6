# domainscan/__init__.py
"""
App factory for the domain scan API.

Configuration (environment):
    CORS_ORIGINS      comma-separated allowed origins; https:// origins mean production
    SCANNER_TIMEOUT   default per-scanner timeout in seconds (30)
    TRUSTED_PROXY_HOPS  reverse proxies in front of the app whose X-Forwarded-For
                      is trusted for the client address (0)
    DOH_RESOLVER_URL, CRTSH_URL, RDAP_BOOTSTRAP_URL, SSLLABS_API_URL,
    SECURITY_HEADERS_URL, SCAN_USER_AGENT
                      upstream overrides, read by the scanner modules
"""

from __future__ import annotations

import logging
import os
import re
import traceback
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .extensions import init_extensions
from .scans import scans_bp

error_logger = logging.getLogger("domainscan.errors")


def _is_production() -> bool:
    """Detect production by checking CORS_ORIGINS for https."""
    return os.getenv("CORS_ORIGINS", "").startswith("https://")


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)

    is_prod = _is_production()

    # ── Logging ──────────────────────────────────────────────────────
    if is_prod:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        app.logger.setLevel(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
        app.logger.setLevel(logging.DEBUG)

    logging.getLogger("werkzeug").setLevel(logging.INFO)
    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    # ─────────────────────────────────────────────────────────────────

    # ── CORS ────────────────────────────────────────────────────────
    cors_env = os.getenv("CORS_ORIGINS")
    if cors_env:
        cors_origins = [o.strip() for o in cors_env.split(",") if o.strip()]
    else:
        cors_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            re.compile(r"http://192\.168\.\d+\.\d+:3000"),
        ]

    CORS(app, resources={
        r"/*": {
            "origins": cors_origins,
            "allow_headers": ["Content-Type"],
            "methods": ["GET", "POST", "OPTIONS"],
        }
    })

    # ── Config ───────────────────────────────────────────────────────
    app.config["SCANNER_TIMEOUT"] = float(os.getenv("SCANNER_TIMEOUT", "30"))
    app.config["SCANNER_TRANSPORT"] = None
    app.config["SCANNER_CACHE"] = None
    app.config["TRUSTED_PROXY_HOPS"] = int(os.getenv("TRUSTED_PROXY_HOPS", "0"))
    if config:
        app.config.update(config)

    # Client address for rate limiting comes from remote_addr only
    if app.config["TRUSTED_PROXY_HOPS"] > 0:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config["TRUSTED_PROXY_HOPS"])

    # ── Extensions ───────────────────────────────────────────────────
    init_extensions(app)

    # ── Blueprints ───────────────────────────────────────────────────
    app.register_blueprint(scans_bp)

    # ── Global Error Handlers ────────────────────────────────────────
    # JSON for every error, tracebacks stay in the server log.

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({
            "error": "Bad request",
            "message": str(e.description) if hasattr(e, "description") else "The request was malformed or invalid.",
        }), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            "error": "Not found",
            "message": "The requested resource was not found.",
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({
            "error": "Method not allowed",
            "message": "This HTTP method is not allowed for this endpoint.",
        }), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({
            "error": "Too many requests",
            "message": "Rate limit exceeded. Please try again later.",
        }), 429

    @app.errorhandler(500)
    def internal_error(e):
        error_logger.error(
            "500 Internal Server Error:\n%s", traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    @app.errorhandler(Exception)
    def catch_all(e):
        """Catch-all for any unhandled exception, never leak tracebacks."""
        if isinstance(e, HTTPException):
            return jsonify({"error": e.name, "message": e.description}), e.code
        error_logger.error(
            "Unhandled exception: %s\n%s", str(e), traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    # ─────────────────────────────────────────────────────────────────

    @app.get("/health")
    def health():
        return jsonify(status="up and running", scanners=len(app.extensions["scan_engine"].registry)), 200

    return app
