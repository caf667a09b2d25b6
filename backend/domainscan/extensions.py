# domainscan/extensions.py
from __future__ import annotations

from flask import Flask, current_app

from domainscan.scanner import ScanEngine, ScannerCache, build_default_registry

# One cache/rate limiter per process, shared by every request
scanner_cache = ScannerCache()


def init_extensions(app: Flask) -> None:
    registry = build_default_registry(transport=app.config.get("SCANNER_TRANSPORT"))
    app.extensions["scan_engine"] = ScanEngine(
        registry,
        cache=app.config.get("SCANNER_CACHE") or scanner_cache,
        default_timeout=app.config["SCANNER_TIMEOUT"],
    )


def get_engine() -> ScanEngine:
    return current_app.extensions["scan_engine"]
