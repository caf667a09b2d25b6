# domainscan/scans/routes.py
"""
Domain scan API routes.

Scans run synchronously inside the request on a private event loop. The
rate limiter is keyed on the client address, per scanner.
"""

from __future__ import annotations

import logging
from flask import Blueprint, request, jsonify

from domainscan.extensions import get_engine, scanner_cache
from domainscan.scanner import (
    ScannerNotFoundError,
    interpret_all,
    interpret_scanner_result,
    validate_domain,
)

logger = logging.getLogger(__name__)

scans_bp = Blueprint("scans", __name__, url_prefix="/scans")


def _client_identifier() -> str:
    # ProxyFix rewrites remote_addr when TRUSTED_PROXY_HOPS is set
    return request.remote_addr or "global"


def _validate_body() -> tuple:
    """Returns (domain, error_response). If valid, error is None."""
    body = request.get_json(silent=True) or {}
    result = validate_domain(body.get("domain"))
    if not result.is_valid:
        return None, (jsonify(error=result.error), 400)
    return result.normalized_domain, None


# ═══════════════════════════════════════════════════════════════
# FULL SCAN
# ═══════════════════════════════════════════════════════════════

@scans_bp.post("")
def run_scan():
    """Run every registered scanner against one domain."""
    domain, err = _validate_body()
    if err:
        return err

    identifier = _client_identifier()
    logger.info(f"Scan requested for {domain} by {identifier}")

    aggregate = get_engine().run_all_sync(domain, identifier=identifier)

    payload = aggregate.to_dict()
    payload["interpretations"] = {
        scanner_id: interp.to_dict()
        for scanner_id, interp in interpret_all(aggregate.scanners).items()
    }
    return jsonify(payload), 200


# ═══════════════════════════════════════════════════════════════
# SINGLE SCANNER RE-RUN
# ═══════════════════════════════════════════════════════════════

@scans_bp.post("/<scanner_id>")
def run_single_scanner(scanner_id: str):
    """Re-run one scanner, e.g. after it failed or timed out."""
    domain, err = _validate_body()
    if err:
        return err

    try:
        result = get_engine().run_one_sync(domain, scanner_id, identifier=_client_identifier())
    except ScannerNotFoundError as e:
        return jsonify(error="Not found", message=str(e)), 404

    payload = result.to_dict()
    payload["interpretation"] = interpret_scanner_result(result).to_dict()
    return jsonify(payload), 200


# ═══════════════════════════════════════════════════════════════
# INTROSPECTION
# ═══════════════════════════════════════════════════════════════

@scans_bp.get("/scanners")
def list_scanners():
    scanners = [s.describe() for s in get_engine().registry.all()]
    return jsonify(scanners=scanners, defaultTimeout=get_engine().default_timeout), 200


@scans_bp.get("/cache")
def cache_stats():
    cache = get_engine().cache or scanner_cache
    cache.cleanup()
    return jsonify(cache.get_stats()), 200
