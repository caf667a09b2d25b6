# domainscan/scans/__init__.py
"""
Domain scan API.

Nothing is persisted: every request runs the scanners (or serves them from
the in-process cache) and returns the aggregate immediately.

Endpoints:
    POST /scans                  full scan of one domain
    POST /scans/<scanner_id>     re-run a single scanner
    GET  /scans/scanners         registered scanners
    GET  /scans/cache            cache statistics
"""

from domainscan.scans.routes import scans_bp

__all__ = ["scans_bp"]
