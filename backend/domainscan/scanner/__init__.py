# domainscan/scanner/__init__.py
"""
Domain scanner framework.

Usage:
    from domainscan.scanner import ScanEngine, ScannerCache, build_default_registry

    engine = ScanEngine(build_default_registry(), cache=ScannerCache())
    aggregate = engine.run_all_sync("example.com")
"""

from .base import (
    BaseScanner,
    DataSource,
    DomainScanAggregate,
    ExecutedScannerResult,
    ScannerError,
    ScannerInterpretation,
    ScannerNotFoundError,
    ScannerResult,
    ScannerStatus,
)
from .cache import RateLimitDecision, ScannerCache
from .interpretation import interpret_all, interpret_scanner_result
from .modules import build_default_registry
from .orchestrator import ScanEngine
from .registry import ScannerRegistry
from .validation import DomainValidation, validate_domain

__all__ = [
    "BaseScanner",
    "DataSource",
    "DomainScanAggregate",
    "DomainValidation",
    "ExecutedScannerResult",
    "RateLimitDecision",
    "ScanEngine",
    "ScannerCache",
    "ScannerError",
    "ScannerInterpretation",
    "ScannerNotFoundError",
    "ScannerRegistry",
    "ScannerResult",
    "ScannerStatus",
    "build_default_registry",
    "interpret_all",
    "interpret_scanner_result",
    "validate_domain",
]
