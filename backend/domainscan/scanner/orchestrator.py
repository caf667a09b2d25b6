# domainscan/scanner/orchestrator.py
"""
Scan engine: runs every registered scanner against one domain.

    1. Normalize the domain (trim + lower-case)
    2. For each scanner, in registry order and one at a time:
         - append a `running` entry, notify progress
         - serve from cache, or check the rate limit and run the scanner
           raced against its timeout
         - finish the entry as success/error, notify progress
    3. Flatten issues in execution order into a DomainScanAggregate

A failing or stuck scanner never stops the others. Timeouts cancel the
scanner's coroutine, which aborts its in-flight HTTP request.

Usage from scans/routes.py:
    from domainscan.extensions import get_engine

    aggregate = get_engine().run_all_sync("example.com")
"""

from __future__ import annotations

import asyncio
import copy
import logging
import math
import os
import time
from datetime import datetime
from typing import Callable, List, Optional

from .base import (
    BaseScanner,
    DomainScanAggregate,
    ExecutedScannerResult,
    ScannerError,
    ScannerNotFoundError,
    ScannerResult,
    now_utc,
)
from .cache import ScannerCache
from .registry import ScannerRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = float(os.getenv("SCANNER_TIMEOUT", "30"))

ProgressCallback = Callable[[List[ExecutedScannerResult]], None]


def normalize_domain(domain: str) -> str:
    return (domain or "").strip().lower()


def _run_sync(coro):
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    finally:
        asyncio.set_event_loop(None)
        loop.close()


async def _run_guarded(scanner: BaseScanner, domain: str):
    """
    Run the scanner with its own TimeoutErrors turned into ScannerError, so
    only the engine's deadline is reported as a timeout.
    """
    try:
        return await scanner.run(domain)
    except asyncio.TimeoutError as e:
        raise ScannerError(str(e) or f"{scanner.label} upstream operation timed out") from e


class ScanEngine:
    def __init__(
        self,
        registry: ScannerRegistry,
        cache: Optional[ScannerCache] = None,
        default_timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.registry = registry
        self.cache = cache
        self._clock = clock
        self.default_timeout = DEFAULT_TIMEOUT
        self.set_default_timeout(default_timeout)

    def set_default_timeout(self, seconds: float) -> None:
        try:
            value = float(seconds)
        except (TypeError, ValueError):
            raise ValueError("Invalid timeout value")
        if not math.isfinite(value) or value <= 0:
            raise ValueError("Invalid timeout value")
        self.default_timeout = value

    # ── Public API ───────────────────────────────────────────────────

    async def run_all(
        self,
        domain: str,
        on_progress: Optional[ProgressCallback] = None,
        identifier: str = "global",
    ) -> DomainScanAggregate:
        normalized = normalize_domain(domain)
        timestamp = self._clock()
        results: List[ExecutedScannerResult] = []
        start = time.monotonic()

        logger.info(f"Scan started for {normalized} ({len(self.registry)} scanners)")

        for scanner in self.registry.all():
            entry = self._new_entry(scanner)
            results.append(entry)
            self._notify(on_progress, results)

            await self._execute(scanner, normalized, entry, identifier)
            self._notify(on_progress, results)

        issues = [issue for r in results for issue in r.issues]
        failed = sum(1 for r in results if r.error)

        logger.info(
            f"Scan finished for {normalized} in {time.monotonic() - start:.1f}s: "
            f"{len(results) - failed} ok, {failed} failed, {len(issues)} issues"
        )
        return DomainScanAggregate(
            domain=normalized,
            timestamp=timestamp,
            scanners=results,
            issues=issues,
        )

    async def run_one(
        self,
        domain: str,
        scanner_id: str,
        identifier: str = "global",
    ) -> ExecutedScannerResult:
        scanner = self.registry.get(scanner_id)
        if scanner is None:
            raise ScannerNotFoundError(scanner_id)

        entry = self._new_entry(scanner)
        await self._execute(scanner, normalize_domain(domain), entry, identifier)
        return entry

    def run_all_sync(
        self,
        domain: str,
        on_progress: Optional[ProgressCallback] = None,
        identifier: str = "global",
    ) -> DomainScanAggregate:
        return _run_sync(self.run_all(domain, on_progress=on_progress, identifier=identifier))

    def run_one_sync(self, domain: str, scanner_id: str, identifier: str = "global") -> ExecutedScannerResult:
        if scanner_id not in self.registry:
            raise ScannerNotFoundError(scanner_id)
        return _run_sync(self.run_one(domain, scanner_id, identifier=identifier))

    # ── Internals ────────────────────────────────────────────────────

    def _new_entry(self, scanner: BaseScanner) -> ExecutedScannerResult:
        entry = ExecutedScannerResult(
            id=scanner.id,
            label=scanner.label,
            data_source=scanner.data_source,
        )
        entry.mark_running(self._clock())
        return entry

    @staticmethod
    def _notify(on_progress: Optional[ProgressCallback], results: List[ExecutedScannerResult]) -> None:
        if on_progress is None:
            return
        try:
            on_progress([r.snapshot() for r in results])
        except Exception:
            logger.exception("Progress callback raised, continuing scan")

    def _timeout_for(self, scanner: BaseScanner) -> float:
        if scanner.timeout and scanner.timeout > 0:
            return float(scanner.timeout)
        return self.default_timeout

    async def _execute(
        self,
        scanner: BaseScanner,
        domain: str,
        entry: ExecutedScannerResult,
        identifier: str,
    ) -> None:
        cache_key = f"{scanner.id}:{domain}"

        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Scanner '{scanner.id}' served from cache for {domain}")
                result = copy.deepcopy(cached)
                entry.mark_success(result, result.issues or [], self._clock())
                return

            decision = self.cache.check_rate_limit(f"{identifier}:{scanner.id}")
            if not decision.allowed:
                entry.mark_error(
                    f"Rate limit exceeded for {scanner.label}, retry after {decision.retry_after}s",
                    self._clock(),
                )
                return

        timeout = self._timeout_for(scanner)
        start = time.monotonic()

        try:
            result = await asyncio.wait_for(_run_guarded(scanner, domain), timeout=timeout)
            if isinstance(result, dict):
                result = ScannerResult(
                    data=result.get("data") or {},
                    summary=result.get("summary"),
                    issues=result.get("issues"),
                )
            if result.issues is not None:
                issues = list(result.issues)
            else:
                issues = list(scanner.derive_issues(result, domain) or [])
        except asyncio.TimeoutError:
            message = f"{scanner.label} timed out after {int(round(timeout * 1000))}ms"
            logger.warning(f"Scanner '{scanner.id}' for {domain}: {message}")
            entry.mark_error(message, self._clock())
            return
        except ScannerError as e:
            logger.warning(f"Scanner '{scanner.id}' failed for {domain}: {e}")
            entry.mark_error(str(e), self._clock())
            return
        except Exception as e:
            logger.exception(f"Scanner '{scanner.id}' crashed for {domain}")
            entry.mark_error(str(e), self._clock())
            return

        entry.mark_success(result, issues, self._clock())
        logger.info(
            f"Scanner '{scanner.id}' completed for {domain} in "
            f"{time.monotonic() - start:.2f}s ({len(issues)} issues)"
        )

        if self.cache is not None:
            self.cache.set(cache_key, ScannerResult(
                data=copy.deepcopy(entry.data),
                summary=entry.summary,
                issues=list(issues),
            ))
