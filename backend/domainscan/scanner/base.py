# domainscan/scanner/base.py
"""
Base classes for the domain scanner framework.

Architecture:
    ScanEngine runs every registered BaseScanner against one domain, wraps
    each raw ScannerResult in an ExecutedScannerResult and collects them in
    a DomainScanAggregate.

BaseScanner:  Collects data for one concern (DNS, email auth, certificates...)
              and reports free-text issues. Scanners NEVER decide severity;
              the interpretation layer does that.

ExecutedScannerResult: Owned by the engine. Carries status, timing and the
              scanner's output. Status only moves idle → running → success|error.

The serialized shape (to_dict / from_dict) uses camelCase field names so that
previously exported scans stay loadable.
"""

from __future__ import annotations

import copy
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = os.getenv("SCAN_USER_AGENT", "domainscan/1.0 (+passive security posture checks)")
HTTP_TIMEOUT = 15


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ScannerError(Exception):
    """A scanner could not reach or make sense of its upstream source."""


class ScannerNotFoundError(LookupError):
    def __init__(self, scanner_id: str):
        super().__init__(f"Scanner not found: {scanner_id}")
        self.scanner_id = scanner_id


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

class ScannerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ScannerStatus.SUCCESS, ScannerStatus.ERROR)


_ALLOWED_TRANSITIONS = {
    ScannerStatus.IDLE: (ScannerStatus.RUNNING,),
    ScannerStatus.RUNNING: (ScannerStatus.SUCCESS, ScannerStatus.ERROR),
    ScannerStatus.SUCCESS: (),
    ScannerStatus.ERROR: (),
}


@dataclass(frozen=True)
class DataSource:
    """Public service a scanner queries, shown next to its results."""
    name: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "url": self.url}


@dataclass
class ScannerResult:
    """
    Raw output of BaseScanner.run().

    issues=None means "not computed"; the engine then asks the scanner's
    derive_issues() hook. An empty list means "computed, nothing found".
    """
    data: Dict[str, Any] = field(default_factory=dict)
    summary: Optional[str] = None
    issues: Optional[List[str]] = None


@dataclass
class ExecutedScannerResult:
    id: str
    label: str
    status: ScannerStatus = ScannerStatus.IDLE
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    summary: Optional[str] = None
    issues: List[str] = field(default_factory=list)
    data_source: Optional[DataSource] = None

    def _transition(self, status: ScannerStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Scanner '{self.id}' cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def mark_running(self, at: datetime) -> None:
        self._transition(ScannerStatus.RUNNING)
        self.started_at = at

    def mark_success(self, result: ScannerResult, issues: List[str], at: datetime) -> None:
        self._transition(ScannerStatus.SUCCESS)
        self.finished_at = at
        self.error = None
        self.data = result.data if result.data is not None else {}
        self.summary = result.summary or f"{self.label} completed"
        self.issues = list(issues)

    def mark_error(self, message: str, at: datetime) -> None:
        self._transition(ScannerStatus.ERROR)
        self.finished_at = at
        self.error = message or "Unknown error"
        self.data = None
        self.summary = None
        self.issues = []

    def snapshot(self) -> "ExecutedScannerResult":
        """Detached copy, handed to progress listeners."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "status": self.status.value,
            "startedAt": _iso(self.started_at),
            "finishedAt": _iso(self.finished_at),
            "error": self.error,
            "data": self.data,
            "summary": self.summary,
            "issues": list(self.issues),
            "dataSource": self.data_source.to_dict() if self.data_source else None,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ExecutedScannerResult":
        source = raw.get("dataSource") or None
        try:
            status = ScannerStatus(raw.get("status") or "idle")
        except ValueError:
            status = ScannerStatus.IDLE
        return cls(
            id=raw.get("id", ""),
            label=raw.get("label", ""),
            status=status,
            started_at=_parse_iso(raw.get("startedAt")),
            finished_at=_parse_iso(raw.get("finishedAt")),
            error=raw.get("error"),
            data=raw.get("data"),
            summary=raw.get("summary"),
            issues=list(raw.get("issues") or []),
            data_source=DataSource(source.get("name", ""), source.get("url", "")) if source else None,
        )


@dataclass
class DomainScanAggregate:
    """One complete orchestration run. Replaced wholesale on every run."""
    domain: str
    timestamp: datetime
    scanners: List[ExecutedScannerResult] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)

    def get(self, scanner_id: str) -> Optional[ExecutedScannerResult]:
        for s in self.scanners:
            if s.id == scanner_id:
                return s
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "timestamp": _iso(self.timestamp),
            "scanners": [s.to_dict() for s in self.scanners],
            "issues": list(self.issues),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DomainScanAggregate":
        return cls(
            domain=raw.get("domain", ""),
            timestamp=_parse_iso(raw.get("timestamp")) or now_utc(),
            scanners=[ExecutedScannerResult.from_dict(s) for s in raw.get("scanners") or []],
            issues=list(raw.get("issues") or []),
        )


@dataclass(frozen=True)
class ScannerInterpretation:
    severity: str                       # success, info, warning, critical, error
    message: str
    recommendation: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "severity": self.severity,
            "message": self.message,
            "recommendation": self.recommendation,
        }


# ---------------------------------------------------------------------------
# Abstract base class
# ---------------------------------------------------------------------------

class BaseScanner(ABC):
    """
    Abstract base for analysis modules.

    To add a new scanner:
    1. Create a new file in domainscan/scanner/modules/
    2. Subclass BaseScanner, set the class attributes
    3. Implement async run(domain) -> ScannerResult
    4. Register it in domainscan/scanner/modules/__init__.py REGISTRY

    Raise ScannerError when the upstream source is unreachable and there is
    nothing meaningful to report. Malformed or missing fields should degrade
    to empty values instead.
    """

    id: str = "base"
    label: str = ""
    description: str = ""
    order: Optional[int] = None         # lower runs first, None runs last
    timeout: Optional[float] = None     # seconds, None uses the engine default
    data_source: Optional[DataSource] = None

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._transport = transport
        self._clock = clock

    def _client(self, timeout: float = HTTP_TIMEOUT, **kwargs) -> httpx.AsyncClient:
        headers = {"User-Agent": USER_AGENT}
        headers.update(kwargs.pop("headers", {}))
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers=headers,
            **kwargs,
        )

    @abstractmethod
    async def run(self, domain: str) -> ScannerResult:
        """Collect data for a normalized domain."""
        ...

    def derive_issues(self, result: ScannerResult, domain: str) -> Optional[List[str]]:
        """Fallback issue list when run() left ScannerResult.issues unset."""
        return None

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "order": self.order,
            "timeout": self.timeout,
            "dataSource": self.data_source.to_dict() if self.data_source else None,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"
