# domainscan/scanner/modules/certificates.py
"""
Certificate Transparency scanner: queries crt.sh for certificates issued
to the domain.

Active certificates are deduplicated by common name (most recently issued
wins) before expiry checks, so a renewed certificate hides the one it
replaced.

Rate limit: None (public API, but slow under load)
API key: Not required
"""

from __future__ import annotations

import json
import logging
import math
import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..base import BaseScanner, DataSource, ScannerError, ScannerResult

logger = logging.getLogger(__name__)

CRTSH_URL = os.getenv("CRTSH_URL", "https://crt.sh/")
CRTSH_ATTEMPTS = 2

CRITICAL_DAYS = 7
WARNING_DAYS = 30
RECENTLY_EXPIRED_DAYS = 7
MAX_ACTIVE_CERTS = 10
MAX_ISSUERS = 3

ISSUER_CN_RE = re.compile(r"(?:^|,)\s*CN\s*=\s*([^,]+)", re.IGNORECASE)


@dataclass
class CertRecord:
    common_name: str
    issuer: str
    issuer_cn: str
    not_before: Optional[datetime]
    not_after: Optional[datetime]
    days_until_expiry: Optional[int]

    @property
    def is_active(self) -> bool:
        return self.days_until_expiry is not None and self.days_until_expiry >= 0

    @property
    def is_wildcard(self) -> bool:
        return self.common_name.startswith("*.")

    @property
    def is_self_signed(self) -> bool:
        if "self-signed" in self.issuer.lower() or "self signed" in self.issuer.lower():
            return True
        return bool(self.issuer_cn) and self.issuer_cn.lower() == self.common_name.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commonName": self.common_name,
            "issuer": self.issuer_cn or self.issuer,
            "notBefore": self.not_before.isoformat() if self.not_before else None,
            "notAfter": self.not_after.isoformat() if self.not_after else None,
            "daysUntilExpiry": self.days_until_expiry,
        }


def parse_ct_date(raw: Any) -> Optional[datetime]:
    """crt.sh dates are ISO-ish and usually naive; naive means UTC."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    value = raw.strip().replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        try:
            dt = datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _issuer_cn(issuer: str) -> str:
    m = ISSUER_CN_RE.search(issuer or "")
    return m.group(1).strip() if m else ""


def _days_between(later: datetime, now: datetime) -> int:
    return math.floor((later - now).total_seconds() / 86400)


class CertificatesScanner(BaseScanner):
    id = "certificates"
    label = "SSL/TLS Certificates"
    description = "Searches Certificate Transparency logs for certificates issued to the domain"
    order = 30
    timeout = 45
    data_source = DataSource("crt.sh Certificate Transparency search", "https://crt.sh")

    def __init__(self, *args, crtsh_url: str = CRTSH_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.crtsh_url = crtsh_url

    async def run(self, domain: str) -> ScannerResult:
        rows = await self._fetch(domain)
        now = self._clock()
        certs = [c for c in (self._parse_row(r, now) for r in rows) if c is not None]

        if not certs:
            return ScannerResult(
                data=self._empty_data(),
                summary="No certificates found in Certificate Transparency logs",
                issues=["No SSL certificates found - if you use HTTPS, this might indicate a very new certificate"],
            )

        return self._analyze(certs, now)

    # ── Fetch ────────────────────────────────────────────────────────

    async def _fetch(self, domain: str) -> List[Dict[str, Any]]:
        last_error = "no response"
        async with self._client(timeout=20, headers={"Accept": "application/json"}) as client:
            for attempt in range(CRTSH_ATTEMPTS):
                try:
                    resp = await client.get(self.crtsh_url, params={"q": domain, "output": "json"})
                except httpx.RequestError as e:
                    last_error = f"{type(e).__name__}: {e}"
                    logger.warning(f"Certificates: crt.sh request failed for {domain} (attempt {attempt + 1}): {e}")
                    continue

                if resp.status_code != 200:
                    last_error = f"HTTP {resp.status_code}"
                    logger.warning(
                        f"Certificates: crt.sh returned {resp.status_code} for {domain} (attempt {attempt + 1})"
                    )
                    continue

                body = (resp.text or "").strip()
                if not body:
                    return []
                try:
                    payload = json.loads(body)
                except json.JSONDecodeError:
                    last_error = "unreadable response"
                    logger.warning(f"Certificates: crt.sh returned non-JSON for {domain} (attempt {attempt + 1})")
                    continue
                return [r for r in payload if isinstance(r, dict)] if isinstance(payload, list) else []

        raise ScannerError(f"Certificate Transparency lookup failed: {last_error}")

    @staticmethod
    def _parse_row(row: Dict[str, Any], now: datetime) -> Optional[CertRecord]:
        cn = str(row.get("common_name") or "").strip().lower()
        if not cn:
            names = str(row.get("name_value") or "").split("\n")
            cn = names[0].strip().lower() if names else ""
        if not cn:
            return None

        issuer = str(row.get("issuer_name") or "")
        not_before = parse_ct_date(row.get("not_before"))
        not_after = parse_ct_date(row.get("not_after"))
        return CertRecord(
            common_name=cn,
            issuer=issuer,
            issuer_cn=_issuer_cn(issuer),
            not_before=not_before,
            not_after=not_after,
            days_until_expiry=_days_between(not_after, now) if not_after else None,
        )

    # ── Analysis ─────────────────────────────────────────────────────

    def _analyze(self, certs: List[CertRecord], now: datetime) -> ScannerResult:
        oldest = datetime.min.replace(tzinfo=timezone.utc)

        latest: Dict[str, CertRecord] = {}
        for c in certs:
            if not c.is_active:
                continue
            current = latest.get(c.common_name)
            if current is None or (c.not_before or oldest) > (current.not_before or oldest):
                latest[c.common_name] = c
        active = sorted(latest.values(), key=lambda c: c.days_until_expiry)
        expired = [c for c in certs if not c.is_active]

        issues: List[str] = []

        critical = [c for c in active if c.days_until_expiry <= CRITICAL_DAYS]
        warning = [c for c in active if CRITICAL_DAYS < c.days_until_expiry <= WARNING_DAYS]
        for c in critical:
            issues.append(
                f"Certificate for {c.common_name} expires in {c.days_until_expiry} day(s) - renew immediately!"
            )
        for c in warning:
            issues.append(
                f"Certificate for {c.common_name} expires in {c.days_until_expiry} days - plan renewal soon"
            )

        self_signed = [c for c in active if c.is_self_signed]
        if self_signed:
            issues.append(
                f"{len(self_signed)} self-signed certificate(s) found - not trusted by browsers"
            )

        wildcards = [c for c in active if c.is_wildcard]
        if wildcards:
            issues.append(
                f"{len(wildcards)} wildcard certificate(s) in use - protect their private keys carefully"
            )

        if len(active) > MAX_ACTIVE_CERTS:
            issues.append(
                f"High number of active certificates ({len(active)}) - review for unused certificates"
            )

        issuers = sorted({c.issuer_cn or c.issuer for c in active if c.issuer_cn or c.issuer})
        if len(issuers) > MAX_ISSUERS:
            issues.append(
                f"Certificates from {len(issuers)} different issuers - consider consolidating certificate management"
            )

        cutoff = now - timedelta(days=RECENTLY_EXPIRED_DAYS)
        lapsed: List[str] = []
        for c in expired:
            if c.not_after and c.not_after >= cutoff and c.common_name not in latest and c.common_name not in lapsed:
                lapsed.append(c.common_name)
        for name in lapsed:
            issues.append(f"Certificate for {name} expired recently without replacement")

        data = {
            "certCount": len(certs),
            "activeCertCount": len(active),
            "expiredCertCount": len(expired),
            "activeCerts": [c.to_dict() for c in active[:10]],
            "expiringIn30Days": len(critical) + len(warning),
            "expiringIn7Days": len(critical),
            "wildcardCount": len(wildcards),
            "selfSignedCount": len(self_signed),
            "uniqueIssuers": issuers[:5],
            "uniqueIssuerCount": len(issuers),
            "expiredWithoutReplacement": lapsed,
        }
        summary = (
            f"Found {len(certs)} certificates ({len(active)} active, {len(expired)} expired)"
        )
        return ScannerResult(data=data, summary=summary, issues=issues)

    @staticmethod
    def _empty_data() -> Dict[str, Any]:
        return {
            "certCount": 0,
            "activeCertCount": 0,
            "expiredCertCount": 0,
            "activeCerts": [],
            "expiringIn30Days": 0,
            "expiringIn7Days": 0,
            "wildcardCount": 0,
            "selfSignedCount": 0,
            "uniqueIssuers": [],
            "uniqueIssuerCount": 0,
            "expiredWithoutReplacement": [],
        }
