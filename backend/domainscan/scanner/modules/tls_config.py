# domainscan/scanner/modules/tls_config.py
"""
TLS Configuration scanner: grades HTTPS endpoints through the Qualys
SSL Labs API (v3).

The assessment is asynchronous on their side: submit with startNew=on,
then poll until status is READY or ERROR. A full assessment commonly
takes a few minutes, hence the long timeout override.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from ..base import BaseScanner, DataSource, ScannerError, ScannerResult

logger = logging.getLogger(__name__)

SSLLABS_API_URL = os.getenv("SSLLABS_API_URL", "https://api.ssllabs.com/api/v3")

POLL_INTERVAL = 10
MAX_POLLS = 25

HSTS_MIN_MAX_AGE = 15768000     # 6 months

LEGACY_PROTOCOLS = {("SSL", "2.0"), ("SSL", "3.0"), ("TLS", "1.0"), ("TLS", "1.1")}

# worst last
GRADE_ORDER = ["A+", "A", "A-", "B", "C", "D", "E", "F", "T", "M"]
FAILING_GRADES = {"F", "T", "M"}


def _vulnerabilities(details: Dict[str, Any]) -> List[str]:
    """Named vulnerabilities flagged on one endpoint."""
    found = []
    if details.get("heartbleed") is True:
        found.append("Heartbleed (CVE-2014-0160)")
    if details.get("poodle") is True:
        found.append("POODLE (SSL 3.0)")
    if details.get("poodleTls") == 2:
        found.append("POODLE TLS")
    if details.get("vulnBeast") is True:
        found.append("BEAST")
    if details.get("openSslCcs") == 3:
        found.append("OpenSSL CCS injection (CVE-2014-0224)")
    if details.get("freak") is True:
        found.append("FREAK")
    if details.get("logjam") is True:
        found.append("Logjam")
    if details.get("drownVulnerable") is True:
        found.append("DROWN")
    return found


def worst_grade(grades: List[str]) -> Optional[str]:
    ranked = [g for g in grades if g in GRADE_ORDER]
    if not ranked:
        return None
    return max(ranked, key=GRADE_ORDER.index)


class TlsConfigScanner(BaseScanner):
    id = "tls"
    label = "TLS Configuration"
    description = "Grades the HTTPS configuration of every endpoint using Qualys SSL Labs"
    order = 50
    timeout = 300
    data_source = DataSource("Qualys SSL Labs", "https://www.ssllabs.com/ssltest/")

    def __init__(
        self,
        *args,
        api_url: str = SSLLABS_API_URL,
        poll_interval: float = POLL_INTERVAL,
        max_polls: int = MAX_POLLS,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.api_url = api_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_polls = max_polls

    async def run(self, domain: str) -> ScannerResult:
        report = await self._assess(domain)
        return self._analyze(domain, report.get("endpoints") or [])

    # ── API ──────────────────────────────────────────────────────────

    async def _assess(self, domain: str) -> Dict[str, Any]:
        params = {"host": domain, "all": "done"}

        async with self._client(timeout=30) as client:
            report = await self._get(client, {**params, "startNew": "on"})

            polls = 0
            while report.get("status") not in ("READY", "ERROR"):
                if polls >= self.max_polls:
                    raise ScannerError(
                        f"SSL Labs assessment did not finish after {self.max_polls} polls"
                    )
                await asyncio.sleep(self.poll_interval)
                report = await self._get(client, params)
                polls += 1
                logger.debug(f"TLS: {domain} status={report.get('status')} poll={polls}")

        if report.get("status") == "ERROR":
            raise ScannerError(
                f"SSL Labs assessment failed: {report.get('statusMessage') or 'unknown error'}"
            )
        return report

    async def _get(self, client: httpx.AsyncClient, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            resp = await client.get(f"{self.api_url}/analyze", params=params)
        except httpx.RequestError as e:
            raise ScannerError(f"SSL Labs unreachable: {type(e).__name__}")

        if resp.status_code in (429, 529):
            raise ScannerError("SSL Labs is rate limiting or overloaded, try again later")
        if resp.status_code != 200:
            raise ScannerError(f"SSL Labs returned HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError:
            raise ScannerError("SSL Labs returned an unreadable response")
        return payload if isinstance(payload, dict) else {}

    # ── Analysis ─────────────────────────────────────────────────────

    @staticmethod
    def _analyze(domain: str, endpoints: List[Any]) -> ScannerResult:
        endpoints = [e for e in endpoints if isinstance(e, dict)]
        if not endpoints:
            return ScannerResult(
                data={"endpoints": [], "grades": [], "worstGrade": None,
                      "vulnerabilities": [], "hasVulnerabilities": False},
                summary="No HTTPS endpoints found",
                issues=["No HTTPS endpoints found"],
            )

        issues: List[str] = []
        rows = []
        all_vulns: List[str] = []

        def add(issue: str):
            if issue not in issues:
                issues.append(issue)

        for ep in endpoints:
            details = ep.get("details") if isinstance(ep.get("details"), dict) else {}
            grade = ep.get("grade")

            protocols = [
                (str(p.get("name", "")), str(p.get("version", "")))
                for p in details.get("protocols") or [] if isinstance(p, dict)
            ]
            legacy = [f"{n} {v}" for n, v in protocols if (n.upper(), v) in LEGACY_PROTOCOLS]
            if legacy:
                add(f"Outdated protocol(s) supported: {', '.join(legacy)} - disable them")

            if details.get("forwardSecrecy") == 0:
                add("Forward secrecy not supported - recorded traffic can be decrypted if the key leaks")

            vulns = _vulnerabilities(details)
            for v in vulns:
                add(f"Vulnerable to {v}")
                if v not in all_vulns:
                    all_vulns.append(v)

            hsts = details.get("hstsPolicy") if isinstance(details.get("hstsPolicy"), dict) else {}
            hsts_status = str(hsts.get("status") or "absent").lower()
            max_age = hsts.get("maxAge")
            if hsts_status != "present":
                add("HSTS not enabled - browsers may still connect over plain HTTP")
            elif isinstance(max_age, (int, float)) and max_age < HSTS_MIN_MAX_AGE:
                add(f"HSTS max-age is short ({int(max_age)} seconds) - use at least 6 months (15768000)")

            rows.append({
                "ipAddress": ep.get("ipAddress"),
                "serverName": ep.get("serverName"),
                "grade": grade,
                "protocols": [f"{n} {v}" for n, v in protocols],
                "forwardSecrecy": details.get("forwardSecrecy"),
                "hstsStatus": hsts_status,
                "hstsMaxAge": max_age,
                "vulnerabilities": vulns,
            })

        grades = [r["grade"] for r in rows if r["grade"]]
        worst = worst_grade(grades)
        summary = (
            f"{len(rows)} endpoint(s) graded, worst grade {worst}" if worst
            else f"{len(rows)} endpoint(s) assessed, no grade issued"
        )
        return ScannerResult(
            data={
                "endpoints": rows,
                "grades": grades,
                "worstGrade": worst,
                "vulnerabilities": all_vulns,
                "hasVulnerabilities": bool(all_vulns),
            },
            summary=summary,
            issues=issues,
        )
