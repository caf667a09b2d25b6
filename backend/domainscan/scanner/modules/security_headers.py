# domainscan/scanner/modules/security_headers.py
"""
HTTP Security Headers scanner: reads the securityheaders.com report.

The report is HTML, so all markup knowledge lives in HeaderReportParser.
If their page layout changes, only the parser needs updating; the scanner
works with the typed HeaderReport it returns.

When the report can't be fetched or read, the scanner still succeeds and
hands back the report URL so the user can check manually.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup

from ..base import BaseScanner, DataSource, ScannerResult

logger = logging.getLogger(__name__)

SECURITY_HEADERS_URL = os.getenv("SECURITY_HEADERS_URL", "https://securityheaders.com/")

GRADE_RE = re.compile(r"^(A\+|[A-FR])$")

GRADE_SCORES = {
    "A+": 100,
    "A": 90,
    "B": 75,
    "C": 60,
    "D": 45,
    "E": 30,
    "F": 15,
    "R": 0,
}


@dataclass
class HeaderReport:
    grade: str
    score: Optional[int] = None
    missing_headers: List[str] = field(default_factory=list)


class HeaderReportParser:
    """Extracts grade, score and missing headers from a report page."""

    def parse(self, html: str, headers: Optional[Mapping[str, str]] = None) -> Optional[HeaderReport]:
        soup = BeautifulSoup(html or "", "html.parser")

        grade = self._grade_from_headers(headers) or self._grade_from_markup(soup)
        if not grade:
            return None

        return HeaderReport(
            grade=grade,
            score=self._score(soup, grade),
            missing_headers=self._missing_headers(soup),
        )

    @staticmethod
    def _grade_from_headers(headers: Optional[Mapping[str, str]]) -> Optional[str]:
        if not headers:
            return None
        value = (headers.get("x-grade") or "").strip().upper()
        return value if GRADE_RE.match(value) else None

    @staticmethod
    def _grade_from_markup(soup: BeautifulSoup) -> Optional[str]:
        marker = soup.select_one("div.score span") or soup.select_one(".score")
        if marker is None:
            return None
        value = marker.get_text(strip=True).upper()
        return value if GRADE_RE.match(value) else None

    @staticmethod
    def _score(soup: BeautifulSoup, grade: str) -> Optional[int]:
        marker = soup.select_one("[data-score]")
        if marker is not None:
            try:
                return int(str(marker.get("data-score")).strip())
            except ValueError:
                pass
        return GRADE_SCORES.get(grade)

    @staticmethod
    def _missing_headers(soup: BeautifulSoup) -> List[str]:
        missing: List[str] = []
        for section in soup.select("div.reportSection"):
            title = section.select_one(".reportTitle")
            if title is None or "missing headers" not in title.get_text(" ", strip=True).lower():
                continue
            for label in section.select("th"):
                name = label.get_text(strip=True)
                if name and name.lower() not in (m.lower() for m in missing):
                    missing.append(name)
        return missing


def report_url(domain: str, base_url: str = SECURITY_HEADERS_URL) -> str:
    return f"{base_url}?{urlencode({'q': domain, 'followRedirects': 'on'})}"


class SecurityHeadersScanner(BaseScanner):
    id = "securityHeaders"
    label = "HTTP Security Headers"
    description = "Grades the HTTP security headers served by the site using securityheaders.com"
    order = 60
    data_source = DataSource("securityheaders.com", "https://securityheaders.com")

    def __init__(self, *args, report_base_url: str = SECURITY_HEADERS_URL,
                 parser: Optional[HeaderReportParser] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.report_base_url = report_base_url
        self.parser = parser or HeaderReportParser()

    async def run(self, domain: str) -> ScannerResult:
        test_url = report_url(domain, self.report_base_url)
        report = await self._fetch_report(domain)

        if report is None:
            return ScannerResult(
                data={"status": "unavailable", "testUrl": test_url},
                summary="Security headers report unavailable - check it manually",
                issues=[],
            )

        issues = [f"Missing security header: {name}" for name in report.missing_headers]
        summary = f"Grade {report.grade}"
        if report.missing_headers:
            summary += f", {len(report.missing_headers)} missing header(s)"

        return ScannerResult(
            data={
                "status": "ok",
                "grade": report.grade,
                "score": report.score,
                "missingHeaders": report.missing_headers,
                "testUrl": test_url,
            },
            summary=summary,
            issues=issues,
        )

    async def _fetch_report(self, domain: str) -> Optional[HeaderReport]:
        params = {"q": domain, "hide": "on", "followRedirects": "on"}
        try:
            async with self._client(timeout=20) as client:
                resp = await client.get(self.report_base_url, params=params)
        except httpx.RequestError as e:
            logger.warning(f"Headers: securityheaders.com unreachable for {domain}: {e}")
            return None

        if resp.status_code != 200:
            logger.warning(f"Headers: securityheaders.com returned {resp.status_code} for {domain}")
            return None

        report = self.parser.parse(resp.text, resp.headers)
        if report is None:
            logger.warning(f"Headers: could not read a grade from the report for {domain}")
        return report
