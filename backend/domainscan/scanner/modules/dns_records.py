# domainscan/scanner/modules/dns_records.py
"""
DNS Records scanner: A, AAAA, MX, TXT and CNAME via DNS-over-HTTPS.

Checks: web reachability, reserved/private addresses, CNAME conflicts,
record counts, MX targets and oversized TXT strings.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Dict, List, Optional

from ..base import BaseScanner, DataSource, ScannerError, ScannerResult
from ..resolver import DOH_RESOLVER_URL, DohResolver, parse_mx

logger = logging.getLogger(__name__)

RECORD_TYPES = ["A", "AAAA", "MX", "TXT", "CNAME"]
MAX_A_RECORDS = 10
MAX_TXT_LENGTH = 255


def _is_reserved_ip(value: str) -> bool:
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return False
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_unspecified
        or addr.is_reserved
    )


def _is_ip_literal(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


class DnsRecordsScanner(BaseScanner):
    id = "dns"
    label = "DNS Records"
    description = "Looks up A, AAAA, MX, TXT and CNAME records and checks for common misconfigurations"
    order = 10
    data_source = DataSource("Google Public DNS (DNS-over-HTTPS)", "https://dns.google")

    def __init__(self, *args, resolver_url: str = DOH_RESOLVER_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.resolver_url = resolver_url

    async def run(self, domain: str) -> ScannerResult:
        async with self._client() as client:
            resolver = DohResolver(client, self.resolver_url)
            answers = await resolver.query_many(domain, RECORD_TYPES)

        if all(v is None for v in answers.values()):
            raise ScannerError(f"DNS lookups failed for {domain}")

        records: Dict[str, List[str]] = {
            t: [r.data for r in answers.get(t) or []] for t in RECORD_TYPES
        }
        owned: Dict[str, List[str]] = {
            t: [r.data for r in answers.get(t) or [] if r.name == domain] for t in RECORD_TYPES
        }
        failed = [t for t in RECORD_TYPES if answers.get(t) is None]
        if failed:
            logger.debug(f"DNS: lookups failed for {domain}: {', '.join(failed)}")

        issues = self._analyze(records, owned, failed)

        counts = [f"{t}:{len(records[t])}" for t in RECORD_TYPES if records[t]]
        summary = f"Found {', '.join(counts)}" if counts else "No DNS records found"

        return ScannerResult(
            data={
                "records": records,
                "failedLookups": failed,
                "recordCount": sum(len(v) for v in records.values()),
            },
            summary=summary,
            issues=issues,
        )

    @staticmethod
    def _analyze(
        records: Dict[str, List[str]],
        owned: Dict[str, List[str]],
        failed: List[str],
    ) -> List[str]:
        """
        `records` holds chain-resolved values, `owned` only the answers whose
        owner is the queried name. Absence findings are skipped for record
        types whose lookup failed.
        """
        issues: List[str] = []
        a, aaaa, mx, txt, cname = (records[t] for t in RECORD_TYPES)

        web_failed = any(t in failed for t in ("A", "AAAA", "CNAME"))
        if not a and not aaaa and not cname and not web_failed:
            issues.append(
                "No A, AAAA, or CNAME records found - domain may not be accessible via web browser"
            )

        for ip in a:
            if _is_reserved_ip(ip):
                issues.append(f"A record contains reserved/private IP: {ip} - should be a public IP")
        for ip in aaaa:
            if _is_reserved_ip(ip):
                issues.append(f"AAAA record contains reserved/private IP: {ip} - should be a public IP")

        if owned["CNAME"] and (owned["A"] or owned["AAAA"] or owned["MX"]):
            issues.append(
                "CNAME conflict detected - CNAME records cannot coexist with A, AAAA, or MX records"
            )
        if len(owned["CNAME"]) > 1:
            issues.append("Multiple CNAME records found - only one CNAME record should exist per name")

        if len(a) > MAX_A_RECORDS:
            issues.append(f"Unusually high number of A records ({len(a)}) - verify this is intentional")

        if not mx and "MX" not in failed:
            issues.append("No MX records found - email delivery to this domain will fail")

        if any(len(t) > MAX_TXT_LENGTH for t in txt):
            issues.append("TXT record exceeds 255 characters - may cause issues with some DNS resolvers")

        for value in mx:
            host = _mx_host(value)
            if host and _is_ip_literal(host):
                issues.append(f"MX record points to IP address ({host}) - should point to a hostname")

        return issues


def _mx_host(value: str) -> Optional[str]:
    parsed = parse_mx(value)
    if parsed:
        return parsed[1]
    parts = value.split()
    return parts[-1].rstrip(".") if parts else None
