# domainscan/scanner/modules/rdap.py
"""
Domain Registration scanner: RDAP lookup.

Finds the authoritative RDAP server for the domain's TLD through the IANA
bootstrap file, then queries it for registration status, expiry,
nameservers and DNSSEC delegation.

An RDAP failure is reported as a finding ("RDAP lookup failed"), not as a
scanner error: many ccTLDs simply have no RDAP service.
"""

from __future__ import annotations

import logging
import math
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..base import BaseScanner, DataSource, ScannerResult

logger = logging.getLogger(__name__)

RDAP_BOOTSTRAP_URL = os.getenv("RDAP_BOOTSTRAP_URL", "https://data.iana.org/rdap/dns.json")

EXPIRY_WARNING_DAYS = 30

PROBLEM_STATUSES = {
    "client hold",
    "server hold",
    "redemption period",
    "pending delete",
    "pending restore",
}

_CAMEL_RE = re.compile(r"(?<=[a-z])(?=[A-Z])")


class RdapLookupError(Exception):
    pass


def normalize_status(status: str) -> str:
    """'clientHold' / 'client_hold' / 'Client Hold' → 'client hold'."""
    s = _CAMEL_RE.sub(" ", status or "")
    return " ".join(s.replace("_", " ").replace("-", " ").lower().split())


def _parse_date(raw: Any) -> Optional[datetime]:
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        dt = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _registrar_name(entities: Any) -> Optional[str]:
    if not isinstance(entities, list):
        return None
    for ent in entities:
        if not isinstance(ent, dict) or "registrar" not in (ent.get("roles") or []):
            continue
        vcard = ent.get("vcardArray") or []
        if len(vcard) > 1 and isinstance(vcard[1], list):
            for field in vcard[1]:
                if isinstance(field, list) and len(field) > 3 and field[0] == "fn":
                    return str(field[3])
        handle = ent.get("handle")
        if handle:
            return str(handle)
    return None


class RdapScanner(BaseScanner):
    id = "rdap"
    label = "Domain Registration"
    description = "Checks registration status, expiry, nameservers and DNSSEC through RDAP"
    order = 40
    data_source = DataSource("IANA RDAP bootstrap", "https://data.iana.org/rdap/")

    def __init__(self, *args, bootstrap_url: str = RDAP_BOOTSTRAP_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.bootstrap_url = bootstrap_url
        self._services: Optional[List[Tuple[List[str], List[str]]]] = None

    async def run(self, domain: str) -> ScannerResult:
        async with self._client(headers={"Accept": "application/rdap+json, application/json"}) as client:
            try:
                base_url = await self._server_for(client, domain)
                record = await self._lookup(client, base_url, domain)
            except RdapLookupError as e:
                logger.warning(f"RDAP: lookup failed for {domain}: {e}")
                return ScannerResult(
                    data={"lookupFailed": True, "reason": str(e)},
                    summary="RDAP lookup failed",
                    issues=[f"RDAP lookup failed: {e} - registration details could not be verified"],
                )

        return self._analyze(record, base_url)

    # ── Bootstrap ────────────────────────────────────────────────────

    async def _load_services(self, client: httpx.AsyncClient) -> List[Tuple[List[str], List[str]]]:
        if self._services is not None:
            return self._services

        try:
            resp = await client.get(self.bootstrap_url)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.RequestError, httpx.HTTPStatusError, ValueError) as e:
            raise RdapLookupError(f"RDAP bootstrap unavailable ({type(e).__name__})")

        services = []
        for entry in payload.get("services", []) if isinstance(payload, dict) else []:
            if isinstance(entry, list) and len(entry) >= 2:
                tlds = [str(t).lower() for t in entry[0] or []]
                urls = [str(u) for u in entry[1] or []]
                if tlds and urls:
                    services.append((tlds, urls))
        self._services = services
        return services

    async def _server_for(self, client: httpx.AsyncClient, domain: str) -> str:
        services = await self._load_services(client)
        best: Optional[Tuple[str, List[str]]] = None
        for tlds, urls in services:
            for tld in tlds:
                if domain == tld or domain.endswith("." + tld):
                    if best is None or len(tld) > len(best[0]):
                        best = (tld, urls)
        if best is None:
            raise RdapLookupError(f"no RDAP server is published for .{domain.rsplit('.', 1)[-1]}")

        urls = best[1]
        https = [u for u in urls if u.startswith("https://")]
        return (https or urls)[0]

    async def _lookup(self, client: httpx.AsyncClient, base_url: str, domain: str) -> Dict[str, Any]:
        url = f"{base_url.rstrip('/')}/domain/{domain}"
        try:
            resp = await client.get(url)
        except httpx.RequestError as e:
            raise RdapLookupError(f"RDAP server unreachable ({type(e).__name__})")

        if resp.status_code == 404:
            raise RdapLookupError("domain not found in registry")
        if resp.status_code != 200:
            raise RdapLookupError(f"RDAP server returned HTTP {resp.status_code}")
        try:
            record = resp.json()
        except ValueError:
            raise RdapLookupError("RDAP server returned an unreadable response")
        if not isinstance(record, dict):
            raise RdapLookupError("RDAP server returned an unexpected response")
        return record

    # ── Analysis ─────────────────────────────────────────────────────

    def _analyze(self, record: Dict[str, Any], server: str) -> ScannerResult:
        now = self._clock()
        issues: List[str] = []

        events: Dict[str, str] = {}
        for evt in record.get("events") or []:
            if isinstance(evt, dict) and evt.get("eventAction") and evt.get("eventDate"):
                events[str(evt["eventAction"]).lower()] = str(evt["eventDate"])

        expires = _parse_date(events.get("expiration"))
        days_left = math.floor((expires - now).total_seconds() / 86400) if expires else None
        if days_left is not None:
            if days_left < 0:
                issues.append(f"Domain registration expired {abs(days_left)} days ago")
            elif days_left <= EXPIRY_WARNING_DAYS:
                issues.append(f"Domain expires in {days_left} days - renew soon")

        secure_dns = record.get("secureDNS")
        signed = secure_dns.get("delegationSigned") if isinstance(secure_dns, dict) else None
        if signed is False:
            issues.append("DNSSEC is not enabled (delegation not signed) - DNS answers can be spoofed")

        nameservers = []
        for ns in record.get("nameservers") or []:
            if isinstance(ns, dict) and ns.get("ldhName"):
                nameservers.append(str(ns["ldhName"]).lower().rstrip("."))
        if not nameservers:
            issues.append("No nameservers found - the domain cannot resolve")
        elif len(nameservers) == 1:
            issues.append("Only one nameserver configured - add redundancy with at least two nameservers")

        statuses = [str(s) for s in record.get("status") or [] if s]
        problems = [s for s in statuses if normalize_status(s) in PROBLEM_STATUSES]
        if problems:
            issues.append(
                f"Domain has problematic status: {', '.join(problems)} - it may be suspended or about to be released"
            )

        registrar = _registrar_name(record.get("entities"))
        name = str(record.get("ldhName") or "").lower() or None

        parts = []
        if registrar:
            parts.append(f"Registered with {registrar}")
        if expires:
            parts.append(f"expires {expires.date().isoformat()}")
        parts.append(f"{len(nameservers)} nameserver(s)")
        summary = ", ".join(parts)

        return ScannerResult(
            data={
                "lookupFailed": False,
                "rdapServer": server,
                "ldhName": name,
                "registrar": registrar,
                "statuses": statuses,
                "problemStatuses": problems,
                "nameservers": nameservers,
                "nameserverCount": len(nameservers),
                "dnssecSigned": signed,
                "registrationDate": events.get("registration"),
                "expirationDate": events.get("expiration"),
                "lastChanged": events.get("last changed"),
                "daysUntilExpiry": days_left,
                "expired": days_left is not None and days_left < 0,
            },
            summary=summary,
            issues=issues,
        )
