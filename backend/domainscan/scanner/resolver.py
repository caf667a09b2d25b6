# domainscan/scanner/resolver.py
"""
DNS-over-HTTPS resolver.

Scanners look records up through a JSON DoH endpoint (Google's by default)
instead of a local stub resolver, so results match what public resolvers
see and every lookup goes through the same injectable httpx client.

query() returns:
    None    transport failure or non-2xx response
    []      resolver answered with no records of that type
    [...]   record data, TXT strings joined and decoded

The resolver follows CNAME chains, so an A query for a CNAME'd name
answers with the target's addresses. query_records() keeps the owner name
of every answer for checks that must only see records at the queried name.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import dns.exception
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import httpx

logger = logging.getLogger(__name__)

DOH_RESOLVER_URL = os.getenv("DOH_RESOLVER_URL", "https://dns.google/resolve")


def _rdtype(rtype: str) -> Optional[int]:
    try:
        return int(dns.rdatatype.from_text(rtype))
    except dns.exception.DNSException:
        return None


def decode_txt(value: str) -> str:
    """Turn a presentation-format TXT value ('"v=spf1" " -all"') into its text."""
    value = (value or "").strip()
    if not value.startswith('"'):
        return value
    try:
        rdata = dns.rdata.from_text(dns.rdataclass.IN, dns.rdatatype.TXT, value)
        return b"".join(rdata.strings).decode("utf-8", errors="replace")
    except (dns.exception.DNSException, ValueError):
        return value.strip('"')


def parse_mx(value: str) -> Optional[Tuple[int, str]]:
    """'10 mail.example.com.' → (10, 'mail.example.com'). None if unparseable."""
    try:
        rdata = dns.rdata.from_text(dns.rdataclass.IN, dns.rdatatype.MX, value)
    except (dns.exception.DNSException, ValueError):
        return None
    return rdata.preference, rdata.exchange.to_text(omit_final_dot=True)


def _owner(name: str) -> str:
    return (name or "").strip().rstrip(".").lower()


@dataclass(frozen=True)
class DohRecord:
    name: str       # owner name, no trailing dot
    data: str


class DohResolver:
    def __init__(self, client: httpx.AsyncClient, endpoint: str = DOH_RESOLVER_URL):
        self.client = client
        self.endpoint = endpoint

    async def query(self, name: str, rtype: str) -> Optional[List[str]]:
        records = await self.query_records(name, rtype)
        if records is None:
            return None
        return [r.data for r in records]

    async def query_records(self, name: str, rtype: str) -> Optional[List[DohRecord]]:
        try:
            resp = await self.client.get(
                self.endpoint,
                params={"name": name, "type": rtype},
                headers={"Accept": "application/dns-json"},
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.warning(f"DoH query {rtype} {name} failed: {e}")
            return None
        except ValueError:
            logger.warning(f"DoH query {rtype} {name} returned invalid JSON")
            return None

        if not isinstance(payload, dict):
            return []
        return self._extract(payload.get("Answer"), name, rtype)

    @staticmethod
    def _extract(answers: Any, name: str, rtype: str) -> List[DohRecord]:
        if not isinstance(answers, list):
            return []

        wanted = _rdtype(rtype)
        out: List[DohRecord] = []
        for answer in answers:
            if not isinstance(answer, dict):
                continue
            # CNAME chains come back alongside the requested type
            if wanted is not None and "type" in answer and answer.get("type") != wanted:
                continue
            data = answer.get("data")
            if not isinstance(data, str) or not data:
                continue
            value = decode_txt(data) if rtype.upper() == "TXT" else data.strip().rstrip(".")
            out.append(DohRecord(name=_owner(answer.get("name") or name), data=value))
        return out

    async def query_many(self, name: str, rtypes: List[str]) -> Dict[str, Optional[List[DohRecord]]]:
        return {rtype: await self.query_records(name, rtype) for rtype in rtypes}
