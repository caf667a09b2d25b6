# domainscan/scanner/modules/email_auth.py
"""
Email Authentication scanner.

Checks SPF (root TXT), DMARC (_dmarc TXT) and DKIM (a few common
selectors) and produces one aggregate message describing how well the
domain is protected against spoofing.

DKIM detection is a heuristic: selectors are not discoverable through DNS,
so only the usual default names are queried.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..base import BaseScanner, DataSource, ScannerError, ScannerResult
from ..resolver import DOH_RESOLVER_URL, DohResolver

logger = logging.getLogger(__name__)

DKIM_SELECTORS = ["default", "selector1", "selector2"]

SPF_LOOKUP_LIMIT = 10
SPF_LOOKUP_WARN = 9

MISSING_SPF = "Missing SPF record"
MISSING_DMARC = "Missing DMARC record"
MISSING_DKIM = "No DKIM selectors detected (heuristic)"

ALL_RE = re.compile(r"^([+\-~?]?)all$")


# ───────────────────────────────────────────────────────────────
# Record parsing
# ───────────────────────────────────────────────────────────────

def find_spf(txt_records: List[str]) -> List[str]:
    return [r.strip() for r in txt_records if r.strip().lower().startswith("v=spf1")]


def find_dmarc(txt_records: List[str]) -> Optional[str]:
    for r in txt_records:
        if "v=dmarc" in r.lower():
            return r.strip()
    return None


def spf_all_qualifier(spf: str) -> Optional[str]:
    """'+', '-', '~', '?' for the record's all mechanism, None if absent."""
    for term in spf.lower().split()[1:]:
        m = ALL_RE.match(term)
        if m:
            return m.group(1) or "+"
    return None


def spf_lookup_count(spf: str) -> int:
    terms = spf.lower().split()[1:]
    includes = sum(1 for t in terms if t.lstrip("+-~?").startswith("include:"))
    redirects = sum(1 for t in terms if t.startswith("redirect="))
    return includes + redirects


def parse_dmarc_tags(record: str) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for part in record.split(";"):
        part = part.strip()
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        tags[key.strip().lower()] = value.strip()
    return tags


def _is_dkim_record(record: str) -> bool:
    r = record.lower()
    return "v=dkim1" in r or "p=" in r


# ───────────────────────────────────────────────────────────────
# Scanner
# ───────────────────────────────────────────────────────────────

class EmailAuthScanner(BaseScanner):
    id = "emailAuth"
    label = "Email Authentication"
    description = "Checks SPF, DMARC and DKIM records that protect the domain against email spoofing"
    order = 20
    data_source = DataSource("Google Public DNS (DNS-over-HTTPS)", "https://dns.google")

    def __init__(self, *args, resolver_url: str = DOH_RESOLVER_URL, selectors: Optional[List[str]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.resolver_url = resolver_url
        self.selectors = list(selectors or DKIM_SELECTORS)

    async def run(self, domain: str) -> ScannerResult:
        async with self._client() as client:
            resolver = DohResolver(client, self.resolver_url)

            root_txt = await resolver.query(domain, "TXT")
            if root_txt is None:
                raise ScannerError(f"TXT lookup failed for {domain}")

            dmarc_txt = await resolver.query(f"_dmarc.{domain}", "TXT")
            if dmarc_txt is None:
                raise ScannerError(f"DMARC lookup failed for _dmarc.{domain}")

            selectors_found: List[str] = []
            selectors_failed: List[str] = []
            for selector in self.selectors:
                records = await resolver.query(f"{selector}._domainkey.{domain}", "TXT")
                if records is None:
                    selectors_failed.append(selector)
                elif any(_is_dkim_record(r) for r in records):
                    selectors_found.append(selector)

        spf_records = find_spf(root_txt)
        spf = spf_records[0] if spf_records else None
        dmarc = find_dmarc(dmarc_txt)

        issues: List[str] = []
        spf_info = self._check_spf(spf_records, issues)
        dmarc_info = self._check_dmarc(dmarc, issues)
        # absence is only reported when every selector lookup got an answer
        dkim_unknown = not selectors_found and bool(selectors_failed)
        if not selectors_found and not dkim_unknown:
            issues.append(MISSING_DKIM)

        has_spf = spf is not None
        has_dmarc = dmarc is not None
        has_dkim = bool(selectors_found)
        enforced = dmarc_info["policy"] in ("quarantine", "reject")
        message = aggregate_message(has_spf, has_dmarc, has_dkim or dkim_unknown, enforced)

        return ScannerResult(
            data={
                "spf": spf,
                "spfRecordCount": len(spf_records),
                "spfAllQualifier": spf_info["qualifier"],
                "spfAllowsAll": spf_info["qualifier"] == "+",
                "spfLookupCount": spf_info["lookups"],
                "dmarc": dmarc,
                "dmarcPolicy": dmarc_info["policy"],
                "dmarcTags": dmarc_info["tags"],
                "dkimSelectorsChecked": list(self.selectors),
                "dkimSelectorsFound": selectors_found,
                "dkimSelectorsFailed": selectors_failed,
                "dkimLookupFailed": dkim_unknown,
                "hasSpf": has_spf,
                "hasDmarc": has_dmarc,
                "hasDkim": has_dkim,
                "dmarcEnforced": enforced,
                "aggregateMessage": message,
            },
            summary=message,
            issues=issues,
        )

    def derive_issues(self, result: ScannerResult, domain: str) -> Optional[List[str]]:
        data = result.data or {}
        issues = []
        if not data.get("hasSpf"):
            issues.append(MISSING_SPF)
        if not data.get("hasDmarc"):
            issues.append(MISSING_DMARC)
        if not data.get("hasDkim") and not data.get("dkimLookupFailed"):
            issues.append(MISSING_DKIM)
        return issues

    # ── SPF ──────────────────────────────────────────────────────────

    @staticmethod
    def _check_spf(spf_records: List[str], issues: List[str]) -> Dict[str, Any]:
        if not spf_records:
            issues.append(MISSING_SPF)
            return {"qualifier": None, "lookups": 0}

        if len(spf_records) > 1:
            issues.append(
                f"Multiple SPF records found ({len(spf_records)}) - only one SPF record is allowed per domain"
            )

        spf = spf_records[0]
        qualifier = spf_all_qualifier(spf)
        if qualifier == "+":
            issues.append("SPF allows all senders (+all) - this provides no protection against spoofing")
        elif qualifier == "~":
            issues.append("SPF uses soft fail (~all) - consider using -all for strict enforcement")
        elif qualifier == "?":
            issues.append("SPF uses neutral policy (?all) - unauthorized senders are not rejected")

        lookups = spf_lookup_count(spf)
        if lookups > SPF_LOOKUP_LIMIT:
            issues.append(
                f"SPF record exceeds the 10 DNS lookup limit ({lookups} lookups) - SPF validation will fail"
            )
        elif lookups >= SPF_LOOKUP_WARN:
            issues.append(
                f"SPF record is near the 10 DNS lookup limit ({lookups} lookups)"
            )

        return {"qualifier": qualifier, "lookups": lookups}

    # ── DMARC ────────────────────────────────────────────────────────

    @staticmethod
    def _check_dmarc(dmarc: Optional[str], issues: List[str]) -> Dict[str, Any]:
        if dmarc is None:
            issues.append(MISSING_DMARC)
            return {"policy": None, "tags": {}}

        tags = parse_dmarc_tags(dmarc)
        policy = tags.get("p", "").lower() or None

        if policy == "none":
            issues.append("DMARC policy is set to none (p=none) - failing emails are still delivered")
        elif policy == "quarantine":
            issues.append("DMARC policy is quarantine (p=quarantine) - consider upgrading to p=reject")
        elif policy != "reject":
            issues.append("DMARC policy is undefined or invalid - set p=quarantine or p=reject")

        if "sp" not in tags:
            issues.append("DMARC missing subdomain policy (sp=) - subdomains may not be protected")

        if "rua" not in tags and "ruf" not in tags:
            issues.append("DMARC has no reporting configured (rua/ruf) - you will not receive failure reports")

        pct = _parse_pct(tags.get("pct"))
        if pct is not None and pct < 100:
            issues.append(f"DMARC applies to only {pct}% of emails - consider increasing to pct=100")

        return {"policy": policy, "tags": tags}


def _parse_pct(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def missing_mechanisms(has_spf: bool, has_dmarc: bool, has_dkim: bool) -> List[str]:
    pairs: List[Tuple[str, bool]] = [("SPF", has_spf), ("DMARC", has_dmarc), ("DKIM", has_dkim)]
    return [name for name, present in pairs if not present]


def aggregate_message(has_spf: bool, has_dmarc: bool, has_dkim: bool, enforced: bool) -> str:
    missing = missing_mechanisms(has_spf, has_dmarc, has_dkim)
    if not missing:
        if enforced:
            return "✓ Email authentication fully configured with enforcement"
        return "⚠ Email authentication configured but DMARC not enforcing"
    if len(missing) < 3:
        return f"⚠ Partial email authentication - missing: {', '.join(missing)}"
    return "✗ No email authentication configured - domain is vulnerable to spoofing"
