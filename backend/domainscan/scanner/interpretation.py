# domainscan/scanner/interpretation.py
"""
Interpretation layer: turns an ExecutedScannerResult into a severity,
a short message and a recommendation.

Scanners only report facts and free-text issues; all severity judgement
lives here so the UI never re-implements it. Unknown scanner ids fall
back to a generic issues-count rule, so new scanners work without any
change to this module.

Severity levels: success, info, warning, critical, error
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from .base import ExecutedScannerResult, ScannerInterpretation, ScannerStatus

RETRY_RECOMMENDATION = (
    "This check could not be completed. Please try again or check your network connection."
)


def interpret_scanner_result(result: ExecutedScannerResult) -> ScannerInterpretation:
    if result.status == ScannerStatus.ERROR:
        return ScannerInterpretation(
            severity="error",
            message=result.error or "Scanner failed to execute",
            recommendation=RETRY_RECOMMENDATION,
        )

    data: Dict[str, Any] = result.data or {}
    issues: List[str] = list(result.issues or [])

    handler = _INTERPRETERS.get(result.id, _interpret_default)
    return handler(data, issues)


def interpret_all(results: List[ExecutedScannerResult]) -> Dict[str, ScannerInterpretation]:
    return {
        r.id: interpret_scanner_result(r)
        for r in results
        if r.status in (ScannerStatus.SUCCESS, ScannerStatus.ERROR)
    }


# ───────────────────────────────────────────────────────────────
# Per-scanner rules
# ───────────────────────────────────────────────────────────────

def _interpret_dns(data: Dict[str, Any], issues: List[str]) -> ScannerInterpretation:
    if not issues:
        return ScannerInterpretation(
            "success",
            "DNS records retrieved successfully",
            "Your domain's DNS configuration is accessible and responding normally.",
        )
    if len(issues) <= 2:
        return ScannerInterpretation(
            "warning",
            "DNS configuration has warnings",
            "Review the DNS issues detected. These may indicate misconfigurations that could "
            "affect website accessibility or email delivery.",
        )
    return ScannerInterpretation(
        "critical",
        "DNS configuration has critical issues",
        "Multiple DNS problems detected. These issues may prevent your domain from functioning "
        "correctly. Review and fix DNS records immediately.",
    )


def _interpret_email(data: Dict[str, Any], issues: List[str]) -> ScannerInterpretation:
    has_spf = bool(data.get("hasSpf"))
    has_dmarc = bool(data.get("hasDmarc"))
    # a failed DKIM selector lookup is unknown, not missing
    has_dkim = bool(data.get("hasDkim")) or bool(data.get("dkimLookupFailed"))
    enforced = bool(data.get("dmarcEnforced"))
    complete = has_spf and has_dmarc and has_dkim

    message = data.get("aggregateMessage") or (
        "Email authentication configured" if not issues else "Email authentication issues detected"
    )

    if data.get("spfAllowsAll"):
        severity = "critical"
    elif complete and enforced:
        severity = "success"
    elif has_spf or has_dmarc or has_dkim:
        severity = "warning"
    else:
        severity = "critical"

    if complete and enforced and not data.get("spfAllowsAll"):
        recommendation = (
            "Excellent! Your domain has complete email authentication protecting against "
            "spoofing and phishing."
        )
    else:
        parts = []
        missing = [n for n, present in (("SPF", has_spf), ("DMARC", has_dmarc), ("DKIM", has_dkim)) if not present]
        if missing:
            parts.append(f"Configure {', '.join(missing)} to protect your domain from email spoofing.")
        if data.get("spfAllowsAll"):
            parts.append("Replace +all in your SPF record with -all so unauthorized senders are rejected.")
        if has_dmarc and not enforced:
            parts.append("Upgrade your DMARC policy to p=quarantine or p=reject for enforcement.")
        parts.append("Review the issues below for specific configuration improvements.")
        recommendation = " ".join(parts)

    return ScannerInterpretation(severity, message, recommendation)


def _interpret_certificates(data: Dict[str, Any], issues: List[str]) -> ScannerInterpretation:
    cert_count = data.get("certCount") or 0
    active = data.get("activeCertCount") or 0
    in_7 = data.get("expiringIn7Days") or 0
    in_30 = data.get("expiringIn30Days") or 0

    if cert_count == 0:
        return ScannerInterpretation(
            "info",
            "No certificates found",
            "No SSL certificates found in public certificate transparency logs. If you use HTTPS, "
            "this might indicate a very new certificate or one that is not yet logged.",
        )
    if in_7 > 0:
        return ScannerInterpretation(
            "critical",
            f"{in_7} certificate(s) expiring within 7 days!",
            "Renew expiring certificates immediately to avoid service disruption. "
            "Consider automated renewal (e.g. Let's Encrypt with auto-renewal).",
        )
    if in_30 > 0:
        return ScannerInterpretation(
            "warning",
            f"{in_30} certificate(s) expiring within 30 days",
            "Plan to renew certificates soon to avoid last-minute issues. "
            "Set up monitoring alerts for certificate expiration.",
        )
    if issues:
        return ScannerInterpretation(
            "warning",
            f"{active} active certificate(s), {len(issues)} issue(s) detected",
            "Review the certificate issues below. Consider cleaning up expired certificates "
            "and standardizing on a single Certificate Authority.",
        )
    if active > 50:
        recommendation = (
            "Large number of certificates found. Regularly review and remove unnecessary certificates."
        )
    else:
        recommendation = (
            "Certificate transparency logs show valid SSL certificates with no immediate issues."
        )
    return ScannerInterpretation("success", f"{active} valid certificate(s) found", recommendation)


def _interpret_rdap(data: Dict[str, Any], issues: List[str]) -> ScannerInterpretation:
    if data.get("lookupFailed"):
        return ScannerInterpretation(
            "info",
            "Registration data unavailable",
            "RDAP data could not be retrieved for this domain. Check the registration with your "
            "registrar directly.",
        )

    if data.get("expired"):
        return ScannerInterpretation(
            "critical",
            "Domain registration has expired",
            "Renew the domain immediately. An expired domain can stop resolving or be "
            "registered by someone else.",
        )
    if data.get("nameserverCount", 0) == 0:
        return ScannerInterpretation(
            "critical",
            "No nameservers delegated",
            "Configure at least two nameservers at your registrar so the domain can resolve.",
        )
    if data.get("problemStatuses"):
        return ScannerInterpretation(
            "critical",
            f"Domain status: {', '.join(data['problemStatuses'])}",
            "Contact your registrar to resolve the hold or pending status on this domain.",
        )
    if issues:
        return ScannerInterpretation(
            "warning",
            f"Registration has {len(issues)} issue(s)",
            "Review the registration issues below. Enable auto-renew, add redundant nameservers "
            "and enable DNSSEC where your registrar supports it.",
        )
    return ScannerInterpretation(
        "success",
        "Domain registration looks healthy",
        "Registration, nameservers and DNSSEC are configured correctly.",
    )


def _interpret_tls(data: Dict[str, Any], issues: List[str]) -> ScannerInterpretation:
    endpoints = data.get("endpoints") or []
    worst = data.get("worstGrade")

    if not endpoints:
        return ScannerInterpretation(
            "info",
            "No HTTPS endpoints found",
            "The domain does not appear to serve HTTPS. If it hosts a website, enable TLS.",
        )
    if data.get("hasVulnerabilities"):
        return ScannerInterpretation(
            "critical",
            f"Known TLS vulnerabilities: {', '.join(data.get('vulnerabilities') or [])}",
            "Patch the affected servers and disable vulnerable protocols and cipher suites immediately.",
        )
    if worst in ("F", "T", "M"):
        return ScannerInterpretation(
            "critical",
            f"TLS configuration failed (grade {worst})",
            "Fix the certificate and protocol configuration; browsers may refuse or warn on these endpoints.",
        )
    if issues:
        return ScannerInterpretation(
            "warning",
            f"TLS grade {worst or 'unknown'} with {len(issues)} issue(s)",
            "Disable legacy protocols, enable forward secrecy and configure HSTS with a long max-age.",
        )
    return ScannerInterpretation(
        "success",
        f"Strong TLS configuration (grade {worst or 'unknown'})",
        "Your HTTPS endpoints follow current best practice.",
    )


_HEADER_GRADES = {
    "A+": ("success", "Excellent security headers (A+)"),
    "A": ("success", "Great security headers (A)"),
    "B": ("info", "Good security headers (B)"),
    "C": ("warning", "Moderate security headers (C)"),
    "D": ("warning", "Weak security headers (D)"),
    "E": ("critical", "Poor security headers (E)"),
    "F": ("critical", "Failed security headers (F)"),
}


def _interpret_headers(data: Dict[str, Any], issues: List[str]) -> ScannerInterpretation:
    test_url = data.get("testUrl")
    if data.get("status") == "unavailable":
        return ScannerInterpretation(
            "info",
            "Headers check unavailable",
            f"Visit {test_url} for a comprehensive security headers analysis."
            if test_url else "Visit securityheaders.com for a full analysis.",
        )

    grade = data.get("grade") or "Unknown"
    severity, message = _HEADER_GRADES.get(grade, ("info", "Security headers analyzed"))

    parts = []
    if grade in ("A+", "A"):
        parts.append("Your site has excellent security headers protecting against common web vulnerabilities.")
    elif grade in ("B", "C"):
        parts.append("Consider strengthening your security headers.")
    elif grade in ("D", "E", "F"):
        parts.append("Your security headers need immediate attention.")
    if issues:
        parts.append(f"Missing {len(issues)} critical header(s).")
    if test_url:
        parts.append(f"View the detailed report at {test_url}")

    return ScannerInterpretation(
        severity,
        message,
        " ".join(parts) or "Visit securityheaders.com for detailed analysis.",
    )


def _interpret_default(data: Dict[str, Any], issues: List[str]) -> ScannerInterpretation:
    if not issues:
        return ScannerInterpretation("success", "Check completed successfully", "No issues detected.")
    return ScannerInterpretation(
        "warning",
        f"{len(issues)} issue(s) found",
        "Review the issues listed above for more details.",
    )


_INTERPRETERS: Dict[str, Callable[[Dict[str, Any], List[str]], ScannerInterpretation]] = {
    "dns": _interpret_dns,
    "emailAuth": _interpret_email,
    "certificates": _interpret_certificates,
    "rdap": _interpret_rdap,
    "tls": _interpret_tls,
    "securityHeaders": _interpret_headers,
}
