# domainscan/scanner/validation.py
"""
Domain input validation for the API and CLI.

Accepts a bare domain or a URL ("https://Example.com/path"), returns the
normalized host name or a user-facing error. Loopback, private and
link-local addresses are refused so the scanners never get pointed at
internal infrastructure.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import idna

LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$", re.IGNORECASE)
SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)

MAX_DOMAIN_LENGTH = 253
MAX_LABEL_LENGTH = 63

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}

# Networks a scan target may never point at
BLOCKED_NETWORKS = [
    ipaddress.ip_network("0.0.0.0/8"),          # "This" network
    ipaddress.ip_network("10.0.0.0/8"),         # Private (RFC 1918)
    ipaddress.ip_network("127.0.0.0/8"),        # Loopback
    ipaddress.ip_network("169.254.0.0/16"),     # Link-local / cloud metadata
    ipaddress.ip_network("172.16.0.0/12"),      # Private (RFC 1918)
    ipaddress.ip_network("192.168.0.0/16"),     # Private (RFC 1918)
    ipaddress.ip_network("fc00::/7"),           # Unique local
    ipaddress.ip_network("fe80::/10"),          # Link-local
]


@dataclass(frozen=True)
class DomainValidation:
    is_valid: bool
    normalized_domain: Optional[str] = None
    error: Optional[str] = None


def _invalid(error: str) -> DomainValidation:
    return DomainValidation(is_valid=False, error=error)


def _is_blocked_ip(host: str) -> bool:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(addr in network for network in BLOCKED_NETWORKS if addr.version == network.version)


def validate_domain(raw: Optional[str]) -> DomainValidation:
    if not raw or not isinstance(raw, str):
        return _invalid("Domain is required")

    trimmed = raw.strip()
    if not trimmed:
        return _invalid("Domain cannot be empty")

    if any(c in trimmed for c in '<>"'):
        return _invalid("Invalid characters in domain")

    url = trimmed if SCHEME_RE.match(trimmed) else f"https://{trimmed}"
    try:
        hostname = urlsplit(url).hostname or ""
    except ValueError:
        return _invalid("Invalid domain format")

    hostname = hostname.lower()
    if hostname.endswith("."):
        hostname = hostname[:-1]

    if not hostname:
        return _invalid("Invalid domain format")

    # Internationalized names are checked and returned in A-label (punycode) form
    if not hostname.isascii():
        try:
            hostname = idna.encode(hostname, uts46=True).decode("ascii")
        except idna.IDNAError:
            return _invalid("Domain contains invalid characters or format")

    if len(hostname) > MAX_DOMAIN_LENGTH:
        return _invalid("Domain name too long (max 253 characters)")

    if hostname in LOOPBACK_HOSTS:
        return _invalid("Localhost and loopback addresses are not allowed")

    if _is_blocked_ip(hostname):
        return _invalid("Private IP addresses are not allowed")

    for label in hostname.split("."):
        if not label:
            return _invalid("Domain has empty label")
        if len(label) > MAX_LABEL_LENGTH:
            return _invalid("Domain label too long (max 63 characters per label)")
        if not LABEL_RE.match(label):
            return _invalid("Domain contains invalid characters or format")

    return DomainValidation(is_valid=True, normalized_domain=hostname)
