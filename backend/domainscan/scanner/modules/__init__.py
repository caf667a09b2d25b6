# domainscan/scanner/modules/__init__.py
"""
Scanner module registry.
All scanners are listed here. build_default_registry() instantiates them
once at app start; the engine runs them in ascending `order`.

  dns              DNS Records              (DoH)
  emailAuth        Email Authentication     (DoH)
  certificates     SSL/TLS Certificates     (crt.sh)
  rdap             Domain Registration      (IANA RDAP bootstrap)
  tls              TLS Configuration        (SSL Labs)
  securityHeaders  HTTP Security Headers    (securityheaders.com)
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional, Type

import httpx

from ..base import BaseScanner, now_utc
from ..registry import ScannerRegistry
from .dns_records import DnsRecordsScanner
from .email_auth import EmailAuthScanner
from .certificates import CertificatesScanner
from .rdap import RdapScanner
from .tls_config import TlsConfigScanner
from .security_headers import SecurityHeadersScanner

REGISTRY: List[Type[BaseScanner]] = [
    DnsRecordsScanner,
    EmailAuthScanner,
    CertificatesScanner,
    RdapScanner,
    TlsConfigScanner,
    SecurityHeadersScanner,
]


def get_all_scanners(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], datetime] = now_utc,
) -> List[BaseScanner]:
    return [cls(transport=transport, clock=clock) for cls in REGISTRY]


def build_default_registry(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], datetime] = now_utc,
) -> ScannerRegistry:
    return ScannerRegistry(get_all_scanners(transport=transport, clock=clock))
