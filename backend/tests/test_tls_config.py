"""Tests for the TLS configuration scanner."""

import httpx
import pytest

from domainscan.scanner.base import ScannerError
from domainscan.scanner.modules.tls_config import TlsConfigScanner, worst_grade

from conftest import offline


def endpoint(grade="A+", protocols=(("TLS", "1.2"), ("TLS", "1.3")), fs=4, hsts=("present", 31536000), **vulns):
    details = {
        "protocols": [{"name": n, "version": v} for n, v in protocols],
        "forwardSecrecy": fs,
        "hstsPolicy": {"status": hsts[0], "maxAge": hsts[1]} if hsts else {"status": "absent"},
        "heartbleed": False,
        "poodle": False,
        "poodleTls": 1,
        "vulnBeast": False,
        "openSslCcs": 1,
    }
    details.update(vulns)
    return {"ipAddress": "93.184.215.14", "grade": grade, "details": details}


class SslLabsStub:
    """Returns IN_PROGRESS a few times, then the final report."""

    def __init__(self, final, pending=2):
        self.final = final
        self.pending = pending
        self.calls = []

    def __call__(self, request):
        self.calls.append(dict(request.url.params))
        if len(self.calls) <= self.pending:
            return httpx.Response(200, json={"host": "example.com", "status": "IN_PROGRESS"})
        return httpx.Response(200, json=self.final)


def make_scanner(router, final, pending=2, max_polls=5):
    stub = SslLabsStub(final, pending)
    router.add("api.ssllabs.com", stub)
    scanner = TlsConfigScanner(transport=router.transport(), poll_interval=0, max_polls=max_polls)
    return scanner, stub


class TestTlsConfigScanner:
    """Test cases for SSL Labs polling and grading heuristics."""

    @pytest.mark.asyncio
    async def test_strong_configuration(self, router):
        scanner, stub = make_scanner(router, {"status": "READY", "endpoints": [endpoint()]})
        result = await scanner.run("example.com")

        assert result.issues == []
        assert result.data["worstGrade"] == "A+"
        assert stub.calls[0]["startNew"] == "on"
        assert all("startNew" not in c for c in stub.calls[1:])
        assert len(stub.calls) == 3

    @pytest.mark.asyncio
    async def test_legacy_protocols_and_no_forward_secrecy(self, router):
        ep = endpoint(grade="B", protocols=(("TLS", "1.0"), ("TLS", "1.1"), ("TLS", "1.2")), fs=0)
        scanner, _ = make_scanner(router, {"status": "READY", "endpoints": [ep]})
        result = await scanner.run("example.com")

        assert "Outdated protocol(s) supported: TLS 1.0, TLS 1.1 - disable them" in result.issues
        assert any(i.startswith("Forward secrecy not supported") for i in result.issues)

    @pytest.mark.asyncio
    async def test_named_vulnerabilities(self, router):
        ep = endpoint(grade="F", heartbleed=True, poodleTls=2, openSslCcs=3)
        scanner, _ = make_scanner(router, {"status": "READY", "endpoints": [ep]})
        result = await scanner.run("example.com")

        assert "Vulnerable to Heartbleed (CVE-2014-0160)" in result.issues
        assert "Vulnerable to POODLE TLS" in result.issues
        assert "Vulnerable to OpenSSL CCS injection (CVE-2014-0224)" in result.issues
        assert result.data["hasVulnerabilities"] is True

    @pytest.mark.asyncio
    async def test_hsts_missing_and_short(self, router):
        endpoints = [
            endpoint(hsts=None),
            dict(endpoint(hsts=("present", 86400)), ipAddress="2606:2800::1"),
        ]
        scanner, _ = make_scanner(router, {"status": "READY", "endpoints": endpoints})
        result = await scanner.run("example.com")

        assert "HSTS not enabled - browsers may still connect over plain HTTP" in result.issues
        assert any("HSTS max-age is short (86400 seconds)" in i for i in result.issues)
        assert len(result.data["endpoints"]) == 2

    @pytest.mark.asyncio
    async def test_issues_deduplicated_across_endpoints(self, router):
        endpoints = [endpoint(hsts=None), endpoint(hsts=None)]
        scanner, _ = make_scanner(router, {"status": "READY", "endpoints": endpoints})
        result = await scanner.run("example.com")
        assert result.issues.count("HSTS not enabled - browsers may still connect over plain HTTP") == 1

    @pytest.mark.asyncio
    async def test_no_endpoints(self, router):
        scanner, _ = make_scanner(router, {"status": "READY", "endpoints": []}, pending=0)
        result = await scanner.run("example.com")

        assert result.summary == "No HTTPS endpoints found"
        assert result.data["endpoints"] == []

    @pytest.mark.asyncio
    async def test_assessment_error_raises(self, router):
        final = {"status": "ERROR", "statusMessage": "Unable to resolve domain name"}
        scanner, _ = make_scanner(router, final, pending=0)
        with pytest.raises(ScannerError, match="Unable to resolve domain name"):
            await scanner.run("example.com")

    @pytest.mark.asyncio
    async def test_poll_cap_raises(self, router):
        scanner, stub = make_scanner(router, {"status": "READY", "endpoints": []}, pending=100, max_polls=3)
        with pytest.raises(ScannerError, match="did not finish"):
            await scanner.run("example.com")
        assert len(stub.calls) == 4

    @pytest.mark.asyncio
    async def test_overloaded_service(self, router):
        router.add("api.ssllabs.com", lambda request: httpx.Response(529))
        scanner = TlsConfigScanner(transport=router.transport(), poll_interval=0)
        with pytest.raises(ScannerError, match="overloaded"):
            await scanner.run("example.com")

    @pytest.mark.asyncio
    async def test_offline_raises(self):
        scanner = TlsConfigScanner(transport=httpx.MockTransport(offline), poll_interval=0)
        with pytest.raises(ScannerError):
            await scanner.run("example.com")

    def test_worst_grade(self):
        assert worst_grade(["A+", "B", "A"]) == "B"
        assert worst_grade(["A", "T"]) == "T"
        assert worst_grade([]) is None
