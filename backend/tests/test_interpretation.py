"""Tests for severity interpretation of scanner results."""

from domainscan.scanner.base import ExecutedScannerResult, ScannerStatus
from domainscan.scanner.interpretation import (
    RETRY_RECOMMENDATION,
    interpret_all,
    interpret_scanner_result,
)


def done(scanner_id, data=None, issues=None):
    return ExecutedScannerResult(
        id=scanner_id,
        label=scanner_id,
        status=ScannerStatus.SUCCESS,
        data=data or {},
        issues=list(issues or []),
    )


def severity(scanner_id, data=None, issues=None):
    return interpret_scanner_result(done(scanner_id, data, issues)).severity


class TestErrorsAndFallback:
    """Test cases shared by every scanner."""

    def test_error_status(self):
        result = ExecutedScannerResult(id="dns", label="DNS", status=ScannerStatus.ERROR, error="DNS timed out after 30000ms")
        interp = interpret_scanner_result(result)

        assert interp.severity == "error"
        assert interp.message == "DNS timed out after 30000ms"
        assert interp.recommendation == RETRY_RECOMMENDATION

    def test_unknown_scanner_uses_issue_count(self):
        assert severity("custom") == "success"
        interp = interpret_scanner_result(done("custom", issues=["x", "y"]))
        assert interp.severity == "warning"
        assert interp.message == "2 issue(s) found"

    def test_interpret_all_skips_unfinished(self):
        results = [
            done("dns"),
            ExecutedScannerResult(id="tls", label="TLS", status=ScannerStatus.RUNNING),
            ExecutedScannerResult(id="rdap", label="RDAP", status=ScannerStatus.IDLE),
        ]
        assert list(interpret_all(results)) == ["dns"]

    def test_to_dict(self):
        payload = interpret_scanner_result(done("dns")).to_dict()
        assert set(payload) == {"severity", "message", "recommendation"}


class TestDnsInterpretation:

    def test_levels(self):
        assert severity("dns") == "success"
        assert severity("dns", issues=["a", "b"]) == "warning"
        assert severity("dns", issues=["a", "b", "c"]) == "critical"


class TestEmailInterpretation:
    """Test cases for email authentication severity."""

    def test_complete_and_enforced(self):
        data = {"hasSpf": True, "hasDmarc": True, "hasDkim": True, "dmarcEnforced": True}
        assert severity("emailAuth", data) == "success"

    def test_partial(self):
        data = {"hasSpf": True, "hasDmarc": True, "hasDkim": False, "dmarcEnforced": False}
        interp = interpret_scanner_result(done("emailAuth", data, ["No DKIM selectors detected (heuristic)"]))
        assert interp.severity == "warning"
        assert "DKIM" in interp.recommendation

    def test_nothing_configured(self):
        data = {"hasSpf": False, "hasDmarc": False, "hasDkim": False}
        assert severity("emailAuth", data) == "critical"

    def test_plus_all_is_critical_even_when_complete(self):
        data = {"hasSpf": True, "hasDmarc": True, "hasDkim": True, "dmarcEnforced": True, "spfAllowsAll": True}
        interp = interpret_scanner_result(done("emailAuth", data))
        assert interp.severity == "critical"
        assert "+all" in interp.recommendation

    def test_aggregate_message_used(self):
        data = {"hasSpf": False, "aggregateMessage": "✗ No email authentication configured"}
        interp = interpret_scanner_result(done("emailAuth", data))
        assert interp.message == "✗ No email authentication configured"

    def test_failed_dkim_lookup_is_not_counted_missing(self):
        data = {
            "hasSpf": True, "hasDmarc": True, "hasDkim": False,
            "dkimLookupFailed": True, "dmarcEnforced": True,
        }
        interp = interpret_scanner_result(done("emailAuth", data))
        assert interp.severity == "success"
        assert "DKIM" not in interp.recommendation


class TestCertificateInterpretation:

    def test_levels(self):
        assert severity("certificates", {"certCount": 0}) == "info"
        assert severity("certificates", {"certCount": 2, "activeCertCount": 2, "expiringIn7Days": 1, "expiringIn30Days": 1}) == "critical"
        assert severity("certificates", {"certCount": 2, "activeCertCount": 2, "expiringIn30Days": 1}) == "warning"
        assert severity("certificates", {"certCount": 2, "activeCertCount": 2}, ["wildcard"]) == "warning"
        assert severity("certificates", {"certCount": 2, "activeCertCount": 2}) == "success"


class TestRdapInterpretation:

    def test_lookup_failed_is_info(self):
        assert severity("rdap", {"lookupFailed": True}, ["RDAP lookup failed: timeout"]) == "info"

    def test_critical_cases(self):
        assert severity("rdap", {"expired": True, "nameserverCount": 2}) == "critical"
        assert severity("rdap", {"nameserverCount": 0}) == "critical"
        assert severity("rdap", {"nameserverCount": 2, "problemStatuses": ["client hold"]}) == "critical"

    def test_warning_and_success(self):
        assert severity("rdap", {"nameserverCount": 1}, ["Only one nameserver configured"]) == "warning"
        assert severity("rdap", {"nameserverCount": 2}) == "success"


class TestTlsInterpretation:

    def test_levels(self):
        ep = [{"grade": "A"}]
        assert severity("tls", {"endpoints": []}) == "info"
        assert severity("tls", {"endpoints": ep, "hasVulnerabilities": True, "vulnerabilities": ["FREAK"]}) == "critical"
        assert severity("tls", {"endpoints": ep, "worstGrade": "T"}) == "critical"
        assert severity("tls", {"endpoints": ep, "worstGrade": "B"}, ["HSTS not enabled"]) == "warning"
        assert severity("tls", {"endpoints": ep, "worstGrade": "A+"}) == "success"


class TestHeadersInterpretation:

    def test_unavailable(self):
        interp = interpret_scanner_result(done("securityHeaders", {"status": "unavailable", "testUrl": "https://x"}))
        assert interp.severity == "info"
        assert interp.message == "Headers check unavailable"
        assert "https://x" in interp.recommendation

    def test_grade_mapping(self):
        assert severity("securityHeaders", {"status": "ok", "grade": "A+"}) == "success"
        assert severity("securityHeaders", {"status": "ok", "grade": "B"}) == "info"
        assert severity("securityHeaders", {"status": "ok", "grade": "D"}, ["Missing security header: CSP"]) == "warning"
        assert severity("securityHeaders", {"status": "ok", "grade": "F"}) == "critical"
        assert severity("securityHeaders", {"status": "ok", "grade": "R"}) == "info"
