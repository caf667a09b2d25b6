"""Tests for the result cache and rate limiter."""

from domainscan.scanner.cache import ScannerCache


class TestResultCache:
    """Test cases for the TTL cache."""

    def test_value_survives_until_ttl(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.set("example.com", {"grade": "A"})

        fake_clock.advance(29 * 60)
        assert cache.get("example.com") == {"grade": "A"}

    def test_value_expires_after_ttl(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.set("example.com", {"grade": "A"})

        fake_clock.advance(31 * 60)
        assert cache.get("example.com") is None
        assert cache.get_stats()["size"] == 0

    def test_keys_are_normalized(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.set("  Example.COM ", 1)
        assert cache.get("example.com") == 1

    def test_missing_key(self, fake_clock):
        assert ScannerCache(clock=fake_clock).get("nothing.test") is None

    def test_cleanup_removes_only_expired(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.set("old.test", 1)
        fake_clock.advance(20 * 60)
        cache.set("new.test", 2)
        fake_clock.advance(15 * 60)

        assert cache.cleanup() == 1
        assert cache.get("new.test") == 2
        assert [e["domain"] for e in cache.get_stats()["entries"]] == ["new.test"]

    def test_stats_report_age_in_minutes(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.set("example.com", 1)
        fake_clock.advance(5 * 60 + 30)

        stats = cache.get_stats()
        assert stats == {"size": 1, "entries": [{"domain": "example.com", "age": 5}]}

    def test_clear_resets_cache_and_limits(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.set("example.com", 1)
        for _ in range(5):
            cache.check_rate_limit("x")

        cache.clear()
        assert cache.get("example.com") is None
        assert cache.check_rate_limit("x").allowed is True


class TestRateLimiter:
    """Test cases for the fixed-window rate limiter."""

    def test_five_allowed_sixth_denied(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        for _ in range(5):
            assert cache.check_rate_limit("x").allowed is True

        denied = cache.check_rate_limit("x")
        assert denied.allowed is False
        assert denied.retry_after > 0

    def test_retry_after_counts_down(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        for _ in range(5):
            cache.check_rate_limit("x")

        fake_clock.advance(45)
        assert cache.check_rate_limit("x").retry_after == 15

    def test_window_resets(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        for _ in range(6):
            cache.check_rate_limit("x")

        fake_clock.advance(60)
        assert cache.check_rate_limit("x").allowed is True

    def test_identifiers_are_independent(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        for _ in range(5):
            cache.check_rate_limit("a")

        assert cache.check_rate_limit("a").allowed is False
        assert cache.check_rate_limit("b").allowed is True

    def test_default_identifier_is_global(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        for _ in range(5):
            cache.check_rate_limit()
        assert cache.check_rate_limit("global").allowed is False

    def test_decision_serialization(self, fake_clock):
        cache = ScannerCache(clock=fake_clock, max_requests=1)
        assert cache.check_rate_limit().to_dict() == {"allowed": True}
        assert cache.check_rate_limit().to_dict() == {"allowed": False, "retryAfter": 60}


class TestAutomaticSweep:
    """Test cases for the periodic sweep driven by normal traffic."""

    def test_rate_limit_check_drops_stale_windows(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        for i in range(50):
            cache.check_rate_limit(f"client-{i}")
        assert cache.limit_count() == 50

        fake_clock.advance(5 * 60)
        cache.check_rate_limit("client-new")
        assert cache.limit_count() == 1

    def test_write_drops_expired_entries(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.set("dns:old.test", 1)

        fake_clock.advance(31 * 60)
        cache.set("dns:new.test", 2)
        assert [e["domain"] for e in cache.get_stats()["entries"]] == ["dns:new.test"]

    def test_no_sweep_before_interval(self, fake_clock):
        cache = ScannerCache(clock=fake_clock)
        cache.check_rate_limit("a")

        fake_clock.advance(2 * 60)
        cache.check_rate_limit("b")
        assert cache.limit_count() == 2
