"""
Rate Limiter Tests

Fixed-window counters with an injected clock: no sleeping.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from site_rag_server.guardrails import GuardrailConfig, RateLimiter


def make_limiter(clock, **overrides):
    config = GuardrailConfig(
        rate_limit_window=overrides.pop("rate_limit_window", 60),
        max_requests_per_window=overrides.pop("max_requests_per_window", 3),
        max_requests_per_minute=overrides.pop("max_requests_per_minute", 10),
        max_requests_per_hour=overrides.pop("max_requests_per_hour", 100),
    )
    return RateLimiter(config, clock=clock)


class TestCheckLimit:
    def test_allows_up_to_cap_then_blocks(self, clock):
        limiter = make_limiter(clock)

        results = [limiter.check_limit("1.2.3.4") for _ in range(3)]
        assert all(r.allowed for r in results)
        assert [r.remaining for r in results] == [2, 1, 0]

        blocked = limiter.check_limit("1.2.3.4")
        assert blocked.allowed is False
        assert blocked.remaining == 0
        assert blocked.reset_time == clock.now + 60
        assert blocked.retry_after == 60

    def test_allowed_again_after_window(self, clock):
        limiter = make_limiter(clock)
        for _ in range(3):
            limiter.check_limit("client")
        assert not limiter.check_limit("client").allowed

        clock.advance(61)
        assert limiter.check_limit("client").allowed

    def test_identifiers_are_independent(self, clock):
        limiter = make_limiter(clock)
        for _ in range(3):
            limiter.check_limit("a")

        assert not limiter.check_limit("a").allowed
        assert limiter.check_limit("b").allowed

    def test_blocked_requests_do_not_increment(self, clock):
        limiter = make_limiter(clock, max_requests_per_window=1, max_requests_per_hour=3)
        limiter.check_limit("c")
        for _ in range(10):
            limiter.check_limit("c")

        assert limiter.get_stats("c")["hour_count"] == 1

    def test_hour_cap_reports_hour_reset(self, clock):
        limiter = make_limiter(
            clock,
            rate_limit_window=10,
            max_requests_per_window=100,
            max_requests_per_minute=100,
            max_requests_per_hour=2,
        )
        start = clock.now
        limiter.check_limit("d")
        clock.advance(30)
        limiter.check_limit("d")

        result = limiter.check_limit("d")
        assert result.allowed is False
        assert result.reset_time == start + 3600

    def test_internal_error_fails_open(self, clock):
        limiter = make_limiter(clock)
        with patch.object(limiter, "_check_locked", side_effect=RuntimeError("boom")):
            result = limiter.check_limit("e")
        assert result.allowed is True


class TestMaintenance:
    def test_reset_forgets_identifier(self, clock):
        limiter = make_limiter(clock)
        for _ in range(3):
            limiter.check_limit("f")

        assert limiter.reset("f") is True
        assert limiter.check_limit("f").allowed
        assert limiter.reset("unknown") is False

    def test_cleanup_evicts_idle_entries_only(self, clock):
        limiter = make_limiter(clock)
        limiter.check_limit("idle")
        clock.advance(3601)
        limiter.check_limit("active")

        assert limiter.cleanup() == 1
        assert limiter.get_stats()["tracked_identifiers"] == 1
        assert limiter.get_stats("active")["tracked"] is True
        assert limiter.get_stats("idle")["tracked"] is False


class TestConcurrency:
    def test_check_and_increment_is_atomic(self, clock):
        cap = 25
        limiter = make_limiter(
            clock,
            max_requests_per_window=cap,
            max_requests_per_minute=1000,
            max_requests_per_hour=1000,
        )
        threads = 16
        start = threading.Barrier(threads)

        def burst(_):
            start.wait()
            return sum(limiter.check_limit("shared").allowed for _ in range(10))

        with ThreadPoolExecutor(max_workers=threads) as pool:
            allowed = sum(pool.map(burst, range(threads)))

        assert allowed == cap
        assert limiter.get_stats("shared")["window_count"] == cap
