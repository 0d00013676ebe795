"""
Tests for the token and request limits guard
"""

from datetime import timedelta

import pytest

from agentry.agent.core.limits import DEFAULT_MAX_REQUESTS, DEFAULT_MAX_TOKENS, LimitsGuard
from agentry.agent.core.runtime.models import utc_now
from agentry.agent.errors import BudgetExceededError, ConfigurationError


class TestLimitsGuard:
    """Test LimitsGuard checks, recording and reporting"""

    def test_defaults(self):
        guard = LimitsGuard()
        info = guard.get_info()
        assert info.max_tokens == DEFAULT_MAX_TOKENS
        assert info.max_requests == DEFAULT_MAX_REQUESTS
        assert info.current_tokens_used == 0
        assert info.current_request_count == 0

    def test_negative_limit_rejected(self):
        with pytest.raises(ConfigurationError):
            LimitsGuard(max_tokens=-1)
        with pytest.raises(ConfigurationError):
            LimitsGuard().set_max_requests(-5)

    def test_zero_means_unlimited(self):
        guard = LimitsGuard(max_tokens=0, max_requests=0)
        guard.record(1_000_000)
        guard.precheck(10_000_000)
        info = guard.get_info()
        assert info.is_tokens_unlimited and info.is_requests_unlimited
        assert info.remaining_tokens is None
        assert info.remaining_requests is None

    def test_precheck_denies_when_estimate_exceeds_remaining(self):
        guard = LimitsGuard(max_tokens=100, max_requests=0)
        guard.record(60)
        guard.precheck(40)
        with pytest.raises(BudgetExceededError) as exc_info:
            guard.precheck(41)
        error = exc_info.value
        assert error.limit_type == "tokens"
        assert error.used == 60
        assert error.limit == 100
        assert error.requested == 41
        assert "Request aborted to prevent unnecessary costs" in error.message

    def test_precheck_does_not_change_counters(self):
        guard = LimitsGuard(max_tokens=10)
        with pytest.raises(BudgetExceededError):
            guard.precheck(11)
        assert guard.get_info().current_tokens_used == 0
        assert guard.get_info().current_request_count == 0

    def test_request_limit(self):
        guard = LimitsGuard(max_tokens=0, max_requests=2)
        guard.record(1)
        guard.record(1)
        with pytest.raises(BudgetExceededError) as exc_info:
            guard.precheck(0)
        assert exc_info.value.limit_type == "requests"
        assert not guard.allows()

    def test_record_counts_overshoot(self):
        guard = LimitsGuard(max_tokens=50)
        guard.record(80, provider="p", model="m")
        info = guard.get_info()
        assert info.current_tokens_used == 80
        assert info.remaining_tokens == 0
        with pytest.raises(BudgetExceededError):
            guard.precheck(1)

    def test_dynamic_limit_change_applies_on_next_check(self):
        guard = LimitsGuard(max_tokens=100)
        guard.record(90)
        assert not guard.allows(20)
        guard.set_max_tokens(200)
        assert guard.allows(20)
        guard.set_max_tokens(0)
        assert guard.allows(10_000)

    def test_reset_keeps_limits(self):
        guard = LimitsGuard(max_tokens=100, max_requests=5)
        guard.record(30)
        guard.reset()
        info = guard.get_info()
        assert info.current_tokens_used == 0
        assert info.current_request_count == 0
        assert info.max_tokens == 100
        assert info.max_requests == 5

    def test_analytics(self):
        guard = LimitsGuard(max_tokens=0)
        guard.record(10, provider="openai", model="gpt")
        guard.record(15)
        analytics = guard.get_analytics()
        assert analytics["request_count"] == 2
        assert analytics["total_tokens_used"] == 25
        assert analytics["average_tokens_per_request"] == 12.5
        assert analytics["token_usage_history"][0]["provider"] == "openai"

    def test_analytics_empty(self):
        assert LimitsGuard().get_analytics()["average_tokens_per_request"] == 0

    def test_usage_by_period(self):
        guard = LimitsGuard(max_tokens=0)
        guard.record(10)
        guard.record(5)
        now = utc_now()
        usage = guard.get_usage_by_period(now - timedelta(minutes=1), now + timedelta(minutes=1))
        assert usage["total_tokens"] == 15
        assert usage["request_count"] == 2
        assert guard.get_usage_by_period(now + timedelta(hours=1), now + timedelta(hours=2))["request_count"] == 0

    def test_limit_info_to_dict(self):
        data = LimitsGuard(max_tokens=10, max_requests=1).get_info().to_dict()
        assert data["max_tokens"] == 10
        assert data["remaining_requests"] == 1
