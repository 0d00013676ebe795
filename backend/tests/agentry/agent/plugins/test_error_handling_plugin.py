"""
Tests for retry and circuit-breaker handling of provider calls
"""

import pytest

from agentry.agent.core.llm.base import ProviderError, ProviderNotConfigured
from agentry.agent.core.runtime.engine import ConversationEngine
from agentry.agent.errors import CircuitBreakerOpenError
from agentry.agent.plugins.error_handling import (
    CircuitState,
    ErrorHandlingPlugin,
    ErrorHandlingStrategy,
    is_retryable,
)
from agentry.agent.plugins.pipeline import PluginPipeline


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def flaky(failures, error=None):
    state = {"calls": 0}

    async def call():
        state["calls"] += 1
        if state["calls"] <= failures:
            raise error or ProviderError("temporary", provider="p")
        return "ok"
    return call, state


class TestRetry:
    """Test retry strategies"""

    @pytest.mark.asyncio
    async def test_simple_retry_recovers(self):
        sleep = FakeSleep()
        plugin = ErrorHandlingPlugin(max_retries=3, retry_delay=0.5, sleep=sleep)
        call, state = flaky(2)
        assert await plugin.execute_with_retry(call) == "ok"
        assert state["calls"] == 3
        assert sleep.delays == [0.5, 0.5]
        assert plugin.get_stats()["recovered_calls"] == 1

    @pytest.mark.asyncio
    async def test_exponential_backoff_delays(self):
        sleep = FakeSleep()
        plugin = ErrorHandlingPlugin(ErrorHandlingStrategy.EXPONENTIAL_BACKOFF, max_retries=3,
                                     retry_delay=1.0, sleep=sleep)
        call, _ = flaky(3)
        await plugin.execute_with_retry(call)
        assert sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_reraise_original(self):
        plugin = ErrorHandlingPlugin(max_retries=2, sleep=FakeSleep())
        original = ProviderError("still down", provider="p")
        call, state = flaky(10, original)
        with pytest.raises(ProviderError) as exc_info:
            await plugin.execute_with_retry(call)
        assert exc_info.value is original
        assert state["calls"] == 3

    @pytest.mark.asyncio
    async def test_non_recoverable_not_retried(self):
        plugin = ErrorHandlingPlugin(max_retries=3, sleep=FakeSleep())
        call, state = flaky(1, ProviderNotConfigured("no key", provider="p"))
        with pytest.raises(ProviderNotConfigured):
            await plugin.execute_with_retry(call)
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_silent_strategy_does_not_retry(self):
        plugin = ErrorHandlingPlugin(ErrorHandlingStrategy.SILENT, sleep=FakeSleep())
        call, state = flaky(1)
        with pytest.raises(ProviderError):
            await plugin.execute_with_retry(call)
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_custom_handler_failure_is_contained(self):
        seen = []

        def handler(error, details):
            seen.append(details["attempt"])
            raise RuntimeError("handler bug")

        plugin = ErrorHandlingPlugin(max_retries=1, custom_error_handler=handler, sleep=FakeSleep())
        call, _ = flaky(1)
        assert await plugin.execute_with_retry(call) == "ok"
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_engine_retries_through_plugin(self, provider_factory, scripted):
        provider = provider_factory(ProviderError("blip", provider="scripted"), scripted.reply("recovered"))
        plugin = ErrorHandlingPlugin(max_retries=2, sleep=FakeSleep())
        engine = ConversationEngine(provider, "m", plugins=PluginPipeline([plugin]))
        assert await engine.run("hi") == "recovered"
        assert len(provider.requests) == 2


class TestCircuitBreaker:
    """Test circuit-breaker state transitions"""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        plugin = ErrorHandlingPlugin(ErrorHandlingStrategy.CIRCUIT_BREAKER, max_retries=0,
                                     failure_threshold=2, sleep=FakeSleep())
        call, state = flaky(100)
        for _ in range(2):
            with pytest.raises(ProviderError):
                await plugin.execute_with_retry(call)
        assert plugin.circuit_state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            await plugin.execute_with_retry(call)
        assert state["calls"] == 2

    @pytest.mark.asyncio
    async def test_half_open_after_timeout(self, monkeypatch):
        clock = [100.0]
        monkeypatch.setattr("agentry.agent.plugins.error_handling.time.monotonic", lambda: clock[0])
        plugin = ErrorHandlingPlugin(ErrorHandlingStrategy.CIRCUIT_BREAKER, max_retries=0,
                                     failure_threshold=1, circuit_breaker_timeout=30, sleep=FakeSleep())
        failing, _ = flaky(100)
        with pytest.raises(ProviderError):
            await plugin.execute_with_retry(failing)
        assert plugin.circuit_state == CircuitState.OPEN

        clock[0] += 31
        healthy, _ = flaky(0)
        assert await plugin.execute_with_retry(healthy) == "ok"
        assert plugin.circuit_state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, monkeypatch):
        clock = [100.0]
        monkeypatch.setattr("agentry.agent.plugins.error_handling.time.monotonic", lambda: clock[0])
        plugin = ErrorHandlingPlugin(ErrorHandlingStrategy.CIRCUIT_BREAKER, max_retries=0,
                                     failure_threshold=5, circuit_breaker_timeout=10, sleep=FakeSleep())
        plugin.circuit_state = CircuitState.OPEN
        plugin.circuit_opened_at = clock[0]
        clock[0] += 11
        failing, _ = flaky(100)
        with pytest.raises(ProviderError):
            await plugin.execute_with_retry(failing)
        assert plugin.circuit_state == CircuitState.OPEN

    def test_reset(self):
        plugin = ErrorHandlingPlugin(ErrorHandlingStrategy.CIRCUIT_BREAKER)
        plugin.circuit_state = CircuitState.OPEN
        plugin.failure_count = 9
        plugin.reset_circuit_breaker()
        assert plugin.get_stats()["circuit_state"] == "closed"
        assert plugin.get_stats()["failure_count"] == 0


def test_is_retryable():
    assert is_retryable(ProviderError("x"))
    assert not is_retryable(ProviderNotConfigured("x"))
    assert not is_retryable(CircuitBreakerOpenError("open"))
    assert is_retryable(ConnectionError())
