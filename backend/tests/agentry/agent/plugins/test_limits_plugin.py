"""
Tests for the rate-limiting plugin strategies
"""

import pytest

from agentry.agent.core.runtime.engine import ConversationEngine
from agentry.agent.errors import BudgetExceededError, PluginError
from agentry.agent.plugins.base import PluginContext, Stage
from agentry.agent.plugins.limits_plugin import LimitsPlugin, LimitsStrategy
from agentry.agent.plugins.pipeline import PluginPipeline


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_engine(provider, plugin):
    return ConversationEngine(provider, "m", plugins=PluginPipeline([plugin]), agent_id="agent-1")


def call_context(estimate, agent_id="a1"):
    return PluginContext(stage=Stage.PROVIDER_CALL, execution_id="e1", agent_id=agent_id, model="m",
                         metadata={"estimated_tokens": estimate})


class TestLimitsPluginOptions:
    """Option validation happens at construction"""

    @pytest.mark.parametrize("strategy,options", [
        ("leaky-bucket", {}),
        (None, {}),
        ("fixed-window", {"max_tokens": -1}),
        ("fixed-window", {"max_cost": -0.5}),
        ("token-bucket", {"bucket_size": 0}),
        ("token-bucket", {"refill_rate": -1}),
        ("sliding-window", {"time_window": 0}),
    ])
    def test_invalid_options(self, strategy, options):
        with pytest.raises(PluginError) as exc_info:
            LimitsPlugin(strategy, **options)
        assert exc_info.value.plugin_name == "limits"

    def test_none_strategy_accepts_any_window(self):
        plugin = LimitsPlugin("none", time_window=0)
        assert plugin.strategy is LimitsStrategy.NONE

    def test_default_cost_uses_model_table(self):
        plugin = LimitsPlugin("fixed-window", token_cost_per_1000=0.5)
        assert plugin.default_cost(1000, "gpt-4") == pytest.approx(0.03)
        assert plugin.default_cost(2000, "local-model") == pytest.approx(1.0)


class TestFixedWindow:
    """Fixed-window limits block the engine before the provider is called"""

    @pytest.mark.asyncio
    async def test_request_limit_blocks_until_window_resets(self, provider_factory, scripted):
        clock = FakeClock()
        plugin = LimitsPlugin("fixed-window", max_requests=1, time_window=60, clock=clock)
        provider = provider_factory(scripted.reply("one"), scripted.reply("two"))
        engine = make_engine(provider, plugin)

        assert await engine.run("first") == "one"
        history_length = len(engine.get_history())
        with pytest.raises(BudgetExceededError) as exc_info:
            await engine.run("second")
        assert exc_info.value.limit_type == "requests"
        assert len(engine.get_history()) == history_length
        assert len(provider.requests) == 1
        assert plugin.denials == 1

        clock.advance(61)
        assert await engine.run("third") == "two"

    @pytest.mark.asyncio
    async def test_token_limit_counts_actual_usage(self, provider_factory, scripted):
        plugin = LimitsPlugin("fixed-window", max_tokens=20, max_requests=0, clock=FakeClock())
        engine = make_engine(provider_factory(scripted.reply("one")), plugin)

        await engine.run("first")
        assert plugin.get_limits_status("agent-1")["window"]["tokens"] == 15
        with pytest.raises(BudgetExceededError) as exc_info:
            await engine.run("second")
        assert exc_info.value.limit_type == "tokens"

    @pytest.mark.asyncio
    async def test_cost_limit(self, provider_factory, scripted):
        plugin = LimitsPlugin("fixed-window", max_tokens=0, max_requests=0, max_cost=0.01,
                              cost_calculator=lambda tokens, model: tokens * 0.001, clock=FakeClock())
        engine = make_engine(provider_factory(scripted.reply("one")), plugin)

        await engine.run("first")
        with pytest.raises(BudgetExceededError) as exc_info:
            await engine.run("second")
        assert exc_info.value.limit_type == "cost"

    @pytest.mark.asyncio
    async def test_disabled_plugin_does_not_block(self, provider_factory, scripted):
        plugin = LimitsPlugin("fixed-window", max_requests=1, clock=FakeClock())
        engine = make_engine(provider_factory(scripted.reply("one"), scripted.reply("two")), plugin)
        await engine.run("first")
        plugin.disable()
        assert await engine.run("second") == "two"


class TestSlidingWindow:
    """Sliding windows forget requests individually"""

    def test_trailing_window(self):
        clock = FakeClock(0.0)
        sliding = LimitsPlugin("sliding-window", max_requests=2, time_window=60, clock=clock)
        fixed = LimitsPlugin("fixed-window", max_requests=2, time_window=60, clock=clock)

        for at in (0.0, 59.0, 61.0):
            clock.now = at
            sliding.check_limits(call_context(1))
            fixed.check_limits(call_context(1))

        clock.now = 62.0
        fixed.check_limits(call_context(1))
        with pytest.raises(BudgetExceededError):
            sliding.check_limits(call_context(1))
        assert sliding.get_limits_status("a1")["window"]["requests"] == 2


class TestTokenBucket:
    """Token buckets drain per call and refill over time"""

    def test_bucket_drains_and_refills(self):
        clock = FakeClock()
        plugin = LimitsPlugin("token-bucket", bucket_size=100, refill_rate=10, max_requests=0, max_cost=0,
                              clock=clock)
        plugin.check_limits(call_context(60))
        with pytest.raises(BudgetExceededError) as exc_info:
            plugin.check_limits(call_context(60))
        assert exc_info.value.limit_type == "tokens"

        clock.advance(2)
        plugin.check_limits(call_context(60))
        assert plugin.get_limits_status("a1")["bucket"]["available_tokens"] == 0

    def test_request_cap_per_window(self):
        clock = FakeClock()
        plugin = LimitsPlugin("token-bucket", max_requests=1, time_window=10, clock=clock)
        plugin.check_limits(call_context(1))
        with pytest.raises(BudgetExceededError):
            plugin.check_limits(call_context(1))
        clock.advance(10)
        plugin.check_limits(call_context(1))


class TestNoneStrategy:
    """The none strategy never refuses and keeps no state"""

    @pytest.mark.asyncio
    async def test_never_refuses(self, provider_factory):
        plugin = LimitsPlugin("none", max_requests=1)
        engine = make_engine(provider_factory(), plugin)
        for prompt in ("one", "two", "three"):
            assert await engine.run(prompt) == "done"
        status = plugin.get_limits_status()
        assert status["window_keys"] == [] and status["bucket_keys"] == []


def test_status_and_reset():
    plugin = LimitsPlugin("fixed-window", max_requests=1, clock=FakeClock())
    plugin.check_limits(call_context(1, agent_id="a1"))
    plugin.check_limits(call_context(1, agent_id="a2"))
    assert plugin.get_limits_status()["window_keys"] == ["a1", "a2"]

    plugin.reset("a1")
    plugin.check_limits(call_context(1, agent_id="a1"))
    with pytest.raises(BudgetExceededError):
        plugin.check_limits(call_context(1, agent_id="a2"))

    plugin.reset()
    status = plugin.get_limits_status()
    assert status["window_keys"] == [] and status["denials"] == 0
