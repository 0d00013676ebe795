"""
Limits plugin: rate limiting of provider calls per agent.

Strategies:

    token-bucket    tokens refill at ``refill_rate`` per second up to ``bucket_size``;
                    requests and cost are capped per ``time_window``
    sliding-window  requests, tokens and cost over the trailing ``time_window``
    fixed-window    the same caps, with counters reset every ``time_window``
    none            records nothing and never refuses

The agent's own LimitsGuard enforces the session budget. This plugin adds a
time-based one through the ``check_limits`` capability, which the engine calls
before each provider call and which refuses with BudgetExceededError. A limit
of 0 means unlimited, as for the guard.
"""

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional, Tuple, Union

from ..core.runtime.token_counter import TokenCounter
from ..errors import BudgetExceededError, PluginError
from .base import BasePlugin, PluginContext

logger = logging.getLogger(__name__)

# USD per 1000 tokens; other models use ``token_cost_per_1000``
MODEL_COST_PER_1000: Dict[str, float] = {
    "gpt-4": 0.03,
    "gpt-4-turbo": 0.01,
    "gpt-4o": 0.005,
    "gpt-4o-mini": 0.00015,
    "gpt-3.5-turbo": 0.002,
    "claude-3-opus": 0.015,
    "claude-3-sonnet": 0.003,
    "claude-3-haiku": 0.00025,
}

CostCalculator = Callable[[int, str], float]


class LimitsStrategy(str, Enum):
    TOKEN_BUCKET = "token-bucket"
    SLIDING_WINDOW = "sliding-window"
    FIXED_WINDOW = "fixed-window"
    NONE = "none"


@dataclass
class UsageWindow:
    started: float
    requests: int = 0
    tokens: int = 0
    cost: float = 0.0
    # (timestamp, requests, tokens, cost) entries, sliding window only
    events: Deque[Tuple[float, int, int, float]] = field(default_factory=deque)

    def reset(self, now: float) -> None:
        self.started = now
        self.requests = 0
        self.tokens = 0
        self.cost = 0.0
        self.events.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requests": self.requests,
            "tokens": self.tokens,
            "cost": round(self.cost, 6),
            "window_started": self.started,
        }


@dataclass
class TokenBucket:
    tokens: float
    last_refill: float
    window: UsageWindow


class LimitsPlugin(BasePlugin):
    name = "limits"

    def __init__(
        self,
        strategy: Union[LimitsStrategy, str],
        max_tokens: int = 100_000,
        max_requests: int = 1000,
        time_window: float = 3600.0,
        max_cost: float = 10.0,
        token_cost_per_1000: float = 0.002,
        refill_rate: float = 100.0,
        bucket_size: int = 10_000,
        cost_calculator: Optional[CostCalculator] = None,
        token_counter: Optional[TokenCounter] = None,
        clock: Callable[[], float] = time.monotonic,
        name: Optional[str] = None,
        enabled: bool = True,
    ):
        super().__init__(name=name, enabled=enabled)
        self.strategy = self._validate_strategy(strategy)
        self._validate_options(max_tokens=max_tokens, max_requests=max_requests, time_window=time_window,
                               max_cost=max_cost, token_cost_per_1000=token_cost_per_1000,
                               refill_rate=refill_rate, bucket_size=bucket_size)
        self.max_tokens = max_tokens
        self.max_requests = max_requests
        self.time_window = time_window
        self.max_cost = max_cost
        self.token_cost_per_1000 = token_cost_per_1000
        self.refill_rate = refill_rate
        self.bucket_size = bucket_size
        self.cost_calculator = cost_calculator or self.default_cost
        self.token_counter = token_counter or TokenCounter()
        self.clock = clock
        self.windows: Dict[str, UsageWindow] = {}
        self.buckets: Dict[str, TokenBucket] = {}
        self.denials = 0
        logger.info(f"LimitsPlugin using '{self.strategy.value}' strategy")

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------
    def _validate_strategy(self, strategy: Union[LimitsStrategy, str, None]) -> LimitsStrategy:
        if not strategy:
            raise PluginError(
                "A limits strategy is required; use 'none' to disable rate limiting",
                self.name,
            )
        try:
            return LimitsStrategy(strategy)
        except ValueError:
            valid = ", ".join(s.value for s in LimitsStrategy)
            raise PluginError(f"Invalid limits strategy '{strategy}'; expected one of: {valid}", self.name) from None

    def _validate_options(self, **options: float) -> None:
        for option in ("max_tokens", "max_requests", "max_cost", "token_cost_per_1000"):
            if options[option] < 0:
                raise PluginError(f"{option} must be non-negative, got {options[option]}", self.name)
        if self.strategy is LimitsStrategy.TOKEN_BUCKET:
            if options["bucket_size"] <= 0:
                raise PluginError("bucket_size must be positive for the token-bucket strategy", self.name)
            if options["refill_rate"] < 0:
                raise PluginError("refill_rate must be non-negative for the token-bucket strategy", self.name)
        if self.strategy is not LimitsStrategy.NONE and options["time_window"] <= 0:
            raise PluginError(f"time_window must be positive for the {self.strategy.value} strategy", self.name)

    def default_cost(self, tokens: int, model: str) -> float:
        return tokens / 1000 * MODEL_COST_PER_1000.get(model, self.token_cost_per_1000)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @staticmethod
    def _key(context: PluginContext) -> str:
        return context.agent_id or "default"

    def _window(self, key: str, now: float) -> UsageWindow:
        window = self.windows.get(key)
        if window is None:
            window = self.windows[key] = UsageWindow(started=now)
        if self.strategy is LimitsStrategy.SLIDING_WINDOW:
            horizon = now - self.time_window
            while window.events and window.events[0][0] <= horizon:
                _, requests, tokens, cost = window.events.popleft()
                window.requests -= requests
                window.tokens -= tokens
                window.cost -= cost
        elif now - window.started >= self.time_window:
            window.reset(now)
        return window

    def _bucket(self, key: str, now: float) -> TokenBucket:
        bucket = self.buckets.get(key)
        if bucket is None:
            bucket = self.buckets[key] = TokenBucket(float(self.bucket_size), now, UsageWindow(started=now))
        bucket.tokens = min(float(self.bucket_size), bucket.tokens + (now - bucket.last_refill) * self.refill_rate)
        bucket.last_refill = now
        if now - bucket.window.started >= self.time_window:
            bucket.window.reset(now)
        return bucket

    def _add(self, window: UsageWindow, now: float, requests: int = 0, tokens: int = 0, cost: float = 0.0) -> None:
        window.requests += requests
        window.tokens += tokens
        window.cost += cost
        if self.strategy is LimitsStrategy.SLIDING_WINDOW:
            window.events.append((now, requests, tokens, cost))

    def _deny(self, message: str, limit_type: str, used: float, limit: float, requested: float = 0) -> None:
        self.denials += 1
        logger.warning(f"LimitsPlugin ({self.strategy.value}) refused call: {message}")
        raise BudgetExceededError(message, limit_type=limit_type, used=used, limit=limit, requested=requested)

    def _check_window(self, window: UsageWindow, estimate: int, estimated_cost: float,
                      check_tokens: bool = True) -> None:
        label = self.strategy.value
        if check_tokens and self.max_tokens and window.tokens + estimate > self.max_tokens:
            self._deny(f"Token limit exceeded in {label}: {window.tokens} used + {estimate} estimated "
                       f"> {self.max_tokens}", "tokens", window.tokens, self.max_tokens, estimate)
        if self.max_requests and window.requests >= self.max_requests:
            self._deny(f"Request limit exceeded in {label}: {window.requests} of {self.max_requests}",
                       "requests", window.requests, self.max_requests, 1)
        if self.max_cost and window.cost + estimated_cost > self.max_cost:
            self._deny(f"Cost limit exceeded in {label}: ${window.cost:.4f} spent + ${estimated_cost:.4f} "
                       f"estimated > ${self.max_cost}", "cost", window.cost, self.max_cost, estimated_cost)

    # ------------------------------------------------------------------
    # Control-path capability and hooks
    # ------------------------------------------------------------------
    def check_limits(self, context: PluginContext) -> None:
        """Refuse the upcoming provider call with BudgetExceededError, or count it."""
        if self.strategy is LimitsStrategy.NONE:
            return
        now = self.clock()
        key = self._key(context)
        estimate = context.metadata.get("estimated_tokens")
        if estimate is None:
            estimate = self.token_counter.count_messages(context.messages)
        estimated_cost = self.cost_calculator(estimate, context.model or "unknown")

        if self.strategy is LimitsStrategy.TOKEN_BUCKET:
            bucket = self._bucket(key, now)
            if bucket.tokens < estimate:
                self._deny(f"Token bucket depleted: {math.floor(bucket.tokens)} available, {estimate} required",
                           "tokens", math.floor(bucket.tokens), self.bucket_size, estimate)
            self._check_window(bucket.window, estimate, estimated_cost, check_tokens=False)
            bucket.tokens -= estimate
            self._add(bucket.window, now, requests=1)
            return

        window = self._window(key, now)
        self._check_window(window, estimate, estimated_cost)
        self._add(window, now, requests=1)

    def after_provider_call(self, context: PluginContext) -> None:
        if self.strategy is LimitsStrategy.NONE:
            return
        usage = getattr(context.result, "usage", None)
        tokens = usage.total_tokens if usage else self.token_counter.count_messages(context.messages)
        cost = self.cost_calculator(tokens, context.model or "unknown")
        now = self.clock()
        key = self._key(context)
        if self.strategy is LimitsStrategy.TOKEN_BUCKET:
            self._add(self._bucket(key, now).window, now, tokens=tokens, cost=cost)
        else:
            self._add(self._window(key, now), now, tokens=tokens, cost=cost)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def get_limits_status(self, key: Optional[str] = None) -> Dict[str, Any]:
        now = self.clock()
        if key is not None:
            status: Dict[str, Any] = {"strategy": self.strategy.value, "key": key, "bucket": None, "window": None}
            if key in self.buckets:
                bucket = self._bucket(key, now)
                status["bucket"] = {"available_tokens": math.floor(bucket.tokens), **bucket.window.to_dict()}
            if key in self.windows:
                status["window"] = self._window(key, now).to_dict()
            return status
        return {
            "strategy": self.strategy.value,
            "max_tokens": self.max_tokens,
            "max_requests": self.max_requests,
            "max_cost": self.max_cost,
            "time_window": self.time_window,
            "bucket_keys": list(self.buckets),
            "window_keys": list(self.windows),
            "denials": self.denials,
        }

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self.buckets.clear()
            self.windows.clear()
            self.denials = 0
        else:
            self.buckets.pop(key, None)
            self.windows.pop(key, None)
