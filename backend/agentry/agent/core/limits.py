"""
Limits guard: token and request budgets for one agent.

A limit of 0 means unlimited for that dimension. The pre-check runs before
every provider call with an estimate of the prompt so a request that would
exceed the budget is never sent. Counters only grow until ``reset()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import BudgetExceededError, ConfigurationError
from .runtime.models import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_MAX_REQUESTS = 25


@dataclass(frozen=True)
class UsageRecord:
    timestamp: datetime
    tokens: int
    provider: Optional[str] = None
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "tokens": self.tokens,
            "provider": self.provider,
            "model": self.model,
        }


@dataclass
class LimitState:
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_requests: int = DEFAULT_MAX_REQUESTS
    tokens_used: int = 0
    request_count: int = 0
    per_request_log: List[UsageRecord] = field(default_factory=list)


@dataclass(frozen=True)
class LimitInfo:
    max_tokens: int
    max_requests: int
    current_tokens_used: int
    current_request_count: int
    remaining_tokens: Optional[int]
    remaining_requests: Optional[int]
    is_tokens_unlimited: bool
    is_requests_unlimited: bool

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def _validate_limit(value: int, label: str) -> int:
    if value is None or int(value) < 0:
        raise ConfigurationError(f"{label} must be a non-negative integer (0 = unlimited), got {value!r}")
    return int(value)


class LimitsGuard:
    """Pre-flight and post-flight budget enforcement."""

    def __init__(self, max_tokens: int = DEFAULT_MAX_TOKENS, max_requests: int = DEFAULT_MAX_REQUESTS):
        self.state = LimitState(
            max_tokens=_validate_limit(max_tokens, "max_tokens"),
            max_requests=_validate_limit(max_requests, "max_requests"),
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    @property
    def is_tokens_unlimited(self) -> bool:
        return self.state.max_tokens == 0

    @property
    def is_requests_unlimited(self) -> bool:
        return self.state.max_requests == 0

    @property
    def remaining_tokens(self) -> Optional[int]:
        if self.is_tokens_unlimited:
            return None
        return max(0, self.state.max_tokens - self.state.tokens_used)

    @property
    def remaining_requests(self) -> Optional[int]:
        if self.is_requests_unlimited:
            return None
        return max(0, self.state.max_requests - self.state.request_count)

    def precheck(self, estimated_tokens: int = 0) -> None:
        """Raise BudgetExceededError if one more request of this size would exceed a limit."""
        state = self.state
        if not self.is_requests_unlimited and state.request_count + 1 > state.max_requests:
            raise BudgetExceededError(
                f"Request limit exceeded: {state.request_count} of {state.max_requests} requests already used. "
                f"Request aborted to prevent unnecessary costs.",
                limit_type="requests", used=state.request_count, limit=state.max_requests, requested=1,
            )
        if not self.is_tokens_unlimited and state.tokens_used + estimated_tokens > state.max_tokens:
            raise BudgetExceededError(
                f"Token limit would be exceeded: {state.tokens_used} used + {estimated_tokens} estimated "
                f"> {state.max_tokens} allowed. Request aborted to prevent unnecessary costs.",
                limit_type="tokens", used=state.tokens_used, limit=state.max_tokens, requested=estimated_tokens,
            )

    def allows(self, estimated_tokens: int = 0) -> bool:
        try:
            self.precheck(estimated_tokens)
        except BudgetExceededError:
            return False
        return True

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    def record(self, actual_tokens: int, provider: Optional[str] = None, model: Optional[str] = None) -> UsageRecord:
        """Record a completed request. Tokens already spent are always counted."""
        tokens = max(0, int(actual_tokens or 0))
        self.state.request_count += 1
        self.state.tokens_used += tokens
        record = UsageRecord(timestamp=utc_now(), tokens=tokens, provider=provider, model=model)
        self.state.per_request_log.append(record)
        if not self.is_tokens_unlimited and self.state.tokens_used > self.state.max_tokens:
            logger.warning(
                f"Token budget overshot by actual usage: {self.state.tokens_used}/{self.state.max_tokens}"
            )
        return record

    def reset(self) -> None:
        self.state.tokens_used = 0
        self.state.request_count = 0
        self.state.per_request_log.clear()

    # ------------------------------------------------------------------
    # Limit changes (applied on the next precheck)
    # ------------------------------------------------------------------
    def set_max_tokens(self, value: int) -> None:
        self.state.max_tokens = _validate_limit(value, "max_tokens")

    def set_max_requests(self, value: int) -> None:
        self.state.max_requests = _validate_limit(value, "max_requests")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def get_info(self) -> LimitInfo:
        return LimitInfo(
            max_tokens=self.state.max_tokens,
            max_requests=self.state.max_requests,
            current_tokens_used=self.state.tokens_used,
            current_request_count=self.state.request_count,
            remaining_tokens=self.remaining_tokens,
            remaining_requests=self.remaining_requests,
            is_tokens_unlimited=self.is_tokens_unlimited,
            is_requests_unlimited=self.is_requests_unlimited,
        )

    def get_analytics(self) -> Dict[str, Any]:
        count = self.state.request_count
        total = self.state.tokens_used
        return {
            "request_count": count,
            "total_tokens_used": total,
            "average_tokens_per_request": round(total / count, 2) if count else 0,
            "token_usage_history": [r.to_dict() for r in self.state.per_request_log],
        }

    def get_usage_by_period(self, start: datetime, end: datetime) -> Dict[str, Any]:
        records = [r for r in self.state.per_request_log if start <= r.timestamp <= end]
        total = sum(r.tokens for r in records)
        return {
            "total_tokens": total,
            "request_count": len(records),
            "records": [r.to_dict() for r in records],
        }
