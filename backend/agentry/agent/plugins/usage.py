"""
Usage plugin: per-provider and per-model token and cost accounting.

One ``UsageStats`` entry is recorded per provider call, successful or not.
Strategies pick where entries go:

    memory   bounded in-process store
    file     JSONL file written through aiofiles, buffered and flushed in batches
    silent   aggregates in memory and never logs per-call details

Costs come from ``cost_rates``: USD per 1000 input and output tokens, keyed
by model name.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import aiofiles

from ..core.runtime.models import utc_now
from ..errors import PluginError
from .base import BasePlugin, PluginContext, Stage

logger = logging.getLogger(__name__)

DEFAULT_COST_RATES: Dict[str, Dict[str, float]] = {
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
}


class UsageStrategy(str, Enum):
    MEMORY = "memory"
    FILE = "file"
    SILENT = "silent"


@dataclass
class UsageStats:
    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    duration_ms: float = 0.0
    success: bool = True
    tools_used: List[str] = field(default_factory=list)
    execution_id: Optional[str] = None
    agent_id: Optional[str] = None
    error_type: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["timestamp"] = self.timestamp.isoformat()
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UsageStats":
        data = dict(record)
        if isinstance(data.get("timestamp"), str):
            data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


class UsageStore(ABC):
    @abstractmethod
    async def save(self, entry: UsageStats) -> None:
        ...

    @abstractmethod
    async def load(self) -> List[UsageStats]:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def flush(self) -> None:
        return None

    async def close(self) -> None:
        await self.flush()


class MemoryUsageStore(UsageStore):
    def __init__(self, max_entries: int = 10_000):
        self.max_entries = max_entries
        self._entries: List[UsageStats] = []

    async def save(self, entry: UsageStats) -> None:
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]

    async def load(self) -> List[UsageStats]:
        return list(self._entries)

    async def clear(self) -> None:
        self._entries.clear()


class FileUsageStore(UsageStore):
    """Appends entries to one JSONL file once ``batch_size`` are buffered."""

    def __init__(self, path: str, batch_size: int = 50):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.batch_size = batch_size
        self._buffer: List[UsageStats] = []
        self._lock = asyncio.Lock()

    async def save(self, entry: UsageStats) -> None:
        self._buffer.append(entry)
        if len(self._buffer) >= self.batch_size:
            await self.flush()

    async def flush(self) -> None:
        async with self._lock:
            if not self._buffer:
                return
            pending, self._buffer = self._buffer, []
            async with aiofiles.open(self.path, 'a', encoding='utf-8') as f:
                await f.write("".join(json.dumps(e.to_record(), ensure_ascii=False) + "\n" for e in pending))

    async def load(self) -> List[UsageStats]:
        entries: List[UsageStats] = []
        if self.path.exists():
            async with aiofiles.open(self.path, 'r', encoding='utf-8') as f:
                async for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(UsageStats.from_record(json.loads(line)))
                    except (json.JSONDecodeError, TypeError, ValueError):
                        logger.warning(f"Skipping corrupt usage line in {self.path}")
        return entries + list(self._buffer)

    async def clear(self) -> None:
        async with self._lock:
            self._buffer = []
            if self.path.exists():
                self.path.unlink()


def aggregate(entries: Iterable[UsageStats]) -> Dict[str, Any]:
    """Totals plus per-provider, per-model and per-tool breakdowns."""
    totals = {"requests": 0, "successful_requests": 0, "failed_requests": 0, "input_tokens": 0,
              "output_tokens": 0, "total_tokens": 0, "cost": 0.0, "duration_ms": 0.0}
    by_provider: Dict[str, Dict[str, Any]] = {}
    by_model: Dict[str, Dict[str, Any]] = {}
    by_tool: Dict[str, int] = {}

    for entry in entries:
        totals["requests"] += 1
        totals["successful_requests" if entry.success else "failed_requests"] += 1
        totals["input_tokens"] += entry.input_tokens
        totals["output_tokens"] += entry.output_tokens
        totals["total_tokens"] += entry.total_tokens
        totals["cost"] += entry.cost
        totals["duration_ms"] += entry.duration_ms
        for bucket in (by_provider.setdefault(entry.provider, _empty_bucket()),
                       by_model.setdefault(entry.model, _empty_bucket())):
            bucket["requests"] += 1
            bucket["total_tokens"] += entry.total_tokens
            bucket["cost"] += entry.cost
            if not entry.success:
                bucket["failures"] += 1
        for tool in entry.tools_used:
            by_tool[tool] = by_tool.get(tool, 0) + 1

    requests = totals["requests"]
    return {
        **totals,
        "cost": round(totals["cost"], 6),
        "success_rate": round(totals["successful_requests"] / requests, 4) if requests else 0.0,
        "average_duration_ms": round(totals["duration_ms"] / requests, 2) if requests else 0.0,
        "providers": by_provider,
        "models": by_model,
        "tools": by_tool,
    }


def _empty_bucket() -> Dict[str, Any]:
    return {"requests": 0, "failures": 0, "total_tokens": 0, "cost": 0.0}


class UsagePlugin(BasePlugin):
    name = "usage"

    def __init__(
        self,
        strategy: Union[UsageStrategy, str] = UsageStrategy.MEMORY,
        file_path: str = "./usage-stats.jsonl",
        max_entries: int = 10_000,
        batch_size: int = 50,
        cost_rates: Optional[Dict[str, Dict[str, float]]] = None,
        store: Optional[UsageStore] = None,
        name: Optional[str] = None,
        enabled: bool = True,
    ):
        super().__init__(name=name, enabled=enabled)
        try:
            self.strategy = UsageStrategy(strategy)
        except ValueError:
            valid = ", ".join(s.value for s in UsageStrategy)
            raise PluginError(f"Invalid usage strategy '{strategy}'; expected one of: {valid}", self.name) from None
        if max_entries <= 0 or batch_size <= 0:
            raise PluginError("max_entries and batch_size must be positive", self.name)
        self.cost_rates = {**DEFAULT_COST_RATES, **(cost_rates or {})}
        if store is not None:
            self.store = store
        elif self.strategy is UsageStrategy.FILE:
            self.store = FileUsageStore(file_path, batch_size=batch_size)
        else:
            self.store = MemoryUsageStore(max_entries)

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        rates = self.cost_rates.get(model)
        if rates is None:
            return 0.0
        return input_tokens / 1000 * rates.get("input", 0.0) + output_tokens / 1000 * rates.get("output", 0.0)

    async def record_usage(self, entry: UsageStats) -> None:
        if not entry.cost:
            entry.cost = self.calculate_cost(entry.model, entry.input_tokens, entry.output_tokens)
        await self.store.save(entry)
        if self.strategy is not UsageStrategy.SILENT:
            logger.debug(f"Usage recorded: {entry.provider}/{entry.model} {entry.total_tokens} tokens "
                         f"${entry.cost:.6f} success={entry.success}")

    # hooks -------------------------------------------------------------
    async def after_provider_call(self, context: PluginContext) -> None:
        response = context.result
        usage = getattr(response, "usage", None)
        await self.record_usage(UsageStats(
            provider=context.provider or "unknown",
            model=context.model or "unknown",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            duration_ms=context.duration_ms or 0.0,
            tools_used=[c.name for c in getattr(response, "tool_calls", None) or []],
            execution_id=context.execution_id,
            agent_id=context.agent_id,
        ))

    async def on_error(self, error: BaseException, context: PluginContext) -> None:
        if context.stage is not Stage.PROVIDER_CALL:
            return
        await self.record_usage(UsageStats(
            provider=context.provider or "unknown",
            model=context.model or "unknown",
            duration_ms=context.duration_ms or 0.0,
            success=False,
            execution_id=context.execution_id,
            agent_id=context.agent_id,
            error_type=type(error).__name__,
        ))

    # reporting ---------------------------------------------------------
    async def get_usage_stats(self, provider: Optional[str] = None, model: Optional[str] = None,
                              since: Optional[datetime] = None) -> List[UsageStats]:
        entries = await self.store.load()
        return [
            e for e in entries
            if (provider is None or e.provider == provider)
            and (model is None or e.model == model)
            and (since is None or e.timestamp >= since)
        ]

    async def get_aggregated_stats(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        return aggregate(await self.get_usage_stats(since=since))

    async def clear_stats(self) -> None:
        await self.store.clear()
        logger.info("Usage statistics cleared")

    async def flush(self) -> None:
        await self.store.flush()

    async def destroy(self) -> None:
        await self.store.close()
