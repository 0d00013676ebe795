"""
Performance plugin: per-stage timing distributions.

Every finished stage (run, provider_call, tool_execute) adds one sample of
``context.duration_ms``; failures count as samples too and bump the stage's
error count. Stages slower than ``threshold_ms`` are logged as warnings.
"""

import logging
import math
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Sequence

from ..errors import PluginError
from .base import BasePlugin, PluginContext

logger = logging.getLogger(__name__)


def percentile(sorted_samples: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile of an already sorted sequence."""
    if not sorted_samples:
        return 0.0
    rank = max(1, math.ceil(pct / 100 * len(sorted_samples)))
    return sorted_samples[rank - 1]


class PerformancePlugin(BasePlugin):
    name = "performance"

    def __init__(self, max_samples: int = 5000, threshold_ms: float = 1000.0,
                 name: Optional[str] = None, enabled: bool = True):
        super().__init__(name=name, enabled=enabled)
        if max_samples <= 0:
            raise PluginError(f"max_samples must be positive, got {max_samples}", self.name)
        self.max_samples = max_samples
        self.threshold_ms = threshold_ms
        self.clear()

    def clear(self) -> None:
        self.samples: Dict[str, Deque[float]] = {}
        self.errors: Dict[str, int] = {}
        self.slow_operations = 0

    def _record(self, operation: str, context: PluginContext) -> None:
        duration = context.duration_ms or 0.0
        self.samples.setdefault(operation, deque(maxlen=self.max_samples)).append(duration)
        if self.threshold_ms and duration > self.threshold_ms:
            self.slow_operations += 1
            logger.warning(f"Slow {operation}: {duration:.1f}ms exceeds {self.threshold_ms:.0f}ms "
                           f"(execution {context.execution_id})")

    # hooks -------------------------------------------------------------
    def after_execute(self, context: PluginContext) -> None:
        self._record(context.stage.value, context)

    def on_error(self, error: BaseException, context: PluginContext) -> None:
        stage = context.stage.value
        self.errors[stage] = self.errors.get(stage, 0) + 1
        self._record(stage, context)

    # reporting ---------------------------------------------------------
    @staticmethod
    def summarize(samples: List[float]) -> Dict[str, float]:
        ordered = sorted(samples)
        count = len(ordered)
        return {
            "count": count,
            "avg_ms": round(sum(ordered) / count, 3) if count else 0.0,
            "min_ms": ordered[0] if count else 0.0,
            "max_ms": ordered[-1] if count else 0.0,
            "p50_ms": percentile(ordered, 50),
            "p95_ms": percentile(ordered, 95),
            "p99_ms": percentile(ordered, 99),
        }

    def get_metrics(self, stage: Optional[str] = None) -> Dict[str, Any]:
        stages = [stage] if stage is not None else list(self.samples)
        metrics: Dict[str, Any] = {}
        for name in stages:
            summary = self.summarize(list(self.samples.get(name, ())))
            summary["errors"] = self.errors.get(name, 0)
            metrics[name] = summary
        if stage is not None:
            return metrics[stage]
        return {"stages": metrics, "slow_operations": self.slow_operations}
