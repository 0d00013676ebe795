"""
Analytics plugin: counts and timings for runs, provider calls and tools.
"""

from collections import deque
from typing import Any, Deque, Dict, Optional

from .base import BasePlugin, PluginContext


class AnalyticsPlugin(BasePlugin):
    name = "analytics"

    def __init__(self, max_entries: int = 1000, name: Optional[str] = None, enabled: bool = True):
        super().__init__(name=name, enabled=enabled)
        self.max_entries = max_entries
        self.clear_data()

    def clear_data(self) -> None:
        self.runs: Deque[Dict[str, Any]] = deque(maxlen=self.max_entries)
        self.provider_calls = 0
        self.provider_duration_ms = 0.0
        self.tokens_reported = 0
        self.tool_stats: Dict[str, Dict[str, Any]] = {}
        self.errors_by_stage: Dict[str, int] = {}

    # hooks -------------------------------------------------------------
    def after_run(self, context: PluginContext) -> None:
        self.runs.append({"execution_id": context.execution_id, "success": True,
                          "duration_ms": context.duration_ms or 0.0})

    def after_provider_call(self, context: PluginContext) -> None:
        self.provider_calls += 1
        self.provider_duration_ms += context.duration_ms or 0.0
        usage = getattr(context.result, "usage", None)
        if usage is not None:
            self.tokens_reported += usage.total_tokens

    def after_tool_execute(self, context: PluginContext) -> None:
        entry = self._tool_entry(context)
        entry["calls"] += 1
        if context.result is not None and not context.result.success:
            entry["failures"] += 1
        entry["total_duration_ms"] += context.duration_ms or 0.0

    def on_error(self, error: BaseException, context: PluginContext) -> None:
        stage = context.stage.value
        self.errors_by_stage[stage] = self.errors_by_stage.get(stage, 0) + 1
        if context.stage.value == "run":
            self.runs.append({"execution_id": context.execution_id, "success": False,
                              "duration_ms": context.duration_ms or 0.0, "error": type(error).__name__})
        elif context.tool_call is not None:
            entry = self._tool_entry(context)
            entry["calls"] += 1
            entry["failures"] += 1

    def _tool_entry(self, context: PluginContext) -> Dict[str, Any]:
        name = context.tool_call.name if context.tool_call else "unknown"
        return self.tool_stats.setdefault(name, {"calls": 0, "failures": 0, "total_duration_ms": 0.0})

    # reporting ---------------------------------------------------------
    def get_stats(self) -> Dict[str, Any]:
        total = len(self.runs)
        successful = sum(1 for r in self.runs if r["success"])
        durations = [r["duration_ms"] for r in self.runs]
        return {
            "total_runs": total,
            "successful_runs": successful,
            "failed_runs": total - successful,
            "success_rate": round(successful / total, 4) if total else 0.0,
            "average_run_duration_ms": round(sum(durations) / total, 2) if total else 0.0,
            "provider_calls": self.provider_calls,
            "average_provider_duration_ms": round(self.provider_duration_ms / self.provider_calls, 2)
            if self.provider_calls else 0.0,
            "tokens_reported": self.tokens_reported,
            "tool_calls": sum(s["calls"] for s in self.tool_stats.values()),
            "tool_stats": {name: dict(stats) for name, stats in self.tool_stats.items()},
            "errors_by_stage": dict(self.errors_by_stage),
        }
