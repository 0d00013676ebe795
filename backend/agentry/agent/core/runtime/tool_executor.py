"""
Tool execution service.

Runs the tool calls of one provider response either one after another or
concurrently. Every call yields exactly one outcome, returned in the same
order as the calls regardless of completion order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ...errors import AgentError, ValidationError
from ...plugins.base import PluginContext, Stage
from ...plugins.pipeline import PluginPipeline
from ...tools.tool_registry import ToolRegistry
from .models import ToolCall, ToolResult

logger = logging.getLogger(__name__)


class ToolExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


@dataclass
class ToolCallOutcome:
    tool_call: ToolCall
    result: ToolResult

    @property
    def success(self) -> bool:
        return self.result.success

    def to_content(self) -> str:
        return self.result.to_content()


class ToolExecutionService:
    """Executes tool calls against a registry with a declared concurrency policy."""

    def __init__(self, registry: ToolRegistry, plugins: Optional[PluginPipeline] = None,
                 mode: ToolExecutionMode = ToolExecutionMode.SEQUENTIAL,
                 max_concurrency: Optional[int] = None):
        self.registry = registry
        self.plugins = plugins or PluginPipeline()
        self.mode = ToolExecutionMode(mode)
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def execute_calls(self, calls: Sequence[ToolCall],
                            context_factory: Optional[Callable[[ToolCall], PluginContext]] = None,
                            mode: Optional[ToolExecutionMode] = None) -> List[ToolCallOutcome]:
        mode = ToolExecutionMode(mode or self.mode)
        if mode == ToolExecutionMode.SEQUENTIAL or len(calls) < 2:
            outcomes = []
            for call in calls:
                outcomes.append(await self._run_one(call, context_factory))
            return outcomes

        results = await asyncio.gather(
            *(self._run_one(call, context_factory) for call in calls),
            return_exceptions=True,
        )
        outcomes = []
        for call, item in zip(calls, results):
            if isinstance(item, BaseException):
                # _run_one already converts tool errors; anything else is unexpected
                logger.error(f"Unexpected failure running tool '{call.name}': {item}")
                item = ToolCallOutcome(call, ToolResult(success=False, error=str(item)))
            outcomes.append(item)
        return outcomes

    async def _run_one(self, call: ToolCall,
                       context_factory: Optional[Callable[[ToolCall], PluginContext]]) -> ToolCallOutcome:
        if self._semaphore is not None:
            async with self._semaphore:
                return await self._execute(call, context_factory)
        return await self._execute(call, context_factory)

    async def _execute(self, call: ToolCall,
                       context_factory: Optional[Callable[[ToolCall], PluginContext]]) -> ToolCallOutcome:
        context = context_factory(call) if context_factory else PluginContext(
            stage=Stage.TOOL_EXECUTE, execution_id=PluginContext.new_execution_id(), tool_call=call)
        try:
            async with self.plugins.span(context):
                if call.raw_arguments is not None:
                    raise ValidationError(
                        f"Arguments for tool '{call.name}' are not a valid JSON object",
                        field="arguments", context={"tool_name": call.name},
                    )
                result = await self.registry.execute(call.name, call.arguments, {"tool_call_id": call.id})
                context.result = result
                if not result.success:
                    logger.warning(f"Tool '{call.name}' reported failure: {result.error}")
        except AgentError as e:
            # ValidationError, ToolExecutionError and friends are reported to the model as data
            return ToolCallOutcome(call, ToolResult(success=False, error=e.message))
        return ToolCallOutcome(call, result)
