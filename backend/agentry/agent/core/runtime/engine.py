"""
Conversation engine: the request / tool-call / response loop.

    IDLE -> AWAITING_PROVIDER_RESPONSE -> EXECUTING_TOOLS -> AWAITING_PROVIDER_RESPONSE ...
                                       -> IDLE   (response without tool calls)
                                       -> FAILED (provider or budget error, re-raised)

The loop has no iteration cap of its own; the limits guard's request counter
bounds it and fails closed.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, List, Optional, Tuple

from ...errors import AgentBusyError, AgentError
from ...plugins.base import PluginContext, Stage
from ...plugins.pipeline import PluginPipeline
from ...tools.tool_registry import ToolRegistry
from ..limits import LimitsGuard
from ..llm.base import BaseLLMClient, ProviderError
from .conversation import Conversation
from .models import Message, ProviderRequest, ProviderResponse, ToolCall
from .token_counter import TokenCounter
from .tool_executor import ToolExecutionMode, ToolExecutionService

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    IDLE = "idle"
    AWAITING_PROVIDER_RESPONSE = "awaiting_provider_response"
    EXECUTING_TOOLS = "executing_tools"
    FAILED = "failed"


class ConversationEngine:
    """Owns one conversation and drives it against one provider."""

    def __init__(
        self,
        provider: BaseLLMClient,
        model: str,
        registry: Optional[ToolRegistry] = None,
        limits: Optional[LimitsGuard] = None,
        plugins: Optional[PluginPipeline] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tool_execution_mode: ToolExecutionMode = ToolExecutionMode.SEQUENTIAL,
        token_counter: Optional[TokenCounter] = None,
        agent_id: Optional[str] = None,
        agent_name: Optional[str] = None,
    ):
        self.provider = provider
        self.model = model
        self.registry = registry or ToolRegistry()
        self.limits = limits or LimitsGuard()
        self.plugins = plugins or PluginPipeline()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.token_counter = token_counter or TokenCounter(model)
        self.agent_id = agent_id
        self.agent_name = agent_name
        self.conversation = Conversation(system_prompt)
        self.tool_service = ToolExecutionService(self.registry, self.plugins, tool_execution_mode)
        self.state = EngineState.IDLE
        self._lock = asyncio.Lock()

    @property
    def provider_name(self) -> str:
        return getattr(self.provider, "name", type(self.provider).__name__)

    def _context(self, stage: Stage, execution_id: str, **kwargs) -> PluginContext:
        return PluginContext(
            stage=stage,
            execution_id=execution_id,
            agent_id=self.agent_id,
            agent_name=self.agent_name,
            provider=self.provider_name,
            model=self.model,
            messages=self.conversation.snapshot(),
            **kwargs,
        )

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def ensure_idle(self) -> None:
        if self._lock.locked():
            raise AgentBusyError(
                f"Agent '{self.agent_name or self.agent_id}' is busy: another run or an unclosed stream "
                f"holds the conversation",
                {"agent_id": self.agent_id},
            )

    def set_provider(self, provider: BaseLLMClient, model: str) -> None:
        """Rebind the provider and model used by subsequent rounds; history is kept."""
        self.ensure_idle()
        self.provider = provider
        if model != self.model:
            self.token_counter = TokenCounter(model, self.token_counter.encoding_name)
        self.model = model

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------
    async def run(self, user_input: str) -> str:
        """Run the loop to completion and return the final assistant text."""
        self.ensure_idle()
        async with self._lock:
            execution_id = PluginContext.new_execution_id()
            run_context = self._context(Stage.RUN, execution_id, user_input=user_input)
            try:
                async with self.plugins.span(run_context):
                    pending: Optional[Message] = Message.user(user_input)
                    while True:
                        request = await self._begin_round(pending, run_context)
                        pending = None
                        response = await self._call_provider(request, execution_id)
                        if await self._finish_round(response, run_context):
                            run_context.result = response.content or ""
                            return run_context.result
            except Exception:
                self.state = EngineState.FAILED
                raise

    async def run_stream(self, user_input: str) -> AsyncIterator[str]:
        """Yield content deltas; errors end the stream by raising.

        The conversation stays locked until the generator finishes. A consumer
        that stops early must close it with ``await stream.aclose()`` or, on
        Python 3.10+, ``async with contextlib.aclosing(engine.run_stream(text))``.
        Until then any other run fails fast with AgentBusyError.
        """
        self.ensure_idle()
        async with self._lock:
            execution_id = PluginContext.new_execution_id()
            run_context = self._context(Stage.RUN, execution_id, user_input=user_input)
            try:
                async with self.plugins.span(run_context):
                    pending: Optional[Message] = Message.user(user_input)
                    parts: List[str] = []
                    while True:
                        request = await self._begin_round(pending, run_context)
                        pending = None
                        provider_context = self._context(Stage.PROVIDER_CALL, execution_id)
                        provider_context.messages = request.messages
                        content: List[str] = []
                        tool_calls: List[ToolCall] = []
                        usage = None
                        async with self.plugins.span(provider_context):
                            async for chunk in self._open_stream(request):
                                if chunk.content:
                                    content.append(chunk.content)
                                    await self.plugins.invoke("on_stream_chunk", chunk, provider_context)
                                    yield chunk.content
                                if chunk.tool_calls:
                                    tool_calls = list(chunk.tool_calls)
                                if chunk.usage is not None:
                                    usage = chunk.usage
                            response = ProviderResponse("".join(content) or None, tool_calls, usage)
                            self._record_usage(request, response)
                            provider_context.result = response
                        parts.extend(content)
                        if await self._finish_round(response, run_context):
                            run_context.result = "".join(parts)
                            return
            except Exception:
                self.state = EngineState.FAILED
                raise

    # ------------------------------------------------------------------
    # Loop pieces
    # ------------------------------------------------------------------
    async def _begin_round(self, pending: Optional[Message], run_context: PluginContext) -> ProviderRequest:
        """Pre-check the budget and plugin limits, then commit the pending message and build the request."""
        messages: Tuple[Message, ...] = self.conversation.snapshot()
        if pending is not None:
            messages = messages + (pending,)
        estimate = self.token_counter.count_messages(messages)
        self.limits.precheck(estimate)
        limits_context = self._context(Stage.PROVIDER_CALL, run_context.execution_id,
                                       metadata={"estimated_tokens": estimate})
        limits_context.messages = messages
        await self.plugins.check_limits(limits_context)

        if pending is not None:
            await self._append(pending, run_context)
        self.state = EngineState.AWAITING_PROVIDER_RESPONSE
        return ProviderRequest(
            model=self.model,
            messages=self.conversation.snapshot(),
            tools=self.registry.schemas(),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    async def _finish_round(self, response: ProviderResponse, run_context: PluginContext) -> bool:
        """Append the assistant turn; run tools if asked. Returns True when the loop is done."""
        await self._append(Message.assistant(response.content, response.tool_calls), run_context)
        if not response.has_tool_calls:
            self.state = EngineState.IDLE
            return True

        self.state = EngineState.EXECUTING_TOOLS
        outcomes = await self.tool_service.execute_calls(
            response.tool_calls,
            context_factory=lambda call: self._context(Stage.TOOL_EXECUTE, run_context.execution_id, tool_call=call),
        )
        for outcome in outcomes:
            message = Message.tool(outcome.to_content(), outcome.tool_call.id, name=outcome.tool_call.name)
            await self._append(message, run_context)
        return False

    async def _append(self, message: Message, run_context: PluginContext) -> None:
        self.conversation.append(message)
        await self.plugins.invoke("on_message_added", message, run_context)

    async def _call_provider(self, request: ProviderRequest, execution_id: str) -> ProviderResponse:
        provider_context = self._context(Stage.PROVIDER_CALL, execution_id)
        provider_context.messages = request.messages
        async with self.plugins.span(provider_context):
            response = await self.plugins.wrap_provider_call(lambda: self._invoke_provider(request), provider_context)
            self._record_usage(request, response)
            provider_context.result = response
        return response

    async def _invoke_provider(self, request: ProviderRequest) -> ProviderResponse:
        try:
            return await self.provider.chat(request)
        except AgentError:
            raise
        except Exception as e:
            raise ProviderError(f"Provider '{self.provider_name}' call failed: {e}",
                                provider=self.provider_name, original=e) from e

    async def _open_stream(self, request: ProviderRequest):
        try:
            async for chunk in self.provider.chat_stream(request):
                yield chunk
        except AgentError:
            raise
        except Exception as e:
            raise ProviderError(f"Provider '{self.provider_name}' stream failed: {e}",
                                provider=self.provider_name, original=e) from e

    def _record_usage(self, request: ProviderRequest, response: ProviderResponse) -> None:
        if response.usage is not None and response.usage.total_tokens:
            tokens = response.usage.total_tokens
        else:
            reply = Message.assistant(response.content, response.tool_calls)
            tokens = self.token_counter.count_messages(request.messages) + self.token_counter.count_message(reply)
            logger.debug(f"Provider returned no usage, estimated {tokens} tokens")
        self.limits.record(tokens, provider=self.provider_name, model=self.model)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def get_history(self) -> Tuple[Message, ...]:
        return self.conversation.snapshot()

    def clear_history(self) -> None:
        self.conversation.clear()
