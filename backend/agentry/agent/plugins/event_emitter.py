"""
Event-emitter plugin: fans agent and tool lifecycle events out to listeners.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..core.runtime.models import utc_now
from .base import BasePlugin, PluginContext

logger = logging.getLogger(__name__)

WILDCARD = "*"


class EventType:
    EXECUTION_START = "execution.start"
    EXECUTION_COMPLETE = "execution.complete"
    EXECUTION_ERROR = "execution.error"
    PROVIDER_CALL = "provider.call"
    TOOL_BEFORE_EXECUTE = "tool.before_execute"
    TOOL_AFTER_EXECUTE = "tool.after_execute"
    TOOL_SUCCESS = "tool.success"
    TOOL_ERROR = "tool.error"


@dataclass
class AgentEvent:
    type: str
    execution_id: Optional[str] = None
    agent_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


Listener = Callable[[AgentEvent], Any]


@dataclass
class _Subscription:
    listener: Listener
    once: bool = False
    predicate: Optional[Callable[[AgentEvent], bool]] = None


class EventEmitterPlugin(BasePlugin):
    name = "event_emitter"

    def __init__(self, name: Optional[str] = None, enabled: bool = True):
        super().__init__(name=name, enabled=enabled)
        self._subscriptions: Dict[str, List[_Subscription]] = {}
        self.events_emitted = 0
        self.listener_errors = 0

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def on(self, event_type: str, listener: Listener,
           predicate: Optional[Callable[[AgentEvent], bool]] = None) -> Callable[[], None]:
        """Subscribe; returns a function that removes the subscription."""
        subscription = _Subscription(listener, predicate=predicate)
        self._subscriptions.setdefault(event_type, []).append(subscription)
        return lambda: self._remove(event_type, subscription)

    def once(self, event_type: str, listener: Listener) -> Callable[[], None]:
        subscription = _Subscription(listener, once=True)
        self._subscriptions.setdefault(event_type, []).append(subscription)
        return lambda: self._remove(event_type, subscription)

    def off(self, event_type: str, listener: Optional[Listener] = None) -> None:
        if listener is None:
            self._subscriptions.pop(event_type, None)
            return
        self._subscriptions[event_type] = [
            s for s in self._subscriptions.get(event_type, []) if s.listener is not listener
        ]

    def _remove(self, event_type: str, subscription: _Subscription) -> None:
        subs = self._subscriptions.get(event_type, [])
        if subscription in subs:
            subs.remove(subscription)

    def listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._subscriptions.get(event_type, []))
        return sum(len(s) for s in self._subscriptions.values())

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------
    async def emit(self, event: AgentEvent) -> None:
        self.events_emitted += 1
        targets = list(self._subscriptions.get(event.type, [])) + list(self._subscriptions.get(WILDCARD, []))
        for subscription in targets:
            if subscription.predicate is not None and not subscription.predicate(event):
                continue
            if subscription.once:
                for key in (event.type, WILDCARD):
                    self._remove(key, subscription)
            await self._safe_listener(subscription.listener, event)

    async def _safe_listener(self, listener: Listener, event: AgentEvent) -> None:
        """Safely execute listener with error handling"""
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.listener_errors += 1
            logger.error(f"Error in event listener for {event.type}: {e}")

    def _event(self, event_type: str, context: PluginContext, **data: Any) -> AgentEvent:
        return AgentEvent(type=event_type, execution_id=context.execution_id,
                          agent_id=context.agent_id, data=data)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    async def before_run(self, context: PluginContext) -> None:
        await self.emit(self._event(EventType.EXECUTION_START, context, input=context.user_input))

    async def after_run(self, context: PluginContext) -> None:
        await self.emit(self._event(EventType.EXECUTION_COMPLETE, context,
                                    result=context.result, duration_ms=context.duration_ms))

    async def after_provider_call(self, context: PluginContext) -> None:
        await self.emit(self._event(EventType.PROVIDER_CALL, context,
                                    provider=context.provider, model=context.model,
                                    duration_ms=context.duration_ms))

    async def before_tool_execute(self, context: PluginContext) -> None:
        call = context.tool_call
        await self.emit(self._event(EventType.TOOL_BEFORE_EXECUTE, context,
                                    tool_name=call.name, tool_call_id=call.id, arguments=call.arguments))

    async def after_tool_execute(self, context: PluginContext) -> None:
        call = context.tool_call
        result = context.result
        await self.emit(self._event(EventType.TOOL_AFTER_EXECUTE, context, tool_name=call.name,
                                    tool_call_id=call.id, duration_ms=context.duration_ms))
        if result is not None and result.success:
            await self.emit(self._event(EventType.TOOL_SUCCESS, context, tool_name=call.name,
                                        tool_call_id=call.id, data=result.data))
        else:
            await self.emit(self._event(EventType.TOOL_ERROR, context, tool_name=call.name,
                                        tool_call_id=call.id, error=getattr(result, "error", None)))

    async def on_error(self, error: BaseException, context: PluginContext) -> None:
        if context.tool_call is not None:
            await self.emit(self._event(EventType.TOOL_ERROR, context, tool_name=context.tool_call.name,
                                        tool_call_id=context.tool_call.id, error=str(error)))
        elif context.stage.value == "run":
            await self.emit(self._event(EventType.EXECUTION_ERROR, context, error=str(error),
                                        error_type=type(error).__name__))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "events_emitted": self.events_emitted,
            "listener_errors": self.listener_errors,
            "listeners": self.listener_count(),
        }

    async def destroy(self) -> None:
        self._subscriptions.clear()
