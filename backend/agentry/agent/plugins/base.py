"""
Plugin base class and per-stage context.

A plugin implements any subset of the hook methods below. Hooks may be plain
functions or coroutines; a missing hook is simply skipped.

Stage hooks, fired for every stage:
    before_execute(context), after_execute(context), on_error(error, context)

Span hooks, fired for the matching stage only:
    before_run / after_run
    before_provider_call / after_provider_call
    before_tool_execute / after_tool_execute

Other hooks:
    on_stream_chunk(chunk, context)
    on_message_added(message, context)

A plugin may also provide ``execute_with_retry(call, context)``. That one is
part of the provider call path and its errors propagate.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..core.runtime.models import Message, ToolCall, utc_now


class Stage(str, Enum):
    RUN = "run"
    PROVIDER_CALL = "provider_call"
    TOOL_EXECUTE = "tool_execute"


STAGE_HOOKS = ("before_execute", "after_execute", "on_error")
SPAN_HOOKS = tuple(f"{prefix}_{stage.value}" for stage in Stage for prefix in ("before", "after"))
OTHER_HOOKS = ("on_stream_chunk", "on_message_added")
HOOK_NAMES = STAGE_HOOKS + SPAN_HOOKS + OTHER_HOOKS


@dataclass
class PluginContext:
    """Created per stage and handed to hooks by reference; never stored by the runtime."""
    stage: Stage
    execution_id: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    user_input: Optional[str] = None
    messages: Tuple[Message, ...] = ()
    tool_call: Optional[ToolCall] = None
    result: Any = None
    error: Optional[BaseException] = None
    started_at: datetime = field(default_factory=utc_now)
    duration_ms: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def new_execution_id() -> str:
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "stage": self.stage.value,
            "execution_id": self.execution_id,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "provider": self.provider,
            "model": self.model,
            "message_count": len(self.messages),
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
        }
        if self.tool_call is not None:
            data["tool_name"] = self.tool_call.name
            data["tool_call_id"] = self.tool_call.id
        if self.error is not None:
            data["error"] = str(self.error)
            data["error_type"] = type(self.error).__name__
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


class BasePlugin:
    """Base for plugins. Subclasses add whichever hook methods they need."""

    name: str = "plugin"
    version: str = "1.0.0"

    def __init__(self, name: Optional[str] = None, enabled: bool = True):
        if name:
            self.name = name
        self.enabled = enabled

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def has_hook(self, hook_name: str) -> bool:
        return callable(getattr(self, hook_name, None))

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "enabled": self.enabled,
            "hooks": [h for h in HOOK_NAMES if self.has_hook(h)],
        }

    async def destroy(self) -> None:
        """Release resources and flush pending work. Default is a no-op."""
        return None
