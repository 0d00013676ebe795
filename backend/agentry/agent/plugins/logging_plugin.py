"""
Logging plugin: one structured log record per lifecycle point.

Records go through stdlib logging. Every payload is passed through the
secret sanitizer first; message text is only included when asked for.
"""

import logging
from typing import Any, Dict, Optional, Union

from ...utils.logging import safe_repr, sanitize_dict, truncate_text
from .base import BasePlugin, PluginContext


class LoggingPlugin(BasePlugin):
    name = "logging"

    def __init__(self, level: Union[int, str] = logging.INFO, logger_name: str = "agentry.execution",
                 include_payloads: bool = False, max_payload_length: int = 500,
                 name: Optional[str] = None, enabled: bool = True):
        super().__init__(name=name, enabled=enabled)
        self.level = logging.getLevelName(level) if isinstance(level, str) else level
        self.logger = logging.getLogger(logger_name)
        self.include_payloads = include_payloads
        self.max_payload_length = max_payload_length

    def _emit(self, event: str, context: PluginContext, level: Optional[int] = None, **extra: Any) -> None:
        record: Dict[str, Any] = {"event": event, **context.to_dict(), **extra}
        record = sanitize_dict(record)
        self.logger.log(level or self.level, f"{event} {record}", extra={"agentry_event": record})

    def _payload(self, text: Optional[str]) -> Dict[str, Any]:
        if not self.include_payloads or text is None:
            return {}
        return {"payload": truncate_text(text, self.max_payload_length)}

    def before_run(self, context: PluginContext) -> None:
        self._emit("run.start", context, **self._payload(context.user_input))

    def after_run(self, context: PluginContext) -> None:
        result = context.result if isinstance(context.result, str) else None
        self._emit("run.complete", context, **self._payload(result))

    def before_provider_call(self, context: PluginContext) -> None:
        self._emit("provider.request", context, level=logging.DEBUG)

    def after_provider_call(self, context: PluginContext) -> None:
        response = context.result
        usage = getattr(response, "usage", None)
        self._emit(
            "provider.response", context, level=logging.DEBUG,
            tool_calls=[c.name for c in getattr(response, "tool_calls", [])],
            total_tokens=usage.total_tokens if usage else None,
        )

    def before_tool_execute(self, context: PluginContext) -> None:
        arguments = context.tool_call.arguments if (context.tool_call and self.include_payloads) else None
        self._emit("tool.start", context, **({"arguments": arguments} if arguments else {}))

    def after_tool_execute(self, context: PluginContext) -> None:
        result = context.result
        self._emit("tool.complete", context, success=getattr(result, "success", None),
                   **({"tool_error": result.error} if result is not None and not result.success else {}))

    def on_error(self, error: BaseException, context: PluginContext) -> None:
        self._emit(f"{context.stage.value}.error", context, level=logging.ERROR, error_repr=safe_repr(error))
