"""
Error taxonomy for the agent runtime.

Errors local to a single tool call or a single delegated sub-agent are
recovered and reported as data. Errors in the provider exchange and in the
budget pre-check reach the caller of ``run``/``run_stream``.
"""

from typing import Any, Dict, Optional


class AgentError(Exception):
    """Base class for all agent runtime errors."""

    code = "AGENT_ERROR"
    recoverable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ConfigurationError(AgentError):
    """Invalid options, duplicate registrations, unknown providers."""

    code = "CONFIGURATION_ERROR"


class ValidationError(AgentError):
    """Malformed tool parameters or delegation request; raised before any side effect."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.field = field


class ToolNotFoundError(ValidationError):
    """A tool call named a tool the registry does not hold."""

    code = "TOOL_NOT_FOUND"

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found", field="name", context={"tool_name": tool_name})
        self.tool_name = tool_name


class BudgetExceededError(AgentError):
    """Raised by the limits pre-check; no provider call is made."""

    code = "BUDGET_EXCEEDED"

    def __init__(self, message: str, limit_type: str, used: float, limit: float, requested: float = 0):
        super().__init__(message, {"limit_type": limit_type, "used": used, "limit": limit, "requested": requested})
        self.limit_type = limit_type
        self.used = used
        self.limit = limit
        self.requested = requested


class ToolExecutionError(AgentError):
    """A tool handler raised; captured as a failed tool result."""

    code = "TOOL_EXECUTION_ERROR"
    recoverable = True

    def __init__(self, tool_name: str, message: str, original: Optional[BaseException] = None):
        super().__init__(message, {"tool_name": tool_name})
        self.tool_name = tool_name
        self.original = original


class DelegationFailure(AgentError):
    """A delegated sub-agent failed; captured into a failed DelegationResult."""

    code = "DELEGATION_FAILURE"
    recoverable = True

    def __init__(self, message: str, agent_id: Optional[str] = None, original: Optional[BaseException] = None):
        super().__init__(message, {"agent_id": agent_id} if agent_id else None)
        self.agent_id = agent_id
        self.original = original


class CircuitBreakerOpenError(AgentError):
    """The error-handling plugin refused a call because its breaker is open."""

    code = "CIRCUIT_BREAKER_OPEN"
    recoverable = True


class PluginError(AgentError):
    """A plugin was misconfigured or failed outside of a suppressed hook."""

    code = "PLUGIN_ERROR"

    def __init__(self, message: str, plugin_name: str):
        super().__init__(message, {"plugin_name": plugin_name})
        self.plugin_name = plugin_name


class AgentDestroyedError(AgentError):
    """The agent was used after ``destroy()``."""

    code = "AGENT_DESTROYED"


class AgentBusyError(AgentError):
    """A run was started while another run or stream still holds the conversation."""

    code = "AGENT_BUSY"
    recoverable = True
