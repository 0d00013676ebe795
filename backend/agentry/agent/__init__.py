# agentry agent module
# Conversation engine, tools, limits, plugins and team delegation

from .base_agent import Agent, AgentConfig, AgentStatus, LimitsConfig, ProviderBinding
from .config import AgentOptions
from .factory import AgentFactory, create_agent
from .core.limits import LimitInfo, LimitsGuard
from .core.llm.base import BaseLLMClient, ProviderError, ProviderNotConfigured
from .core.runtime.engine import ConversationEngine, EngineState
from .core.runtime.models import Message, Role, ToolCall, ToolResult
from .core.runtime.tool_executor import ToolExecutionMode
from .errors import (
    AgentBusyError,
    AgentError,
    BudgetExceededError,
    ConfigurationError,
    DelegationFailure,
    ToolExecutionError,
    ValidationError,
)
from .team import Team, TeamCoordinator, create_team

__all__ = [
    'Agent',
    'AgentConfig',
    'AgentStatus',
    'LimitsConfig',
    'ProviderBinding',
    'AgentOptions',
    'AgentFactory',
    'create_agent',
    'LimitInfo',
    'LimitsGuard',
    'BaseLLMClient',
    'ProviderError',
    'ProviderNotConfigured',
    'ConversationEngine',
    'EngineState',
    'Message',
    'Role',
    'ToolCall',
    'ToolResult',
    'ToolExecutionMode',
    'AgentBusyError',
    'AgentError',
    'BudgetExceededError',
    'ConfigurationError',
    'DelegationFailure',
    'ToolExecutionError',
    'ValidationError',
    'Team',
    'TeamCoordinator',
    'create_team',
]
