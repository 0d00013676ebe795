"""
Agent: the public surface over one conversation engine.

An agent holds exactly the provider, tools and plugins it was constructed
with. Nothing is looked up from process-wide registries.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from .core.limits import DEFAULT_MAX_REQUESTS, DEFAULT_MAX_TOKENS, LimitInfo, LimitsGuard
from .core.llm.base import BaseLLMClient
from .core.runtime.engine import ConversationEngine, EngineState
from .core.runtime.models import Message, utc_now
from .core.runtime.token_counter import TokenCounter
from .core.runtime.tool_executor import ToolExecutionMode
from .errors import AgentDestroyedError, ConfigurationError
from .plugins.base import BasePlugin
from .plugins.pipeline import PluginPipeline
from .tools.base_tool import BaseTool
from .tools.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class AgentStatus(Enum):
    """Agent lifecycle status"""
    CREATED = "created"
    READY = "ready"
    RUNNING = "running"
    ERROR = "error"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class ProviderBinding:
    """Which provider client and model an agent talks to"""
    name: str
    client: BaseLLMClient
    model: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class LimitsConfig:
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_requests: int = DEFAULT_MAX_REQUESTS


@dataclass(frozen=True)
class AgentConfig:
    """Configuration for agent creation; immutable once built"""
    name: str
    provider: ProviderBinding
    tools: Tuple[BaseTool, ...] = ()
    system_prompt: Optional[str] = None
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    plugins: Tuple[BasePlugin, ...] = ()
    tool_execution_mode: ToolExecutionMode = ToolExecutionMode.SEQUENTIAL
    # Provider clients destroy() should close; shared clients are never listed here
    owned_providers: Tuple[BaseLLMClient, ...] = ()
    # Every provider switch_provider may move to, by name
    providers: Dict[str, BaseLLMClient] = field(default_factory=dict)
    template: Optional[str] = None


class Agent:
    """A configured bundle of provider, tools, prompt, limits and plugins."""

    def __init__(self, config: AgentConfig, agent_id: Optional[str] = None,
                 token_counter: Optional[TokenCounter] = None):
        self.config = config
        self.agent_id = agent_id or str(uuid.uuid4())
        self.status = AgentStatus.CREATED
        self.created_at = utc_now()
        self.last_activity = self.created_at

        self.provider = config.provider
        self.registry = ToolRegistry(config.tools)
        self.limits = LimitsGuard(config.limits.max_tokens, config.limits.max_requests)
        self.plugins = PluginPipeline(config.plugins)
        self.engine = ConversationEngine(
            provider=config.provider.client,
            model=config.provider.model,
            registry=self.registry,
            limits=self.limits,
            plugins=self.plugins,
            system_prompt=config.system_prompt,
            temperature=config.provider.temperature,
            max_tokens=config.provider.max_tokens,
            tool_execution_mode=config.tool_execution_mode,
            token_counter=token_counter,
            agent_id=self.agent_id,
            agent_name=config.name,
        )
        self.status = AgentStatus.READY

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_destroyed(self) -> bool:
        return self.status == AgentStatus.DESTROYED

    def _ensure_usable(self) -> None:
        if self.is_destroyed:
            raise AgentDestroyedError(f"Agent '{self.name}' ({self.agent_id}) has been destroyed")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def run(self, user_input: str) -> str:
        self._ensure_usable()
        self.engine.ensure_idle()
        self.status = AgentStatus.RUNNING
        try:
            result = await self.engine.run(user_input)
        except Exception:
            self.status = AgentStatus.ERROR
            raise
        finally:
            self.last_activity = utc_now()
        self.status = AgentStatus.READY
        return result

    async def run_stream(self, user_input: str) -> AsyncIterator[str]:
        """Stream the reply. Close the generator when stopping early, or the agent stays busy."""
        self._ensure_usable()
        self.engine.ensure_idle()
        self.status = AgentStatus.RUNNING
        stream = self.engine.run_stream(user_input)
        try:
            async for chunk in stream:
                yield chunk
        except Exception:
            self.status = AgentStatus.ERROR
            raise
        finally:
            # Releases the engine lock when the caller closes this stream early
            await stream.aclose()
            self.last_activity = utc_now()
        self.status = AgentStatus.READY

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------
    def available_providers(self) -> Dict[str, BaseLLMClient]:
        return {self.config.provider.name: self.config.provider.client, **self.config.providers}

    def switch_provider(self, name: str, model: Optional[str] = None) -> ProviderBinding:
        """Send later runs to another configured provider, keeping history and limits.

        The model stays the same unless ``model`` is given.
        """
        self._ensure_usable()
        providers = self.available_providers()
        client = providers.get(name)
        if client is None:
            raise ConfigurationError(
                f"Provider '{name}' is not configured for agent '{self.name}'; known: {sorted(providers)}",
                {"provider": name},
            )
        binding = replace(self.provider, name=name, client=client, model=model or self.provider.model)
        self.engine.set_provider(binding.client, binding.model)
        self.provider = binding
        logger.info(f"Agent '{self.name}' switched to provider '{name}' with model '{binding.model}'")
        return binding

    # ------------------------------------------------------------------
    # Limits and analytics
    # ------------------------------------------------------------------
    def get_limit_info(self) -> LimitInfo:
        return self.limits.get_info()

    def set_max_token_limit(self, value: int) -> None:
        self.limits.set_max_tokens(value)

    def set_max_request_limit(self, value: int) -> None:
        self.limits.set_max_requests(value)

    def get_total_tokens_used(self) -> int:
        return self.limits.state.tokens_used

    def get_request_count(self) -> int:
        return self.limits.state.request_count

    def get_analytics(self) -> Dict[str, Any]:
        analytics = self.limits.get_analytics()
        analytics["agent_id"] = self.agent_id
        analytics["agent_name"] = self.name
        return analytics

    def reset_analytics(self) -> None:
        """Clear usage counters and history; limits themselves are kept."""
        self.limits.reset()

    # ------------------------------------------------------------------
    # History and plugins
    # ------------------------------------------------------------------
    @property
    def engine_state(self) -> EngineState:
        return self.engine.state

    def get_history(self) -> Tuple[Message, ...]:
        return self.engine.get_history()

    def clear_history(self) -> None:
        self.engine.clear_history()

    def add_plugin(self, plugin: BasePlugin) -> None:
        self._ensure_usable()
        self.plugins.add(plugin)

    def get_plugin(self, name: str) -> Optional[BasePlugin]:
        return self.plugins.get(name)

    def get_tool_names(self) -> List[str]:
        return self.registry.names()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    async def destroy(self) -> None:
        """Flush plugins and close owned providers. Safe to call more than once."""
        if self.is_destroyed:
            return
        self.status = AgentStatus.DESTROYED
        await self.plugins.destroy()
        for client in self.config.owned_providers:
            try:
                await client.close()
            except Exception as e:
                logger.error(f"Failed to close provider '{getattr(client, 'name', client)}': {e}")
        logger.debug(f"Agent '{self.name}' ({self.agent_id}) destroyed")

    async def __aenter__(self) -> "Agent":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.destroy()

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, id={self.agent_id!r}, status={self.status.value})"
