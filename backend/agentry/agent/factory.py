"""
Agent factory: builds fully wired agents for the top level and for the team
coordinator's ephemeral members.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .base_agent import Agent, AgentConfig, LimitsConfig, ProviderBinding
from .config import AgentOptions
from .configs.agent_templates import AgentTemplate
from .core.llm.base import BaseLLMClient
from .core.runtime.tool_executor import ToolExecutionMode
from .errors import ConfigurationError
from .plugins.analytics import AnalyticsPlugin
from .plugins.base import BasePlugin
from .tools.base_tool import BaseTool
from .tools.tool_registry import ToolRegistry
from ..utils.logging import configure_debug_logging

logger = logging.getLogger(__name__)

PluginFactory = Callable[[], Sequence[BasePlugin]]


def default_member_plugins() -> List[BasePlugin]:
    """Each ephemeral agent gets its own analytics observer."""
    return [AnalyticsPlugin()]


class AgentFactory:
    """Creates agents from explicit providers and a shared tool catalogue.

    Providers and tools are shared read-only between the agents it builds.
    Plugins are produced per agent by ``plugin_factory`` so no state leaks
    between ephemeral agents.
    """

    def __init__(
        self,
        providers: Dict[str, BaseLLMClient],
        default_model: str,
        default_provider: Optional[str] = None,
        tools: Iterable[BaseTool] = (),
        plugin_factory: Optional[PluginFactory] = None,
        limits: Optional[LimitsConfig] = None,
        tool_execution_mode: ToolExecutionMode = ToolExecutionMode.SEQUENTIAL,
    ):
        if not providers:
            raise ConfigurationError("AgentFactory needs at least one provider")
        self.providers = dict(providers)
        self.default_provider = default_provider or next(iter(self.providers))
        if self.default_provider not in self.providers:
            raise ConfigurationError(f"Unknown default provider '{self.default_provider}'")
        self.default_model = default_model
        self.catalogue = ToolRegistry(tools)
        self.plugin_factory = plugin_factory or default_member_plugins
        self.default_limits = limits or LimitsConfig()
        self.tool_execution_mode = tool_execution_mode
        self.agents_created = 0

    # ------------------------------------------------------------------
    # Resolution helpers
    # ------------------------------------------------------------------
    def resolve_provider(self, name: Optional[str]) -> Tuple[str, BaseLLMClient]:
        name = name or self.default_provider
        client = self.providers.get(name)
        if client is None:
            raise ConfigurationError(f"Provider '{name}' is not available; known: {sorted(self.providers)}")
        return name, client

    def resolve_tools(self, names: Iterable[str]) -> Tuple[List[BaseTool], List[str]]:
        """Look up tools by name in the catalogue; returns (found, missing)."""
        found: List[BaseTool] = []
        missing: List[str] = []
        seen = set()
        for name in names:
            if name in seen:
                continue
            seen.add(name)
            tool = self.catalogue.get(name)
            if tool is None:
                missing.append(name)
            else:
                found.append(tool)
        return found, missing

    # ------------------------------------------------------------------
    # Config builders
    # ------------------------------------------------------------------
    def build_config(
        self,
        name: str,
        system_prompt: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Iterable[BaseTool] = (),
        plugins: Optional[Sequence[BasePlugin]] = None,
        limits: Optional[LimitsConfig] = None,
        template: Optional[str] = None,
    ) -> AgentConfig:
        provider_name, client = self.resolve_provider(provider)
        return AgentConfig(
            name=name,
            provider=ProviderBinding(
                name=provider_name,
                client=client,
                model=model or self.default_model,
                temperature=temperature,
                max_tokens=max_tokens,
            ),
            tools=tuple(tools),
            system_prompt=system_prompt,
            limits=limits or self.default_limits,
            plugins=tuple(self.plugin_factory() if plugins is None else plugins),
            tool_execution_mode=self.tool_execution_mode,
            template=template,
            providers=dict(self.providers),
        )

    def config_from_template(
        self,
        template: AgentTemplate,
        tools: Iterable[BaseTool] = (),
        system_suffix: str = "",
        limits: Optional[LimitsConfig] = None,
        plugins: Optional[Sequence[BasePlugin]] = None,
    ) -> AgentConfig:
        provider = template.provider
        if provider and provider not in self.providers:
            logger.warning(
                f"Template '{template.name}' asks for provider '{provider}', "
                f"falling back to '{self.default_provider}'"
            )
            provider = None
        template_tools, missing = self.resolve_tools(template.tools)
        if missing:
            logger.warning(f"Template '{template.name}' tools not available: {', '.join(missing)}")
        return self.build_config(
            name=template.name,
            system_prompt=template.system_message + system_suffix,
            provider=provider,
            model=template.model,
            temperature=template.temperature,
            max_tokens=template.max_tokens,
            tools=_merge_tools(template_tools, tools),
            plugins=plugins,
            limits=limits,
            template=template.name,
        )

    def config_for_task(
        self,
        job_description: str,
        context: Optional[str] = None,
        tools: Iterable[BaseTool] = (),
        system_suffix: str = "",
        limits: Optional[LimitsConfig] = None,
    ) -> AgentConfig:
        """Ad-hoc specialist built from the job description alone."""
        prompt = f"You are a specialist agent created to handle this specific task: {job_description}"
        if context:
            prompt += f"\n\nAdditional context: {context}"
        return self.build_config(
            name="dynamic_specialist",
            system_prompt=prompt + system_suffix,
            tools=tools,
            limits=limits,
        )

    # ------------------------------------------------------------------
    # Agent creation
    # ------------------------------------------------------------------
    def create_agent(self, config: AgentConfig) -> Agent:
        agent = Agent(config)
        self.agents_created += 1
        logger.debug(f"Created agent '{config.name}' ({agent.agent_id}) with tools {agent.get_tool_names()}")
        return agent

    def create_from_template(self, template: AgentTemplate, overrides: Optional[Dict[str, Any]] = None,
                             tools: Iterable[BaseTool] = (), limits: Optional[LimitsConfig] = None) -> Agent:
        if overrides:
            template = replace(template, **{k: v for k, v in overrides.items() if k != "name"})
        return self.create_agent(self.config_from_template(template, tools=tools, limits=limits))

    def create_ad_hoc(self, job_description: str, context: Optional[str] = None,
                      tools: Iterable[BaseTool] = (), limits: Optional[LimitsConfig] = None) -> Agent:
        return self.create_agent(self.config_for_task(job_description, context, tools=tools, limits=limits))

    @asynccontextmanager
    async def ephemeral(self, config: AgentConfig) -> AsyncIterator[Agent]:
        """Single-use agent, destroyed on every exit path."""
        agent = self.create_agent(config)
        try:
            yield agent
        finally:
            await agent.destroy()

    @classmethod
    def from_options(cls, options: AgentOptions) -> "AgentFactory":
        return cls(
            providers=options.ai_providers,
            default_model=options.current_model,
            default_provider=options.current_provider,
            tools=options.tools,
            limits=LimitsConfig(options.max_token_limit, options.max_request_limit),
            tool_execution_mode=options.tool_execution_mode,
        )


def _merge_tools(*groups: Iterable[BaseTool]) -> List[BaseTool]:
    merged: Dict[str, BaseTool] = {}
    for group in groups:
        for tool in group:
            merged.setdefault(tool.name, tool)
    return list(merged.values())


def create_agent(options: Optional[AgentOptions] = None, **kwargs: Any) -> Agent:
    """Build a top-level agent from options (or option keyword arguments).

    The returned agent owns every provider client in the options and closes
    them on ``destroy()``.
    """
    if options is None:
        options = AgentOptions.build(**kwargs)
    elif kwargs:
        raise ConfigurationError("Pass either an AgentOptions instance or keyword options, not both")

    configure_debug_logging(options.debug)
    factory = AgentFactory.from_options(options)
    config = factory.build_config(
        name=options.name,
        system_prompt=options.system_prompt,
        provider=options.current_provider,
        model=options.current_model,
        temperature=options.temperature,
        max_tokens=options.max_tokens,
        tools=options.tools,
        plugins=options.plugins,
    )
    return factory.create_agent(replace(config, owned_providers=tuple(options.ai_providers.values())))
