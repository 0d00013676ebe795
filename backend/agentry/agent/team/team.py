"""
Team: a leader agent that can delegate through the assignTask tool.
"""

import logging
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional, Sequence, Union

from ..base_agent import Agent, LimitsConfig
from ..configs.agent_templates import AgentTemplateManager
from ..core.llm.base import BaseLLMClient
from ..core.runtime.tool_executor import ToolExecutionMode
from ..errors import ConfigurationError
from ..factory import AgentFactory, PluginFactory
from ..plugins.base import BasePlugin
from ..tools.base_tool import BaseTool
from .coordinator import TeamCoordinator
from .delegation_tool import AssignTaskTool
from .schema import DelegationRequest, DelegationResult

logger = logging.getLogger(__name__)


class Team:
    def __init__(self, leader: Agent, coordinator: TeamCoordinator):
        self.leader = leader
        self.coordinator = coordinator

    async def execute(self, prompt: str) -> str:
        return await self.leader.run(prompt)

    async def execute_stream(self, prompt: str) -> AsyncIterator[str]:
        stream = self.leader.run_stream(prompt)
        try:
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()

    async def assign_task(self, params: Union[Mapping[str, Any], DelegationRequest]) -> DelegationResult:
        """Delegate directly, without going through the leader."""
        return await self.coordinator.assign_task(params)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "leader": self.leader.get_analytics(),
            "team": self.coordinator.get_stats(),
            "execution_analysis": self.coordinator.get_execution_analysis(),
        }

    async def destroy(self) -> None:
        await self.leader.destroy()

    async def __aenter__(self) -> "Team":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.destroy()


def create_team(
    providers: Dict[str, BaseLLMClient],
    default_model: str,
    default_provider: Optional[str] = None,
    tools: Iterable[BaseTool] = (),
    templates: Optional[AgentTemplateManager] = None,
    leader_template: str = "task_coordinator",
    leader_tools: Sequence[str] = (),
    leader_plugins: Optional[Sequence[BasePlugin]] = None,
    leader_limits: Optional[LimitsConfig] = None,
    member_limits: Optional[LimitsConfig] = None,
    member_plugin_factory: Optional[PluginFactory] = None,
    baseline_tools: Sequence[str] = (),
    max_members: int = 5,
    max_delegation_depth: Optional[int] = None,
    allow_dynamic_agents: bool = True,
    tool_execution_mode: ToolExecutionMode = ToolExecutionMode.SEQUENTIAL,
) -> Team:
    """Build a leader agent from ``leader_template`` wired with the delegation tool."""
    factory = AgentFactory(
        providers=providers,
        default_model=default_model,
        default_provider=default_provider,
        tools=tools,
        plugin_factory=member_plugin_factory,
        tool_execution_mode=tool_execution_mode,
    )
    templates = templates or AgentTemplateManager()
    template = templates.get_template(leader_template)
    if template is None:
        raise ConfigurationError(f"Leader template '{leader_template}' is not registered")

    coordinator = TeamCoordinator(
        factory=factory,
        templates=templates,
        baseline_tools=baseline_tools,
        allow_dynamic_agents=allow_dynamic_agents,
        max_members=max_members,
        member_limits=member_limits,
        max_delegation_depth=max_delegation_depth,
    )
    extra_tools, missing = factory.resolve_tools(leader_tools)
    if missing:
        logger.warning(f"Leader tools not available: {', '.join(missing)}")

    config = factory.config_from_template(
        template,
        tools=[AssignTaskTool(coordinator), *extra_tools],
        limits=leader_limits,
        plugins=leader_plugins,
    )
    return Team(factory.create_agent(config), coordinator)
