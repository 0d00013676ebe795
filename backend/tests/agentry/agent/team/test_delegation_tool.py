"""
Tests for the assignTask tool
"""

import json

import pytest

from agentry.agent.configs.agent_templates import AgentTemplate, AgentTemplateManager
from agentry.agent.factory import AgentFactory
from agentry.agent.team.coordinator import TeamCoordinator
from agentry.agent.team.delegation_tool import DELEGATION_TOOL_NAME, AssignTaskTool, format_result_for_llm
from agentry.agent.team.schema import DelegationMetadata, DelegationResult
from agentry.agent.tools.tool_registry import ToolRegistry
from agentry.agent.errors import ValidationError


def make_tool(provider, templates=None):
    factory = AgentFactory(providers={"p": provider}, default_model="m")
    return AssignTaskTool(TeamCoordinator(factory, templates=templates))


class TestAssignTaskTool:
    """Test the delegation tool surface"""

    def test_schema_lists_templates(self, provider_factory):
        tool = make_tool(provider_factory())
        function = tool.to_openai_function()
        assert function["name"] == DELEGATION_TOOL_NAME
        assert "- summarizer:" in function["description"]
        assert "summarizer" in json.dumps(function["parameters"])
        assert "jobDescription" in function["parameters"]["properties"]

    def test_schema_tracks_new_templates(self, provider_factory):
        templates = AgentTemplateManager(include_builtin=False)
        tool = make_tool(provider_factory(), templates)
        assert "legal" not in json.dumps(tool.to_openai_function())
        templates.register_template(AgentTemplate("legal", "Legal reviewer", "You review contracts."))
        assert "legal" in json.dumps(tool.to_openai_function()["parameters"])
        assert tool.validate_arguments({"jobDescription": "x", "agentTemplate": "legal"})["agent_template"] == "legal"

    @pytest.mark.asyncio
    async def test_execute_through_registry(self, provider_factory, scripted):
        tool = make_tool(provider_factory(scripted.reply("Summary done")))
        registry = ToolRegistry([tool])
        result = await registry.execute(DELEGATION_TOOL_NAME, {
            "jobDescription": "Summarize this",
            "agentTemplate": "summarizer",
            "priority": "low",
        })
        assert result.success
        assert result.data.startswith("Task completed successfully by ")
        assert "Summary done" in result.data
        assert "Tokens used: 15" in result.data
        assert tool.last_result.metadata.priority == "low"

    @pytest.mark.asyncio
    async def test_unknown_template_rejected_before_execution(self, provider_factory):
        provider = provider_factory()
        registry = ToolRegistry([make_tool(provider)])
        with pytest.raises(ValidationError):
            await registry.execute(DELEGATION_TOOL_NAME, {"jobDescription": "x", "agentTemplate": "wizard"})
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_failed_delegation_is_tool_failure(self, provider_factory):
        tool = make_tool(provider_factory(RuntimeError("no luck")))
        result = await tool.execute(job_description="Try it")
        assert not result.success
        assert result.error.startswith("Task failed: ")
        assert "Errors: " in result.error
        assert result.data["metadata"]["success"] is False


def test_format_success():
    result = DelegationResult("agent-9", "All good", DelegationMetadata(execution_time=12.4, success=True))
    text = format_result_for_llm(result)
    assert text == "Task completed successfully by agent-9.\n\nResult:\nAll good\n\nExecution time: 12ms"
