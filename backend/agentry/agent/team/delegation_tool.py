"""
The assignTask tool: delegation exposed through the ordinary tool interface.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional, Type

from pydantic import BaseModel

from ..core.runtime.models import ToolResult
from ..tools.base_tool import BaseTool
from .schema import DelegationResult

if TYPE_CHECKING:
    from .coordinator import TeamCoordinator

DELEGATION_TOOL_NAME = "assignTask"

TOOL_DESCRIPTION = (
    "Assign a specialized task to a temporary expert agent. The agent is created for this task, "
    "runs it to completion and is removed afterwards. Use it for work that benefits from a "
    "dedicated specialist; describe the job so it can be understood without this conversation."
)


def format_result_for_llm(result: DelegationResult) -> str:
    """Tool-message text the delegating agent sees."""
    if not result.success:
        errors = "; ".join(result.metadata.errors) or "unknown error"
        return f"{result.result}\n\nErrors: {errors}"

    text = (
        f"Task completed successfully by {result.agent_id}.\n\n"
        f"Result:\n{result.result}\n\n"
        f"Execution time: {round(result.metadata.execution_time)}ms"
    )
    if result.metadata.tokens_used is not None:
        text += f"\nTokens used: {result.metadata.tokens_used}"
    return text


class AssignTaskTool(BaseTool):
    """Tool wrapper around TeamCoordinator.assign_task.

    The parameter schema is rebuilt from the coordinator's templates on
    every validation, so templates registered after the tool was created are
    accepted and removed ones are rejected.
    """

    def __init__(self, coordinator: "TeamCoordinator"):
        super().__init__()
        self.coordinator = coordinator
        self.name = DELEGATION_TOOL_NAME
        self.description = TOOL_DESCRIPTION
        self.parameters = self.get_args_model().model_json_schema(by_alias=True)
        self.last_result: Optional[DelegationResult] = None

    def get_args_model(self) -> Type[BaseModel]:
        return self.coordinator.request_model()

    def to_openai_function(self) -> Dict[str, Any]:
        self.parameters = self.get_args_model().model_json_schema(by_alias=True)
        templates = self.coordinator.templates.describe()
        description = self.description
        if templates:
            description += "\n\nAvailable agent templates:\n" + templates
        return {"name": self.name, "description": description, "parameters": self.parameters}

    async def execute(self, **kwargs) -> ToolResult:
        result = await self.coordinator.assign_task(kwargs)
        self.last_result = result
        text = format_result_for_llm(result)
        if result.success:
            return ToolResult(success=True, data=text)
        return ToolResult(success=False, data=result.to_dict(), error=text)
