"""
Delegation request/result types and the assignTask parameter model.

The parameter model is rebuilt from the current template names whenever it
is needed, so ``agentTemplate`` only ever accepts templates that exist at
call time.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, create_model


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AssignTaskParams(BaseModel):
    """assignTask parameters; camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    job_description: str = Field(
        ..., alias="jobDescription", min_length=1,
        description="Clear, specific description of the job to be completed. Must be self-contained.",
    )
    context: Optional[str] = Field(
        None, description="Additional context, constraints or requirements for the job.",
    )
    required_tools: List[str] = Field(
        default_factory=list, alias="requiredTools",
        description="Names of tools the specialist needs for this task.",
    )
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority level.")
    agent_template: Optional[str] = Field(
        None, alias="agentTemplate",
        description="Specialist template to use. Leave empty to create an agent for this job.",
    )
    allow_further_delegation: bool = Field(
        False, alias="allowFurtherDelegation",
        description="Allow the specialist to delegate parts of the job again. Only for very complex tasks.",
    )


def build_assign_task_model(template_names: Sequence[str], template_help: str = "") -> Type[AssignTaskParams]:
    """Parameter model whose ``agentTemplate`` is restricted to ``template_names``."""
    description = "Specialist template to use. Leave empty to create an agent for this job."
    if template_help:
        description += "\nAvailable templates:\n" + template_help
    # With no templates registered only an empty value is valid
    template_type: Any = Optional[Literal[tuple(template_names)]] if template_names else type(None)
    return create_model(
        "AssignTaskParams",
        __base__=AssignTaskParams,
        agent_template=(template_type, Field(None, alias="agentTemplate", description=description)),
    )


@dataclass(frozen=True)
class DelegationRequest:
    job_description: str
    context: Optional[str] = None
    required_tools: Tuple[str, ...] = ()
    priority: TaskPriority = TaskPriority.MEDIUM
    agent_template: Optional[str] = None
    allow_further_delegation: bool = False

    @classmethod
    def from_params(cls, params: AssignTaskParams) -> "DelegationRequest":
        return cls(
            job_description=params.job_description,
            context=params.context,
            required_tools=tuple(params.required_tools),
            priority=TaskPriority(params.priority),
            agent_template=params.agent_template,
            allow_further_delegation=params.allow_further_delegation,
        )

    def to_params(self) -> Dict[str, Any]:
        return {
            "job_description": self.job_description,
            "context": self.context,
            "required_tools": list(self.required_tools),
            "priority": self.priority.value,
            "agent_template": self.agent_template,
            "allow_further_delegation": self.allow_further_delegation,
        }


@dataclass(frozen=True)
class DelegationMetadata:
    execution_time: float
    success: bool
    tokens_used: Optional[int] = None
    agent_template: Optional[str] = None
    priority: Optional[str] = None
    errors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DelegationResult:
    agent_id: Optional[str]
    result: str
    metadata: DelegationMetadata

    @property
    def success(self) -> bool:
        return self.metadata.success

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["metadata"]["errors"] = list(self.metadata.errors)
        return data


@dataclass
class DelegationRecord:
    """History entry kept by the coordinator for each assignTask call."""
    delegation_id: str
    task: str
    priority: str
    agent_template: Optional[str]
    agent_id: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_ms: Optional[float] = None
    success: Optional[bool] = None
    tokens_used: Optional[int] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
