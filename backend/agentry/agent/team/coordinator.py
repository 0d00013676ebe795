"""
Team coordinator: runs delegated tasks on short-lived specialist agents.

Each ``assign_task`` call validates the request against the templates that
exist right now, builds an ephemeral agent with only the tools it asked for,
runs it to completion and destroys it on every exit path. Failures of the
delegated run come back as a failed DelegationResult; they are never raised
into the parent conversation.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union

from pydantic import ValidationError as PydanticValidationError

from ..base_agent import AgentConfig, LimitsConfig
from ..configs.agent_templates import AgentTemplateManager
from ..core.runtime.models import utc_now
from ..errors import AgentError, DelegationFailure, ValidationError
from ..factory import AgentFactory
from ..tools.base_tool import BaseTool, _format_pydantic_error
from .delegation_tool import DELEGATION_TOOL_NAME, AssignTaskTool
from .schema import (
    AssignTaskParams,
    DelegationMetadata,
    DelegationRecord,
    DelegationRequest,
    DelegationResult,
    build_assign_task_model,
)

logger = logging.getLogger(__name__)

DELEGATION_GUIDANCE = (
    "\n\nDELEGATION: you may hand self-contained sub-tasks to other specialists with the "
    "assignTask tool when that clearly improves the result. Handle everything else yourself."
)
DIRECT_EXECUTION = (
    "\n\nDIRECT EXECUTION: complete this task yourself. Delegation is not available."
)


def build_task_prompt(request: DelegationRequest, tool_names: Sequence[str]) -> str:
    parts = [f"Task: {request.job_description}"]
    if request.context:
        parts.append(f"Context: {request.context}")
    if tool_names:
        parts.append(f"Available tools: {', '.join(tool_names)}")
    parts.append(f"Priority: {request.priority.value}")
    parts.append("Please complete this task thoroughly and provide a comprehensive response.")
    return "\n\n".join(parts)


class TeamCoordinator:
    """Delegates tasks to ephemeral agents built by an AgentFactory."""

    def __init__(
        self,
        factory: AgentFactory,
        templates: Optional[AgentTemplateManager] = None,
        baseline_tools: Sequence[str] = (),
        allow_dynamic_agents: bool = True,
        max_members: int = 5,
        member_limits: Optional[LimitsConfig] = None,
        max_delegation_depth: Optional[int] = None,
        depth: int = 0,
    ):
        self.factory = factory
        self.templates = templates or AgentTemplateManager()
        self.baseline_tools = list(baseline_tools)
        self.allow_dynamic_agents = allow_dynamic_agents
        self.max_members = max_members
        self.member_limits = member_limits
        self.max_delegation_depth = max_delegation_depth
        self.depth = depth

        self.active_agents = 0
        self.total_agents_created = 0
        self.tasks_completed = 0
        self.tasks_failed = 0
        self.total_execution_time = 0.0
        self.delegation_history: List[DelegationRecord] = []

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def request_model(self) -> Type[AssignTaskParams]:
        """assignTask parameter model for the templates registered right now."""
        return build_assign_task_model(self.templates.names(), self.templates.describe())

    def validate_request(self, params: Union[Mapping[str, Any], DelegationRequest]) -> DelegationRequest:
        if isinstance(params, DelegationRequest):
            params = params.to_params()
        try:
            validated = self.request_model().model_validate(dict(params))
        except PydanticValidationError as e:
            raise _format_pydantic_error(DELEGATION_TOOL_NAME, e) from e
        request = DelegationRequest.from_params(validated)
        if request.agent_template is None and not self.allow_dynamic_agents:
            raise ValidationError(
                "agentTemplate is required: dynamic agent creation is disabled for this team",
                field="agentTemplate",
            )
        return request

    # ------------------------------------------------------------------
    # Member construction
    # ------------------------------------------------------------------
    def can_delegate_further(self, request: DelegationRequest) -> bool:
        if not request.allow_further_delegation:
            return False
        if self.max_delegation_depth is not None and self.depth + 1 >= self.max_delegation_depth:
            logger.warning(
                f"Further delegation requested at depth {self.depth + 1} but the limit is "
                f"{self.max_delegation_depth}; the member will not get {DELEGATION_TOOL_NAME}"
            )
            return False
        return True

    def child(self) -> "TeamCoordinator":
        """Coordinator used by a member that may delegate again; one level deeper."""
        return TeamCoordinator(
            factory=self.factory,
            templates=self.templates,
            baseline_tools=self.baseline_tools,
            allow_dynamic_agents=self.allow_dynamic_agents,
            max_members=self.max_members,
            member_limits=self.member_limits,
            max_delegation_depth=self.max_delegation_depth,
            depth=self.depth + 1,
        )

    def _member_tools(self, request: DelegationRequest) -> List[BaseTool]:
        requested = list(request.required_tools) + [n for n in self.baseline_tools if n not in request.required_tools]
        requested = [n for n in requested if n != DELEGATION_TOOL_NAME]
        tools, missing = self.factory.resolve_tools(requested)
        if missing:
            logger.warning(f"Requested tools not available and skipped: {', '.join(missing)}")
        if self.can_delegate_further(request):
            tools.append(AssignTaskTool(self.child()))
        return tools

    def build_member_config(self, request: DelegationRequest) -> AgentConfig:
        tools = self._member_tools(request)
        suffix = DELEGATION_GUIDANCE if any(t.name == DELEGATION_TOOL_NAME for t in tools) else DIRECT_EXECUTION
        if request.agent_template:
            template = self.templates.get_template(request.agent_template)
            if template is None:
                raise ValidationError(f"Unknown agent template '{request.agent_template}'", field="agentTemplate")
            return self.factory.config_from_template(template, tools=tools, system_suffix=suffix,
                                                     limits=self.member_limits)
        return self.factory.config_for_task(request.job_description, request.context, tools=tools,
                                            system_suffix=suffix, limits=self.member_limits)

    # ------------------------------------------------------------------
    # Delegation
    # ------------------------------------------------------------------
    async def assign_task(self, params: Union[Mapping[str, Any], DelegationRequest]) -> DelegationResult:
        """Run one delegated task. Raises ValidationError only for malformed requests."""
        request = self.validate_request(params)
        record = DelegationRecord(
            delegation_id=str(uuid.uuid4()),
            task=request.job_description,
            priority=request.priority.value,
            agent_template=request.agent_template,
            started_at=utc_now().isoformat(),
        )
        self.delegation_history.append(record)

        if self.active_agents >= self.max_members:
            message = f"Team is at capacity ({self.max_members} active members); task not started"
            logger.warning(message)
            return self._finish(record, request, None, 0.0, None, DelegationFailure(message))

        try:
            config = self.build_member_config(request)
        except ValidationError:
            raise
        except AgentError as e:
            logger.error(f"Could not configure member agent: {e}")
            return self._finish(record, request, None, 0.0, None, DelegationFailure(e.message, original=e))

        started = time.perf_counter()
        agent_id: Optional[str] = None
        tokens_used: Optional[int] = None
        text: Optional[str] = None
        failure: Optional[DelegationFailure] = None

        self.active_agents += 1
        self.total_agents_created += 1
        try:
            async with self.factory.ephemeral(config) as agent:
                agent_id = agent.agent_id
                logger.info(f"Delegating task to '{config.name}' ({agent_id}), priority {request.priority.value}")
                try:
                    text = await agent.run(build_task_prompt(request, agent.get_tool_names()))
                finally:
                    tokens_used = agent.get_total_tokens_used()
        except Exception as e:
            logger.error(f"Delegated task failed on '{config.name}': {e}")
            failure = e if isinstance(e, DelegationFailure) else DelegationFailure(str(e), agent_id, original=e)
        finally:
            self.active_agents -= 1

        if failure is None and not (text or "").strip():
            failure = DelegationFailure("Member agent returned an empty result", agent_id)
        elapsed_ms = (time.perf_counter() - started) * 1000
        return self._finish(record, request, agent_id, elapsed_ms, tokens_used, failure, text)

    def _finish(self, record: DelegationRecord, request: DelegationRequest, agent_id: Optional[str],
                elapsed_ms: float, tokens_used: Optional[int], failure: Optional[DelegationFailure],
                text: Optional[str] = None) -> DelegationResult:
        success = failure is None
        record.agent_id = agent_id
        record.finished_at = utc_now().isoformat()
        record.duration_ms = elapsed_ms
        record.success = success
        record.tokens_used = tokens_used
        record.error = None if success else failure.message
        if success:
            self.tasks_completed += 1
        else:
            self.tasks_failed += 1
        self.total_execution_time += elapsed_ms

        return DelegationResult(
            agent_id=agent_id,
            result=text if success else f"Task failed: {failure.message}",
            metadata=DelegationMetadata(
                execution_time=elapsed_ms,
                success=success,
                tokens_used=tokens_used,
                agent_template=request.agent_template,
                priority=request.priority.value,
                errors=() if success else (failure.message,),
            ),
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def get_stats(self) -> Dict[str, Any]:
        finished = self.tasks_completed + self.tasks_failed
        return {
            "depth": self.depth,
            "active_agents": self.active_agents,
            "total_agents_created": self.total_agents_created,
            "tasks_completed": self.tasks_completed,
            "tasks_failed": self.tasks_failed,
            "total_execution_time_ms": round(self.total_execution_time, 2),
            "average_execution_time_ms": round(self.total_execution_time / finished, 2) if finished else 0.0,
        }

    def get_delegation_history(self) -> List[DelegationRecord]:
        return list(self.delegation_history)

    def get_execution_analysis(self) -> Dict[str, Any]:
        """Per-template breakdown of finished delegations"""
        breakdown: Dict[str, Dict[str, Any]] = {}
        for record in self.delegation_history:
            if record.success is None:
                continue
            key = record.agent_template or "dynamic"
            entry = breakdown.setdefault(key, {"count": 0, "successes": 0, "total_duration_ms": 0.0})
            entry["count"] += 1
            entry["successes"] += 1 if record.success else 0
            entry["total_duration_ms"] += record.duration_ms or 0.0

        for entry in breakdown.values():
            entry["average_duration_ms"] = round(entry["total_duration_ms"] / entry["count"], 2)
            entry["success_rate"] = round(entry["successes"] / entry["count"], 4)
        total = sum(e["count"] for e in breakdown.values())
        return {"total_delegations": total, "by_template": breakdown}

    def reset_stats(self) -> None:
        self.total_agents_created = 0
        self.tasks_completed = 0
        self.tasks_failed = 0
        self.total_execution_time = 0.0
        self.delegation_history.clear()

    def get_templates(self) -> List[str]:
        return self.templates.names()
