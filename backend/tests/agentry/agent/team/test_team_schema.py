"""
Tests for delegation request and result types
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from agentry.agent.team.schema import (
    AssignTaskParams,
    DelegationMetadata,
    DelegationRequest,
    DelegationResult,
    TaskPriority,
    build_assign_task_model,
)


class TestAssignTaskModel:
    """Test the assignTask parameter model"""

    def test_camel_case_schema(self):
        schema = AssignTaskParams.model_json_schema(by_alias=True)
        assert set(schema["properties"]) == {
            "jobDescription", "context", "requiredTools", "priority", "agentTemplate", "allowFurtherDelegation",
        }
        assert schema["required"] == ["jobDescription"]

    def test_defaults(self):
        params = AssignTaskParams.model_validate({"jobDescription": "do it"})
        assert params.priority == TaskPriority.MEDIUM
        assert params.required_tools == []
        assert params.allow_further_delegation is False

    def test_snake_case_accepted(self):
        params = AssignTaskParams.model_validate({"job_description": "do it", "allow_further_delegation": True})
        assert params.allow_further_delegation

    def test_unknown_keys_rejected(self):
        with pytest.raises(PydanticValidationError):
            AssignTaskParams.model_validate({"jobDescription": "x", "deadline": "tomorrow"})

    def test_empty_job_rejected(self):
        with pytest.raises(PydanticValidationError):
            AssignTaskParams.model_validate({"jobDescription": ""})

    def test_template_enum(self):
        model = build_assign_task_model(["summarizer", "general"], "- summarizer: sums")
        assert model.model_validate({"jobDescription": "x", "agentTemplate": "summarizer"}).agent_template == "summarizer"
        assert model.model_validate({"jobDescription": "x"}).agent_template is None
        with pytest.raises(PydanticValidationError):
            model.model_validate({"jobDescription": "x", "agentTemplate": "wizard"})
        description = model.model_json_schema(by_alias=True)["properties"]["agentTemplate"]["description"]
        assert "- summarizer: sums" in description

    def test_no_templates_only_allows_empty(self):
        model = build_assign_task_model([])
        assert model.model_validate({"jobDescription": "x"}).agent_template is None
        with pytest.raises(PydanticValidationError):
            model.model_validate({"jobDescription": "x", "agentTemplate": "general"})


class TestDelegationTypes:
    """Test DelegationRequest and DelegationResult"""

    def test_request_round_trip_through_params(self):
        request = DelegationRequest("job", context="ctx", required_tools=("a",), priority=TaskPriority.HIGH,
                                    agent_template="general", allow_further_delegation=True)
        params = AssignTaskParams.model_validate(request.to_params())
        assert DelegationRequest.from_params(params) == request

    def test_result_to_dict(self):
        result = DelegationResult("agent-1", "Task failed: x",
                                  DelegationMetadata(execution_time=1.5, success=False, errors=("x",)))
        data = result.to_dict()
        assert not result.success
        assert data["metadata"]["errors"] == ["x"]
        assert data["agent_id"] == "agent-1"
