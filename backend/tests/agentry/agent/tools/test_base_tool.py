"""
Tests for base tool validation and function tools
"""

from typing import List, Optional

import pytest
from pydantic import BaseModel, Field

from agentry.agent.core.runtime.models import ToolResult
from agentry.agent.errors import ValidationError
from agentry.agent.tools.base_tool import BaseTool, FunctionTool, tool


class SearchArgs(BaseModel):
    query: str = Field(..., min_length=1, description="What to look for")
    limit: int = 5
    tags: Optional[List[str]] = None


class SearchTool(BaseTool):
    args_model = SearchArgs

    def __init__(self):
        super().__init__()
        self.name = "search"
        self.description = "Search documents"

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=True, data=kwargs)


class SchemaOnlyTool(BaseTool):
    """Tool that declares a raw JSON schema instead of a model"""

    def __init__(self):
        self.name = "schema_only"
        self.description = "Raw schema tool"
        self.parameters = {
            "type": "object",
            "properties": {"path": {"type": "string"}},
            "required": ["path"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=True, data=kwargs["path"])


class TestBaseTool:
    """Test BaseTool schema and validation"""

    def test_parameters_from_model(self):
        search = SearchTool()
        assert search.parameters["properties"]["query"]["description"] == "What to look for"
        assert search.parameters["required"] == ["query"]

    def test_openai_format(self):
        function = SearchTool().to_openai_function()
        assert function["name"] == "search"
        assert function["description"] == "Search documents"
        assert SearchTool().to_openai_tool()["type"] == "function"

    def test_validate_applies_defaults(self):
        assert SearchTool().validate_arguments({"query": "x"}) == {"query": "x", "limit": 5, "tags": None}

    def test_validate_rejects_bad_types(self):
        with pytest.raises(ValidationError) as exc_info:
            SearchTool().validate_arguments({"query": "x", "limit": "many"})
        assert exc_info.value.field == "limit"
        assert "search" in exc_info.value.message

    def test_validate_rejects_empty_query(self):
        with pytest.raises(ValidationError):
            SearchTool().validate_arguments({"query": ""})

    def test_validate_rejects_non_object(self):
        with pytest.raises(ValidationError):
            SearchTool().validate_arguments(["query"])

    def test_none_is_empty_object(self):
        with pytest.raises(ValidationError):
            SearchTool().validate_arguments(None)

    def test_required_keys_without_model(self):
        schema_tool = SchemaOnlyTool()
        assert schema_tool.validate_arguments({"path": "/tmp"}) == {"path": "/tmp"}
        with pytest.raises(ValidationError) as exc_info:
            schema_tool.validate_arguments({})
        assert exc_info.value.field == "path"


class TestFunctionTool:
    """Test FunctionTool wrapping"""

    @pytest.mark.asyncio
    async def test_sync_handler(self):
        echo = FunctionTool("echo", "Echo", lambda text: text.upper(),
                            parameters={"type": "object", "properties": {"text": {"type": "string"}}})
        result = await echo.execute(text="hi")
        assert result.success
        assert result.data == "HI"

    @pytest.mark.asyncio
    async def test_async_handler_returning_tool_result(self):
        async def handler(query, limit, tags):
            return ToolResult(success=False, error=f"nothing for {query}")

        search = FunctionTool("search", "Search", handler, args_model=SearchArgs)
        result = await search.execute(**search.validate_arguments({"query": "cats"}))
        assert not result.success
        assert result.error == "nothing for cats"

    def test_default_parameters(self):
        assert FunctionTool("noop", "Nothing", lambda: None).parameters == {"type": "object", "properties": {}}

    @pytest.mark.asyncio
    async def test_decorator(self):
        @tool("shout", "Shout text")
        async def shout():
            return "HEY"

        assert isinstance(shout, FunctionTool)
        assert shout.name == "shout"
        assert (await shout.execute()).data == "HEY"


class TestSchemaParameters:
    """Raw JSON-schema parameters are validated as strictly as a model"""

    schema = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File to read"},
            "mode": {"type": "string", "enum": ["text", "binary"]},
            "lines": {"type": "array", "items": {"type": "integer"}},
            "ratio": {"type": "number"},
            "encoding": {"type": ["string", "null"]},
            "options": {
                "type": "object",
                "properties": {"follow": {"type": "boolean"}},
                "required": ["follow"],
            },
        },
        "required": ["path"],
        "additionalProperties": False,
    }

    def make_tool(self):
        return FunctionTool("read", "Read", lambda **kwargs: kwargs, parameters=self.schema)

    def test_valid_arguments_pass_through(self):
        args = {"path": "a.txt", "mode": "text", "lines": [1, 2], "ratio": 2, "options": {"follow": True}}
        assert self.make_tool().validate_arguments(args) == args

    def test_omitted_optionals_are_not_passed(self):
        assert self.make_tool().validate_arguments({"path": "a.txt"}) == {"path": "a.txt"}

    @pytest.mark.parametrize("args,field", [
        ({"path": 3}, "path"),
        ({"path": "a", "mode": "csv"}, "mode"),
        ({"path": "a", "lines": ["one"]}, "lines.0"),
        ({"path": "a", "ratio": "1.5"}, "ratio"),
        ({"path": "a", "options": {}}, "options.follow"),
        ({"path": "a", "unexpected": 1}, "unexpected"),
    ])
    def test_schema_violations(self, args, field):
        with pytest.raises(ValidationError) as exc_info:
            self.make_tool().validate_arguments(args)
        assert exc_info.value.field.startswith(field)

    def test_nullable_type(self):
        assert self.make_tool().validate_arguments({"path": "a", "encoding": None}) == {"path": "a", "encoding": None}

    def test_property_names_that_shadow_model_attributes(self):
        schema = {"type": "object", "properties": {"schema": {"type": "string"}, "copy": {"type": "boolean"}}}
        tool_ = FunctionTool("odd", "Odd names", lambda **kwargs: kwargs, parameters=schema)
        assert tool_.validate_arguments({"schema": "s", "copy": False}) == {"schema": "s", "copy": False}

    def test_model_rebuilt_when_parameters_replaced(self):
        schema_tool = SchemaOnlyTool()
        assert schema_tool.validate_arguments({"path": "/tmp"}) == {"path": "/tmp"}
        schema_tool.parameters = {"type": "object", "properties": {"count": {"type": "integer"}}, "required": ["count"]}
        with pytest.raises(ValidationError):
            schema_tool.validate_arguments({"path": "/tmp"})
