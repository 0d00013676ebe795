"""
Base tool interface for agent tools
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, create_model
from pydantic import ValidationError as PydanticValidationError

from ..core.runtime.models import ToolResult
from ..errors import ValidationError


def _format_pydantic_error(tool_name: str, error: PydanticValidationError) -> ValidationError:
    problems = []
    first_field = None
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        first_field = first_field or location
        problems.append(f"{location}: {item.get('msg')}")
    return ValidationError(
        f"Invalid parameters for tool '{tool_name}': " + "; ".join(problems),
        field=first_field,
        context={"tool_name": tool_name},
    )


_JSON_TYPES: Dict[str, Any] = {
    "string": StrictStr,
    "integer": StrictInt,
    "number": Union[StrictInt, StrictFloat],
    "boolean": StrictBool,
    "null": type(None),
}


def _annotation_for(schema: Dict[str, Any], name: str) -> Any:
    if "enum" in schema:
        return Literal[tuple(schema["enum"])]
    kind = schema.get("type")
    if isinstance(kind, list):
        options = tuple(_annotation_for({**schema, "type": k}, name) for k in kind)
        return Union[options] if len(options) > 1 else options[0]
    if kind == "array":
        items = schema.get("items")
        return List[_annotation_for(items, name) if isinstance(items, dict) else Any]
    if kind == "object":
        if schema.get("properties"):
            return model_from_json_schema(name, schema)
        return Dict[str, Any]
    return _JSON_TYPES.get(kind, Any)


def model_from_json_schema(name: str, schema: Dict[str, Any]) -> Type[BaseModel]:
    """Build a strict pydantic model from a JSON-schema object definition.

    Covers the subset tool schemas use: primitive types, ``enum``, arrays,
    nested objects, type unions, ``required`` and ``additionalProperties``.
    Property names become aliases, so any key is allowed.
    """
    required = set(schema.get("required", []))
    fields: Dict[str, Any] = {}
    for index, (prop, prop_schema) in enumerate((schema.get("properties") or {}).items()):
        prop_schema = prop_schema or {}
        annotation = _annotation_for(prop_schema, f"{name}_{prop}")
        if prop in required:
            default: Any = ...
        else:
            annotation = Optional[annotation]
            default = prop_schema.get("default")
        fields[f"field_{index}"] = (
            annotation,
            Field(default, alias=prop, description=prop_schema.get("description")),
        )
    extra = "forbid" if schema.get("additionalProperties") is False else "allow"
    return create_model(name, __config__=ConfigDict(extra=extra), **fields)


class BaseTool(ABC):
    """Base class for all agent tools

    Parameters are declared with a pydantic ``args_model``; its JSON schema is
    what the provider sees and its validation runs before ``execute``. Tools
    without a model may set a JSON-schema ``parameters`` dict directly; a strict
    model is derived from it (see ``model_from_json_schema``) and validated the
    same way.
    """

    args_model: Optional[Type[BaseModel]] = None

    def __init__(self):
        """Initialize tool with required properties"""
        self.name: str = ""
        self.description: str = ""
        self.parameters: Dict[str, Any] = {}
        if self.args_model is not None:
            self.parameters = self.args_model.model_json_schema(by_alias=True)

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult:
        """Execute the tool with given parameters"""
        pass

    def get_args_model(self) -> Optional[Type[BaseModel]]:
        """Model used for validation. Tools with a dynamic surface override this."""
        return self.args_model

    def _schema_model(self) -> Optional[Type[BaseModel]]:
        """Model derived from ``parameters``, rebuilt when the dict is replaced."""
        parameters = getattr(self, "parameters", None) or {}
        if not parameters.get("properties"):
            return None
        cached = getattr(self, "_schema_cache", None)
        if cached is None or cached[0] is not parameters:
            cached = (parameters, model_from_json_schema(f"{self.name or 'tool'}_params", parameters))
            self._schema_cache = cached
        return cached[1]

    def validate_arguments(self, raw_params: Any) -> Dict[str, Any]:
        """Return handler kwargs or raise ValidationError; never calls the handler."""
        if raw_params is None:
            raw_params = {}
        if not isinstance(raw_params, dict):
            raise ValidationError(
                f"Parameters for tool '{self.name}' must be an object, got {type(raw_params).__name__}",
                context={"tool_name": self.name},
            )

        model = self.get_args_model()
        if model is not None:
            try:
                return model.model_validate(raw_params).model_dump()
            except PydanticValidationError as e:
                raise _format_pydantic_error(self.name, e) from e

        schema_model = self._schema_model()
        if schema_model is not None:
            try:
                validated = schema_model.model_validate(raw_params)
            except PydanticValidationError as e:
                raise _format_pydantic_error(self.name, e) from e
            return validated.model_dump(by_alias=True, exclude_unset=True)

        missing = [p for p in self.parameters.get("required", []) if p not in raw_params]
        if missing:
            raise ValidationError(
                f"Missing required parameters for tool '{self.name}': {', '.join(missing)}",
                field=missing[0],
                context={"tool_name": self.name},
            )
        return dict(raw_params)

    def to_openai_function(self) -> Dict[str, Any]:
        """Convert tool to OpenAI function calling format"""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters
        }

    def to_openai_tool(self) -> Dict[str, Any]:
        return {"type": "function", "function": self.to_openai_function()}


ToolHandler = Callable[..., Union[Any, Awaitable[Any]]]


class FunctionTool(BaseTool):
    """Wrap a plain (sync or async) function as a tool.

    The function receives the validated parameters as keyword arguments. A
    returned ``ToolResult`` is passed through; any other value becomes the
    result data.
    """

    def __init__(self, name: str, description: str, handler: ToolHandler,
                 args_model: Optional[Type[BaseModel]] = None,
                 parameters: Optional[Dict[str, Any]] = None):
        self.args_model = args_model
        super().__init__()
        self.name = name
        self.description = description
        self.handler = handler
        if args_model is None:
            self.parameters = parameters or {"type": "object", "properties": {}}
            self._schema_model()

    async def execute(self, **kwargs) -> ToolResult:
        if inspect.iscoroutinefunction(self.handler):
            value = await self.handler(**kwargs)
        else:
            value = self.handler(**kwargs)
            if asyncio.iscoroutine(value):
                value = await value
        if isinstance(value, ToolResult):
            return value
        return ToolResult(success=True, data=value)


def tool(name: str, description: str, args_model: Optional[Type[BaseModel]] = None):
    """Decorator form of FunctionTool."""
    def decorator(func: ToolHandler) -> FunctionTool:
        return FunctionTool(name=name, description=description, handler=func, args_model=args_model)
    return decorator
