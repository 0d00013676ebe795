"""
Tool registry for managing agent tools

A registry is built for one agent configuration and handed to it explicitly.
It is read-only once an agent starts using it, so ephemeral agents may share
tool instances freely.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..core.runtime.models import ToolResult
from ..errors import ConfigurationError, ToolExecutionError, ToolNotFoundError, ValidationError
from .base_tool import BaseTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for managing agent tools"""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None):
        """Initialize registry, optionally with an initial tool set"""
        self._tools: Dict[str, BaseTool] = {}
        for t in tools or ():
            self.register(t)

    def register(self, tool: BaseTool) -> None:
        """Register a tool in the registry; names must be unique"""
        if not tool.name:
            raise ConfigurationError("Tool must have a name")
        if tool.name in self._tools:
            raise ConfigurationError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Optional[BaseTool]:
        """Get a tool by name"""
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def all(self) -> List[BaseTool]:
        """Get all registered tools"""
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def schemas(self) -> List[Dict[str, Any]]:
        """Tool list in OpenAI ``tools`` format"""
        return [t.to_openai_tool() for t in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def execute(self, name: str, raw_params: Any, context: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Validate parameters and run the tool's handler.

        Raises ToolNotFoundError / ValidationError before the handler is touched,
        and ToolExecutionError when the handler itself raises.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        kwargs = tool.validate_arguments(raw_params)
        if context is not None and getattr(tool, "accepts_context", False):
            kwargs["context"] = context

        try:
            result = await tool.execute(**kwargs)
        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Tool '{name}' failed: {e}")
            raise ToolExecutionError(name, f"Tool '{name}' failed: {e}", original=e) from e

        if not isinstance(result, ToolResult):
            result = ToolResult(success=True, data=result)
        return result

    async def call_tool(self, name: str, params: Any) -> ToolResult:
        """Tool-provider entry point: same as ``execute`` without a context."""
        return await self.execute(name, params)
