"""
Agent tools package
"""

from .base_tool import BaseTool, FunctionTool, tool
from .tool_registry import ToolRegistry
from ..core.runtime.models import ToolResult

__all__ = [
    "BaseTool",
    "FunctionTool",
    "tool",
    "ToolRegistry",
    "ToolResult",
]
