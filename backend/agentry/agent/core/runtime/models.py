from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    system = "system"
    user = "user"
    assistant = "assistant"
    tool = "tool"


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    # Original argument string when the provider sent something that is not a JSON object
    raw_arguments: Optional[str] = None

    @classmethod
    def from_openai(cls, data: Dict[str, Any]) -> "ToolCall":
        """Build from an OpenAI-style ``{"id", "function": {"name", "arguments"}}`` dict."""
        function = data.get("function") or {}
        raw = function.get("arguments") or ""
        raw_arguments = None
        try:
            arguments = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            arguments, raw_arguments = {}, raw
        if not isinstance(arguments, dict):
            arguments, raw_arguments = {}, raw
        return cls(id=data.get("id", ""), name=function.get("name", ""), arguments=arguments,
                   raw_arguments=raw_arguments)

    def to_openai(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.raw_arguments if self.raw_arguments is not None else json.dumps(self.arguments),
            },
        }


@dataclass
class Message:
    role: Role
    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.system, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.user, content=content)

    @classmethod
    def assistant(cls, content: Optional[str], tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=Role.assistant, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: Optional[str] = None) -> "Message":
        return cls(role=Role.tool, content=content, tool_call_id=tool_call_id, name=name)

    def to_dict(self) -> Dict[str, Any]:
        """OpenAI chat-completions message dict."""
        data: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.name and self.role != Role.tool:
            data["name"] = self.name
        return data


@dataclass
class ToolResult:
    """What a tool handler returns."""
    success: bool
    data: Any = None
    error: Optional[str] = None

    def to_content(self) -> str:
        """Render as tool-message content for the model."""
        if not self.success:
            return f"Error: {self.error or 'Tool execution failed'}"
        if isinstance(self.data, str):
            return self.data
        if self.data is None:
            return ""
        return json.dumps(self.data, default=str)


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> "Usage":
        return cls(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens)


@dataclass
class ProviderRequest:
    """Everything a provider needs for one call."""
    model: str
    messages: Tuple[Message, ...]
    tools: List[Dict[str, Any]] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ProviderResponse:
    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage: Optional[Usage] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class StreamChunk:
    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage: Optional[Usage] = None
