from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import openai

from ...clients import get_openai_client, get_openrouter_client
from ..runtime.models import ProviderRequest, ProviderResponse, StreamChunk, ToolCall, Usage
from .base import BaseLLMClient, ProviderError, ProviderNotConfigured

logger = logging.getLogger(__name__)


def _usage_from(raw: Any) -> Optional[Usage]:
    if raw is None:
        return None
    return Usage(
        prompt_tokens=getattr(raw, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(raw, "completion_tokens", 0) or 0,
        total_tokens=getattr(raw, "total_tokens", 0) or 0,
    )


class OpenAIClientAdapter(BaseLLMClient):
    """Adapter over any OpenAI-compatible chat-completions endpoint.

    The underlying ``AsyncOpenAI`` client is created lazily so constructing an
    agent never touches the network or requires a key until the first call.
    """

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None, *, name: str = "openai",
                 client_factory: Optional[Callable[[], openai.AsyncOpenAI]] = None):
        self.name = name
        self._client = client
        self._client_factory = client_factory or get_openai_client

    @classmethod
    def openrouter(cls, name: str = "openrouter", api_key: Optional[str] = None) -> "OpenAIClientAdapter":
        """Adapter for OpenRouter; the key comes from OPENROUTER_API_KEY unless given."""
        return cls(name=name, client_factory=lambda: get_openrouter_client(api_key))

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except ValueError as e:
                # Custom factories may report a missing key as ValueError
                raise ProviderNotConfigured(str(e), provider=self.name) from e
        return self._client

    def _build_kwargs(self, request: ProviderRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "messages": [m.to_dict() for m in request.messages],
        }
        if request.tools:
            kwargs["tools"] = request.tools
            kwargs["tool_choice"] = "auto"
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        return kwargs

    def _wrap_error(self, e: Exception) -> ProviderError:
        status = getattr(e, "status_code", None)
        return ProviderError(f"OpenAI request failed: {e}", provider=self.name, original=e, status_code=status)

    async def chat(self, request: ProviderRequest) -> ProviderResponse:
        client = self._get_client()
        try:
            completion = await client.chat.completions.create(**self._build_kwargs(request))
        except openai.OpenAIError as e:
            raise self._wrap_error(e) from e

        message = completion.choices[0].message
        tool_calls = [
            ToolCall.from_openai({"id": tc.id, "function": {"name": tc.function.name,
                                                            "arguments": tc.function.arguments}})
            for tc in (message.tool_calls or [])
        ]
        return ProviderResponse(content=message.content, tool_calls=tool_calls, usage=_usage_from(completion.usage))

    async def chat_stream(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        kwargs = self._build_kwargs(request)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}
        try:
            stream = await client.chat.completions.create(**kwargs)
            collected_tool_calls: Dict[int, Dict[str, Any]] = {}  # accumulate tool calls by index
            usage = None
            async for chunk in stream:
                if getattr(chunk, "usage", None) is not None:
                    usage = _usage_from(chunk.usage)
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield StreamChunk(content=delta.content)
                for tool_call_delta in getattr(delta, "tool_calls", None) or []:
                    entry = collected_tool_calls.setdefault(
                        tool_call_delta.index, {"id": "", "function": {"name": "", "arguments": ""}})
                    if tool_call_delta.id:
                        entry["id"] = tool_call_delta.id
                    if tool_call_delta.function:
                        if tool_call_delta.function.name:
                            entry["function"]["name"] = tool_call_delta.function.name
                        if tool_call_delta.function.arguments:
                            entry["function"]["arguments"] += tool_call_delta.function.arguments
        except openai.OpenAIError as e:
            raise self._wrap_error(e) from e

        tool_calls: List[ToolCall] = [
            ToolCall.from_openai(collected_tool_calls[i]) for i in sorted(collected_tool_calls)
        ]
        if tool_calls or usage is not None:
            yield StreamChunk(tool_calls=tool_calls, usage=usage)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
