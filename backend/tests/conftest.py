"""
Global pytest configuration and fixtures for agentry tests
"""

from types import SimpleNamespace
from typing import Any, AsyncIterator, List, Optional, Sequence, Union

import pytest

from agentry.agent.core.llm.base import BaseLLMClient
from agentry.agent.core.runtime.models import (
    ProviderRequest,
    ProviderResponse,
    StreamChunk,
    ToolCall,
    Usage,
)
from agentry.agent.core.runtime.token_counter import TokenCounter

Script = Union[ProviderResponse, BaseException]


class ScriptedProvider(BaseLLMClient):
    """Provider double that replays queued responses and records every request.

    Each queued item is either a ProviderResponse or an exception to raise.
    When the queue runs dry the provider answers with ``fallback`` text.
    """

    def __init__(self, responses: Sequence[Script] = (), name: str = "scripted",
                 streams: Sequence[Sequence[StreamChunk]] = (), fallback: Optional[str] = "done"):
        self.name = name
        self.responses: List[Script] = list(responses)
        self.streams: List[List[StreamChunk]] = [list(s) for s in streams]
        self.fallback = fallback
        self.requests: List[ProviderRequest] = []
        self.close_calls = 0

    def queue(self, *items: Script) -> "ScriptedProvider":
        self.responses.extend(items)
        return self

    def _next(self) -> ProviderResponse:
        if not self.responses:
            return ProviderResponse(content=self.fallback, usage=Usage.from_counts(10, 5))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def chat(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        return self._next()

    async def chat_stream(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        self.requests.append(request)
        if self.streams:
            for chunk in self.streams.pop(0):
                yield chunk
            return
        response = self._next()
        if response.content:
            for word in response.content.split(" "):
                yield StreamChunk(content=word + " ")
        yield StreamChunk(tool_calls=list(response.tool_calls), usage=response.usage)

    async def close(self) -> None:
        self.close_calls += 1


def reply(content: str, prompt_tokens: int = 10, completion_tokens: int = 5) -> ProviderResponse:
    return ProviderResponse(content=content, usage=Usage.from_counts(prompt_tokens, completion_tokens))


def call_tools(*calls: ToolCall, tokens: int = 20) -> ProviderResponse:
    return ProviderResponse(content=None, tool_calls=list(calls), usage=Usage(total_tokens=tokens))


@pytest.fixture(autouse=True)
def offline_token_counter(monkeypatch):
    """Keep token estimates deterministic and off the network: always use the character heuristic."""
    monkeypatch.setattr(TokenCounter, "_get_encoding", lambda self: None)
    yield


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Environment-driven defaults must not leak in from the developer's shell or .env."""
    for key in ("AGENTRY_MAX_TOKEN_LIMIT", "AGENTRY_MAX_REQUEST_LIMIT", "AGENTRY_DEBUG"):
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def provider_factory():
    def make(*responses: Any, **kwargs: Any) -> ScriptedProvider:
        return ScriptedProvider(responses, **kwargs)
    return make


@pytest.fixture
def scripted():
    """Response builders: ``scripted.reply(text)`` and ``scripted.call_tools(*calls)``."""
    return SimpleNamespace(reply=reply, call_tools=call_tools)
