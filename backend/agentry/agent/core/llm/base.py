from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from ...errors import AgentError
from ..runtime.models import ProviderRequest, ProviderResponse, StreamChunk


class ProviderError(AgentError):
    """Raised for provider-specific errors that should surface to callers."""

    code = "PROVIDER_ERROR"
    recoverable = True

    def __init__(self, message: str, provider: str = "", original: Optional[BaseException] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, {"provider": provider, "status_code": status_code})
        self.provider = provider
        self.original = original
        self.status_code = status_code


class ProviderNotConfigured(ProviderError):
    """Raised when a provider is not properly configured (e.g., missing API key)."""

    code = "PROVIDER_NOT_CONFIGURED"
    recoverable = False


class BaseLLMClient(ABC):
    """Minimal provider-agnostic interface for chat completions.

    ``request`` carries the full ordered message history and the active tool
    schemas; each implementation formats both for its own wire format.
    Implementations must not perform network calls during tests unless explicitly mocked.
    """

    name: str = "provider"

    @abstractmethod
    async def chat(self, request: ProviderRequest) -> ProviderResponse:
        """Return one complete assistant response (content and/or tool calls)."""
        raise NotImplementedError

    @abstractmethod
    def chat_stream(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        """Return an async iterator of chunks.

        Content arrives as deltas. Tool calls, when present, are delivered fully
        assembled on the last chunk together with usage if the provider reports it.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release client resources. Default is a no-op."""
        return None
