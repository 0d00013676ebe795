"""
Agent options: the single configuration object accepted by ``create_agent``.

Limits default from AGENTRY_MAX_TOKEN_LIMIT / AGENTRY_MAX_REQUEST_LIMIT and
debug from AGENTRY_DEBUG when present (``.env`` is honoured via python-dotenv).
"""

import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .core.limits import DEFAULT_MAX_REQUESTS, DEFAULT_MAX_TOKENS
from .core.llm.base import BaseLLMClient
from .core.runtime.tool_executor import ToolExecutionMode
from .errors import ConfigurationError
from .tools.base_tool import BaseTool

load_dotenv(override=False)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class AgentOptions(BaseModel):
    """Recognized agent options. Limits of 0 mean unlimited."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    name: str = "agent"
    ai_providers: Dict[str, BaseLLMClient]
    current_provider: Optional[str] = None
    current_model: str
    system_prompt: Optional[str] = None
    tools: List[BaseTool] = Field(default_factory=list)
    # Duck-typed: any object with a ``name`` and some hook methods
    plugins: List[Any] = Field(default_factory=list)
    max_token_limit: int = Field(default_factory=lambda: _env_int("AGENTRY_MAX_TOKEN_LIMIT", DEFAULT_MAX_TOKENS), ge=0)
    max_request_limit: int = Field(default_factory=lambda: _env_int("AGENTRY_MAX_REQUEST_LIMIT", DEFAULT_MAX_REQUESTS), ge=0)
    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, gt=0)
    tool_execution_mode: ToolExecutionMode = ToolExecutionMode.SEQUENTIAL
    debug: bool = Field(default_factory=lambda: _env_bool("AGENTRY_DEBUG"))

    @field_validator("ai_providers", mode="before")
    @classmethod
    def _providers_by_name(cls, value: Any) -> Any:
        """Accept a list of clients and key them by their ``name``."""
        if isinstance(value, (list, tuple)):
            return {getattr(client, "name", type(client).__name__): client for client in value}
        return value

    @model_validator(mode="after")
    def _check_current_provider(self) -> "AgentOptions":
        if not self.ai_providers:
            raise ValueError("ai_providers must contain at least one provider")
        if self.current_provider is None:
            self.current_provider = next(iter(self.ai_providers))
        elif self.current_provider not in self.ai_providers:
            raise ValueError(
                f"current_provider '{self.current_provider}' is not one of {sorted(self.ai_providers)}"
            )
        return self

    @classmethod
    def build(cls, **kwargs: Any) -> "AgentOptions":
        """Construct options, reporting problems as ConfigurationError."""
        try:
            return cls(**kwargs)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid agent options: {e}") from e
