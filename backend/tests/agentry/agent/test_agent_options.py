"""
Tests for agent options and environment defaults
"""

import pytest

from agentry.agent.config import AgentOptions
from agentry.agent.core.limits import DEFAULT_MAX_REQUESTS, DEFAULT_MAX_TOKENS
from agentry.agent.core.runtime.tool_executor import ToolExecutionMode
from agentry.agent.errors import ConfigurationError


class TestAgentOptions:
    """Test AgentOptions validation"""

    def test_defaults(self, provider_factory):
        options = AgentOptions.build(ai_providers=[provider_factory(name="p")], current_model="m")
        assert options.current_provider == "p"
        assert options.max_token_limit == DEFAULT_MAX_TOKENS
        assert options.max_request_limit == DEFAULT_MAX_REQUESTS
        assert options.tool_execution_mode == ToolExecutionMode.SEQUENTIAL
        assert options.debug is False

    def test_providers_as_dict(self, provider_factory):
        provider = provider_factory(name="p")
        options = AgentOptions.build(ai_providers={"custom": provider}, current_model="m",
                                     current_provider="custom")
        assert options.ai_providers["custom"] is provider

    def test_unknown_current_provider(self, provider_factory):
        with pytest.raises(ConfigurationError):
            AgentOptions.build(ai_providers=[provider_factory(name="p")], current_model="m",
                               current_provider="other")

    def test_empty_providers(self):
        with pytest.raises(ConfigurationError):
            AgentOptions.build(ai_providers=[], current_model="m")

    def test_negative_limits_rejected(self, provider_factory):
        with pytest.raises(ConfigurationError):
            AgentOptions.build(ai_providers=[provider_factory()], current_model="m", max_token_limit=-1)

    def test_unknown_option_rejected(self, provider_factory):
        with pytest.raises(ConfigurationError):
            AgentOptions.build(ai_providers=[provider_factory()], current_model="m", colour="blue")

    def test_model_required(self, provider_factory):
        with pytest.raises(ConfigurationError):
            AgentOptions.build(ai_providers=[provider_factory()])

    def test_environment_defaults(self, provider_factory, monkeypatch):
        monkeypatch.setenv("AGENTRY_MAX_TOKEN_LIMIT", "1234")
        monkeypatch.setenv("AGENTRY_MAX_REQUEST_LIMIT", "0")
        monkeypatch.setenv("AGENTRY_DEBUG", "true")
        options = AgentOptions.build(ai_providers=[provider_factory()], current_model="m")
        assert options.max_token_limit == 1234
        assert options.max_request_limit == 0
        assert options.debug is True

    def test_bad_environment_value(self, provider_factory, monkeypatch):
        monkeypatch.setenv("AGENTRY_MAX_TOKEN_LIMIT", "lots")
        with pytest.raises(ConfigurationError):
            AgentOptions.build(ai_providers=[provider_factory()], current_model="m")
