"""
Tests for the logging plugin
"""

import logging

import pytest

from agentry.agent.core.runtime.engine import ConversationEngine
from agentry.agent.core.runtime.models import ToolCall
from agentry.agent.plugins.base import PluginContext, Stage
from agentry.agent.plugins.logging_plugin import LoggingPlugin
from agentry.agent.plugins.pipeline import PluginPipeline
from agentry.agent.tools.base_tool import FunctionTool
from agentry.agent.tools.tool_registry import ToolRegistry


def events(caplog):
    return [r.agentry_event["event"] for r in caplog.records if hasattr(r, "agentry_event")]


@pytest.mark.asyncio
async def test_logs_lifecycle(provider_factory, scripted, caplog):
    caplog.set_level(logging.DEBUG, logger="agentry.execution")
    provider = provider_factory(scripted.call_tools(ToolCall(id="c1", name="ping")), scripted.reply("pong"))
    registry = ToolRegistry([FunctionTool("ping", "Ping", lambda: "pong")])
    engine = ConversationEngine(provider, "m", registry=registry, plugins=PluginPipeline([LoggingPlugin()]))
    await engine.run("hi")
    assert events(caplog) == [
        "run.start",
        "provider.request", "provider.response",
        "tool.start", "tool.complete",
        "provider.request", "provider.response",
        "run.complete",
    ]


@pytest.mark.asyncio
async def test_error_logged_at_error_level(provider_factory, caplog):
    caplog.set_level(logging.DEBUG, logger="agentry.execution")
    engine = ConversationEngine(provider_factory(RuntimeError("down")), "m",
                                plugins=PluginPipeline([LoggingPlugin()]))
    with pytest.raises(Exception):
        await engine.run("hi")
    errors = [r for r in caplog.records if r.levelno == logging.ERROR and hasattr(r, "agentry_event")]
    assert [r.agentry_event["event"] for r in errors] == ["provider_call.error", "run.error"]
    assert all("error_repr" in r.agentry_event for r in errors)


def test_payloads_are_sanitized_and_truncated(caplog):
    caplog.set_level(logging.INFO, logger="agentry.execution")
    plugin = LoggingPlugin(include_payloads=True, max_payload_length=40)
    context = PluginContext(stage=Stage.RUN, execution_id="e1",
                            user_input="my key is sk-abcdefghijklmnop1234 " + "x" * 100)
    plugin.before_run(context)
    record = caplog.records[-1].agentry_event
    assert "sk-abcdefghijklmnop1234" not in record["payload"]
    assert "truncated" in record["payload"]


def test_payloads_hidden_by_default(caplog):
    caplog.set_level(logging.INFO, logger="agentry.execution")
    LoggingPlugin().before_run(PluginContext(stage=Stage.RUN, execution_id="e1", user_input="secret plans"))
    assert "payload" not in caplog.records[-1].agentry_event


def test_level_by_name():
    assert LoggingPlugin(level="WARNING").level == logging.WARNING
