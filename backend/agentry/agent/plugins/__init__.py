# Agent plugins: lifecycle observers attached to an agent's pipeline

from .base import BasePlugin, PluginContext, Stage
from .pipeline import PluginPipeline
from .analytics import AnalyticsPlugin
from .logging_plugin import LoggingPlugin
from .limits_plugin import LimitsPlugin, LimitsStrategy
from .performance import PerformancePlugin
from .usage import FileUsageStore, MemoryUsageStore, UsagePlugin, UsageStats, UsageStore, UsageStrategy
from .error_handling import ErrorHandlingPlugin, ErrorHandlingStrategy
from .webhook import WebhookEndpoint, WebhookEvent, WebhookPlugin
from .event_emitter import AgentEvent, EventEmitterPlugin, EventType
from .conversation_history import (
    ConversationHistoryPlugin,
    HistoryStore,
    JsonlHistoryStore,
    MemoryHistoryStore,
)

__all__ = [
    'BasePlugin',
    'PluginContext',
    'Stage',
    'PluginPipeline',
    'AnalyticsPlugin',
    'LoggingPlugin',
    'LimitsPlugin',
    'LimitsStrategy',
    'PerformancePlugin',
    'UsagePlugin',
    'UsageStats',
    'UsageStore',
    'UsageStrategy',
    'MemoryUsageStore',
    'FileUsageStore',
    'ErrorHandlingPlugin',
    'ErrorHandlingStrategy',
    'WebhookEndpoint',
    'WebhookEvent',
    'WebhookPlugin',
    'AgentEvent',
    'EventEmitterPlugin',
    'EventType',
    'ConversationHistoryPlugin',
    'HistoryStore',
    'JsonlHistoryStore',
    'MemoryHistoryStore',
]
