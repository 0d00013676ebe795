"""
Ordered plugin dispatch.

Hook failures are caught, logged and suppressed so observers can never
change the outcome of the call they observe.
"""

import asyncio
import inspect
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, List, Optional, TypeVar

from ..errors import ConfigurationError
from .base import BasePlugin, PluginContext, Stage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PluginPipeline:
    """Holds plugins in registration order and fires their hooks."""

    def __init__(self, plugins: Optional[Iterable[BasePlugin]] = None):
        self._plugins: List[BasePlugin] = []
        for plugin in plugins or ():
            self.add(plugin)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def add(self, plugin: BasePlugin) -> None:
        name = getattr(plugin, "name", None)
        if not name:
            raise ConfigurationError("Plugin must have a name")
        if self.get(name) is not None:
            raise ConfigurationError(f"Plugin '{name}' is already registered")
        self._plugins.append(plugin)

    def remove(self, name: str) -> bool:
        plugin = self.get(name)
        if plugin is None:
            return False
        self._plugins.remove(plugin)
        return True

    def get(self, name: str) -> Optional[BasePlugin]:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    @property
    def plugins(self) -> List[BasePlugin]:
        return list(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)

    def _active(self) -> List[BasePlugin]:
        return [p for p in self._plugins if getattr(p, "enabled", True)]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def _safe_hook(self, plugin: BasePlugin, hook_name: str, *args: Any) -> None:
        """Safely execute one hook with error handling"""
        hook = getattr(plugin, hook_name, None)
        if not callable(hook):
            return
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Plugin '{plugin.name}' hook {hook_name} failed: {e}")

    async def invoke(self, hook_name: str, *args: Any) -> None:
        """Call ``hook_name`` on every enabled plugin that has it, in registration order."""
        for plugin in self._active():
            await self._safe_hook(plugin, hook_name, *args)

    @asynccontextmanager
    async def span(self, context: PluginContext) -> AsyncIterator[PluginContext]:
        """Fire before/after/error hooks around one stage.

        The body should store its outcome on ``context.result``. Errors raised by
        the body propagate after ``on_error`` hooks have run.
        """
        stage = context.stage.value
        started = time.perf_counter()
        await self.invoke("before_execute", context)
        await self.invoke(f"before_{stage}", context)
        try:
            yield context
        except Exception as e:
            context.error = e
            context.duration_ms = (time.perf_counter() - started) * 1000
            await self.invoke("on_error", e, context)
            raise
        context.duration_ms = (time.perf_counter() - started) * 1000
        await self.invoke(f"after_{stage}", context)
        await self.invoke("after_execute", context)

    async def check_limits(self, context: PluginContext) -> None:
        """Run each plugin's ``check_limits`` capability in order.

        Unlike hooks, a refusal raised here propagates and stops the call.
        """
        for plugin in self._active():
            check = getattr(plugin, "check_limits", None)
            if callable(check):
                result = check(context)
                if inspect.isawaitable(result):
                    await result

    async def wrap_provider_call(self, call: Callable[[], Awaitable[T]], context: PluginContext) -> T:
        """Route a provider call through the first plugin offering ``execute_with_retry``."""
        for plugin in self._active():
            wrapper = getattr(plugin, "execute_with_retry", None)
            if callable(wrapper):
                return await wrapper(call, context)
        return await call()

    async def destroy(self) -> None:
        for plugin in self._plugins:
            dispose = getattr(plugin, "destroy", None)
            if not callable(dispose):
                continue
            try:
                result = dispose()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Plugin '{plugin.name}' failed to dispose: {e}")


__all__ = ["PluginPipeline", "Stage"]
