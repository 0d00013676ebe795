"""
Webhook plugin: POSTs agent lifecycle events to external HTTP endpoints.

Delivery problems are logged and counted, never raised into the agent.
"""

import asyncio
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ...utils.logging import mask_credential_value, sanitize_dict
from ..core.runtime.models import utc_now
from .base import BasePlugin, PluginContext

logger = logging.getLogger(__name__)


class WebhookEvent(str, Enum):
    EXECUTION_START = "execution.start"
    EXECUTION_COMPLETE = "execution.complete"
    EXECUTION_ERROR = "execution.error"
    TOOL_EXECUTED = "tool.executed"
    ERROR_OCCURRED = "error.occurred"
    CUSTOM = "custom"


@dataclass
class WebhookEndpoint:
    url: str
    # Empty means every event
    events: List[WebhookEvent] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    secret: Optional[str] = None
    retries: int = 2

    def accepts(self, event: WebhookEvent) -> bool:
        return not self.events or event in self.events


class WebhookPlugin(BasePlugin):
    name = "webhook"

    def __init__(
        self,
        endpoints: Sequence[WebhookEndpoint],
        timeout: float = 5.0,
        batch_size: int = 1,
        retry_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        name: Optional[str] = None,
        enabled: bool = True,
    ):
        super().__init__(name=name, enabled=enabled)
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.batch_size = max(1, batch_size)
        self.retry_delay = retry_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._queue: List[Dict[str, Any]] = []
        self.sent = 0
        self.failed = 0

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    async def before_run(self, context: PluginContext) -> None:
        await self.send(WebhookEvent.EXECUTION_START, context.to_dict())

    async def after_run(self, context: PluginContext) -> None:
        data = context.to_dict()
        if isinstance(context.result, str):
            data["response_length"] = len(context.result)
        await self.send(WebhookEvent.EXECUTION_COMPLETE, data)

    async def after_tool_execute(self, context: PluginContext) -> None:
        data = context.to_dict()
        data["success"] = getattr(context.result, "success", None)
        await self.send(WebhookEvent.TOOL_EXECUTED, data)

    async def on_error(self, error: BaseException, context: PluginContext) -> None:
        event = WebhookEvent.EXECUTION_ERROR if context.stage.value == "run" else WebhookEvent.ERROR_OCCURRED
        await self.send(event, context.to_dict())

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    async def send_custom(self, data: Dict[str, Any]) -> None:
        await self.send(WebhookEvent.CUSTOM, data)

    async def send(self, event: WebhookEvent, data: Dict[str, Any]) -> None:
        payload = {"event": event.value, "timestamp": utc_now().isoformat(), "data": sanitize_dict(data)}
        self._queue.append(payload)
        if len(self._queue) >= self.batch_size:
            await self.flush()

    async def flush(self) -> None:
        if not self._queue:
            return
        batch, self._queue = self._queue, []
        for endpoint in self.endpoints:
            wanted = [p for p in batch if endpoint.accepts(WebhookEvent(p["event"]))]
            if not wanted:
                continue
            body = wanted[0] if self.batch_size == 1 else {"batch": wanted}
            await self._deliver(endpoint, body)

    def _sign(self, endpoint: WebhookEndpoint, raw: bytes) -> Dict[str, str]:
        if not endpoint.secret:
            return {}
        digest = hmac.new(endpoint.secret.encode(), raw, hashlib.sha256).hexdigest()
        logger.debug(f"Signing webhook body for {endpoint.url} with secret {mask_credential_value(endpoint.secret)}")
        return {"X-Webhook-Signature": f"sha256={digest}"}

    async def _deliver(self, endpoint: WebhookEndpoint, body: Dict[str, Any]) -> bool:
        client = await self._ensure_client()
        raw = json.dumps(body, default=str).encode()
        headers = {**endpoint.headers, **self._sign(endpoint, raw)}
        for attempt in range(endpoint.retries + 1):
            try:
                response = await client.post(endpoint.url, content=raw, headers=headers)
                response.raise_for_status()
                self.sent += 1
                return True
            except httpx.HTTPError as e:
                logger.warning(f"Webhook delivery to {endpoint.url} failed (attempt {attempt + 1}): {e}")
                if attempt < endpoint.retries:
                    await asyncio.sleep(self.retry_delay)
        self.failed += 1
        return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            "endpoints": len(self.endpoints),
            "sent": self.sent,
            "failed": self.failed,
            "queued": len(self._queue),
        }

    async def destroy(self) -> None:
        try:
            await self.flush()
        finally:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
