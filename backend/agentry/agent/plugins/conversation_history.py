"""
Conversation-history plugin: mirrors every appended message into a store.

Stores are pluggable; two ship here: an in-memory store and a JSONL store
with one file per conversation (agent id).
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from ..core.runtime.models import Message
from .base import BasePlugin, PluginContext

logger = logging.getLogger(__name__)


def message_to_record(message: Message) -> Dict[str, Any]:
    record = message.to_dict()
    record["timestamp"] = message.timestamp.isoformat()
    return record


class HistoryStore(ABC):
    @abstractmethod
    async def append(self, conversation_id: str, record: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def load(self, conversation_id: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def clear(self, conversation_id: str) -> None:
        ...


class MemoryHistoryStore(HistoryStore):
    def __init__(self, max_messages: int = 1000):
        self.max_messages = max_messages
        self._data: Dict[str, List[Dict[str, Any]]] = {}

    async def append(self, conversation_id: str, record: Dict[str, Any]) -> None:
        records = self._data.setdefault(conversation_id, [])
        records.append(record)
        if len(records) > self.max_messages:
            del records[: len(records) - self.max_messages]

    async def load(self, conversation_id: str) -> List[Dict[str, Any]]:
        return list(self._data.get(conversation_id, []))

    async def clear(self, conversation_id: str) -> None:
        self._data.pop(conversation_id, None)


class JsonlHistoryStore(HistoryStore):
    """One ``<conversation_id>.jsonl`` file per conversation."""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, conversation_id: str) -> Path:
        safe = "".join(c for c in conversation_id if c.isalnum() or c in "-_") or "default"
        return self.root / f"{safe}.jsonl"

    async def append(self, conversation_id: str, record: Dict[str, Any]) -> None:
        async with self._lock:
            async with aiofiles.open(self._path(conversation_id), 'a', encoding='utf-8') as f:
                await f.write(json.dumps(record, ensure_ascii=False) + "\n")

    async def load(self, conversation_id: str) -> List[Dict[str, Any]]:
        path = self._path(conversation_id)
        if not path.exists():
            return []
        records = []
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupt history line in {path}")
        return records

    async def clear(self, conversation_id: str) -> None:
        path = self._path(conversation_id)
        if path.exists():
            path.unlink()


class ConversationHistoryPlugin(BasePlugin):
    name = "conversation_history"

    def __init__(self, store: Optional[HistoryStore] = None, conversation_id: Optional[str] = None,
                 name: Optional[str] = None, enabled: bool = True):
        super().__init__(name=name, enabled=enabled)
        self.store = store or MemoryHistoryStore()
        self.conversation_id = conversation_id
        self.last_conversation_id: Optional[str] = conversation_id

    async def on_message_added(self, message: Message, context: PluginContext) -> None:
        conversation_id = self.conversation_id or context.agent_id or "default"
        self.last_conversation_id = conversation_id
        await self.store.append(conversation_id, message_to_record(message))

    async def get_history(self, conversation_id: Optional[str] = None) -> List[Dict[str, Any]]:
        conversation_id = conversation_id or self.last_conversation_id
        if conversation_id is None:
            return []
        return await self.store.load(conversation_id)
