from __future__ import annotations

from typing import Iterator, List, Optional, Tuple

from .models import Message, Role


class Conversation:
    """Append-only message history owned by one engine.

    The system prompt, when given, is always the first message. Readers get
    tuple snapshots so nothing outside the engine can edit the history.
    """

    def __init__(self, system_prompt: Optional[str] = None):
        self.system_prompt = system_prompt
        self._messages: List[Message] = []
        if system_prompt:
            self._messages.append(Message.system(system_prompt))

    def append(self, message: Message) -> None:
        if message.role == Role.system and self._messages:
            raise ValueError("A system message may only be the first message of a conversation")
        if message.role == Role.tool and not self._has_pending_call(message.tool_call_id):
            raise ValueError(f"Tool message for unknown tool call id {message.tool_call_id!r}")
        self._messages.append(message)

    def _has_pending_call(self, tool_call_id: Optional[str]) -> bool:
        # Walk back over tool messages to the assistant message that opened the round
        for message in reversed(self._messages):
            if message.role == Role.tool:
                continue
            if message.role == Role.assistant:
                return any(call.id == tool_call_id for call in message.tool_calls)
            return False
        return False

    def snapshot(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def roles(self) -> List[str]:
        return [m.role.value for m in self._messages]

    def clear(self) -> None:
        """Drop everything except the system prompt."""
        self._messages = [m for m in self._messages[:1] if m.role == Role.system]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())
