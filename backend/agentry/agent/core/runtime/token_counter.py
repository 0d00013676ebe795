"""
Token estimation used by the limits pre-check.

Counts with tiktoken when an encoding is available and falls back to the
usual four-characters-per-token heuristic otherwise.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

import tiktoken

from .models import Message

logger = logging.getLogger(__name__)

# Overhead per message and for the assistant reply primer (OpenAI chat format)
TOKENS_PER_MESSAGE = 3
REPLY_PRIMER_TOKENS = 3
DEFAULT_ENCODING = "cl100k_base"


def estimate_text_tokens(text: Optional[str]) -> int:
    """Character heuristic: ceil(len / 4)."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


class TokenCounter:
    """Counts tokens for text and message lists."""

    def __init__(self, model: Optional[str] = None, encoding_name: str = DEFAULT_ENCODING):
        self.model = model
        self.encoding_name = encoding_name
        self._encoding = None
        self._encoding_failed = False

    def _get_encoding(self):
        if self._encoding is None and not self._encoding_failed:
            try:
                if self.model:
                    try:
                        self._encoding = tiktoken.encoding_for_model(self.model)
                    except KeyError:
                        self._encoding = tiktoken.get_encoding(self.encoding_name)
                else:
                    self._encoding = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                # Encodings are downloaded on first use; offline hosts fall back to the heuristic
                logger.warning(f"tiktoken encoding unavailable, using character estimate: {e}")
                self._encoding_failed = True
        return self._encoding

    def count_text(self, text: Optional[str]) -> int:
        if not text:
            return 0
        encoding = self._get_encoding()
        if encoding is None:
            return estimate_text_tokens(text)
        return len(encoding.encode(text))

    def count_message(self, message: Message) -> int:
        tokens = TOKENS_PER_MESSAGE + self.count_text(message.content)
        if message.name:
            tokens += self.count_text(message.name)
        for call in message.tool_calls:
            tokens += self.count_text(call.name)
            tokens += self.count_text(call.to_openai()["function"]["arguments"])
        return tokens

    def count_messages(self, messages: Iterable[Message]) -> int:
        total = sum(self.count_message(m) for m in messages)
        return total + REPLY_PRIMER_TOKENS
