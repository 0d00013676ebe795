import os
from typing import Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from .core.llm.base import ProviderNotConfigured

load_dotenv(override=False)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def get_openai_client(api_key: Optional[str] = None, base_url: Optional[str] = None) -> AsyncOpenAI:
    """
    Initializes and returns an async OpenAI client.

    Explicit arguments win over OPENAI_API_KEY / OPENAI_BASE_URL from the
    environment (or a .env file).
    """
    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ProviderNotConfigured("OPENAI_API_KEY environment variable is not set.", provider="openai")

    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url or os.getenv("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
    )


def get_openrouter_client(api_key: Optional[str] = None) -> AsyncOpenAI:
    """
    Initializes and returns an async OpenAI-compatible client for OpenRouter.
    """
    api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        raise ProviderNotConfigured("OPENROUTER_API_KEY environment variable is not set.", provider="openrouter")

    return AsyncOpenAI(api_key=api_key, base_url=OPENROUTER_BASE_URL)
