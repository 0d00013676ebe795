"""
Logging utilities for secure logging with secret sanitization.

Agent payloads routinely carry provider keys, bearer tokens and webhook
signing secrets. These helpers keep them out of log records emitted by the
Logging and Webhook plugins.
"""

import logging
import re
from typing import Any, Dict, List, Optional


REDACTED = '***REDACTED***'

# Patterns to detect potential secrets in free text
SECRET_PATTERNS = [
    # JSON style  "api_key": "..."
    (re.compile(r'("(?:api_?key|apiKey|token|secret|password|authorization)"\s*:\s*")[^"]*(")', re.IGNORECASE),
     r'\1' + REDACTED + r'\2'),
    # repr() style  'api_key': '...'
    (re.compile(r"('(?:api_?key|apiKey|token|secret|password|authorization)'\s*:\s*')[^']*(')", re.IGNORECASE),
     r'\1' + REDACTED + r'\2'),
    # Query string style
    (re.compile(r'((?:api_key|token|secret)=)[^\s&]+', re.IGNORECASE), r'\1' + REDACTED),
    # Authorization headers
    (re.compile(r'(Bearer\s+)[A-Za-z0-9._\-]+', re.IGNORECASE), r'\1' + REDACTED),
    # OpenAI / Anthropic style keys
    (re.compile(r'\bsk-[A-Za-z0-9_\-]{8,}'), 'sk-' + REDACTED),
]

# Fields that should always be redacted in structured data
SECRET_FIELDS = {
    'password', 'token', 'api_key', 'apikey', 'secret', 'authorization',
    'auth_token', 'access_token', 'refresh_token', 'x-api-key',
}


def sanitize_string(text: str) -> str:
    """
    Sanitize a string by replacing potential secrets with placeholders.

    Args:
        text: String that may contain secrets

    Returns:
        Sanitized string with secrets replaced by placeholders
    """
    if not text:
        return text

    result = text
    for pattern, replacement in SECRET_PATTERNS:
        result = pattern.sub(replacement, result)

    return result


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, dict):
        return sanitize_dict(value)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(item) for item in value]
    if isinstance(value, str):
        return sanitize_string(value)
    return value


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively sanitize a dictionary by replacing secret values.

    Token counters such as ``tokens_used`` or ``max_tokens`` are not secrets
    and are kept; only keys that name a credential are redacted.

    Args:
        data: Dictionary that may contain secrets

    Returns:
        New dictionary with secrets replaced by placeholders
    """
    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if key_lower in SECRET_FIELDS or key_lower.endswith('_api_key') or key_lower.endswith('_secret'):
            result[key] = REDACTED
        else:
            result[key] = _sanitize_value(value)

    return result


def truncate_text(text: Optional[str], max_length: int = 500) -> Optional[str]:
    """Shorten long payloads (prompts, tool output) before they reach a log line."""
    if text is None or len(text) <= max_length:
        return text
    return text[:max_length] + f'...(truncated {len(text) - max_length} chars)'


def safe_repr(obj: Any, max_length: int = 200) -> str:
    """
    Create a safe repr of an object with secrets sanitized and length limited.

    Args:
        obj: Object to represent
        max_length: Maximum length of the repr string

    Returns:
        Safe, sanitized repr string
    """
    if isinstance(obj, dict):
        obj = sanitize_dict(obj)

    sanitized = sanitize_string(repr(obj))
    return truncate_text(sanitized, max_length)


def mask_credential_value(value: Optional[str], show_suffix: int = 4) -> str:
    """Mask a credential so only its last characters remain, e.g. ``***abcd``."""
    if not value or len(value) < 8:
        return '***'
    return f"***{value[-show_suffix:]}"


def configure_debug_logging(enabled: bool, logger_names: Optional[List[str]] = None) -> None:
    """Switch the package loggers to DEBUG when an agent is created with ``debug=True``."""
    if not enabled:
        return
    for name in logger_names or ['agentry']:
        logging.getLogger(name).setLevel(logging.DEBUG)
