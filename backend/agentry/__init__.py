"""agentry: agent-execution core for LLM-backed assistants."""

__version__ = "0.1.0"
