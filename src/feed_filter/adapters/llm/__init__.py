"""Oracle adapters."""

from feed_filter.adapters.llm.openai_client import OpenAIClient

__all__ = ["OpenAIClient"]
