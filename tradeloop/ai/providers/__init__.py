"""LLM provider adapters."""

from tradeloop.ai.providers.base import (
    ModelClient,
    ModelError,
    PermanentModelError,
    TransientModelError,
)
from tradeloop.ai.providers.openai import OPENAI_CONFIG, OpenAICompatibleClient

__all__ = [
    "OPENAI_CONFIG",
    "ModelClient",
    "ModelError",
    "OpenAICompatibleClient",
    "PermanentModelError",
    "TransientModelError",
]
