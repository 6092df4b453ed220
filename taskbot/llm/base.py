"""LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from taskbot.models import LLMResponse


class LLMProvider(ABC):
    """Abstract model provider used by the task extractor."""

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ) -> LLMResponse:
        """Generate a model response."""
