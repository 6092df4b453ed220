"""OpenAI-compatible chat-completions implementation of LLMProvider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from taskbot.config import Settings
from taskbot.llm.base import LLMProvider
from taskbot.models import LLMResponse

_LOGGER = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 15.0


class OpenAICompatProvider(LLMProvider):
    """LLM provider for any endpoint speaking the OpenAI chat completions API.

    A single attempt is made per call; callers decide what to do on failure.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def generate(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": self._settings.openai_model,
            "messages": messages,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        timeout = httpx.Timeout(timeout_seconds or _DEFAULT_TIMEOUT_SECONDS)
        async with httpx.AsyncClient(base_url=self._settings.openai_base_url, timeout=timeout) as client:
            response = await client.post(
                "/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._settings.openai_api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or []
        if not choices:
            _LOGGER.warning("LLM response carried no choices")
            return LLMResponse(content="", raw=data)

        content = (choices[0].get("message") or {}).get("content") or ""
        _LOGGER.info(
            "LLM response: finish_reason=%r content=%r",
            choices[0].get("finish_reason"),
            content[:200],
        )
        return LLMResponse(content=content, raw=data)
