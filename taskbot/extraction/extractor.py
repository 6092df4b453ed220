"""Turns free-form chat text into short task descriptions.

Two strategies share one contract: a language model reached through an
``LLMProvider`` and the deterministic heuristics in ``fallback``. The model is
tried first when configured; any failure (transport error, timeout, empty or
malformed output) degrades to the heuristics for that call. Neither public
method raises, and both report which strategy produced the value.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING

from taskbot.extraction.fallback import simple_grouping, simple_text_analysis, truncate
from taskbot.models import ExtractionResult

if TYPE_CHECKING:
    from taskbot.llm.base import LLMProvider

LOGGER = logging.getLogger(__name__)

SINGLE_INPUT_LIMIT = 500
GROUP_INPUT_LIMIT = 2000
SINGLE_DESCRIPTION_LIMIT = 100
GROUP_DESCRIPTION_LIMIT = 150

_OBJECT_PATTERN = re.compile(r"\{[^}]+\}")
_ARRAY_PATTERN = re.compile(r"\[[^\]]+\]")

_SINGLE_SYSTEM_PROMPT = (
    "Analyse the text and extract a short description of the task it asks for. "
    'Reply with JSON only: {"description": "short task"}'
)
_GROUP_SYSTEM_PROMPT = (
    "Analyse the messages from a client and group them into separate tasks. "
    "Each task must be a logically coherent unit of work with a CLEAR description. "
    "Reply with a JSON array of strings only, containing real task descriptions, e.g. "
    '["Update the GitHub link", "Replace the links in the footer", "Add text and icons"]. '
    'Do NOT use placeholder names like "Task 1" or "Task 2".'
)


class ExtractionFailed(Exception):
    """Raised internally when the model output cannot be used."""


class TaskExtractor:
    """Model-backed extraction with automatic heuristic fallback."""

    def __init__(
        self,
        llm: LLMProvider | None = None,
        single_timeout_seconds: float = 10.0,
        group_timeout_seconds: float = 15.0,
    ) -> None:
        self._llm = llm
        self._single_timeout_seconds = single_timeout_seconds
        self._group_timeout_seconds = group_timeout_seconds
        if llm is None:
            LOGGER.info("No language model configured, using heuristic extraction")

    @property
    def uses_model(self) -> bool:
        return self._llm is not None

    async def extract_single(self, text: str) -> ExtractionResult[str]:
        """Extract one task description from a single message."""

        if self._llm is None:
            return ExtractionResult(via="fallback", value=simple_text_analysis(text))
        try:
            description = await self._model_single(text)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Model extraction degraded to heuristics: %s", _describe(exc))
            return ExtractionResult(via="fallback", value=simple_text_analysis(text))
        return ExtractionResult(via="model", value=description)

    async def extract_group(self, texts: list[str]) -> ExtractionResult[list[str]]:
        """Extract task descriptions from a batch of messages.

        The model may merge or split messages; the heuristic path returns exactly
        one description per input.
        """

        if self._llm is None or not texts:
            return ExtractionResult(via="fallback", value=simple_grouping(texts))
        try:
            descriptions = await self._model_group(texts)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Model grouping degraded to heuristics: %s", _describe(exc))
            return ExtractionResult(via="fallback", value=simple_grouping(texts))
        return ExtractionResult(via="model", value=descriptions)

    async def _model_single(self, text: str) -> str:
        content = await self._complete(
            system=_SINGLE_SYSTEM_PROMPT,
            user=text[:SINGLE_INPUT_LIMIT],
            temperature=0.1,
            max_tokens=100,
            timeout_seconds=self._single_timeout_seconds,
        )
        match = _OBJECT_PATTERN.search(content)
        if match is None:
            raise ExtractionFailed("no JSON object in model output")
        parsed = json.loads(match.group(0))
        description = parsed.get("description") if isinstance(parsed, dict) else None
        if not isinstance(description, str) or not description.strip():
            raise ExtractionFailed("model output has no description")
        return truncate(description.strip(), SINGLE_DESCRIPTION_LIMIT)

    async def _model_group(self, texts: list[str]) -> list[str]:
        combined = "\n\n".join(f"Message {index}: {text}" for index, text in enumerate(texts, start=1))
        content = await self._complete(
            system=_GROUP_SYSTEM_PROMPT,
            user=combined[:GROUP_INPUT_LIMIT],
            temperature=0.2,
            max_tokens=300,
            timeout_seconds=self._group_timeout_seconds,
        )
        match = _ARRAY_PATTERN.search(content)
        if match is None:
            raise ExtractionFailed("no JSON array in model output")
        parsed = json.loads(match.group(0))
        if not isinstance(parsed, list):
            raise ExtractionFailed("model output is not a list")
        descriptions = [
            truncate(item.strip(), GROUP_DESCRIPTION_LIMIT)
            for item in parsed
            if isinstance(item, str) and item.strip()
        ]
        if not descriptions:
            raise ExtractionFailed("model returned no task descriptions")
        LOGGER.info("Model grouped %d messages into %d tasks", len(texts), len(descriptions))
        return descriptions

    async def _complete(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float,
    ) -> str:
        if self._llm is None:
            raise ExtractionFailed("no language model configured")
        # The provider carries its own HTTP timeout; wait_for bounds everything else.
        response = await asyncio.wait_for(
            self._llm.generate(
                [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                timeout_seconds=timeout_seconds,
            ),
            timeout=timeout_seconds,
        )
        content = response.content.strip()
        if not content:
            raise ExtractionFailed("empty model response")
        return content


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "request timed out"
    return f"{type(exc).__name__}: {exc}"
