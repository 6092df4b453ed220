"""Deterministic task extraction used when no model is available."""

from __future__ import annotations

import logging
import re

LOGGER = logging.getLogger(__name__)

FALLBACK_DESCRIPTION_LIMIT = 100
ELLIPSIS = "..."

_SENTENCE_BREAK = re.compile(r"[.!?]+")


def truncate(text: str, limit: int) -> str:
    """Cut text to at most limit characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(ELLIPSIS), 0)] + ELLIPSIS


def first_sentence(text: str) -> str:
    """Return the first non-empty sentence of text, or an empty string.

    Text without any terminator is returned whole.
    """
    for fragment in _SENTENCE_BREAK.split(text):
        fragment = fragment.strip()
        if fragment:
            return fragment
    return ""


def simple_text_analysis(message: str) -> str:
    description = truncate(first_sentence(message), FALLBACK_DESCRIPTION_LIMIT)
    LOGGER.info("Heuristic analysis produced %r", description)
    return description


def simple_grouping(messages: list[str]) -> list[str]:
    """One description per input message, in input order.

    Messages with no usable sentence yield an empty string so the output always
    has the same length as the input.
    """
    descriptions = [
        truncate(first_sentence(message), FALLBACK_DESCRIPTION_LIMIT) for message in messages
    ]
    LOGGER.info("Heuristic grouping produced %d descriptions", len(descriptions))
    return descriptions
