"""Core domain models used across layers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

T = TypeVar("T")


class ConversationState(str, Enum):
    """Conversation-level dialogue state."""

    IDLE = "idle"
    ACCUMULATING = "accumulating"
    AWAITING_PROJECT_NAME = "awaiting_project_name"


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ErrorKind(str, Enum):
    """User-facing failure categories reported by the flow."""

    EMPTY_EXTRACTION = "empty_extraction"
    DUPLICATE_PROJECT = "duplicate_project"
    PERSISTENCE_FAILURE = "persistence_failure"
    INVALID_INPUT = "invalid_input"
    TASKS_LOST = "tasks_lost"
    ANALYSIS_FAILED = "analysis_failed"


@dataclass(frozen=True, slots=True)
class AccumulatedMessage:
    """One buffered chat message. raw_ref points back at the transport message."""

    text: str
    received_at: datetime
    raw_ref: Any = None


@dataclass(slots=True)
class PendingBatch:
    """Messages accumulated for one conversation since the last extraction."""

    conversation_id: int
    last_message_at: datetime
    messages: list[AccumulatedMessage] = field(default_factory=list)
    analyzed_tasks: list[str] | None = None
    status_message_ref: Any = None
    owner_user_id: int | None = None
    timer: asyncio.TimerHandle | None = None
    # Bumped on every (re)arm; a timer callback carrying an older value is stale.
    generation: int = 0
    processing: bool = False


@dataclass(slots=True)
class Task:
    """Represents a persisted task."""

    id: int
    description: str
    project: str
    status: TaskStatus
    created_at: datetime
    user_id: int


@dataclass(slots=True)
class ProjectStats:
    total: int = 0
    not_started: int = 0
    in_progress: int = 0
    done: int = 0

    @property
    def active(self) -> int:
        return self.not_started + self.in_progress


@dataclass(slots=True)
class ExtractionResult(Generic[T]):
    """Extraction output tagged with the strategy that produced it."""

    via: Literal["model", "fallback"]
    value: T


@dataclass(slots=True)
class LLMResponse:
    """Result from an LLM generation request."""

    content: str
    raw: dict[str, Any] | None = None


@dataclass(slots=True)
class InboundMessage:
    """Normalized inbound chat message handed from the transport to the core."""

    conversation_id: int
    user_id: int
    text: str
    first_name: str = ""
    is_forwarded: bool = False
    raw_ref: Any = None
