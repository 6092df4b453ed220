"""In-memory conversation sessions and message batch debouncing."""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from taskbot.models import AccumulatedMessage, ConversationState, PendingBatch

LOGGER = logging.getLogger(__name__)

BatchReadyHandler = Callable[[int, int | None], Awaitable[None]]
OneShotHandler = Callable[[Any, str], Awaitable[None]]


class SessionManager:
    """Owns every piece of per-conversation state for one process.

    Holds the pending message batches, the conversation state tags and the
    one-shot "next text message" handlers. Each ``add_message`` restarts a quiet
    period timer for its conversation; when the timer expires the batch-ready
    handler given at construction is called with the conversation id and the
    owning user id. Batch contents stay in place until ``clear`` is called.

    Not thread-safe: all calls must come from the event loop that runs the bot.
    """

    def __init__(self, on_batch_ready: BatchReadyHandler, debounce_seconds: float = 5.0) -> None:
        self._on_batch_ready = on_batch_ready
        self._debounce_seconds = debounce_seconds
        self._batches: dict[int, PendingBatch] = {}
        self._states: dict[int, ConversationState] = {}
        self._one_shots: dict[int, OneShotHandler] = {}
        self._generations = itertools.count(1)
        self._running: set[asyncio.Task[None]] = set()

    # -- batches -------------------------------------------------------------

    def add_message(
        self,
        conversation_id: int,
        text: str,
        raw_ref: Any = None,
        user_id: int | None = None,
    ) -> None:
        """Buffer a message and restart the conversation's quiet period."""

        now = datetime.now(timezone.utc)
        batch = self._batches.get(conversation_id)
        if batch is None:
            batch = PendingBatch(conversation_id=conversation_id, last_message_at=now, owner_user_id=user_id)
            self._batches[conversation_id] = batch
        elif batch.owner_user_id is None and user_id is not None:
            batch.owner_user_id = user_id

        batch.messages.append(AccumulatedMessage(text=text, received_at=now, raw_ref=raw_ref))
        batch.last_message_at = now
        if self.get_state(conversation_id) is ConversationState.IDLE:
            self._states[conversation_id] = ConversationState.ACCUMULATING
        self._arm(batch)
        LOGGER.info(
            "Buffered message for conversation %s (%d pending)",
            conversation_id,
            len(batch.messages),
        )

    def get_batch(self, conversation_id: int) -> PendingBatch | None:
        return self._batches.get(conversation_id)

    def get_messages(self, conversation_id: int) -> list[AccumulatedMessage] | None:
        batch = self._batches.get(conversation_id)
        return list(batch.messages) if batch else None

    def set_analyzed_tasks(self, conversation_id: int, descriptions: list[str]) -> None:
        batch = self._batches.get(conversation_id)
        if batch is not None:
            batch.analyzed_tasks = list(descriptions)

    def get_analyzed_tasks(self, conversation_id: int) -> list[str] | None:
        batch = self._batches.get(conversation_id)
        if batch is None or batch.analyzed_tasks is None:
            return None
        return list(batch.analyzed_tasks)

    def set_status_message(self, conversation_id: int, ref: Any) -> None:
        batch = self._batches.get(conversation_id)
        if batch is not None:
            batch.status_message_ref = ref

    def discard_messages(self, conversation_id: int, count: int) -> int:
        """Drop the oldest count messages together with any analysis of them.

        Messages that arrived later stay buffered and go through the quiet
        period again; with none left the conversation is cleared. Returns the
        number of messages still buffered.
        """

        batch = self._batches.get(conversation_id)
        if batch is None:
            return 0
        del batch.messages[:count]
        if not batch.messages:
            self.clear(conversation_id)
            return 0
        batch.analyzed_tasks = None
        batch.status_message_ref = None
        self._states[conversation_id] = ConversationState.ACCUMULATING
        if batch.timer is None:
            self._arm(batch)
        LOGGER.info(
            "Kept %d messages that arrived during analysis for conversation %s",
            len(batch.messages),
            conversation_id,
        )
        return len(batch.messages)

    def clear(self, conversation_id: int) -> None:
        """Drop the batch and state of a conversation. Safe to call repeatedly."""

        batch = self._batches.pop(conversation_id, None)
        if batch is not None:
            _cancel_timer(batch)
        self._states.pop(conversation_id, None)

    # -- debouncing ----------------------------------------------------------

    def flush(self, conversation_id: int) -> asyncio.Task[None] | None:
        """Emit batch-ready now instead of waiting for the quiet period.

        Returns the task running the handler, or None when nothing was emitted.
        """

        batch = self._batches.get(conversation_id)
        if batch is None:
            return None
        if batch.processing:
            LOGGER.info("Conversation %s is already being processed", conversation_id)
            return None
        _cancel_timer(batch)
        return self._emit(batch)

    def _arm(self, batch: PendingBatch) -> None:
        _cancel_timer(batch)
        batch.generation = next(self._generations)
        loop = asyncio.get_running_loop()
        batch.timer = loop.call_later(
            self._debounce_seconds,
            self._on_timer,
            batch.conversation_id,
            batch.generation,
        )

    def _on_timer(self, conversation_id: int, generation: int) -> None:
        batch = self._batches.get(conversation_id)
        if batch is None or batch.generation != generation:
            return
        batch.timer = None
        if batch.processing:
            # Wait for the running handler before emitting again.
            self._arm(batch)
            return
        self._emit(batch)

    def _emit(self, batch: PendingBatch) -> asyncio.Task[None] | None:
        if not batch.messages:
            return None
        batch.processing = True
        task = asyncio.get_running_loop().create_task(
            self._dispatch(batch.conversation_id, batch.owner_user_id),
            name=f"batch-ready-{batch.conversation_id}",
        )
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def _dispatch(self, conversation_id: int, user_id: int | None) -> None:
        try:
            await self._on_batch_ready(conversation_id, user_id)
        except Exception:  # noqa: BLE001
            batch = self._batches.get(conversation_id)
            LOGGER.exception(
                "Batch handler failed for conversation %s, dropping %d buffered messages",
                conversation_id,
                len(batch.messages) if batch else 0,
            )
            self.clear(conversation_id)
        finally:
            batch = self._batches.get(conversation_id)
            if batch is not None:
                batch.processing = False

    # -- conversation state ----------------------------------------------------

    def set_state(self, conversation_id: int, state: ConversationState) -> None:
        self._states[conversation_id] = state

    def get_state(self, conversation_id: int) -> ConversationState:
        return self._states.get(conversation_id, ConversationState.IDLE)

    def clear_state(self, conversation_id: int) -> None:
        self._states.pop(conversation_id, None)

    # -- one-shot handlers -------------------------------------------------------

    def register_one_shot(self, user_id: int, handler: OneShotHandler) -> None:
        """Route the user's next text message to handler. Replaces any previous one."""

        self._one_shots[user_id] = handler

    async def consume_one_shot(self, user_id: int, ctx: Any, text: str) -> bool:
        """Run and discard the user's pending handler. Returns False if none was set."""

        handler = self._one_shots.pop(user_id, None)
        if handler is None:
            return False
        try:
            await handler(ctx, text)
        except Exception:  # noqa: BLE001
            LOGGER.exception("One-shot handler for user %s failed", user_id)
        return True

    # -- lifecycle ----------------------------------------------------------------

    def close(self) -> None:
        """Cancel every outstanding timer."""

        for batch in self._batches.values():
            _cancel_timer(batch)


def _cancel_timer(batch: PendingBatch) -> None:
    if batch.timer is not None:
        batch.timer.cancel()
        batch.timer = None
