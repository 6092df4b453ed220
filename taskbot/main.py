"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging

from taskbot.callbacks import CallbackRouter
from taskbot.commands import CommandDispatcher
from taskbot.config import load_settings, remote_extraction_enabled
from taskbot.db import Database
from taskbot.extraction.extractor import TaskExtractor
from taskbot.flow import TaskAssignmentFlow
from taskbot.llm.openai_compat import OpenAICompatProvider
from taskbot.session import SessionManager
from taskbot.telegram_adapter import TelegramAdapter

LOGGER = logging.getLogger(__name__)


async def run() -> None:
    """Initialize app layers and poll Telegram until cancelled."""

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every long-poll request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    db = Database(settings.database_path)
    db.initialize()

    provider = OpenAICompatProvider(settings) if remote_extraction_enabled(settings) else None
    extractor = TaskExtractor(
        llm=provider,
        single_timeout_seconds=settings.extract_timeout_seconds,
        group_timeout_seconds=settings.group_timeout_seconds,
    )

    adapter = TelegramAdapter(settings.telegram_bot_token)

    async def handle_batch_ready(conversation_id: int, user_id: int | None) -> None:
        await flow.handle_batch_ready(conversation_id, user_id)

    session = SessionManager(handle_batch_ready, debounce_seconds=settings.batch_debounce_seconds)
    flow = TaskAssignmentFlow(session=session, extractor=extractor, db=db, presenter=adapter)
    adapter.bind(
        flow=flow,
        commands=CommandDispatcher(db, session, flow, default_project=settings.default_project),
        callbacks=CallbackRouter(db, flow),
    )

    LOGGER.info(
        "Starting task bot (extraction: %s, debounce: %.1fs)",
        "model" if extractor.uses_model else "heuristics",
        settings.batch_debounce_seconds,
    )
    await adapter.start()
    try:
        await asyncio.Event().wait()
    finally:
        session.close()
        await adapter.stop()
        LOGGER.info("Task bot shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
