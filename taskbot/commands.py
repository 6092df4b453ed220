"""Command dispatcher for /-prefixed messages.

An unrecognised /command returns None, so the caller can ignore it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskbot import screens
from taskbot.models import InboundMessage

if TYPE_CHECKING:
    from taskbot.db import Database
    from taskbot.flow import TaskAssignmentFlow
    from taskbot.session import SessionManager

LOGGER = logging.getLogger(__name__)

_ADD_USAGE = "Usage: /add &lt;task text&gt;"


def parse_command(text: str) -> tuple[str, list[str]] | None:
    """Split a /-prefixed message into (command, args).

    A ``@botname`` suffix on the command (as sent in group chats) is dropped.

    Returns:
        A (command, args) tuple where command is lowercased, or None if text
        is not a valid /command.
    """
    text = text.strip()
    if not text.startswith("/"):
        return None
    parts = text[1:].split()
    if not parts:
        return None
    command = parts[0].split("@", 1)[0].lower()
    if not command:
        return None
    return command, parts[1:]


class CommandDispatcher:
    """Routes /commands to screens or flow operations.

    ``dispatch`` returns the screen to send back, or None when the command is
    unknown or the flow already answered through the presenter.
    """

    def __init__(
        self,
        db: Database,
        session: SessionManager,
        flow: TaskAssignmentFlow,
        default_project: str = "Inbox",
    ) -> None:
        self._db = db
        self._session = session
        self._flow = flow
        self._default_project = default_project

    async def dispatch(self, message: InboundMessage) -> screens.Screen | None:
        parsed = parse_command(message.text)
        if parsed is None:
            return None
        command, args = parsed
        LOGGER.info("Command dispatch: command=%r args=%r", command, args)
        if command == "start":
            return self._handle_start(message)
        if command == "list":
            return screens.task_list_screen(self._db.list_tasks(message.user_id))
        if command == "projects":
            return screens.projects_screen(self._db.all_project_stats(message.user_id))
        if command == "help":
            return screens.help_screen()
        if command == "add":
            return await self._handle_add(message)
        if command == "process":
            return self._handle_process(message.conversation_id)
        return None

    def _handle_start(self, message: InboundMessage) -> screens.Screen:
        # A restart abandons whatever dialogue was in progress.
        self._session.clear(message.conversation_id)
        tasks = self._db.list_tasks(message.user_id)
        return screens.welcome_screen(message.first_name or "there", tasks)

    async def _handle_add(self, message: InboundMessage) -> screens.Screen | None:
        parts = message.text.strip().split(maxsplit=1)
        text = parts[1].strip() if len(parts) > 1 else ""
        if not text:
            return screens.Screen(_ADD_USAGE)
        await self._flow.create_single_task(
            message.conversation_id, message.user_id, text, self._default_project
        )
        return None

    def _handle_process(self, conversation_id: int) -> screens.Screen | None:
        if self._session.get_batch(conversation_id) is None:
            return screens.Screen("📭 No messages are waiting to be processed.")
        if self._session.flush(conversation_id) is None:
            return screens.Screen("⏳ Your messages are already being analysed.")
        return None
