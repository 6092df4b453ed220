"""Presenter contract between the task flow and a chat transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from taskbot import screens
from taskbot.models import ErrorKind, Task


class Presenter(ABC):
    """Renders flow events as screens and hands them to the transport.

    Subclasses only implement ``deliver``; the ``present_*`` methods decide which
    screen each flow event maps to.
    """

    @abstractmethod
    async def deliver(self, conversation_id: int, screen: screens.Screen, replace: Any = None) -> Any:
        """Send screen, or edit the message referenced by replace.

        Returns a reference to the message that now shows the screen.
        """

    async def present_analyzing(self, conversation_id: int, message_count: int) -> Any:
        return await self.deliver(conversation_id, screens.analyzing_screen(message_count))

    async def present_project_choice(
        self,
        conversation_id: int,
        descriptions: list[str],
        projects: list[str],
        replace: Any = None,
    ) -> Any:
        return await self.deliver(
            conversation_id, screens.project_choice_screen(descriptions, projects), replace
        )

    async def present_new_project_prompt(
        self,
        conversation_id: int,
        descriptions: list[str] | None = None,
        replace: Any = None,
    ) -> Any:
        if descriptions:
            screen = screens.new_project_for_tasks_screen(descriptions)
        else:
            screen = screens.project_name_prompt_screen()
        return await self.deliver(conversation_id, screen, replace)

    async def present_task_summary(self, conversation_id: int, project: str, tasks: list[Task]) -> Any:
        return await self.deliver(conversation_id, screens.tasks_created_screen(project, tasks))

    async def present_project_created(self, conversation_id: int, project: str) -> Any:
        return await self.deliver(conversation_id, screens.project_created_screen(project))

    async def present_cancelled(self, conversation_id: int, replace: Any = None) -> Any:
        return await self.deliver(conversation_id, screens.cancelled_screen(), replace)

    async def present_error(
        self,
        conversation_id: int,
        kind: ErrorKind,
        detail: str = "",
        replace: Any = None,
    ) -> Any:
        return await self.deliver(conversation_id, screens.error_screen(kind, detail), replace)
