"""Inline-button callback router.

Callback data is ``<action>`` or ``<action>:<argument>``. Navigation and task or
project management actions answer with a screen that replaces the pressed
message; task-assignment actions hand over to the flow, which replies through
the presenter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from taskbot import screens
from taskbot.models import TaskStatus

if TYPE_CHECKING:
    from taskbot.db import Database
    from taskbot.flow import TaskAssignmentFlow

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CallbackReply:
    """What to do with the pressed message: replace it with screen, and/or toast."""

    screen: screens.Screen | None = None
    toast: str | None = None


@dataclass(slots=True)
class _Request:
    conversation_id: int
    user_id: int
    argument: str


_Handler = Callable[[_Request], Awaitable[CallbackReply]]


class CallbackRouter:
    """Maps callback data to handlers. All task and project lookups use the presser's user id."""

    def __init__(self, db: Database, flow: TaskAssignmentFlow) -> None:
        self._db = db
        self._flow = flow
        # Last status filter per user; tapping it again returns to the full list.
        self._status_filters: dict[int, TaskStatus] = {}
        self._handlers: dict[str, _Handler] = {
            "task_info": self._task_info,
            "start_task": self._start_task,
            "done_task": self._done_task,
            "delete_task": self._delete_task,
            "confirm_delete": self._confirm_delete,
            "cancel_delete": self._task_info,
            "show_task_list": self._show_task_list,
            "show_statuses_screen": self._show_statuses,
            "show_project_filter": self._show_project_filter,
            "filter_status": self._filter_status,
            "filter_project": self._filter_project,
            "show_projects": self._show_projects,
            "back_to_projects": self._show_projects,
            "manage_project": self._manage_project,
            "add_new_project": self._add_new_project,
            "create_project": self._create_project,
            "clear_project": self._clear_project,
            "delete_project": self._delete_project,
            "confirm_project_clear": self._confirm_project_clear,
            "confirm_project_delete": self._confirm_project_delete,
            "cancel_project_clear": self._manage_project,
            "cancel_project_delete": self._manage_project,
            "select_project_for_tasks": self._select_project_for_tasks,
            "create_new_project_for_tasks": self._create_new_project_for_tasks,
            "cancel_tasks_creation": self._cancel_tasks_creation,
        }

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def handle(self, data: str, conversation_id: int, user_id: int) -> CallbackReply:
        action, _, argument = data.partition(":")
        handler = self._handlers.get(action)
        if handler is None:
            LOGGER.warning("Unknown callback action %r", data)
            return CallbackReply(toast="Unknown action")
        LOGGER.info("Callback dispatch: action=%r argument=%r user=%s", action, argument, user_id)
        return await handler(_Request(conversation_id, user_id, argument))

    # -- tasks -----------------------------------------------------------------

    async def _task_info(self, request: _Request) -> CallbackReply:
        task_id = _task_id(request.argument)
        task = self._db.get_task(task_id, request.user_id) if task_id is not None else None
        if task is None:
            return CallbackReply(toast="Task not found")
        return CallbackReply(screens.task_details_screen(task))

    async def _start_task(self, request: _Request) -> CallbackReply:
        return self._set_status(request, TaskStatus.IN_PROGRESS, "🚧 Task started")

    async def _done_task(self, request: _Request) -> CallbackReply:
        return self._set_status(request, TaskStatus.DONE, "✅ Task completed")

    def _set_status(self, request: _Request, status: TaskStatus, toast: str) -> CallbackReply:
        task_id = _task_id(request.argument)
        if task_id is None or not self._db.update_task_status(task_id, status, request.user_id):
            return CallbackReply(toast="Task not found")
        task = self._db.get_task(task_id, request.user_id)
        if task is None:
            return CallbackReply(toast="Task not found")
        return CallbackReply(screens.task_details_screen(task), toast)

    async def _delete_task(self, request: _Request) -> CallbackReply:
        task_id = _task_id(request.argument)
        task = self._db.get_task(task_id, request.user_id) if task_id is not None else None
        if task is None:
            return CallbackReply(toast="Task not found")
        return CallbackReply(screens.task_delete_confirm_screen(task))

    async def _confirm_delete(self, request: _Request) -> CallbackReply:
        task_id = _task_id(request.argument)
        if task_id is None or not self._db.delete_task(task_id, request.user_id):
            return CallbackReply(toast="Task not found")
        return CallbackReply(screens.task_list_screen(self._db.list_tasks(request.user_id)), "🗑️ Task deleted")

    # -- task list navigation --------------------------------------------------

    async def _show_task_list(self, request: _Request) -> CallbackReply:
        self._status_filters.pop(request.user_id, None)
        return CallbackReply(screens.task_list_screen(self._db.list_tasks(request.user_id)))

    async def _show_statuses(self, request: _Request) -> CallbackReply:
        return CallbackReply(screens.statuses_screen(self._db.list_tasks(request.user_id)))

    async def _show_project_filter(self, request: _Request) -> CallbackReply:
        return CallbackReply(screens.project_filter_screen(self._db.all_project_stats(request.user_id)))

    async def _filter_status(self, request: _Request) -> CallbackReply:
        if request.argument == "all":
            return await self._show_task_list(request)
        try:
            status = TaskStatus(request.argument)
        except ValueError:
            return CallbackReply(toast="Invalid request")
        if self._status_filters.get(request.user_id) is status:
            return await self._show_task_list(request)
        self._status_filters[request.user_id] = status
        tasks = self._db.list_tasks(request.user_id, status=status)
        return CallbackReply(screens.status_filtered_screen(tasks, status))

    async def _filter_project(self, request: _Request) -> CallbackReply:
        tasks = self._db.list_tasks(request.user_id, project=request.argument)
        return CallbackReply(screens.project_filtered_screen(tasks, request.argument))

    # -- project management ----------------------------------------------------

    async def _show_projects(self, request: _Request) -> CallbackReply:
        return CallbackReply(screens.projects_screen(self._db.all_project_stats(request.user_id)))

    async def _manage_project(self, request: _Request) -> CallbackReply:
        if not self._db.project_exists(request.argument, request.user_id):
            return CallbackReply(toast="Project not found")
        stats = self._db.project_stats(request.argument, request.user_id)
        return CallbackReply(screens.project_details_screen(request.argument, stats))

    async def _add_new_project(self, request: _Request) -> CallbackReply:
        await self._flow.start_project_creation(request.conversation_id)
        return CallbackReply()

    async def _create_project(self, request: _Request) -> CallbackReply:
        self._flow.prompt_project_name(request.conversation_id, request.user_id)
        return CallbackReply(screens.project_name_prompt_screen())

    async def _clear_project(self, request: _Request) -> CallbackReply:
        return CallbackReply(screens.project_clear_confirm_screen(request.argument))

    async def _delete_project(self, request: _Request) -> CallbackReply:
        return CallbackReply(screens.project_delete_confirm_screen(request.argument))

    async def _confirm_project_clear(self, request: _Request) -> CallbackReply:
        removed = self._db.clear_project(request.argument, request.user_id)
        LOGGER.info("Cleared %d tasks from project %r", removed, request.argument)
        stats = self._db.project_stats(request.argument, request.user_id)
        return CallbackReply(
            screens.project_details_screen(request.argument, stats),
            f"🧹 Deleted {removed} tasks",
        )

    async def _confirm_project_delete(self, request: _Request) -> CallbackReply:
        if not self._db.delete_project(request.argument, request.user_id):
            return CallbackReply(toast="Project not found")
        LOGGER.info("Deleted project %r", request.argument)
        return CallbackReply(
            screens.projects_screen(self._db.all_project_stats(request.user_id)),
            "🗑️ Project deleted",
        )

    # -- task assignment -------------------------------------------------------

    async def _select_project_for_tasks(self, request: _Request) -> CallbackReply:
        await self._flow.project_chosen(request.conversation_id, request.user_id, request.argument)
        return CallbackReply()

    async def _create_new_project_for_tasks(self, request: _Request) -> CallbackReply:
        await self._flow.request_new_project(request.conversation_id)
        return CallbackReply()

    async def _cancel_tasks_creation(self, request: _Request) -> CallbackReply:
        await self._flow.cancel_requested(request.conversation_id)
        return CallbackReply()


def _task_id(argument: str) -> int | None:
    try:
        return int(argument)
    except ValueError:
        return None
