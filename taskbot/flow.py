"""Task assignment flow: from a ready batch of messages to persisted tasks.

Per conversation the flow moves through

    COLLECTING -> ANALYZING -> AWAITING_PROJECT_CHOICE -> COMMITTING -> DONE

with an ABORTED exit on cancellation or error. Only the "user must type a new
project name" part of AWAITING_PROJECT_CHOICE is an explicit conversation state;
the rest is implied by the batch holding analyzed tasks.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from taskbot.models import ConversationState, ErrorKind, Task, TaskStatus

if TYPE_CHECKING:
    from taskbot.db import Database
    from taskbot.extraction.extractor import TaskExtractor
    from taskbot.presenter import Presenter
    from taskbot.session import SessionManager

LOGGER = logging.getLogger(__name__)


class TaskAssignmentFlow:
    """Coordinates session, extractor, storage and presenter for each conversation."""

    def __init__(
        self,
        session: SessionManager,
        extractor: TaskExtractor,
        db: Database,
        presenter: Presenter,
    ) -> None:
        self._session = session
        self._extractor = extractor
        self._db = db
        self._presenter = presenter

    # -- inbound events --------------------------------------------------------

    async def inbound_text(
        self,
        conversation_id: int,
        user_id: int,
        text: str,
        raw_ref: Any = None,
        is_forwarded: bool = False,
    ) -> bool:
        """Route a free-text message. Returns True if it was consumed."""

        state = self._session.get_state(conversation_id)
        if state is ConversationState.AWAITING_PROJECT_NAME:
            await self.new_project_name_submitted(conversation_id, user_id, text)
            return True

        if not is_forwarded and await self._session.consume_one_shot(user_id, raw_ref, text):
            return True

        if state not in (ConversationState.IDLE, ConversationState.ACCUMULATING):
            return False
        if not is_forwarded and text.startswith("/"):
            return False
        if not text.strip():
            await self._presenter.present_error(
                conversation_id, ErrorKind.INVALID_INPUT, "The message has no text to turn into a task."
            )
            return True

        self._session.add_message(conversation_id, text, raw_ref, user_id)
        return True

    async def handle_batch_ready(self, conversation_id: int, user_id: int | None) -> None:
        """ANALYZING: extract tasks from the buffered messages and ask for a project.

        Works on a snapshot of the batch. Messages that arrive meanwhile stay
        buffered when the snapshot is discarded, and a batch cleared during
        extraction (``/start``, cancel) gets no prompt.
        """

        batch = self._session.get_batch(conversation_id)
        messages = self._session.get_messages(conversation_id)
        if batch is None or not messages:
            return
        if user_id is None:
            LOGGER.error("Batch for conversation %s has no owner, dropping it", conversation_id)
            self._session.clear(conversation_id)
            return

        status_ref = None
        try:
            LOGGER.info("Analysing %d messages for conversation %s", len(messages), conversation_id)
            status_ref = await self._presenter.present_analyzing(conversation_id, len(messages))
            self._session.set_status_message(conversation_id, status_ref)

            result = await self._extractor.extract_group([message.text for message in messages])
            if self._session.get_batch(conversation_id) is not batch:
                LOGGER.info("Batch for conversation %s was cleared during analysis", conversation_id)
                return
            descriptions = [text.strip() for text in result.value if text.strip()]
            LOGGER.info(
                "Extracted %d tasks via %s for conversation %s",
                len(descriptions),
                result.via,
                conversation_id,
            )
            if not descriptions:
                await self._presenter.present_error(
                    conversation_id, ErrorKind.EMPTY_EXTRACTION, replace=status_ref
                )
                self._session.discard_messages(conversation_id, len(messages))
                return

            self._session.set_analyzed_tasks(conversation_id, descriptions)
            projects = self._db.list_projects(user_id)
            if not projects:
                self._session.set_state(conversation_id, ConversationState.AWAITING_PROJECT_NAME)
                await self._presenter.present_new_project_prompt(
                    conversation_id, descriptions, replace=status_ref
                )
                return
            await self._presenter.present_project_choice(
                conversation_id, descriptions, projects, replace=status_ref
            )
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to analyse messages for conversation %s", conversation_id)
            if self._session.get_batch(conversation_id) is batch:
                self._session.discard_messages(conversation_id, len(messages))
            await self._presenter.present_error(conversation_id, ErrorKind.ANALYSIS_FAILED)

    async def project_chosen(self, conversation_id: int, user_id: int, project_name: str) -> list[Task]:
        """An existing project was picked for the pending tasks."""

        descriptions = self._session.get_analyzed_tasks(conversation_id)
        if not descriptions:
            await self._presenter.present_error(conversation_id, ErrorKind.TASKS_LOST)
            return []
        return await self._commit(conversation_id, user_id, project_name, descriptions)

    async def request_new_project(self, conversation_id: int) -> None:
        """The "new project" button was pressed during task assignment."""

        descriptions = self._session.get_analyzed_tasks(conversation_id)
        if not descriptions:
            await self._presenter.present_error(conversation_id, ErrorKind.TASKS_LOST)
            return
        self._session.set_state(conversation_id, ConversationState.AWAITING_PROJECT_NAME)
        await self._presenter.present_new_project_prompt(conversation_id, descriptions)

    async def start_project_creation(self, conversation_id: int) -> None:
        """Plain project creation, outside task assignment."""

        self._session.set_state(conversation_id, ConversationState.AWAITING_PROJECT_NAME)
        await self._presenter.present_new_project_prompt(conversation_id)

    def prompt_project_name(self, conversation_id: int, user_id: int) -> None:
        """Treat the user's next text message as a new project name."""

        async def _create(_ctx: Any, text: str) -> None:
            await self._create_project(conversation_id, user_id, text.strip())

        self._session.register_one_shot(user_id, _create)

    async def new_project_name_submitted(self, conversation_id: int, user_id: int, name: str) -> list[Task]:
        """Validate and create the project, then commit any pending tasks into it."""

        name = name.strip()
        if not name:
            await self._presenter.present_error(
                conversation_id, ErrorKind.INVALID_INPUT, "Project name cannot be empty. Send a name:"
            )
            return []

        try:
            if self._db.project_exists(name, user_id) or not self._db.add_project(name, user_id):
                await self._presenter.present_error(conversation_id, ErrorKind.DUPLICATE_PROJECT, name)
                return []
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Failed to create project %r", name)
            self._session.clear(conversation_id)
            await self._presenter.present_error(conversation_id, ErrorKind.PERSISTENCE_FAILURE, str(exc))
            return []

        LOGGER.info("Created project %r for user %s", name, user_id)
        descriptions = self._session.get_analyzed_tasks(conversation_id)
        if descriptions:
            return await self._commit(conversation_id, user_id, name, descriptions)

        self._session.clear_state(conversation_id)
        await self._presenter.present_project_created(conversation_id, name)
        return []

    async def cancel_requested(self, conversation_id: int) -> None:
        self._session.clear(conversation_id)
        LOGGER.info("Task creation cancelled for conversation %s", conversation_id)
        await self._presenter.present_cancelled(conversation_id)

    async def create_single_task(
        self,
        conversation_id: int,
        user_id: int,
        text: str,
        project: str,
    ) -> Task | None:
        """Create one task straight from a single message, bypassing the batch."""

        result = await self._extractor.extract_single(text)
        description = result.value.strip()
        if not description:
            await self._presenter.present_error(conversation_id, ErrorKind.EMPTY_EXTRACTION)
            return None
        try:
            task_id = self._db.add_task(
                description, project, TaskStatus.NOT_STARTED, datetime.now(timezone.utc), user_id
            )
            task = self._db.get_task(task_id, user_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Failed to create task for conversation %s", conversation_id)
            await self._presenter.present_error(conversation_id, ErrorKind.PERSISTENCE_FAILURE, str(exc))
            return None
        if task is None:
            await self._presenter.present_error(
                conversation_id, ErrorKind.PERSISTENCE_FAILURE, "the task could not be read back"
            )
            return None
        LOGGER.info("Created task #%s via %s: %s", task.id, result.via, task.description)
        await self._presenter.present_task_summary(conversation_id, project, [task])
        return task

    # -- internals -------------------------------------------------------------

    async def _create_project(self, conversation_id: int, user_id: int, name: str) -> None:
        if not name:
            self.prompt_project_name(conversation_id, user_id)
            await self._presenter.present_error(
                conversation_id, ErrorKind.INVALID_INPUT, "Project name cannot be empty. Try again."
            )
            return
        try:
            created = not self._db.project_exists(name, user_id) and self._db.add_project(name, user_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Failed to create project %r", name)
            await self._presenter.present_error(conversation_id, ErrorKind.PERSISTENCE_FAILURE, str(exc))
            return
        if not created:
            self.prompt_project_name(conversation_id, user_id)
            await self._presenter.present_error(conversation_id, ErrorKind.DUPLICATE_PROJECT, name)
            return
        LOGGER.info("Created project %r for user %s", name, user_id)
        await self._presenter.present_project_created(conversation_id, name)

    async def _commit(
        self,
        conversation_id: int,
        user_id: int,
        project: str,
        descriptions: list[str],
    ) -> list[Task]:
        """COMMITTING: one task per description, sequentially, without rollback."""

        batch = self._session.get_batch(conversation_id)
        owner = batch.owner_user_id if batch and batch.owner_user_id is not None else user_id
        created: list[Task] = []
        try:
            for description in descriptions:
                task_id = self._db.add_task(
                    description, project, TaskStatus.NOT_STARTED, datetime.now(timezone.utc), owner
                )
                task = self._db.get_task(task_id, owner)
                if task is not None:
                    created.append(task)
        except Exception:  # noqa: BLE001
            LOGGER.exception(
                "Task commit failed after %d of %d for conversation %s",
                len(created),
                len(descriptions),
                conversation_id,
            )
            await self._presenter.present_error(
                conversation_id,
                ErrorKind.PERSISTENCE_FAILURE,
                f"{len(created)} of {len(descriptions)} tasks were created",
            )
            return created
        finally:
            self._session.clear(conversation_id)

        LOGGER.info("Created %d tasks in project %r for user %s", len(created), project, owner)
        await self._presenter.present_task_summary(conversation_id, project, created)
        return created
