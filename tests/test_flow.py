"""Scenario tests for TaskAssignmentFlow."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskbot.db import Database
from taskbot.extraction.extractor import TaskExtractor
from taskbot.flow import TaskAssignmentFlow
from taskbot.models import ConversationState, ErrorKind, LLMResponse, Task, TaskStatus
from taskbot.session import SessionManager

CHAT = 42
USER = 7


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _presenter() -> MagicMock:
    presenter = MagicMock()
    presenter.present_analyzing = AsyncMock(return_value=1001)
    for name in (
        "present_project_choice",
        "present_new_project_prompt",
        "present_task_summary",
        "present_project_created",
        "present_cancelled",
        "present_error",
    ):
        setattr(presenter, name, AsyncMock())
    return presenter


def _error_kinds(presenter: MagicMock) -> list[ErrorKind]:
    return [call.args[1] for call in presenter.present_error.await_args_list]


def _db(tmp_path) -> Database:
    db = Database(tmp_path / "tasks.db")
    db.initialize()
    return db


def _task(task_id: int, description: str, project: str = "Work") -> Task:
    return Task(
        id=task_id,
        description=description,
        project=project,
        status=TaskStatus.NOT_STARTED,
        created_at=datetime.now(timezone.utc),
        user_id=USER,
    )


class Harness:
    def __init__(self, db, extractor: TaskExtractor | None = None, debounce: float = 10.0) -> None:
        self.presenter = _presenter()
        self.calls: list[tuple[int, int | None]] = []

        async def on_ready(conversation_id: int, user_id: int | None) -> None:
            self.calls.append((conversation_id, user_id))
            await self.flow.handle_batch_ready(conversation_id, user_id)

        self.session = SessionManager(on_ready, debounce_seconds=debounce)
        self.extractor = extractor or TaskExtractor()
        self.flow = TaskAssignmentFlow(self.session, self.extractor, db, self.presenter)

    async def send(self, *texts: str) -> None:
        for text in texts:
            await self.flow.inbound_text(CHAT, USER, text)

    async def process(self) -> None:
        task = self.session.flush(CHAT)
        assert task is not None
        await task


# ===========================================================================
# Batching and analysis
# ===========================================================================


@pytest.mark.asyncio
async def test_simple_burst_yields_one_description_per_message(tmp_path):
    db = _db(tmp_path)
    db.add_project("Work", USER)
    harness = Harness(db, debounce=0.05)

    await harness.send("Fix the header logo", "Also update the footer link")
    await asyncio.sleep(0.3)

    assert harness.calls == [(CHAT, USER)]
    assert harness.session.get_analyzed_tasks(CHAT) == [
        "Fix the header logo",
        "Also update the footer link",
    ]
    harness.presenter.present_analyzing.assert_awaited_once_with(CHAT, 2)
    harness.presenter.present_project_choice.assert_awaited_once_with(
        CHAT,
        ["Fix the header logo", "Also update the footer link"],
        ["Work"],
        replace=1001,
    )


@pytest.mark.asyncio
async def test_model_receives_messages_in_arrival_order(tmp_path):
    db = _db(tmp_path)
    db.add_project("Work", USER)
    llm = MagicMock()
    llm.generate = AsyncMock(return_value=LLMResponse(content='["Fix header and footer"]'))
    harness = Harness(db, extractor=TaskExtractor(llm=llm))

    await harness.send("Fix the header logo", "Also update the footer link")
    await harness.process()

    prompt = llm.generate.await_args.args[0][1]["content"]
    assert prompt.index("Fix the header logo") < prompt.index("Also update the footer link")
    assert harness.session.get_analyzed_tasks(CHAT) == ["Fix header and footer"]


@pytest.mark.asyncio
async def test_empty_extraction_aborts_and_clears(tmp_path):
    harness = Harness(_db(tmp_path))

    await harness.send("...")
    await harness.process()

    assert _error_kinds(harness.presenter) == [ErrorKind.EMPTY_EXTRACTION]
    assert harness.session.get_analyzed_tasks(CHAT) is None
    assert harness.session.get_state(CHAT) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_no_projects_asks_for_new_name_directly(tmp_path):
    harness = Harness(_db(tmp_path))

    await harness.send("Write the report", "Send the invoice")
    await harness.process()

    harness.presenter.present_project_choice.assert_not_awaited()
    harness.presenter.present_new_project_prompt.assert_awaited_once_with(
        CHAT, ["Write the report", "Send the invoice"], replace=1001
    )
    assert harness.session.get_state(CHAT) is ConversationState.AWAITING_PROJECT_NAME


@pytest.mark.asyncio
async def test_unexpected_failure_reports_analysis_failed(tmp_path):
    db = MagicMock()
    db.list_projects.side_effect = RuntimeError("disk gone")
    harness = Harness(db)

    await harness.send("Write the report")
    await harness.process()

    assert _error_kinds(harness.presenter) == [ErrorKind.ANALYSIS_FAILED]
    assert harness.session.get_batch(CHAT) is None


@pytest.mark.asyncio
async def test_batch_cleared_during_analysis_gets_no_prompt(tmp_path):
    db = _db(tmp_path)
    db.add_project("Work", USER)
    llm = MagicMock()
    harness = Harness(db, extractor=TaskExtractor(llm=llm))

    async def clear_then_answer(*args, **kwargs):
        harness.session.clear(CHAT)
        return LLMResponse(content='["Write the report"]')

    llm.generate = AsyncMock(side_effect=clear_then_answer)
    await harness.send("Write the report")
    await harness.process()

    harness.presenter.present_project_choice.assert_not_awaited()
    harness.presenter.present_new_project_prompt.assert_not_awaited()
    assert harness.session.get_batch(CHAT) is None


@pytest.mark.asyncio
async def test_messages_arriving_during_analysis_survive_empty_extraction(tmp_path):
    llm = MagicMock()
    harness = Harness(_db(tmp_path), extractor=TaskExtractor(llm=llm))

    async def buffer_then_fail(*args, **kwargs):
        await harness.flow.inbound_text(CHAT, USER, "Send the invoice")
        return LLMResponse(content="no tasks here")

    llm.generate = AsyncMock(side_effect=buffer_then_fail)
    await harness.send("...")
    await harness.process()

    assert _error_kinds(harness.presenter) == [ErrorKind.EMPTY_EXTRACTION]
    assert [m.text for m in harness.session.get_messages(CHAT)] == ["Send the invoice"]
    assert harness.session.get_analyzed_tasks(CHAT) is None
    assert harness.session.get_state(CHAT) is ConversationState.ACCUMULATING
    harness.session.close()


# ===========================================================================
# Inbound routing
# ===========================================================================


@pytest.mark.asyncio
async def test_commands_are_not_buffered(tmp_path):
    harness = Harness(_db(tmp_path))
    consumed = await harness.flow.inbound_text(CHAT, USER, "/list")
    assert consumed is False
    assert harness.session.get_batch(CHAT) is None


@pytest.mark.asyncio
async def test_blank_message_is_invalid_input(tmp_path):
    harness = Harness(_db(tmp_path))
    await harness.flow.inbound_text(CHAT, USER, "   ")
    assert _error_kinds(harness.presenter) == [ErrorKind.INVALID_INPUT]
    assert harness.session.get_batch(CHAT) is None


@pytest.mark.asyncio
async def test_text_while_awaiting_name_is_the_project_name(tmp_path):
    db = _db(tmp_path)
    harness = Harness(db)
    await harness.send("Write the report")
    await harness.process()

    await harness.flow.inbound_text(CHAT, USER, "  Reports  ")

    assert [t.description for t in db.list_tasks(USER, project="Reports")] == ["Write the report"]
    assert harness.session.get_batch(CHAT) is None


# ===========================================================================
# Project choice and commit
# ===========================================================================


@pytest.mark.asyncio
async def test_project_chosen_commits_all_tasks(tmp_path):
    db = _db(tmp_path)
    db.add_project("Work", USER)
    harness = Harness(db)
    await harness.send("Write the report", "Send the invoice")
    await harness.process()

    created = await harness.flow.project_chosen(CHAT, USER, "Work")

    assert [t.description for t in created] == ["Write the report", "Send the invoice"]
    assert all(t.status is TaskStatus.NOT_STARTED and t.user_id == USER for t in created)
    harness.presenter.present_task_summary.assert_awaited_once_with(CHAT, "Work", created)
    assert harness.session.get_batch(CHAT) is None


@pytest.mark.asyncio
async def test_project_chosen_after_session_lost(tmp_path):
    harness = Harness(_db(tmp_path))
    created = await harness.flow.project_chosen(CHAT, USER, "Work")
    assert created == []
    assert _error_kinds(harness.presenter) == [ErrorKind.TASKS_LOST]


@pytest.mark.asyncio
async def test_partial_commit_failure_reports_and_clears():
    db = MagicMock()
    db.list_projects.return_value = ["Work"]
    db.add_task.side_effect = [1, RuntimeError("disk full"), 3]
    db.get_task.return_value = _task(1, "First")
    harness = Harness(db)
    await harness.send("First", "Second", "Third")
    await harness.process()

    created = await harness.flow.project_chosen(CHAT, USER, "Work")

    assert len(created) == 1
    assert db.add_task.call_count == 2
    assert _error_kinds(harness.presenter) == [ErrorKind.PERSISTENCE_FAILURE]
    assert harness.presenter.present_error.await_args.args[2] == "1 of 3 tasks were created"
    harness.presenter.present_task_summary.assert_not_awaited()
    assert harness.session.get_analyzed_tasks(CHAT) is None


@pytest.mark.asyncio
async def test_cancel_clears_without_creating(tmp_path):
    db = _db(tmp_path)
    db.add_project("Work", USER)
    harness = Harness(db)
    await harness.send("Write the report")
    await harness.process()

    await harness.flow.cancel_requested(CHAT)

    harness.presenter.present_cancelled.assert_awaited_once_with(CHAT)
    assert harness.session.get_batch(CHAT) is None
    assert db.list_tasks(USER) == []


# ===========================================================================
# New project names
# ===========================================================================


@pytest.mark.asyncio
async def test_duplicate_project_keeps_state_and_tasks(tmp_path):
    db = _db(tmp_path)
    db.add_project("Work", USER)
    harness = Harness(db)
    await harness.send("Write the report", "Send the invoice")
    await harness.process()
    await harness.flow.request_new_project(CHAT)

    created = await harness.flow.new_project_name_submitted(CHAT, USER, "Work")

    assert created == []
    assert _error_kinds(harness.presenter) == [ErrorKind.DUPLICATE_PROJECT]
    assert harness.session.get_state(CHAT) is ConversationState.AWAITING_PROJECT_NAME
    assert harness.session.get_analyzed_tasks(CHAT) == ["Write the report", "Send the invoice"]

    created = await harness.flow.new_project_name_submitted(CHAT, USER, "Billing")
    assert len(created) == 2
    assert harness.session.get_state(CHAT) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_empty_project_name_reprompts(tmp_path):
    harness = Harness(_db(tmp_path))
    await harness.send("Write the report")
    await harness.process()

    await harness.flow.new_project_name_submitted(CHAT, USER, "   ")

    assert _error_kinds(harness.presenter) == [ErrorKind.INVALID_INPUT]
    assert harness.session.get_state(CHAT) is ConversationState.AWAITING_PROJECT_NAME
    assert harness.session.get_analyzed_tasks(CHAT) == ["Write the report"]


@pytest.mark.asyncio
async def test_project_write_failure_clears_session():
    db = MagicMock()
    db.list_projects.return_value = []
    db.project_exists.return_value = False
    db.add_project.side_effect = RuntimeError("locked")
    harness = Harness(db)
    await harness.send("Write the report")
    await harness.process()

    await harness.flow.new_project_name_submitted(CHAT, USER, "Reports")

    assert _error_kinds(harness.presenter) == [ErrorKind.PERSISTENCE_FAILURE]
    assert harness.session.get_batch(CHAT) is None
    assert harness.session.get_state(CHAT) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_start_project_creation_without_tasks(tmp_path):
    db = _db(tmp_path)
    harness = Harness(db)

    await harness.flow.start_project_creation(CHAT)
    assert harness.session.get_state(CHAT) is ConversationState.AWAITING_PROJECT_NAME

    await harness.flow.inbound_text(CHAT, USER, "Home")

    assert db.list_projects(USER) == ["Home"]
    harness.presenter.present_project_created.assert_awaited_once_with(CHAT, "Home")
    assert harness.session.get_state(CHAT) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_prompt_project_name_consumes_next_message(tmp_path):
    db = _db(tmp_path)
    harness = Harness(db)

    harness.flow.prompt_project_name(CHAT, USER)
    await harness.flow.inbound_text(CHAT, USER, "Garden")
    await harness.flow.inbound_text(CHAT, USER, "Water the plants")

    assert db.list_projects(USER) == ["Garden"]
    assert [m.text for m in harness.session.get_messages(CHAT)] == ["Water the plants"]
    harness.session.close()


@pytest.mark.asyncio
async def test_prompt_project_name_retries_after_duplicate(tmp_path):
    db = _db(tmp_path)
    db.add_project("Home", USER)
    harness = Harness(db)

    harness.flow.prompt_project_name(CHAT, USER)
    await harness.flow.inbound_text(CHAT, USER, "Home")
    await harness.flow.inbound_text(CHAT, USER, "Garden")

    assert _error_kinds(harness.presenter) == [ErrorKind.DUPLICATE_PROJECT]
    assert db.list_projects(USER) == ["Garden", "Home"]
    assert harness.session.get_batch(CHAT) is None


@pytest.mark.asyncio
async def test_prompt_project_name_retries_after_empty_name(tmp_path):
    db = _db(tmp_path)
    harness = Harness(db)

    harness.flow.prompt_project_name(CHAT, USER)
    await harness.flow.inbound_text(CHAT, USER, "   ")
    await harness.flow.inbound_text(CHAT, USER, "Garden")

    assert _error_kinds(harness.presenter) == [ErrorKind.INVALID_INPUT]
    assert db.list_projects(USER) == ["Garden"]
    assert harness.session.get_batch(CHAT) is None


# ===========================================================================
# Single task
# ===========================================================================


@pytest.mark.asyncio
async def test_create_single_task(tmp_path):
    db = _db(tmp_path)
    harness = Harness(db)

    task = await harness.flow.create_single_task(CHAT, USER, "Buy milk. And bread.", "Inbox")

    assert task is not None
    assert task.description == "Buy milk"
    assert task.project == "Inbox"
    harness.presenter.present_task_summary.assert_awaited_once_with(CHAT, "Inbox", [task])


@pytest.mark.asyncio
async def test_create_single_task_without_text(tmp_path):
    harness = Harness(_db(tmp_path))
    assert await harness.flow.create_single_task(CHAT, USER, "?!", "Inbox") is None
    assert _error_kinds(harness.presenter) == [ErrorKind.EMPTY_EXTRACTION]
