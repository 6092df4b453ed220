from datetime import datetime, timezone

from taskbot import screens
from taskbot.models import ErrorKind, ProjectStats, Task, TaskStatus


def _task(task_id: int, description: str, status: TaskStatus = TaskStatus.NOT_STARTED, project: str = "Work") -> Task:
    return Task(
        id=task_id,
        description=description,
        project=project,
        status=status,
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        user_id=7,
    )


def _data(screen: screens.Screen) -> list[str]:
    return [button.data for row in screen.buttons for button in row]


def test_format_task_list_hides_completed():
    tasks = [_task(1, "open"), _task(2, "closed", TaskStatus.DONE)]
    text = screens.format_task_list(tasks)
    assert "open" in text
    assert "closed" not in text


def test_format_task_list_empty_variants():
    assert screens.format_task_list([]) == "No tasks found"
    assert screens.format_task_list([_task(1, "x", TaskStatus.DONE)]) == "No active tasks"


def test_format_task_list_is_capped():
    tasks = [_task(i, "y" * 90) for i in range(100)]
    assert len(screens.format_task_list(tasks)) == screens.MAX_LIST_CHARS


def test_user_text_is_escaped():
    screen = screens.task_details_screen(_task(1, "<script>"))
    assert "&lt;script&gt;" in screen.text
    assert "<script>" not in screen.text


def test_task_list_screen_buttons():
    screen = screens.task_list_screen([_task(3, "a"), _task(4, "b", TaskStatus.DONE)])
    assert _data(screen) == ["task_info:3", "show_statuses_screen", "show_project_filter"]


def test_task_details_buttons_follow_status():
    assert _data(screens.task_details_screen(_task(1, "a"))) == [
        "start_task:1",
        "done_task:1",
        "delete_task:1",
        "show_task_list",
    ]
    assert _data(screens.task_details_screen(_task(1, "a", TaskStatus.IN_PROGRESS)))[0] == "done_task:1"
    assert "done_task:1" not in _data(screens.task_details_screen(_task(1, "a", TaskStatus.DONE)))


def test_project_choice_screen():
    screen = screens.project_choice_screen(["Task A", "Task B"], ["Home", "Work", "Zoo"])
    assert "Create 2 tasks" in screen.text
    assert "1. Task A" in screen.text
    assert [len(row) for row in screen.buttons] == [2, 1, 1, 1]
    assert _data(screen)[-2:] == ["create_new_project_for_tasks", "cancel_tasks_creation"]


def test_projects_screen_without_projects():
    screen = screens.projects_screen({})
    assert _data(screen) == ["add_new_project"]


def test_project_filter_screen_without_projects_offers_creation():
    assert "create_project" in _data(screens.project_filter_screen({}))


def test_project_details_stats():
    screen = screens.project_details_screen("Work", ProjectStats(total=3, not_started=1, in_progress=1, done=1))
    assert "Total tasks: 3" in screen.text
    assert "clear_project:Work" in _data(screen)


def test_statuses_screen():
    screen = screens.statuses_screen([_task(1, "a"), _task(2, "b", TaskStatus.DONE)])
    assert "Total tasks: 2" in screen.text
    assert "filter_status:done" in _data(screen)
    assert "filter_status:all" in _data(screen)


def test_error_screens_cover_every_kind():
    for kind in ErrorKind:
        assert screens.error_screen(kind, "detail").text


def test_duplicate_project_error_names_project():
    assert "Work" in screens.error_screen(ErrorKind.DUPLICATE_PROJECT, "Work").text


def test_analyzing_screen_pluralises():
    assert screens.analyzing_screen(1).text == "⏳ Analysing 1 message..."
    assert screens.analyzing_screen(3).text == "⏳ Analysing 3 messages..."
