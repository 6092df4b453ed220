"""Transport-agnostic screens: message text plus inline button rows.

Every function here is pure. Text is HTML (Telegram's HTML parse mode), so any
user-supplied value is escaped before it is embedded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape

from taskbot.models import ErrorKind, ProjectStats, Task, TaskStatus

MAX_LIST_CHARS = 4000

STATUS_EMOJI = {
    TaskStatus.NOT_STARTED: "⏳",
    TaskStatus.IN_PROGRESS: "🚧",
    TaskStatus.DONE: "✅",
}
STATUS_TITLE = {
    TaskStatus.NOT_STARTED: "Not started",
    TaskStatus.IN_PROGRESS: "In progress",
    TaskStatus.DONE: "Done",
}

_ERROR_TEXT = {
    ErrorKind.EMPTY_EXTRACTION: "⚠️ Could not extract any tasks from your messages. Please send them again.",
    ErrorKind.DUPLICATE_PROJECT: "⚠️ Project \"{detail}\" already exists. Send a different name:",
    ErrorKind.PERSISTENCE_FAILURE: "⚠️ Failed to save tasks: {detail}. Please try again.",
    ErrorKind.INVALID_INPUT: "⚠️ {detail}",
    ErrorKind.TASKS_LOST: "❌ Task data was lost. Please forward the messages again.",
    ErrorKind.ANALYSIS_FAILED: "⚠️ Something went wrong while analysing your messages. Please try again.",
}


@dataclass(frozen=True, slots=True)
class Button:
    label: str
    data: str


@dataclass(slots=True)
class Screen:
    """Text with an optional inline keyboard."""

    text: str
    buttons: list[list[Button]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def format_status(status: TaskStatus) -> str:
    return f"{STATUS_EMOJI[status]} {STATUS_TITLE[status]}"


def format_task(task: Task) -> str:
    return (
        f"📌 {escape(task.description)}\n"
        f"📁 {escape(task.project)}\n"
        f"{format_status(task.status)}\n"
        f"📅 {task.created_at.strftime('%Y-%m-%d')}"
    )


def format_task_list(tasks: list[Task], show_completed: bool = False) -> str:
    """Numbered task lines; completed tasks are hidden unless asked for."""

    if not tasks:
        return "No tasks found"
    visible = tasks if show_completed else [t for t in tasks if t.status is not TaskStatus.DONE]
    if not visible:
        return "No tasks found" if show_completed else "No active tasks"
    lines = [
        f"{index}. [{STATUS_EMOJI[task.status]}] {escape(task.description)}"
        for index, task in enumerate(visible, start=1)
    ]
    return "\n\n".join(lines)[:MAX_LIST_CHARS]


def task_list_header(status: TaskStatus | None = None, project: str | None = None) -> str:
    header = "📋 Task list"
    if status is not None:
        header += f" • {format_status(status)}"
    if project is not None:
        header += f" • Project: {escape(project)}"
    return header


def _numbered(descriptions: list[str]) -> str:
    return "\n\n".join(f"{index}. {escape(text)}" for index, text in enumerate(descriptions, start=1))


def _pairs(buttons: list[Button]) -> list[list[Button]]:
    return [buttons[i : i + 2] for i in range(0, len(buttons), 2)]


def _task_buttons(tasks: list[Task]) -> list[list[Button]]:
    return [[Button(f"🔗 Task #{task.id}", f"task_info:{task.id}")] for task in tasks]


# ---------------------------------------------------------------------------
# Task screens
# ---------------------------------------------------------------------------


def welcome_screen(first_name: str, tasks: list[Task]) -> Screen:
    text = (
        f"Hi, {escape(first_name)}! 👋\n\n"
        "I'm <b>Task Bot</b>, I help you keep track of tasks and projects.\n\n"
        "To create a task just send me a message describing it, for example: "
        "<i>\"Update the client presentation\"</i>\n\n"
        "You can also forward messages from other chats and I will turn them into tasks.\n\n"
        "<b>Commands:</b>\n"
        "• /list - show tasks\n"
        "• /projects - manage projects\n"
        "• /help - show help"
    )
    active = [task for task in tasks if task.status is not TaskStatus.DONE]
    return Screen(text, task_list_keyboard(active))


def help_screen() -> Screen:
    text = (
        "<b>📱 Task Bot</b>\n\n"
        "Keeps your tasks organised by project and tracks their status.\n\n"
        "<b>Commands:</b>\n"
        "• /start - start the bot\n"
        "• /list - show tasks\n"
        "• /projects - manage projects\n"
        "• /add &lt;text&gt; - create one task right away\n"
        "• /process - analyse buffered messages now\n\n"
        "<b>Creating tasks:</b>\n"
        "• Send a message describing a task\n"
        "• Send or forward several messages in a row and they are grouped into tasks\n\n"
        "<b>Managing tasks:</b>\n"
        "• Tap a task to start, complete or delete it\n"
        "• Filter by status or by project"
    )
    return Screen(text, task_list_keyboard([]))


def task_list_keyboard(tasks: list[Task]) -> list[list[Button]]:
    return _task_buttons(tasks) + [
        [Button("📊 Statuses", "show_statuses_screen"), Button("📁 Projects", "show_project_filter")]
    ]


def task_list_screen(tasks: list[Task]) -> Screen:
    """General list: all active tasks."""

    active = [task for task in tasks if task.status is not TaskStatus.DONE]
    if not active:
        return Screen(
            "📋 Task list is empty\n\nYou have no active tasks.\nSend a message to create one.",
            task_list_keyboard([]),
        )
    return Screen(f"{task_list_header()}\n\n{format_task_list(active)}", task_list_keyboard(active))


def statuses_screen(tasks: list[Task]) -> Screen:
    counts = {status: sum(1 for task in tasks if task.status is status) for status in TaskStatus}
    lines = [f"{format_status(status)}: {counts[status]}" for status in TaskStatus]
    text = "📋 Task list • Statuses\n\n" + "\n".join(lines) + f"\n\nTotal tasks: {len(tasks)}"
    buttons = [[Button(format_status(status), f"filter_status:{status.value}")] for status in TaskStatus]
    buttons.append([Button("🔍 All tasks", "filter_status:all")])
    buttons.append([Button("◀️ Back", "show_task_list")])
    return Screen(text, buttons)


def status_filtered_screen(tasks: list[Task], status: TaskStatus) -> Screen:
    show_completed = status is TaskStatus.DONE
    text = f"{task_list_header(status=status)}\n\n{format_task_list(tasks, show_completed)}"
    listed = tasks if show_completed else [task for task in tasks if task.status is not TaskStatus.DONE]
    buttons = _task_buttons(listed) + [
        [Button("🔍 All tasks", "show_task_list"), Button("◀️ Back", "show_statuses_screen")]
    ]
    return Screen(text, buttons)


def project_filter_screen(stats: dict[str, ProjectStats]) -> Screen:
    if not stats:
        return Screen(
            "📁 You have no projects yet.\n\nCreate one to start grouping your tasks.",
            [[Button("➕ Create project", "create_project")], [Button("◀️ Back", "show_task_list")]],
        )
    text = "📋 Task list • Projects\n\n" + "\n\n".join(
        f"📁 <b>{escape(name)}</b>\n   • Total tasks: {item.total}\n   • Active: {item.active}"
        for name, item in stats.items()
    )
    buttons = _pairs([Button(f"📁 {name}", f"filter_project:{name}") for name in stats])
    buttons.append([Button("🔍 All tasks", "show_task_list")])
    return Screen(text, buttons)


def project_filtered_screen(tasks: list[Task], project: str) -> Screen:
    if not tasks:
        return Screen(
            f"📁 Project \"{escape(project)}\"\n\nThis project has no tasks yet.",
            [[Button("📁 All projects", "show_project_filter"), Button("◀️ Back", "show_task_list")]],
        )
    active = [task for task in tasks if task.status is not TaskStatus.DONE]
    text = f"{task_list_header(project=project)}\n\n{format_task_list(tasks)}"
    buttons = _task_buttons(active) + [
        [Button("📁 All projects", "show_project_filter"), Button("◀️ Back", "show_task_list")]
    ]
    return Screen(text, buttons)


def task_details_screen(task: Task) -> Screen:
    actions: list[Button] = []
    if task.status is not TaskStatus.IN_PROGRESS:
        actions.append(Button("🚧 Start", f"start_task:{task.id}"))
    if task.status is not TaskStatus.DONE:
        actions.append(Button("✅ Done", f"done_task:{task.id}"))
    actions.append(Button("🗑️ Delete", f"delete_task:{task.id}"))
    return Screen(format_task(task), [actions, [Button("◀️ Back", "show_task_list")]])


def task_delete_confirm_screen(task: Task) -> Screen:
    return Screen(
        f"🗑️ Delete task #{task.id}?\n\n{escape(task.description)}",
        [[Button("✅ Confirm", f"confirm_delete:{task.id}"), Button("❌ Cancel", f"cancel_delete:{task.id}")]],
    )


# ---------------------------------------------------------------------------
# Project screens
# ---------------------------------------------------------------------------


def projects_screen(stats: dict[str, ProjectStats]) -> Screen:
    add_row = [Button("➕ Add project", "add_new_project")]
    if not stats:
        return Screen("📁 You have no projects yet.\n\nTap the button below to create the first one:", [add_row])
    text = "📁 Project management:\n\n" + "\n\n".join(
        f"📂 <b>{escape(name)}</b>\n"
        f"   📊 Total: {item.total} | ⏳ {item.not_started} | 🚧 {item.in_progress} | ✅ {item.done}"
        for name, item in stats.items()
    )
    buttons = _pairs([Button(f"📁 {name}", f"manage_project:{name}") for name in stats])
    buttons.append(add_row)
    return Screen(text, buttons)


def project_details_screen(project: str, stats: ProjectStats) -> Screen:
    text = (
        f"📁 Project: <b>{escape(project)}</b>\n\n"
        "📊 Statistics:\n"
        f"   • Total tasks: {stats.total}\n"
        f"   • {format_status(TaskStatus.NOT_STARTED)}: {stats.not_started}\n"
        f"   • {format_status(TaskStatus.IN_PROGRESS)}: {stats.in_progress}\n"
        f"   • {format_status(TaskStatus.DONE)}: {stats.done}\n\n"
        "Choose an action:"
    )
    return Screen(
        text,
        [
            [Button("📋 Tasks", f"filter_project:{project}")],
            [Button("🧹 Clear", f"clear_project:{project}")],
            [Button("🗑️ Delete", f"delete_project:{project}")],
            [Button("◀️ Back", "back_to_projects")],
        ],
    )


def project_clear_confirm_screen(project: str) -> Screen:
    return Screen(
        f"🧹 Clear project \"{escape(project)}\"?\n\n"
        "⚠️ This deletes ALL tasks in the project. The project itself stays.",
        [[Button("✅ Confirm", f"confirm_project_clear:{project}"), Button("❌ Cancel", f"cancel_project_clear:{project}")]],
    )


def project_delete_confirm_screen(project: str) -> Screen:
    return Screen(
        f"🗑️ Delete project \"{escape(project)}\" together with all its tasks?",
        [[Button("✅ Confirm", f"confirm_project_delete:{project}"), Button("❌ Cancel", f"cancel_project_delete:{project}")]],
    )


def project_name_prompt_screen() -> Screen:
    return Screen("🆕 New project\n\nSend the project name:")


def project_created_screen(project: str) -> Screen:
    return Screen(
        f"✅ Project \"{escape(project)}\" created!\n\n"
        "<b>What next?</b>\n"
        "• Send messages and assign the resulting tasks to this project\n"
        "• Use the project filter to see its tasks",
        task_list_keyboard([]),
    )


# ---------------------------------------------------------------------------
# Task-assignment screens
# ---------------------------------------------------------------------------


def analyzing_screen(message_count: int) -> Screen:
    noun = "message" if message_count == 1 else "messages"
    return Screen(f"⏳ Analysing {message_count} {noun}...")


def project_choice_screen(descriptions: list[str], projects: list[str]) -> Screen:
    text = (
        f"📝 Create {len(descriptions)} tasks:\n\n{_numbered(descriptions)}\n\n"
        "📁 Choose a project or create a new one:"
    )
    buttons = _pairs([Button(f"📁 {name}", f"select_project_for_tasks:{name}") for name in projects])
    buttons.append([Button("🆕 New project", "create_new_project_for_tasks")])
    buttons.append([Button("❌ Cancel", "cancel_tasks_creation")])
    return Screen(text, buttons)


def new_project_for_tasks_screen(descriptions: list[str]) -> Screen:
    return Screen(
        f"📝 Tasks to create:\n\n{_numbered(descriptions)}\n\n🆕 Send the name of the new project:",
        [[Button("❌ Cancel", "cancel_tasks_creation")]],
    )


def tasks_created_screen(project: str, tasks: list[Task]) -> Screen:
    lines = "\n\n".join(
        f"{index}. <b>{escape(task.description)}</b> (#{task.id})" for index, task in enumerate(tasks, start=1)
    )
    text = (
        f"✅ Created {len(tasks)} tasks in project \"{escape(project)}\"\n\n"
        f"📁 Project: <b>{escape(project)}</b>\n\n📝 Created tasks:\n\n{lines}"
    )
    return Screen(text, task_list_keyboard([]))


def cancelled_screen() -> Screen:
    return Screen("❌ Task creation cancelled.")


def error_screen(kind: ErrorKind, detail: str = "") -> Screen:
    return Screen(_ERROR_TEXT[kind].format(detail=escape(detail)))
