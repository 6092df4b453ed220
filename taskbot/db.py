"""SQLite persistence layer for tasks and projects."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from taskbot.models import ProjectStats, Task, TaskStatus

SCHEMA_VERSION = 1


class Database:
    """Small SQLite wrapper with explicit schema management.

    Every query is scoped to the owning Telegram user id.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                description TEXT NOT NULL,
                project TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                user_id INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                user_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(name, user_id)
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id);
            CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);
            CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project);
            """
        )

    # -- tasks ---------------------------------------------------------------

    def add_task(
        self,
        description: str,
        project: str,
        status: TaskStatus,
        created_at: datetime,
        user_id: int,
    ) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO tasks(description, project, status, created_at, user_id)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    description,
                    project,
                    TaskStatus(status).value,
                    created_at.astimezone(timezone.utc).isoformat(),
                    user_id,
                ),
            )
            return int(cur.lastrowid)

    def get_task(self, task_id: int, user_id: int) -> Task | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            ).fetchone()
        return _row_to_task(row) if row else None

    def list_tasks(
        self,
        user_id: int,
        status: TaskStatus | None = None,
        project: str | None = None,
    ) -> list[Task]:
        """Return the user's tasks, newest first, optionally filtered."""

        query = "SELECT * FROM tasks WHERE user_id = ?"
        params: list[object] = [user_id]
        if status is not None:
            query += " AND status = ?"
            params.append(TaskStatus(status).value)
        if project is not None:
            query += " AND project = ?"
            params.append(project)
        query += " ORDER BY id DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_task(row) for row in rows]

    def update_task_status(self, task_id: int, status: TaskStatus, user_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE tasks SET status = ? WHERE id = ? AND user_id = ?",
                (TaskStatus(status).value, task_id, user_id),
            )
            return cur.rowcount > 0

    def delete_task(self, task_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            )
            return cur.rowcount > 0

    # -- projects ------------------------------------------------------------

    def list_projects(self, user_id: int) -> list[str]:
        """Sorted union of explicit project rows and projects referenced by tasks."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT name FROM projects WHERE user_id = ?
                UNION
                SELECT DISTINCT project FROM tasks WHERE user_id = ?
                """,
                (user_id, user_id),
            ).fetchall()
        return sorted(row[0] for row in rows)

    def project_exists(self, name: str, user_id: int) -> bool:
        return name in self.list_projects(user_id)

    def add_project(self, name: str, user_id: int) -> bool:
        """Insert a project row. Returns False when the name is already taken."""

        try:
            with self._connect() as conn:
                cur = conn.execute(
                    "INSERT INTO projects(name, user_id, created_at) VALUES (?, ?, ?)",
                    (name, user_id, _utc_now_iso()),
                )
                return cur.rowcount > 0
        except sqlite3.IntegrityError:
            return False

    def clear_project(self, name: str, user_id: int) -> int:
        """Delete every task of a project, keeping the project itself."""

        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE project = ? AND user_id = ?",
                (name, user_id),
            )
            return cur.rowcount

    def delete_project(self, name: str, user_id: int) -> bool:
        with self._connect() as conn:
            project_cur = conn.execute(
                "DELETE FROM projects WHERE name = ? AND user_id = ?",
                (name, user_id),
            )
            tasks_cur = conn.execute(
                "DELETE FROM tasks WHERE project = ? AND user_id = ?",
                (name, user_id),
            )
            return project_cur.rowcount > 0 or tasks_cur.rowcount > 0

    def project_stats(self, name: str, user_id: int) -> ProjectStats:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN status = 'not_started' THEN 1 ELSE 0 END) AS not_started,
                    SUM(CASE WHEN status = 'in_progress' THEN 1 ELSE 0 END) AS in_progress,
                    SUM(CASE WHEN status = 'done' THEN 1 ELSE 0 END) AS done
                FROM tasks
                WHERE project = ? AND user_id = ?
                """,
                (name, user_id),
            ).fetchone()
        return ProjectStats(
            total=row["total"] or 0,
            not_started=row["not_started"] or 0,
            in_progress=row["in_progress"] or 0,
            done=row["done"] or 0,
        )

    def all_project_stats(self, user_id: int) -> dict[str, ProjectStats]:
        return {name: self.project_stats(name, user_id) for name in self.list_projects(user_id)}


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=int(row["id"]),
        description=row["description"],
        project=row["project"],
        status=TaskStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        user_id=int(row["user_id"]),
    )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
