"""SQLite persistence boundary.

Writes are best-effort from the engine's point of view: every write
commits on its own and hands back a `WriteResult`. Failures are rolled
back, passed to the observer and logged, never raised. The in-memory
state cache stays authoritative for the rest of the process; the next
startup rebuilds everything from whatever did land on disk.
"""

from __future__ import annotations
import logging
import sqlite3
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Callable, Iterable

from .models import (
    DONE_HIDE_WINDOW, ActiveTrackingSession, Project, ProjectWithStatus, Task,
    TaskWithStatus, TimeEntry, HourlyActivity, DailyActivity,
)
from .schema import ensure_schema
from .timeutil import local_yyyy_mm_dd

logger = logging.getLogger(__name__)

ID_KINDS = ("projects", "tasks")
CURRENT_PROJECT_KEY = "current_project_index"
PROJECT_ORDER_KEY = "project_order"


@dataclass(frozen=True)
class WriteResult:
    operation: str
    ok: bool = True
    error: str | None = None
    rowid: int | None = None

    def __bool__(self) -> bool:
        return self.ok


def log_failure(result: WriteResult):
    logger.warning("persistence failure in %s: %s", result.operation, result.error)


def _entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry(
        id=row["id"],
        project_id=row["project_id"],
        task_id=row["task_id"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        duration_seconds=row["duration_seconds"],
    )


def _task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        time_seconds=row["time_seconds"],
        done_at=row["done_at"],
        archived_at=row["archived_at"],
    )


class Store:
    def __init__(self, path: str | Path = ":memory:", *,
                 observer: Callable[[WriteResult], None] | None = None,
                 tz: tzinfo | None = None):
        self.path = str(path)
        self.tz = tz
        self._observer = observer or log_failure
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        ensure_schema(self._conn)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def close(self):
        with self._lock:
            self._conn.close()

    # ---------- plumbing ----------

    def _report(self, operation: str, exc: Exception) -> WriteResult:
        result = WriteResult(operation, ok=False, error=str(exc))
        self._observer(result)
        return result

    def _write(self, operation: str, statements: Iterable[tuple[str, tuple]]) -> WriteResult:
        """Run `statements` in one transaction."""
        with self._lock:
            try:
                cur = self._conn.cursor()
                rowid = None
                for sql, params in statements:
                    cur.execute(sql, params)
                    rowid = cur.lastrowid
                self._conn.commit()
                return WriteResult(operation, rowid=rowid)
            except sqlite3.Error as e:
                self._rollback()
                return self._report(operation, e)

    def _rollback(self):
        try:
            self._conn.rollback()
        except sqlite3.ProgrammingError as e:
            # closed connection, nothing to undo
            logger.debug("rollback skipped: %s", e)

    def _read(self, operation: str, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                self._report(operation, e)
                return []

    # ---------- projects ----------

    def insert_project(self, project_id: int, name: str) -> WriteResult:
        return self._write("insert_project", [(
            "INSERT INTO projects (id, name, current_task_index) VALUES (?, ?, 0)",
            (project_id, name),
        )])

    def update_project_name(self, project_id: int, name: str) -> WriteResult:
        return self._write("update_project_name", [(
            "UPDATE projects SET name=? WHERE id=?", (name, project_id),
        )])

    def update_project_current_index(self, project_id: int, index: int) -> WriteResult:
        return self._write("update_project_current_index", [(
            "UPDATE projects SET current_task_index=? WHERE id=?", (index, project_id),
        )])

    def update_project_archived(self, project_id: int, archived_at: int | None, *,
                                cascade: bool = True) -> WriteResult:
        """Archive (or restore, with None) a project and, by default, all of its tasks."""
        stmts = [(
            "UPDATE projects SET archived_at=?, archived=? WHERE id=?",
            (archived_at, int(archived_at is not None), project_id),
        )]
        if cascade:
            stmts.append((
                "UPDATE tasks SET archived_at=?, archived=? WHERE project_id=?",
                (archived_at, int(archived_at is not None), project_id),
            ))
        return self._write("update_project_archived", stmts)

    def delete_project_cascade(self, project_id: int) -> WriteResult:
        return self._write("delete_project_cascade", [
            ("DELETE FROM time_entries WHERE project_id=?", (project_id,)),
            ("DELETE FROM active_tracking WHERE project_id=?", (project_id,)),
            ("DELETE FROM tasks WHERE project_id=?", (project_id,)),
            ("DELETE FROM projects WHERE id=?", (project_id,)),
        ])

    # ---------- tasks ----------

    def insert_task(self, task_id: int, project_id: int, name: str, time_seconds: int = 0) -> WriteResult:
        return self._write("insert_task", [(
            "INSERT INTO tasks (id, project_id, name, time_seconds, done_at) VALUES (?, ?, ?, ?, NULL)",
            (task_id, project_id, name, time_seconds),
        )])

    def update_task_name(self, task_id: int, name: str) -> WriteResult:
        return self._write("update_task_name", [(
            "UPDATE tasks SET name=? WHERE id=?", (name, task_id),
        )])

    def update_task_time(self, task_id: int, time_seconds: int) -> WriteResult:
        return self._write("update_task_time", [(
            "UPDATE tasks SET time_seconds=? WHERE id=?", (time_seconds, task_id),
        )])

    def update_task_done(self, task_id: int, done_at: int | None) -> WriteResult:
        return self._write("update_task_done", [(
            "UPDATE tasks SET done_at=?, done=? WHERE id=?",
            (done_at, int(done_at is not None), task_id),
        )])

    def update_task_archived(self, task_id: int, archived_at: int | None) -> WriteResult:
        return self._write("update_task_archived", [(
            "UPDATE tasks SET archived_at=?, archived=? WHERE id=?",
            (archived_at, int(archived_at is not None), task_id),
        )])

    def delete_task_cascade(self, task_id: int) -> WriteResult:
        return self._write("delete_task_cascade", [
            ("DELETE FROM time_entries WHERE task_id=?", (task_id,)),
            ("DELETE FROM active_tracking WHERE task_id=?", (task_id,)),
            ("DELETE FROM tasks WHERE id=?", (task_id,)),
        ])

    # ---------- time entries ----------

    def insert_time_entry(self, project_id: int, task_id: int, start_time: int, end_time: int,
                          duration_seconds: int) -> WriteResult:
        return self._write("insert_time_entry", [(
            """
            INSERT INTO time_entries (project_id, task_id, start_time, end_time, duration_seconds)
            VALUES (?, ?, ?, ?, ?)
            """,
            (project_id, task_id, start_time, end_time, duration_seconds),
        )])

    def commit_session(self, task_id: int, time_seconds: int, project_id: int,
                       start_time: int, end_time: int, duration_seconds: int) -> WriteResult:
        """Cumulative time, ledger row and session removal in one transaction."""
        return self._write("commit_session", [
            ("UPDATE tasks SET time_seconds=? WHERE id=?", (time_seconds, task_id)),
            (
                """
                INSERT INTO time_entries (project_id, task_id, start_time, end_time, duration_seconds)
                VALUES (?, ?, ?, ?, ?)
                """,
                (project_id, task_id, start_time, end_time, duration_seconds),
            ),
            ("DELETE FROM active_tracking WHERE task_id=?", (task_id,)),
        ])

    def query_time_entries(self, start_time: int, end_time: int) -> list[TimeEntry]:
        rows = self._read(
            "query_time_entries",
            """
            SELECT id, project_id, task_id, start_time, end_time, duration_seconds
              FROM time_entries
             WHERE start_time >= ? AND start_time <= ?
             ORDER BY start_time, id
            """,
            (start_time, end_time),
        )
        return [_entry(r) for r in rows]

    def query_all_time_entries(self) -> list[TimeEntry]:
        rows = self._read(
            "query_all_time_entries",
            "SELECT id, project_id, task_id, start_time, end_time, duration_seconds "
            "FROM time_entries ORDER BY start_time, id",
        )
        return [_entry(r) for r in rows]

    def query_hourly_activity(self, start_time: int, end_time: int) -> list[HourlyActivity]:
        rows = self._read(
            "query_hourly_activity",
            """
            SELECT (start_time % 86400) / 3600 AS hour, SUM(duration_seconds) AS total
              FROM time_entries
             WHERE start_time >= ? AND start_time <= ?
             GROUP BY hour
             ORDER BY hour
            """,
            (start_time, end_time),
        )
        return [HourlyActivity(hour=r["hour"], total_seconds=r["total"]) for r in rows]

    def query_daily_activity(self, start_time: int, end_time: int) -> list[DailyActivity]:
        rows = self._read(
            "query_daily_activity",
            "SELECT start_time, duration_seconds FROM time_entries "
            "WHERE start_time >= ? AND start_time <= ?",
            (start_time, end_time),
        )
        totals: dict[str, int] = defaultdict(int)
        for r in rows:
            totals[local_yyyy_mm_dd(r["start_time"], self.tz)] += r["duration_seconds"]
        return [DailyActivity(date=d, total_seconds=totals[d]) for d in sorted(totals)]

    def query_project_totals(self, start_time: int, end_time: int) -> list[tuple[int, int]]:
        rows = self._read(
            "query_project_totals",
            """
            SELECT project_id, SUM(duration_seconds) AS total
              FROM time_entries
             WHERE start_time >= ? AND start_time <= ?
             GROUP BY project_id
             ORDER BY total DESC, project_id
            """,
            (start_time, end_time),
        )
        return [(r["project_id"], r["total"]) for r in rows]

    def query_task_totals(self, start_time: int, end_time: int) -> list[tuple[int, int]]:
        rows = self._read(
            "query_task_totals",
            """
            SELECT task_id, SUM(duration_seconds) AS total
              FROM time_entries
             WHERE start_time >= ? AND start_time <= ?
             GROUP BY task_id
             ORDER BY total DESC, task_id
            """,
            (start_time, end_time),
        )
        return [(r["task_id"], r["total"]) for r in rows]

    # ---------- loading ----------

    def _visible_tasks_by_project(self, now: int, project_id: int | None = None) -> dict[int, list[Task]]:
        cutoff = now - DONE_HIDE_WINDOW
        sql = (
            "SELECT id, project_id, name, time_seconds, done_at, archived_at FROM tasks "
            "WHERE archived_at IS NULL AND (done_at IS NULL OR done_at >= ?)"
        )
        params: tuple = (cutoff,)
        if project_id is not None:
            sql += " AND project_id = ?"
            params += (project_id,)
        grouped: dict[int, list[Task]] = defaultdict(list)
        for r in self._read("load_tasks", sql + " ORDER BY id", params):
            grouped[r["project_id"]].append(_task(r))
        return grouped

    def load_visible_projects_with_tasks(self, now: int) -> list[Project]:
        rows = self._read(
            "load_projects",
            "SELECT id, name, current_task_index FROM projects WHERE archived_at IS NULL ORDER BY id",
        )
        tasks = self._visible_tasks_by_project(now)
        projects = []
        for r in rows:
            p = Project(id=r["id"], name=r["name"], tasks=tasks.get(r["id"], []),
                        current_task_index=r["current_task_index"])
            p.clamp_task_index()
            projects.append(p)
        return projects

    def load_project(self, project_id: int, now: int) -> Project | None:
        rows = self._read(
            "load_project",
            "SELECT id, name, current_task_index, archived_at FROM projects WHERE id=?",
            (project_id,),
        )
        if not rows:
            return None
        r = rows[0]
        p = Project(id=r["id"], name=r["name"],
                    tasks=self._visible_tasks_by_project(now, project_id).get(project_id, []),
                    current_task_index=r["current_task_index"], archived_at=r["archived_at"])
        p.clamp_task_index()
        return p

    def load_task(self, task_id: int) -> Task | None:
        rows = self._read(
            "load_task",
            "SELECT id, project_id, name, time_seconds, done_at, archived_at FROM tasks WHERE id=?",
            (task_id,),
        )
        return _task(rows[0]) if rows else None

    def load_all_projects_with_tasks_and_status(self) -> list[ProjectWithStatus]:
        projects = self._read(
            "load_all_projects",
            "SELECT id, name, current_task_index, archived_at FROM projects "
            "ORDER BY archived_at IS NOT NULL, id",
        )
        tasks = self._read(
            "load_all_tasks",
            "SELECT id, project_id, name, time_seconds, archived_at, done_at FROM tasks "
            "ORDER BY archived_at IS NOT NULL, id",
        )
        grouped: dict[int, list[TaskWithStatus]] = defaultdict(list)
        for t in tasks:
            grouped[t["project_id"]].append(TaskWithStatus(
                id=t["id"], name=t["name"], time_seconds=t["time_seconds"],
                archived_at=t["archived_at"], done_at=t["done_at"],
            ))
        return [
            ProjectWithStatus(id=p["id"], name=p["name"], tasks=grouped.get(p["id"], []),
                              current_task_index=p["current_task_index"],
                              archived_at=p["archived_at"])
            for p in projects
        ]

    def next_id(self, kind: str) -> int:
        if kind not in ID_KINDS:
            raise ValueError(f"unknown id kind: {kind!r}")
        rows = self._read("next_id", f"SELECT COALESCE(MAX(id), 0) + 1 AS n FROM {kind}")
        return rows[0]["n"] if rows else 1

    # ---------- active sessions ----------

    def add_active_session(self, session: ActiveTrackingSession) -> WriteResult:
        return self._write("add_active_session", [(
            "INSERT INTO active_tracking (project_id, task_id, started_at) VALUES (?, ?, ?)",
            (session.project_id, session.task_id, session.started_at),
        )])

    def remove_active_session(self, task_id: int) -> WriteResult:
        return self._write("remove_active_session", [(
            "DELETE FROM active_tracking WHERE task_id=?", (task_id,),
        )])

    def clear_active_sessions(self) -> WriteResult:
        return self._write("clear_active_sessions", [("DELETE FROM active_tracking", ())])

    def load_active_sessions(self) -> list[ActiveTrackingSession]:
        rows = self._read(
            "load_active_sessions",
            "SELECT project_id, task_id, started_at FROM active_tracking ORDER BY id",
        )
        return [ActiveTrackingSession(r["project_id"], r["task_id"], r["started_at"]) for r in rows]

    # ---------- app state ----------

    def load_app_value(self, key: str) -> str | None:
        rows = self._read("load_app_value", "SELECT value FROM app_state WHERE key=?", (key,))
        return rows[0]["value"] if rows else None

    def save_app_value(self, key: str, value: str) -> WriteResult:
        return self._write("save_app_value", [(
            """
            INSERT INTO app_state (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )])

    def load_current_project_index(self) -> int:
        raw = self.load_app_value(CURRENT_PROJECT_KEY)
        try:
            return max(0, int(raw)) if raw is not None else 0
        except ValueError:
            return 0

    def save_current_project_index(self, index: int) -> WriteResult:
        return self.save_app_value(CURRENT_PROJECT_KEY, str(index))

    def load_project_order(self) -> list[int]:
        raw = self.load_app_value(PROJECT_ORDER_KEY) or ""
        order = []
        for part in raw.split(","):
            part = part.strip()
            if part.isdigit():
                order.append(int(part))
        return order

    def save_project_order(self, ids: list[int]) -> WriteResult:
        return self.save_app_value(PROJECT_ORDER_KEY, ",".join(str(i) for i in ids))

    # ---------- maintenance ----------

    def wipe(self) -> WriteResult:
        return self._write("wipe", [
            ("DELETE FROM time_entries", ()),
            ("DELETE FROM active_tracking", ()),
            ("DELETE FROM tasks", ()),
            ("DELETE FROM projects", ()),
            ("DELETE FROM app_state", ()),
        ])

    def execute_script(self, operation: str, statements: list[tuple[str, tuple]]) -> WriteResult:
        """Bulk writes (mock data seeding)."""
        return self._write(operation, statements)
