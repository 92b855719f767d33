from __future__ import annotations

import sqlite3
from pathlib import Path

from rotator.schema import SCHEMA_VERSION, ensure_schema, schema_version, table_columns


def _schema_sql(conn: sqlite3.Connection) -> list[tuple[str, str]]:
    return conn.execute(
        "SELECT name, sql FROM sqlite_master WHERE sql IS NOT NULL ORDER BY name"
    ).fetchall()


def _legacy_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE projects (
          id INTEGER PRIMARY KEY,
          name TEXT NOT NULL,
          current_task_index INTEGER NOT NULL DEFAULT 0,
          archived INTEGER NOT NULL DEFAULT 0
        );
        CREATE TABLE tasks (
          id INTEGER PRIMARY KEY,
          project_id INTEGER NOT NULL,
          name TEXT NOT NULL,
          time_seconds INTEGER NOT NULL DEFAULT 0,
          archived INTEGER NOT NULL DEFAULT 0,
          done INTEGER NOT NULL DEFAULT 0
        );
        CREATE TABLE active_tracking (
          id INTEGER PRIMARY KEY CHECK (id = 1),
          project_id INTEGER NOT NULL,
          task_id INTEGER NOT NULL,
          started_at INTEGER NOT NULL
        );
        INSERT INTO projects (id, name, archived) VALUES (1, 'Live', 0), (2, 'Old', 1);
        INSERT INTO tasks (id, project_id, name, done, archived) VALUES
          (1, 1, 'open', 0, 0),
          (2, 1, 'finished', 1, 0),
          (3, 2, 'shelved', 0, 1);
        INSERT INTO active_tracking (id, project_id, task_id, started_at) VALUES (1, 1, 1, 500);
        """
    )
    conn.commit()
    return conn


def test_fresh_database_gets_latest_shape(tmp_path: Path) -> None:
    conn = sqlite3.connect(tmp_path / "new.db")
    ensure_schema(conn, now=100)

    assert {"done_at", "archived_at", "time_seconds"} <= table_columns(conn, "tasks")
    assert "archived_at" in table_columns(conn, "projects")
    assert {"start_time", "duration_seconds"} <= table_columns(conn, "time_entries")
    assert schema_version(conn) == SCHEMA_VERSION
    conn.close()


def test_ensure_schema_is_idempotent(tmp_path: Path) -> None:
    conn = sqlite3.connect(tmp_path / "twice.db")
    ensure_schema(conn, now=100)
    first = _schema_sql(conn)
    ensure_schema(conn, now=200)
    assert _schema_sql(conn) == first
    conn.close()


def test_legacy_flags_become_timestamps_once(tmp_path: Path) -> None:
    conn = _legacy_db(tmp_path / "legacy.db")

    ensure_schema(conn, now=1_000)
    tasks = dict(conn.execute("SELECT id, done_at FROM tasks").fetchall())
    assert tasks == {1: None, 2: 1_000, 3: None}
    archived = dict(conn.execute("SELECT id, archived_at FROM tasks").fetchall())
    assert archived == {1: None, 2: None, 3: 1_000}
    projects = dict(conn.execute("SELECT id, archived_at FROM projects").fetchall())
    assert projects == {1: None, 2: 1_000}

    # a second run must not restamp
    ensure_schema(conn, now=2_000)
    assert conn.execute("SELECT done_at FROM tasks WHERE id = 2").fetchone()[0] == 1_000
    assert conn.execute("SELECT archived_at FROM projects WHERE id = 2").fetchone()[0] == 1_000
    conn.close()


def test_single_row_active_tracking_is_rebuilt(tmp_path: Path) -> None:
    conn = _legacy_db(tmp_path / "legacy.db")
    ensure_schema(conn, now=1_000)

    sql = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name='active_tracking'"
    ).fetchone()[0]
    assert "CHECK" not in sql.upper()
    assert conn.execute("SELECT project_id, task_id, started_at FROM active_tracking").fetchall() == [(1, 1, 500)]

    conn.execute("INSERT INTO active_tracking (project_id, task_id, started_at) VALUES (1, 2, 600)")
    conn.commit()
    assert conn.execute("SELECT COUNT(*) FROM active_tracking").fetchone()[0] == 2
    conn.close()
