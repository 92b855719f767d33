"""Schema creation and in-place migration of older rotator databases.

`ensure_schema` runs on every startup. It never fails on objects that
already exist, and the boolean-to-timestamp conversions only touch rows
that have not been converted yet, so running it twice is a no-op.
"""

from __future__ import annotations
import logging
import sqlite3

from .timeutil import now_seconds

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS projects (
      id INTEGER PRIMARY KEY,
      name TEXT NOT NULL,
      current_task_index INTEGER NOT NULL DEFAULT 0,
      archived INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
      id INTEGER PRIMARY KEY,
      project_id INTEGER NOT NULL,
      name TEXT NOT NULL,
      time_seconds INTEGER NOT NULL DEFAULT 0,
      archived INTEGER NOT NULL DEFAULT 0,
      FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS app_state (
      key TEXT PRIMARY KEY,
      value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS active_tracking (
      id INTEGER PRIMARY KEY,
      project_id INTEGER NOT NULL,
      task_id INTEGER NOT NULL,
      started_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS time_entries (
      id INTEGER PRIMARY KEY,
      project_id INTEGER NOT NULL,
      task_id INTEGER NOT NULL,
      start_time INTEGER NOT NULL,
      end_time INTEGER NOT NULL,
      duration_seconds INTEGER NOT NULL,
      FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
      FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
    )
    """,
)

# (table, column, declaration), applied in order
_COLUMNS = (
    ("projects", "archived", "INTEGER NOT NULL DEFAULT 0"),
    ("tasks", "archived", "INTEGER NOT NULL DEFAULT 0"),
    ("tasks", "done", "INTEGER NOT NULL DEFAULT 0"),
    ("tasks", "done_at", "INTEGER"),
    ("tasks", "archived_at", "INTEGER"),
    ("projects", "archived_at", "INTEGER"),
)

# legacy flag -> timestamp, stamped once
_FLAG_MIGRATIONS = (
    "UPDATE tasks SET done_at = ? WHERE done = 1 AND done_at IS NULL",
    "UPDATE tasks SET archived_at = ? WHERE archived = 1 AND archived_at IS NULL",
    "UPDATE projects SET archived_at = ? WHERE archived = 1 AND archived_at IS NULL",
)

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_time_entries_start ON time_entries(start_time)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_active_tracking_task ON active_tracking(task_id)",
)


def table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {r[1] for r in rows}


def _add_column(conn: sqlite3.Connection, table: str, column: str, decl: str):
    if column in table_columns(conn, table):
        return
    try:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {decl}")
        logger.debug("added column %s.%s", table, column)
    except sqlite3.OperationalError as e:
        # duplicate column name: already migrated
        logger.debug("skipping column %s.%s: %s", table, column, e)


def _rebuild_active_tracking(conn: sqlite3.Connection):
    """Drop the single-row constraint of old databases so several sessions fit."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name='active_tracking'"
    ).fetchone()
    if not row or "CHECK" not in (row[0] or "").upper():
        return
    logger.info("migrating active_tracking to multi-session layout")
    try:
        conn.execute("DROP TABLE IF EXISTS active_tracking_new")
        conn.execute(
            """
            CREATE TABLE active_tracking_new (
              id INTEGER PRIMARY KEY,
              project_id INTEGER NOT NULL,
              task_id INTEGER NOT NULL,
              started_at INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            "INSERT INTO active_tracking_new (project_id, task_id, started_at) "
            "SELECT project_id, task_id, started_at FROM active_tracking"
        )
        conn.execute("DROP TABLE active_tracking")
        conn.execute("ALTER TABLE active_tracking_new RENAME TO active_tracking")
        conn.commit()
    except sqlite3.OperationalError as e:
        conn.rollback()
        logger.warning("active_tracking migration skipped: %s", e)


def ensure_schema(conn: sqlite3.Connection, now: int | None = None):
    """Bring `conn` to the latest schema. Safe to call on every startup."""
    now = now_seconds() if now is None else now
    cur = conn.cursor()
    for ddl in _TABLES:
        cur.execute(ddl)
    conn.commit()

    for table, column, decl in _COLUMNS:
        _add_column(conn, table, column, decl)
    conn.commit()

    for stmt in _FLAG_MIGRATIONS:
        n = cur.execute(stmt, (now,)).rowcount
        if n:
            logger.info("stamped %d legacy row(s): %s", n, stmt.split(" SET ")[0])
    conn.commit()

    _rebuild_active_tracking(conn)

    for ddl in _INDEXES:
        cur.execute(ddl)
    cur.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
    conn.commit()


def schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]
