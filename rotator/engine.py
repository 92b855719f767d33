"""Command surface used by the desktop shell.

Every public method is one synchronous operation: take the state locks,
mutate the cache, mirror the change into the store, hand back a copy.
Unknown ids and out-of-range selections are no-ops; persistence failures
are reported by the store and never reach the caller.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Callable

from .models import (
    ActiveTrackingSession, DailyActivity, HourlyActivity, Project, ProjectTimeStats,
    ProjectWithStatus, Task, TimeEntry, TimerEntry, TimerState,
)
from .overlay import OverlayChannel, tray_title
from .rotation import RotationEngine
from .state import StateCache
from .stats import StatsEngine
from .store import Store
from .timeutil import DAY_SECONDS, now_seconds
from .tracking import TrackingEngine

logger = logging.getLogger(__name__)

MOCK_PROJECTS = (
    ("Work", ("Code review", "Write documentation", "Fix bugs", "Team meeting")),
    ("Personal", ("Exercise", "Read book", "Learn Rust", "Side project")),
    ("Learning", ("Online course", "Practice coding", "Watch tutorials")),
)

# (days_ago, hour, minutes)
MOCK_ENTRIES = (
    (0, 9, 45), (0, 14, 30), (0, 16, 20),
    (1, 10, 60), (1, 15, 25),
    (2, 9, 50), (2, 11, 40), (2, 14, 35),
    (3, 10, 55), (3, 13, 30), (3, 16, 20),
    (4, 9, 45), (4, 11, 30),
    (5, 14, 60), (5, 16, 25),
    (6, 10, 40), (6, 15, 50),
    (7, 9, 35), (7, 11, 45), (7, 14, 30),
    (10, 10, 50), (10, 15, 40),
    (14, 9, 60), (14, 14, 45),
    (21, 10, 55), (21, 16, 35),
    (30, 11, 45), (30, 15, 30),
)


class RotatorEngine:
    def __init__(self, store: Store, *, clock: Callable[[], int] = now_seconds,
                 overlay: OverlayChannel | None = None):
        self.store = store
        self.clock = clock
        self.overlay = overlay or OverlayChannel()
        self.state = StateCache.load(store, clock())
        self.rotation = RotationEngine(self.state, store, clock)
        self.tracking = TrackingEngine(self.state, store, clock)
        self.stats = StatsEngine(self.state, store)
        logger.info(
            "loaded %d project(s), %d active session(s) from %s",
            len(self.state.projects), len(self.state.active_sessions), store.path,
        )

    @classmethod
    def open(cls, path: str | Path, **kwargs) -> RotatorEngine:
        store_kwargs = {k: kwargs.pop(k) for k in ("observer", "tz") if k in kwargs}
        return cls(Store(path, **store_kwargs), **kwargs)

    def close(self):
        self.store.close()

    def _persist_order(self):
        # caller holds projects_lock and the store lock
        self.store.save_project_order([p.id for p in self.state.projects])

    # ---------- projects ----------

    def get_projects(self) -> list[Project]:
        with self.state.projects_lock:
            self.state.prune_expired_done(self.clock())
            return self.state.snapshot_projects()

    def get_current_project_index(self) -> int:
        with self.state.projects_lock:
            return self.state.current_project_index

    def get_current_project(self) -> Project | None:
        with self.state.projects_lock:
            self.state.prune_expired_done(self.clock())
            p = self.state.current_project()
            return p.copy() if p else None

    def add_project(self, name: str) -> list[Project]:
        st = self.state
        name = name.strip()
        with st.projects_lock, self.store.lock:
            if name:
                pid = st.allocate_project_id()
                self.store.insert_project(pid, name)
                st.projects.append(Project(id=pid, name=name))
                self._persist_order()
            return st.snapshot_projects()

    def rename_project(self, project_id: int, name: str) -> list[Project]:
        st = self.state
        name = name.strip()
        with st.projects_lock, self.store.lock:
            p = st.find_project(project_id)
            if p is not None and name:
                p.name = name
                self.store.update_project_name(project_id, name)
            return st.snapshot_projects()

    def remove_project(self, project_id: int) -> list[Project]:
        """Archive a project and its tasks. Live sessions on it are dropped, not committed."""
        st = self.state
        with st.locked(), self.store.lock:
            pos = st.project_index(project_id)
            if pos is None:
                return st.snapshot_projects()
            self.tracking.drop_sessions_for_project(project_id)
            self.store.update_project_archived(project_id, self.clock(), cascade=True)
            del st.projects[pos]
            if pos < st.current_project_index:
                st.current_project_index -= 1
            st.clamp_current_index()
            self._persist_order()
            self.store.save_current_project_index(st.current_project_index)
            return st.snapshot_projects()

    def restore_project(self, project_id: int) -> list[Project]:
        st = self.state
        with st.projects_lock, self.store.lock:
            if st.find_project(project_id) is not None:
                return st.snapshot_projects()
            self.store.update_project_archived(project_id, None, cascade=True)
            p = self.store.load_project(project_id, self.clock())
            if p is not None:
                st.projects.append(p)
                self._persist_order()
            return st.snapshot_projects()

    def delete_project_permanent(self, project_id: int) -> bool:
        st = self.state
        with st.locked(), self.store.lock:
            for tid in [t for t, s in st.active_sessions.items() if s.project_id == project_id]:
                del st.active_sessions[tid]
            pos = st.project_index(project_id)
            if pos is not None:
                del st.projects[pos]
                if pos < st.current_project_index:
                    st.current_project_index -= 1
                st.clamp_current_index()
                self._persist_order()
                self.store.save_current_project_index(st.current_project_index)
            return bool(self.store.delete_project_cascade(project_id))

    def get_all_projects_with_status(self) -> list[ProjectWithStatus]:
        return self.store.load_all_projects_with_tasks_and_status()

    # ---------- rotation ----------

    def rotate_project(self) -> tuple[int, Project | None]:
        return self.rotation.rotate_project()

    def set_current_project(self, index: int) -> int:
        return self.rotation.set_current_project(index)

    def rotate_task(self) -> Task | None:
        return self.rotation.rotate_task()

    def toggle_task_done(self, project_id: int, task_id: int, done: bool) -> Project | None:
        return self.rotation.toggle_task_done(project_id, task_id, done)

    # ---------- tasks ----------

    def add_task(self, project_id: int, name: str) -> Project | None:
        st = self.state
        name = name.strip()
        with st.projects_lock, self.store.lock:
            p = st.find_project(project_id)
            if p is None:
                return None
            if name:
                tid = st.allocate_task_id()
                self.store.insert_task(tid, project_id, name)
                p.tasks.append(Task(id=tid, project_id=project_id, name=name))
            return p.copy()

    def rename_task(self, project_id: int, task_id: int, name: str) -> Project | None:
        st = self.state
        name = name.strip()
        with st.projects_lock, self.store.lock:
            p = st.find_project(project_id)
            if p is None:
                return None
            t = p.find_task(task_id)
            if t is not None and name:
                t.name = name
                self.store.update_task_name(task_id, name)
            return p.copy()

    def remove_task(self, project_id: int, task_id: int) -> Project | None:
        """Archive a task. A live session on it is dropped, not committed."""
        st = self.state
        with st.locked(), self.store.lock:
            p = st.find_project(project_id)
            if p is None:
                return None
            self.tracking.drop_session(task_id)
            ids = [t.id for t in p.tasks]
            if task_id in ids:
                pos = ids.index(task_id)
                self.store.update_task_archived(task_id, self.clock())
                del p.tasks[pos]
                if pos < p.current_task_index:
                    p.current_task_index -= 1
                p.clamp_task_index()
                self.store.update_project_current_index(project_id, p.current_task_index)
            return p.copy()

    def restore_task(self, project_id: int, task_id: int) -> Project | None:
        st = self.state
        with st.projects_lock, self.store.lock:
            self.store.update_task_archived(task_id, None)
            p = st.find_project(project_id)
            if p is None:
                return None
            if p.find_task(task_id) is None:
                t = self.store.load_task(task_id)
                if t is not None and t.project_id == project_id and t.is_visible(self.clock()):
                    p.tasks.append(t)
            return p.copy()

    def delete_task_permanent(self, task_id: int) -> bool:
        st = self.state
        with st.locked(), self.store.lock:
            st.active_sessions.pop(task_id, None)
            p, t = st.find_task_anywhere(task_id)
            if p is not None:
                pos = p.tasks.index(t)
                del p.tasks[pos]
                if pos < p.current_task_index:
                    p.current_task_index -= 1
                p.clamp_task_index()
                self.store.update_project_current_index(p.id, p.current_task_index)
            return bool(self.store.delete_task_cascade(task_id))

    # ---------- tracking ----------

    def start_tracking(self, project_id: int, task_id: int, allow_multiple: bool = False) -> list[ActiveTrackingSession]:
        return self.tracking.start_tracking(project_id, task_id, allow_multiple)

    def stop_tracking(self, task_id: int | None = None) -> int | None:
        return self.tracking.stop_tracking(task_id)

    def get_active_tracking(self) -> list[ActiveTrackingSession]:
        return self.tracking.get_active_tracking()

    # ---------- statistics ----------

    def get_time_entries(self, start_time: int, end_time: int) -> list[TimeEntry]:
        return self.stats.time_entries(start_time, end_time)

    def get_all_time_entries(self) -> list[TimeEntry]:
        return self.stats.all_time_entries()

    def get_hourly_activity(self, start_time: int, end_time: int) -> list[HourlyActivity]:
        return self.stats.hourly_activity(start_time, end_time)

    def get_daily_activity(self, start_time: int, end_time: int) -> list[DailyActivity]:
        return self.stats.daily_activity(start_time, end_time)

    def get_project_time_stats(self, start_time: int, end_time: int) -> list[ProjectTimeStats]:
        return self.stats.project_time_stats(start_time, end_time)

    # ---------- maintenance ----------

    def reset_database(self) -> list[Project]:
        st = self.state
        with st.locked(), self.store.lock:
            self.store.wipe()
            st.reset()
            logger.info("database reset")
            return st.snapshot_projects()

    def add_mock_data(self) -> list[Project]:
        """Seed three demo projects with about a month of time entries."""
        st = self.state
        now = self.clock()
        today_start = (now // DAY_SECONDS) * DAY_SECONDS
        with st.projects_lock, self.store.lock:
            statements = []
            counter = 0
            for project_name, task_names in MOCK_PROJECTS:
                pid = st.allocate_project_id()
                statements.append((
                    "INSERT INTO projects (id, name, current_task_index) VALUES (?, ?, 0)",
                    (pid, project_name),
                ))
                project = Project(id=pid, name=project_name)
                for task_name in task_names:
                    tid = st.allocate_task_id()
                    offset = counter % 5
                    picked = [(d, h, m) for d, h, m in MOCK_ENTRIES if (d + offset) % 3 != 0]
                    total = sum(m * 60 for _, _, m in picked)
                    # task row before its entries, for the foreign keys
                    statements.append((
                        "INSERT INTO tasks (id, project_id, name, time_seconds) VALUES (?, ?, ?, ?)",
                        (tid, pid, task_name, total),
                    ))
                    for days_ago, hour, minutes in picked:
                        start = today_start - days_ago * DAY_SECONDS + hour * 3600
                        statements.append((
                            "INSERT INTO time_entries (project_id, task_id, start_time, end_time, duration_seconds) "
                            "VALUES (?, ?, ?, ?, ?)",
                            (pid, tid, start, start + minutes * 60, minutes * 60),
                        ))
                    project.tasks.append(Task(id=tid, project_id=pid, name=task_name, time_seconds=total))
                    counter += 1
                st.projects.append(project)
            self.store.execute_script("add_mock_data", statements)
            self._persist_order()
            return st.snapshot_projects()

    # ---------- overlay / tray ----------

    def timer_state(self) -> TimerState:
        st = self.state
        now = self.clock()
        with st.locked():
            entries = []
            for s in st.active_sessions.values():
                p = st.find_project(s.project_id)
                t = p.find_task(s.task_id) if p else None
                entries.append(TimerEntry(
                    task_id=s.task_id,
                    project_name=p.name if p else "",
                    task_name=t.name if t else "",
                    elapsed_seconds=s.elapsed(now),
                ))
            return TimerState(tuple(entries))

    def publish_timer_state(self) -> TimerState:
        state = self.timer_state()
        self.overlay.publish(state)
        return state

    def poll_overlay_stops(self) -> list[int]:
        """Turn queued panel stop requests into stop_tracking calls."""
        stopped = []
        for task_id in self.overlay.drain():
            if self.stop_tracking(task_id) is not None:
                stopped.append(task_id)
        return stopped

    def tray_title(self) -> str:
        st = self.state
        with st.locked():
            session = next(iter(st.active_sessions.values()), None)
            index = st.project_index(session.project_id) if session is not None else None
            if index is None:
                session = None
                index = st.current_project_index
            project = st.projects[index] if st.projects else None
            return tray_title(project, index, len(st.projects), session, self.clock())
