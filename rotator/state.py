"""In-memory mirror of projects, tasks and live sessions.

The cache is the source of truth while the process runs. Operations take
`projects_lock`, then `sessions_lock`, then the store lock, always in
that order.
"""

from __future__ import annotations
import threading
from contextlib import contextmanager

from .models import ActiveTrackingSession, Project, Task
from .store import Store


class StateCache:
    def __init__(self, projects: list[Project] | None = None, *,
                 current_project_index: int = 0,
                 sessions: list[ActiveTrackingSession] | None = None,
                 next_project_id: int = 1, next_task_id: int = 1):
        self.projects: list[Project] = projects or []
        self.current_project_index = current_project_index
        self.active_sessions: dict[int, ActiveTrackingSession] = {}
        for s in sessions or []:
            # one session per task; first one wins
            self.active_sessions.setdefault(s.task_id, s)
        self.next_project_id = next_project_id
        self.next_task_id = next_task_id
        self.projects_lock = threading.RLock()
        self.sessions_lock = threading.RLock()
        self.clamp_current_index()

    @classmethod
    def load(cls, store: Store, now: int) -> StateCache:
        projects = store.load_visible_projects_with_tasks(now)
        order = store.load_project_order()
        if order:
            rank = {pid: i for i, pid in enumerate(order)}
            # unknown ids keep id order after the saved ones
            projects.sort(key=lambda p: (rank.get(p.id, len(rank)), p.id))
        return cls(
            projects,
            current_project_index=store.load_current_project_index(),
            sessions=store.load_active_sessions(),
            next_project_id=store.next_id("projects"),
            next_task_id=store.next_id("tasks"),
        )

    @contextmanager
    def locked(self):
        with self.projects_lock, self.sessions_lock:
            yield self

    # ---------- lookups ----------

    def find_project(self, project_id: int) -> Project | None:
        for p in self.projects:
            if p.id == project_id:
                return p
        return None

    def project_index(self, project_id: int) -> int | None:
        for i, p in enumerate(self.projects):
            if p.id == project_id:
                return i
        return None

    def find_task(self, project_id: int, task_id: int) -> Task | None:
        p = self.find_project(project_id)
        return p.find_task(task_id) if p else None

    def find_task_anywhere(self, task_id: int) -> tuple[Project, Task] | tuple[None, None]:
        for p in self.projects:
            t = p.find_task(task_id)
            if t is not None:
                return p, t
        return None, None

    def current_project(self) -> Project | None:
        if not self.projects:
            return None
        return self.projects[self.current_project_index]

    # ---------- invariants ----------

    def clamp_current_index(self):
        if self.current_project_index >= len(self.projects) or self.current_project_index < 0:
            self.current_project_index = 0

    def prune_expired_done(self, now: int) -> list[Project]:
        """Drop tasks whose done-hide window has run out. Returns the projects touched."""
        touched = []
        for p in self.projects:
            if all(t.is_visible(now) for t in p.tasks):
                continue
            current = p.current_task()
            p.tasks = [t for t in p.tasks if t.is_visible(now)]
            ids = [t.id for t in p.tasks]
            if current is not None and current.id in ids:
                p.current_task_index = ids.index(current.id)
            p.clamp_task_index()
            touched.append(p)
        return touched

    def allocate_project_id(self) -> int:
        pid = self.next_project_id
        self.next_project_id += 1
        return pid

    def allocate_task_id(self) -> int:
        tid = self.next_task_id
        self.next_task_id += 1
        return tid

    def reset(self):
        self.projects = []
        self.current_project_index = 0
        self.active_sessions.clear()
        self.next_project_id = 1
        self.next_task_id = 1

    # ---------- snapshots ----------

    def snapshot_projects(self) -> list[Project]:
        return [p.copy() for p in self.projects]

    def snapshot_sessions(self) -> list[ActiveTrackingSession]:
        return list(self.active_sessions.values())
