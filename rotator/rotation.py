"""Selection of the current project and the current task."""

from __future__ import annotations
from dataclasses import replace
from typing import Callable

from .models import Project, Task
from .state import StateCache
from .store import Store
from .timeutil import now_seconds


class RotationEngine:
    def __init__(self, state: StateCache, store: Store, clock: Callable[[], int] = now_seconds):
        self.state = state
        self.store = store
        self.clock = clock

    def _persist_index(self):
        self.store.save_current_project_index(self.state.current_project_index)

    def rotate_project(self) -> tuple[int, Project | None]:
        st = self.state
        with st.projects_lock, self.store.lock:
            if not st.projects:
                return 0, None
            st.current_project_index = (st.current_project_index + 1) % len(st.projects)
            self._persist_index()
            return st.current_project_index, st.projects[st.current_project_index].copy()

    def set_current_project(self, index: int) -> int:
        """Select a project. Anything but the top one is promoted to the top."""
        st = self.state
        with st.projects_lock, self.store.lock:
            if index < 0 or index >= len(st.projects):
                return st.current_project_index
            if index > 0:
                st.projects.insert(0, st.projects.pop(index))
                st.current_project_index = 0
                self.store.save_project_order([p.id for p in st.projects])
            else:
                st.current_project_index = index
            self._persist_index()
            return st.current_project_index

    def rotate_task(self) -> Task | None:
        """Advance to the next task that is not done, or return None if all are."""
        st = self.state
        with st.projects_lock, self.store.lock:
            st.prune_expired_done(self.clock())
            project = st.current_project()
            if project is None or not project.tasks:
                return None
            n = len(project.tasks)
            start = project.current_task_index
            for step in range(1, n + 1):
                i = (start + step) % n
                if project.tasks[i].done_at is None:
                    project.current_task_index = i
                    self.store.update_project_current_index(project.id, i)
                    return replace(project.tasks[i])
            return None

    def toggle_task_done(self, project_id: int, task_id: int, done: bool) -> Project | None:
        st = self.state
        done_at = self.clock() if done else None
        with st.projects_lock, self.store.lock:
            # the management view may toggle tasks that are not in the active list
            self.store.update_task_done(task_id, done_at)
            project = st.find_project(project_id)
            if project is None:
                return None
            task = project.find_task(task_id)
            if task is not None:
                task.done_at = done_at
            elif not done:
                # a done task already pruned from the list comes back when reopened
                task = self.store.load_task(task_id)
                if task is not None and task.project_id == project_id and task.is_visible(self.clock()):
                    project.tasks.append(task)
            return project.copy()
