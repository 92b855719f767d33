"""Lifecycle of live tracking sessions.

A task is either idle or tracked. Stopping a session commits its elapsed
time to the task and appends a time entry, but only when at least
MIN_TRACKED_SECONDS have passed; shorter sessions are dropped silently.
"""

from __future__ import annotations
import logging
from typing import Callable

from .models import MIN_TRACKED_SECONDS, ActiveTrackingSession
from .state import StateCache
from .store import Store
from .timeutil import now_seconds

logger = logging.getLogger(__name__)


class TrackingEngine:
    def __init__(self, state: StateCache, store: Store, clock: Callable[[], int] = now_seconds):
        self.state = state
        self.store = store
        self.clock = clock

    def get_active_tracking(self) -> list[ActiveTrackingSession]:
        with self.state.sessions_lock:
            return self.state.snapshot_sessions()

    def start_tracking(self, project_id: int, task_id: int, allow_multiple: bool) -> list[ActiveTrackingSession]:
        st = self.state
        with st.locked(), self.store.lock:
            if task_id in st.active_sessions:
                return st.snapshot_sessions()
            if not allow_multiple and st.active_sessions:
                self._stop_all(self.clock())
            if st.find_task(project_id, task_id) is None:
                logger.debug("start_tracking: no task %s in project %s", task_id, project_id)
                return st.snapshot_sessions()
            session = ActiveTrackingSession(project_id, task_id, self.clock())
            self.store.add_active_session(session)
            st.active_sessions[task_id] = session
            return st.snapshot_sessions()

    def stop_tracking(self, task_id: int | None = None) -> int | None:
        """Stop one session, or all of them when `task_id` is None.

        Returns the elapsed seconds of the stopped session (summed over all
        sessions in the stop-all case), or None if nothing was tracked.
        """
        st = self.state
        with st.locked(), self.store.lock:
            now = self.clock()
            if task_id is not None:
                session = st.active_sessions.get(task_id)
                if session is None:
                    return None
                return self._stop(session, now)
            if not st.active_sessions:
                return None
            return self._stop_all(now)

    def drop_session(self, task_id: int) -> bool:
        """Forget a session without committing its time."""
        st = self.state
        with st.sessions_lock, self.store.lock:
            if st.active_sessions.pop(task_id, None) is None:
                return False
            self.store.remove_active_session(task_id)
            return True

    def drop_sessions_for_project(self, project_id: int) -> list[int]:
        st = self.state
        with st.sessions_lock, self.store.lock:
            dropped = [tid for tid, s in st.active_sessions.items() if s.project_id == project_id]
            for tid in dropped:
                del st.active_sessions[tid]
                self.store.remove_active_session(tid)
            return dropped

    # ---------- internals, caller holds the locks ----------

    def _stop(self, session: ActiveTrackingSession, now: int) -> int:
        elapsed = session.elapsed(now)
        self.state.active_sessions.pop(session.task_id, None)
        task = self.state.find_task(session.project_id, session.task_id)
        if elapsed >= MIN_TRACKED_SECONDS and task is not None:
            task.time_seconds += elapsed
            self.store.commit_session(task.id, task.time_seconds, session.project_id,
                                      session.started_at, now, elapsed)
        else:
            self.store.remove_active_session(session.task_id)
        return elapsed

    def _stop_all(self, now: int) -> int:
        total = 0
        for session in list(self.state.active_sessions.values()):
            total += self._stop(session, now)
        self.store.clear_active_sessions()
        return total
