"""Hand-off between the engine and the floating timer panel.

The panel runs on the GUI thread and never touches engine locks. The
engine publishes the latest `TimerState` (overwriting the previous one)
and the panel queues stop requests that the engine drains on each poll.
"""

from __future__ import annotations
import threading
from collections import deque

from .models import Project, TimerState, ActiveTrackingSession
from .timeutil import format_duration, truncate_name

STOP_QUEUE_LIMIT = 32

# panel geometry, in widget coordinates (origin top-left)
ROW_HEIGHT = 36.0
PANEL_PADDING = 8.0
ROW_PADDING = 4.0
PANEL_WIDTH = 240.0
STOP_BUTTON_INSET = 28.0
STOP_BUTTON_SIZE = 12.0


class OverlayChannel:
    def __init__(self, limit: int = STOP_QUEUE_LIMIT):
        self._state_lock = threading.Lock()
        self._queue_lock = threading.Lock()
        self._state = TimerState()
        self._stops: deque[int] = deque(maxlen=limit)

    # engine -> panel
    def publish(self, state: TimerState):
        with self._state_lock:
            self._state = state

    def latest(self) -> TimerState:
        with self._state_lock:
            return self._state

    # panel -> engine
    def request_stop(self, task_id: int):
        with self._queue_lock:
            if task_id not in self._stops:
                self._stops.append(task_id)

    def poll_stop_request(self) -> int | None:
        with self._queue_lock:
            return self._stops.popleft() if self._stops else None

    def drain(self) -> list[int]:
        with self._queue_lock:
            out = list(self._stops)
            self._stops.clear()
            return out

    def pending(self) -> int:
        with self._queue_lock:
            return len(self._stops)


# ---------- geometry / hit testing ----------

def panel_height(entry_count: int) -> float:
    return max(1, entry_count) * ROW_HEIGHT + PANEL_PADDING


def row_at_point(y: float, entry_count: int) -> int | None:
    if y < ROW_PADDING:
        return None
    row = int((y - ROW_PADDING) // ROW_HEIGHT)
    return row if row < entry_count else None


def is_over_stop_button(width: float, x: float) -> bool:
    left = width - STOP_BUTTON_INSET
    return left <= x <= left + STOP_BUTTON_SIZE


def hit_test(width: float, x: float, y: float, state: TimerState) -> tuple[str, int] | None:
    """Return ("stop", task_id), ("open", task_id) or None for a click at (x, y)."""
    row = row_at_point(y, len(state.entries))
    if row is None:
        return None
    task_id = state.entries[row].task_id
    if is_over_stop_button(width, x):
        return "stop", task_id
    return "open", task_id


# ---------- tray title ----------

def tray_title(project: Project | None, project_index: int, project_count: int,
               session: ActiveTrackingSession | None, now: int) -> str:
    if project is None:
        return "Rotator"
    if session is not None:
        task = project.find_task(session.task_id)
        task_name = task.name if task else ""
        return (f"[{truncate_name(project.name, 6)}] {truncate_name(task_name, 8)} │ "
                f"{format_duration(session.elapsed(now))}")
    return f"{truncate_name(project.name)} ({project_index + 1}/{project_count})"
