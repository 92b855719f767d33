"""Plain data carried between the store, the state cache and the shell."""

from __future__ import annotations
import copy
from dataclasses import dataclass, field

DONE_HIDE_WINDOW = 5 * 60 * 60  # 5 hours
MIN_TRACKED_SECONDS = 3


@dataclass
class Task:
    id: int
    project_id: int
    name: str
    time_seconds: int = 0
    done_at: int | None = None
    archived_at: int | None = None

    @property
    def done(self) -> bool:
        return self.done_at is not None

    def is_visible(self, now: int) -> bool:
        if self.archived_at is not None:
            return False
        return self.done_at is None or now - self.done_at <= DONE_HIDE_WINDOW


@dataclass
class Project:
    id: int
    name: str
    tasks: list[Task] = field(default_factory=list)
    current_task_index: int = 0
    archived_at: int | None = None

    @property
    def total_seconds(self) -> int:
        return sum(t.time_seconds for t in self.tasks)

    def current_task(self) -> Task | None:
        if not self.tasks:
            return None
        return self.tasks[self.current_task_index]

    def find_task(self, task_id: int) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def clamp_task_index(self):
        if self.current_task_index >= len(self.tasks) or self.current_task_index < 0:
            self.current_task_index = 0

    def copy(self) -> Project:
        return copy.deepcopy(self)


@dataclass(frozen=True)
class ActiveTrackingSession:
    project_id: int
    task_id: int
    started_at: int

    def elapsed(self, now: int) -> int:
        return max(0, now - self.started_at)


@dataclass(frozen=True)
class TimeEntry:
    id: int
    project_id: int
    task_id: int
    start_time: int
    end_time: int
    duration_seconds: int


@dataclass(frozen=True)
class HourlyActivity:
    hour: int
    total_seconds: int


@dataclass(frozen=True)
class DailyActivity:
    date: str  # YYYY-MM-DD, local
    total_seconds: int


@dataclass(frozen=True)
class ProjectTimeStats:
    project_id: int
    project_name: str
    total_seconds: int


@dataclass
class TaskWithStatus:
    id: int
    name: str
    time_seconds: int
    archived_at: int | None
    done_at: int | None


@dataclass
class ProjectWithStatus:
    id: int
    name: str
    tasks: list[TaskWithStatus]
    current_task_index: int
    archived_at: int | None


# ---------- Overlay snapshot ----------

@dataclass(frozen=True)
class TimerEntry:
    task_id: int
    project_name: str
    task_name: str
    elapsed_seconds: int


@dataclass(frozen=True)
class TimerState:
    entries: tuple[TimerEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.entries
