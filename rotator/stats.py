"""Aggregations over the committed time-entry ledger.

Ranges are inclusive on `start_time`. Hourly buckets fold every day in
the range into 24 hour-of-day slots (UTC), they are not a per-day series.
"""

from __future__ import annotations

from .models import DailyActivity, HourlyActivity, ProjectTimeStats, TimeEntry
from .state import StateCache
from .store import Store
from .timeutil import local_day_bounds

UNKNOWN_PROJECT = "Unknown"
UNKNOWN_TASK = "Unknown"


class StatsEngine:
    def __init__(self, state: StateCache, store: Store):
        self.state = state
        self.store = store

    def time_entries(self, start_time: int, end_time: int) -> list[TimeEntry]:
        return self.store.query_time_entries(start_time, end_time)

    def all_time_entries(self) -> list[TimeEntry]:
        return self.store.query_all_time_entries()

    def hourly_activity(self, start_time: int, end_time: int) -> list[HourlyActivity]:
        return self.store.query_hourly_activity(start_time, end_time)

    def daily_activity(self, start_time: int, end_time: int) -> list[DailyActivity]:
        return self.store.query_daily_activity(start_time, end_time)

    def project_time_stats(self, start_time: int, end_time: int) -> list[ProjectTimeStats]:
        with self.state.projects_lock:
            names = {p.id: p.name for p in self.state.projects}
        totals = self.store.query_project_totals(start_time, end_time)
        return [
            ProjectTimeStats(project_id=pid, project_name=names.get(pid, UNKNOWN_PROJECT), total_seconds=total)
            for pid, total in totals
        ]

    def summarize_today(self, now: int) -> list[tuple[str, int]]:
        """(task name, seconds) committed during the local day containing `now`, largest first."""
        start, end = local_day_bounds(now, self.store.tz)
        with self.state.projects_lock:
            names = {t.id: t.name for p in self.state.projects for t in p.tasks}
        totals = self.store.query_task_totals(start, end)
        return [(names.get(tid, UNKNOWN_TASK), total) for tid, total in totals]

    def today_total(self, now: int) -> int:
        start, end = local_day_bounds(now, self.store.tz)
        return sum(e.duration_seconds for e in self.store.query_time_entries(start, end))
