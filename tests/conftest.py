from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from rotator.engine import RotatorEngine
from rotator.store import Store, WriteResult

# 2023-11-14 22:13:20 UTC
T0 = 1_700_000_000
UTC = ZoneInfo("UTC")


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def failures() -> list[WriteResult]:
    return []


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "rotator.db"


@pytest.fixture
def store(db_path: Path, failures: list[WriteResult]) -> Store:
    s = Store(db_path, observer=failures.append, tz=UTC)
    yield s
    s.close()


@pytest.fixture
def engine(store: Store, clock: FakeClock) -> RotatorEngine:
    return RotatorEngine(store, clock=clock)


@pytest.fixture
def reopen(db_path: Path, clock: FakeClock, failures: list[WriteResult]):
    """Open a fresh engine on the same database file, as a restart would."""
    opened: list[RotatorEngine] = []

    def _reopen() -> RotatorEngine:
        eng = RotatorEngine.open(db_path, clock=clock, observer=failures.append, tz=UTC)
        opened.append(eng)
        return eng

    yield _reopen
    for eng in opened:
        eng.close()


@pytest.fixture
def seed():
    """Create projects/tasks from {project: [task, ...]}; returns name -> id for both."""

    def _seed(engine: RotatorEngine, layout: dict[str, list[str]]) -> dict[str, int]:
        ids: dict[str, int] = {}
        for project_name, task_names in layout.items():
            projects = engine.add_project(project_name)
            pid = projects[-1].id
            ids[project_name] = pid
            for task_name in task_names:
                project = engine.add_task(pid, task_name)
                ids[task_name] = project.tasks[-1].id
        return ids

    return _seed
