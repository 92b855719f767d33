from __future__ import annotations

from rotator.engine import RotatorEngine


def _task_time(engine: RotatorEngine, project_id: int, task_id: int) -> int:
    for p in engine.get_projects():
        if p.id == project_id:
            return p.find_task(task_id).time_seconds
    raise AssertionError("task not found")


def test_sessions_under_three_seconds_are_discarded(engine: RotatorEngine, seed, clock) -> None:
    ids = seed(engine, {"P": ["T1"]})
    engine.start_tracking(ids["P"], ids["T1"], False)
    clock.advance(2)

    assert engine.stop_tracking(ids["T1"]) == 2
    assert _task_time(engine, ids["P"], ids["T1"]) == 0
    assert engine.get_all_time_entries() == []
    assert engine.get_active_tracking() == []


def test_sessions_of_three_seconds_are_committed(engine: RotatorEngine, seed, clock, reopen) -> None:
    ids = seed(engine, {"P": ["T1"]})
    start = clock.now
    engine.start_tracking(ids["P"], ids["T1"], False)
    clock.advance(3)

    assert engine.stop_tracking(ids["T1"]) == 3
    assert _task_time(engine, ids["P"], ids["T1"]) == 3
    (entry,) = engine.get_all_time_entries()
    assert (entry.task_id, entry.start_time, entry.end_time, entry.duration_seconds) == (
        ids["T1"], start, start + 3, 3,
    )
    assert _task_time(reopen(), ids["P"], ids["T1"]) == 3


def test_exclusive_start_stops_running_session(engine: RotatorEngine, seed, clock) -> None:
    ids = seed(engine, {"P1": ["T1"], "P2": ["T2"]})
    engine.start_tracking(ids["P1"], ids["T1"], False)
    clock.advance(60)

    sessions = engine.start_tracking(ids["P2"], ids["T2"], False)

    assert [s.task_id for s in sessions] == [ids["T2"]]
    assert [s.task_id for s in engine.get_active_tracking()] == [ids["T2"]]
    assert _task_time(engine, ids["P1"], ids["T1"]) == 60
    assert [e.task_id for e in engine.get_all_time_entries()] == [ids["T1"]]


def test_concurrent_sessions_stop_together(engine: RotatorEngine, seed, clock) -> None:
    ids = seed(engine, {"P1": ["T1"], "P2": ["T2"]})
    engine.start_tracking(ids["P1"], ids["T1"], True)
    clock.advance(10)
    sessions = engine.start_tracking(ids["P2"], ids["T2"], True)
    assert {s.task_id for s in sessions} == {ids["T1"], ids["T2"]}
    clock.advance(20)

    assert engine.stop_tracking() == 30 + 20
    assert engine.get_active_tracking() == []
    assert _task_time(engine, ids["P1"], ids["T1"]) == 30
    assert _task_time(engine, ids["P2"], ids["T2"]) == 20
    assert len(engine.get_all_time_entries()) == 2


def test_stop_all_sums_short_sessions_without_committing_them(engine: RotatorEngine, seed, clock) -> None:
    ids = seed(engine, {"P": ["T1", "T2"]})
    engine.start_tracking(ids["P"], ids["T1"], True)
    clock.advance(5)
    engine.start_tracking(ids["P"], ids["T2"], True)
    clock.advance(1)

    assert engine.stop_tracking() == 7
    assert _task_time(engine, ids["P"], ids["T1"]) == 6
    assert _task_time(engine, ids["P"], ids["T2"]) == 0
    assert [e.task_id for e in engine.get_all_time_entries()] == [ids["T1"]]


def test_stop_one_of_several(engine: RotatorEngine, seed, clock) -> None:
    ids = seed(engine, {"P": ["T1", "T2"]})
    engine.start_tracking(ids["P"], ids["T1"], True)
    engine.start_tracking(ids["P"], ids["T2"], True)
    clock.advance(4)

    assert engine.stop_tracking(ids["T1"]) == 4
    assert [s.task_id for s in engine.get_active_tracking()] == [ids["T2"]]


def test_restarting_a_tracked_task_is_a_noop(engine: RotatorEngine, seed, clock) -> None:
    ids = seed(engine, {"P": ["T1"]})
    (first,) = engine.start_tracking(ids["P"], ids["T1"], False)
    clock.advance(30)

    (again,) = engine.start_tracking(ids["P"], ids["T1"], False)
    assert again.started_at == first.started_at
    assert engine.get_all_time_entries() == []


def test_unknown_task_is_rejected(engine: RotatorEngine, seed) -> None:
    ids = seed(engine, {"P1": ["T1"], "P2": []})

    assert engine.start_tracking(ids["P1"], 999, True) == []
    # task exists, but not in that project
    assert engine.start_tracking(ids["P2"], ids["T1"], True) == []
    assert engine.get_active_tracking() == []


def test_stop_without_sessions(engine: RotatorEngine, seed) -> None:
    ids = seed(engine, {"P": ["T1"]})
    assert engine.stop_tracking() is None
    assert engine.stop_tracking(ids["T1"]) is None


def test_sessions_survive_restart(engine: RotatorEngine, seed, clock, reopen) -> None:
    ids = seed(engine, {"P": ["T1"]})
    engine.start_tracking(ids["P"], ids["T1"], False)
    clock.advance(100)

    restarted = reopen()
    (session,) = restarted.get_active_tracking()
    assert session.task_id == ids["T1"]
    assert restarted.stop_tracking() == 100
    assert _task_time(restarted, ids["P"], ids["T1"]) == 100


def test_stopped_sessions_do_not_come_back(engine: RotatorEngine, seed, clock, reopen) -> None:
    ids = seed(engine, {"P": ["T1", "T2"]})
    engine.start_tracking(ids["P"], ids["T1"], True)
    engine.start_tracking(ids["P"], ids["T2"], True)
    clock.advance(1)
    engine.stop_tracking()

    assert reopen().get_active_tracking() == []
