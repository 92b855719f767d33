from __future__ import annotations

import threading

from rotator.engine import RotatorEngine

THREADS = 8


def _run_all(targets) -> list[threading.Thread]:
    barrier = threading.Barrier(len(targets))

    def wrap(fn):
        def run():
            barrier.wait()
            fn()
        return run

    threads = [threading.Thread(target=wrap(fn), daemon=True) for fn in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return threads


def test_parallel_starts_leave_one_session(engine: RotatorEngine, seed) -> None:
    ids = seed(engine, {"P": ["T1", "T2"]})
    engine.start_tracking(ids["P"], ids["T2"], True)
    errors: list[BaseException] = []

    def guarded(fn):
        def run():
            try:
                fn()
            except BaseException as e:  # surfaced below
                errors.append(e)
        return run

    starts = [guarded(lambda: engine.start_tracking(ids["P"], ids["T1"], True)) for _ in range(THREADS)]
    stops = [guarded(lambda: engine.stop_tracking(ids["T2"])) for _ in range(THREADS // 2)]
    reads = [guarded(engine.get_projects) for _ in range(THREADS // 2)]

    threads = _run_all(starts + stops + reads)

    assert not any(t.is_alive() for t in threads)
    assert errors == []
    assert [s.task_id for s in engine.get_active_tracking()] == [ids["T1"]]
    assert [s.task_id for s in engine.store.load_active_sessions()] == [ids["T1"]]


def test_parallel_archive_and_rotation(engine: RotatorEngine, seed) -> None:
    ids = seed(engine, {f"P{i}": [f"t{i}"] for i in range(THREADS)})
    for i in range(THREADS):
        engine.start_tracking(ids[f"P{i}"], ids[f"t{i}"], True)

    archives = [lambda i=i: engine.remove_project(ids[f"P{i}"]) for i in range(0, THREADS, 2)]
    rotations = [engine.rotate_project for _ in range(THREADS)]
    threads = _run_all(archives + rotations)

    assert not any(t.is_alive() for t in threads)
    remaining = [p.name for p in engine.get_projects()]
    assert remaining == [f"P{i}" for i in range(1, THREADS, 2)]
    assert 0 <= engine.get_current_project_index() < len(remaining)
    assert sorted(s.task_id for s in engine.store.load_active_sessions()) == sorted(
        ids[f"t{i}"] for i in range(1, THREADS, 2)
    )
