from __future__ import annotations

from rotator.engine import RotatorEngine


def test_rotate_project_without_projects(engine: RotatorEngine) -> None:
    assert engine.rotate_project() == (0, None)


def test_rotate_project_wraps_and_persists(engine: RotatorEngine, seed, reopen) -> None:
    seed(engine, {"A": [], "B": [], "C": []})

    assert engine.rotate_project()[0] == 1
    assert engine.rotate_project()[0] == 2
    index, project = engine.rotate_project()
    assert (index, project.name) == (0, "A")

    engine.rotate_project()
    assert reopen().get_current_project_index() == 1


def test_selecting_a_lower_project_promotes_it(engine: RotatorEngine, seed, reopen) -> None:
    seed(engine, {"A": [], "B": [], "C": []})

    assert engine.set_current_project(2) == 0
    assert [p.name for p in engine.get_projects()] == ["C", "A", "B"]
    assert engine.get_current_project().name == "C"

    # order and selection survive a restart
    restarted = reopen()
    assert [p.name for p in restarted.get_projects()] == ["C", "A", "B"]
    assert restarted.get_current_project().name == "C"


def test_selecting_top_project_does_not_reorder(engine: RotatorEngine, seed) -> None:
    seed(engine, {"A": [], "B": []})
    engine.rotate_project()

    assert engine.set_current_project(0) == 0
    assert [p.name for p in engine.get_projects()] == ["A", "B"]


def test_out_of_range_selection_is_a_noop(engine: RotatorEngine, seed) -> None:
    seed(engine, {"A": [], "B": []})
    engine.rotate_project()

    assert engine.set_current_project(7) == 1
    assert engine.set_current_project(-1) == 1
    assert [p.name for p in engine.get_projects()] == ["A", "B"]


def test_rotate_task_skips_done_tasks(engine: RotatorEngine, seed) -> None:
    ids = seed(engine, {"P": ["T1", "T2", "T3", "T4"]})
    pid = ids["P"]
    engine.toggle_task_done(pid, ids["T1"], True)
    engine.toggle_task_done(pid, ids["T3"], True)

    task = engine.rotate_task()
    assert task.name == "T2"
    assert engine.get_current_project().current_task_index == 1

    assert engine.rotate_task().name == "T4"
    assert engine.get_current_project().current_task_index == 3

    engine.toggle_task_done(pid, ids["T2"], True)
    engine.toggle_task_done(pid, ids["T4"], True)
    assert engine.rotate_task() is None
    assert engine.get_current_project().current_task_index == 3


def test_rotate_task_persists_index(engine: RotatorEngine, seed, reopen) -> None:
    seed(engine, {"P": ["T1", "T2", "T3"]})
    engine.rotate_task()
    engine.rotate_task()

    assert reopen().get_current_project().current_task_index == 2


def test_rotate_task_single_open_task_selects_itself(engine: RotatorEngine, seed) -> None:
    seed(engine, {"P": ["only"]})
    assert engine.rotate_task().name == "only"


def test_rotate_task_without_tasks(engine: RotatorEngine, seed) -> None:
    assert engine.rotate_task() is None
    seed(engine, {"P": []})
    assert engine.rotate_task() is None


def test_toggle_done_sets_and_clears_timestamp(engine: RotatorEngine, seed, clock) -> None:
    ids = seed(engine, {"P": ["T1"]})

    project = engine.toggle_task_done(ids["P"], ids["T1"], True)
    assert project.tasks[0].done_at == clock.now

    project = engine.toggle_task_done(ids["P"], ids["T1"], False)
    assert project.tasks[0].done_at is None


def test_toggle_done_unknown_project(engine: RotatorEngine) -> None:
    assert engine.toggle_task_done(99, 1, True) is None


def test_done_tasks_drop_out_after_hide_window(engine: RotatorEngine, seed, clock, reopen) -> None:
    ids = seed(engine, {"P": ["T1", "T2", "T3"]})
    engine.rotate_task()
    engine.rotate_task()  # current is T3
    engine.toggle_task_done(ids["P"], ids["T1"], True)

    clock.advance(5 * 3600)
    assert [t.name for t in engine.get_projects()[0].tasks] == ["T1", "T2", "T3"]

    clock.advance(1)
    project = engine.get_current_project()
    assert [t.name for t in project.tasks] == ["T2", "T3"]
    assert project.current_task().name == "T3"
    assert [t.name for t in reopen().get_projects()[0].tasks] == ["T2", "T3"]


def test_reopening_a_pruned_done_task_brings_it_back(engine: RotatorEngine, seed, clock, reopen) -> None:
    ids = seed(engine, {"P": ["T1", "T2"]})
    engine.toggle_task_done(ids["P"], ids["T1"], True)
    clock.advance(5 * 3600 + 1)
    assert [t.name for t in engine.get_projects()[0].tasks] == ["T2"]

    project = engine.toggle_task_done(ids["P"], ids["T1"], False)

    assert sorted(t.name for t in project.tasks) == ["T1", "T2"]
    assert sorted(t.name for t in engine.get_projects()[0].tasks) == ["T1", "T2"]
    assert sorted(t.name for t in reopen().get_projects()[0].tasks) == ["T1", "T2"]
    # reopening twice does not duplicate
    project = engine.toggle_task_done(ids["P"], ids["T1"], False)
    assert len(project.tasks) == 2
