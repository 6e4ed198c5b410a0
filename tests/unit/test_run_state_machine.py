"""Unit tests for the run state machine and run stores.

Illegal transitions must fail loudly, and persisted state must survive a reload.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest
from conftest import pull_request, push

from ci_run_controller.pipeline.workflow.state_machine import (
    IllegalTransitionError,
    Run,
    RunStatus,
    transition,
)
from ci_run_controller.pipeline.workflow.store import InMemoryRunStore, JsonRunStore


def _run(run_id: str = "R1", group_key: str = "wf-1") -> Run:
    return Run.new(run_id=run_id, group_key=group_key, event=push("1"))


@pytest.mark.parametrize(
    ("start", "to"),
    [
        (RunStatus.PENDING, RunStatus.COMPLETED),
        (RunStatus.RUNNING, RunStatus.PENDING),
        (RunStatus.CANCELLED, RunStatus.RUNNING),
        (RunStatus.COMPLETED, RunStatus.CANCELLED),
    ],
)
def test_transition_rejects_illegal_transitions(start: RunStatus, to: RunStatus) -> None:
    run = _run()

    with pytest.raises(IllegalTransitionError):
        transition(current=replace(run, status=start), to=to)


def test_transition_records_superseding_run() -> None:
    cancelled = transition(current=_run(), to=RunStatus.CANCELLED, superseded_by="R2")
    assert cancelled.status == RunStatus.CANCELLED
    assert cancelled.superseded_by == "R2"
    assert cancelled.status.is_terminal


def test_compare_and_swap_rejects_stale_expectation() -> None:
    store = InMemoryRunStore()
    first = _run("R1")
    assert store.compare_and_swap("wf-1", expected=None, new=first)

    # A second writer that still believes the slot is empty loses.
    assert not store.compare_and_swap("wf-1", expected=None, new=_run("R2"))
    assert store.get("R2") is None
    assert store.current("wf-1") == first


def test_replace_rejects_stale_status() -> None:
    store = InMemoryRunStore()
    run = _run()
    store.compare_and_swap("wf-1", expected=None, new=run)
    running = transition(current=run, to=RunStatus.RUNNING)
    assert store.replace(running, expected=run)

    # `run` is now stale (still pending).
    assert not store.replace(transition(current=run, to=RunStatus.CANCELLED), expected=run)
    stored = store.get("R1")
    assert stored is not None
    assert stored.status == RunStatus.RUNNING


def test_json_store_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "run_state" / "runs.json"
    store = JsonRunStore(path)
    assert store.list() == []

    first = Run.new(run_id="R1", group_key="wf-feature", event=pull_request("feature"))
    store.compare_and_swap("wf-feature", expected=None, new=first)
    second = Run.new(run_id="R2", group_key="wf-feature", event=pull_request("feature"))
    store.compare_and_swap(
        "wf-feature",
        expected=first,
        new=second,
        superseded=transition(current=first, to=RunStatus.CANCELLED, superseded_by="R2"),
    )

    reloaded = JsonRunStore(path)
    current = reloaded.current("wf-feature")
    assert current is not None
    assert current.run_id == "R2"
    assert current.event.head_ref == "feature"
    assert current.event.base_ref == "main"

    old = reloaded.get("R1")
    assert old is not None
    assert old.status == RunStatus.CANCELLED
    assert old.superseded_by == "R2"
    assert [r.run_id for r in reloaded.list("wf-feature")] == ["R1", "R2"]


def test_json_store_treats_corrupt_file_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "runs.json"
    path.write_text("{not json", encoding="utf-8")

    store = JsonRunStore(path)
    assert store.list() == []
    assert store.compare_and_swap("wf-1", expected=None, new=_run())
    assert store.get("R1") is not None


def test_json_store_skips_unreadable_run_entries(tmp_path: Path) -> None:
    path = tmp_path / "runs.json"
    good = _run("R1")
    path.write_text(
        json.dumps(
            {
                "groups": {"wf-1": "R1", "wf-2": "R2"},
                "runs": [
                    good.to_json(),
                    {"run_id": "R2", "group_key": "wf-2"},
                    {**_run("R3", "wf-3").to_json(), "status": "paused"},
                    {**_run("R4", "wf-4").to_json(), "event": {"kind": "release"}},
                ],
            }
        ),
        encoding="utf-8",
    )

    store = JsonRunStore(path)
    assert [r.run_id for r in store.list()] == ["R1"]
    assert store.current("wf-1") == good
    assert store.current("wf-2") is None
    assert store.compare_and_swap("wf-2", expected=None, new=_run("R5", "wf-2"))


def _supersede(store: InMemoryRunStore | JsonRunStore, previous: Run | None, run_id: str) -> Run:
    new = Run.new(run_id=run_id, group_key="wf-feature", event=pull_request("feature"))
    superseded = (
        transition(current=previous, to=RunStatus.CANCELLED, superseded_by=run_id)
        if previous is not None
        else None
    )
    assert store.compare_and_swap("wf-feature", expected=previous, new=new, superseded=superseded)
    return new


def test_retention_prunes_oldest_terminal_runs() -> None:
    store = InMemoryRunStore(retain_terminal=2)
    previous = None
    for run_id in ("R1", "R2", "R3", "R4"):
        previous = _supersede(store, previous, run_id)

    assert [r.run_id for r in store.list()] == ["R2", "R3", "R4"]
    current = store.current("wf-feature")
    assert current is not None
    assert current.run_id == "R4"
    assert current.status == RunStatus.PENDING


def test_retention_drops_slots_of_pruned_runs() -> None:
    store = InMemoryRunStore(retain_terminal=1)
    for run_id, group_key in (("R1", "wf-1"), ("R2", "wf-2")):
        run = Run.new(run_id=run_id, group_key=group_key, event=push(run_id))
        store.compare_and_swap(group_key, expected=None, new=run)
        running = transition(current=run, to=RunStatus.RUNNING)
        store.replace(running, expected=run)
        store.replace(transition(current=running, to=RunStatus.COMPLETED), expected=running)

    store.compare_and_swap("wf-3", expected=None, new=_run("R3", "wf-3"))

    assert [r.run_id for r in store.list()] == ["R2", "R3"]
    assert store.current("wf-1") is None
    assert store.current("wf-2") is not None


def test_json_store_retention_survives_reload(tmp_path: Path) -> None:
    path = tmp_path / "runs.json"
    store = JsonRunStore(path, retain_terminal=1)
    previous = None
    for run_id in ("R1", "R2", "R3"):
        previous = _supersede(store, previous, run_id)

    assert [r.run_id for r in JsonRunStore(path).list()] == ["R2", "R3"]


@pytest.mark.parametrize("retain_terminal", [0, -1])
def test_retention_must_keep_at_least_one_run(tmp_path: Path, retain_terminal: int) -> None:
    with pytest.raises(ValueError):
        InMemoryRunStore(retain_terminal=retain_terminal)
    with pytest.raises(ValueError):
        JsonRunStore(tmp_path / "runs.json", retain_terminal=retain_terminal)
