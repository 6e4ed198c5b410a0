"""Test configuration and fixtures."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from pathlib import Path

import pytest

from ci_run_controller.pipeline.definition import WorkflowDefinition, default_workflow
from ci_run_controller.pipeline.workflow.controller import RunController
from ci_run_controller.pipeline.workflow.events import EventKind, TriggerEvent
from ci_run_controller.pipeline.workflow.store import InMemoryRunStore

_ENV_VARS = (
    "LOG_LEVEL",
    "RUN_STATE_PATH",
    "RUN_RETAIN_TERMINAL",
    "CI_WORKFLOW_FILE",
    "CI_GITHUB_TOKEN",
    "GITHUB_BASE_URL",
    "CI_GITHUB_REPOSITORY",
    "CI_CANCEL_VIA_GITHUB",
)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run with no controller settings in the environment, from an empty directory."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def run_ids() -> Callable[[], str]:
    """Deterministic run ids: R1, R2, ..."""
    counter = itertools.count(1)
    return lambda: f"R{next(counter)}"


@pytest.fixture
def store() -> InMemoryRunStore:
    return InMemoryRunStore()


@pytest.fixture
def controller(store: InMemoryRunStore, run_ids: Callable[[], str]) -> RunController:
    return RunController(workflow_name="wf", store=store, id_factory=run_ids)


@pytest.fixture
def workflow() -> WorkflowDefinition:
    return default_workflow()


def push(run_id: str, branch: str = "main") -> TriggerEvent:
    return TriggerEvent(kind=EventKind.PUSH, branch=branch, run_id=run_id)


def pull_request(
    head_ref: str, run_id: str = "1", base_ref: str | None = "main"
) -> TriggerEvent:
    return TriggerEvent(
        kind=EventKind.PULL_REQUEST,
        branch="refs/pull/7/merge",
        run_id=run_id,
        head_ref=head_ref,
        base_ref=base_ref,
    )
