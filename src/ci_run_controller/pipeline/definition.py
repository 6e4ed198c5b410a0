"""Declarative workflow definition.

The jobs a run executes are configuration data handed to the external executor
once a run is started. Nothing here interprets a step: `uses` and `run` are
opaque to the controller.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ci_run_controller.pipeline.workflow.events import EventKind


class Step(BaseModel):
    """One step of a job: either an action reference (`uses`) or a shell command (`run`)."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    uses: str | None = None
    run: str | None = None
    with_: dict[str, str] = Field(default_factory=dict, alias="with")
    env: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _exactly_one_of_uses_or_run(self) -> Step:
        if (self.uses is None) == (self.run is None):
            raise ValueError("A step needs exactly one of 'uses' or 'run'")
        return self


class JobDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str
    runs_on: str = Field(default="ubuntu-latest", alias="runs-on")
    permissions: dict[str, str] = Field(default_factory=dict)
    steps: list[Step] = Field(min_length=1)


class BranchFilter(BaseModel):
    branches: list[str] = Field(default_factory=list)


class TriggerConfig(BaseModel):
    """Which events start the workflow, and on which branches.

    An event kind that is not configured (None) never triggers. An empty branch
    list matches every branch.
    """

    model_config = ConfigDict(extra="forbid")

    push: BranchFilter | None = None
    pull_request: BranchFilter | None = None

    def branches_for(self, kind: EventKind) -> BranchFilter | None:
        if kind is EventKind.PUSH:
            return self.push
        return self.pull_request


class ConcurrencyConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    group: str = "${{ github.workflow }}-${{ github.head_ref || github.run_id }}"
    cancel_in_progress: bool = Field(default=True, alias="cancel-in-progress")


class WorkflowDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(min_length=1)
    permissions: dict[str, str] = Field(default_factory=dict)
    on: TriggerConfig
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    jobs: dict[str, JobDefinition] = Field(min_length=1)

    @model_validator(mode="after")
    def _only_cancel_in_progress_groups(self) -> WorkflowDefinition:
        # The run controller implements cancel-on-supersede only.
        if not self.concurrency.cancel_in_progress:
            raise ValueError("concurrency.cancel-in-progress must be true")
        return self


def _checkout() -> Step:
    return Step(uses="actions/checkout@v4")


def default_workflow() -> WorkflowDefinition:
    """The `Build` workflow: five independent checks on main and release."""

    branches = BranchFilter(branches=["main", "release"])
    return WorkflowDefinition(
        name="Build",
        permissions={"contents": "read"},
        on=TriggerConfig(push=branches, pull_request=branches),
        jobs={
            "fmt": JobDefinition(
                name="Fmt",
                steps=[
                    _checkout(),
                    Step(uses="dtolnay/rust-toolchain@stable", with_={"components": "rustfmt"}),
                    Step(run="cargo fmt --check"),
                ],
            ),
            "clippy": JobDefinition(
                name="Clippy",
                permissions={"contents": "read", "checks": "write"},
                steps=[
                    _checkout(),
                    Step(uses="dtolnay/rust-toolchain@stable", with_={"components": "clippy"}),
                    Step(
                        uses="actions-rs/clippy-check@v1",
                        with_={
                            "args": "--all-features",
                            "token": "${{ secrets.GITHUB_TOKEN }}",
                        },
                    ),
                ],
            ),
            "doc": JobDefinition(
                name="Doc",
                steps=[
                    _checkout(),
                    Step(uses="dtolnay/rust-toolchain@nightly"),
                    Step(
                        run="cargo doc --no-deps --all-features",
                        env={"RUSTDOCFLAGS": "--cfg docsrs"},
                    ),
                ],
            ),
            "hack": JobDefinition(
                name="Feature Unionization",
                steps=[
                    _checkout(),
                    Step(uses="dtolnay/rust-toolchain@stable"),
                    Step(uses="taiki-e/install-action@cargo-hack"),
                    Step(run="cargo hack --feature-powerset check"),
                ],
            ),
            "msrv": JobDefinition(
                name="MSRV",
                steps=[
                    _checkout(),
                    Step(uses="dtolnay/rust-toolchain@master", with_={"toolchain": "1.68.2"}),
                    Step(run="cargo check --all-features"),
                ],
            ),
        },
    )


def load_workflow(path: Path | None) -> WorkflowDefinition:
    """Load a workflow definition from JSON, or return the built-in default.

    Raises:
        FileNotFoundError if `path` is given but missing.
        pydantic.ValidationError if the content does not describe a valid workflow.
    """

    if path is None:
        return default_workflow()
    raw = json.loads(path.read_text(encoding="utf-8"))
    return WorkflowDefinition.model_validate(raw)
