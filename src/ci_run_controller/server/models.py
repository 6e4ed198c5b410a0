"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ci_run_controller.pipeline.workflow.controller import RunDecision
from ci_run_controller.pipeline.workflow.state_machine import Run

RunStatusName = Literal["pending", "running", "cancelled", "completed"]


class TriggerRequest(BaseModel):
    kind: Literal["push", "pull_request"]
    branch: str
    run_id: str = ""
    head_ref: str | None = None
    base_ref: str | None = None
    apply_filters: bool = True


class ApiDecision(BaseModel):
    triggered: bool
    new_run_id: str | None = None
    group_key: str | None = None
    cancelled_run_id: str | None = None
    cancellation_ok: bool | None = None
    cancellation_message: str | None = None

    @staticmethod
    def ignored() -> ApiDecision:
        return ApiDecision(triggered=False)

    @staticmethod
    def from_decision(
        decision: RunDecision, *, ok: bool | None = None, message: str | None = None
    ) -> ApiDecision:
        return ApiDecision(
            triggered=True,
            new_run_id=decision.new_run_id,
            group_key=decision.group_key,
            cancelled_run_id=decision.cancelled_run_id,
            cancellation_ok=ok,
            cancellation_message=message,
        )


class ApiEvent(BaseModel):
    kind: str
    branch: str
    run_id: str
    head_ref: str | None = None
    base_ref: str | None = None


class ApiRun(BaseModel):
    run_id: str
    group_key: str
    status: RunStatusName
    event: ApiEvent
    created_at: datetime
    updated_at: datetime
    superseded_by: str | None = None

    jobs: list[str] = Field(default_factory=list)

    @staticmethod
    def from_run(run: Run, *, jobs: list[str] | None = None) -> ApiRun:
        return ApiRun.model_validate({**run.to_json(), "jobs": jobs or []})
