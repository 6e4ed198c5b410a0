"""FastAPI app factory.

Endpoints are thin wrappers over the trigger service and the run controller.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import Body, FastAPI, Header, HTTPException

from ci_run_controller import __version__
from ci_run_controller.pipeline.config import ControllerSettings
from ci_run_controller.pipeline.service import TriggerOutcome, TriggerService
from ci_run_controller.pipeline.workflow.controller import UnknownRunError
from ci_run_controller.pipeline.workflow.events import (
    InvalidEvent,
    TriggerEvent,
    event_from_github_payload,
    github_delivery_triggers,
    parse_event_kind,
)
from ci_run_controller.pipeline.workflow.state_machine import IllegalTransitionError, Run
from ci_run_controller.server.models import ApiDecision, ApiRun, TriggerRequest

logger = logging.getLogger(__name__)


def _to_api_decision(outcome: TriggerOutcome) -> ApiDecision:
    if outcome.decision is None:
        return ApiDecision.ignored()
    cancellation = outcome.cancellation
    return ApiDecision.from_decision(
        outcome.decision,
        ok=cancellation.ok if cancellation is not None else None,
        message=cancellation.message if cancellation is not None else None,
    )


def create_app(service: TriggerService | None = None) -> FastAPI:
    if service is None:
        service = TriggerService.from_settings(ControllerSettings())

    app = FastAPI(
        title="CI Run Controller",
        version=__version__,
        description="Cancel-on-supersede run control for CI workflows.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Expose the service for request handlers that want to read it.
    app.state.service = service
    controller = service.controller
    job_ids = list(service.definition.jobs)

    def _to_api_run(run: Run) -> ApiRun:
        return ApiRun.from_run(run, jobs=job_ids)

    def _trigger(event: TriggerEvent, *, apply_filters: bool = True) -> ApiDecision:
        try:
            outcome = service.trigger(event, apply_filters=apply_filters)
        except InvalidEvent as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        return _to_api_decision(outcome)

    def _advance(run_id: str, op: str) -> ApiRun:
        try:
            run = getattr(controller, op)(run_id)
        except UnknownRunError as e:
            raise HTTPException(status_code=404, detail="Run not found") from e
        except IllegalTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return _to_api_run(run)

    @app.get("/api/v1/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "workflow": service.definition.name}

    @app.get("/api/v1/workflow")
    def workflow() -> dict[str, Any]:
        return service.definition.model_dump(mode="json", by_alias=True)

    @app.post("/api/v1/events", response_model=ApiDecision)
    def post_event(req: TriggerRequest) -> ApiDecision:
        event = TriggerEvent(
            kind=parse_event_kind(req.kind),
            branch=req.branch,
            run_id=req.run_id,
            head_ref=req.head_ref,
            base_ref=req.base_ref,
        )
        return _trigger(event, apply_filters=req.apply_filters)

    @app.post("/api/v1/webhooks/github", response_model=ApiDecision)
    def github_webhook(
        payload: dict[str, Any] = Body(...),
        x_github_event: str = Header(...),
        x_github_delivery: str | None = Header(default=None),
    ) -> ApiDecision:
        if not github_delivery_triggers(
            event_name=x_github_event, payload=payload, workflow_name=service.definition.name
        ):
            logger.debug(
                "Delivery does not request a run; ignored",
                extra={"github_event": x_github_event, "delivery": x_github_delivery},
            )
            return ApiDecision.ignored()
        run_id = x_github_delivery or uuid.uuid4().hex
        try:
            event = event_from_github_payload(
                event_name=x_github_event, payload=payload, run_id=run_id
            )
        except InvalidEvent as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        return _trigger(event)

    @app.get("/api/v1/runs", response_model=list[ApiRun])
    def list_runs(group: str | None = None) -> list[ApiRun]:
        return [_to_api_run(run) for run in controller.list_runs(group)]

    @app.get("/api/v1/runs/{run_id}", response_model=ApiRun)
    def get_run(run_id: str) -> ApiRun:
        try:
            return _to_api_run(controller.get(run_id))
        except UnknownRunError as e:
            raise HTTPException(status_code=404, detail="Run not found") from e

    @app.post("/api/v1/runs/{run_id}/start", response_model=ApiRun)
    def start_run(run_id: str) -> ApiRun:
        return _advance(run_id, "start")

    @app.post("/api/v1/runs/{run_id}/complete", response_model=ApiRun)
    def complete_run(run_id: str) -> ApiRun:
        return _advance(run_id, "complete")

    @app.post("/api/v1/runs/{run_id}/cancel", response_model=ApiRun)
    def cancel_run(run_id: str) -> ApiRun:
        return _advance(run_id, "cancel")

    return app
