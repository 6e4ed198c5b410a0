"""Trigger service.

Coordinates the workflow definition, the trigger policy, the run controller and
the cancellation handler. CLI and REST server both go through this class so
that an event is filtered, decided and cancelled the same way everywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ci_run_controller.pipeline.config import ControllerSettings
from ci_run_controller.pipeline.definition import WorkflowDefinition, load_workflow
from ci_run_controller.pipeline.github.client import GitHubActionsClient
from ci_run_controller.pipeline.workflow.actions import (
    ActionResult,
    CancellationHandler,
    GitHubActionsCancellation,
    LogCancellation,
    dispatch_cancellation,
)
from ci_run_controller.pipeline.workflow.concurrency import concurrency_group_key
from ci_run_controller.pipeline.workflow.controller import RunController, RunDecision
from ci_run_controller.pipeline.workflow.events import TriggerEvent
from ci_run_controller.pipeline.workflow.policy import should_trigger
from ci_run_controller.pipeline.workflow.store import JsonRunStore, RunStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TriggerOutcome:
    """Result of offering an event to the workflow.

    `decision` is None when the trigger policy ignored the event.
    """

    decision: RunDecision | None
    cancellation: ActionResult | None = None

    @property
    def triggered(self) -> bool:
        return self.decision is not None


class TriggerService:
    def __init__(
        self,
        *,
        definition: WorkflowDefinition,
        store: RunStore,
        cancellation: CancellationHandler | None = None,
        controller: RunController | None = None,
    ) -> None:
        self.definition = definition
        self.store = store
        self.cancellation: CancellationHandler = cancellation or LogCancellation()
        self.controller = controller or RunController(workflow_name=definition.name, store=store)

    @classmethod
    def from_settings(
        cls, settings: ControllerSettings, *, store: RunStore | None = None
    ) -> TriggerService:
        definition = load_workflow(settings.workflow_file)
        cancellation: CancellationHandler = LogCancellation()
        if settings.cancel_via_github:
            cancellation = GitHubActionsCancellation(
                github=GitHubActionsClient(
                    token=settings.github_token,
                    repository=settings.github_repository,
                    base_url=settings.github_base_url,
                )
            )
        if store is None:
            store = JsonRunStore(
                settings.runs_state_file, retain_terminal=settings.run_retain_terminal or None
            )
        return cls(
            definition=definition,
            store=store,
            cancellation=cancellation,
        )

    def trigger(self, event: TriggerEvent, *, apply_filters: bool = True) -> TriggerOutcome:
        """Offer an event to the workflow.

        Raises:
            InvalidEvent if the event cannot be correlated with a concurrency group.
        """

        # Malformed events are surfaced even when the filters would drop them.
        concurrency_group_key(workflow_name=self.definition.name, event=event)

        if apply_filters and not should_trigger(definition=self.definition, event=event):
            logger.info(
                "Event does not match workflow triggers; ignored",
                extra={
                    "workflow": self.definition.name,
                    "event_kind": event.kind.value,
                    "branch": event.branch,
                },
            )
            return TriggerOutcome(decision=None)

        decision = self.controller.on_trigger(event)
        cancellation = dispatch_cancellation(
            decision=decision, store=self.store, handler=self.cancellation
        )
        return TriggerOutcome(decision=decision, cancellation=cancellation)
