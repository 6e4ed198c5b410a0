from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import requests

from ci_run_controller.pipeline.github.client import GitHubActionsClient

from .controller import RunDecision
from .state_machine import Run
from .store import RunStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActionResult:
    ok: bool
    message: str
    details: dict[str, object] | None = None


class CancellationHandler(Protocol):
    """Realises the cancellation a decision asks for.

    Handlers are best-effort: they report failure in the result instead of
    raising, and they never block the superseding run.
    """

    def cancel(self, run: Run) -> ActionResult: ...


@dataclass(frozen=True, slots=True)
class LogCancellation(CancellationHandler):
    """Record the cancellation in the logs only; the executor polls run status."""

    def cancel(self, run: Run) -> ActionResult:
        logger.info(
            "Run superseded",
            extra={
                "run_id": run.run_id,
                "group_key": run.group_key,
                "superseded_by": run.superseded_by,
            },
        )
        return ActionResult(ok=True, message="Logged")


@dataclass(frozen=True, slots=True)
class GitHubActionsCancellation(CancellationHandler):
    """Cancel the GitHub Actions workflow run that triggered the superseded run.

    The trigger event's run id must be the numeric GitHub run id. Over the
    webhook only `workflow_run` deliveries provide one; runs created from
    `push` or `pull_request` deliveries are recorded as cancelled but GitHub is
    not asked to stop them.
    """

    github: GitHubActionsClient

    def cancel(self, run: Run) -> ActionResult:
        try:
            github_run_id = int(run.event.run_id)
        except ValueError:
            return ActionResult(
                ok=False,
                message="Run id is not a GitHub workflow run id",
                details={"event_run_id": run.event.run_id},
            )

        try:
            result = self.github.cancel_workflow_run(run_id=github_run_id)
        except (requests.RequestException, ValueError) as e:
            logger.exception(
                "Cancelling workflow run failed",
                extra={"run_id": run.run_id, "github_run_id": github_run_id},
            )
            return ActionResult(ok=False, message=str(e), details={"github_run_id": github_run_id})

        return ActionResult(
            ok=True,
            message=result.message,
            details={"github_run_id": github_run_id, "cancelled": result.cancelled},
        )


def dispatch_cancellation(
    *, decision: RunDecision, store: RunStore, handler: CancellationHandler
) -> ActionResult | None:
    """Hand a decision's superseded run to the cancellation handler.

    Returns None when the decision cancels nothing.
    """

    if decision.cancelled_run_id is None:
        return None
    run = store.get(decision.cancelled_run_id)
    if run is None:
        return ActionResult(
            ok=False,
            message="Superseded run not found",
            details={"run_id": decision.cancelled_run_id},
        )
    result = handler.cancel(run)
    if not result.ok:
        logger.warning(
            "Cancellation was not realised",
            extra={"run_id": run.run_id, "group_key": run.group_key, "reason": result.message},
        )
    return result
