from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from .concurrency import concurrency_group_key
from .events import TriggerEvent
from .state_machine import Run, RunStatus, transition
from .store import RunStore

logger = logging.getLogger(__name__)


class UnknownRunError(KeyError):
    pass


@dataclass(frozen=True, slots=True)
class RunDecision:
    """Outcome of a trigger.

    Cancellation is expressed as data: the executor decides how to realise
    `cancelled_run_id` (signal, kill, ignore).
    """

    new_run_id: str
    group_key: str
    cancelled_run_id: str | None = None

    @property
    def supersedes(self) -> bool:
        return self.cancelled_run_id is not None

    def to_json(self) -> dict[str, object]:
        return {
            "new_run_id": self.new_run_id,
            "group_key": self.group_key,
            "cancelled_run_id": self.cancelled_run_id,
        }


def _new_run_id() -> str:
    return uuid.uuid4().hex


class RunController:
    """Cancel-on-supersede policy for one workflow.

    The newest trigger in a concurrency group always wins: any pending or
    running run in the group is cancelled and a new pending run takes its slot.
    The controller never waits for in-flight runs.
    """

    def __init__(
        self,
        *,
        workflow_name: str,
        store: RunStore,
        id_factory: Callable[[], str] = _new_run_id,
    ) -> None:
        if not workflow_name.strip():
            raise ValueError("workflow_name is required")
        self._workflow_name = workflow_name
        self._store = store
        self._id_factory = id_factory

    @property
    def workflow_name(self) -> str:
        return self._workflow_name

    def on_trigger(self, event: TriggerEvent) -> RunDecision:
        group_key = concurrency_group_key(workflow_name=self._workflow_name, event=event)
        new = Run.new(run_id=self._id_factory(), group_key=group_key, event=event)

        while True:
            current = self._store.current(group_key)
            superseded: Run | None = None
            if current is not None and current.status.is_active:
                superseded = transition(
                    current=current, to=RunStatus.CANCELLED, superseded_by=new.run_id
                )

            if self._store.compare_and_swap(
                group_key, expected=current, new=new, superseded=superseded
            ):
                break
            logger.debug(
                "Group slot changed concurrently; retrying",
                extra={"group_key": group_key, "run_id": new.run_id},
            )

        decision = RunDecision(
            new_run_id=new.run_id,
            group_key=group_key,
            cancelled_run_id=superseded.run_id if superseded is not None else None,
        )
        logger.info(
            "Run created",
            extra={
                "run_id": new.run_id,
                "group_key": group_key,
                "event_kind": event.kind.value,
                "cancelled_run_id": decision.cancelled_run_id,
            },
        )
        return decision

    def get(self, run_id: str) -> Run:
        run = self._store.get(run_id)
        if run is None:
            raise UnknownRunError(run_id)
        return run

    def list_runs(self, group_key: str | None = None) -> list[Run]:
        return self._store.list(group_key)

    def start(self, run_id: str) -> Run:
        return self._advance(run_id, RunStatus.RUNNING)

    def complete(self, run_id: str) -> Run:
        return self._advance(run_id, RunStatus.COMPLETED)

    def cancel(self, run_id: str) -> Run:
        return self._advance(run_id, RunStatus.CANCELLED)

    def _advance(self, run_id: str, to: RunStatus) -> Run:
        # A lost race re-reads the run; the state machine then rejects moves out
        # of a terminal state.
        while True:
            current = self.get(run_id)
            updated = transition(current=current, to=to)
            if self._store.replace(updated, expected=current):
                logger.info(
                    "Run status changed",
                    extra={
                        "run_id": run_id,
                        "group_key": current.group_key,
                        "from_status": current.status.value,
                        "to_status": to.value,
                    },
                )
                return updated
