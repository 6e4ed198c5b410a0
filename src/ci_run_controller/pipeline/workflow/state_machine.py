from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum

from .events import TriggerEvent


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        return self in (RunStatus.PENDING, RunStatus.RUNNING)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


ALLOWED_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.CANCELLED},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.CANCELLED},
    RunStatus.CANCELLED: set(),
    RunStatus.COMPLETED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class Run:
    """One execution attempt of the pipeline for a trigger event."""

    run_id: str
    group_key: str
    status: RunStatus
    event: TriggerEvent
    created_at: datetime
    updated_at: datetime
    superseded_by: str | None = None

    @staticmethod
    def new(*, run_id: str, group_key: str, event: TriggerEvent) -> Run:
        now = _utc_now()
        return Run(
            run_id=run_id,
            group_key=group_key,
            status=RunStatus.PENDING,
            event=event,
            created_at=now,
            updated_at=now,
        )

    def to_json(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "group_key": self.group_key,
            "status": self.status.value,
            "event": self.event.to_json(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "superseded_by": self.superseded_by,
        }

    @staticmethod
    def from_json(obj: dict[str, object]) -> Run:
        event_raw = obj.get("event")
        superseded_raw = obj.get("superseded_by")
        return Run(
            run_id=str(obj["run_id"]),
            group_key=str(obj["group_key"]),
            status=RunStatus(str(obj["status"])),
            event=TriggerEvent.from_json(event_raw if isinstance(event_raw, dict) else {}),
            created_at=datetime.fromisoformat(str(obj["created_at"])),
            updated_at=datetime.fromisoformat(str(obj["updated_at"])),
            superseded_by=superseded_raw if isinstance(superseded_raw, str) else None,
        )


def transition(*, current: Run, to: RunStatus, superseded_by: str | None = None) -> Run:
    allowed = ALLOWED_TRANSITIONS.get(current.status, set())
    if to not in allowed:
        raise IllegalTransitionError(
            f"Illegal transition for run {current.run_id}: "
            f"{current.status.value} -> {to.value}"
        )
    return replace(
        current,
        status=to,
        updated_at=_utc_now(),
        superseded_by=superseded_by if superseded_by is not None else current.superseded_by,
    )
