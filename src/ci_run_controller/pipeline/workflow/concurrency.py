from __future__ import annotations

from .events import EventKind, InvalidEvent, TriggerEvent


def concurrency_group_key(*, workflow_name: str, event: TriggerEvent) -> str:
    """Derive the concurrency group for an event.

    The key is `<workflow>-<head_ref or run_id>`. Only pull requests have a head
    ref; an empty one counts as absent. Pushes therefore get a group of their
    own and never supersede each other, while pull requests are grouped per
    head branch.
    """

    if not workflow_name:
        raise ValueError("workflow_name is required")

    head_ref = event.head_ref if event.kind is EventKind.PULL_REQUEST else None
    suffix = (head_ref or "").strip() or (event.run_id or "").strip()
    if not suffix:
        raise InvalidEvent("Trigger event has neither a pull request head ref nor a run id")
    return f"{workflow_name}-{suffix}"
