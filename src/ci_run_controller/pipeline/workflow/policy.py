from __future__ import annotations

from typing import TYPE_CHECKING

from .events import EventKind, TriggerEvent, strip_branch_ref

if TYPE_CHECKING:
    from ci_run_controller.pipeline.definition import WorkflowDefinition


def filter_branch(event: TriggerEvent) -> str:
    """Return the branch the workflow's branch filter is matched against.

    Pushes match on the pushed branch; pull requests on the branch they target.
    """

    if event.kind is EventKind.PULL_REQUEST and event.base_ref:
        return strip_branch_ref(event.base_ref)
    return strip_branch_ref(event.branch)


def should_trigger(*, definition: WorkflowDefinition, event: TriggerEvent) -> bool:
    """Policy: does this event start a run of the workflow?

    This must stay side-effect free; it runs before the controller sees the event.
    """

    branch_filter = definition.on.branches_for(event.kind)
    if branch_filter is None:
        return False
    if not branch_filter.branches:
        return True
    return filter_branch(event) in branch_filter.branches
