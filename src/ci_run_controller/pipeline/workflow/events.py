from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

_BRANCH_REF_PREFIX = "refs/heads/"


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


class InvalidEvent(ValueError):
    """A trigger event is missing the fields needed to correlate it with a group."""


@dataclass(frozen=True, slots=True)
class TriggerEvent:
    """A signal emitted by the source-control layer requesting a new run.

    `head_ref` is only meaningful for pull requests. `base_ref` is the branch a
    pull request targets; it is consulted by the trigger policy only.
    """

    kind: EventKind
    branch: str
    run_id: str
    head_ref: str | None = None
    base_ref: str | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "kind": self.kind.value,
            "branch": self.branch,
            "run_id": self.run_id,
        }
        if self.head_ref is not None:
            out["head_ref"] = self.head_ref
        if self.base_ref is not None:
            out["base_ref"] = self.base_ref
        return out

    @staticmethod
    def from_json(obj: Mapping[str, object]) -> TriggerEvent:
        def _str(v: object) -> str | None:
            return v if isinstance(v, str) else None

        return TriggerEvent(
            kind=parse_event_kind(obj.get("kind")),
            branch=_str(obj.get("branch")) or "",
            run_id=_str(obj.get("run_id")) or "",
            head_ref=_str(obj.get("head_ref")),
            base_ref=_str(obj.get("base_ref")),
        )


def parse_event_kind(value: object) -> EventKind:
    if isinstance(value, EventKind):
        return value
    if isinstance(value, str):
        try:
            return EventKind(value.strip())
        except ValueError:
            pass
    raise InvalidEvent(f"Unsupported event kind: {value!r}")


def strip_branch_ref(ref: str) -> str:
    """Return the short branch name for a fully qualified `refs/heads/...` ref."""

    if ref.startswith(_BRANCH_REF_PREFIX):
        return ref[len(_BRANCH_REF_PREFIX) :]
    return ref


WORKFLOW_RUN_EVENT = "workflow_run"


def github_delivery_triggers(
    *, event_name: str, payload: Mapping[str, object], workflow_name: str
) -> bool:
    """Does a GitHub webhook delivery request a run of `workflow_name`?

    `ping` never does. `workflow_run` deliveries only count when GitHub has just
    requested a run of the same workflow; later lifecycle actions and runs of
    other workflows are ignored.
    """

    if event_name == "ping":
        return False
    if event_name != WORKFLOW_RUN_EVENT:
        return True
    workflow_run = payload.get("workflow_run")
    return (
        payload.get("action") == "requested"
        and isinstance(workflow_run, Mapping)
        and workflow_run.get("name") == workflow_name
    )


def event_from_github_payload(
    *, event_name: str, payload: Mapping[str, object], run_id: str
) -> TriggerEvent:
    """Build a trigger event from a GitHub webhook delivery.

    `push` and `pull_request` deliveries carry no workflow run id, so `run_id`
    (typically the delivery id) is used. `workflow_run` deliveries carry the
    numeric id of the run GitHub created, which is what the Actions API needs to
    cancel it; `run_id` is ignored for them. Anything else is rejected with
    InvalidEvent.
    """

    if event_name == WORKFLOW_RUN_EVENT:
        return _event_from_workflow_run(payload)

    kind = parse_event_kind(event_name)

    if kind is EventKind.PUSH:
        ref = payload.get("ref")
        if not isinstance(ref, str) or not ref.strip():
            raise InvalidEvent("push payload is missing 'ref'")
        return TriggerEvent(kind=kind, branch=strip_branch_ref(ref), run_id=run_id)

    pr = payload.get("pull_request")
    if not isinstance(pr, Mapping):
        raise InvalidEvent("pull_request payload is missing 'pull_request'")
    head_ref, base_ref = _pull_request_refs(pr)
    if head_ref is None:
        raise InvalidEvent("pull_request payload is missing 'pull_request.head.ref'")

    number = payload.get("number") or pr.get("number")
    # Mirrors GITHUB_REF for pull requests.
    branch = f"refs/pull/{number}/merge" if isinstance(number, int) else head_ref
    return TriggerEvent(
        kind=kind,
        branch=branch,
        run_id=run_id,
        head_ref=head_ref,
        base_ref=base_ref,
    )


def _pull_request_refs(pr: Mapping[str, object]) -> tuple[str | None, str | None]:
    head = pr.get("head")
    base = pr.get("base")
    head_ref = head.get("ref") if isinstance(head, Mapping) else None
    base_ref = base.get("ref") if isinstance(base, Mapping) else None
    return (
        head_ref if isinstance(head_ref, str) and head_ref.strip() else None,
        base_ref if isinstance(base_ref, str) and base_ref.strip() else None,
    )


def _event_from_workflow_run(payload: Mapping[str, object]) -> TriggerEvent:
    workflow_run = payload.get("workflow_run")
    if not isinstance(workflow_run, Mapping):
        raise InvalidEvent("workflow_run payload is missing 'workflow_run'")

    github_run_id = workflow_run.get("id")
    if not isinstance(github_run_id, int) or isinstance(github_run_id, bool):
        raise InvalidEvent("workflow_run payload is missing 'workflow_run.id'")
    kind = parse_event_kind(workflow_run.get("event"))
    head_branch = workflow_run.get("head_branch")
    if not isinstance(head_branch, str) or not head_branch.strip():
        raise InvalidEvent("workflow_run payload is missing 'workflow_run.head_branch'")

    if kind is EventKind.PUSH:
        return TriggerEvent(kind=kind, branch=head_branch, run_id=str(github_run_id))

    # Fork pull requests are not listed; head_branch is still the PR head.
    head_ref: str | None = head_branch
    base_ref: str | None = None
    pull_requests = workflow_run.get("pull_requests")
    if isinstance(pull_requests, list) and pull_requests and isinstance(pull_requests[0], Mapping):
        listed_head, base_ref = _pull_request_refs(pull_requests[0])
        head_ref = listed_head or head_branch
    return TriggerEvent(
        kind=kind,
        branch=head_branch,
        run_id=str(github_run_id),
        head_ref=head_ref,
        base_ref=base_ref,
    )
