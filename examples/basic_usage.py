#!/usr/bin/env python3
"""Programmatic run control example.

This demonstrates using the controller components directly:

* build a controller over an in-memory store
* offer two pull request events for the same head branch
* observe the second run superseding the first

Nothing is persisted and no GitHub credentials are needed.
"""

from __future__ import annotations

import argparse
from typing import Sequence

from ci_run_controller.pipeline.definition import default_workflow
from ci_run_controller.pipeline.logging import configure_logging
from ci_run_controller.pipeline.service import TriggerService
from ci_run_controller.pipeline.workflow.events import EventKind, TriggerEvent
from ci_run_controller.pipeline.workflow.store import InMemoryRunStore


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Supersede a pull request run (example).")
    parser.add_argument("--head-ref", default="feature", help="Pull request head branch")
    parser.add_argument("--base-ref", default="main", help="Pull request target branch")
    parser.add_argument("--log-level", default="WARNING", help="Root logging level")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    service = TriggerService(definition=default_workflow(), store=InMemoryRunStore())

    for github_run_id in ("1001", "1002"):
        event = TriggerEvent(
            kind=EventKind.PULL_REQUEST,
            branch="refs/pull/1/merge",
            run_id=github_run_id,
            head_ref=args.head_ref,
            base_ref=args.base_ref,
        )
        outcome = service.trigger(event)
        if outcome.decision is None:
            print(f"Target branch {args.base_ref!r} does not trigger the workflow")
            return 0
        print(f"Run {outcome.decision.new_run_id} in group {outcome.decision.group_key}")
        if outcome.decision.cancelled_run_id:
            print(f"  supersedes {outcome.decision.cancelled_run_id}")

    for run in service.controller.list_runs():
        print(f"{run.run_id}: {run.status.value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
