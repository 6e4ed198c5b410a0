"""CLI entrypoint for the run controller.

Every command works against the persisted run store, so a CI wrapper can call
`trigger` when an event arrives and `start`/`complete` as the executor
progresses.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from ci_run_controller import __version__
from ci_run_controller.pipeline.config import ControllerSettings
from ci_run_controller.pipeline.logging import configure_logging
from ci_run_controller.pipeline.service import TriggerService
from ci_run_controller.pipeline.workflow.controller import UnknownRunError
from ci_run_controller.pipeline.workflow.events import (
    EventKind,
    InvalidEvent,
    TriggerEvent,
)
from ci_run_controller.pipeline.workflow.state_machine import IllegalTransitionError, Run

logger = logging.getLogger(__name__)


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _run_summary(run: Run) -> str:
    superseded = f" superseded_by={run.superseded_by}" if run.superseded_by else ""
    return f"{run.run_id} [{run.status.value}] group={run.group_key}{superseded}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ci-run-controller",
        description="Cancel-on-supersede run controller for CI workflows",
    )
    parser.add_argument("--version", action="version", version=f"ci-run-controller {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    trigger = subparsers.add_parser(
        "trigger",
        help="Offer a trigger event; creates a run and cancels the run it supersedes",
    )
    trigger.add_argument(
        "--event",
        dest="kind",
        required=True,
        choices=[k.value for k in EventKind],
        help="Event kind",
    )
    trigger.add_argument("--branch", required=True, help="Source branch (or ref) of the event")
    trigger.add_argument("--run-id", default="", help="Run identifier assigned by the CI platform")
    trigger.add_argument("--head-ref", default=None, help="Pull request head branch")
    trigger.add_argument("--base-ref", default=None, help="Pull request target branch")
    trigger.add_argument(
        "--no-filter",
        action="store_true",
        help="Skip the workflow's branch/event filters",
    )

    for name, help_text in (
        ("start", "Mark a pending run as running"),
        ("complete", "Mark a running run as completed"),
        ("cancel", "Cancel a pending or running run"),
        ("show-run", "Print a run as JSON"),
    ):
        cmd = subparsers.add_parser(name, help=help_text)
        cmd.add_argument("--run-id", required=True, help="Run id returned by 'trigger'")

    list_runs = subparsers.add_parser("list-runs", help="List runs, oldest first")
    list_runs.add_argument("--group", default=None, help="Only runs of this concurrency group")

    subparsers.add_parser("show-workflow", help="Print the active workflow definition as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ControllerSettings()
        service = TriggerService.from_settings(settings)
    except (ValidationError, FileNotFoundError, json.JSONDecodeError) as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env and workflow file):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)
    controller = service.controller

    try:
        if args.command == "trigger":
            event = TriggerEvent(
                kind=EventKind(args.kind),
                branch=args.branch,
                run_id=args.run_id,
                head_ref=args.head_ref,
                base_ref=args.base_ref,
            )
            outcome = service.trigger(event, apply_filters=not args.no_filter)
            if outcome.decision is None:
                print(f"Event does not trigger workflow '{service.definition.name}'")
                return 0
            _print_json(outcome.decision.to_json())
            return 0

        if args.command == "start":
            print(_run_summary(controller.start(args.run_id)))
            return 0

        if args.command == "complete":
            print(_run_summary(controller.complete(args.run_id)))
            return 0

        if args.command == "cancel":
            print(_run_summary(controller.cancel(args.run_id)))
            return 0

        if args.command == "show-run":
            _print_json(controller.get(args.run_id).to_json())
            return 0

        if args.command == "list-runs":
            runs = controller.list_runs(args.group)
            if not runs:
                print("No runs recorded")
            for run in runs:
                print(_run_summary(run))
            return 0

        if args.command == "show-workflow":
            _print_json(service.definition.model_dump(mode="json", by_alias=True))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except InvalidEvent as e:
        logger.warning(str(e))
        print(f"Invalid event: {e}", file=sys.stderr)
        return 2

    except IllegalTransitionError as e:
        logger.warning(str(e))
        print(str(e), file=sys.stderr)
        return 3

    except UnknownRunError as e:
        print(f"Unknown run: {e.args[0]}", file=sys.stderr)
        return 4

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
