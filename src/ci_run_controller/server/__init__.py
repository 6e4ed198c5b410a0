"""FastAPI server adapter for ci-run-controller.

Design intent:
- Keep run control logic in `ci_run_controller.pipeline.*`
- Keep server-specific concerns (routing, webhook parsing, HTTP errors) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from ci_run_controller.server.app import create_app
