"""GitHub Actions REST client.

Only the workflow-run endpoints the run controller needs. Kept out of CLI and
server code so tests can inject a mocked session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WorkflowRunStatus:
    """Minimal workflow run metadata fetched from GitHub."""

    run_id: int
    status: str
    conclusion: str | None


@dataclass(frozen=True, slots=True)
class CancelResult:
    cancelled: bool
    message: str


class GitHubActionsClient:
    """Small wrapper around the GitHub Actions workflow-run endpoints."""

    def __init__(
        self,
        *,
        token: str,
        repository: str,
        base_url: str = "https://api.github.com",
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")
        if not repository:
            raise ValueError("GitHub repository is required")

        self._repository_name = repository
        self._rest_base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "ci-run-controller",
            }
        )

    @property
    def repository(self) -> str:
        """Return the configured repository name ("owner/repo")."""

        return self._repository_name

    def _runs_url(self, *, run_id: int, suffix: str = "") -> str:
        if run_id <= 0:
            raise ValueError("run_id must be a positive integer")
        if suffix and not suffix.startswith("/"):
            suffix = "/" + suffix
        return f"{self._rest_base_url}/repos/{self._repository_name}/actions/runs/{run_id}{suffix}"

    def get_workflow_run(self, *, run_id: int) -> WorkflowRunStatus:
        resp = self._session.get(self._runs_url(run_id=run_id), timeout=30)
        resp.raise_for_status()
        data: dict[str, Any] = resp.json()
        status = data.get("status")
        if not isinstance(status, str):
            raise ValueError("Unexpected workflow run response: missing status")
        conclusion = data.get("conclusion")
        return WorkflowRunStatus(
            run_id=run_id,
            status=status,
            conclusion=conclusion if isinstance(conclusion, str) else None,
        )

    def cancel_workflow_run(self, *, run_id: int) -> CancelResult:
        """Request cancellation of a workflow run.

        GitHub answers 202 when the request is accepted and 409 when the run
        already finished; the latter is reported, not raised.
        """

        resp = self._session.post(self._runs_url(run_id=run_id, suffix="cancel"), timeout=30)
        if resp.status_code == 409:
            logger.info("Workflow run already finished", extra={"github_run_id": run_id})
            return CancelResult(cancelled=False, message="Run already finished")
        resp.raise_for_status()
        return CancelResult(cancelled=True, message="Cancellation requested")

    def close(self) -> None:
        self._session.close()
