from __future__ import annotations

from pathlib import Path
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from ci_run_controller.pipeline.definition import default_workflow
from ci_run_controller.pipeline.github.client import CancelResult, GitHubActionsClient
from ci_run_controller.pipeline.service import TriggerService
from ci_run_controller.pipeline.workflow.actions import GitHubActionsCancellation
from ci_run_controller.pipeline.workflow.store import InMemoryRunStore
from ci_run_controller.server.app import create_app


@pytest.fixture
def client() -> TestClient:
    service = TriggerService(definition=default_workflow(), store=InMemoryRunStore())
    return TestClient(create_app(service))


def _pr_event(run_id: str, head_ref: str = "feature") -> dict[str, object]:
    return {
        "kind": "pull_request",
        "branch": "refs/pull/1/merge",
        "run_id": run_id,
        "head_ref": head_ref,
        "base_ref": "main",
    }


def test_health_and_workflow(client: TestClient) -> None:
    assert client.get("/api/v1/health").json() == {"status": "ok", "workflow": "Build"}

    workflow = client.get("/api/v1/workflow").json()
    assert workflow["concurrency"]["cancel-in-progress"] is True
    assert "msrv" in workflow["jobs"]


def test_events_supersede_within_group(client: TestClient) -> None:
    first = client.post("/api/v1/events", json=_pr_event("1")).json()
    second = client.post("/api/v1/events", json=_pr_event("2")).json()

    assert first["triggered"] is True
    assert first["cancelled_run_id"] is None
    assert second["cancelled_run_id"] == first["new_run_id"]
    assert second["cancellation_ok"] is True

    old = client.get(f"/api/v1/runs/{first['new_run_id']}").json()
    assert old["status"] == "cancelled"
    assert old["superseded_by"] == second["new_run_id"]
    assert old["jobs"] == ["fmt", "clippy", "doc", "hack", "msrv"]

    runs = client.get("/api/v1/runs", params={"group": "Build-feature"}).json()
    assert [r["status"] for r in runs] == ["cancelled", "pending"]


def test_event_outside_trigger_filters_is_ignored(client: TestClient) -> None:
    body = {"kind": "push", "branch": "feature", "run_id": "1"}
    assert client.post("/api/v1/events", json=body).json()["triggered"] is False

    body["apply_filters"] = False
    assert client.post("/api/v1/events", json=body).json()["triggered"] is True


def test_invalid_event_is_rejected(client: TestClient) -> None:
    resp = client.post("/api/v1/events", json={"kind": "push", "branch": "main", "run_id": ""})
    assert resp.status_code == 422
    assert client.get("/api/v1/runs").json() == []


def test_run_lifecycle(client: TestClient) -> None:
    run_id = client.post("/api/v1/events", json=_pr_event("1")).json()["new_run_id"]

    assert client.post(f"/api/v1/runs/{run_id}/start").json()["status"] == "running"
    assert client.post(f"/api/v1/runs/{run_id}/complete").json()["status"] == "completed"
    assert client.post(f"/api/v1/runs/{run_id}/cancel").status_code == 409
    assert client.post("/api/v1/runs/missing/start").status_code == 404
    assert client.get("/api/v1/runs/missing").status_code == 404


def test_github_webhook(client: TestClient) -> None:
    payload = {
        "number": 1,
        "pull_request": {"head": {"ref": "feature"}, "base": {"ref": "release"}},
    }
    headers = {"X-GitHub-Event": "pull_request", "X-GitHub-Delivery": "delivery-1"}
    first = client.post("/api/v1/webhooks/github", json=payload, headers=headers).json()
    headers["X-GitHub-Delivery"] = "delivery-2"
    second = client.post("/api/v1/webhooks/github", json=payload, headers=headers).json()

    assert first["group_key"] == "Build-feature"
    assert second["cancelled_run_id"] == first["new_run_id"]

    ping = client.post(
        "/api/v1/webhooks/github", json={"zen": "hi"}, headers={"X-GitHub-Event": "ping"}
    )
    assert ping.json()["triggered"] is False

    bad = client.post("/api/v1/webhooks/github", json={}, headers={"X-GitHub-Event": "push"})
    assert bad.status_code == 422


def test_create_app_from_environment(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RUN_STATE_PATH", str(clean_env / "state"))
    client = TestClient(create_app())

    body = {"kind": "push", "branch": "main", "run_id": "42"}
    decision = client.post("/api/v1/events", json=body).json()

    assert decision["group_key"] == "Build-42"
    assert (clean_env / "state" / "runs.json").exists()


def _workflow_run_delivery(
    github_run_id: int, *, action: str = "requested", name: str = "Build"
) -> dict[str, object]:
    return {
        "action": action,
        "workflow_run": {
            "id": github_run_id,
            "name": name,
            "event": "pull_request",
            "head_branch": "feature",
            "pull_requests": [
                {"number": 1, "head": {"ref": "feature"}, "base": {"ref": "main"}}
            ],
        },
    }


def test_workflow_run_webhook_cancels_superseded_github_run() -> None:
    github = Mock(spec=GitHubActionsClient)
    github.cancel_workflow_run.return_value = CancelResult(
        cancelled=True, message="Cancellation requested"
    )
    service = TriggerService(
        definition=default_workflow(),
        store=InMemoryRunStore(),
        cancellation=GitHubActionsCancellation(github=github),
    )
    client = TestClient(create_app(service))
    headers = {"X-GitHub-Event": "workflow_run", "X-GitHub-Delivery": "72d3162e-cc78-11e3"}

    first = client.post(
        "/api/v1/webhooks/github", json=_workflow_run_delivery(1001), headers=headers
    ).json()
    second = client.post(
        "/api/v1/webhooks/github", json=_workflow_run_delivery(1002), headers=headers
    ).json()

    assert first["group_key"] == "Build-feature"
    assert second["cancelled_run_id"] == first["new_run_id"]
    assert second["cancellation_ok"] is True
    github.cancel_workflow_run.assert_called_once_with(run_id=1001)

    run = client.get(f"/api/v1/runs/{second['new_run_id']}").json()
    assert run["event"]["run_id"] == "1002"


@pytest.mark.parametrize(
    "delivery",
    [
        _workflow_run_delivery(1001, action="completed"),
        _workflow_run_delivery(1001, name="Release"),
    ],
)
def test_workflow_run_webhook_ignores_other_deliveries(
    client: TestClient, delivery: dict[str, object]
) -> None:
    resp = client.post(
        "/api/v1/webhooks/github", json=delivery, headers={"X-GitHub-Event": "workflow_run"}
    )

    assert resp.json()["triggered"] is False
    assert client.get("/api/v1/runs").json() == []


def test_invalid_event_is_rejected_even_when_filtered_out(client: TestClient) -> None:
    resp = client.post("/api/v1/events", json={"kind": "push", "branch": "feature", "run_id": ""})
    assert resp.status_code == 422
