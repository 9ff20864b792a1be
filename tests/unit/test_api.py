from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from await_operator.operator.controller import AwaitReconciler
from await_operator.operator.errors import DiscoveryError
from await_operator.operator.intents import AwaitStore
from await_operator.operator.resources import ResourceResolver
from await_operator.server.app import create_app

INTENT = {
    "name": "wait-for-cm",
    "namespace": "argo",
    "workflow": {"name": "wf", "namespace": "argo"},
    "resource": {"version": "v1", "kind": "ConfigMap"},
    "filters": ["metadata.name==target-cm"],
}


@pytest.fixture
def client(monkeypatch, tmp_path: Path, workflows, directory, events):
    monkeypatch.setenv("AWAIT_STATE_PATH", str(tmp_path / "await_state"))
    monkeypatch.setenv("AWAIT_RECONCILE_ON_CREATE", "true")

    def factory(store: AwaitStore) -> AwaitReconciler:
        return AwaitReconciler(
            intents=store,
            workflows=workflows,
            resolver=ResourceResolver(directory),
            events=events,
        )

    with TestClient(create_app(reconciler_factory=factory)) as c:
        yield c


def test_health(client) -> None:
    health = client.get("/api/v1/health").json()
    assert health["status"] == "ok"
    assert "version" in health


def test_create_reconciles_and_persists(client, tmp_path: Path, events, wait_until) -> None:
    resp = client.post("/api/v1/awaits", json=INTENT)

    assert resp.status_code == 201
    body = resp.json()
    assert body["name"] == "wait-for-cm"
    assert body["status"]["phase"] in {"initialized", "watching"}
    assert (tmp_path / "await_state" / "awaits.json").exists()

    wait_until(lambda: len(events.calls) == 1)
    observers = client.get("/api/v1/observers").json()
    assert [o["intent_id"] for o in observers] == ["argo/wait-for-cm"]

    again = client.post("/api/v1/awaits/argo/wait-for-cm/reconcile").json()
    assert again == {"intent_id": "argo/wait-for-cm", "outcome": "already_watching", "requeue": False}


def test_get_list_and_delete(client) -> None:
    client.post("/api/v1/awaits", json=INTENT)

    assert [i["name"] for i in client.get("/api/v1/awaits").json()] == ["wait-for-cm"]
    assert client.get("/api/v1/awaits/argo/wait-for-cm").json()["filters"] == INTENT["filters"]

    deleted = client.delete("/api/v1/awaits/argo/wait-for-cm").json()
    assert deleted == {"intent_id": "argo/wait-for-cm", "observer_cancelled": True}

    assert client.get("/api/v1/awaits/argo/wait-for-cm").status_code == 404
    assert client.delete("/api/v1/awaits/argo/wait-for-cm").status_code == 404


def test_reconcile_outcomes(client, workflows) -> None:
    workflows.add("wf", "argo", paused=False)
    client.post("/api/v1/awaits", json=INTENT)

    resp = client.post("/api/v1/awaits/argo/wait-for-cm/reconcile")
    assert resp.json()["outcome"] == "workflow_not_paused"

    missing = client.post("/api/v1/awaits/argo/missing/reconcile")
    assert missing.json()["outcome"] == "intent_not_found"


def test_transport_failures_ask_for_requeue(client, directory) -> None:
    directory.error = DiscoveryError("connection refused")

    created = client.post("/api/v1/awaits", json=INTENT)
    assert created.status_code == 201

    resp = client.post("/api/v1/awaits/argo/wait-for-cm/reconcile")
    assert resp.status_code == 503
    assert "connection refused" in resp.json()["detail"]


def test_invalid_intent_is_rejected(client) -> None:
    resp = client.post("/api/v1/awaits", json={"name": "x"})
    assert resp.status_code == 422


def test_reconcile_without_credentials(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AWAIT_STATE_PATH", str(tmp_path / "await_state"))
    monkeypatch.setenv("AWAIT_RECONCILE_ON_CREATE", "false")
    monkeypatch.delenv("KUBE_TOKEN", raising=False)
    monkeypatch.setenv("KUBE_TOKEN_FILE", str(tmp_path / "missing-token"))
    monkeypatch.chdir(tmp_path)

    with TestClient(create_app()) as client:
        assert client.post("/api/v1/awaits", json=INTENT).status_code == 201
        assert client.get("/api/v1/observers").json() == []
        assert client.post("/api/v1/awaits/argo/wait-for-cm/reconcile").status_code == 409
