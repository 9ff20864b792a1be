"""Unit tests for the Argo Server adapter (mocked session)."""

from __future__ import annotations

from typing import Any
from unittest.mock import Mock

import pytest
import requests

from await_operator.operator.argo.client import ArgoWorkflowClient, workflow_state_from_json
from await_operator.operator.errors import WorkflowNotFoundError, WorkflowStoreError


def _response(status: int = 200, payload: Any = None) -> Mock:
    resp = Mock(spec=requests.Response)
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


def _client() -> tuple[ArgoWorkflowClient, Mock]:
    session = Mock(spec=requests.Session)
    session.headers = {}
    return ArgoWorkflowClient(base_url="https://argo.example/", token="t0ken", session=session), session


def _workflow(*, phase: str = "Running", suspend: bool | None = None, node_phase: str = "Running") -> dict:
    spec: dict[str, Any] = {"entrypoint": "main"}
    if suspend is not None:
        spec["suspend"] = suspend
    return {
        "metadata": {"name": "wf", "namespace": "argo"},
        "spec": spec,
        "status": {
            "phase": phase,
            "nodes": {
                "wf": {"displayName": "wf", "type": "Steps", "phase": phase},
                "wf-123": {"displayName": "wait", "type": "Suspend", "phase": node_phase},
            },
        },
    }


def test_paused_at_suspend_node() -> None:
    state = workflow_state_from_json(_workflow())
    assert state.name == "wf"
    assert state.namespace == "argo"
    assert state.is_paused


def test_suspended_workflow_is_paused() -> None:
    assert workflow_state_from_json(_workflow(suspend=True, node_phase="Succeeded")).is_paused


@pytest.mark.parametrize(
    "document",
    [
        _workflow(node_phase="Succeeded"),
        _workflow(phase="Succeeded", node_phase="Succeeded"),
        {"metadata": {"name": "wf", "namespace": "argo"}},
    ],
)
def test_not_paused(document: dict) -> None:
    assert not workflow_state_from_json(document).is_paused


def test_get_fetches_workflow() -> None:
    client, session = _client()
    session.get.return_value = _response(payload=_workflow())

    state = client.get("wf", "argo")

    assert state.is_paused
    assert session.get.call_args.args[0] == "https://argo.example/api/v1/workflows/argo/wf"
    assert session.headers["Authorization"] == "Bearer t0ken"


def test_get_missing_workflow() -> None:
    client, session = _client()
    session.get.return_value = _response(status=404)

    with pytest.raises(WorkflowNotFoundError):
        client.get("wf", "argo")


def test_get_transport_failures() -> None:
    client, session = _client()
    session.get.return_value = _response(status=500)
    with pytest.raises(WorkflowStoreError):
        client.get("wf", "argo")

    session.get.side_effect = requests.ConnectionError("refused")
    with pytest.raises(WorkflowStoreError):
        client.get("wf", "argo")


def test_resume_puts_to_resume_endpoint() -> None:
    client, session = _client()
    session.put.return_value = _response(payload={})

    client.resume("wf", "argo")

    call = session.put.call_args
    assert call.args[0] == "https://argo.example/api/v1/workflows/argo/wf/resume"
    assert call.kwargs["json"] == {"name": "wf", "namespace": "argo"}


def test_resume_rejected() -> None:
    client, session = _client()
    session.put.return_value = _response(status=409)

    with pytest.raises(WorkflowStoreError):
        client.resume("wf", "argo")


def test_workflow_name_is_required() -> None:
    client, _ = _client()
    with pytest.raises(ValueError):
        client.get("", "argo")
