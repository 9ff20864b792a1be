"""Argo Server REST client acting as the workflow store."""

from __future__ import annotations

import logging
from typing import Any

import requests

from await_operator.operator.errors import WorkflowNotFoundError, WorkflowStoreError
from await_operator.operator.interfaces import WorkflowNode, WorkflowState

logger = logging.getLogger(__name__)


def workflow_state_from_json(data: dict[str, Any]) -> WorkflowState:
    """Extract the state the reconciler needs from an Argo ``Workflow`` document."""

    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    spec = data.get("spec") if isinstance(data.get("spec"), dict) else {}
    status = data.get("status") if isinstance(data.get("status"), dict) else {}

    nodes_raw = status.get("nodes")
    nodes: list[WorkflowNode] = []
    if isinstance(nodes_raw, dict):
        for node_id, node in nodes_raw.items():
            if not isinstance(node, dict):
                continue
            nodes.append(
                WorkflowNode(
                    name=str(node.get("displayName") or node.get("name") or node_id),
                    type=str(node.get("type", "")),
                    phase=str(node.get("phase", "")),
                )
            )

    return WorkflowState(
        name=str(metadata.get("name", "")),
        namespace=str(metadata.get("namespace", "")),
        phase=str(status.get("phase", "")),
        suspend=spec.get("suspend") is True,
        nodes=nodes,
    )


class ArgoWorkflowClient:
    """Fetch and resume workflows through the Argo Server API."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        verify: bool | str = True,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})
        self._session.headers.update(
            {"Accept": "application/json", "User-Agent": "await-operator"}
        )
        self._session.verify = verify

    def _workflow_url(self, *, name: str, namespace: str, suffix: str = "") -> str:
        if not name or not namespace:
            raise ValueError("workflow name and namespace are required")
        if suffix and not suffix.startswith("/"):
            suffix = "/" + suffix
        return f"{self._base_url}/api/v1/workflows/{namespace}/{name}{suffix}"

    def _check(self, resp: requests.Response, *, name: str, namespace: str) -> None:
        if resp.status_code == 404:
            raise WorkflowNotFoundError(name, namespace)
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise WorkflowStoreError(f"Argo Server rejected the request: {e}") from e

    def get(self, name: str, namespace: str) -> WorkflowState:
        url = self._workflow_url(name=name, namespace=namespace)
        try:
            resp = self._session.get(url, timeout=30)
        except requests.RequestException as e:
            raise WorkflowStoreError(f"Unable to reach Argo Server: {e}") from e
        self._check(resp, name=name, namespace=namespace)

        try:
            data = resp.json()
        except ValueError as e:
            raise WorkflowStoreError(f"Malformed workflow document for {namespace}/{name}") from e
        if not isinstance(data, dict):
            raise WorkflowStoreError(f"Malformed workflow document for {namespace}/{name}")
        return workflow_state_from_json(data)

    def resume(self, name: str, namespace: str) -> None:
        url = self._workflow_url(name=name, namespace=namespace, suffix="resume")
        try:
            resp = self._session.put(
                url, json={"name": name, "namespace": namespace}, timeout=30
            )
        except requests.RequestException as e:
            raise WorkflowStoreError(f"Unable to reach Argo Server: {e}") from e
        self._check(resp, name=name, namespace=namespace)
        logger.info(
            "Workflow resume accepted",
            extra={"workflow": name, "workflow_namespace": namespace},
        )

    def close(self) -> None:
        self._session.close()
