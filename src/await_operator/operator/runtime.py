"""Wire the HTTP adapters into a reconciler."""

from __future__ import annotations

from dataclasses import dataclass

from await_operator.operator.argo.client import ArgoWorkflowClient
from await_operator.operator.config import OperatorSettings
from await_operator.operator.controller import AwaitReconciler
from await_operator.operator.intents import AwaitStore
from await_operator.operator.kube.client import KubeClient
from await_operator.operator.resources import ResourceResolver


@dataclass
class OperatorRuntime:
    kube: KubeClient
    argo: ArgoWorkflowClient
    reconciler: AwaitReconciler

    def close(self) -> None:
        self.reconciler.shutdown()
        self.kube.close()
        self.argo.close()


def build_runtime(settings: OperatorSettings, intents: AwaitStore) -> OperatorRuntime:
    kube = KubeClient(
        base_url=settings.kube_api_url,
        token=settings.kube_token,
        verify=settings.kube_verify,
        watch_timeout_seconds=settings.kube_watch_timeout_seconds,
    )
    argo = ArgoWorkflowClient(
        base_url=settings.argo_server_url,
        token=settings.argo_bearer_token,
        verify=settings.argo_verify_tls,
    )
    reconciler = AwaitReconciler(
        intents=intents,
        workflows=argo,
        resolver=ResourceResolver(kube),
        events=kube,
    )
    return OperatorRuntime(kube=kube, argo=argo, reconciler=reconciler)
