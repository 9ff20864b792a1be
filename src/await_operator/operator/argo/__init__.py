from await_operator.operator.argo.client import ArgoWorkflowClient

__all__ = ["ArgoWorkflowClient"]
