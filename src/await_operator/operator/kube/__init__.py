from await_operator.operator.kube.client import KubeClient, WatchStream

__all__ = ["KubeClient", "WatchStream"]
