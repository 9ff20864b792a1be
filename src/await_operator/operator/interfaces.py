"""Collaborators consumed by the operator core.

The observer and reconciler never talk to a cluster or a workflow engine
directly; they receive these handles through their constructors. Concrete
HTTP adapters live in :mod:`await_operator.operator.kube.client` and
:mod:`await_operator.operator.argo.client`.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class APIResource:
    """A resource kind as reported by the resource directory."""

    name: str
    kind: str
    group: str = ""
    version: str = ""
    namespaced: bool = True


@dataclass(frozen=True, slots=True)
class ResourceHandle:
    """A concrete, watchable resource type."""

    group: str
    version: str
    resource: str
    kind: str
    namespaced: bool = True

    @property
    def group_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.resource}.{self.group_version}"


class ChangeType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    change_type: ChangeType
    object_kind: str
    payload: dict[str, Any]


class EventStream(Protocol):
    """A live, single-consumer stream of watch events."""

    def __iter__(self) -> Iterator[WatchEvent]: ...

    def close(self) -> None: ...


class ResourceDirectory(Protocol):
    def list_resource_kinds(self, group: str, version: str) -> list[APIResource]: ...


class EventSource(Protocol):
    def open_stream(self, handle: ResourceHandle, namespace: str) -> EventStream: ...


@dataclass(frozen=True, slots=True)
class WorkflowNode:
    name: str
    type: str
    phase: str


@dataclass(frozen=True, slots=True)
class WorkflowState:
    """The slice of a workflow's state the reconciler cares about."""

    name: str
    namespace: str
    phase: str
    suspend: bool = False
    nodes: list[WorkflowNode] = field(default_factory=list)

    @property
    def is_paused(self) -> bool:
        """Paused when ``spec.suspend`` is set or a suspend step is still running."""

        if self.suspend:
            return True
        if self.phase != "Running":
            return False
        return any(node.type == "Suspend" and node.phase == "Running" for node in self.nodes)


class WorkflowStore(Protocol):
    def get(self, name: str, namespace: str) -> WorkflowState: ...

    def resume(self, name: str, namespace: str) -> None: ...
