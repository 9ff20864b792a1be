"""Test configuration and fixtures.

The fakes below stand in for the cluster and the workflow engine. Streams are
scripted: they yield their events in order and then either end, raise, or block
until closed (like a live watch with no further traffic).
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Iterator
from typing import Any

import pytest

from await_operator.operator.errors import WorkflowNotFoundError
from await_operator.operator.interfaces import (
    APIResource,
    ChangeType,
    ResourceHandle,
    WatchEvent,
    WorkflowNode,
    WorkflowState,
)


class FakeStream:
    def __init__(
        self,
        events: Iterable[WatchEvent] = (),
        *,
        block: bool = False,
        error: Exception | None = None,
    ) -> None:
        self._events = list(events)
        self._block = block
        self._error = error
        self.closed = threading.Event()
        self.delivered = 0

    def __iter__(self) -> Iterator[WatchEvent]:
        for event in self._events:
            if self.closed.is_set():
                return
            self.delivered += 1
            yield event
        if self._error is not None:
            raise self._error
        if self._block:
            self.closed.wait()

    def close(self) -> None:
        self.closed.set()


class FakeEventSource:
    def __init__(self) -> None:
        self.streams: list[FakeStream] = []
        self.calls: list[tuple[ResourceHandle, str]] = []
        self.open_error: Exception | None = None

    def open_stream(self, handle: ResourceHandle, namespace: str) -> FakeStream:
        self.calls.append((handle, namespace))
        if self.open_error is not None:
            raise self.open_error
        if self.streams:
            return self.streams.pop(0)
        return FakeStream(block=True)


class FakeWorkflowStore:
    def __init__(self) -> None:
        self.workflows: dict[tuple[str, str], WorkflowState] = {}
        self.resumed: list[tuple[str, str]] = []
        self.resume_error: Exception | None = None

    def add(self, name: str, namespace: str, *, paused: bool = True) -> None:
        self.workflows[(name, namespace)] = WorkflowState(
            name=name,
            namespace=namespace,
            phase="Running",
            nodes=[WorkflowNode(name="wait", type="Suspend", phase="Running" if paused else "Succeeded")],
        )

    def get(self, name: str, namespace: str) -> WorkflowState:
        found = self.workflows.get((name, namespace))
        if found is None:
            raise WorkflowNotFoundError(name, namespace)
        return found

    def resume(self, name: str, namespace: str) -> None:
        if self.resume_error is not None:
            raise self.resume_error
        self.resumed.append((name, namespace))


class FakeDirectory:
    def __init__(self, entries: list[APIResource]) -> None:
        self.entries = entries
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    def list_resource_kinds(self, group: str, version: str) -> list[APIResource]:
        self.calls.append((group, version))
        if self.error is not None:
            raise self.error
        return [e for e in self.entries if e.group == group and (not version or e.version == version)]


def make_event(
    kind: str,
    name: str,
    change_type: ChangeType = ChangeType.ADDED,
    **fields: Any,
) -> WatchEvent:
    payload: dict[str, Any] = {"kind": kind, "metadata": {"name": name}, **fields}
    return WatchEvent(change_type=change_type, object_kind=kind, payload=payload)


@pytest.fixture
def configmap_handle() -> ResourceHandle:
    return ResourceHandle(group="", version="v1", resource="configmaps", kind="ConfigMap")


@pytest.fixture
def event_factory() -> Callable[..., WatchEvent]:
    return make_event


@pytest.fixture
def stream_factory() -> type[FakeStream]:
    return FakeStream


@pytest.fixture
def events() -> FakeEventSource:
    return FakeEventSource()


@pytest.fixture
def workflows() -> FakeWorkflowStore:
    store = FakeWorkflowStore()
    store.add("wf", "argo")
    return store


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory(
        [
            APIResource(name="configmaps", kind="ConfigMap", group="", version="v1"),
            APIResource(name="pods", kind="Pod", group="", version="v1"),
            APIResource(name="namespaces", kind="Namespace", group="", version="v1", namespaced=False),
            APIResource(name="workflows", kind="Workflow", group="argoproj.io", version="v1alpha1"),
        ]
    )


@pytest.fixture
def wait_until() -> Callable[..., None]:
    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not met before timeout")
            time.sleep(0.01)

    return _wait
