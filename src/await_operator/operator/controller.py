"""Reconcile Await intents into running Observers.

Each call to :meth:`AwaitReconciler.reconcile` drives one intent to the point of
having exactly one live Observer (or none, when its preconditions do not hold)
and returns without waiting for the watch. Observers run on daemon threads and
resume the referenced workflow when they fire.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from await_operator.operator.errors import (
    AwaitOperatorError,
    CallbackError,
    IntentNotFoundError,
    ResourceNotFoundError,
    WorkflowNotFoundError,
)
from await_operator.operator.intents import AwaitIntent, AwaitStore, utc_iso_now
from await_operator.operator.interfaces import EventSource, WorkflowStore
from await_operator.operator.observer import Observer, ObserverState
from await_operator.operator.resources import ResourceResolver

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    STARTED = "started"
    ALREADY_WATCHING = "already_watching"
    ALREADY_FIRED = "already_fired"
    INTENT_NOT_FOUND = "intent_not_found"
    WORKFLOW_NOT_FOUND = "workflow_not_found"
    WORKFLOW_NOT_PAUSED = "workflow_not_paused"
    RESOURCE_NOT_FOUND = "resource_not_found"


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    requeue: bool = False


@dataclass(frozen=True, slots=True)
class ObserverInfo:
    intent_id: str
    state: ObserverState
    resource: str
    namespace: str
    started_at: str


@dataclass(slots=True)
class _Entry:
    observer: Observer
    thread: threading.Thread
    started_at: str


class ObserverRegistry:
    """Per-intent tracking of live Observers.

    The reconciler claims a slot before starting an Observer; the Observer's
    runner releases it once the Observer reaches a terminal state. Only the
    Observer that owns a slot may release it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._live: dict[str, _Entry] = {}
        self._finished: dict[str, ObserverInfo] = {}

    def blocking_outcome(self, key: str) -> ReconcileOutcome | None:
        """Why a new Observer must not be started for ``key``, if anything."""

        with self._lock:
            return self._blocking_outcome_unlocked(key)

    def _blocking_outcome_unlocked(self, key: str) -> ReconcileOutcome | None:
        if key in self._live:
            return ReconcileOutcome.ALREADY_WATCHING
        finished = self._finished.get(key)
        if finished is not None and finished.state is ObserverState.FIRED:
            return ReconcileOutcome.ALREADY_FIRED
        return None

    def claim(
        self, key: str, observer: Observer, thread: threading.Thread
    ) -> ReconcileOutcome | None:
        """Register ``observer`` as the live Observer for ``key``.

        Returns:
            None on success, otherwise the outcome that blocked the claim.
        """

        with self._lock:
            blocked = self._blocking_outcome_unlocked(key)
            if blocked is not None:
                return blocked
            self._live[key] = _Entry(observer=observer, thread=thread, started_at=utc_iso_now())
            self._finished.pop(key, None)
            return None

    def record(self, key: str, observer: Observer, action: Callable[[], object]) -> bool:
        """Run ``action`` under the lock while ``observer`` still owns ``key``.

        Status writes go through here so that an Observer that was forgotten
        never touches a newer intent reusing the same id.
        """

        with self._lock:
            entry = self._live.get(key)
            if entry is None or entry.observer is not observer:
                return False
            action()
            return True

    def release(self, key: str, observer: Observer) -> None:
        with self._lock:
            entry = self._live.get(key)
            if entry is None or entry.observer is not observer:
                return
            del self._live[key]
            self._finished[key] = _info(key, entry)

    def remove(self, key: str) -> Observer | None:
        """Forget ``key`` entirely, returning its live Observer (if any)."""

        with self._lock:
            self._finished.pop(key, None)
            entry = self._live.pop(key, None)
            return entry.observer if entry is not None else None

    def thread(self, key: str) -> threading.Thread | None:
        with self._lock:
            entry = self._live.get(key)
            return entry.thread if entry is not None else None

    def live_observers(self) -> list[Observer]:
        with self._lock:
            return [entry.observer for entry in self._live.values()]

    def snapshot(self) -> list[ObserverInfo]:
        with self._lock:
            live = [_info(key, entry) for key, entry in self._live.items()]
            return live + list(self._finished.values())


def _info(key: str, entry: _Entry) -> ObserverInfo:
    return ObserverInfo(
        intent_id=key,
        state=entry.observer.state,
        resource=str(entry.observer.handle),
        namespace=entry.observer.namespace,
        started_at=entry.started_at,
    )


class AwaitReconciler:
    """Map Await intents to Observers and bind their firing to workflow resumption."""

    def __init__(
        self,
        *,
        intents: AwaitStore,
        workflows: WorkflowStore,
        resolver: ResourceResolver,
        events: EventSource,
        registry: ObserverRegistry | None = None,
    ) -> None:
        self._intents = intents
        self._workflows = workflows
        self._resolver = resolver
        self._events = events
        self.registry = registry or ObserverRegistry()

    def reconcile(self, intent_id: str) -> ReconcileResult:
        """Bring one intent to the point of having at most one live Observer.

        Not-found conditions and an unpaused workflow end the cycle without a
        requeue. Directory and workflow store transport failures propagate so
        the caller can apply its own retry policy.

        Raises:
            DiscoveryError: The resource directory could not be consulted.
            WorkflowStoreError: The workflow store could not be reached.
        """

        extra: dict[str, object] = {"intent": intent_id}

        try:
            intent = self._intents.get(intent_id)
        except IntentNotFoundError:
            # Deleted after the reconcile request was queued.
            logger.info("Await intent not found", extra=extra)
            self.forget(intent_id)
            return ReconcileResult(ReconcileOutcome.INTENT_NOT_FOUND)

        blocked = self.registry.blocking_outcome(intent_id)
        if blocked is not None:
            logger.debug("Skipping intent", extra={**extra, "outcome": blocked.value})
            return ReconcileResult(blocked)

        wf = intent.workflow
        extra.update({"workflow": wf.name, "workflow_namespace": wf.namespace})
        try:
            workflow = self._workflows.get(wf.name, wf.namespace)
        except WorkflowNotFoundError as e:
            logger.error("The requested workflow was not found", extra={**extra, "error": str(e)})
            self._intents.update_status(intent_id, message=str(e))
            return ReconcileResult(ReconcileOutcome.WORKFLOW_NOT_FOUND)

        if not workflow.is_paused:
            logger.info("Workflow is not paused", extra={**extra, "phase": workflow.phase})
            return ReconcileResult(ReconcileOutcome.WORKFLOW_NOT_PAUSED)
        logger.debug("Found matching paused workflow", extra=extra)

        try:
            handle = self._resolver.resolve(intent.resource)
        except ResourceNotFoundError as e:
            logger.error("The requested resource was not found", extra={**extra, "error": str(e)})
            self._intents.update_status(intent_id, message=str(e))
            return ReconcileResult(ReconcileOutcome.RESOURCE_NOT_FOUND)

        observer = Observer(
            handle=handle,
            namespace=intent.namespace if handle.namespaced else "",
            filters=intent.filters,
            events=self._events,
        )
        thread = threading.Thread(
            target=self._run_observer,
            name=f"observer-{intent_id}",
            daemon=True,
            kwargs={"key": intent_id, "observer": observer, "intent": intent},
        )
        blocked = self.registry.claim(intent_id, observer, thread)
        if blocked is not None:
            return ReconcileResult(blocked)

        self._intents.update_status(
            intent_id,
            phase=ObserverState.INITIALIZED.value,
            started_at=utc_iso_now(),
            finished_at=None,
            message=None,
        )
        thread.start()
        logger.info("Observer started", extra={**extra, "resource": str(handle)})
        return ReconcileResult(ReconcileOutcome.STARTED)

    def _resume_callback(
        self, key: str, intent: AwaitIntent, observer: Observer
    ) -> Callable[[], None]:
        wf = intent.workflow

        def resume() -> None:
            extra = {"intent": key, "workflow": wf.name, "workflow_namespace": wf.namespace}
            logger.info("Resuming workflow", extra=extra)
            self._workflows.resume(wf.name, wf.namespace)
            finished_at = utc_iso_now()
            self.registry.record(
                key, observer, lambda: self._intents.update_status(key, finished_at=finished_at)
            )
            logger.info("Workflow resumed", extra=extra)

        return resume

    def _run_observer(self, *, key: str, observer: Observer, intent: AwaitIntent) -> None:
        message: str | None = None
        try:
            observer.run(self._resume_callback(key, intent, observer))
        except CallbackError as e:
            message = str(e)
            logger.error(
                "Failed to resume workflow after a match",
                extra={"intent": key, "workflow": intent.workflow.name, "error": message},
            )
        except AwaitOperatorError as e:
            message = str(e)
            logger.error("Observer failed", extra={"intent": key, "error": message})
        except Exception as e:
            message = str(e)
            logger.exception("Observer crashed", extra={"intent": key})
        finally:
            self.registry.record(
                key,
                observer,
                lambda: self._intents.update_status(
                    key, phase=observer.state.value, message=message
                ),
            )
            self.registry.release(key, observer)

    def forget(self, intent_id: str) -> bool:
        """Cancel and drop the Observer of a deleted intent."""

        observer = self.registry.remove(intent_id)
        if observer is None:
            return False
        return observer.cancel()

    def wait(self, intent_id: str, timeout: float | None = None) -> None:
        """Block until the live Observer for ``intent_id`` (if any) terminates."""

        thread = self.registry.thread(intent_id)
        if thread is not None:
            thread.join(timeout)

    def observers(self) -> list[ObserverInfo]:
        return self.registry.snapshot()

    def shutdown(self) -> None:
        for observer in self.registry.live_observers():
            observer.cancel()
