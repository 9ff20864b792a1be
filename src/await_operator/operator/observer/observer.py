from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from typing import TypeVar

from await_operator.operator.errors import (
    CallbackError,
    FilterError,
    StreamError,
    StreamOpenError,
)
from await_operator.operator.filters import evaluate
from await_operator.operator.interfaces import EventSource, EventStream, ResourceHandle, WatchEvent
from await_operator.operator.observer.state import ObserverState, transition

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observer:
    """Watch one resource type and fire a callback on the first matching event.

    Lifecycle: ``initialized -> watching -> fired | failed | cancelled``.

    Guarantees:
      - the callback runs at most once, and only after every filter matched
      - events are evaluated strictly in stream order; evaluation stops at the first match
      - the stream is closed on every exit path
      - a fired Observer ignores cancellation; a cancelled Observer never fires
    """

    def __init__(
        self,
        *,
        handle: ResourceHandle,
        namespace: str,
        filters: Sequence[str],
        events: EventSource,
    ) -> None:
        self.handle = handle
        self.namespace = namespace
        self.filters: tuple[str, ...] = tuple(filters)
        self.error: Exception | None = None

        self._events = events
        self._lock = threading.Lock()
        self._state = ObserverState.INITIALIZED
        self._stream: EventStream | None = None
        self._started = False

    @property
    def state(self) -> ObserverState:
        with self._lock:
            return self._state

    def _log_extra(self) -> dict[str, object]:
        return {
            "group": self.handle.group,
            "version": self.handle.version,
            "kind": self.handle.kind,
            "namespace": self.namespace,
        }

    def _move_unlocked(self, to: ObserverState) -> None:
        self._state = transition(current=self._state, to=to)

    def _fail(self, error: Exception) -> bool:
        """Record a fatal error; False when the Observer was cancelled meanwhile."""

        with self._lock:
            if self._state.is_terminal:
                return False
            self._move_unlocked(ObserverState.FAILED)
            self._stream = None
            self.error = error
            return True

    def cancel(self) -> bool:
        """Stop watching without firing.

        Returns:
            True if the Observer is now cancelled, False if it had already fired
            or failed.
        """

        with self._lock:
            if self._state is ObserverState.CANCELLED:
                return True
            if self._state.is_terminal:
                return False
            self._move_unlocked(ObserverState.CANCELLED)
            stream, self._stream = self._stream, None

        if stream is not None:
            stream.close()
        logger.info("Observer cancelled", extra=self._log_extra())
        return True

    def run(self, callback: Callable[[], T]) -> T | None:
        """Block until the Observer fires, fails or is cancelled.

        Returns:
            The callback's result when the Observer fired, otherwise None (the
            stream ended or the Observer was cancelled before a match).

        Raises:
            StreamOpenError: The event stream could not be opened.
            StreamError: The stream failed after it was opened.
            FilterError: The filters (or an event payload) cannot be evaluated.
            CallbackError: The callback raised after a match.
        """

        with self._lock:
            if self._started:
                raise RuntimeError("Observer.run may only be called once")
            self._started = True
            if self._state is not ObserverState.INITIALIZED:
                return None

        try:
            stream = self._events.open_stream(self.handle, self.namespace)
        except Exception as e:
            err = e if isinstance(e, StreamOpenError) else StreamOpenError(str(e))
            if not self._fail(err):
                return None
            logger.error(
                "Unable to open event stream", extra={**self._log_extra(), "error": str(err)}
            )
            if err is e:
                raise
            raise err from e

        with self._lock:
            opened = self._state is ObserverState.INITIALIZED
            if opened:
                self._stream = stream
                self._move_unlocked(ObserverState.WATCHING)

        try:
            if not opened:
                return None
            logger.info(
                "Watching for resources",
                extra={**self._log_extra(), "filters": list(self.filters)},
            )
            return self._watch(iter(stream), stream, callback)
        finally:
            with self._lock:
                self._stream = None
            stream.close()

    def _watch(
        self, events: Iterator[WatchEvent], stream: EventStream, callback: Callable[[], T]
    ) -> T | None:
        while True:
            try:
                event = next(events)
            except StopIteration:
                break
            except Exception as e:
                err = e if isinstance(e, StreamError) else StreamError(f"Event stream failed: {e}")
                if not self._fail(err):
                    # Closing the stream on cancel interrupts a pending read.
                    return None
                logger.error("Event stream failed", extra={**self._log_extra(), "error": str(err)})
                if err is e:
                    raise
                raise err from e

            if self.state is not ObserverState.WATCHING:
                return None

            logger.debug(
                "Event received",
                extra={"type": event.change_type.value, "object_kind": event.object_kind},
            )
            if event.object_kind != self.handle.kind:
                logger.debug(
                    "Discarding event of a different kind",
                    extra={"object_kind": event.object_kind, "kind": self.handle.kind},
                )
                continue

            try:
                passed = evaluate(event.payload, self.filters)
            except FilterError as e:
                if not self._fail(e):
                    return None
                logger.error(
                    "Unable to evaluate resource filters",
                    extra={**self._log_extra(), "error": str(e)},
                )
                raise

            if not passed:
                logger.info("Resource did not pass the filters", extra=self._log_extra())
                continue

            with self._lock:
                if self._state is not ObserverState.WATCHING:
                    return None
                self._move_unlocked(ObserverState.FIRED)
                self._stream = None
            stream.close()

            logger.info("Resource fulfilled the filters", extra=self._log_extra())
            try:
                return callback()
            except Exception as e:
                self.error = e
                raise CallbackError(f"Completion callback failed: {e}") from e

        with self._lock:
            if self._state is ObserverState.WATCHING:
                self._move_unlocked(ObserverState.CANCELLED)
        logger.info("Event stream closed without a match", extra=self._log_extra())
        return None
