"""Error taxonomy for the await operator.

The reconciler relies on these types to decide what happens to a cycle:

- ``NotFoundError`` subclasses end the cycle quietly (logged, never requeued)
- ``DiscoveryError`` / ``WorkflowStoreError`` propagate to the caller, which owns retry policy
- ``FilterError`` and ``StreamError`` are fatal to a single Observer only
"""

from __future__ import annotations


class AwaitOperatorError(Exception):
    """Base class for every error raised by this package."""


class NotFoundError(AwaitOperatorError):
    pass


class IntentNotFoundError(NotFoundError):
    def __init__(self, intent_id: str) -> None:
        super().__init__(f"Await intent not found: {intent_id}")
        self.intent_id = intent_id


class WorkflowNotFoundError(NotFoundError):
    def __init__(self, name: str, namespace: str) -> None:
        super().__init__(f"Workflow not found: {namespace}/{name}")
        self.name = name
        self.namespace = namespace


class ResourceNotFoundError(NotFoundError):
    pass


class DiscoveryError(AwaitOperatorError):
    """The resource directory could not be reached or returned malformed data."""


class WorkflowStoreError(AwaitOperatorError):
    """The workflow store could not be reached or rejected a request."""


class FilterError(AwaitOperatorError):
    """A misconfigured intent: the filters (or the payload) cannot be evaluated.

    Never a plain non-match, and never a transient fault of the watch.
    """


class FilterSyntaxError(FilterError):
    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid filter {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


class PayloadError(FilterError):
    pass


class StreamError(AwaitOperatorError):
    """The event stream failed after it was opened."""


class StreamOpenError(StreamError):
    pass


class CallbackError(AwaitOperatorError):
    """The completion callback failed after a successful match."""


class IllegalTransitionError(ValueError):
    pass
