"""One-shot watch + filter + dispatch units.

An Observer owns exactly one event stream subscription and fires its callback
at most once, on the first event that passes every filter.
"""

from await_operator.operator.observer.observer import Observer
from await_operator.operator.observer.state import ObserverState

__all__ = ["Observer", "ObserverState"]
