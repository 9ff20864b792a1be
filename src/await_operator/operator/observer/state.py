from __future__ import annotations

from enum import Enum

from await_operator.operator.errors import IllegalTransitionError


class ObserverState(str, Enum):
    INITIALIZED = "initialized"
    WATCHING = "watching"
    FIRED = "fired"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[ObserverState] = frozenset(
    {ObserverState.FIRED, ObserverState.FAILED, ObserverState.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[ObserverState, set[ObserverState]] = {
    ObserverState.INITIALIZED: {
        ObserverState.WATCHING,
        ObserverState.FAILED,
        ObserverState.CANCELLED,
    },
    ObserverState.WATCHING: {
        ObserverState.FIRED,
        ObserverState.FAILED,
        ObserverState.CANCELLED,
    },
    ObserverState.FIRED: set(),
    ObserverState.FAILED: set(),
    ObserverState.CANCELLED: set(),
}


def transition(*, current: ObserverState, to: ObserverState) -> ObserverState:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to
