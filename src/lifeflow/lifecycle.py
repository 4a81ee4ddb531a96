"""Lifecycles: the activity-state signal that gates collection.

A Lifecycle moves through ordered states:

    DESTROYED < INITIALIZED < CREATED < STARTED < RESUMED

Moves happen one step at a time, so an observer registered while
CREATED sees STARTED before RESUMED when the owner jumps to RESUMED.
Once DESTROYED, a lifecycle never moves again.

repeat_on_lifecycle() runs a block each time the lifecycle reaches a
threshold state and cancels it each time the lifecycle falls below.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from typing import Callable

from lifeflow.context import Disposer
from lifeflow.errors import LifecycleError
from lifeflow.scope import Job, Scope

logger = logging.getLogger("lifeflow.lifecycle")

LifecycleObserver = Callable[["LifecycleState"], None]


class LifecycleState(enum.IntEnum):
    DESTROYED = 0
    INITIALIZED = 1
    CREATED = 2
    STARTED = 3
    RESUMED = 4

    def is_at_least(self, state: LifecycleState) -> bool:
        return self >= state


class LifecycleEvent(enum.Enum):
    ON_CREATE = "on_create"
    ON_START = "on_start"
    ON_RESUME = "on_resume"
    ON_PAUSE = "on_pause"
    ON_STOP = "on_stop"
    ON_DESTROY = "on_destroy"

    @property
    def target_state(self) -> LifecycleState:
        """The state a lifecycle is in right after this event."""
        return _TARGETS[self]

    @staticmethod
    def up_to(state: LifecycleState) -> LifecycleEvent | None:
        """The event that moves a lifecycle up into state."""
        return _UP_TO.get(state)

    @staticmethod
    def down_from(state: LifecycleState) -> LifecycleEvent | None:
        """The event that moves a lifecycle down out of state."""
        return _DOWN_FROM.get(state)


_TARGETS = {
    LifecycleEvent.ON_CREATE: LifecycleState.CREATED,
    LifecycleEvent.ON_START: LifecycleState.STARTED,
    LifecycleEvent.ON_RESUME: LifecycleState.RESUMED,
    LifecycleEvent.ON_PAUSE: LifecycleState.STARTED,
    LifecycleEvent.ON_STOP: LifecycleState.CREATED,
    LifecycleEvent.ON_DESTROY: LifecycleState.DESTROYED,
}
_UP_TO = {
    LifecycleState.CREATED: LifecycleEvent.ON_CREATE,
    LifecycleState.STARTED: LifecycleEvent.ON_START,
    LifecycleState.RESUMED: LifecycleEvent.ON_RESUME,
}
_DOWN_FROM = {
    LifecycleState.CREATED: LifecycleEvent.ON_DESTROY,
    LifecycleState.STARTED: LifecycleEvent.ON_STOP,
    LifecycleState.RESUMED: LifecycleEvent.ON_PAUSE,
}


class Lifecycle:
    """Holds the current state and notifies observers of every step."""

    def __init__(self, state: LifecycleState = LifecycleState.INITIALIZED) -> None:
        self._state = state
        self._observers: list[LifecycleObserver] = []

    @property
    def current_state(self) -> LifecycleState:
        return self._state

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def add_observer(self, observer: LifecycleObserver) -> Disposer:
        """Register observer and call it with the current state.

        Returns a disposer equivalent to remove_observer(observer).
        """
        if observer in self._observers:
            raise LifecycleError(f"{observer!r} is already observing this lifecycle")
        self._observers.append(observer)
        observer(self._state)
        return lambda: self.remove_observer(observer)

    def remove_observer(self, observer: LifecycleObserver) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def handle_lifecycle_event(self, event: LifecycleEvent) -> None:
        self.move_to(event.target_state)

    def move_to(self, state: LifecycleState) -> None:
        """Step toward state, notifying observers of each state on the way."""
        if self._state is state:
            return
        if self._state is LifecycleState.DESTROYED:
            raise LifecycleError(f"Cannot move a destroyed lifecycle to {state.name}")
        if state is LifecycleState.INITIALIZED:
            raise LifecycleError("Cannot move back to INITIALIZED")
        while self._state is not state:
            if self._state < state:
                self._state = LifecycleState(self._state + 1)
            elif self._state is LifecycleState.CREATED:
                self._state = LifecycleState.DESTROYED
            else:
                # INITIALIZED steps straight to DESTROYED
                self._state = LifecycleState(self._state - 1)
            logger.debug("Lifecycle moved to %s", self._state.name)
            for observer in list(self._observers):
                observer(self._state)

    def __repr__(self) -> str:
        return f"Lifecycle({self._state.name})"


class LifecycleOwner:
    """Something with a lifecycle and a scope that ends with it.

    lifecycle_scope is cancelled when the lifecycle reaches DESTROYED.
    """

    def __init__(self, context: Mapping[str, object] | None = None, *, name: str | None = None) -> None:
        self.lifecycle = Lifecycle()
        self.lifecycle_scope = Scope(context, name=name or type(self).__name__)
        self.lifecycle.add_observer(self._on_state)

    def _on_state(self, state: LifecycleState) -> None:
        if state is LifecycleState.DESTROYED:
            self.lifecycle.remove_observer(self._on_state)
            self.lifecycle_scope.cancel()


def repeat_on_lifecycle(
    scope: Scope,
    lifecycle: Lifecycle,
    min_active_state: LifecycleState,
    block: Callable[[Job], None],
    context: Mapping[str, object] | None = None,
) -> Job:
    """Run block in a fresh child scope each time lifecycle reaches min_active_state.

    The child scope is cancelled when the lifecycle falls below
    min_active_state, and for good when it is destroyed or when the
    returned job (or scope) is cancelled.

    Usage:
        repeat_on_lifecycle(
            owner.lifecycle_scope, owner.lifecycle, LifecycleState.STARTED,
            lambda job: job.invoke_on_cancel(prices.subscribe(render)),
        )
    """
    if min_active_state is LifecycleState.INITIALIZED:
        raise ValueError("repeat_on_lifecycle cannot start work in the INITIALIZED state")
    if min_active_state is LifecycleState.DESTROYED:
        raise ValueError("repeat_on_lifecycle cannot start work in the DESTROYED state")

    def _observe(job: Job) -> None:
        if lifecycle.current_state is LifecycleState.DESTROYED:
            job.cancel()
            return
        episode: Scope | None = None

        def _end_episode() -> None:
            nonlocal episode
            if episode is not None:
                current, episode = episode, None
                current.cancel()

        def _on_state(state: LifecycleState) -> None:
            nonlocal episode
            if not job.is_active:
                return
            if state.is_at_least(min_active_state):
                if episode is None:
                    episode = scope.child(context)
                    episode.launch(block)
            else:
                _end_episode()
                if state is LifecycleState.DESTROYED:
                    job.cancel()

        job.invoke_on_cancel(lambda: lifecycle.remove_observer(_on_state))
        job.invoke_on_cancel(_end_episode)
        lifecycle.add_observer(_on_state)

    return scope.launch(_observe)
