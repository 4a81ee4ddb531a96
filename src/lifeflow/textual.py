"""Textual integration for lifeflow. Opt-in, requires textual.

Screens drive a LifecycleOwner from the messages Textual already sends
them, so collect_as_state_with_lifecycle() pauses collection while a
screen is covered by another one and stops it when the screen goes away.

    mount          -> STARTED
    screen resume  -> RESUMED
    screen suspend -> CREATED
    unmount        -> DESTROYED
"""

from textual.screen import Screen

from lifeflow.context import SchedulerDispatcher
from lifeflow.lifecycle import LifecycleOwner, LifecycleState


class LifecycleMixin:
    """Gives a Textual message pump a lifecycle owner.

    Textual calls the handlers of every class in the MRO, so subclasses
    may define their own on_mount/on_unmount alongside these.
    """

    _lifecycle_owner = None

    @property
    def lifecycle_owner(self) -> LifecycleOwner:
        if self._lifecycle_owner is None:
            self._lifecycle_owner = LifecycleOwner(name=type(self).__name__)
            self._lifecycle_owner.lifecycle.move_to(LifecycleState.CREATED)
        return self._lifecycle_owner

    def _move_lifecycle(self, state: LifecycleState) -> None:
        lifecycle = self.lifecycle_owner.lifecycle
        if lifecycle.current_state is not LifecycleState.DESTROYED:
            lifecycle.move_to(state)

    def on_mount(self) -> None:
        self._move_lifecycle(LifecycleState.STARTED)

    def on_screen_resume(self) -> None:
        self._move_lifecycle(LifecycleState.RESUMED)

    def on_screen_suspend(self) -> None:
        self._move_lifecycle(LifecycleState.CREATED)

    def on_unmount(self) -> None:
        self._move_lifecycle(LifecycleState.DESTROYED)


class LifecycleScreen(LifecycleMixin, Screen):
    """A Screen with a lifecycle_owner."""


class TextualDispatcher(SchedulerDispatcher):
    """Runs callbacks on the app thread.

    Create it on the app thread. Calls from that thread run inline; calls
    from any other thread go through app.call_from_thread.
    """

    def __init__(self, app) -> None:
        super().__init__(app.call_from_thread)
        self.app = app

    def __repr__(self) -> str:
        return f"TextualDispatcher({type(self.app).__name__})"
