"""Lifecycle-aware collection of a source into a State.

collect_as_state_with_lifecycle() is how a screen reads a source: the
returned State starts at the initial value, follows the source while
the owner's lifecycle is at least min_active_state, keeps its last value
while the owner is in the background, and stops for good when the owner
is destroyed.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Callable, TypeVar

from lifeflow.lifecycle import LifecycleOwner, LifecycleState, repeat_on_lifecycle
from lifeflow.scope import Job
from lifeflow.source import Source, StateSource
from lifeflow.state import State

T = TypeVar("T")

_UNSET = object()


class _CollectedState(State[T]):
    """A State that kicks off its collection the first time it is read."""

    __slots__ = ("_on_first_read",)

    def __init__(self, value: T) -> None:
        super().__init__(value)
        self._on_first_read: Callable[[], None] | None = None

    @property
    def value(self) -> T:
        start, self._on_first_read = self._on_first_read, None
        if start is not None:
            start()
        return State.value.fget(self)


def collect_as_state_with_lifecycle(
    source: Source[T],
    owner: LifecycleOwner,
    initial: T = _UNSET,
    *,
    min_active_state: LifecycleState = LifecycleState.STARTED,
    context: Mapping[str, object] | None = None,
) -> State[T]:
    """Collect source into a State while owner is at least min_active_state.

    Returns at once and never subscribes during the call, even when the
    owner is already active. Collection is armed the first time the
    returned State is read or the lifecycle next changes, whichever comes
    first. From then on the source is subscribed anew each time the
    lifecycle reaches min_active_state and disposed each time it falls
    below. Values are written through the context's dispatcher.

    When initial is omitted, source must be a StateSource and its current
    value is used.

    Usage:
        title = collect_as_state_with_lifecycle(view_model.title, screen.owner)
        autorun(lambda: header.update(title.value))
    """
    if initial is _UNSET:
        if not isinstance(source, StateSource):
            raise TypeError(
                "initial is required unless source is a StateSource, "
                f"got {type(source).__name__}"
            )
        initial = source.value

    cell: _CollectedState[T] = _CollectedState(initial)
    lifecycle = owner.lifecycle
    scope = owner.lifecycle_scope
    armed = False
    registering = True

    def _collect(job: Job) -> None:
        def _on_value(value: T) -> None:
            job.dispatch(lambda: cell._write(value))

        job.invoke_on_cancel(source.subscribe(_on_value, job.fail))

    def _arm() -> None:
        nonlocal armed
        if armed:
            return
        armed = True
        cell._on_first_read = None
        lifecycle.remove_observer(_on_change)
        if scope.is_active:
            repeat_on_lifecycle(scope, lifecycle, min_active_state, _collect, context)

    def _on_change(state: LifecycleState) -> None:
        # the state handed over at registration is not a change
        if not registering:
            _arm()

    lifecycle.add_observer(_on_change)
    registering = False
    cell._on_first_read = _arm
    scope.invoke_on_cancel(lambda: lifecycle.remove_observer(_on_change))
    return cell
