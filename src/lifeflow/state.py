"""State cells: the latest-value containers a presentation layer reads.

A State holds exactly one value. Reading State.value inside a reaction
registers the dependency; writing a different value through a
MutableState re-runs every reaction that read it.

Thread safety: call set_scheduler() once from the UI thread. After that,
writes from any other thread are handed to the scheduler instead of
running inline. UI-thread writes stay synchronous.

Batching: writes inside `with transaction()` (or an @action function)
re-run each dependent reaction once, when the outermost batch exits.
"""

from __future__ import annotations

import threading
from contextlib import ContextDecorator
from typing import Callable, Generic, TypeVar

from lifeflow._tracking import close_batch, invalidate, open_batch, track

T = TypeVar("T")
F = TypeVar("F", bound=Callable)

_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler) -> None:
    """Install the scheduler used for cross-thread cell writes.

    Call once from the UI thread:
        lifeflow.set_scheduler(app.call_from_thread)
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread()


class State(Generic[T]):
    """A read-only view of a single value."""

    __slots__ = ("_value", "_observers")

    def __init__(self, value: T) -> None:
        self._value = value
        self._observers: set = set()

    @property
    def value(self) -> T:
        track(self)
        return self._value

    def _write(self, value: T) -> None:
        if _scheduler is not None and threading.current_thread() != _scheduler_thread:
            _scheduler(lambda v=value: self._write_direct(v))
        else:
            self._write_direct(value)

    def _write_direct(self, value: T) -> None:
        old = self._value
        if old is not value and old != value:
            self._value = value
            invalidate(list(self._observers))

    def _remove_observer(self, observer) -> None:
        self._observers.discard(observer)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"


class MutableState(State[T]):
    """A State whose value can be assigned."""

    __slots__ = ()

    @State.value.setter
    def value(self, value: T) -> None:
        self._write(value)


def mutable_state_of(value: T) -> MutableState[T]:
    return MutableState(value)


class transaction(ContextDecorator):
    """Batch cell writes so dependent reactions run once, at the end.

    Usable as a context manager or as a decorator:

        with transaction():
            first.value = "Ada"
            last.value = "Lovelace"
        # reactions reading both ran once, here

    Batches nest; only the outermost one runs the queued reactions.
    """

    def __enter__(self) -> transaction:
        open_batch()
        return self

    def __exit__(self, *exc_info) -> None:
        close_batch()


def action(fn: F) -> F:
    """Decorator form of transaction(): fn's writes land as one batch."""
    return transaction()(fn)
