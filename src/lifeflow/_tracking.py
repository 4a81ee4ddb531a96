"""Read tracking and write batching for state cells.

A reaction sets itself as the current observer while it runs. Every
State.value read during that run registers the cell as one of its
dependencies, so the reaction re-runs when any of them change.

Writes made while a batch is open (see state.transaction) only queue the
reactions they invalidate. Queued reactions run once each, in the order
they were first invalidated, when the outermost batch on that thread
closes.
"""

from __future__ import annotations

import contextvars
import threading
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from lifeflow.reaction import Reaction

# The reaction currently running, if any.
current_observer: contextvars.ContextVar[Reaction | None] = contextvars.ContextVar(
    "current_observer", default=None
)


class _BatchState(threading.local):
    def __init__(self) -> None:
        self.depth = 0
        # dict as an insertion-ordered set
        self.queued: dict[Reaction, None] = {}


_batch = _BatchState()


def track(cell) -> None:
    """Register cell as a dependency of the running reaction, if any."""
    observer = current_observer.get()
    if observer is not None:
        cell._observers.add(observer)
        observer._dependencies.add(cell)


def invalidate(observers: Iterable[Reaction]) -> None:
    """Re-run the observers of a changed cell, or queue them in a batch."""
    if _batch.depth:
        for observer in observers:
            _batch.queued.setdefault(observer, None)
        return
    for observer in observers:
        observer._run()


def open_batch() -> None:
    _batch.depth += 1


def close_batch() -> None:
    _batch.depth -= 1
    if _batch.depth:
        return
    while _batch.queued:
        ready = list(_batch.queued)
        _batch.queued.clear()
        for observer in ready:
            observer._run()


def get_pending_count() -> int:
    """Number of reactions waiting for this thread's open batch to close."""
    return len(_batch.queued)
