"""Reactions: side effects that re-run when the cells they read change.

This is how a presentation layer re-renders: wrap the render in autorun()
and it runs again whenever a State it read receives a new value.
"""

from __future__ import annotations

from typing import Callable

from lifeflow._tracking import current_observer


class Reaction:
    """A side effect re-run eagerly when its dependencies change."""

    __slots__ = ("_fn", "_dependencies", "_disposed")

    def __init__(self, fn: Callable[[], None]) -> None:
        self._fn = fn
        self._dependencies: set = set()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _run(self) -> None:
        """Re-run fn, tracking a fresh set of dependencies."""
        if self._disposed:
            return

        self._untrack()

        token = current_observer.set(self)
        try:
            self._fn()
        finally:
            current_observer.reset(token)

    def _untrack(self) -> None:
        for dep in self._dependencies:
            dep._remove_observer(self)
        self._dependencies.clear()

    def dispose(self) -> None:
        """Stop this reaction and drop its dependencies."""
        self._disposed = True
        self._untrack()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Reaction({getattr(self._fn, '__name__', self._fn)!r}, {state})"


def autorun(fn: Callable[[], None]) -> Reaction:
    """Run fn now, then again whenever any State it read changes.

    Usage:
        count = mutable_state_of(0)
        log = []

        r = autorun(lambda: log.append(count.value))
        # log == [0]

        count.value = 1
        # log == [0, 1]

        r.dispose()
        count.value = 2
        # log == [0, 1]
    """
    r = Reaction(fn)
    r._run()
    return r
