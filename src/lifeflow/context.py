"""Execution contexts and dispatchers.

A Context is an immutable bag of configuration handed to scopes and to
every construction call. Contexts combine with merge_contexts(), where
the rightmost context wins for a key present in more than one of them.

Known keys:
    dispatcher     Dispatcher that runs callbacks (default: IMMEDIATE)
    error_handler  callable(exc) receiving failures of launched work
    name           label used in log messages
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from typing import Callable

Disposer = Callable[[], None]


def _noop() -> None:
    pass


class Dispatcher:
    """Decides where a callback runs."""

    def dispatch(self, fn: Callable[[], None]) -> None:
        raise NotImplementedError

    def call_later(self, delay: float, fn: Callable[[], None]) -> Disposer:
        """Run fn after delay seconds. Returns a disposer that cancels it.

        Uses threading.Timer (daemon=True); the timer hands fn back to
        dispatch() so it runs where every other callback runs.
        """
        if delay <= 0:
            self.dispatch(fn)
            return _noop
        timer = threading.Timer(delay, self.dispatch, args=[fn])
        timer.daemon = True
        timer.start()
        return timer.cancel


class ImmediateDispatcher(Dispatcher):
    """Runs callbacks inline on the calling thread."""

    def dispatch(self, fn: Callable[[], None]) -> None:
        fn()

    def __repr__(self) -> str:
        return "ImmediateDispatcher()"


class SchedulerDispatcher(Dispatcher):
    """Runs inline on its home thread, marshals other threads via scheduler.

    The home thread is the one that creates the dispatcher:
        dispatcher = SchedulerDispatcher(app.call_from_thread)
    """

    def __init__(self, scheduler: Callable[[Callable[[], None]], object]) -> None:
        self._scheduler = scheduler
        self._home = threading.get_ident()

    def dispatch(self, fn: Callable[[], None]) -> None:
        if threading.get_ident() == self._home:
            fn()
        else:
            self._scheduler(fn)


IMMEDIATE = ImmediateDispatcher()


class Context(Mapping[str, object]):
    """Immutable configuration for scopes and the work they run."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[str, object] | None = None, **kwargs: object) -> None:
        merged = dict(entries) if entries else {}
        merged.update(kwargs)
        self._entries = merged

    def __getitem__(self, key: str) -> object:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def dispatcher(self) -> Dispatcher:
        return self._entries.get("dispatcher", IMMEDIATE)

    @property
    def error_handler(self) -> Callable[[BaseException], None] | None:
        return self._entries.get("error_handler")

    @property
    def name(self) -> str | None:
        return self._entries.get("name")

    def merge(self, other: Mapping[str, object] | None) -> Context:
        """Return a new context; entries of other win over ours."""
        return merge_contexts(self, other)

    def __repr__(self) -> str:
        return f"Context({self._entries!r})"


EMPTY_CONTEXT = Context()


def merge_contexts(*contexts: Mapping[str, object] | None) -> Context:
    """Merge contexts left to right. The rightmost value for a key wins.

    None entries are skipped, so optional per-call contexts can be passed
    straight through:
        merge_contexts(scope.context, context)
    """
    merged: dict[str, object] = {}
    for context in contexts:
        if context:
            merged.update(context)
    return Context(merged)
