"""Owning scopes: the lifetime boundary every subscription lives inside.

A Scope launches jobs. A job is a piece of long-lived work (usually a
subscription) that registers its teardown with invoke_on_cancel().
Cancelling the scope cancels every job and child scope it ever started,
exactly once, so nothing outlives its owner.

Failures: work that raises, or calls job.fail(exc), cancels that job
only. The exception then goes to the context's error_handler, or is
logged and re-raised when no handler is configured.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Callable

from lifeflow.context import Context, Disposer, merge_contexts
from lifeflow.errors import ScopeCancelledError

logger = logging.getLogger("lifeflow.scope")


class Job:
    """Handle for work launched in a scope."""

    __slots__ = ("_scope", "_context", "_active", "_disposers", "_block")

    def __init__(self, scope: Scope, context: Context, block: Callable[[Job], None]) -> None:
        self._scope = scope
        self._context = context
        self._active = True
        self._disposers: list[Disposer] = []
        self._block: Callable[[Job], None] | None = block

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def context(self) -> Context:
        return self._context

    def invoke_on_cancel(self, disposer: Disposer) -> None:
        """Run disposer when the job is cancelled, or now if it already is."""
        if self._active:
            self._disposers.append(disposer)
        else:
            disposer()

    def dispatch(self, fn: Callable[[], None]) -> None:
        """Run fn on this job's dispatcher, unless the job ends first."""

        def _guarded() -> None:
            if self._active:
                fn()

        self._context.dispatcher.dispatch(_guarded)

    def start(self) -> None:
        """Dispatch the block. Only the first call on an active job does anything."""
        block, self._block = self._block, None
        if block is None or not self._active:
            return

        def _run() -> None:
            if not self._active:
                return
            try:
                block(self)
            except Exception as exc:
                self.fail(exc)

        self._context.dispatcher.dispatch(_run)

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._block = None
        self._scope._forget(self)
        disposers = self._disposers[::-1]
        self._disposers.clear()
        for disposer in disposers:
            disposer()

    def fail(self, exc: BaseException) -> None:
        """Cancel this job and report exc through the scope's failure channel."""
        self.cancel()
        handler = self._context.error_handler
        if handler is not None:
            handler(exc)
            return
        logger.error(
            "Unhandled failure in %s", self._context.name or "job", exc_info=exc
        )
        raise exc

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"Job({self._context.name!r}, {state})"


class Scope:
    """Lifetime boundary owning jobs, child scopes and teardown callbacks."""

    def __init__(
        self,
        context: Mapping[str, object] | None = None,
        *,
        name: str | None = None,
        parent: Scope | None = None,
    ) -> None:
        self._context = merge_contexts(
            parent.context if parent is not None else None,
            context,
            {"name": name} if name else None,
        )
        self._parent = parent
        self._active = True
        self._jobs: list[Job] = []
        self._children: list[Scope] = []
        self._disposers: list[Disposer] = []

    @property
    def context(self) -> Context:
        return self._context

    @property
    def is_active(self) -> bool:
        return self._active

    def _ensure_active(self) -> None:
        if not self._active:
            raise ScopeCancelledError(f"{self!r} has been cancelled")

    def launch(
        self,
        block: Callable[[Job], None],
        context: Mapping[str, object] | None = None,
        *,
        start: bool = True,
    ) -> Job:
        """Start block(job) on the merged context's dispatcher.

        Returns the job at once; with a marshaling dispatcher the block
        may run later, and not at all if the job is cancelled first.
        With start=False nothing runs until job.start(), so the caller
        can keep the handle before the block sees it.
        """
        self._ensure_active()
        job = Job(self, merge_contexts(self._context, context), block)
        self._jobs.append(job)
        if start:
            job.start()
        return job

    def child(
        self,
        context: Mapping[str, object] | None = None,
        *,
        name: str | None = None,
    ) -> Scope:
        """A scope cancelled together with this one."""
        self._ensure_active()
        child = Scope(context, name=name, parent=self)
        self._children.append(child)
        return child

    def invoke_on_cancel(self, disposer: Disposer) -> None:
        if self._active:
            self._disposers.append(disposer)
        else:
            disposer()

    def cancel(self) -> None:
        """Cancel every job and child scope, then run teardown callbacks."""
        if not self._active:
            return
        self._active = False
        logger.debug(
            "Cancelling %s: %d jobs, %d child scopes",
            self._context.name or "scope", len(self._jobs), len(self._children),
        )
        for job in list(self._jobs):
            job.cancel()
        for child in list(self._children):
            child.cancel()
        disposers = self._disposers[::-1]
        self._disposers.clear()
        for disposer in disposers:
            disposer()
        if self._parent is not None:
            self._parent._forget_child(self)

    def _forget(self, job: Job) -> None:
        try:
            self._jobs.remove(job)
        except ValueError:
            pass

    def _forget_child(self, child: Scope) -> None:
        try:
            self._children.remove(child)
        except ValueError:
            pass

    @property
    def job_count(self) -> int:
        return len(self._jobs)

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"Scope({self._context.name!r}, {state})"
