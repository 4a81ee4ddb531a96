"""Shared sources: one upstream subscription fanned out to many subscribers.

share_in() and state_in() turn any source into a hot one that lives in
a scope. A SharingStarted strategy decides when the single upstream
subscription starts and stops:

    SharingStarted.EAGERLY       start now, run until the scope ends
    SharingStarted.LAZILY        start on the first subscriber, never stop
    SharingStarted.while_subscribed(stop_timeout, replay_expiration)
                                 start on the first subscriber, stop
                                 stop_timeout seconds after the last one
                                 leaves, forget the replayed value
                                 replay_expiration seconds after that

Delays run through the scope's dispatcher (Dispatcher.call_later). With
the default IMMEDIATE dispatcher they fire on a timer thread; each shared
source serializes its bookkeeping and deliveries behind its own lock.
A SchedulerDispatcher brings them back to the UI thread instead.
"""

from __future__ import annotations

import math
import threading
from collections import deque
from typing import Callable, TypeVar

from lifeflow.errors import ScopeCancelledError
from lifeflow.scope import Job, Scope
from lifeflow.source import (
    Disposer,
    OnError,
    OnValue,
    Source,
    StateSource,
    _Subscription,
    combine,
)

T = TypeVar("T")


class SharingStarted:
    """Strategy controlling the upstream subscription of a shared source."""

    EAGERLY: SharingStarted
    LAZILY: SharingStarted

    def on_created(self, shared: _Sharing) -> None:
        """Called once when the shared source is built."""

    def on_subscribers_changed(self, shared: _Sharing, count: int) -> None:
        """Called whenever a subscriber arrives or leaves."""

    @staticmethod
    def while_subscribed(
        stop_timeout: float = 0.0, replay_expiration: float = math.inf
    ) -> WhileSubscribed:
        return WhileSubscribed(stop_timeout, replay_expiration)


class _Eagerly(SharingStarted):
    def on_created(self, shared: _Sharing) -> None:
        shared._start()

    def __repr__(self) -> str:
        return "SharingStarted.EAGERLY"


class _Lazily(SharingStarted):
    def on_subscribers_changed(self, shared: _Sharing, count: int) -> None:
        if count > 0:
            shared._start()

    def __repr__(self) -> str:
        return "SharingStarted.LAZILY"


class WhileSubscribed(SharingStarted):
    """Collect only while someone is subscribed, with grace periods.

    stop_timeout: seconds to keep the upstream running after the last
        subscriber leaves. A subscriber arriving in that window cancels
        the stop.
    replay_expiration: seconds after the stop before the replayed value
        is reset. math.inf keeps the last value forever; 0 resets at once.
    """

    def __init__(self, stop_timeout: float = 0.0, replay_expiration: float = math.inf) -> None:
        if stop_timeout < 0:
            raise ValueError(f"stop_timeout must not be negative, was {stop_timeout}")
        if replay_expiration < 0:
            raise ValueError(f"replay_expiration must not be negative, was {replay_expiration}")
        self.stop_timeout = stop_timeout
        self.replay_expiration = replay_expiration

    def on_subscribers_changed(self, shared: _Sharing, count: int) -> None:
        if count > 0:
            shared._cancel_pending()
            shared._start()
        elif shared._is_running:
            shared._schedule(self.stop_timeout, lambda: self._stop(shared))

    def _stop(self, shared: _Sharing) -> None:
        shared._stop()
        if math.isinf(self.replay_expiration):
            return
        shared._schedule(self.replay_expiration, shared._reset)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, WhileSubscribed)
            and other.stop_timeout == self.stop_timeout
            and other.replay_expiration == self.replay_expiration
        )

    def __hash__(self) -> int:
        return hash((self.stop_timeout, self.replay_expiration))

    def __repr__(self) -> str:
        return (
            f"SharingStarted.while_subscribed(stop_timeout={self.stop_timeout}, "
            f"replay_expiration={self.replay_expiration})"
        )


SharingStarted.EAGERLY = _Eagerly()
SharingStarted.LAZILY = _Lazily()


class _Sharing:
    """Upstream control shared by SharedSource and SharedState.

    Subclasses provide _publish(value), _fail(exc) and _reset().
    """

    def _init_sharing(self, upstream: Source, scope: Scope, started: SharingStarted | None) -> None:
        self._lock = threading.RLock()
        self._upstream = upstream
        self._scope = scope
        self._started = started if started is not None else WhileSubscribed()
        self._job: Job | None = None
        self._pending: Disposer | None = None
        self._pending_token: object | None = None
        scope.invoke_on_cancel(self._teardown)
        self._started.on_created(self)

    @property
    def _is_running(self) -> bool:
        return self._job is not None and self._job.is_active

    def _ensure_scope(self) -> None:
        if not self._scope.is_active:
            raise ScopeCancelledError(f"Cannot subscribe: {self._scope!r} has been cancelled")

    def _subscribers_changed(self, count: int) -> None:
        with self._lock:
            if self._scope.is_active:
                self._started.on_subscribers_changed(self, count)

    def _start(self) -> None:
        with self._lock:
            if self._is_running or not self._scope.is_active:
                return
            # the job must be visible before a replaying upstream calls back
            job = self._scope.launch(self._collect, start=False)
            self._job = job
            job.start()

    def _stop(self) -> None:
        with self._lock:
            if self._job is not None:
                job, self._job = self._job, None
                job.cancel()

    def _collect(self, job: Job) -> None:
        def _publish(value) -> None:
            with self._lock:
                if job.is_active:
                    self._publish(value)

        def _on_value(value) -> None:
            job.dispatch(lambda: _publish(value))

        def _on_error(exc: BaseException) -> None:
            with self._lock:
                if not job.is_active:
                    return
                self._fail(exc)
            job.fail(exc)

        job.invoke_on_cancel(self._upstream.subscribe(_on_value, _on_error))

    def _schedule(self, delay: float, fn: Callable[[], None]) -> None:
        """Run fn after delay unless a newer schedule or cancel comes first."""
        with self._lock:
            self._cancel_pending()
            token = object()
            self._pending_token = token

            def _fire() -> None:
                with self._lock:
                    if self._pending_token is not token:
                        return
                    self._pending_token = None
                    self._pending = None
                    fn()

            cancel = self._scope.context.dispatcher.call_later(delay, _fire)
            if self._pending_token is token:
                self._pending = cancel

    def _cancel_pending(self) -> None:
        with self._lock:
            self._pending_token = None
            if self._pending is not None:
                pending, self._pending = self._pending, None
                pending()

    def _teardown(self) -> None:
        with self._lock:
            self._cancel_pending()
            self._stop()


class SharedSource(_Sharing, Source[T]):
    """A hot source replaying its last `replay` values to new subscribers."""

    def __init__(
        self,
        upstream: Source[T],
        scope: Scope,
        started: SharingStarted | None = None,
        replay: int = 0,
    ) -> None:
        if replay < 0:
            raise ValueError(f"replay must not be negative, was {replay}")
        self._replay_cache: deque = deque(maxlen=replay)
        self._subscribers: list[_Subscription] = []
        self._init_sharing(upstream, scope, started)

    @property
    def replay_cache(self) -> list[T]:
        return list(self._replay_cache)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, on_value: OnValue, on_error: OnError | None = None) -> Disposer:
        self._ensure_scope()
        sub = _Subscription(on_value, on_error)

        def _dispose() -> None:
            with self._lock:
                if not sub.active:
                    return
                sub.active = False
                self._subscribers.remove(sub)
                self._subscribers_changed(len(self._subscribers))

        with self._lock:
            self._subscribers.append(sub)
            for value in list(self._replay_cache):
                if sub.active:
                    on_value(value)
            if sub.active:
                self._subscribers_changed(len(self._subscribers))
        return _dispose

    def _publish(self, value: T) -> None:
        self._replay_cache.append(value)
        for sub in list(self._subscribers):
            if sub.active:
                sub.on_value(value)

    def _fail(self, exc: BaseException) -> bool:
        handled = False
        for sub in list(self._subscribers):
            if sub.active and sub.on_error is not None:
                sub.on_error(exc)
                handled = True
        return handled

    def _reset(self) -> None:
        self._replay_cache.clear()


class SharedState(_Sharing, StateSource[T]):
    """A hot replay-1 state kept up to date from an upstream source.

    On reset (see WhileSubscribed.replay_expiration) the value returns to
    the initial value given at construction.
    """

    def __init__(
        self,
        upstream: Source[T],
        scope: Scope,
        initial: T,
        started: SharingStarted | None = None,
    ) -> None:
        StateSource.__init__(self, initial)
        self._initial = initial
        self._init_sharing(upstream, scope, started)

    def subscribe(self, on_value: OnValue, on_error: OnError | None = None) -> Disposer:
        self._ensure_scope()
        with self._lock:
            dispose = StateSource.subscribe(self, on_value, on_error)

        def _dispose() -> None:
            with self._lock:
                dispose()

        return _dispose

    def _on_subscribers_changed(self) -> None:
        self._subscribers_changed(self.subscriber_count)

    def _publish(self, value: T) -> None:
        self._set_value(value)

    def _reset(self) -> None:
        with self._lock:
            self._set_value(self._initial)


def share_in(
    source: Source[T],
    scope: Scope,
    started: SharingStarted | None = None,
    replay: int = 0,
) -> SharedSource[T]:
    """Share one upstream subscription of source among many subscribers."""
    return SharedSource(source, scope, started, replay)


def state_in(
    source: Source[T],
    scope: Scope,
    initial: T,
    started: SharingStarted | None = None,
) -> SharedState[T]:
    """Hold the latest value of source as a hot state.

    Usage:
        results = state_in(search(query), scope, initial=[])
        results.value  # [] until the first result arrives
    """
    return SharedState(source, scope, initial, started)


def combine_states_in(
    *states: StateSource,
    scope: Scope,
    transform: Callable[..., T],
    started: SharingStarted | None = None,
) -> SharedState[T]:
    """A state combining the current values of several states.

    The initial value is computed right away from the inputs' current
    values, so the result never waits for a first emission.
    """
    if not states:
        raise ValueError("combine_states_in() needs at least one state")
    initial = transform(*(state.value for state in states))
    return SharedState(combine(*states, transform=transform), scope, initial, started)
