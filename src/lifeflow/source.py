"""Value sources: push-based producers with two replay behaviors.

Cold: ColdSource runs its producer once per subscriber, so every
subscriber gets a fresh computation.

Hot with replay 1: StateSource holds one current value, hands it to each
new subscriber immediately, then pushes every change. Equal values are
conflated.

Operators (map/filter/on_each, combine) return cold sources. Each
subscribe() returns a disposer; calling it stops further callbacks and
is safe to call more than once.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from lifeflow.state import State

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]
OnValue = Callable[[T], None]
OnError = Callable[[BaseException], None]

_UNSET = object()


class Source(Generic[T]):
    """Anything that can be subscribed to for values."""

    def subscribe(self, on_value: OnValue, on_error: OnError | None = None) -> Disposer:
        raise NotImplementedError

    def map(self, fn: Callable[[T], U]) -> ColdSource[U]:
        """Transform values through fn."""
        return ColdSource(
            lambda emitter: self.subscribe(lambda v: emitter.emit(fn(v)), emitter.error)
        )

    def filter(self, fn: Callable[[T], bool]) -> ColdSource[T]:
        """Only pass values where fn returns True."""
        return ColdSource(
            lambda emitter: self.subscribe(
                lambda v: emitter.emit(v) if fn(v) else None, emitter.error
            )
        )

    def on_each(self, fn: Callable[[T], None]) -> ColdSource[T]:
        """Call fn with every value before passing it on.

        An exception from fn is not caught; it reaches whoever pushed
        the value.
        """

        def _producer(emitter: Emitter[T]) -> Disposer:
            def _forward(value: T) -> None:
                fn(value)
                emitter.emit(value)

            return self.subscribe(_forward, emitter.error)

        return ColdSource(_producer)


class Emitter(Generic[T]):
    """The producer's side of one cold subscription."""

    __slots__ = ("_on_value", "_on_error", "_closed")

    def __init__(self, on_value: OnValue, on_error: OnError | None) -> None:
        self._on_value = on_value
        self._on_error = on_error
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the subscriber disposed or an error was delivered."""
        return self._closed

    def emit(self, value: T) -> None:
        if self._closed:
            return
        self._on_value(value)

    def error(self, exc: BaseException) -> None:
        """Deliver a failure. Raises exc when the subscriber gave no on_error."""
        if self._closed:
            return
        self._closed = True
        if self._on_error is None:
            raise exc
        self._on_error(exc)

    def _close(self) -> None:
        self._closed = True


class ColdSource(Source[T]):
    """A source that runs producer(emitter) for every subscriber.

    The producer may return a disposer, called when the subscriber
    disposes or the producer reports an error.

    Usage:
        ticks = ColdSource(lambda emitter: clock.add_listener(emitter.emit))
    """

    def __init__(self, producer: Callable[[Emitter[T]], Disposer | None]) -> None:
        self._producer = producer

    def subscribe(self, on_value: OnValue, on_error: OnError | None = None) -> Disposer:
        emitter: Emitter[T] = Emitter(on_value, on_error)
        teardown: Disposer | None = None
        disposed = False

        def _dispose() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            emitter._close()
            if teardown is not None:
                teardown()

        try:
            teardown = self._producer(emitter)
        except Exception as exc:
            if emitter.closed:
                raise
            emitter.error(exc)
        if emitter.closed:
            _dispose()
        return _dispose


def source_of(*values: T) -> ColdSource[T]:
    """A cold source that emits values in order to each subscriber."""

    def _producer(emitter: Emitter[T]) -> None:
        for value in values:
            if emitter.closed:
                break
            emitter.emit(value)

    return ColdSource(_producer)


def combine(*sources: Source, transform: Callable[..., U] | None = None) -> ColdSource[U]:
    """Combine the latest value of each source.

    Emits once every source has produced a value, then again each time
    any of them does. Without transform the combined value is a tuple.

    Usage:
        full_name = combine(first, last, transform=lambda f, l: f"{f} {l}")
    """
    if not sources:
        raise ValueError("combine() needs at least one source")

    def _producer(emitter: Emitter[U]) -> Disposer:
        latest: list[object] = [_UNSET] * len(sources)
        disposers: list[Disposer] = []

        def _receiver(index: int) -> OnValue:
            def _receive(value: object) -> None:
                latest[index] = value
                if any(v is _UNSET for v in latest):
                    return
                emitter.emit(transform(*latest) if transform else tuple(latest))

            return _receive

        def _dispose() -> None:
            for dispose in disposers:
                dispose()
            disposers.clear()

        try:
            for index, source in enumerate(sources):
                if emitter.closed:
                    break
                disposers.append(source.subscribe(_receiver(index), emitter.error))
        except Exception:
            _dispose()
            raise
        return _dispose

    return ColdSource(_producer)


class _Subscription:
    __slots__ = ("on_value", "on_error", "active")

    def __init__(self, on_value: OnValue, on_error: OnError | None) -> None:
        self.on_value = on_value
        self.on_error = on_error
        self.active = True


class StateSource(Source[T]):
    """A hot source holding one current value.

    Reading .value inside a reaction tracks it like any other State.
    """

    def __init__(self, value: T) -> None:
        self._cell: State[T] = State(value)
        self._subscribers: list[_Subscription] = []

    @property
    def value(self) -> T:
        return self._cell.value

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, on_value: OnValue, on_error: OnError | None = None) -> Disposer:
        sub = _Subscription(on_value, on_error)
        self._subscribers.append(sub)

        def _dispose() -> None:
            if not sub.active:
                return
            sub.active = False
            self._subscribers.remove(sub)
            self._on_subscribers_changed()

        on_value(self._cell._value)
        if sub.active:
            self._on_subscribers_changed()
        return _dispose

    def _on_subscribers_changed(self) -> None:
        """Hook for subclasses that react to the subscriber count."""

    def _set_value(self, value: T) -> None:
        old = self._cell._value
        if old is value or old == value:
            return
        self._cell._write_direct(value)
        for sub in list(self._subscribers):
            if sub.active:
                sub.on_value(value)

    def _fail(self, exc: BaseException) -> bool:
        """Hand exc to subscribers that listen for errors. True if any did."""
        handled = False
        for sub in list(self._subscribers):
            if sub.active and sub.on_error is not None:
                sub.on_error(exc)
                handled = True
        return handled

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._cell._value!r})"


class MutableStateSource(StateSource[T]):
    """A StateSource whose value is assigned directly.

    Usage:
        query = MutableStateSource("")
        query.value = "lifecycle"
    """

    @StateSource.value.setter
    def value(self, value: T) -> None:
        self._set_value(value)

    def update(self, fn: Callable[[T], T]) -> None:
        """Replace the value with fn(current value)."""
        self._set_value(fn(self._cell._value))
