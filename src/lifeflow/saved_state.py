"""Saved state: latest values that survive the owner being recreated.

SavedStateHandle is a key-value registry. Its contents can be written
out with save() and read back with SavedStateHandle.restore() after a
restart. Values must be picklable.

saved_state_source() mirrors every value of a source into the handle
and, when rebuilt with the same key, starts from the saved value rather
than the supplied initial one. mutable_saved_state() is the variant for
values assigned directly instead of computed from a source.
"""

from __future__ import annotations

import logging
import pickle
from collections.abc import Mapping
from typing import Callable, TypeVar

from lifeflow.errors import SerializationError
from lifeflow.scope import Scope
from lifeflow.sharing import SharedState, SharingStarted, state_in
from lifeflow.source import Disposer, OnError, OnValue, Source, StateSource
from lifeflow.state import State, transaction

T = TypeVar("T")

logger = logging.getLogger("lifeflow.saved_state")


def _check_savable(key: str, value: object) -> None:
    if not isinstance(key, str):
        raise TypeError(f"Saved state keys must be str, got {type(key).__name__}")
    try:
        pickle.dumps(value)
    except (pickle.PicklingError, TypeError, AttributeError) as exc:
        raise SerializationError(key, value) from exc


class SavedStateHandle:
    """Key-value registry for state that must outlive its owner."""

    def __init__(self, initial: Mapping[str, object] | None = None) -> None:
        self._values: dict[str, object] = {}
        self._sources: dict[str, StateSource] = {}
        if initial:
            for key, value in initial.items():
                self.set(key, value)

    def get(self, key: str, default: object = None) -> object:
        return self._values.get(key, default)

    def __getitem__(self, key: str) -> object:
        return self._values[key]

    def __setitem__(self, key: str, value: object) -> None:
        self.set(key, value)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def keys(self) -> set[str]:
        return set(self._values)

    def set(self, key: str, value: object) -> None:
        """Store value and push it to the key's live source, if any.

        Raises SerializationError, leaving the old value in place, when
        value cannot be pickled.
        """
        _check_savable(key, value)
        self._values[key] = value
        source = self._sources.get(key)
        if source is not None:
            source._set_value(value)

    def update(self, values: Mapping[str, object]) -> None:
        """Set several keys; reactions see all of them change at once."""
        with transaction():
            for key, value in values.items():
                self.set(key, value)

    def remove(self, key: str) -> object:
        """Drop key and its live source. Returns the removed value or None.

        Subscribers of the dropped source stop receiving values.
        """
        self._sources.pop(key, None)
        return self._values.pop(key, None)

    def get_state_source(self, key: str, initial: T) -> StateSource[T]:
        """A live source following the value stored under key.

        When key is absent, initial is stored first. Every later set()
        for key is pushed to the source.
        """
        source = self._sources.get(key)
        if source is None:
            if key not in self._values:
                self.set(key, initial)
            source = StateSource(self._values[key])
            self._sources[key] = source
        return source

    def save(self) -> bytes:
        return pickle.dumps(self._values)

    @classmethod
    def restore(cls, data: bytes) -> SavedStateHandle:
        """Rebuild a handle from the bytes of an earlier save()."""
        values = pickle.loads(data)
        logger.debug("Restored saved state: %d keys", len(values))
        return cls(values)

    def __repr__(self) -> str:
        return f"SavedStateHandle({sorted(self._values)!r})"


def saved_state_source(
    handle: SavedStateHandle,
    key: str,
    source: Source[T],
    initial: T,
    scope: Scope,
    started: SharingStarted | None = None,
) -> SharedState[T]:
    """A hot state of source whose every value is saved under key.

    Starts from the value already saved under key, or from initial when
    there is none (initial itself is not saved). A value is saved before
    it reaches subscribers; a SerializationError is raised to whoever
    pushed the value.

    Usage:
        query = saved_state_source(handle, "query", search_box.text, "", scope)
    """
    effective = handle[key] if key in handle else initial

    def _save(value: T) -> None:
        handle.set(key, value)

    return state_in(source.on_each(_save), scope, effective, started)


class MutableSavedStateSource(StateSource[T]):
    """A state stored in a SavedStateHandle and assigned directly.

    Assigning .value saves the value and publishes it; reading .value
    right after returns it. Reads and subscriptions always go through the
    handle's current live source for the key, so after handle.remove(key)
    the next read or assignment starts a fresh one.
    """

    def __init__(self, handle: SavedStateHandle, key: str, initial: T) -> None:
        self._handle = handle
        self._key = key
        self._initial = initial
        handle.get_state_source(key, initial)

    @property
    def _live(self) -> StateSource[T]:
        return self._handle.get_state_source(self._key, self._initial)

    @property
    def _cell(self) -> State[T]:
        return self._live._cell

    @property
    def _subscribers(self) -> list:
        return self._live._subscribers

    @property
    def key(self) -> str:
        return self._key

    @StateSource.value.setter
    def value(self, value: T) -> None:
        self._set_value(value)

    def subscribe(self, on_value: OnValue, on_error: OnError | None = None) -> Disposer:
        return self._live.subscribe(on_value, on_error)

    def update(self, fn: Callable[[T], T]) -> None:
        self._set_value(fn(self._cell._value))

    def _set_value(self, value: T) -> None:
        self._handle.set(self._key, value)

    def __repr__(self) -> str:
        return f"MutableSavedStateSource({self._key!r}, {self._cell._value!r})"


def mutable_saved_state(handle: SavedStateHandle, key: str, initial: T) -> MutableSavedStateSource[T]:
    """A directly assignable state saved under key.

    Usage:
        selected_tab = mutable_saved_state(handle, "selected_tab", 0)
        selected_tab.value = 2
    """
    return MutableSavedStateSource(handle, key, initial)
