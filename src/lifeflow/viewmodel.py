"""View models: owners whose scope lives until they are cleared.

A ViewModel outlives individual screens. Everything it shares or holds
is collected in view_model_scope and stops when clear() is called.
SavedStateViewModel adds a SavedStateHandle for state that must also
survive the process being restarted.

Every helper takes an optional context merged over the scope's own
context (the per-call entries win).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Callable, TypeVar

from lifeflow.saved_state import (
    MutableSavedStateSource,
    SavedStateHandle,
    mutable_saved_state,
    saved_state_source,
)
from lifeflow.scope import Scope
from lifeflow.sharing import (
    SharedSource,
    SharedState,
    SharingStarted,
    combine_states_in,
    share_in,
    state_in,
)
from lifeflow.source import Source, StateSource, combine

T = TypeVar("T")
R = TypeVar("R")

Context = Mapping[str, object]


class ViewModel:
    """Base class for presentation state holders."""

    def __init__(self, context: Context | None = None) -> None:
        self.view_model_scope = Scope(context, name=type(self).__name__)
        self._cleared = False

    @property
    def cleared(self) -> bool:
        return self._cleared

    def clear(self) -> None:
        """Cancel everything running in view_model_scope, then on_cleared()."""
        if self._cleared:
            return
        self._cleared = True
        self.view_model_scope.cancel()
        self.on_cleared()

    def on_cleared(self) -> None:
        """Override to release resources the scope does not own."""

    def _scope_for(self, context: Context | None) -> Scope:
        if not context:
            return self.view_model_scope
        return self.view_model_scope.child(context)

    def share(
        self,
        source: Source[T],
        started: SharingStarted | None = None,
        context: Context | None = None,
        replay: int = 0,
    ) -> SharedSource[T]:
        return share_in(source, self._scope_for(context), started, replay)

    def state(
        self,
        source: Source[T],
        initial: T,
        started: SharingStarted | None = None,
        context: Context | None = None,
    ) -> SharedState[T]:
        return state_in(source, self._scope_for(context), initial, started)

    def combine_states(
        self,
        *states: StateSource,
        transform: Callable[..., R],
        started: SharingStarted | None = None,
        context: Context | None = None,
    ) -> SharedState[R]:
        """A state derived from the current values of several states.

        Usage:
            self.can_submit = self.combine_states(
                self.name, self.email, transform=lambda n, e: bool(n and e)
            )
        """
        return combine_states_in(
            *states, scope=self._scope_for(context), transform=transform, started=started
        )


class SavedStateViewModel(ViewModel):
    """A ViewModel whose state can be saved in a SavedStateHandle."""

    def __init__(self, saved_state_handle: SavedStateHandle, context: Context | None = None) -> None:
        super().__init__(context)
        self.saved_state_handle = saved_state_handle

    def saved_state(
        self,
        key: str,
        *sources: Source,
        initial: R,
        transform: Callable[..., R] | None = None,
        started: SharingStarted | None = None,
        context: Context | None = None,
    ) -> SharedState[R]:
        """A state computed from sources and saved under key.

        With one source the values pass through transform when given.
        With several, their latest values are combined through transform.

        Usage:
            self.total = self.saved_state(
                "total", self.price, self.quantity,
                initial=0, transform=lambda p, q: p * q,
            )
        """
        if not sources:
            raise ValueError("saved_state() needs at least one source")
        if len(sources) == 1:
            source = sources[0] if transform is None else sources[0].map(transform)
        else:
            source = combine(*sources, transform=transform)
        return saved_state_source(
            self.saved_state_handle, key, source, initial, self._scope_for(context), started
        )

    def mutable_saved_state(self, key: str, initial: T) -> MutableSavedStateSource[T]:
        return mutable_saved_state(self.saved_state_handle, key, initial)
