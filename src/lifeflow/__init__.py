"""lifeflow: lifecycle-aware state bridging and saved state for Python UIs."""

from importlib.metadata import version as _version

__version__ = _version("lifeflow")

from lifeflow._tracking import get_pending_count
from lifeflow.state import State, MutableState, mutable_state_of, set_scheduler, action, transaction
from lifeflow.reaction import Reaction, autorun
from lifeflow.errors import LifeflowError, ScopeCancelledError, LifecycleError, SerializationError
from lifeflow.context import (
    Context,
    EMPTY_CONTEXT,
    Dispatcher,
    ImmediateDispatcher,
    SchedulerDispatcher,
    IMMEDIATE,
    merge_contexts,
)
from lifeflow.scope import Scope, Job
from lifeflow.source import (
    Source,
    ColdSource,
    Emitter,
    StateSource,
    MutableStateSource,
    source_of,
    combine,
)
from lifeflow.sharing import (
    SharingStarted,
    WhileSubscribed,
    SharedSource,
    SharedState,
    share_in,
    state_in,
    combine_states_in,
)
from lifeflow.lifecycle import (
    LifecycleState,
    LifecycleEvent,
    Lifecycle,
    LifecycleOwner,
    repeat_on_lifecycle,
)
from lifeflow.bridge import collect_as_state_with_lifecycle
from lifeflow.saved_state import (
    SavedStateHandle,
    MutableSavedStateSource,
    saved_state_source,
    mutable_saved_state,
)
from lifeflow.viewmodel import ViewModel, SavedStateViewModel
# textual NOT auto-imported, opt-in only

__all__ = [
    "State",
    "MutableState",
    "mutable_state_of",
    "set_scheduler",
    "Reaction",
    "autorun",
    "action",
    "transaction",
    "get_pending_count",
    "LifeflowError",
    "ScopeCancelledError",
    "LifecycleError",
    "SerializationError",
    "Context",
    "EMPTY_CONTEXT",
    "Dispatcher",
    "ImmediateDispatcher",
    "SchedulerDispatcher",
    "IMMEDIATE",
    "merge_contexts",
    "Scope",
    "Job",
    "Source",
    "ColdSource",
    "Emitter",
    "StateSource",
    "MutableStateSource",
    "source_of",
    "combine",
    "SharingStarted",
    "WhileSubscribed",
    "SharedSource",
    "SharedState",
    "share_in",
    "state_in",
    "combine_states_in",
    "LifecycleState",
    "LifecycleEvent",
    "Lifecycle",
    "LifecycleOwner",
    "repeat_on_lifecycle",
    "collect_as_state_with_lifecycle",
    "SavedStateHandle",
    "MutableSavedStateSource",
    "saved_state_source",
    "mutable_saved_state",
    "ViewModel",
    "SavedStateViewModel",
]
