"""Tests for lifeflow.textual: Textual integration layer."""

import threading

from textual.screen import Screen

from lifeflow import (
    Context,
    LifecycleState,
    MutableStateSource,
    SchedulerDispatcher,
    collect_as_state_with_lifecycle,
)
from lifeflow import textual as ltx


class _MockApp:
    """Minimal mock matching the Textual App interface the dispatcher needs."""

    def __init__(self):
        self._call_from_thread_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)


class _FakeScreen(ltx.LifecycleMixin):
    """Stands in for a Screen; Textual would call these handlers itself."""


class TestLifecycleMixin:
    def test_owner_starts_created(self):
        screen = _FakeScreen()
        assert screen.lifecycle_owner.lifecycle.current_state is LifecycleState.CREATED

    def test_owner_is_per_instance(self):
        a, b = _FakeScreen(), _FakeScreen()
        assert a.lifecycle_owner is not b.lifecycle_owner

    def test_message_handlers_drive_lifecycle(self):
        screen = _FakeScreen()
        lifecycle = screen.lifecycle_owner.lifecycle
        screen.on_mount()
        assert lifecycle.current_state is LifecycleState.STARTED
        screen.on_screen_resume()
        assert lifecycle.current_state is LifecycleState.RESUMED
        screen.on_screen_suspend()
        assert lifecycle.current_state is LifecycleState.CREATED
        screen.on_unmount()
        assert lifecycle.current_state is LifecycleState.DESTROYED

    def test_handlers_after_unmount_are_ignored(self):
        screen = _FakeScreen()
        screen.on_unmount()
        screen.on_screen_resume()
        assert screen.lifecycle_owner.lifecycle.current_state is LifecycleState.DESTROYED

    def test_collection_paused_while_suspended(self):
        screen = _FakeScreen()
        upstream = MutableStateSource("a")
        title = collect_as_state_with_lifecycle(upstream, screen.lifecycle_owner)
        screen.on_mount()
        screen.on_screen_resume()
        upstream.value = "b"
        assert title.value == "b"

        screen.on_screen_suspend()
        upstream.value = "c"
        assert title.value == "b"

        screen.on_screen_resume()
        assert title.value == "c"

        screen.on_unmount()
        assert upstream.subscriber_count == 0

    def test_lifecycle_screen_is_a_screen(self):
        assert issubclass(ltx.LifecycleScreen, Screen)
        assert issubclass(ltx.LifecycleScreen, ltx.LifecycleMixin)


class TestTextualDispatcher:
    def test_main_thread_runs_inline(self):
        app = _MockApp()
        dispatcher = ltx.TextualDispatcher(app)
        log = []
        dispatcher.dispatch(lambda: log.append(1))
        assert log == [1]
        assert app._call_from_thread_log == []

    def test_thread_marshal(self):
        """Values pushed from a worker thread reach the cell via call_from_thread."""
        app = _MockApp()
        screen = _FakeScreen()
        upstream = MutableStateSource(0)
        cell = collect_as_state_with_lifecycle(
            upstream,
            screen.lifecycle_owner,
            context=Context(dispatcher=ltx.TextualDispatcher(app)),
        )
        screen.on_mount()

        t = threading.Thread(target=lambda: setattr(upstream, "value", 1))
        t.start()
        t.join()

        assert cell.value == 1
        assert len(app._call_from_thread_log) >= 1

    def test_is_a_scheduler_dispatcher(self):
        app = _MockApp()
        dispatcher = ltx.TextualDispatcher(app)
        assert isinstance(dispatcher, SchedulerDispatcher)
        assert dispatcher.app is app
        assert repr(dispatcher) == "TextualDispatcher(_MockApp)"
