"""Tests for Lifecycle, LifecycleOwner and repeat_on_lifecycle."""

import pytest

from lifeflow import (
    Context,
    Lifecycle,
    LifecycleError,
    LifecycleEvent,
    LifecycleOwner,
    LifecycleState,
    repeat_on_lifecycle,
)

CREATED = LifecycleState.CREATED
STARTED = LifecycleState.STARTED
RESUMED = LifecycleState.RESUMED
DESTROYED = LifecycleState.DESTROYED


class TestLifecycleState:
    def test_ordering(self):
        assert DESTROYED < LifecycleState.INITIALIZED < CREATED < STARTED < RESUMED

    def test_is_at_least(self):
        assert RESUMED.is_at_least(STARTED)
        assert STARTED.is_at_least(STARTED)
        assert not CREATED.is_at_least(STARTED)


class TestLifecycleEvent:
    def test_target_state(self):
        assert LifecycleEvent.ON_START.target_state is STARTED
        assert LifecycleEvent.ON_PAUSE.target_state is STARTED
        assert LifecycleEvent.ON_STOP.target_state is CREATED

    def test_up_to_and_down_from(self):
        assert LifecycleEvent.up_to(STARTED) is LifecycleEvent.ON_START
        assert LifecycleEvent.down_from(RESUMED) is LifecycleEvent.ON_PAUSE
        assert LifecycleEvent.up_to(DESTROYED) is None


class TestLifecycle:
    def test_observer_gets_current_state(self):
        lifecycle = Lifecycle()
        lifecycle.move_to(STARTED)
        seen = []
        lifecycle.add_observer(seen.append)
        assert seen == [STARTED]

    def test_steps_through_intermediate_states(self):
        lifecycle = Lifecycle()
        seen = []
        lifecycle.add_observer(seen.append)
        lifecycle.move_to(RESUMED)
        lifecycle.move_to(DESTROYED)
        assert seen == [
            LifecycleState.INITIALIZED,
            CREATED,
            STARTED,
            RESUMED,
            STARTED,
            CREATED,
            DESTROYED,
        ]

    def test_initialized_to_destroyed(self):
        lifecycle = Lifecycle()
        seen = []
        lifecycle.add_observer(seen.append)
        lifecycle.move_to(DESTROYED)
        assert seen == [LifecycleState.INITIALIZED, DESTROYED]

    def test_handle_lifecycle_event(self):
        lifecycle = Lifecycle()
        lifecycle.handle_lifecycle_event(LifecycleEvent.ON_RESUME)
        assert lifecycle.current_state is RESUMED
        lifecycle.handle_lifecycle_event(LifecycleEvent.ON_STOP)
        assert lifecycle.current_state is CREATED

    def test_double_registration_fails_fast(self):
        lifecycle = Lifecycle()
        observer = lambda state: None  # noqa: E731
        lifecycle.add_observer(observer)
        with pytest.raises(LifecycleError):
            lifecycle.add_observer(observer)
        assert lifecycle.observer_count == 1

    def test_destroyed_is_final(self):
        lifecycle = Lifecycle()
        lifecycle.move_to(DESTROYED)
        with pytest.raises(LifecycleError):
            lifecycle.move_to(STARTED)

    def test_cannot_return_to_initialized(self):
        lifecycle = Lifecycle()
        lifecycle.move_to(CREATED)
        with pytest.raises(LifecycleError):
            lifecycle.move_to(LifecycleState.INITIALIZED)

    def test_disposer_removes_observer(self):
        lifecycle = Lifecycle()
        seen = []
        remove = lifecycle.add_observer(seen.append)
        remove()
        lifecycle.move_to(STARTED)
        assert seen == [LifecycleState.INITIALIZED]
        assert lifecycle.observer_count == 0


class TestLifecycleOwner:
    def test_scope_cancelled_on_destroy(self):
        owner = LifecycleOwner()
        owner.lifecycle.move_to(RESUMED)
        assert owner.lifecycle_scope.is_active
        owner.lifecycle.move_to(DESTROYED)
        assert not owner.lifecycle_scope.is_active
        assert owner.lifecycle.observer_count == 0


def _episode_recorder(log):
    def block(job):
        log.append("start")
        job.invoke_on_cancel(lambda: log.append("stop"))

    return block


class TestRepeatOnLifecycle:
    def test_runs_only_at_or_above_threshold(self):
        owner = LifecycleOwner()
        log = []
        repeat_on_lifecycle(owner.lifecycle_scope, owner.lifecycle, STARTED, _episode_recorder(log))
        owner.lifecycle.move_to(CREATED)
        assert log == []
        owner.lifecycle.move_to(STARTED)
        assert log == ["start"]
        owner.lifecycle.move_to(RESUMED)
        assert log == ["start"]
        owner.lifecycle.move_to(CREATED)
        assert log == ["start", "stop"]

    def test_restarts_each_time(self):
        owner = LifecycleOwner()
        log = []
        repeat_on_lifecycle(owner.lifecycle_scope, owner.lifecycle, RESUMED, _episode_recorder(log))
        for _ in range(3):
            owner.lifecycle.move_to(RESUMED)
            owner.lifecycle.move_to(STARTED)
        assert log == ["start", "stop"] * 3

    def test_starts_immediately_when_already_active(self):
        owner = LifecycleOwner()
        owner.lifecycle.move_to(RESUMED)
        log = []
        repeat_on_lifecycle(owner.lifecycle_scope, owner.lifecycle, STARTED, _episode_recorder(log))
        assert log == ["start"]

    def test_destroy_tears_down(self):
        owner = LifecycleOwner()
        owner.lifecycle.move_to(RESUMED)
        log = []
        job = repeat_on_lifecycle(
            owner.lifecycle_scope, owner.lifecycle, STARTED, _episode_recorder(log)
        )
        owner.lifecycle.move_to(DESTROYED)
        assert log == ["start", "stop"]
        assert not job.is_active
        assert owner.lifecycle.observer_count == 0

    def test_cancelling_job_unregisters_observer(self):
        owner = LifecycleOwner()
        owner.lifecycle.move_to(RESUMED)
        log = []
        before = owner.lifecycle.observer_count
        job = repeat_on_lifecycle(
            owner.lifecycle_scope, owner.lifecycle, STARTED, _episode_recorder(log)
        )
        assert owner.lifecycle.observer_count == before + 1
        job.cancel()
        assert log == ["start", "stop"]
        assert owner.lifecycle.observer_count == before
        owner.lifecycle.move_to(CREATED)
        owner.lifecycle.move_to(RESUMED)
        assert log == ["start", "stop"]

    def test_already_destroyed_does_nothing(self):
        owner = LifecycleOwner()
        lifecycle = Lifecycle()
        lifecycle.move_to(DESTROYED)
        log = []
        job = repeat_on_lifecycle(owner.lifecycle_scope, lifecycle, STARTED, _episode_recorder(log))
        assert log == []
        assert not job.is_active
        assert lifecycle.observer_count == 0

    def test_rejects_initialized_threshold(self):
        owner = LifecycleOwner()
        with pytest.raises(ValueError):
            repeat_on_lifecycle(
                owner.lifecycle_scope, owner.lifecycle, LifecycleState.INITIALIZED, lambda job: None
            )

    def test_episode_uses_given_context(self):
        owner = LifecycleOwner()
        seen = []
        repeat_on_lifecycle(
            owner.lifecycle_scope,
            owner.lifecycle,
            STARTED,
            lambda job: seen.append(job.context["tag"]),
            Context(tag="episode"),
        )
        owner.lifecycle.move_to(STARTED)
        assert seen == ["episode"]
