"""Shared fixtures."""

import pytest

from lifeflow import Dispatcher


class ManualDispatcher(Dispatcher):
    """Runs dispatched work inline; delayed work only when time is advanced."""

    def __init__(self):
        self.now = 0.0
        self._timers = []  # [due, fn, cancelled]

    def dispatch(self, fn):
        fn()

    def call_later(self, delay, fn):
        if delay <= 0:
            fn()
            return lambda: None
        entry = [self.now + delay, fn, False]
        self._timers.append(entry)

        def _cancel():
            entry[2] = True

        return _cancel

    @property
    def pending(self):
        return sum(1 for entry in self._timers if not entry[2])

    def advance(self, seconds):
        self.now += seconds
        while True:
            due = [e for e in self._timers if not e[2] and e[0] <= self.now]
            if not due:
                return
            entry = min(due, key=lambda e: e[0])
            entry[2] = True
            entry[1]()


class QueueDispatcher(Dispatcher):
    """Holds dispatched work until run_all() is called."""

    def __init__(self):
        self.queue = []

    def dispatch(self, fn):
        self.queue.append(fn)

    def run_all(self):
        while self.queue:
            self.queue.pop(0)()


@pytest.fixture
def clock():
    return ManualDispatcher()


@pytest.fixture
def queue():
    return QueueDispatcher()
