"""Exceptions raised by lifeflow."""


class LifeflowError(Exception):
    """Base class for lifeflow errors."""


class ScopeCancelledError(LifeflowError):
    """Work was started on, or subscribed through, a scope that has ended."""


class LifecycleError(LifeflowError):
    """A lifecycle was driven or observed in a way its contract forbids."""


class SerializationError(LifeflowError):
    """A value could not be written to a saved-state handle."""

    def __init__(self, key: str, value: object) -> None:
        super().__init__(f"Cannot save {type(value).__name__} under key {key!r}")
        self.key = key
        self.value = value
