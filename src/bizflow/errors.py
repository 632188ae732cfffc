"""Error taxonomy shared by the store, lifecycle engine and workspace."""

from __future__ import annotations


class BizflowError(Exception):
    """Base class for all bizflow errors."""


class NotReady(BizflowError):
    """An operation was attempted before the actor identity was established."""

    def __init__(self, message: str = "Authentication not ready. Please wait.") -> None:
        super().__init__(message)


class SyncFailure(BizflowError):
    """A subscription or write failed at the backend for one collection."""

    def __init__(self, collection: str, message: str) -> None:
        super().__init__(f"{collection}: {message}")
        self.collection = collection


class InvalidTransition(BizflowError):
    """A status change or derivation violates the lifecycle state machine."""


class ValidationFailure(BizflowError):
    """A record is malformed and was rejected before reaching the store."""
