from typing import Any, Optional


class DebrieferError(Exception):
    """Base exception for Debriefer errors."""

    def __init__(self, message: str, operation: Optional[str] = None, ids: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.operation = operation
        self.ids = dict(ids or {})


class ConfigError(DebrieferError):
    """Configuration loading specific errors."""
    pass


class ReferentialError(DebrieferError):
    """A unit type, pilot or debrief id that does not resolve."""
    pass


class PersistenceError(DebrieferError):
    """The underlying store rejected a write."""
    pass


class StaleStateError(DebrieferError):
    """A kill line key no longer addresses a live ledger record."""
    pass


class UnknownBucketError(DebrieferError):
    """Summary bucket name that cannot be expanded."""
    pass


class SaveInProgressError(DebrieferError):
    """A save for the same flight debrief is already running."""
    pass
