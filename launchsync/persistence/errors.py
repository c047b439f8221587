"""Persistence-specific exceptions."""


class PersistenceError(Exception):
    """Base exception for all persistence errors."""


class SnapshotDecodeError(PersistenceError):
    """Raised when a stored file exists but cannot be decoded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
