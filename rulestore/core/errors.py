"""
Repository-level exceptions.

Callers of the item layer only ever see these. Failures raised by a
NodeStore are wrapped into RulesRepositoryError with the original
exception kept as the cause.
"""

from __future__ import annotations

from typing import Optional


class RepositoryError(Exception):
    """Base class for all errors raised by the item layer."""

    pass


class RulesRepositoryError(RepositoryError):
    """
    A failure surfaced by the underlying node store.

    Attributes:
        cause: The store exception that triggered this error, if any
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    @classmethod
    def wrap(cls, cause: BaseException) -> "RulesRepositoryError":
        """Wrap a store exception, reusing its message."""
        return cls(f"{type(cause).__name__}: {cause}", cause)


class RepositoryUsageError(RepositoryError):
    """
    The caller asked for something that can never succeed.

    Raised when mutating a historical version. Not retryable.
    """

    pass


class VersioningNotSupportedError(RepositoryUsageError):
    """Check-out or check-in was attempted on a store without versioning."""

    pass
