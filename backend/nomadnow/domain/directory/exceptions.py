"""Domain-level exceptions for the nomad directory, preferences and invitations.

None of these escape the engine boundary: aggregation failures degrade to the next
source, refresh failures become a transient error flag and mutation failures are
reported as booleans.
"""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for directory feature errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class SourceUnavailable(DirectoryError):
    """An aggregation source could not be read."""

    reason = "source_unavailable"

    def __init__(self, source: str, reason: str | None = None) -> None:
        super().__init__(reason)
        self.source = source

    def __str__(self) -> str:
        return f"{self.source}: {self.reason}"


class ValidationFailure(DirectoryError):
    """A request was rejected locally, before any network call."""

    reason = "invalid"


class PersistenceFailure(DirectoryError):
    """The external preference store refused or failed a write."""

    reason = "persistence_failed"


class DispatchFailure(DirectoryError):
    """The invitation service reported a failure."""

    reason = "dispatch_failed"
