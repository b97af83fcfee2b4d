"""Error taxonomy shared by the record stores, codec and engines."""

from __future__ import annotations


class StreakSyncError(Exception):
    """Base class for all team-streaks errors."""


class NotFoundError(StreakSyncError):
    """An expected record does not exist. Not retried."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Missing record for {record_id}")
        self.record_id = record_id


class ConflictError(StreakSyncError):
    """Conditional save lost an optimistic-concurrency race."""

    def __init__(self, record_id: str, expected: str | None = None, actual: str | None = None) -> None:
        super().__init__(
            f"Record {record_id} changed on server (expected tag {expected!r}, found {actual!r})"
        )
        self.record_id = record_id
        self.expected = expected
        self.actual = actual


class TransientIOError(StreakSyncError):
    """Any other record-store failure. Left to the caller to retry."""


class ValidationError(StreakSyncError):
    """A record is missing a required field or holds the wrong type."""

    def __init__(self, record_id: str, field: str, reason: str = "missing") -> None:
        super().__init__(f"Record {record_id}: field {field!r} {reason}")
        self.record_id = record_id
        self.field = field
