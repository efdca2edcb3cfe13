from __future__ import annotations


class WorkerError(Exception):
    """Base class for errors raised by the worker core."""


class MalformedEntry(WorkerError, ValueError):
    """A queue entry could not be decoded into a work item."""

    def __init__(self, entry_id: str, reason: str) -> None:
        super().__init__(f"Malformed entry {entry_id}: {reason}")
        self.entry_id = entry_id
        self.reason = reason


class AnnotationLookupError(WorkerError):
    """The annotation lookup did not produce exactly one row."""

    def __init__(self, checksum: str, timestamp: int, rows: int) -> None:
        super().__init__(
            f"Expected one annotation row for {checksum}-{timestamp}, got {rows}"
        )
        self.checksum = checksum
        self.timestamp = timestamp
        self.rows = rows


class AnnotationNotFound(AnnotationLookupError):
    def __init__(self, checksum: str, timestamp: int) -> None:
        super().__init__(checksum, timestamp, 0)


class MultipleAnnotations(AnnotationLookupError):
    pass
