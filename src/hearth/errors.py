# src/hearth/errors.py

"""
Error taxonomy.

Storage errors reject the call in progress. Task-level errors (upstream, decoding)
are written into Task.error by whoever executes the task and are not raised
past the executor.
"""

from __future__ import annotations


class HearthError(Exception):
    """Base class for all hearth errors."""


# ---- storage ----


class StorageError(HearthError):
    pass


class StorageUnavailable(StorageError):
    """The persistence engine could not be opened."""


class SchemaMismatch(StorageError):
    """Required partitions are missing. Handled internally by recreating the store."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing partitions: {', '.join(missing)}")
        self.missing = list(missing)


class SchemaDowngrade(StorageError):
    """The store on disk was written by a newer schema version than requested."""

    def __init__(self, recorded: int, requested: int) -> None:
        super().__init__(
            f"Store version {recorded} is newer than requested version {requested}"
        )
        self.recorded = recorded
        self.requested = requested


class PartitionNotFound(StorageError):
    def __init__(self, partition: str, available: list[str] | None = None) -> None:
        msg = f'Partition "{partition}" does not exist'
        if available:
            msg += f". Available partitions: {', '.join(available)}"
        super().__init__(msg)
        self.partition = partition


# ---- tasks / dispatch ----


class TaskNotFound(HearthError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class DispatchUnavailable(HearthError):
    """The background context is not reachable. A control-flow signal, not a failure."""


# ---- upstream / decoding ----


class UpstreamAPIError(HearthError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseFormatError(HearthError):
    def __init__(self, message: str, *, raw_preview: str = "") -> None:
        super().__init__(message)
        self.raw_preview = raw_preview


# ---- blobs ----


class HandleRevoked(HearthError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Handle for {key!r} has been revoked")
        self.key = key
