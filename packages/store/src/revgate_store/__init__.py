"""Job and review persistence backends for revgate."""

from revgate_store.base import (
    BaseJobStore,
    InvalidTransitionError,
    JobCorruptError,
    JobExistsError,
    JobNotFoundError,
    JobStoreError,
    ReviewNotFoundError,
)
from revgate_store.filesystem import FileJobStore
from revgate_store.sqlite import SQLiteJobStore

__all__ = [
    "BaseJobStore",
    "FileJobStore",
    "InvalidTransitionError",
    "JobCorruptError",
    "JobExistsError",
    "JobNotFoundError",
    "JobStoreError",
    "ReviewNotFoundError",
    "SQLiteJobStore",
]
