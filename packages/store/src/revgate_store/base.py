"""Abstract job store interface.

Backends (a directory of JSON files, SQLite) implement a handful of raw
record primitives. Status transitions, the re-submission rule, artifact
naming and decoding errors live here, so every backend behaves the same and
the CLI depends on BaseJobStore only.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from revgate_core.errors import (  # noqa: F401  re-exported
    InvalidTransitionError,
    JobCorruptError,
    JobExistsError,
    JobNotFoundError,
    JobStoreError,
    ReviewNotFoundError,
)
from revgate_core.models import (
    JobStatus,
    ReviewArtifact,
    ReviewJob,
    ReviewRequest,
    job_from_dict,
    job_to_dict,
    request_from_dict,
    request_to_dict,
    review_from_dict,
    review_to_dict,
    validate_transition,
)

logger = logging.getLogger(__name__)

_REVIEW_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_UPDATABLE_FIELDS = {"status", "result", "error", "review_path", "log"}


def review_name_for(key: str) -> str:
    return f"{key}.json"


def validate_review_name(name: str) -> str:
    """Reject anything that could escape the reviews location."""
    if not name or "/" in name or "\\" in name or ".." in name or not _REVIEW_NAME.match(name):
        raise ValueError(f"Invalid review name: {name!r}")
    return name


class BaseJobStore(ABC):
    """Persistence for review jobs and review artifacts.

    The store is the single writer of record but computes no mutations of
    its own: callers (requester and worker) decide every change. Concurrent
    writers to one key are last-writer-wins; job identity plus ``submit``
    keep it to one active producer per key.
    """

    # ------------------------------------------------------------------ #
    # Raw record primitives, implemented by each backend                  #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _read_record(self, key: str) -> dict | None:
        """Return the raw job record, None when absent. Raise JobCorruptError if unparsable."""

    @abstractmethod
    def _write_record(self, key: str, record: dict) -> None:
        """Replace the whole job record atomically."""

    @abstractmethod
    def _list_records(self, limit: int) -> list[dict]:
        """Return up to ``limit`` raw job records, newest first. Skip unparsable ones."""

    @abstractmethod
    def _write_review(self, name: str, key: str, artifact: dict) -> str:
        """Persist an artifact under ``name`` and return its locator (path or name)."""

    @abstractmethod
    def _read_review(self, name: str) -> dict | None:
        """Return the raw artifact, None when absent. Raise JobCorruptError if unparsable."""

    @abstractmethod
    def _latest_review_name(self) -> str | None:
        """Name of the most recently saved artifact, None when there are none."""

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def exists(self, key: str) -> bool:
        try:
            return self._read_record(key) is not None
        except JobCorruptError:
            return True

    def load(self, key: str) -> ReviewJob:
        """Load a job. Missing and corrupt records are errors, never "no job"."""
        record = self._read_record(key)
        if record is None:
            raise JobNotFoundError(f"No job found for key {key}")
        return self._decode(key, record)

    def create(self, request: ReviewRequest) -> ReviewJob:
        """Write a new ``pending`` record with an empty log.

        An existing failed (or corrupt) record for the same key is replaced so
        a failed review can be re-submitted. Any other existing record raises
        JobExistsError; the caller should attach to it instead.
        """
        key = request.job_key
        try:
            existing = self.load(key)
        except JobNotFoundError:
            existing = None
        except JobCorruptError as e:
            logger.warning("Replacing corrupt job record %s: %s", key, e)
            existing = None

        if existing is not None and existing.status != JobStatus.FAILED:
            raise JobExistsError(f"Job {key} already exists with status {existing.status}")

        job = ReviewJob(key=key, request=request, status=JobStatus.PENDING)
        self._write_record(key, job_to_dict(job))
        return job

    def update(self, job: ReviewJob, **changes: Any) -> ReviewJob:
        """Merge ``changes`` into ``job`` and rewrite its record.

        A status change is checked against the persisted status, so a job
        that already reached a terminal state can never leave it.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown job fields: {', '.join(sorted(unknown))}")

        current = self.load(job.key)
        if "status" in changes:
            target = JobStatus(changes["status"])
            try:
                validate_transition(current.status, target)
            except ValueError as e:
                raise InvalidTransitionError(f"Job {job.key}: {e}") from e
            changes["status"] = target
        elif current.is_terminal:
            raise InvalidTransitionError(f"Job {job.key} is {current.status} and can no longer change")

        for name, value in changes.items():
            setattr(job, name, value)
        self._write_record(job.key, job_to_dict(job))
        return job

    def append_log(self, job: ReviewJob, line: str) -> ReviewJob:
        job.log.append(line)
        self._write_record(job.key, job_to_dict(job))
        return job

    def list_jobs(self, limit: int = 20) -> list[ReviewJob]:
        jobs = []
        for record in self._list_records(limit):
            try:
                jobs.append(job_from_dict(record))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                logger.warning("Skipping unreadable job record %s: %s", record.get("key", "?"), e)
        return jobs

    def save_review(self, job: ReviewJob, review) -> str:
        """Persist ``{review, request}`` for a finished job and return its locator."""
        artifact = {"review": review_to_dict(review), "request": request_to_dict(job.request)}
        return self._write_review(review_name_for(job.key), job.key, artifact)

    def load_review(self, name: str | None = None) -> ReviewArtifact:
        """Load a review artifact by name (``<key>.json`` or bare key), or the latest one."""
        if name is None:
            name = self._latest_review_name()
            if name is None:
                raise ReviewNotFoundError("No reviews found")
        else:
            validate_review_name(name)
            if not name.endswith(".json"):
                name = review_name_for(name)

        data = self._read_review(name)
        if data is None:
            raise ReviewNotFoundError(f"Review not found: {name}")
        try:
            return ReviewArtifact(
                name=name,
                review=review_from_dict(data["review"]),
                request=request_from_dict(data["request"]),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise JobCorruptError(f"Review {name} is unreadable: {e}") from e

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _decode(key: str, record: dict) -> ReviewJob:
        try:
            return job_from_dict(record)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise JobCorruptError(f"Job record {key} is unreadable: {e}") from e
