"""Job submission and the attach/tail client.

``submit`` applies the deduplication protocol: one job per identity key.
``attach`` polls a job record and streams what it observes until the job is
terminal or the caller stops waiting. Stopping early never touches the job.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.markup import escape

from revgate_core.errors import (
    EXIT_BLOCK,
    EXIT_ERROR,
    EXIT_PASS,
    EXIT_QUEUED,
    JobCorruptError,
    JobExistsError,
    JobNotFoundError,
)
from revgate_core.models import JobStatus, ReviewJob, ReviewRequest
from revgate_core.report import print_review

logger = logging.getLogger(__name__)

ATTACH_COMPLETED = "completed"
ATTACH_FAILED = "failed"
ATTACH_TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class JobHandle:
    key: str
    created: bool


@dataclass
class AttachOutcome:
    status: str  # "completed" | "failed" | "timed_out"
    exit_code: int
    job: ReviewJob | None = None


def submit(store, request: ReviewRequest, spawn: Callable[[str], Any] | None = None) -> JobHandle:
    """Create-and-spawn, or reuse the job already registered under the request's key.

    Pending, running, and completed jobs are reused as-is (attach to observe
    them). Failed or absent jobs are (re)created and ``spawn(key)`` is called
    to start a worker for them.
    """
    key = request.job_key
    try:
        existing = store.load(key)
    except JobNotFoundError:
        existing = None
    except JobCorruptError as e:
        logger.warning("Existing job record %s is unreadable and will be replaced: %s", key, e)
        existing = None

    if existing is not None and existing.status != JobStatus.FAILED:
        logger.debug("Reusing %s job %s", existing.status, key)
        return JobHandle(key=key, created=False)

    try:
        store.create(request)
    except JobExistsError:
        logger.debug("Job %s was created concurrently; attaching instead", key)
        return JobHandle(key=key, created=False)

    if existing is not None:
        logger.debug("Re-submitting previously failed job %s", key)
    if spawn is not None:
        spawn(key)
    return JobHandle(key=key, created=True)


def outcome_for(job: ReviewJob) -> AttachOutcome | None:
    """Outcome of a terminal job, None while it is still pending or running."""
    if job.status == JobStatus.COMPLETED:
        passed = job.result is not None and job.result.status == "pass"
        return AttachOutcome(ATTACH_COMPLETED, EXIT_PASS if passed else EXIT_BLOCK, job)
    if job.status == JobStatus.FAILED:
        return AttachOutcome(ATTACH_FAILED, EXIT_ERROR, job)
    return None


def attach(
    store,
    key: str,
    timeout: float | None = None,
    poll_interval: float = 1.0,
    queued_exit_code: int = EXIT_QUEUED,
    console: Console | None = None,
    on_event: Callable[[str], None] | None = None,
) -> AttachOutcome:
    """Tail the job under ``key`` until it is terminal or ``timeout`` seconds pass.

    Status changes and new log lines are printed as observed (and passed to
    ``on_event`` when given). On timeout the worker keeps going and a later
    attach to the same key sees the eventual outcome.
    """
    console = console or Console()

    def emit(message: str, style: str | None = None) -> None:
        text = escape(message)
        console.print(f"[{style}]{text}[/{style}]" if style else text)
        if on_event is not None:
            on_event(message)

    deadline = time.monotonic() + timeout if timeout is not None else None
    last_status: JobStatus | None = None
    seen_lines = 0

    while True:
        job = store.load(key)

        if job.status != last_status:
            emit(f"Job {key}: {job.status}", "cyan")
            last_status = job.status
        for line in job.log[seen_lines:]:
            emit(line, "dim")
        seen_lines = len(job.log)

        outcome = outcome_for(job)
        if outcome is not None:
            if job.status == JobStatus.FAILED:
                emit(f"Review failed: {job.error or 'unknown error'}", "red")
            elif job.result is not None:
                print_review(console, job.result, job.review_path)
            return outcome

        if deadline is not None and time.monotonic() >= deadline:
            emit(
                f"Job {key} is still {job.status} after {timeout:g}s. "
                f"It keeps running; re-attach with: revgate attach {key}",
                "yellow",
            )
            return AttachOutcome(ATTACH_TIMED_OUT, queued_exit_code, job)

        time.sleep(poll_interval)

