"""Background review worker.

``run_worker`` executes one pending job to completion inside the current
process. ``spawn_worker`` starts it as a detached process that outlives the
invoker, so a developer can close the terminal or an attach can time out
without interrupting the review.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from typing import TYPE_CHECKING

from rich.console import Console

from revgate_core.errors import EXIT_BLOCK, EXIT_ERROR, EXIT_PASS, RevgateError
from revgate_core.models import JobStatus
from revgate_core.report import print_review
from revgate_core.request import build_messages
from revgate_core.reviewer import get_reviewer

if TYPE_CHECKING:
    from revgate_core.config import ReviewConfig
    from revgate_core.providers.base import BaseReviewer

logger = logging.getLogger(__name__)

START_LINE = "Starting review worker."


def _refuse(job, console: Console) -> int:
    logger.warning("Job %s is %s, not pending; refusing to run it", job.key, job.status)
    console.print(f"[yellow]Job {job.key} is {job.status}; nothing to run.[/yellow]")
    return EXIT_ERROR


def run_worker(store, key: str, reviewer: BaseReviewer, console: Console | None = None) -> int:
    """Run the job stored under ``key`` and return the process exit code.

    0 for a ``pass`` decision, 1 for ``block``, otherwise the error's exit
    code (2 for validation and unexpected failures). Any failure after the
    job is claimed marks it ``failed`` with the error message.
    """
    console = console or Console()
    job = store.load(key)
    if job.status != JobStatus.PENDING:
        return _refuse(job, console)

    # Claiming the job can fail on a lost race; the winner owns the record.
    store.update(job, status=JobStatus.RUNNING)

    try:
        store.append_log(job, START_LINE)
        messages = build_messages(job.request)
        store.append_log(job, f"Requesting review from {job.request.model or 'default model'}.")
        review = reviewer.review(messages)
        review_path = store.save_review(job, review)
        store.append_log(job, f"Review stored at {review_path}")
        store.update(job, status=JobStatus.COMPLETED, result=review, review_path=review_path)
    except Exception as e:
        exit_code = e.exit_code if isinstance(e, RevgateError) else EXIT_ERROR
        logger.error("Review job %s failed: %s", key, e, exc_info=not isinstance(e, RevgateError))
        try:
            store.update(job, status=JobStatus.FAILED, error=str(e) or e.__class__.__name__)
        except RevgateError as store_error:
            logger.error("Could not record failure of job %s: %s", key, store_error)
        console.print(f"[red]Review failed:[/red] {e}")
        return exit_code

    print_review(console, review, review_path)
    return EXIT_PASS if review.status == "pass" else EXIT_BLOCK


def worker_log_path(data_dir: str, key: str) -> str:
    return os.path.join(data_dir, "logs", f"{key}.log")


def spawn_worker(key: str, cwd: str, data_dir: str, config_path: str | None = None) -> int:
    """Launch ``python -m revgate_cli worker <key>`` detached and return its pid.

    The child gets its own session, no stdin, and appends its output to
    ``<data>/logs/<key>.log``.
    """
    log_path = worker_log_path(data_dir, key)
    os.makedirs(os.path.dirname(log_path), exist_ok=True)

    args = [sys.executable, "-m", "revgate_cli"]
    if config_path:
        args += ["--config", config_path]
    args += ["worker", key]

    with open(log_path, "ab") as log_file:
        process = subprocess.Popen(
            args,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
    logger.debug("Spawned worker pid %d for job %s (log: %s)", process.pid, key, log_path)
    return process.pid


def execute_job(store, key: str, config: ReviewConfig, console: Console | None = None) -> int:
    """Worker entry point: build the provider for the job's model, then run it.

    A job whose provider cannot be built (missing key or SDK) is marked
    ``failed`` rather than left pending forever.
    """
    console = console or Console()
    job = store.load(key)
    if job.status != JobStatus.PENDING:
        return _refuse(job, console)

    try:
        reviewer = get_reviewer(config, model=job.request.model or None, extra_params=job.request.extra_params)
    except (RevgateError, ImportError) as e:
        logger.error("Cannot start review job %s: %s", key, e)
        store.update(job, status=JobStatus.FAILED, error=str(e))
        console.print(f"[red]Review failed:[/red] {e}")
        return e.exit_code if isinstance(e, RevgateError) else EXIT_ERROR
    return run_worker(store, key, reviewer, console)
