"""Review data models.

Plain dataclasses for the values the pipeline produces and persists, and
pydantic models for the model's decision payload. The decision is a tagged
variant over ``status`` so the blockers-imply-block rule holds for every
``FinalReview`` that exists, not just the ones somebody remembered to check.

Persisted shapes:
  job record      {key, status, request, log, result?, error?, reviewPath?}
  review artifact {review, request}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, TypeAdapter, field_validator


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Change and context values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiffSummary:
    files: int = 0
    additions: int = 0
    deletions: int = 0
    bytes: int = 0


@dataclass(frozen=True)
class ContextFile:
    path: str
    content: str
    truncated: bool = False


@dataclass(frozen=True)
class SecretMatch:
    """One pattern hit. Never persisted. The pre-flight either aborts or redacts."""

    pattern: str
    line: int
    excerpt: str


@dataclass(frozen=True)
class ReviewRequest:
    """Everything one review needs, captured once and never mutated.

    The worker rebuilds the model messages from this record alone, so the
    base prompt, reviewer intent, and model settings are snapshotted here
    rather than re-read when the worker starts.
    """

    kind: str  # "staged" | "range"
    diff: str
    summary: DiffSummary
    job_key: str
    old_revision: str | None = None
    new_revision: str | None = None
    ref: str | None = None
    objective: str | None = None
    context_files: list[ContextFile] = field(default_factory=list)
    omitted_context: list[str] = field(default_factory=list)
    manifest: str | None = None
    max_context_bytes: int = 200_000
    project_context: list[str] = field(default_factory=list)
    commit_messages: list[str] = field(default_factory=list)
    redacted: bool = False
    base_prompt: str = ""
    reviewer_intent: str | None = None
    model: str = ""
    extra_params: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Decision (wire contract with the model provider)
# ---------------------------------------------------------------------------


class Blocker(BaseModel):
    """One file/line-located objection that forces a ``block`` decision."""

    model_config = ConfigDict(frozen=True)

    rule: StrictStr
    title: StrictStr
    file: StrictStr
    line_start: StrictInt
    line_end: StrictInt
    why: StrictStr
    suggested_fix: StrictStr | None = None


class PassReview(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["pass"]
    blockers: list[Blocker]
    notes: list[StrictStr]

    @field_validator("blockers")
    @classmethod
    def _no_blockers(cls, value: list[Blocker]) -> list[Blocker]:
        if value:
            raise ValueError('status must be "block" when blockers are present')
        return value


class BlockReview(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["block"]
    blockers: list[Blocker]
    notes: list[StrictStr]


FinalReview = Annotated[Union[PassReview, BlockReview], Field(discriminator="status")]

FINAL_REVIEW_ADAPTER: TypeAdapter = TypeAdapter(FinalReview)


def review_to_dict(review: PassReview | BlockReview) -> dict:
    return review.model_dump(exclude_none=True)


def review_from_dict(data: dict) -> PassReview | BlockReview:
    return FINAL_REVIEW_ADAPTER.validate_python(data)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def validate_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise ValueError unless ``current -> target`` is a legal job transition.

    Re-setting the same non-terminal status is allowed so log appends and
    field merges can go through ``update`` without a status change.
    """
    if current == target and current not in TERMINAL_STATUSES:
        return
    if target not in VALID_TRANSITIONS[current]:
        raise ValueError(f"Invalid transition: {current} -> {target}")


@dataclass
class ReviewJob:
    key: str
    request: ReviewRequest
    status: JobStatus = JobStatus.PENDING
    log: list[str] = field(default_factory=list)
    result: PassReview | BlockReview | None = None
    error: str | None = None
    review_path: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class ReviewArtifact:
    """A persisted review plus the request that produced it."""

    name: str
    review: PassReview | BlockReview
    request: ReviewRequest


# ---------------------------------------------------------------------------
# Pre-receive
# ---------------------------------------------------------------------------


def is_null_oid(oid: str) -> bool:
    """True for git's all-zero object id (40 or 64 hex digits)."""
    return bool(oid) and set(oid) == {"0"}


@dataclass(frozen=True)
class RefUpdate:
    old: str
    new: str
    ref: str

    @property
    def is_deletion(self) -> bool:
        return is_null_oid(self.new)

    @property
    def is_new_ref(self) -> bool:
        return is_null_oid(self.old)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def request_to_dict(request: ReviewRequest) -> dict:
    return asdict(request)


def request_from_dict(data: dict) -> ReviewRequest:
    payload = dict(data)
    payload["summary"] = DiffSummary(**payload.get("summary", {}))
    payload["context_files"] = [ContextFile(**f) for f in payload.get("context_files", [])]
    return ReviewRequest(**payload)


def job_to_dict(job: ReviewJob) -> dict:
    data: dict[str, Any] = {
        "key": job.key,
        "status": str(job.status),
        "request": request_to_dict(job.request),
        "log": list(job.log),
    }
    if job.result is not None:
        data["result"] = review_to_dict(job.result)
    if job.error is not None:
        data["error"] = job.error
    if job.review_path is not None:
        data["reviewPath"] = job.review_path
    return data


def job_from_dict(data: dict) -> ReviewJob:
    result = data.get("result")
    return ReviewJob(
        key=data["key"],
        status=JobStatus(data["status"]),
        request=request_from_dict(data["request"]),
        log=list(data.get("log", [])),
        result=review_from_dict(result) if result is not None else None,
        error=data.get("error"),
        review_path=data.get("reviewPath"),
    )
