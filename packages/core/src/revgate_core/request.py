"""Request assembly: from a change to a frozen ReviewRequest and its messages.

``prepare_review`` does all the I/O (git, context files, secret pre-flight).
``build_messages`` and ``compute_job_key`` are pure functions of their inputs,
so a worker process rebuilds byte-identical messages from the persisted
request and the same change always maps to the same job.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from revgate_core.errors import GitError
from revgate_core.models import DiffSummary, ReviewRequest, is_null_oid
from revgate_core.utils.context import ManifestOptions, render_context_block, select_context
from revgate_core.utils.secrets import apply_secret_policy

if TYPE_CHECKING:
    from revgate_core.config import ReviewConfig
    from revgate_core.git.change_source import ChangeSource

logger = logging.getLogger(__name__)

JOB_KEY_LENGTH = 24

INTENT_HEADER = "CONTEXT PROVIDED BY PROJECT OWNER (AUTHORITATIVE):"
NEW_BRANCH_OBJECTIVE = "New branch push"

_MAX_COMMITS = 50
_MAX_SUBJECT_CHARS = 120
_MAX_BODY_LINES = 8
_MAX_BODY_BYTES = 1000
_MAX_OBJECTIVE_BYTES = 12000
_OBJECTIVE_HEADER = "Inferred from pushed commits:\n"
_MORE_COMMITS = "… [more commits omitted]"
_TRUNCATED = "… [truncated]"
# C0 controls and DEL, except tab and newline.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


@dataclass(frozen=True)
class ReviewMessages:
    system: str
    user: str


@dataclass
class ReviewOptions:
    """Per-invocation choices. ``project_context=None`` means use the configured globs."""

    objective: str | None = None
    ref: str | None = None
    project_context: list[str] | None = None
    preview: bool = False
    dry_run: bool = False
    allow_secrets: bool = False
    inline: bool = False
    timeout: float | None = None


# ---------------------------------------------------------------------------
# Messages and identity
# ---------------------------------------------------------------------------


def build_system_message(request: ReviewRequest) -> str:
    prompt = request.base_prompt.rstrip()
    block = render_context_block(
        request.context_files,
        request.omitted_context,
        request.manifest,
        request.max_context_bytes,
    )
    if block:
        prompt += f"\n\n{block}"
    if request.reviewer_intent:
        prompt += f"\n\n{INTENT_HEADER}\n{request.reviewer_intent}\n"
    return prompt


def build_user_message(request: ReviewRequest) -> str:
    parts = []
    if request.objective:
        parts.append(f"OBJECTIVE:\n{request.objective}")
    if request.ref:
        parts.append(f"REF:\n{request.ref}")
    if request.commit_messages:
        parts.append("RECENT COMMITS:\n" + "\n".join(f"- {m}" for m in request.commit_messages))
    summary = request.summary
    parts.append(
        f"CHANGE SUMMARY:\n{summary.files} file(s) changed, "
        f"{summary.additions} insertion(s), {summary.deletions} deletion(s)"
    )
    parts.append(f"DIFF TO REVIEW:\n{request.diff}")
    parts.append("Review this diff, and be uncompromising about quality standards.")
    return "\n\n".join(parts)


def build_messages(request: ReviewRequest) -> ReviewMessages:
    """Render the system and user messages for a request. Pure."""
    return ReviewMessages(system=build_system_message(request), user=build_user_message(request))


def compute_job_key(
    base: str,
    new: str,
    model: str,
    extra_params: dict[str, Any],
    globs: Sequence[str],
    system_message: str,
) -> str:
    """Deterministic job identity.

    The objective is not part of the key: re-running with a reworded
    objective attaches to the existing job instead of paying for a new one.
    """
    payload = {
        "base": base,
        "new": new,
        "model": model,
        "extra_params": extra_params,
        "globs": list(globs),
        "system": hashlib.sha256(system_message.encode("utf-8")).hexdigest(),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:JOB_KEY_LENGTH]


# ---------------------------------------------------------------------------
# Objective inference
# ---------------------------------------------------------------------------


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _truncate_bytes(text: str, max_bytes: int) -> str:
    if _byte_len(text) <= max_bytes:
        return text
    return text.encode("utf-8")[: max(0, max_bytes)].decode("utf-8", errors="ignore")


def _clamp_subject(subject: str) -> str:
    if len(subject) > _MAX_SUBJECT_CHARS:
        return subject[: _MAX_SUBJECT_CHARS - 1] + "…"
    return subject


def _render_commit(commit_hash: str, message: str) -> str:
    lines = _CONTROL_CHARS.sub("", message).split("\n")
    subject = _clamp_subject(lines[0].strip() or "<no subject>")

    body: list[str] = []
    for line in (ln.rstrip() for ln in lines[1:]):
        # Drop leading blank lines and collapse runs of blank lines.
        if not line.strip() and (not body or not body[-1].strip()):
            continue
        body.append(line)
    while body and not body[-1].strip():
        body.pop()

    limited: list[str] = []
    used = 0
    truncated = False
    for line in body:
        if len(limited) >= _MAX_BODY_LINES:
            truncated = True
            break
        text = _truncate_bytes(line, _MAX_BODY_BYTES - used)
        used += _byte_len(text)
        limited.append(text)
        if used >= _MAX_BODY_BYTES:
            truncated = True
            break
    if truncated:
        limited.append(_TRUNCATED)

    indented = "\n  " + "\n  ".join(limited) if limited else ""
    return f"{commit_hash} {subject}{indented}"


def infer_objective(commits: Sequence[tuple[str, str]]) -> str | None:
    """Summarise pushed commits as a review objective.

    One bullet per commit (short hash, subject, a few body lines), bounded in
    total size. Returns None when there are no commits.
    """
    if not commits:
        return None

    bullets: list[str] = []
    total = _byte_len(_OBJECTIVE_HEADER)
    for commit_hash, message in list(commits)[:_MAX_COMMITS]:
        bullet = _render_commit(commit_hash, message)
        candidate = total + _byte_len("- " if not bullets else "\n- ") + _byte_len(bullet)
        if candidate > _MAX_OBJECTIVE_BYTES:
            break
        bullets.append(bullet)
        total = candidate

    if not bullets:
        return "Pushed commits (details omitted due to size)"

    rendered = "- " + "\n- ".join(bullets)
    if len(commits) > len(bullets):
        more = f"\n- {_MORE_COMMITS}"
        if total + _byte_len(more) <= _MAX_OBJECTIVE_BYTES:
            rendered += more
    return _OBJECTIVE_HEADER + rendered


def _range_objective(source: ChangeSource, base: str, new: str) -> str | None:
    try:
        return infer_objective(source.commit_log(base, new, max_count=_MAX_COMMITS))
    except GitError as e:
        logger.warning("Failed to infer objective from git log for range %s..%s: %s", base, new, e)
        return None


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def prepare_review(
    source: ChangeSource,
    config: ReviewConfig,
    kind: str,
    old: str | None = None,
    new: str | None = None,
    options: ReviewOptions | None = None,
    intent: str | None = None,
    base_prompt: str = "",
) -> ReviewRequest | None:
    """Collect everything one review needs and freeze it into a ReviewRequest.

    ``kind`` is ``"staged"`` (the index against HEAD, or the empty tree on an
    unborn branch) or ``"range"`` (``old..new``; a null or missing ``old``
    means a brand-new ref reviewed against the empty tree).

    Returns None when the change is empty. Raises SecretsDetectedError when
    the pre-flight finds secrets and ``options.allow_secrets`` is False, so
    nothing reaches the provider or the job store.
    """
    options = options or ReviewOptions()
    objective = options.objective
    commit_messages: list[str] = []

    if kind == "staged":
        base = source.head_or_empty_tree()
        target = source.write_index_tree()
        diff = source.diff(staged=True)
        files, additions, deletions = source.diff_summary(staged=True)
    elif kind == "range":
        if not new:
            raise ValueError("A range review needs a new revision")
        new_ref = old is None or is_null_oid(old)
        base = source.empty_tree() if new_ref else old
        target = new
        diff = source.diff(base, target)
        files, additions, deletions = source.diff_summary(base, target)
        if new_ref:
            objective = objective or NEW_BRANCH_OBJECTIVE
        else:
            commit_messages = source.commit_subjects(base, target)
            objective = objective or _range_objective(source, base, target)
    else:
        raise ValueError(f"Unknown review kind: {kind!r}")

    if not diff.strip():
        return None

    patterns = list(config.project_context if options.project_context is None else options.project_context)
    manifest_options = None
    tracked: list[str] = []
    if patterns or config.manifest_threshold_bytes > 0:
        tracked = source.tracked_files(target)
    if config.manifest_threshold_bytes > 0:
        manifest_options = ManifestOptions(
            tracked_bytes=source.tracked_bytes(target),
            threshold_bytes=config.manifest_threshold_bytes,
            fraction=config.manifest_fraction,
        )

    selection = select_context(
        patterns,
        tracked,
        lambda path: source.read_file(path, target),
        config.max_context_bytes,
        manifest_options,
    )
    if selection.omitted:
        logger.warning(
            "%d context file(s) omitted to stay within %d bytes", len(selection.omitted), config.max_context_bytes
        )

    diff, context_files, redacted = apply_secret_policy(diff, selection.files, options.allow_secrets)

    request = ReviewRequest(
        kind=kind,
        diff=diff,
        summary=DiffSummary(files=files, additions=additions, deletions=deletions, bytes=_byte_len(diff)),
        job_key="",
        old_revision=base,
        new_revision=target,
        ref=options.ref,
        objective=objective,
        context_files=context_files,
        omitted_context=list(selection.omitted),
        manifest=selection.manifest,
        max_context_bytes=config.max_context_bytes,
        project_context=patterns,
        commit_messages=commit_messages,
        redacted=redacted,
        base_prompt=base_prompt,
        reviewer_intent=intent,
        model=config.resolved_model,
        extra_params=dict(config.extra_params),
    )
    key = compute_job_key(
        base,
        target,
        request.model,
        request.extra_params,
        request.project_context,
        build_system_message(request),
    )
    return replace(request, job_key=key)
