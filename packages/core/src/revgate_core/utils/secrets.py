"""Secret pre-flight scanning.

The scanner only reports and redacts. Whether a hit aborts the run is the
caller's policy (``apply_secret_policy``), which runs before any network call.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from revgate_core.errors import SecretsDetectedError
from revgate_core.models import ContextFile, SecretMatch

REDACTED = "[REDACTED]"

_EXCERPT_CHARS = 40
_VISIBLE_PREFIX = 6

# Extend by appending (pattern, label) pairs. The placeholder above must never
# match any pattern, otherwise redaction would stop being idempotent.
SECRET_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"api[_-]?key\s*[:=]\s*[\"']?[A-Za-z0-9_\-]{20,}[\"']?", re.IGNORECASE), "Generic API key"),
    (re.compile(r"secret\s*[:=]\s*[\"']?[A-Za-z0-9_\-]{16,}[\"']?", re.IGNORECASE), "Secret assignment"),
    (re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----"), "PEM private key"),
    (re.compile(r"ghp_[A-Za-z0-9]{20,}"), "GitHub token"),
    (re.compile(r"sk-[A-Za-z0-9_\-]{20,}"), "OpenAI secret key"),
    (re.compile(r"\bAKIA[0-9A-Z]{16}\b"), "AWS access key id"),
    (re.compile(r"xox[baprs]-[A-Za-z0-9\-]{10,}"), "Slack token"),
]


@dataclass
class ScanResult:
    matches: list[SecretMatch] = field(default_factory=list)
    redacted_text: str = ""


def _mask_window(text: str, lo: int, hi: int, spans: Sequence[tuple[int, int]]) -> str:
    """Return ``text[lo:hi]`` with every secret span inside it redacted."""
    out = []
    pos = lo
    for start, end in spans:
        if end <= pos or start >= hi:
            continue
        out.append(text[pos : max(start, pos)])
        out.append(REDACTED)
        pos = end
    if pos < hi:
        out.append(text[pos:hi])
    return "".join(out)


def _excerpt(text: str, start: int, end: int, spans: Sequence[tuple[int, int]]) -> str:
    """Short single-line excerpt with most of the secret masked and any other hit redacted."""
    secret = text[start:end]
    masked = secret[:_VISIBLE_PREFIX] + "…" if len(secret) > _VISIBLE_PREFIX else secret
    trailing = _mask_window(text, end, end + _EXCERPT_CHARS, spans)
    excerpt = re.sub(r"\s+", " ", masked + trailing).strip()
    return excerpt[:_EXCERPT_CHARS]


def scan(text: str) -> ScanResult:
    """Return every pattern hit (1-based line numbers) and a redacted copy of ``text``."""
    hits = [(m, label) for pattern, label in SECRET_PATTERNS for m in pattern.finditer(text)]
    spans = sorted(m.span() for m, _ in hits)

    matches: list[SecretMatch] = []
    for m, label in hits:
        line = text.count("\n", 0, m.start()) + 1
        matches.append(SecretMatch(pattern=label, line=line, excerpt=_excerpt(text, m.start(), m.end(), spans)))

    redacted = text
    if matches:
        for pattern, _ in SECRET_PATTERNS:
            redacted = pattern.sub(REDACTED, redacted)
    matches.sort(key=lambda m: m.line)
    return ScanResult(matches=matches, redacted_text=redacted)


def apply_secret_policy(
    diff: str,
    files: Sequence[ContextFile],
    allow_secrets: bool = False,
) -> tuple[str, list[ContextFile], bool]:
    """Scan the diff and every context file before anything leaves the machine.

    Without ``allow_secrets`` any hit raises SecretsDetectedError listing all
    of them. With it, the redacted text replaces every scanned artifact and
    the third return value (``redacted``) is True.
    """
    all_matches: list[SecretMatch] = []

    diff_scan = scan(diff)
    all_matches.extend(replace(m, pattern=f"{m.pattern} (diff)") for m in diff_scan.matches)

    scanned_files: list[ContextFile] = []
    for f in files:
        result = scan(f.content)
        if result.matches:
            all_matches.extend(replace(m, pattern=f"{m.pattern} ({f.path})") for m in result.matches)
            scanned_files.append(replace(f, content=result.redacted_text))
        else:
            scanned_files.append(f)

    if not all_matches:
        return diff, list(files), False
    if not allow_secrets:
        raise SecretsDetectedError(all_matches)
    return diff_scan.redacted_text, scanned_files, True
