"""Budgeted codebase context selection.

Context files are chosen by ordered glob patterns and packed greedily into a
fixed byte budget. Iteration order is fixed (patterns first, then tracked
paths in the order git lists them), so the same inputs always produce the
same context block. Job identity depends on this.

A file that does not fit is recorded as omitted and packing continues: a
later, smaller file may still fit. Glob priority wins over bin-packing
optimality.
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from revgate_core.models import ContextFile

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTEXT_BYTES = 200_000


@dataclass
class ManifestOptions:
    """Settings for the tracked-file listing prepended to the context.

    The listing is only produced when the whole repository is smaller than
    ``threshold_bytes`` and is capped at ``fraction`` of the context budget.
    """

    tracked_bytes: int
    threshold_bytes: int
    fraction: float = 0.5


@dataclass
class ContextSelection:
    files: list[ContextFile] = field(default_factory=list)
    omitted: list[str] = field(default_factory=list)
    manifest: str | None = None

    @property
    def used_bytes(self) -> int:
        total = sum(section_size(f.path, f.content) for f in self.files)
        if self.manifest:
            total += _byte_len(self.manifest)
        return total


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def format_section(path: str, content: str) -> str:
    return f"## {path}\n\n```\n{content}\n```"


def section_size(path: str, content: str) -> int:
    return _byte_len(format_section(path, content))


@functools.lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> re.Pattern:
    parts = []
    i, n = 0, len(pattern)
    while i < n:
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        elif pattern[i] == "[" and "]" in pattern[i + 2 :]:
            close = pattern.index("]", i + 2)
            body = pattern[i + 1 : close].replace("\\", "\\\\")
            if body[0] in "!^":
                body = "^" + body[1:]
            parts.append(f"(?!/)[{body}]")
            i = close + 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts))


def glob_matches(path: str, pattern: str) -> bool:
    """Match a tracked path against a glob, dot-files included.

    ``*`` and ``?`` stay within one path segment. ``**`` spans directories and
    ``**/`` also matches zero of them, so ``src/**/*.py`` covers ``src/a.py``.
    """
    return _glob_regex(pattern).fullmatch(path) is not None


def build_manifest(tracked_files: Sequence[str], max_bytes: int) -> str:
    """Return a plain listing of tracked paths no larger than ``max_bytes``.

    When capped, the last line reports how many paths were left out; the
    listing is trimmed further if needed so that line also fits.
    """
    header = "## Repository file manifest\n\n```\n"
    footer = "\n```"
    lines: list[str] = []
    size = _byte_len(header) + _byte_len(footer)
    for path in tracked_files:
        added = _byte_len(path) + (1 if lines else 0)
        if size + added > max_bytes:
            break
        lines.append(path)
        size += added
    else:
        return header + "\n".join(lines) + footer if lines else ""

    while lines:
        overflow = len(tracked_files) - len(lines)
        notice = f"... [{overflow} more files not shown]"
        rendered = header + "\n".join(lines + [notice]) + footer
        if _byte_len(rendered) <= max_bytes:
            return rendered
        lines.pop()
    return ""


def select_context(
    patterns: Sequence[str],
    tracked_files: Sequence[str],
    read_file: Callable[[str], str],
    max_bytes: int = DEFAULT_MAX_CONTEXT_BYTES,
    manifest: ManifestOptions | None = None,
) -> ContextSelection:
    """Greedily pack matching tracked files into ``max_bytes``.

    ``read_file`` raising FileNotFoundError or IsADirectoryError means the
    path vanished or is a directory; those are skipped silently. Any other
    read failure is logged and skipped.
    """
    selection = ContextSelection()
    used = 0

    if manifest is not None and manifest.tracked_bytes < manifest.threshold_bytes and tracked_files:
        listing = build_manifest(tracked_files, int(max_bytes * manifest.fraction))
        if listing:
            selection.manifest = listing
            used += _byte_len(listing)

    if not patterns:
        return selection

    seen: set[str] = set()
    for pattern in patterns:
        for path in tracked_files:
            if path in seen or not glob_matches(path, pattern):
                continue
            seen.add(path)
            try:
                content = read_file(path)
            except (FileNotFoundError, IsADirectoryError):
                continue
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Failed to read context file %r: %s", path, e)
                continue
            if "\x00" in content:
                logger.debug("Skipping binary context file %s", path)
                continue

            size = section_size(path, content)
            if used + size > max_bytes:
                selection.omitted.append(path)
                continue
            used += size
            selection.files.append(ContextFile(path=path, content=content))

    return selection


def render_context_block(
    files: Sequence[ContextFile],
    omitted: Sequence[str],
    manifest: str | None,
    max_bytes: int,
) -> str:
    """Render the labelled context block placed in the system message.

    Returns "" when there is nothing to show, so the system message carries
    no empty section headers.
    """
    sections = []
    if manifest:
        sections.append(manifest)
    sections.extend(format_section(f.path, f.content) for f in files)

    parts = []
    if sections:
        parts.append("CODEBASE CONTEXT:\n\n" + "\n\n".join(sections))
    if omitted:
        parts.append(
            "[NOTE: The following files were omitted because including them would exceed the "
            f"{max_bytes} byte context limit: {', '.join(omitted)}]"
        )
    return "\n\n".join(parts)
