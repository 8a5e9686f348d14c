"""Server-side gate over a batch of pushed ref updates.

Each update is filtered by ref name, given an effective base, checked
against the diff byte cap, and then reviewed as a range. Updates run one at
a time; the first failure stops the batch unless ``continue_on_fail`` is set.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from revgate_core.errors import EXIT_BLOCK, EXIT_PASS, RevgateError
from revgate_core.models import RefUpdate

if TYPE_CHECKING:
    from revgate_core.git.change_source import ChangeSource

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE = "refs/heads/*"
TAGS = "refs/tags/*"

UPDATE_SKIPPED = "skipped"
UPDATE_PASSED = "passed"
UPDATE_FAILED = "failed"
UPDATE_TOO_LARGE = "too_large"


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


def parse_updates(lines: Iterable[str]) -> list[RefUpdate]:
    """Parse ``<old> <new> <ref>`` lines as git feeds them to a pre-receive hook."""
    updates = []
    for lineno, line in enumerate(lines, start=1):
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 3:
            logger.warning("Ignoring malformed update line %d: %r", lineno, line.rstrip("\n"))
            continue
        updates.append(RefUpdate(old=parts[0], new=parts[1], ref=" ".join(parts[2:])))
    return updates


def updates_from_triples(args: Sequence[str]) -> list[RefUpdate]:
    """Build updates from positional ``old new ref`` triples."""
    if len(args) % 3:
        raise ValueError(f"Expected <old> <new> <ref> triples, got {len(args)} argument(s)")
    return [RefUpdate(old=args[i], new=args[i + 1], ref=args[i + 2]) for i in range(0, len(args), 3)]


# ---------------------------------------------------------------------------
# Ref filtering
# ---------------------------------------------------------------------------


def _glob_to_regex(pattern: str) -> re.Pattern:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.DOTALL)


def ref_matches(ref: str, patterns: Iterable[str]) -> bool:
    """True when ``ref`` matches any pattern. ``*`` matches across ``/``, ``?`` one character."""
    return any(_glob_to_regex(p).match(ref) for p in patterns)


@dataclass
class RefFilter:
    """Include/exclude ref globs. ``include`` and ``exclude`` extend the defaults."""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    include_tags: bool = False

    @property
    def include_patterns(self) -> list[str]:
        defaults = [DEFAULT_INCLUDE] + ([TAGS] if self.include_tags else [])
        return defaults + list(self.include)

    @property
    def exclude_patterns(self) -> list[str]:
        defaults = [] if self.include_tags else [TAGS]
        return defaults + list(self.exclude)

    def matches(self, ref: str) -> bool:
        return ref_matches(ref, self.include_patterns) and not ref_matches(ref, self.exclude_patterns)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


@dataclass
class AggregatePolicy:
    ref_filter: RefFilter = field(default_factory=RefFilter)
    default_branch: str = "main"
    max_diff_bytes: int = 800_000
    continue_on_fail: bool = False


@dataclass
class UpdateOutcome:
    update: RefUpdate
    base: str | None
    status: str  # "skipped" | "passed" | "failed" | "too_large"
    reason: str = ""


@dataclass
class AggregateResult:
    outcomes: list[UpdateOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[UpdateOutcome]:
        return [o for o in self.outcomes if o.status in (UPDATE_FAILED, UPDATE_TOO_LARGE)]

    @property
    def exit_code(self) -> int:
        return EXIT_BLOCK if self.failures else EXIT_PASS


def resolve_effective_base(source: ChangeSource, update: RefUpdate, default_branch: str) -> str:
    """Base revision to diff a pushed update against.

    An existing ref uses its old value. A new ref uses its merge-base with the
    default branch, or the empty tree when there is none (first push to an
    empty repository, unrelated history, or an unknown default branch).
    """
    if not update.is_new_ref:
        return update.old
    base = source.merge_base(default_branch, update.new)
    if base:
        return base
    logger.warning(
        "No merge-base between %s and %s; reviewing %s against the empty tree",
        default_branch,
        update.new,
        update.ref,
    )
    return source.empty_tree()


def aggregate(
    updates: Sequence[RefUpdate],
    source: ChangeSource,
    review_one: Callable[[str, str, str], int],
    policy: AggregatePolicy,
    console: Console | None = None,
) -> AggregateResult:
    """Gate every update and combine the results.

    ``review_one(base, new, ref)`` runs one range review and returns its exit
    code; anything other than 0 counts as a failed update.
    """
    console = console or Console()
    result = AggregateResult()

    for update in updates:
        if not policy.ref_filter.matches(update.ref):
            result.outcomes.append(UpdateOutcome(update, None, UPDATE_SKIPPED, "ref not selected by filters"))
            continue
        if update.is_deletion:
            result.outcomes.append(UpdateOutcome(update, None, UPDATE_SKIPPED, "ref deletion"))
            continue

        try:
            base = resolve_effective_base(source, update, policy.default_branch)
            old_label = "∅" if update.is_new_ref else source.short(update.old)
            console.print(f"revgate: reviewing {escape(update.ref)} {old_label}..{source.short(update.new)}")

            size = source.patch_size(base, update.new)
            if size > policy.max_diff_bytes:
                reason = (
                    f"diff is {size} bytes (max {policy.max_diff_bytes}). Split this push into smaller chunks."
                )
                console.print(f"[red]revgate: {escape(update.ref)}: {reason}[/red]")
                outcome = UpdateOutcome(update, base, UPDATE_TOO_LARGE, reason)
            else:
                code = review_one(base, update.new, update.ref)
                if code == EXIT_PASS:
                    outcome = UpdateOutcome(update, base, UPDATE_PASSED)
                else:
                    outcome = UpdateOutcome(update, base, UPDATE_FAILED, f"review exited with code {code}")
        except RevgateError as e:
            logger.error("Review of %s failed: %s", update.ref, e)
            outcome = UpdateOutcome(update, None, UPDATE_FAILED, str(e))

        result.outcomes.append(outcome)
        if outcome.status != UPDATE_PASSED and not policy.continue_on_fail:
            break

    return result


def render_summary(console: Console, result: AggregateResult) -> None:
    if not result.outcomes:
        console.print("[dim]revgate: no updates to review[/dim]")
        return

    table = Table(title="Pre-receive review", show_lines=False)
    table.add_column("Ref", style="cyan")
    table.add_column("Range")
    table.add_column("Result")
    table.add_column("Reason")

    styles = {
        UPDATE_PASSED: "green",
        UPDATE_SKIPPED: "dim",
        UPDATE_FAILED: "red",
        UPDATE_TOO_LARGE: "red",
    }
    for o in result.outcomes:
        old = "∅" if o.update.is_new_ref else o.update.old[:7]
        style = styles.get(o.status, "white")
        table.add_row(
            escape(o.update.ref),
            f"{old}..{o.update.new[:7]}",
            f"[{style}]{o.status}[/{style}]",
            escape(o.reason),
        )
    console.print(table)

    if result.failures:
        refs = ", ".join(escape(o.update.ref) for o in result.failures)
        console.print(f"[bold red]Push rejected: {len(result.failures)} update(s) failed review ({refs}).[/bold red]")
    else:
        console.print("[bold green]All reviewed updates passed.[/bold green]")
