"""review and review-range commands: review staged changes or a revision range."""

from __future__ import annotations

import click
from rich.console import Console

from revgate_core.request import ReviewOptions
from revgate_core.reviewer import run_review
from revgate_core.worker import execute_job, spawn_worker

console = Console()


def review_options(f):
    """Options shared by every command that runs a review."""
    options = [
        click.option("--objective", "-m", default=None, help="What the change is meant to do."),
        click.option(
            "--project-context",
            "project_context",
            multiple=True,
            help="Glob of tracked files to include as codebase context. Repeatable; overrides config.",
        ),
        click.option("--preview", is_flag=True, help="Print the exact messages that would be sent, then exit."),
        click.option("--dry-run", "dry_run", is_flag=True, help="Print the request summary without creating a job."),
        click.option(
            "--dangerously-allow-secrets",
            "allow_secrets",
            is_flag=True,
            help="Send the change even if potential secrets are found (they are redacted first).",
        ),
        click.option("--inline", is_flag=True, help="Run the review in this process instead of a background worker."),
        click.option(
            "--timeout",
            type=float,
            default=None,
            help="Stop waiting after this many seconds; the review keeps running in the background.",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def build_options(
    objective: str | None,
    project_context: tuple[str, ...],
    preview: bool,
    dry_run: bool,
    allow_secrets: bool,
    inline: bool,
    timeout: float | None,
    ref: str | None = None,
) -> ReviewOptions:
    return ReviewOptions(
        objective=objective,
        ref=ref,
        project_context=list(project_context) if project_context else None,
        preview=preview,
        dry_run=dry_run,
        allow_secrets=allow_secrets,
        inline=inline,
        timeout=timeout,
    )


def runners(ctx: click.Context):
    """Return (spawn, run_inline) callables bound to this invocation's store and config."""
    obj = ctx.obj
    store = obj["store"]
    config = obj["config"]

    def spawn(key: str) -> int:
        return spawn_worker(key, obj["source"].cwd, obj["data_dir"], obj.get("config_path"))

    def run_inline(key: str) -> int:
        return execute_job(store, key, config, console)

    return spawn, run_inline


def _run(ctx: click.Context, kind: str, old: str | None, new: str | None, options: ReviewOptions) -> int:
    spawn, run_inline = runners(ctx)
    return run_review(
        ctx.obj["source"],
        ctx.obj["store"],
        ctx.obj["config"],
        kind,
        old,
        new,
        options,
        console=console,
        spawn=spawn,
        run_inline=run_inline,
        data_dir=ctx.obj["data_dir"],
    )


@click.command("review")
@review_options
@click.pass_context
def review_cmd(ctx, objective, project_context, preview, dry_run, allow_secrets, inline, timeout):
    """Review the staged changes (the index against HEAD).

    \b
    Exit codes:
      0  pass, nothing to review, preview or dry run
      1  block, or potential secrets found
      2  error
      3  still queued when --timeout expired (configurable)
    """
    options = build_options(objective, project_context, preview, dry_run, allow_secrets, inline, timeout)
    ctx.exit(_run(ctx, "staged", None, None, options))


@click.command("review-range")
@click.argument("old")
@click.argument("new")
@click.option("--ref", default=None, help="Ref name the range was pushed to, shown to the reviewer.")
@review_options
@click.pass_context
def review_range_cmd(ctx, old, new, ref, objective, project_context, preview, dry_run, allow_secrets, inline, timeout):
    """Review the changes in OLD..NEW.

    An all-zero OLD reviews NEW against the empty tree. Without -m the
    objective is inferred from the commit messages in the range.
    """
    options = build_options(objective, project_context, preview, dry_run, allow_secrets, inline, timeout, ref=ref)
    ctx.exit(_run(ctx, "range", old, new, options))
