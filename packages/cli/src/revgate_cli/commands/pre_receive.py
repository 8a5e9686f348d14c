"""pre-receive command: gate every pushed ref update in a git pre-receive hook."""

from __future__ import annotations

from dataclasses import replace

import click
from rich.console import Console

from revgate_cli.commands.review import build_options, review_options, runners
from revgate_core.prereceive import (
    AggregatePolicy,
    RefFilter,
    aggregate,
    parse_updates,
    render_summary,
    updates_from_triples,
)
from revgate_core.reviewer import run_review

console = Console()


@click.command("pre-receive")
@click.argument("triples", nargs=-1)
@review_options
@click.option("--default-branch", "default_branch", default=None, help="Base branch for new refs. [default: main]")
@click.option("--include", multiple=True, help="Extra ref glob to review (refs/heads/* is always included).")
@click.option("--exclude", multiple=True, help="Ref glob to skip (refs/tags/* is skipped by default).")
@click.option("--include-tags", "include_tags", is_flag=True, help="Review tag updates too.")
@click.option("--max-diff-bytes", "max_diff_bytes", type=int, default=None, help="Reject updates with larger diffs.")
@click.option("--continue-on-fail", "continue_on_fail", is_flag=True, help="Review every update, then fail if any failed.")
@click.pass_context
def pre_receive_cmd(
    ctx,
    triples: tuple[str, ...],
    objective,
    project_context,
    preview,
    dry_run,
    allow_secrets,
    inline,
    timeout,
    default_branch: str | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    include_tags: bool,
    max_diff_bytes: int | None,
    continue_on_fail: bool,
):
    """Review pushed updates given as <old> <new> <ref> TRIPLES or on stdin.

    \b
    Install as .git/hooks/pre-receive:
      #!/bin/sh
      exec revgate pre-receive --continue-on-fail
    """
    config = ctx.obj["config"]

    if triples:
        try:
            updates = updates_from_triples(triples)
        except ValueError as e:
            raise click.UsageError(str(e))
    else:
        stdin = click.get_text_stream("stdin")
        updates = [] if stdin.isatty() else parse_updates(stdin)

    if not updates:
        console.print("[dim]revgate: no updates provided to pre-receive[/dim]")
        ctx.exit(0)

    policy = AggregatePolicy(
        ref_filter=RefFilter(include=list(include), exclude=list(exclude), include_tags=include_tags),
        default_branch=default_branch or config.default_branch,
        max_diff_bytes=max_diff_bytes if max_diff_bytes and max_diff_bytes > 0 else config.max_diff_bytes,
        continue_on_fail=continue_on_fail,
    )
    options = build_options(objective, project_context, preview, dry_run, allow_secrets, inline, timeout)
    spawn, run_inline = runners(ctx)
    source = ctx.obj["source"]

    def review_one(base: str, new: str, ref: str) -> int:
        return run_review(
            source,
            ctx.obj["store"],
            config,
            "range",
            base,
            new,
            replace(options, ref=ref),
            console=console,
            spawn=spawn,
            run_inline=run_inline,
            data_dir=ctx.obj["data_dir"],
        )

    result = aggregate(updates, source, review_one, policy, console=console)
    render_summary(console, result)
    ctx.exit(result.exit_code)
