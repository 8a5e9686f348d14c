"""show-review command: print a stored review."""

from __future__ import annotations

import click
from rich.console import Console

from revgate_core.report import print_request_summary, print_review

console = Console()


@click.command("show-review")
@click.argument("filename", required=False)
@click.pass_context
def show_review_cmd(ctx, filename: str | None):
    """Show the review FILENAME (e.g. <job key>.json), or the latest one."""
    try:
        artifact = ctx.obj["store"].load_review(filename)
    except ValueError as e:
        raise click.UsageError(str(e))

    request = artifact.request
    header = f"Review {artifact.name}"
    if request.ref:
        header += f" ({request.ref})"
    print_request_summary(console, header, request)
    print_review(console, artifact.review)
