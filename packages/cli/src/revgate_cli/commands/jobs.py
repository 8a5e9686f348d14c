"""jobs command: list recent review jobs from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()

_STATUS_STYLE = {
    "pending": "yellow",
    "running": "cyan",
    "completed": "green",
    "failed": "red",
}


def _range_label(request) -> str:
    old = (request.old_revision or "")[:7]
    new = (request.new_revision or "")[:7]
    return f"{old}..{new}"


@click.command("jobs")
@click.option("--limit", default=20, show_default=True, help="Maximum number of jobs to show.")
@click.pass_context
def jobs_cmd(ctx, limit: int):
    """Show recent review jobs, newest first."""
    jobs = ctx.obj["store"].list_jobs(limit=limit)
    if not jobs:
        console.print("[yellow]No review jobs found.[/yellow]")
        return

    table = Table(title="Review jobs", show_header=True, header_style="bold cyan")
    table.add_column("Key", style="bold", no_wrap=True)
    table.add_column("Status", width=10)
    table.add_column("Kind", width=7)
    table.add_column("Ref / Range", max_width=40)
    table.add_column("Decision", width=8)
    table.add_column("Created At", width=20)

    for job in jobs:
        style = _STATUS_STYLE.get(str(job.status), "white")
        decision = job.result.status if job.result is not None else ""
        if job.error and not decision:
            decision = "error"
        table.add_row(
            job.key,
            f"[{style}]{job.status}[/{style}]",
            job.request.kind,
            escape(job.request.ref or _range_label(job.request)),
            decision,
            job.request.created_at[:19].replace("T", " "),
        )

    console.print(table)
