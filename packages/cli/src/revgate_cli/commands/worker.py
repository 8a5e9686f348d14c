"""worker command: detached process that runs one review job."""

from __future__ import annotations

import click
from rich.console import Console

from revgate_core.worker import execute_job

console = Console()


@click.command("worker", hidden=True)
@click.argument("key")
@click.pass_context
def worker_cmd(ctx, key: str):
    """Run the pending job KEY to completion."""
    ctx.exit(execute_job(ctx.obj["store"], key, ctx.obj["config"], console))
