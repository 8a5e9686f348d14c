"""attach command: follow a review job until it finishes."""

from __future__ import annotations

import click
from rich.console import Console

from revgate_core.attach import attach

console = Console()


@click.command("attach")
@click.argument("key")
@click.option("--timeout", type=float, default=None, help="Stop waiting after this many seconds.")
@click.pass_context
def attach_cmd(ctx, key: str, timeout: float | None):
    """Tail the job KEY, printing its log until it completes or fails.

    Timing out only stops this client; the job keeps running and can be
    attached to again.
    """
    config = ctx.obj["config"]
    outcome = attach(
        ctx.obj["store"],
        key,
        timeout=timeout if timeout is not None else config.attach_timeout,
        poll_interval=config.poll_interval,
        queued_exit_code=config.queued_exit_code,
        console=console,
    )
    ctx.exit(outcome.exit_code)
