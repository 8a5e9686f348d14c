"""context command: manage the owner-provided reviewer context."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape

from revgate_core.intent import clear_intent, get_intent, set_intent

console = Console()


@click.command("context")
@click.argument("message", nargs=-1)
@click.option("--show", is_flag=True, help="Print the current context.")
@click.option("--clear", is_flag=True, help="Remove the current context.")
@click.pass_context
def context_cmd(ctx, message: tuple[str, ...], show: bool, clear: bool):
    """Set MESSAGE as authoritative context for every later review.

    With no MESSAGE the current context is shown.
    """
    if clear and message:
        raise click.UsageError("--clear cannot be combined with a message.")

    data_dir = ctx.obj["data_dir"]

    if clear:
        if clear_intent(data_dir):
            console.print("[green]Reviewer context cleared.[/green]")
        else:
            console.print("[yellow]No reviewer context was set.[/yellow]")
        return

    if message and not show:
        text = " ".join(message).strip()
        if not text:
            raise click.UsageError("Context message is empty.")
        set_intent(data_dir, text)
        console.print("[green]Reviewer context saved.[/green]")
        return

    record = get_intent(data_dir)
    if record is None:
        console.print("[yellow]No reviewer context set.[/yellow]")
        return
    console.print(f"[dim]Set at {record.get('timestamp', 'unknown time')}[/dim]")
    console.print(escape(record["message"]))
