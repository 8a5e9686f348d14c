"""CLI entry point for revgate.

Commands:
  review        review the staged changes before a commit
  review-range  review an <old>..<new> revision range
  pre-receive   gate a batch of pushed ref updates (server-side hook)
  attach        tail a queued or running review job
  show-review   print a stored review (latest by default)
  jobs          list recent review jobs
  context       set, show, or clear the owner-provided reviewer context
  worker        (hidden) detached worker process entry point
"""

from __future__ import annotations

import importlib.metadata
import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from revgate_cli.commands.attach import attach_cmd
from revgate_cli.commands.context import context_cmd
from revgate_cli.commands.jobs import jobs_cmd
from revgate_cli.commands.pre_receive import pre_receive_cmd
from revgate_cli.commands.review import review_cmd, review_range_cmd
from revgate_cli.commands.show_review import show_review_cmd
from revgate_cli.commands.worker import worker_cmd
from revgate_core.errors import RevgateError
from revgate_core.git.change_source import ChangeSource

console = Console()
err_console = Console(stderr=True)


def _build_store(config, data_dir: str):
    """Instantiate the configured job store.

    Store selection:
      store: sqlite → SQLiteJobStore (store_path, or <data dir>/revgate.db)
      (default)     → FileJobStore   (store_path, or the data dir itself)

    This factory lives in cli.py so neither revgate_core nor revgate_store
    know about the CLI config format.
    """
    if config.store == "sqlite":
        from revgate_store.sqlite import SQLiteJobStore

        db_path = config.store_path or os.path.join(data_dir, "revgate.db")
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        return SQLiteJobStore(db_path=db_path)

    from revgate_store.filesystem import FileJobStore

    return FileJobStore(config.store_path or data_dir)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


class RevgateGroup(click.Group):
    """Turns RevgateError into a one-line message and the error's exit code."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except RevgateError as e:
            err_console.print(f"[red]Error:[/red] {escape(str(e))}")
            ctx.exit(e.exit_code)


def _package_version() -> str:
    try:
        return importlib.metadata.version("revgate")
    except importlib.metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(cls=RevgateGroup)
@click.version_option(version=_package_version(), prog_name="revgate")
@click.option(
    "--config",
    "config_path",
    default=".revgate.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="REVGATE_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Gate commits and pushes on an AI code review."""
    from revgate_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)
    source = ChangeSource()
    data_dir = source.data_dir()

    store = _build_store(config, data_dir)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = os.path.abspath(config_path) if os.path.exists(config_path) else None
    ctx.obj["source"] = source
    ctx.obj["data_dir"] = data_dir
    ctx.obj["store"] = store
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(review_range_cmd)
main.add_command(pre_receive_cmd)
main.add_command(attach_cmd)
main.add_command(show_review_cmd)
main.add_command(jobs_cmd)
main.add_command(context_cmd)
main.add_command(worker_cmd)
