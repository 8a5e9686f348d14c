"""Single-review orchestration: prepare, pre-flight, submit, then run or attach."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from rich.console import Console
from rich.markup import escape

from revgate_core.attach import attach, submit
from revgate_core.config import ReviewConfig, load_system_prompt
from revgate_core.errors import EXIT_PASS, ConfigError, SecretsDetectedError
from revgate_core.git.change_source import ChangeSource
from revgate_core.intent import get_intent
from revgate_core.models import ReviewRequest, is_null_oid
from revgate_core.providers.anthropic import AnthropicReviewer
from revgate_core.providers.base import BaseReviewer
from revgate_core.providers.openai import OpenAIReviewer
from revgate_core.report import print_preview, print_request_summary
from revgate_core.request import ReviewOptions, build_messages, prepare_review

logger = logging.getLogger(__name__)


def get_reviewer(
    config: ReviewConfig,
    model: str | None = None,
    extra_params: dict[str, Any] | None = None,
) -> BaseReviewer:
    """Build the configured provider client.

    ``model`` and ``extra_params`` override the config; the worker passes the
    values snapshotted in the request so a job runs with the settings it was
    keyed on.
    """
    if not config.api_key:
        raise ConfigError(
            "No API key configured. Set REVGATE_API_KEY "
            f"(or {'ANTHROPIC_API_KEY' if config.provider == 'anthropic' else 'OPENAI_API_KEY'})."
        )
    kwargs = {
        "api_key": config.api_key,
        "model": model or config.resolved_model,
        "base_url": config.base_url,
        "extra_params": config.extra_params if extra_params is None else extra_params,
    }
    if config.provider == "anthropic":
        return AnthropicReviewer(**kwargs)
    if config.provider == "openai":
        return OpenAIReviewer(**kwargs)
    raise ConfigError(f"Unknown model provider: {config.provider!r}. Choose 'openai' or 'anthropic'.")


def _request_header(source: ChangeSource, request: ReviewRequest, old: str | None) -> str:
    if request.kind == "staged":
        return "Requesting review of staged changes"
    short_old = "∅" if old is None or is_null_oid(old) else source.short(old)
    short_new = source.short(request.new_revision or "")
    on_ref = f" on {request.ref}" if request.ref else ""
    return f"Requesting review of pushed range {short_old}..{short_new}{on_ref}"


def run_review(
    source: ChangeSource,
    store,
    config: ReviewConfig,
    kind: str,
    old: str | None = None,
    new: str | None = None,
    options: ReviewOptions | None = None,
    console: Console | None = None,
    spawn: Callable[[str], Any] | None = None,
    run_inline: Callable[[str], int] | None = None,
    data_dir: str | None = None,
) -> int:
    """Run one review end to end and return the process exit code.

    Exit codes: 0 pass (or nothing to review, preview, dry run), 1 block or
    secrets found, 2 failure, ``config.queued_exit_code`` when the attach
    timed out with the job still queued or running.

    ``spawn(key)`` starts a detached worker; ``run_inline(key)`` runs the
    worker in this process and returns its exit code. Inline runs are used
    when ``options.inline`` is set.
    """
    options = options or ReviewOptions()
    console = console or Console()
    data_dir = data_dir or source.data_dir()

    base_prompt = load_system_prompt(config, data_dir)
    intent_record = get_intent(data_dir)
    intent = intent_record["message"] if intent_record else None

    try:
        request = prepare_review(source, config, kind, old, new, options, intent=intent, base_prompt=base_prompt)
    except SecretsDetectedError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        console.print(
            "[yellow]Remove the secrets from the change, or re-run with "
            "--dangerously-allow-secrets to send a redacted copy.[/yellow]"
        )
        return e.exit_code

    if request is None:
        console.print("No changes to review")
        return EXIT_PASS

    if options.preview:
        print_preview(console, build_messages(request))
        return EXIT_PASS

    print_request_summary(console, _request_header(source, request, old), request)

    if options.dry_run:
        console.print("[dim]Dry run: no job created and no API call made.[/dim]")
        return EXIT_PASS

    inline = options.inline and run_inline is not None
    handle = submit(store, request, spawn=None if inline else spawn)
    if handle.created and inline:
        return run_inline(handle.key)
    if not handle.created:
        console.print(f"[dim]Attaching to existing job {handle.key}[/dim]")

    timeout = options.timeout if options.timeout is not None else config.attach_timeout
    outcome = attach(
        store,
        handle.key,
        timeout=timeout,
        poll_interval=config.poll_interval,
        queued_exit_code=config.queued_exit_code,
        console=console,
    )
    return outcome.exit_code
