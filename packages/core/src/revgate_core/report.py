"""Terminal rendering shared by the worker, the attach client, and the CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from revgate_core.models import BlockReview, PassReview, ReviewRequest
    from revgate_core.request import ReviewMessages


def print_review(console: Console, review: PassReview | BlockReview, review_path: str | None = None) -> None:
    if review.status == "pass":
        console.print("\n[bold green]PASS[/bold green]  no blocking issues found.")
    else:
        console.print(f"\n[bold red]BLOCK[/bold red]  {len(review.blockers)} blocking issue(s):\n")
        for i, b in enumerate(review.blockers, start=1):
            lines = f"{b.line_start}" if b.line_start == b.line_end else f"{b.line_start}-{b.line_end}"
            console.print(
                f"[bold]{i}. {escape(b.title)}[/bold]  [dim]({escape(b.rule)})[/dim]\n"
                f"   [bold cyan]{escape(b.file)}[/bold cyan]  line(s) [bold]{lines}[/bold]"
            )
            console.print(f"   {escape(b.why)}")
            if b.suggested_fix:
                console.print(f"   [green]Fix:[/green] {escape(b.suggested_fix)}")
            console.print()

    if review.notes:
        console.print("[bold]Notes:[/bold]")
        for note in review.notes:
            console.print(f"  - {escape(note)}")

    if review_path:
        console.print(f"\n[dim]Review stored at {escape(review_path)}[/dim]")


def print_request_summary(console: Console, header: str, request: ReviewRequest) -> None:
    console.print(f"\n[cyan]{escape(header)}[/cyan]")
    if request.objective:
        first_line = request.objective.splitlines()[0]
        console.print(f"[cyan]Objective:[/cyan] {escape(first_line)}")
    if request.model:
        console.print(f"[cyan]Model:[/cyan] {escape(request.model)}")
    s = request.summary
    console.print(
        f"[cyan]Change:[/cyan] {s.files} file(s), +{s.additions}/-{s.deletions}, {s.bytes} bytes of diff"
    )
    if request.context_files:
        console.print(f"[cyan]Context files ({len(request.context_files)}):[/cyan]")
        for f in request.context_files:
            console.print(f"  - {escape(f.path)}")
    if request.omitted_context:
        console.print(f"[yellow]Omitted context files:[/yellow] {escape(', '.join(request.omitted_context))}")
    if request.manifest:
        console.print("[cyan]Repository file manifest included.[/cyan]")
    if request.reviewer_intent:
        console.print("[cyan]Project owner context included.[/cyan]")
    if request.redacted:
        console.print("[yellow]Potential secrets were redacted before sending.[/yellow]")
    console.print(f"[dim]Job key: {request.job_key}[/dim]")


def print_preview(console: Console, messages: ReviewMessages) -> None:
    console.print("[cyan]=== SYSTEM MESSAGE ===[/cyan]")
    console.print(messages.system, markup=False, highlight=False)
    console.print("\n[cyan]=== USER MESSAGE ===[/cyan]")
    console.print(messages.user, markup=False, highlight=False)
    console.print("\n[dim]=== END PREVIEW ===[/dim]")
    console.print("[dim]No API call was made. Exit code: 0[/dim]")
