"""Command-line interface using Typer."""

import asyncio
from collections.abc import Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clip_studio import __version__
from clip_studio.adapters.auth import StaticTokenCredentials
from clip_studio.adapters.backend.rest import HttpBackendClient
from clip_studio.adapters.backend.stub import StubBackendClient
from clip_studio.adapters.events.memory import InMemoryEventChannel
from clip_studio.config import settings
from clip_studio.domain.enums import ClipStatus, JobKind, SafetyVerdict
from clip_studio.domain.models import Clip
from clip_studio.errors import ClipStudioError
from clip_studio.logging import setup_logging
from clip_studio.services.edit_history import format_time
from clip_studio.services.job_bridge import JobBridge
from clip_studio.services.workflow import Workflow

setup_logging()

app = typer.Typer(
    name="clip-studio",
    help="Clip Studio - clip cutter workflow client",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Clip Studio v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log at DEBUG level."),
) -> None:
    """Clip Studio - upload, cut, fine-tune and publish short clips."""
    if verbose:
        setup_logging("DEBUG")


def _backend() -> HttpBackendClient:
    return HttpBackendClient(StaticTokenCredentials(settings.api_token))


def _clips_table(title: str, clips: list[Clip], selected_id: str | None = None) -> Table:
    table = Table(title=title)
    table.add_column("Clip", style="cyan")
    table.add_column("Window")
    table.add_column("Duration")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    table.add_column("Safety")
    for clip in clips:
        marker = " *" if clip.id == selected_id else ""
        table.add_row(
            f"{clip.id}{marker}",
            f"{format_time(clip.start_ms)}-{format_time(clip.end_ms)}",
            f"{clip.duration_ms / 1000:.1f}s",
            f"{clip.score:.2f}",
            str(clip.status),
            str(clip.safety_status or "-"),
        )
    return table


@app.command()
def job(
    job_id: str = typer.Argument(..., help="The job ID to check"),
) -> None:
    """Show the status of a backend job."""

    async def fetch() -> None:
        backend = _backend()
        try:
            result = await backend.get_job(job_id)
        finally:
            await backend.close()

        table = Table(title="Job Status")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Job ID", result.id)
        table.add_row("Kind", str(result.kind))
        table.add_row("Target", result.target_id)
        table.add_row("State", str(result.state))
        table.add_row("Attempts", f"{result.attempts}/{result.max_attempts}")
        if result.error_msg:
            table.add_row("Error", result.error_msg)
        console.print(table)

    _run(fetch())


@app.command()
def clips(
    video_id: str = typer.Argument(..., help="The video ID"),
    status: Optional[ClipStatus] = typer.Option(
        ClipStatus.DRAFT, "--status", "-s", help="Only clips with this status"
    ),
) -> None:
    """List the clips cut from a video."""

    async def fetch() -> None:
        backend = _backend()
        try:
            result = await backend.get_clips(video_id, status)
        finally:
            await backend.close()
        if not result:
            console.print("[yellow]No clips found[/yellow]")
            return
        console.print(_clips_table(f"Clips for {video_id}", result))

    _run(fetch())


@app.command()
def safety(
    clip_id: str = typer.Argument(..., help="The clip ID"),
) -> None:
    """Show the latest safety report for a clip."""

    async def fetch() -> None:
        backend = _backend()
        try:
            report = await backend.get_safety_report(clip_id)
        finally:
            await backend.close()
        if report is None:
            console.print("[yellow]No safety report yet[/yellow]")
            return
        color = {"SAFE": "green", "NEEDS_REVIEW": "yellow", "BLOCKED": "red"}[report.verdict]
        console.print(
            Panel(
                f"Verdict: [{color}]{report.verdict}[/{color}]\n"
                f"Confidence: {report.confidence:.0%}\n"
                f"Category: {report.policy_category or '-'}",
                title=f"Safety report for {clip_id}",
            )
        )

    _run(fetch())


@app.command()
def demo(
    verdict: SafetyVerdict = typer.Option(
        SafetyVerdict.SAFE, "--verdict", help="Safety verdict the stub backend returns"
    ),
    regenerate: bool = typer.Option(
        False, "--regenerate", "-r", help="Regenerate suggestions once"
    ),
    latency: float = typer.Option(0.2, "--latency", help="Simulated job step latency"),
) -> None:
    """Walk through the whole workflow against an in-memory backend."""
    _run(_demo(verdict, regenerate, latency))


async def _demo(verdict: SafetyVerdict, regenerate: bool, latency: float) -> None:
    channel = InMemoryEventChannel()
    backend = StubBackendClient(channel, latency=latency, safety_verdict=verdict)
    bridge = JobBridge(backend, channel)
    workflow = Workflow(backend, bridge)
    await workflow.start()

    try:
        video = backend.add_video(duration_ms=180_000)
        workflow.add_video(video)
        console.print(f"[bold blue]1 / 4 · Upload[/bold blue] video {video.id} is ready")

        await workflow.advance()
        with console.status("Finding the best moments..."):
            await bridge.wait(JobKind.CUT)
            if regenerate:
                await workflow.regenerate()
                await bridge.wait(JobKind.CUT)
        session = workflow.session
        console.print("[bold blue]2 / 4 · Suggestions[/bold blue]")
        console.print(
            _clips_table(
                f"Suggestions ({session.regenerates_left} regenerations left)",
                session.clips,
                session.selected_clip.id if session.selected_clip else None,
            )
        )

        await workflow.advance()
        history = workflow.edit_history
        if history is not None:
            history.set_end(history.state.start_ms + 30_000)
            history.nudge_start(5)
            undone = history.undo()
            console.print(
                f"[bold blue]3 / 4 · Fine-tune[/bold blue] "
                f"{format_time(history.state.start_ms)}-{format_time(history.state.end_ms)} "
                f"[dim](undo: {undone.description})[/dim]"
            )

        await workflow.advance()
        with console.status("Running safety scan..."):
            await bridge.wait(JobKind.SAFETY)
        report = session.safety_report
        console.print(
            f"[bold blue]4 / 4 · Safety check[/bold blue] verdict "
            f"{report.verdict if report else 'unavailable'}"
        )

        workflow.set_caption("Check out this clip! #content #creator")
        workflow.set_schedule(datetime.now(UTC) + timedelta(hours=2))
        if workflow.can_publish:
            await workflow.advance()
            console.print("[bold green]✓ Queued! We'll notify when live.[/bold green]")
        elif workflow.can_request_review:
            await workflow.request_review(note="Requested from the demo")
            console.print("[bold yellow]Review requested, publish is on hold[/bold yellow]")
        else:
            failure = workflow.failure()
            reason = failure.message if failure else "clip is blocked"
            console.print(f"[bold red]✗ Cannot publish: {reason}[/bold red]")
    finally:
        await workflow.close()
        await backend.close()


def _run(coro: Coroutine[Any, Any, None]) -> None:
    try:
        asyncio.run(coro)
    except ClipStudioError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
