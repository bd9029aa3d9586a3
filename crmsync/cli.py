"""crmsync CLI - run sync jobs by hand or start the service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from .config import settings

app = typer.Typer(
    name="crmsync",
    help="Background sync and WhatsApp notification service",
    no_args_is_help=True,
)
console = Console()

sync_app = typer.Typer(help="Run one sync pass for every tenant")
app.add_typer(sync_app, name="sync")


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", help="Override CRMSYNC_LOG_LEVEL"),
):
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _output_result(result: Any) -> None:
    if hasattr(result, "model_dump"):
        result = result.model_dump()
    console.print_json(json.dumps(result, default=str, indent=2))


def _print_report(report) -> None:
    table = Table(title=f"{report.name} run")
    table.add_column("Tenant", style="cyan")
    table.add_column("Result")
    for tenant, result in report.results.items():
        if hasattr(result, "model_dump"):
            result = json.dumps(result.model_dump(), default=str)
        table.add_row(tenant, str(result))
    console.print(table)
    console.print(
        f"[bold]processed[/bold] {report.processed}  "
        f"[green]succeeded[/green] {report.succeeded}  "
        f"[red]failed[/red] {report.failed}  "
        f"[yellow]skipped[/yellow] {report.skipped}"
    )


async def _prepare() -> None:
    if "sqlite" in settings.database_url:
        from .database import create_all
        await create_all()


@app.command()
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the HTTP API with the background scheduler."""
    import uvicorn

    console.print(f"[bold cyan]Starting crmsync at http://{host}:{port}[/bold cyan]")
    uvicorn.run("crmsync.app:app", host=host, port=port, reload=reload)


@sync_app.command("aasp")
def sync_aasp_cmd(
    concurrency: int = typer.Option(None, "--concurrency", "-c", help="Tenants run in parallel"),
):
    """Sync AASP intimações for every active config."""
    from .worker import run_all_aasp

    async def _run():
        await _prepare()
        return await run_all_aasp(concurrency=concurrency)

    _print_report(asyncio.run(_run()))


@sync_app.command("asaas")
def sync_asaas_cmd():
    """Pull due and recently overdue Asaas payments."""
    from .worker import run_all_asaas_sync

    async def _run():
        await _prepare()
        return await run_all_asaas_sync()

    _print_report(asyncio.run(_run()))


@sync_app.command("asaas-status")
def sync_asaas_status_cmd():
    """Re-check the status of open Asaas payments."""
    from .worker import run_all_asaas_status_checks

    async def _run():
        await _prepare()
        return await run_all_asaas_status_checks()

    _print_report(asyncio.run(_run()))


@app.command("send-scheduled")
def send_scheduled():
    """Send every due scheduled message."""
    from .worker import run_scheduled_messages

    async def _run():
        await _prepare()
        return await run_scheduled_messages()

    _output_result(asyncio.run(_run()))


@app.command()
def digest():
    """Send the secretary daily digests due this hour."""
    from .worker import run_secretary_digest

    async def _run():
        await _prepare()
        return await run_secretary_digest()

    sent = asyncio.run(_run())
    console.print(f"[green]{sent}[/green] digest(s) sent")


@app.command()
def worker():
    """Run the job scheduler in the foreground (Ctrl+C to stop)."""
    from .worker import SyncScheduler

    async def _run():
        await _prepare()
        scheduler = SyncScheduler()
        console.print(
            f"[bold cyan]Scheduler running {len(scheduler.jobs)} jobs, "
            f"polling every {scheduler.poll_interval}s[/bold cyan]"
        )
        await scheduler.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


if __name__ == "__main__":
    app()
