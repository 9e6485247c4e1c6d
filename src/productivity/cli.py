"""Productivity Command Line Interface."""

import asyncio
from datetime import date, timedelta

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="productivity",
    help="Productivity backend - Tecsup sync and daily summaries",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(None, help="Override LOG_LEVEL"),
):
    """Configure logging before any command runs."""
    from productivity.logging_config import configure_logging

    configure_logging(log_level)


def _parse_date(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid date: {value} (expected YYYY-MM-DD)")


@app.command("init-db")
def init_db_command():
    """Create the database tables."""
    from productivity.db import init_db

    asyncio.run(init_db())
    console.print("[green]✓ Database ready[/green]")


@app.command("sync-enable")
def sync_enable(
    user_id: int = typer.Argument(..., help="User id"),
    token: str = typer.Argument(..., help="Tecsup (Canvas) access token"),
):
    """Enable Tecsup sync for a user and import the feed."""
    console.print(Panel("Enabling Tecsup Sync", style="blue"))

    async def do_enable():
        from productivity.db import session_scope
        from productivity.db.store import UserStore
        from productivity.errors import ProductivityError
        from productivity.sync import SyncReconciler

        with session_scope() as session:
            try:
                user = UserStore(session).find_by_id(user_id)
                result = await SyncReconciler(session).enable(user, token)
            except ProductivityError as e:
                console.print(f"[red]✗ {e.message}[/red]")
                raise typer.Exit(1)
        _print_sync_result(result)

    asyncio.run(do_enable())


@app.command("sync-refresh")
def sync_refresh(
    user_id: int = typer.Argument(..., help="User id"),
):
    """Re-import the Tecsup feed for a user."""
    console.print(Panel("Refreshing Tecsup Sync", style="blue"))

    async def do_refresh():
        from productivity.db import session_scope
        from productivity.db.store import UserStore
        from productivity.errors import ProductivityError
        from productivity.sync import SyncReconciler

        with session_scope() as session:
            try:
                user = UserStore(session).find_by_id(user_id)
                result = await SyncReconciler(session).refresh(user)
            except ProductivityError as e:
                console.print(f"[red]✗ {e.message}[/red]")
                raise typer.Exit(1)
        _print_sync_result(result)

    asyncio.run(do_refresh())


@app.command("sync-disable")
def sync_disable(
    user_id: int = typer.Argument(..., help="User id"),
):
    """Disable Tecsup sync and remove imported records."""

    async def do_disable():
        from productivity.db import session_scope
        from productivity.db.store import UserStore
        from productivity.errors import ProductivityError
        from productivity.sync import SyncReconciler

        with session_scope() as session:
            try:
                user = UserStore(session).find_by_id(user_id)
                await SyncReconciler(session).disable(user)
            except ProductivityError as e:
                console.print(f"[red]✗ {e.message}[/red]")
                raise typer.Exit(1)
        console.print("[green]✓ Tecsup sync disabled[/green]")

    asyncio.run(do_disable())


@app.command("sync-status")
def sync_status(
    user_id: int = typer.Argument(..., help="User id"),
):
    """Show Tecsup sync state for a user."""
    from productivity.db import session_scope
    from productivity.db.store import UserStore
    from productivity.errors import ProductivityError
    from productivity.sync import SyncReconciler

    with session_scope() as session:
        try:
            user = UserStore(session).find_by_id(user_id)
        except ProductivityError as e:
            console.print(f"[red]✗ {e.message}[/red]")
            raise typer.Exit(1)
        status = SyncReconciler(session).status(user)

    table = Table(title="Tecsup Sync")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Enabled", "✓" if status.enabled else "✗")
    table.add_row("Last sync", str(status.last_sync_at or "never"))
    table.add_row("Sync count", str(status.sync_count))
    table.add_row("Imported tasks", str(status.imported_tasks))
    table.add_row("Imported events", str(status.imported_events))
    if status.last_error:
        table.add_row("Last error", f"[red]{status.last_error}[/red]")
    console.print(table)


def _print_sync_result(result) -> None:
    console.print(
        f"[green]✓ Imported {result.tasks_imported} tasks and "
        f"{result.events_imported} events[/green]"
    )
    if result.partial:
        table = Table(title="Incomplete courses")
        table.add_column("Course", style="cyan")
        table.add_column("Resource", style="yellow")
        table.add_column("Error", style="red")
        for failure in result.failures:
            table.add_row(failure.course_name or failure.course_id, failure.resource, failure.message[:60])
        console.print(table)


@app.command()
def summary(
    user_id: int = typer.Argument(..., help="User id"),
    day: str = typer.Option(None, "--date", help="Date (YYYY-MM-DD), defaults to today"),
):
    """Show the daily summary for a user."""
    from productivity.aggregators import DailySummaryEngine, local_today
    from productivity.db import session_scope
    from productivity.db.store import UserStore

    target = _parse_date(day) or local_today()
    with session_scope() as session:
        user = UserStore(session).find_by_id(user_id)
        result = DailySummaryEngine(session).get_or_compute(user, target)

        console.print(Panel(f"Summary for {user.name} - {target.isoformat()}", style="blue"))
        console.print(f"  Tasks: {result.completed_tasks}/{result.total_tasks}")
        console.print(f"  Habits: {result.completed_habits}/{result.total_habits}")
        console.print(f"  [bold]Progress: {result.progress_percentage}%[/bold]")


@app.command()
def snapshot(
    day: str = typer.Option(None, "--date", help="Date (YYYY-MM-DD), defaults to yesterday"),
):
    """Persist daily summaries for every user."""
    from productivity.aggregators import DailySummaryEngine, local_today
    from productivity.db import session_scope

    target = _parse_date(day) or local_today() - timedelta(days=1)
    with session_scope() as session:
        written = DailySummaryEngine(session).snapshot_all(target)
    console.print(f"[green]✓ {written} summaries saved for {target.isoformat()}[/green]")


@app.command()
def month(
    user_id: int = typer.Argument(..., help="User id"),
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., min=1, max=12, help="Month (1-12)"),
):
    """Show the month view for a user."""
    from productivity.aggregators import DailySummaryEngine
    from productivity.db import session_scope
    from productivity.db.store import UserStore

    with session_scope() as session:
        user = UserStore(session).find_by_id(user_id)
        days = DailySummaryEngine(session).monthly_view(user, year, month)

    table = Table(title=f"{year}-{month:02d}")
    table.add_column("Date", style="cyan")
    table.add_column("Tasks", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Progress", justify="right", style="green")

    for day, info in days.items():
        if not info.has_activity and info.progress is None:
            continue
        label = f"[bold]{day.isoformat()}[/bold]" if info.is_today else day.isoformat()
        progress = f"{info.progress}%" if info.progress is not None else "-"
        table.add_row(label, str(info.task_count), str(info.event_count), progress)

    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
):
    """Run the API server."""
    from productivity.api import run_server

    run_server(host=host, port=port)


@app.command()
def scheduler():
    """Run the nightly snapshot and refresh scheduler."""
    from productivity.autonomous.scheduler import start_scheduler

    console.print(Panel("Scheduler running (Ctrl+C to stop)", style="blue"))
    start_scheduler()


@app.command()
def version():
    """Show version."""
    from productivity import __version__

    console.print(f"productivity v{__version__}")


if __name__ == "__main__":
    app()
