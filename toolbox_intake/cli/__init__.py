"""
Command Line Interface for the Tool Intake service.
"""

import asyncio
from typing import Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..context import AppContext, build_context
from ..db.base import init_database
from ..db.services import IntakeRepository
from ..enums import IntakeStatus
from ..errors import IntakeError
from ..logging_config import configure_logging
from ..pipeline.submission import clean_package_name

app = typer.Typer(help="Tool Intake - validation and publishing pipeline for tool submissions")
console = Console()


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
):
    """Start the API server."""
    from ..api import create_app

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    rprint(Panel.fit("Starting Tool Intake API", style="bold blue"))
    uvicorn.run(
        create_app(build_context(settings)),
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


@app.command("init-db")
def init_db():
    """Create all database tables that do not exist yet."""
    context = build_context()
    init_database(context.engine)
    console.print(f"✅ Database initialized: {context.engine.url.render_as_string()}")


async def _validate(context: AppContext, package_name: str):
    try:
        metadata = await context.registry.fetch_package(package_name)
        validation = await context.validator.validate(metadata)
        report = await context.inspector.inspect(package_name)
        return metadata, validation, report
    finally:
        await context.aclose()


@app.command()
def validate(package: str = typer.Argument(..., help="npm package name to check")):
    """Run the submission checks against a package without storing anything."""
    settings = get_settings()
    configure_logging(settings.log_level, "console")
    try:
        package_name = clean_package_name(package)
        metadata, validation, report = asyncio.run(_validate(build_context(settings), package_name))
    except IntakeError as e:
        console.print(escape(f"❌ [{e.step or 'error'}] {e.message}"))
        raise typer.Exit(code=1)

    table = Table(title=f"{package_name}@{metadata.version}", show_header=True, header_style="bold magenta")
    table.add_column("Check", style="cyan")
    table.add_column("Severity")
    table.add_column("Message")
    for message in validation.errors:
        table.add_row("validation", "[red]error[/red]", message)
    for message in validation.warnings:
        table.add_row("validation", "[yellow]warning[/yellow]", message)
    for message in report.errors:
        table.add_row("structure", "[red]error[/red]", message)
    table.add_row("version", "info", f"minAPI={report.versions.min_api} maxAPI={report.versions.max_api}")
    console.print(table)

    if not validation.valid or not report.valid:
        console.print("❌ Package would be rejected")
        raise typer.Exit(code=1)
    console.print("✅ Package passes all submission checks")


@app.command()
def intakes(
    status: Optional[IntakeStatus] = typer.Option(None, help="Filter by intake status"),
    limit: int = typer.Option(50, help="Maximum rows to show"),
):
    """List tool intakes, newest first."""
    context = build_context()
    db = context.session()
    try:
        rows = IntakeRepository(db).list_intakes(
            status=status.value if status else None, limit=limit
        )
        if not rows:
            console.print("No intakes found")
            return

        table = Table(title="Tool Intakes", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="yellow")
        table.add_column("Package")
        table.add_column("Version")
        table.add_column("Status", style="green")
        table.add_column("Submitted")
        for intake in rows:
            table.add_row(
                intake.id,
                intake.package_name,
                intake.version,
                intake.status,
                intake.created_at.isoformat() if intake.created_at else "",
            )
        console.print(table)
    finally:
        db.close()


@app.command()
def worker(
    poll_interval: Optional[int] = typer.Option(None, help="Seconds between polls"),
    once: bool = typer.Option(False, "--once", help="Drain the queue once and exit"),
):
    """Run the conversion worker."""
    from ..worker.loop import run_worker

    rprint(Panel.fit("Starting conversion worker", style="bold blue"))
    run_worker(poll_interval=poll_interval, once=once)


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
