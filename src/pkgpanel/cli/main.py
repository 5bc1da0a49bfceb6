"""CLI entry point for the package control panel."""

from __future__ import annotations

import asyncio
import sys
from typing import List, Optional

import typer
from rich.progress import BarColumn, Progress, TextColumn

from pkgpanel.cli.renderers import (
    bulk_table,
    catalog_table,
    console,
    manager_table,
    operation_event,
    operation_summary,
    status_table,
)
from pkgpanel.core.config import Settings
from pkgpanel.core.context import PanelContext
from pkgpanel.core.errors import (
    EXIT_SYSTEM_ERROR,
    EXIT_TRANSIENT_ERROR,
    EXIT_UNVERIFIED,
    EXIT_USER_ERROR,
    PanelError,
    SystemError,
    TransientError,
    format_error_message,
)
from pkgpanel.core.logging import configure_logging, get_logger
from pkgpanel.core.models import (
    Action,
    BulkProgress,
    CatalogEntry,
    Manager,
    OperationOutcome,
    ProbeState,
)
from pkgpanel.core.queue import QueuedOperation

log = get_logger(__name__)

app = typer.Typer(help="pkgpanel: install and remove winget and Chocolatey packages.")
catalog_app = typer.Typer(help="Manage the packages listed for each manager.")
app.add_typer(catalog_app, name="catalog")
manager_app = typer.Typer(help="Install or remove a package manager itself.")
app.add_typer(manager_app, name="manager")


def load_settings() -> Settings:
    return Settings.from_env()


def make_context() -> PanelContext:
    return PanelContext(load_settings())


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to the console too"),
) -> None:
    """Configure logging before any command runs."""
    settings = load_settings()
    configure_logging(
        level="DEBUG" if verbose else "INFO",
        log_file=settings.log_dir / "backend.log",
        enable_console=verbose,
        force=True,
    )


def handle_error(error: Exception) -> int:
    """Print an error and return the matching exit code.

    Args:
        error: The exception to handle.

    Returns:
        An integer exit code.
    """
    if isinstance(error, PanelError):
        log.error(
            "cli_error",
            error_type=type(error).__name__,
            message=error.message,
            context=error.context,
            exc_info=True
        )
        console.print(f"\n{format_error_message(error)}\n", style="bold red")

        if isinstance(error, TransientError):
            return EXIT_TRANSIENT_ERROR
        elif isinstance(error, SystemError):
            return EXIT_SYSTEM_ERROR
        return EXIT_USER_ERROR

    log.error("unexpected_error", error=str(error), exc_info=True)
    console.print(f"\n⚠️ Unexpected error occurred: {error}\n", style="bold red")
    return EXIT_SYSTEM_ERROR


@app.command()
def status(
    manager: Manager = typer.Argument(..., help="winget | choco"),
    package_id: str = typer.Argument(..., help="Package identifier"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Ignore cached status"),
) -> None:
    """Show whether one package is installed."""
    async def run():
        async with make_context() as ctx:
            return await ctx.get_status(manager, package_id, force_refresh=refresh)

    try:
        result = asyncio.run(run())
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(status_table([(package_id, result)]))
    if result.state is ProbeState.PROBE_FAILED:
        sys.exit(EXIT_TRANSIENT_ERROR)


@app.command()
def bulk(
    manager: Manager = typer.Argument(..., help="winget | choco"),
    package_ids: Optional[List[str]] = typer.Argument(None, help="Packages to check, defaults to the catalog"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Ignore cached statuses"),
) -> None:
    """Check the status of many packages."""
    async def run(progress: Progress):
        task = progress.add_task("Checking packages", total=None)

        def on_progress(event: BulkProgress) -> None:
            progress.update(
                task,
                total=event.total,
                completed=event.completed,
                description=f"Checking packages ({event.completed}/{event.total})",
            )

        async with make_context() as ctx:
            return await ctx.get_bulk_status(
                manager, package_ids or None, force_refresh=refresh, on_progress=on_progress
            )

    try:
        with Progress(
            TextColumn("{task.description}"), BarColumn(), console=console, transient=True
        ) as progress:
            result = asyncio.run(run(progress))
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(bulk_table(result))
    if not result.success:
        console.print(f"⚠️ {result.error}", style="bold yellow")
        sys.exit(EXIT_TRANSIENT_ERROR)


def _run_operation(manager: Manager, package_id: str | None, action: Action) -> None:
    def on_transition(op: QueuedOperation) -> None:
        console.print(operation_event(op.state, op.package_id, op.retry_count, op.next_backoff))

    async def run():
        async with make_context() as ctx:
            ctx.queue.subscribe(on_transition)
            if package_id is None:
                handle = ctx.enqueue_manager_operation(manager, action)
            else:
                handle = ctx.enqueue_operation(manager, package_id, action)
            return await handle

    try:
        result = asyncio.run(run())
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(operation_summary(result))
    if result.outcome is OperationOutcome.UNVERIFIED:
        sys.exit(EXIT_UNVERIFIED)


@app.command()
def install(
    manager: Manager = typer.Argument(..., help="winget | choco"),
    package_id: str = typer.Argument(..., help="Package identifier"),
) -> None:
    """Install a package and wait until it shows up as installed."""
    _run_operation(manager, package_id, Action.INSTALL)


@app.command()
def uninstall(
    manager: Manager = typer.Argument(..., help="winget | choco"),
    package_id: str = typer.Argument(..., help="Package identifier"),
) -> None:
    """Uninstall a package and wait until it is gone."""
    _run_operation(manager, package_id, Action.UNINSTALL)


@app.command()
def version(
    manager: Optional[Manager] = typer.Argument(None, help="winget | choco, defaults to both"),
) -> None:
    """Show which package managers are available."""
    managers = [manager] if manager else list(Manager)

    async def run():
        async with make_context() as ctx:
            return [await ctx.manager_version(m) for m in managers]

    try:
        infos = asyncio.run(run())
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(manager_table(infos))


@manager_app.command("install")
def manager_install(
    manager: Manager = typer.Argument(Manager.CHOCO, help="Package manager to install"),
) -> None:
    """Install the package manager and wait until its version command works."""
    _run_operation(manager, None, Action.INSTALL)


@manager_app.command("uninstall")
def manager_uninstall(
    manager: Manager = typer.Argument(Manager.CHOCO, help="Package manager to remove"),
) -> None:
    """Remove the package manager and wait until it is gone."""
    _run_operation(manager, None, Action.UNINSTALL)


@app.command()
def tui() -> None:
    """Open the interactive control panel."""
    from pkgpanel.app.main import run

    run(load_settings())


@catalog_app.command("list")
def catalog_list(manager: Manager = typer.Argument(..., help="winget | choco")) -> None:
    """List catalog entries."""
    try:
        entries = make_context().catalog.list(manager)
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(catalog_table(entries))


@catalog_app.command("add")
def catalog_add(
    manager: Manager = typer.Argument(..., help="winget | choco"),
    app_id: str = typer.Argument(..., help="Package identifier"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name"),
    desc: str = typer.Option("", "--desc", "-d", help="Description"),
) -> None:
    """Add a package to the catalog."""
    try:
        entry = make_context().catalog.add(
            manager, CatalogEntry(app_id=app_id, app_name=name or app_id, app_desc=desc)
        )
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(f"Added {entry.app_id} to the {manager.value} catalog", style="green")


@catalog_app.command("edit")
def catalog_edit(
    manager: Manager = typer.Argument(..., help="winget | choco"),
    app_id: str = typer.Argument(..., help="Package identifier"),
    new_id: Optional[str] = typer.Option(None, "--id", help="New package identifier"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name"),
    desc: Optional[str] = typer.Option(None, "--desc", "-d", help="Description"),
) -> None:
    """Change a catalog entry."""
    try:
        catalog = make_context().catalog
        current = catalog.get(manager, app_id)
        entry = catalog.update(
            manager,
            app_id,
            CatalogEntry(
                app_id=new_id or current.app_id,
                app_name=name if name is not None else current.app_name,
                app_desc=desc if desc is not None else current.app_desc,
            ),
        )
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(f"Updated {entry.app_id}", style="green")


@catalog_app.command("remove")
def catalog_remove(
    manager: Manager = typer.Argument(..., help="winget | choco"),
    app_id: str = typer.Argument(..., help="Package identifier"),
) -> None:
    """Remove a package from the catalog."""
    try:
        make_context().catalog.remove(manager, app_id)
    except Exception as e:
        sys.exit(handle_error(e))

    console.print(f"Removed {app_id} from the {manager.value} catalog", style="green")


if __name__ == "__main__":
    app()
