"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..adapters.inventory_client import InventoryClient
from ..adapters.mock_inventory_client import MockInventoryClient
from ..config import ConfigProvider, get_default_config_path
from ..domain.exceptions import ConfigurationError
from ..services.acquisition import AcquisitionExecutor
from ..services.candidate_cache import CandidateCache
from ..services.refresh_pipeline import InventoryClientProtocol, RefreshPipeline
from ..services.scheduler import PeriodicTask, Scheduler, TerminationSignal

app = typer.Typer(
    name="slotsniper",
    help="Watch a registration portal and grab the first bookable appointment",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
MockOption = Annotated[bool, typer.Option("--mock", help="Use bundled mock data instead of the live portal.")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # urllib3 is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _load_config(config_file: Optional[Path]) -> ConfigProvider:
    """
    Load the startup configuration.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    config_path = config_file or get_default_config_path()
    try:
        return ConfigProvider.from_path(config_path)
    except FileNotFoundError as e:
        raise ConfigurationError(str(e)) from e
    except (ValueError, ValidationError) as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}:\n{e}") from e


def _build_client(config_provider: ConfigProvider, mock: bool) -> InventoryClient | MockInventoryClient:
    if mock:
        console.print("[yellow]⚠  MOCK MODE: using bundled test data[/yellow]\n")
        return MockInventoryClient()
    return InventoryClient(config_provider)


def _build_pipeline(
    config_provider: ConfigProvider,
    client: InventoryClientProtocol,
    cache: Optional[CandidateCache] = None,
) -> RefreshPipeline:
    return RefreshPipeline(
        client=client,
        cache=cache if cache is not None else CandidateCache(),
        request_delay_seconds=config_provider.current.schedule.request_delay_seconds,
    )


def _startup(config_file: Optional[Path], verbose: bool) -> ConfigProvider:
    _configure_logging(verbose)
    try:
        return _load_config(config_file)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def run(
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Poll the portal and claim the first available appointment.

    Runs until a reservation is confirmed or the process is interrupted.

    Examples:

        slotsniper run
        slotsniper run --config ./config.yaml --verbose
        slotsniper run --mock
    """
    config_provider = _startup(config_file, verbose)
    schedule = config_provider.current.schedule

    client = _build_client(config_provider, mock)
    cache = CandidateCache()
    pipeline = _build_pipeline(config_provider, client, cache)
    termination = TerminationSignal()
    executor = AcquisitionExecutor(client=client, cache=cache, termination=termination)

    def discover() -> None:
        # One config snapshot per discovery cycle
        config_provider.reload_if_changed()
        pipeline.refresh_providers()

    console.print(
        f"[bold cyan]slotsniper[/bold cyan] polling every "
        f"{schedule.acquisition_interval_seconds:g}s "
        f"(availability {schedule.availability_interval_seconds:g}s, "
        f"providers {schedule.discovery_interval_seconds:g}s)\n"
    )

    pipeline.refresh_providers()

    scheduler = Scheduler(termination)
    scheduler.add_task(PeriodicTask("discovery", schedule.discovery_interval_seconds, discover))
    scheduler.add_task(PeriodicTask("availability", schedule.availability_interval_seconds, pipeline.refresh_availability))
    scheduler.add_task(PeriodicTask("acquisition", schedule.acquisition_interval_seconds, executor.execute))
    scheduler.start()

    try:
        order_id = scheduler.run_until_terminated()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted, stopping scheduler...[/yellow]")
        scheduler.stop()
        raise typer.Exit(130)

    console.print(Panel.fit(
        f"[bold green]✓ Reservation confirmed![/bold green]\n\n"
        f"[bold]Order id:[/bold] {order_id}",
        title="✓ slotsniper"
    ))


@app.command()
def providers(
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    List the eligible providers of the configured department.
    """
    config_provider = _startup(config_file, verbose)
    client = _build_client(config_provider, mock)
    pipeline = _build_pipeline(config_provider, client)

    found = pipeline.refresh_providers()
    if not found:
        console.print("[yellow]No eligible providers found.[/yellow]")
        return

    table = Table(
        title="Eligible providers",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold yellow")
    table.add_column("Tier")

    for provider in found:
        table.add_row(str(provider.provider_id), provider.display_name, provider.tier)

    console.print()
    console.print(table)
    console.print()


@app.command()
def candidates(
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Run one full refresh and show the claimable candidates, newest first.
    """
    config_provider = _startup(config_file, verbose)
    client = _build_client(config_provider, mock)
    cache = CandidateCache()
    pipeline = _build_pipeline(config_provider, client, cache)

    pipeline.refresh_providers()
    found = cache.snapshot()

    if not found:
        console.print("[yellow]No claimable candidates right now.[/yellow]")
        return

    table = Table(
        title=f"{len(found)} claimable candidate(s)",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Provider", style="bold yellow")
    table.add_column("Date")
    table.add_column("Window")
    table.add_column("Period")
    table.add_column("Slot", style="dim")

    for candidate in reversed(found):
        table.add_row(
            str(candidate.provider),
            candidate.window.date,
            candidate.window.time_type_label,
            candidate.sub_slot.label or f"{candidate.sub_slot.begin_time}-{candidate.sub_slot.end_time}",
            candidate.sub_slot.slot_id,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def check(
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Verify the session against the portal's pre-booking checks.
    """
    config_provider = _startup(config_file, verbose)
    client = _build_client(config_provider, mock)
    pipeline = _build_pipeline(config_provider, client)

    results = [
        ("Certificate", client.check_certificate()),
        ("Payment", client.check_bill_pay()),
    ]

    found = pipeline.refresh_providers()
    for provider in found:
        results.append((f"Booking settings: {provider}", client.check_order_config(provider)))
        results.append((f"Member: {provider}", client.check_member(provider)))
        results.append((f"Surcharge: {provider}", client.check_rise_amount(provider)))

    table = Table(title="Pre-booking checks", show_header=True, header_style="bold cyan")
    table.add_column("Check")
    table.add_column("Result")
    for name, passed in results:
        table.add_row(name, "[green]✓[/green]" if passed else "[red]✗[/red]")

    console.print()
    console.print(table)
    console.print()

    if not all(passed for _, passed in results):
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotsniper[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
