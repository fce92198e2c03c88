"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..adapters.clinic_api_client import ClinicApiClient
from ..adapters.mock_clinic_client import MockClinicClient
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import ClinicSlotsError
from ..domain.models import AppointmentStatus, parse_calendar_date
from ..domain.operating_hours import ResolvedHours, explain_operating_hours
from ..services.booking_service import BookingRequest, BookingService

app = typer.Typer(
    name="clinicslots",
    help="Browse bookable appointment slots and manage clinic bookings",
    add_completion=False
)

console = Console()

NO_SLOTS_MESSAGE = "No available time slots for this date/service."


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use the bundled demo data instead of the clinic API.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Clinic appointment slots from the command line.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.obj = {"config_file": config_file, "mock": mock}


def _load_config(ctx: typer.Context) -> AppConfig:
    config_path = ctx.obj["config_file"] or get_default_config_path()

    # Mock mode works out of the box without a config file
    if ctx.obj["mock"] and ctx.obj["config_file"] is None and not config_path.exists():
        return AppConfig()

    return AppConfig.load_from_yaml(config_path)


def _build_service(config: AppConfig, mock: bool) -> BookingService:
    if mock:
        client = MockClinicClient(data_file=config.mock_data_file, timezone=config.timezone)
    else:
        client = ClinicApiClient(config.api_base_url, timeout=config.api_timeout_seconds)

    return BookingService(
        client,
        config.build_slot_calculator(),
        fallback_settings=config.get_fallback_settings(),
    )


def _open(ctx: typer.Context):
    """Load config and wire up the booking service."""
    config = _load_config(ctx)
    if ctx.obj["mock"]:
        console.print("[yellow]MOCK MODE: using demo clinic data[/yellow]\n")
    return config, _build_service(config, ctx.obj["mock"])


def _fail(error: Exception):
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    raise typer.Exit(1)


def _describe_hours(resolved: ResolvedHours) -> str:
    if resolved.is_closed:
        label = "Closed"
        if resolved.note:
            label += f" ({resolved.note})"
        return label
    return str(resolved.hours)


@app.command()
def slots(
    ctx: typer.Context,
    day: Annotated[str, typer.Argument(help="Date to search (YYYY-MM-DD)")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service id or name")],
):
    """
    List free start times for a service on one date.

    Examples:

        clinicslots slots 2024-06-10 --service Checkup

        clinicslots --mock slots 2024-06-10 -s "Root Canal"
    """
    try:
        _, booking_service = _open(ctx)

        target_day = parse_calendar_date(day)
        selected = booking_service.find_service(service)
        free = booking_service.available_slots(target_day, selected)

        console.print(
            f"[bold cyan]{selected.name}[/bold cyan] ({selected.duration_minutes} min) "
            f"on {target_day.format('dddd, YYYY-MM-DD')}\n"
        )

        if not free:
            console.print(f"[yellow]{NO_SLOTS_MESSAGE}[/yellow]")
            return

        console.print(f"[bold green]{len(free)} available slot(s):[/bold green]")
        for start in free:
            console.print(f"  {start}")
        console.print()

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def hours(
    ctx: typer.Context,
    day: Annotated[str, typer.Argument(help="Date to check (YYYY-MM-DD)")],
):
    """
    Show the opening hours that apply on a date and which rule set them.
    """
    try:
        _, booking_service = _open(ctx)

        target_day = parse_calendar_date(day)
        settings = booking_service.load_settings()
        resolved = explain_operating_hours(target_day, settings)

        console.print(Panel.fit(
            f"[bold]Hours:[/bold] {_describe_hours(resolved)}\n"
            f"[bold]Rule:[/bold] {resolved.source.value}",
            title=target_day.format("dddd, YYYY-MM-DD")
        ))

        if not settings.is_open:
            console.print("[yellow]The clinic is currently not accepting bookings.[/yellow]")

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def calendar(
    ctx: typer.Context,
    service: Annotated[str, typer.Option("--service", "-s", help="Service id or name")],
    start: Annotated[Optional[str], typer.Option("--start", help="First date (YYYY-MM-DD). Defaults to today")] = None,
    days: Annotated[Optional[int], typer.Option("--days", "-d", help="Number of days to scan. Defaults to booking_window_days")] = None,
):
    """
    Show which dates in a window still have free slots for a service.
    """
    try:
        config, booking_service = _open(ctx)

        if start:
            first_day = parse_calendar_date(start)
        else:
            first_day = pendulum.now(config.timezone).date()
        window = days if days is not None else config.booking_window_days
        if window <= 0:
            raise ValueError("--days must be greater than zero")

        selected = booking_service.find_service(service)
        open_days = booking_service.available_dates(first_day, window, selected)

        if not open_days:
            console.print(f"[yellow]{NO_SLOTS_MESSAGE}[/yellow]")
            return

        settings = booking_service.load_settings()

        table = Table(
            title=f"Bookable dates for {selected.name}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Date", style="bold yellow")
        table.add_column("Day")
        table.add_column("Opening hours", style="dim")

        for open_day in open_days:
            table.add_row(
                open_day.isoformat(),
                open_day.format("dddd"),
                _describe_hours(explain_operating_hours(open_day, settings))
            )

        console.print()
        console.print(table)
        console.print()

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def services(ctx: typer.Context):
    """
    List the services that can be booked.
    """
    try:
        _, booking_service = _open(ctx)
        catalogue = booking_service.list_services()

        if not catalogue:
            console.print("[yellow]No services configured.[/yellow]")
            return

        table = Table(
            title="Services",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Name", style="bold yellow")
        table.add_column("ID", style="dim")
        table.add_column("Duration", justify="right")
        table.add_column("Price", justify="right")

        for item in catalogue:
            table.add_row(
                item.name,
                item.id,
                f"{item.duration_minutes} min",
                f"{item.price:.2f}"
            )

        console.print()
        console.print(table)
        console.print()

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("add-service")
def add_service(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Service name")],
    description: Annotated[str, typer.Option("--description", "-d", help="Short description")],
    duration: Annotated[int, typer.Option("--duration", help="Duration in minutes")],
    price: Annotated[float, typer.Option("--price", help="Price")],
):
    """
    Add a service to the catalogue.
    """
    try:
        _, booking_service = _open(ctx)

        created = booking_service.create_service(name, description, duration, price)
        console.print(
            f"[green]Service [bold]{escape(created.name)}[/bold] created "
            f"with id {escape(created.id)}.[/green]"
        )

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("update-service")
def update_service(
    ctx: typer.Context,
    service_id: Annotated[str, typer.Argument(help="Service id")],
    name: Annotated[Optional[str], typer.Option("--name", help="New name")] = None,
    description: Annotated[Optional[str], typer.Option("--description", "-d", help="New description")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", help="New duration in minutes")] = None,
    price: Annotated[Optional[float], typer.Option("--price", help="New price")] = None,
):
    """
    Change a service. Options left out keep their current value.
    """
    try:
        _, booking_service = _open(ctx)

        updated = booking_service.update_service(
            service_id,
            name=name,
            description=description,
            duration_minutes=duration,
            price=price,
        )
        console.print(
            f"[green]Service [bold]{escape(updated.name)}[/bold] updated: "
            f"{updated.duration_minutes} min, {updated.price:.2f}.[/green]"
        )

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("delete-service")
def delete_service(
    ctx: typer.Context,
    service_id: Annotated[str, typer.Argument(help="Service id")],
):
    """
    Remove a service from the catalogue.
    """
    try:
        _, booking_service = _open(ctx)

        booking_service.delete_service(service_id)
        console.print(f"[green]Service {escape(service_id)} deleted.[/green]")

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def book(
    ctx: typer.Context,
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service id or name")],
    name: Annotated[str, typer.Option("--name", "-n", help="Patient name")],
    email: Annotated[str, typer.Option("--email", "-e", help="Patient email")],
):
    """
    Book a free slot. New appointments start as pending.
    """
    try:
        _, booking_service = _open(ctx)

        appointment = booking_service.book_appointment(BookingRequest(
            patient_name=name,
            patient_email=email,
            appointment_date=day,
            appointment_time=time,
            service=service,
        ))

        console.print(Panel.fit(
            f"[bold green]Appointment booked[/bold green]\n\n"
            f"[bold]ID:[/bold] {appointment.id}\n"
            f"[bold]Patient:[/bold] {appointment.patient_name}\n"
            f"[bold]When:[/bold] {appointment.appointment_date} {appointment.appointment_time} "
            f"({appointment.duration_minutes} min)\n"
            f"[bold]Service:[/bold] {appointment.reason}\n"
            f"[bold]Status:[/bold] {appointment.status.value}",
            title="Booking"
        ))

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("set-status")
def set_status(
    ctx: typer.Context,
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    status: Annotated[AppointmentStatus, typer.Argument(help="New status", case_sensitive=False)],
):
    """
    Confirm, complete or cancel an appointment.
    """
    try:
        _, booking_service = _open(ctx)

        updated = booking_service.update_status(appointment_id, status)
        console.print(
            f"[green]Appointment {updated.id} is now [bold]{updated.status.value}[/bold].[/green]"
        )

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("delete-appointment")
def delete_appointment(
    ctx: typer.Context,
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
):
    """
    Delete an appointment for good. Use set-status to cancel instead.
    """
    try:
        _, booking_service = _open(ctx)

        deleted = booking_service.delete_appointment(appointment_id)
        console.print(
            f"[green]Deleted appointment {escape(str(deleted.id))} "
            f"({escape(deleted.patient_name)}, {deleted.appointment_time}).[/green]"
        )

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def alerts(
    ctx: typer.Context,
    unread: Annotated[bool, typer.Option("--unread", "-u", help="Only show unread alerts")] = False,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum number of alerts")] = 20,
):
    """
    Show admin alerts, newest first.
    """
    try:
        config, booking_service = _open(ctx)

        items = booking_service.list_alerts(read=False if unread else None, limit=limit)

        if not items:
            console.print("[yellow]No alerts.[/yellow]")
            return

        table = Table(
            title="Alerts",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Created", no_wrap=True)
        table.add_column("Type", style="bold yellow", no_wrap=True)
        table.add_column("Message")
        table.add_column("Read", justify="center", no_wrap=True)

        for alert in items:
            created = ""
            if alert.created_at is not None:
                created = alert.created_at.in_timezone(config.timezone).format("YYYY-MM-DD HH:mm")
            table.add_row(
                alert.id or "",
                created,
                alert.type.value,
                escape(alert.message),
                "yes" if alert.read else "[bold]no[/bold]"
            )

        console.print()
        console.print(table)
        console.print()

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("mark-alerts-read")
def mark_alerts_read(
    ctx: typer.Context,
    alert_ids: Annotated[List[str], typer.Argument(help="Alert ids")],
):
    """
    Mark one or more alerts as read.
    """
    try:
        _, booking_service = _open(ctx)

        changed = booking_service.mark_alerts_read(alert_ids)
        console.print(f"[green]{changed} alert(s) marked as read.[/green]")

    except (ClinicSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]clinicslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
