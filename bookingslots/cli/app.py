"""
Main CLI application using Typer.
"""

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from pendulum import DateTime
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.google_calendar import GoogleCalendarClient
from ..adapters.memory_repository import InMemoryBookingRepository
from ..adapters.notifications import LoggingNotifier
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SchedulingError
from ..domain.models import Customer
from ..domain.slot_calculator import SlotCalculator
from ..domain.timezones import local_time_to_utc
from ..logging_setup import configure_logging
from ..services.booking_service import BookingRequest, BookingService
from ..services.reminders import ReminderService

app = typer.Typer(
    name="bookingslots",
    help="Query available appointment slots and manage bookings",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
NowOption = Annotated[
    Optional[str],
    typer.Option("--now", help="Pretend the current time is this ISO 8601 instant."),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


class _Context:
    """Configuration, repository and services for one command run."""

    def __init__(self, config_file: Optional[Path], verbose: bool):
        configure_logging(verbose)
        self.config = AppConfig.load_from_yaml(config_file or get_default_config_path())
        self.repository = InMemoryBookingRepository.from_json_file(self.config.data_file)
        self.notifier = LoggingNotifier()

        calendar_client = None
        if self.config.google is not None:
            calendar_client = GoogleCalendarClient(
                client_id=self.config.google.client_id,
                client_secret=self.config.google.client_secret,
                timeout=self.config.google.timeout_seconds,
            )

        self.booking_service = BookingService(
            repository=self.repository,
            slot_calculator=SlotCalculator(self.config.slots.to_settings()),
            calendar_client=calendar_client,
            notifier=self.notifier,
        )

    def save(self) -> None:
        self.repository.to_json_file(self.config.data_file)


def _parse_date(value: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        console.print(f"[red]Invalid date {value!r}: {e}[/red]")
        raise typer.Exit(1)


def _parse_now(value: Optional[str]) -> DateTime:
    if not value:
        return pendulum.now("UTC")
    try:
        parsed = pendulum.parse(value, tz="UTC")
    except ValueError as e:
        console.print(f"[red]Invalid --now value {value!r}: {e}[/red]")
        raise typer.Exit(1)
    if not isinstance(parsed, DateTime):
        console.print(f"[red]--now must be a date and time, got {value!r}[/red]")
        raise typer.Exit(1)
    return parsed


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command()
def slots(
    staff_id: Annotated[str, typer.Argument(help="Provider (staff member) id")],
    service_id: Annotated[str, typer.Argument(help="Service id; its duration is the slot length")],
    on: Annotated[str, typer.Option("--date", "-d", help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
):
    """
    List available start times for a provider on one date.

    Examples:

        bookingslots slots staff-1 haircut --date 2024-11-25
        bookingslots slots staff-1 haircut -d 2024-11-25 --now 2024-11-25T10:00:00Z
    """
    try:
        ctx = _Context(config_file, verbose)
        day = _parse_date(on)
        times = asyncio.run(
            ctx.booking_service.get_available_slots(
                staff_id=staff_id,
                service_id=service_id,
                day=day,
                now=_parse_now(now),
            )
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not times:
        console.print(f"[yellow]No available slots on {day}.[/yellow]")
        return

    console.print(f"[bold green]{len(times)} available slot(s) on {day}:[/bold green]")
    console.print("  " + "  ".join(times))


@app.command()
def book(
    staff_id: Annotated[str, typer.Argument(help="Provider (staff member) id")],
    service_id: Annotated[str, typer.Argument(help="Service id")],
    on: Annotated[str, typer.Option("--date", "-d", help="Date (YYYY-MM-DD)")],
    at: Annotated[str, typer.Option("--time", "-t", help="Start time (HH:MM) in the provider's timezone")],
    name: Annotated[str, typer.Option("--name", help="Customer name")],
    phone: Annotated[str, typer.Option("--phone", help="Customer phone number")],
    email: Annotated[Optional[str], typer.Option("--email", help="Customer e-mail")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Booking notes")] = None,
    config_file: ConfigOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
):
    """
    Create a booking after validating the slot.
    """
    try:
        ctx = _Context(config_file, verbose)
        request = BookingRequest(
            staff_id=staff_id,
            service_id=service_id,
            date=_parse_date(on),
            time=at,
            customer=Customer(name=name, phone=phone, email=email),
            notes=notes,
        )
        booking = asyncio.run(ctx.booking_service.create_booking(request, now=_parse_now(now)))
        ctx.save()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(Panel.fit(
        f"[bold green]Booking confirmed[/bold green]\n\n"
        f"[bold]Id:[/bold] {booking.id}\n"
        f"[bold]Start (UTC):[/bold] {booking.start_time_utc.to_iso8601_string()}\n"
        f"[bold]End (UTC):[/bold] {booking.end_time_utc.to_iso8601_string()}",
        title="Booking",
    ))


@app.command()
def reschedule(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    on: Annotated[str, typer.Option("--date", "-d", help="New date (YYYY-MM-DD)")],
    at: Annotated[str, typer.Option("--time", "-t", help="New start time (HH:MM)")],
    config_file: ConfigOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
):
    """
    Move a booking to a new date and time.
    """
    try:
        ctx = _Context(config_file, verbose)
        booking = asyncio.run(
            ctx.booking_service.reschedule_booking(
                booking_id, day=_parse_date(on), time=at, now=_parse_now(now)
            )
        )
        ctx.save()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(
        f"[green]Booking {booking.id} moved to {booking.start_time_utc.to_iso8601_string()}.[/green]"
    )


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Cancel a booking.
    """
    try:
        ctx = _Context(config_file, verbose)
        booking = asyncio.run(ctx.booking_service.cancel_booking(booking_id))
        ctx.save()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]Booking {booking.id} cancelled.[/green]")


@app.command()
def bookings(
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List all stored bookings.
    """
    try:
        ctx = _Context(config_file, verbose)
        stored = asyncio.run(ctx.repository.list_bookings())
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not stored:
        console.print("[yellow]No bookings stored.[/yellow]")
        return

    table = Table(title="Bookings", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="dim")
    table.add_column("Staff", style="bold yellow")
    table.add_column("Customer")
    table.add_column("Start (UTC)")
    table.add_column("End (UTC)")
    table.add_column("Status")

    for booking in stored:
        table.add_row(
            booking.id,
            booking.staff_id,
            booking.customer.name,
            booking.start_time_utc.format("YYYY-MM-DD HH:mm"),
            booking.end_time_utc.format("HH:mm"),
            booking.status,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def remind(
    config_file: ConfigOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
):
    """
    Send reminders for bookings starting within the reminder window.
    """
    try:
        ctx = _Context(config_file, verbose)
        reminders = ReminderService(
            repository=ctx.repository,
            notifier=ctx.notifier,
            window_start_minutes=ctx.config.reminders.window_start_minutes,
            window_end_minutes=ctx.config.reminders.window_end_minutes,
        )
        result = asyncio.run(reminders.send_due_reminders(_parse_now(now)))
        ctx.save()
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]Sent {result.sent}/{result.processed} reminder(s).[/green]")
    for notification in ctx.notifier.sent:
        console.print(f"  {notification.recipient}: {notification.message}")


@app.command("to-utc")
def to_utc(
    on: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    at: Annotated[str, typer.Argument(help="Wall-clock time (HH:MM)")],
    timezone: Annotated[str, typer.Argument(help="IANA timezone, e.g. America/New_York")],
):
    """
    Convert a wall-clock time in a timezone to UTC.
    """
    day = _parse_date(on)
    try:
        hour, minute = (int(part) for part in at.split(":"))
        instant = local_time_to_utc(day.year, day.month, day.day, hour, minute, timezone)
    except ValueError as e:
        _fail(e)

    console.print(instant.to_iso8601_string())


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
