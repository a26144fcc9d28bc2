"""
Main CLI application using Typer.
"""

import logging
from datetime import time
from pathlib import Path
from typing import List, Optional, Annotated, Tuple

import pendulum
import typer
from pendulum import Date
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.calendar_feed import GraphCalendarFeed
from ..adapters.graph_authenticator import GraphAuthenticator
from ..adapters.memory_store import InMemoryBookingStore, InMemoryWalkLimitOverrideStore, JsonDataFile
from ..adapters.mock_calendar_feed import MockCalendarFeed
from ..config import AppConfig
from ..domain.exceptions import CalendarAPIError, SchedulerError
from ..domain.models import BookingRequest, BookingType, ServiceType, SittingState
from ..domain.recurrence import RecurrencePattern
from ..services.admission import AdmissionController
from ..services.availability import AvailabilityService
from ..services.booking import BookingService, DateStatus, RecurringRequest

app = typer.Typer(
    name="walkscheduler",
    help="Walk availability and booking admission",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="Booking data JSON file (overrides data_file in config)")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """Walk availability and booking admission."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    try:
        return AppConfig.load(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _parse_date(value: str, tz: str) -> Date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Could not parse date {value!r}: {e}[/red]")
        raise typer.Exit(1)


def _parse_time(value: str) -> time:
    try:
        hour, minute = (int(part) for part in value.split(":"))
        return time(hour=hour, minute=minute)
    except ValueError:
        console.print(f"[red]Could not parse time {value!r}, expected HH:MM[/red]")
        raise typer.Exit(1)


def _open_stores(
    config: AppConfig,
    data_file: Optional[Path],
) -> Tuple[JsonDataFile, InMemoryBookingStore, InMemoryWalkLimitOverrideStore]:
    data = JsonDataFile(data_file or config.data_file, timezone=config.timezone)
    booking_store, override_store = data.load()
    return data, booking_store, override_store


def _build_feed(config: AppConfig, mock: bool):
    if mock:
        return MockCalendarFeed()

    authenticator = GraphAuthenticator(
        client_id=config.calendar.client_id,
        tenant_id=config.calendar.tenant_id,
        authority_url=config.calendar.get_authority_url()
    )
    return GraphCalendarFeed(
        access_token=authenticator.get_access_token(),
        calendar_id=config.calendar.calendar_id,
    )


def _build_availability(config: AppConfig, feed) -> AvailabilityService:
    return AvailabilityService(
        feed,
        config.get_working_hours(),
        travel_buffer_minutes=config.travel_buffer_minutes,
        extended_travel_buffer_minutes=config.extended_travel_buffer_minutes,
        long_sitting_minutes=config.long_sitting_hours * 60,
    )


def _build_services(config: AppConfig, booking_store, override_store, feed=None):
    admission = AdmissionController(
        booking_store,
        override_store,
        default_walk_cap=config.max_walks_during_sitting,
        timezone=config.timezone,
    )
    availability = _build_availability(config, feed) if feed is not None else None
    return admission, availability, BookingService(booking_store, admission, availability)


@app.command()
def availability(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    service: Annotated[Optional[ServiceType], typer.Option("--service", "-s", help="Service type")] = None,
    extended_travel: Annotated[bool, typer.Option("--extended-travel", help="Use the extended travel buffer.")] = False,
    exclude_event: Annotated[Optional[str], typer.Option("--exclude-event", help="Calendar event id to ignore (rescheduling).")] = None,
    min_duration: Annotated[int, typer.Option("--min-duration", "-d", help="Minimum window length in minutes")] = 0,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock calendar data and skip authentication.")] = False,
    config_file: ConfigOption = None,
):
    """
    Show the free walk windows for a date.

    Examples:

        walkscheduler availability 2025-03-10 --mock
        walkscheduler availability 2025-03-10 --service solo --extended-travel
    """
    config = _load_config(config_file)
    day = _parse_date(date, config.timezone)

    try:
        windows = _build_availability(config, _build_feed(config, mock)).display_windows(
            day,
            service_type=service,
            extended_travel=extended_travel,
            exclude_event_id=exclude_event,
            min_duration_minutes=min_duration,
        )
    except SchedulerError as e:
        logging.getLogger(__name__).error("Availability lookup failed: %s", e)
        console.print("[bold red]Could not load availability right now. Please try again.[/bold red]")
        raise typer.Exit(1)

    if not windows:
        console.print(f"[yellow]No availability on {day.format('dddd, DD.MM.YYYY')}.[/yellow]")
        return

    table = Table(title=f"Availability {day.format('dddd, DD.MM.YYYY')}", header_style="bold cyan")
    table.add_column("From", style="bold green")
    table.add_column("To", style="bold green")
    for window in windows:
        table.add_row(window["start"], window["end"])
    console.print(table)


@app.command("walk-limit")
def walk_limit(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    Show the walk cap state for a date.
    """
    config = _load_config(config_file)
    day = _parse_date(date, config.timezone)

    try:
        _, booking_store, override_store = _open_stores(config, data_file)
        admission, _, _ = _build_services(config, booking_store, override_store)
        status = admission.walk_limit_status(day)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if status.state is SittingState.NO_SITTING:
        body = "No active sitting - walks are not capped."
    elif status.state is SittingState.UNLIMITED:
        body = "Active sitting with an unlimited override."
    else:
        colour = "red" if status.limit_reached else "green"
        body = (
            f"Active sitting - [{colour}]{status.current_walk_count}/{status.walk_limit}[/{colour}] walks booked"
        )
    console.print(Panel.fit(body, title=f"Walk limit {day.isoformat()}"))


@app.command("set-override")
def set_override(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    max_walks: Annotated[Optional[int], typer.Option("--max-walks", "-n", help="Walk cap for this date")] = None,
    unlimited: Annotated[bool, typer.Option("--unlimited", help="No walk cap on this date.")] = False,
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    Set the walk cap override for a date.
    """
    if (max_walks is None) == (not unlimited):
        console.print("[red]Pass exactly one of --max-walks or --unlimited.[/red]")
        raise typer.Exit(1)

    config = _load_config(config_file)
    day = _parse_date(date, config.timezone)

    try:
        data, booking_store, override_store = _open_stores(config, data_file)
        override = override_store.upsert(day, None if unlimited else max_walks)
        data.save(booking_store, override_store)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    limit = "unlimited" if override.is_unlimited else str(override.max_walks)
    console.print(f"[green]✓ Walk limit for {day.isoformat()} set to {limit}.[/green]")


@app.command("clear-override")
def clear_override(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    Remove the override for a date, restoring the default cap.
    """
    config = _load_config(config_file)
    day = _parse_date(date, config.timezone)

    try:
        data, booking_store, override_store = _open_stores(config, data_file)
        removed = override_store.delete(day)
        data.save(booking_store, override_store)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not removed:
        console.print(f"[yellow]No override found for {day.isoformat()}.[/yellow]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓ Override removed, default limit of {config.max_walks_during_sitting} restored.[/green]"
    )


@app.command("list-overrides")
def list_overrides(
    start: Annotated[str, typer.Argument(help="Start date (YYYY-MM-DD)")],
    end: Annotated[str, typer.Argument(help="End date (YYYY-MM-DD)")],
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    List walk cap overrides in a date range.
    """
    config = _load_config(config_file)
    start_day = _parse_date(start, config.timezone)
    end_day = _parse_date(end, config.timezone)

    try:
        _, _, override_store = _open_stores(config, data_file)
        overrides = override_store.list_range(start_day, end_day)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(
        title=f"Walk limit overrides (default {config.max_walks_during_sitting})",
        header_style="bold cyan",
    )
    table.add_column("Date", style="bold yellow")
    table.add_column("Max walks")
    for override in overrides:
        table.add_row(
            override.date.isoformat(),
            "unlimited" if override.is_unlimited else str(override.max_walks),
        )
    console.print(table)


@app.command()
def book(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    service: Annotated[ServiceType, typer.Option("--service", "-s", help="Service type")] = ServiceType.SOLO,
    duration: Annotated[int, typer.Option("--duration", "-d", help="Duration in minutes")] = 60,
    end_date: Annotated[Optional[str], typer.Option("--end-date", help="Last day of a multi-day sitting (YYYY-MM-DD)")] = None,
    owner: Annotated[Optional[int], typer.Option("--owner", help="Owner id")] = None,
    admin: Annotated[bool, typer.Option("--admin", help="Admin booking: skip the walk cap.")] = False,
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    Create a booking if admission allows it.

    Examples:

        walkscheduler book 2025-03-10 10:00 --service solo --duration 60
        walkscheduler book 2025-03-11 08:00 --service sitting --end-date 2025-03-14
    """
    config = _load_config(config_file)
    day = _parse_date(date, config.timezone)
    at = _parse_time(start_time)
    start = pendulum.datetime(day.year, day.month, day.day, at.hour, at.minute, tz=config.timezone)

    if end_date:
        last_day = _parse_date(end_date, config.timezone)
        if last_day < day:
            console.print("[red]--end-date must not be before the start date.[/red]")
            raise typer.Exit(1)
        end = start.add(days=day.diff(last_day).in_days(), minutes=duration)
        booking_type = BookingType.MULTI_DAY
    else:
        end = start.add(minutes=duration)
        booking_type = BookingType.SINGLE

    try:
        data, booking_store, override_store = _open_stores(config, data_file)
        _, _, booking_service = _build_services(config, booking_store, override_store)
        result = booking_service.create_booking(
            BookingRequest(
                start=start,
                end=end,
                service_type=service,
                booking_type=booking_type,
                owner_id=owner,
            ),
            enforce_walk_cap=not admin,
        )
        if result.admitted:
            data.save(booking_store, override_store)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not result.admitted:
        console.print(f"[bold red]✗ Booking rejected ({result.decision.reason.value}):[/bold red] {result.decision.message}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓ Booking {result.booking.id} confirmed:[/bold green] {result.booking.time_range}")


@app.command()
def reschedule(
    booking_id: Annotated[int, typer.Argument(help="Booking id")],
    date: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="New start time (HH:MM)")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Duration in minutes")] = 60,
    admin: Annotated[bool, typer.Option("--admin", help="Admin reschedule: skip the walk cap.")] = False,
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    Move a confirmed booking to a new time.
    """
    config = _load_config(config_file)
    day = _parse_date(date, config.timezone)
    at = _parse_time(start_time)
    start = pendulum.datetime(day.year, day.month, day.day, at.hour, at.minute, tz=config.timezone)

    try:
        data, booking_store, override_store = _open_stores(config, data_file)
        _, _, booking_service = _build_services(config, booking_store, override_store)
        result = booking_service.reschedule_booking(
            booking_id, start, start.add(minutes=duration), enforce_walk_cap=not admin
        )
        if result.admitted:
            data.save(booking_store, override_store)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not result.admitted:
        console.print(f"[bold red]✗ Reschedule rejected ({result.decision.reason.value}):[/bold red] {result.decision.message}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓ Booking {booking_id} moved to[/bold green] {result.booking.time_range}")


@app.command()
def cancel(
    booking_id: Annotated[int, typer.Argument(help="Booking id")],
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    Cancel a booking.
    """
    config = _load_config(config_file)

    try:
        data, booking_store, override_store = _open_stores(config, data_file)
        _, _, booking_service = _build_services(config, booking_store, override_store)
        booking_service.cancel_booking(booking_id)
        data.save(booking_store, override_store)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Booking {booking_id} cancelled.[/green]")


@app.command("recurring-check")
def recurring_check(
    start_date: Annotated[str, typer.Argument(help="First date (YYYY-MM-DD)")],
    preferred_time: Annotated[str, typer.Argument(help="Preferred start time (HH:MM)")],
    pattern: Annotated[RecurrencePattern, typer.Option("--pattern", "-p", help="Recurrence pattern")] = RecurrencePattern.WEEKLY,
    days: Annotated[Optional[List[int]], typer.Option("--day", help="ISO weekday for custom patterns (1=Mon). Repeatable.")] = None,
    service: Annotated[ServiceType, typer.Option("--service", "-s", help="Service type")] = ServiceType.SOLO,
    duration: Annotated[int, typer.Option("--duration", "-d", help="Duration in minutes")] = 60,
    weeks: Annotated[int, typer.Option("--weeks", "-w", help="Weeks ahead (max 12)")] = 12,
    extended_travel: Annotated[bool, typer.Option("--extended-travel", help="Use the extended travel buffer.")] = False,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock calendar data and skip authentication.")] = False,
    data_file: DataOption = None,
    config_file: ConfigOption = None,
):
    """
    Check which dates of a recurring walk can be booked.
    """
    config = _load_config(config_file)
    first_day = _parse_date(start_date, config.timezone)
    at = _parse_time(preferred_time)

    try:
        _, booking_store, override_store = _open_stores(config, data_file)
        feed = _build_feed(config, mock)
        _, _, booking_service = _build_services(config, booking_store, override_store, feed)
        result = booking_service.check_recurring(
            RecurringRequest(
                service_type=service,
                duration_minutes=duration,
                pattern=pattern,
                preferred_time=at,
                start_date=first_day,
                weeks_ahead=weeks,
                days_of_week=days,
                extended_travel=extended_travel,
            )
        )
    except CalendarAPIError as e:
        logging.getLogger(__name__).error("Recurring availability lookup failed: %s", e)
        console.print("[bold red]Could not check availability right now. Please try again.[/bold red]")
        raise typer.Exit(1)
    except SchedulerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    styles = {
        DateStatus.AVAILABLE: "green",
        DateStatus.CONFLICT: "yellow",
        DateStatus.BLOCKED: "red",
    }
    table = Table(title="Recurring availability", header_style="bold cyan")
    table.add_column("Date", style="bold")
    table.add_column("Status")
    table.add_column("Details", style="dim")
    for entry in result.dates:
        style = styles[entry.status]
        details = entry.reason
        if entry.alternatives:
            details = f"{entry.reason}; try {', '.join(entry.alternatives[:3])}"
        table.add_row(entry.date.format("ddd D MMM"), f"[{style}]{entry.status.value}[/{style}]", details)

    console.print(table)
    summary = result.summary()
    console.print(
        f"{summary['available']} available, {summary['conflicts']} conflicts, "
        f"{summary['blocked']} blocked of {summary['total_requested']} dates"
    )


@app.command()
def test_auth(
    config_file: ConfigOption = None,
    force: bool = typer.Option(
        False,
        "--force",
        help="Force re-authentication"
    )
):
    """
    Test calendar authentication.
    """
    config = _load_config(config_file)

    try:
        authenticator = GraphAuthenticator(
            client_id=config.calendar.client_id,
            tenant_id=config.calendar.tenant_id,
            authority_url=config.calendar.get_authority_url()
        )
        feed = GraphCalendarFeed(access_token=authenticator.get_access_token(force_refresh=force))
        user_info = feed.test_connection()
    except SchedulerError as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold green]✓ Authentication successful![/bold green]\n\n"
        f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
        f"[bold]Email:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}",
        title="✓ Connection test"
    ))


@app.command()
def clear_cache(
    config_file: ConfigOption = None,
):
    """
    Clear the authentication token cache.
    """
    config = _load_config(config_file)

    authenticator = GraphAuthenticator(
        client_id=config.calendar.client_id,
        tenant_id=config.calendar.tenant_id
    )
    authenticator.clear_cache()
    console.print("\n[green]✓ Token cache cleared.[/green]")
    console.print("You will need to sign in again on the next call.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]walkscheduler[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
