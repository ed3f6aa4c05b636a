"""Command-line interface for readingtracker.

Built with Typer for commands and Rich for beautiful output. Each command
builds a fresh SessionManager, which adopts any session left running by a
previous invocation.
"""

import logging
import time
from datetime import date, datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .clock import LocalCalendar, SystemClock
from .config import get_config
from .db import get_db
from .db.models import Book
from .db.schemas import BookCreate, BookResponse, SessionResponse
from .db.sqlite import Database
from .errors import ReadingTrackerError
from .reading import SessionManager, SessionTicker, actual_reading_time
from .stats import DailyStats, PeriodStats, ReadingStats

# Create the main app
app = typer.Typer(
    name="readingtracker",
    help="Track reading sessions, streaks and reading speed.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show diagnostic logs"),
) -> None:
    """Configure logging for every command."""
    level = "INFO" if verbose else get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def format_duration(seconds: float) -> str:
    """Format seconds as H:MM:SS."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def format_book_table(books: list[BookResponse], title: str = "Books") -> Table:
    """Create a rich table for displaying books."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Page", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Difficulty", justify="center")
    table.add_column("ID", style="dim")

    for book in books:
        table.add_row(
            book.title,
            book.author,
            f"{book.current_page}/{book.total_pages}",
            f"{book.percent_complete:.0f}%",
            "●" * book.difficulty + "○" * (5 - book.difficulty),
            book.id[:8],
        )

    return table


def get_manager(db: Database) -> SessionManager:
    """Build a session manager from configuration."""
    return SessionManager(db, SystemClock(), get_config())


def get_calendar() -> LocalCalendar:
    """Local calendar for the configured timezone."""
    return LocalCalendar.from_name(get_config().timezone)


def get_stats(db: Database) -> ReadingStats:
    """Build a stats engine from configuration."""
    return ReadingStats(db, SystemClock(), get_calendar())


def format_local_time(moment: datetime) -> str:
    """Format an instant as HH:MM in the configured timezone."""
    return get_calendar().localize(moment).strftime("%H:%M")


def watch_session(manager: SessionManager) -> None:
    """Print the live reading time on every tick until interrupted."""
    ticker = SessionTicker(manager, interval=get_config().tick_interval)
    ticker.on_tick(
        lambda snapshot, elapsed: console.print(
            f"Reading time: {format_duration(elapsed)}"
            + (" (paused)" if snapshot.is_paused else ""),
            end="\r",
        )
    )
    print_info("Press Ctrl+C to stop watching.")
    try:
        with ticker:
            while ticker.running:
                time.sleep(ticker.interval)
    except KeyboardInterrupt:
        console.print()


def find_book(db: Database, query: str) -> Book:
    """Resolve a book by ID, ID prefix, or title/author search."""
    book = db.get_book(query)
    if book and book.is_active:
        return book

    matches = [b for b in db.get_all_books() if b.id.startswith(query)]
    if not matches:
        matches = db.search_books(query, limit=5)
    if not matches:
        print_error(f"No book found matching: {query}")
        raise typer.Exit(1)

    if len(matches) == 1:
        return matches[0]

    console.print("\n[bold]Multiple books found:[/bold]")
    for i, b in enumerate(matches, 1):
        console.print(f"  {i}. {b.title} by {b.author}")
    choice = typer.prompt("Select book number", type=int, default=1)
    if choice < 1 or choice > len(matches):
        print_error("Invalid selection.")
        raise typer.Exit(1)
    return matches[choice - 1]


# ============================================================================
# Book Commands
# ============================================================================


@app.command()
def add(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Option(..., "--author", "-a", help="Author"),
    pages: int = typer.Option(..., "--pages", "-p", help="Total pages"),
    current_page: int = typer.Option(0, "--current-page", "-c", help="Page already reached"),
    difficulty: int = typer.Option(3, "--difficulty", "-d", help="Difficulty 1-5"),
    category: Optional[str] = typer.Option(None, "--category", help="Category"),
) -> None:
    """Add a book to track."""
    try:
        data = BookCreate(
            title=title,
            author=author,
            total_pages=pages,
            current_page=current_page,
            difficulty=difficulty,
            category=category,
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    try:
        book = get_db().create_book(data)
    except ReadingTrackerError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Added '{book.title}' by {book.author} ({book.id[:8]})")


@app.command("books")
def list_books(
    all_books: bool = typer.Option(False, "--all", help="Include archived books"),
) -> None:
    """List tracked books."""
    books = [
        BookResponse.model_validate(b)
        for b in get_db().get_all_books(include_inactive=all_books)
    ]

    if not books:
        console.print("[dim]No books found.[/dim]")
        return

    console.print(format_book_table(books))


@app.command()
def archive(
    query: str = typer.Argument(..., help="Book ID or title"),
) -> None:
    """Archive a book (hide it without losing its sessions)."""
    db = get_db()
    book = find_book(db, query)
    db.archive_book(book.id)
    print_success(f"Archived '{book.title}'.")


# ============================================================================
# Session Commands
# ============================================================================


@app.command()
def start(
    query: str = typer.Argument(..., help="Book ID or title"),
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Start page (default: current page)"),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Where you're reading"),
) -> None:
    """Start a reading session."""
    db = get_db()
    book = find_book(db, query)
    manager = get_manager(db)

    try:
        session = manager.start_session(book.id, start_page=page, location=location)
    except ReadingTrackerError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(
        f"[green]Reading '{book.title}' from page {session.start_page}.[/green]"
    )
    print_info("Use 'readingtracker end --page N' when you stop.")


@app.command()
def pause() -> None:
    """Pause the running session."""
    manager = get_manager(get_db())
    try:
        snapshot = manager.pause_session()
    except ReadingTrackerError as e:
        print_error(str(e))
        raise typer.Exit(1)
    console.print(f"[yellow]Paused at {format_duration(snapshot.accumulated_seconds)}.[/yellow]")


@app.command()
def resume() -> None:
    """Resume a paused session."""
    manager = get_manager(get_db())
    try:
        manager.resume_session()
    except ReadingTrackerError as e:
        print_error(str(e))
        raise typer.Exit(1)
    console.print("[green]Resumed.[/green]")


@app.command()
def distract() -> None:
    """Record a distraction in the running session."""
    manager = get_manager(get_db())
    try:
        snapshot = manager.record_distraction()
    except ReadingTrackerError as e:
        print_error(str(e))
        raise typer.Exit(1)
    if snapshot.is_paused:
        print_warning("Session is paused; distraction not counted.")
        return
    console.print(
        f"Distractions: {snapshot.distraction_count} "
        f"(focus score {snapshot.focus_score:.0f})"
    )


@app.command()
def end(
    page: int = typer.Option(..., "--page", "-p", help="Page you stopped at"),
) -> None:
    """End the session and record progress."""
    manager = get_manager(get_db())
    try:
        session = manager.end_session(page)
    except ReadingTrackerError as e:
        print_error(str(e))
        raise typer.Exit(1)

    summary = SessionResponse.model_validate(session)
    console.print("[green]Reading session logged![/green]")
    console.print(f"  Pages read: {summary.pages_read}")
    console.print(f"  Reading time: {format_duration(actual_reading_time(session))}")
    console.print(f"  Focus score: {summary.focus_score:.0f}")
    console.print(f"  Ended: {format_local_time(summary.end_time)}")


@app.command()
def cancel() -> None:
    """Cancel the session without logging it."""
    manager = get_manager(get_db())
    try:
        manager.cancel_session()
    except ReadingTrackerError as e:
        print_warning(str(e))
        raise typer.Exit(1)
    print_success("Reading session cancelled.")


@app.command()
def status(
    watch: bool = typer.Option(False, "--watch", "-w", help="Keep updating the reading time"),
) -> None:
    """Show the current session."""
    db = get_db()
    manager = get_manager(db)
    snapshot = manager.snapshot

    if not snapshot.is_tracking:
        console.print("[dim]No active reading session.[/dim]")
        console.print("[dim]Use 'readingtracker start \"Book Title\"' to begin.[/dim]")
        return

    book = db.get_book(snapshot.book_id)
    table = Table(title="Active Reading Session", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Book", book.title if book else snapshot.book_id)
    table.add_row("Started", format_local_time(snapshot.started_at))
    table.add_row("State", "paused" if snapshot.is_paused else "reading")
    table.add_row("Reading time", format_duration(manager.current_duration()))
    table.add_row("Start page", str(snapshot.start_page))
    table.add_row("Distractions", str(snapshot.distraction_count))

    console.print(table)

    if watch:
        watch_session(manager)


# ============================================================================
# Stats Commands
# ============================================================================


def _daily_table(rows: list[DailyStats], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Day")
    table.add_column("Minutes", justify="right")
    table.add_column("Pages", justify="right")
    table.add_column("Sessions", justify="right")
    table.add_column("Focus", justify="right")
    table.add_column("Location")
    for row in rows:
        table.add_row(
            row.day.isoformat(),
            f"{row.total_minutes:.0f}",
            str(row.pages_read),
            str(row.sessions_count),
            f"{row.average_focus_score:.0f}" if row.sessions_count else "-",
            row.favorite_location or "-",
        )
    return table


def _period_table(stats: PeriodStats, title: str) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("From", stats.start.isoformat())
    table.add_row("To", stats.end.isoformat())
    table.add_row("Minutes", f"{stats.total_minutes:.0f}")
    table.add_row("Pages", str(stats.pages_read))
    table.add_row("Sessions", str(stats.sessions_count))
    table.add_row("Days active", str(stats.days_active))
    return table


@app.command()
def today() -> None:
    """Show today's reading."""
    stats = get_stats(get_db())
    console.print(_daily_table([stats.today_stats()], "Today"))


@app.command()
def stats(
    period: str = typer.Option("week", "--period", help="week, month or year"),
    start_date: Optional[datetime] = typer.Option(
        None, "--from", formats=["%Y-%m-%d"], help="Start date (overrides --period)"
    ),
    end_date: Optional[datetime] = typer.Option(
        None, "--to", formats=["%Y-%m-%d"], help="End date (default: today)"
    ),
) -> None:
    """Show totals for a period."""
    engine = get_stats(get_db())

    if start_date:
        end_day: date = end_date.date() if end_date else engine.calendar.today(engine.clock.now())
        try:
            result = engine.stats_for_period(start_date.date(), end_day)
        except ValueError as e:
            print_error(str(e))
            raise typer.Exit(1)
        title = "Reading"
    elif period == "week":
        result, title = engine.weekly_stats(), "Last 7 days"
    elif period == "month":
        result, title = engine.monthly_stats(), "Last month"
    elif period == "year":
        result, title = engine.yearly_stats(), "Last year"
    else:
        print_error(f"Unknown period: {period}")
        raise typer.Exit(1)

    console.print(_period_table(result, title))


@app.command()
def history(
    days: int = typer.Option(7, "--days", "-d", help="Number of days"),
) -> None:
    """Show day-by-day reading history."""
    engine = get_stats(get_db())
    console.print(_daily_table(engine.reading_history(days), f"Last {days} days"))


@app.command()
def streak() -> None:
    """Show the current and longest reading streaks."""
    engine = get_stats(get_db())
    current = engine.streak()
    longest = engine.longest_streak()
    console.print(f"Current streak: [bold]{current}[/bold] day(s)")
    console.print(f"Longest streak: {longest} day(s)")


@app.command()
def speed() -> None:
    """Show reading speed and all-time totals."""
    engine = get_stats(get_db())
    pages_per_hour = engine.reading_speed()
    if pages_per_hour:
        console.print(f"Reading speed: [bold]{pages_per_hour:.1f}[/bold] pages/hour")
    else:
        print_info("Not enough sessions over 5 minutes to estimate reading speed.")
    console.print(
        f"All time: {engine.total_pages_all_time()} pages, "
        f"{engine.total_hours_all_time()} hour(s)"
    )


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"readingtracker version {__version__}")


if __name__ == "__main__":
    app()
