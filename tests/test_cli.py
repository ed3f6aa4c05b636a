"""Tests for the CLI interface."""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from readingtracker.cli import app, format_duration, format_local_time
from readingtracker.config import reset_config
from readingtracker.db.sqlite import get_db, reset_db


@pytest.fixture(autouse=True)
def setup_test_db():
    """Set up a test database for each test."""
    reset_db()
    reset_config()

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    os.environ["READINGTRACKER_DB_PATH"] = db_path

    yield

    # Cleanup
    reset_db()
    reset_config()
    if "READINGTRACKER_DB_PATH" in os.environ:
        del os.environ["READINGTRACKER_DB_PATH"]
    if Path(db_path).exists():
        Path(db_path).unlink()


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def gatsby(runner: CliRunner):
    """Add a book through the CLI."""
    result = runner.invoke(
        app, ["add", "The Great Gatsby", "--author", "F. Scott Fitzgerald", "--pages", "180"]
    )
    assert result.exit_code == 0
    return get_db().search_books("Gatsby")[0]


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        """Test that help command works."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Track reading sessions" in result.stdout

    def test_version(self, runner: CliRunner):
        """Test version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_format_duration(self):
        """Test H:MM:SS formatting."""
        assert format_duration(0) == "0:00:00"
        assert format_duration(3725.9) == "1:02:05"

    def test_local_time_uses_configured_timezone(self, monkeypatch):
        """Test that clock times follow READINGTRACKER_TIMEZONE."""
        monkeypatch.setenv("READINGTRACKER_TIMEZONE", "Asia/Seoul")
        reset_config()

        assert format_local_time(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)) == "18:00"


class TestBookCommands:
    """Tests for adding and listing books."""

    def test_add_book(self, runner: CliRunner, gatsby):
        """Test adding a book."""
        assert gatsby.total_pages == 180
        assert gatsby.current_page == 0

    def test_add_invalid_current_page(self, runner: CliRunner):
        """Test that a current page past the end is rejected."""
        result = runner.invoke(
            app, ["add", "Short", "--author", "A", "--pages", "10", "--current-page", "11"]
        )
        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_list_books(self, runner: CliRunner, gatsby):
        """Test listing books."""
        result = runner.invoke(app, ["books"])
        assert result.exit_code == 0
        assert "Gatsby" in result.stdout
        assert "0/180" in result.stdout

    def test_list_books_empty(self, runner: CliRunner):
        """Test listing with no books."""
        result = runner.invoke(app, ["books"])
        assert result.exit_code == 0
        assert "No books found" in result.stdout

    def test_archive_book(self, runner: CliRunner, gatsby):
        """Test archiving hides a book."""
        result = runner.invoke(app, ["archive", gatsby.id])
        assert result.exit_code == 0

        result = runner.invoke(app, ["books"])
        assert "No books found" in result.stdout


class TestSessionCommands:
    """Tests for the session lifecycle commands."""

    def test_full_session(self, runner: CliRunner, gatsby):
        """Test start, pause, resume, distract and end across invocations."""
        result = runner.invoke(app, ["start", "Gatsby", "--location", "home"])
        assert result.exit_code == 0
        assert "from page 0" in result.stdout

        result = runner.invoke(app, ["status"])
        assert "Active Reading Session" in result.stdout

        assert runner.invoke(app, ["pause"]).exit_code == 0
        assert runner.invoke(app, ["resume"]).exit_code == 0

        result = runner.invoke(app, ["distract"])
        assert "Distractions: 1" in result.stdout

        result = runner.invoke(app, ["end", "--page", "25"])
        assert result.exit_code == 0
        assert "Pages read: 25" in result.stdout
        assert "Focus score: 95" in result.stdout
        assert "Ended:" in result.stdout

        result = runner.invoke(app, ["status"])
        assert "No active reading session" in result.stdout
        assert get_db().get_book(gatsby.id).current_page == 25

    def test_start_unknown_book(self, runner: CliRunner):
        """Test starting a session for a book that does not exist."""
        result = runner.invoke(app, ["start", "Nothing"])
        assert result.exit_code == 1
        assert "No book found" in result.stdout

    def test_start_second_book_rejected(self, runner: CliRunner, gatsby):
        """Test that only one book can be read at a time."""
        runner.invoke(app, ["add", "Dune", "--author", "Frank Herbert", "--pages", "600"])
        runner.invoke(app, ["start", "Gatsby"])

        result = runner.invoke(app, ["start", "Dune"])

        assert result.exit_code == 1
        assert "already in progress" in result.stdout

    def test_end_without_session(self, runner: CliRunner):
        """Test ending when nothing is running."""
        result = runner.invoke(app, ["end", "--page", "10"])
        assert result.exit_code == 1
        assert "No reading session" in result.stdout

    def test_end_before_start_page(self, runner: CliRunner, gatsby):
        """Test that the end page is validated."""
        runner.invoke(app, ["start", "Gatsby", "--page", "50"])

        result = runner.invoke(app, ["end", "--page", "40"])

        assert result.exit_code == 1
        assert len(get_db().get_incomplete_sessions()) == 1

    def test_cancel(self, runner: CliRunner, gatsby):
        """Test cancelling a session."""
        runner.invoke(app, ["start", "Gatsby"])

        result = runner.invoke(app, ["cancel"])

        assert result.exit_code == 0
        assert get_db().get_sessions_for_book(gatsby.id) == []


class TestStatsCommands:
    """Tests for the statistics commands."""

    @pytest.fixture(autouse=True)
    def logged_session(self, runner: CliRunner, gatsby):
        runner.invoke(app, ["start", "Gatsby"])
        runner.invoke(app, ["end", "--page", "10"])

    @pytest.mark.parametrize(
        "args",
        [
            ["today"],
            ["stats"],
            ["stats", "--period", "month"],
            ["stats", "--period", "year"],
            ["stats", "--from", "2025-01-01", "--to", "2025-01-31"],
            ["history", "--days", "3"],
            ["streak"],
            ["speed"],
        ],
    )
    def test_commands_run(self, runner: CliRunner, args):
        """Test that each stats command succeeds."""
        result = runner.invoke(app, args)
        assert result.exit_code == 0, result.stdout

    def test_streak_output(self, runner: CliRunner):
        """Test that today's session starts a streak."""
        result = runner.invoke(app, ["streak"])
        assert "Current streak: 1" in result.stdout

    def test_unknown_period(self, runner: CliRunner):
        """Test an invalid period name."""
        result = runner.invoke(app, ["stats", "--period", "decade"])
        assert result.exit_code == 1

    def test_reversed_range(self, runner: CliRunner):
        """Test a range that ends before it starts."""
        result = runner.invoke(app, ["stats", "--from", "2025-03-10", "--to", "2025-03-01"])
        assert result.exit_code == 1
        assert "after end" in result.stdout
