"""Configuration management for readingtracker.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Calendar
    timezone: Optional[str]  # IANA name, None for the system zone

    # Recovery
    recovery_grace_seconds: float

    # Store
    store_retry_max: int
    store_retry_delay: float  # seconds
    store_timeout: float  # seconds

    # Live display
    tick_interval: float  # seconds

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "READINGTRACKER_DB_PATH",
            str(Path.home() / ".readingtracker" / "reading.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            timezone=os.environ.get("READINGTRACKER_TIMEZONE") or None,
            recovery_grace_seconds=float(
                os.environ.get("READINGTRACKER_RECOVERY_GRACE_SECONDS", "60")
            ),
            store_retry_max=int(os.environ.get("READINGTRACKER_STORE_RETRY_MAX", "3")),
            store_retry_delay=float(
                os.environ.get("READINGTRACKER_STORE_RETRY_DELAY", "0.1")
            ),
            store_timeout=float(os.environ.get("READINGTRACKER_STORE_TIMEOUT", "5")),
            tick_interval=float(os.environ.get("READINGTRACKER_TICK_INTERVAL", "1.0")),
            log_level=os.environ.get("READINGTRACKER_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        # Check database directory is writable
        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.timezone:
            from .clock import load_timezone

            try:
                load_timezone(self.timezone)
            except ValueError as e:
                errors.append(str(e))

        if self.recovery_grace_seconds < 0:
            errors.append("Recovery grace interval must not be negative")
        if self.store_retry_max < 1:
            errors.append("Store retry count must be at least 1")
        if self.tick_interval <= 0:
            errors.append("Tick interval must be positive")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
