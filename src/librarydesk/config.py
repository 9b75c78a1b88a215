"""Configuration management for librarydesk.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .logging_setup import LOG_LEVELS

# Load .env file if present
load_dotenv()


DEFAULT_LOAN_DAYS = 21
DEFAULT_EXTENSION_DAYS = 14
DEFAULT_MAX_LOANS = 5


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Loan policy
    loan_days: int
    extension_days: int
    default_max_loans: int
    due_soon_days: int

    # Notifications
    from_email: str
    from_name: str
    webhook_url: Optional[str]

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "LIBRARYDESK_DB_PATH",
            str(Path.home() / ".librarydesk" / "library.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            loan_days=int(os.environ.get("LIBRARYDESK_LOAN_DAYS", str(DEFAULT_LOAN_DAYS))),
            extension_days=int(
                os.environ.get("LIBRARYDESK_EXTENSION_DAYS", str(DEFAULT_EXTENSION_DAYS))
            ),
            default_max_loans=int(
                os.environ.get("LIBRARYDESK_MAX_LOANS", str(DEFAULT_MAX_LOANS))
            ),
            due_soon_days=int(os.environ.get("LIBRARYDESK_DUE_SOON_DAYS", "3")),
            from_email=os.environ.get("LIBRARYDESK_FROM_EMAIL", "noreply@library.local"),
            from_name=os.environ.get("LIBRARYDESK_FROM_NAME", "Online Library"),
            webhook_url=os.environ.get("LIBRARYDESK_WEBHOOK_URL") or None,
            log_level=os.environ.get("LIBRARYDESK_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        # Check database directory is writable
        if not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.loan_days < 1:
            errors.append("LIBRARYDESK_LOAN_DAYS must be at least 1")
        if self.extension_days < 1:
            errors.append("LIBRARYDESK_EXTENSION_DAYS must be at least 1")
        if self.default_max_loans < 0:
            errors.append("LIBRARYDESK_MAX_LOANS cannot be negative")
        if self.log_level not in LOG_LEVELS:
            errors.append(f"Unknown log level: {self.log_level}")

        return errors

    def has_webhook(self) -> bool:
        """Check if a notification webhook is configured."""
        return bool(self.webhook_url)


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
