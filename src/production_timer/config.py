"""Configuration for the timer service and CLI.

Values come from the environment, optionally seeded from a ``.env`` file in the
working directory or in the data directory.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

DATA_DIR = Path.home() / ".production-timer"
DEFAULT_DB_PATH = DATA_DIR / "timer.db"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7788
DEFAULT_PERSIST_INTERVAL = 30  # seconds between writes of a running session
DEFAULT_BLACK_SCREEN_DELAY = 30  # seconds of inactivity before the overlay
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise click.ClickException(f"{name} must be an integer, got '{raw}'")


@dataclass
class TimerConfig:
    """Runtime configuration."""

    db_path: Path = DEFAULT_DB_PATH
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    api_url: Optional[str] = None
    persist_interval_seconds: int = DEFAULT_PERSIST_INTERVAL
    black_screen_delay_seconds: int = DEFAULT_BLACK_SCREEN_DELAY
    wake_lock_command: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    def __post_init__(self):
        self.db_path = Path(self.db_path).expanduser()
        if not self.api_url:
            self.api_url = f"http://{self.host}:{self.port}"
        self.api_url = self.api_url.rstrip("/")
        self.log_level = self.log_level.upper()

    @classmethod
    def from_env(cls) -> "TimerConfig":
        load_dotenv(Path.cwd() / ".env")
        load_dotenv(DATA_DIR / ".env")

        wake_cmd = os.environ.get("PTIMER_WAKE_LOCK_CMD", "")
        config = cls(
            db_path=Path(os.environ.get("PTIMER_DB", str(DEFAULT_DB_PATH))),
            host=os.environ.get("PTIMER_HOST", DEFAULT_HOST),
            port=_int_env("PTIMER_PORT", DEFAULT_PORT),
            api_url=os.environ.get("PTIMER_API_URL") or None,
            persist_interval_seconds=_int_env("PTIMER_PERSIST_INTERVAL", DEFAULT_PERSIST_INTERVAL),
            black_screen_delay_seconds=_int_env("PTIMER_BLACK_SCREEN_DELAY", DEFAULT_BLACK_SCREEN_DELAY),
            wake_lock_command=shlex.split(wake_cmd) if wake_cmd else [],
            log_level=os.environ.get("PTIMER_LOG_LEVEL", "INFO"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if not 1 <= self.port <= 65535:
            raise click.ClickException(f"Invalid port {self.port}")
        if self.persist_interval_seconds < 1:
            raise click.ClickException("PTIMER_PERSIST_INTERVAL must be at least 1 second")
        if self.black_screen_delay_seconds < 1:
            raise click.ClickException("PTIMER_BLACK_SCREEN_DELAY must be at least 1 second")
        if self.log_level not in LOG_LEVELS:
            valid = ", ".join(LOG_LEVELS)
            raise click.ClickException(
                f"Invalid log level '{self.log_level}'. Valid options: {valid}"
            )


def get_config() -> TimerConfig:
    """Get a validated configuration instance."""
    return TimerConfig.from_env()
