"""Runtime settings for the recording-check engine."""

import logging
import os
from datetime import timedelta
from zoneinfo import ZoneInfo

from pydantic import BaseModel

ENV_PREFIX = "RECORDING_CHECKS_"


class Settings(BaseModel):
    # check thresholds are product decisions; keep the defaults as they are
    check_interval_minutes: int = 30
    grace_minutes: int = 10
    missed_after_minutes: int = 30
    post_event_grace_minutes: int = 120

    watchdog_tick_seconds: float = 60
    sweep_interval_seconds: float = 60

    # externally-run events never resolve to a calculated owner
    excluded_event_types: tuple[str, ...] = ("KEC",)

    timezone: str = "UTC"
    log_level: str = "INFO"

    @property
    def check_interval(self) -> timedelta:
        return timedelta(minutes=self.check_interval_minutes)

    @property
    def grace_period(self) -> timedelta:
        return timedelta(minutes=self.grace_minutes)

    @property
    def missed_after(self) -> timedelta:
        return timedelta(minutes=self.missed_after_minutes)

    @property
    def post_event_grace(self) -> timedelta:
        return timedelta(minutes=self.post_event_grace_minutes)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from ``RECORDING_CHECKS_*`` environment variables."""
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name == "excluded_event_types":
                values[name] = tuple(
                    part.strip() for part in raw.split(",") if part.strip()
                )
            else:
                values[name] = raw
        return cls(**values)


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the package logger with a console handler."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    logger = logging.getLogger("recording_checks")
    logger.setLevel(log_level)
    if not logger.handlers:
        logger.addHandler(console_handler)
    return logger
