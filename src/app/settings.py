"""Configuration helpers for the Flashdeck runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_NEW_CARDS_PER_DAY = 10
DEFAULT_TIMEZONE = "UTC"


@dataclass(frozen=True)
class StudyConfig:
    """Study policy values handed explicitly to the queue builder and sessions."""

    new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY
    timezone: tzinfo = ZoneInfo(DEFAULT_TIMEZONE)


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    telegram_bot_token: str
    new_cards_per_day: int
    study_timezone: str

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        app_name = os.getenv("APP_NAME", "Flashdeck")
        app_env = os.getenv("APP_ENV", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN")

        if not telegram_bot_token:
            raise RuntimeError(
                "TELEGRAM_BOT_TOKEN environment variable is required to start the Telegram bot."
            )

        try:
            new_cards_per_day = int(os.getenv("NEW_CARDS_PER_DAY", str(DEFAULT_NEW_CARDS_PER_DAY)))
        except ValueError as exc:
            raise RuntimeError("NEW_CARDS_PER_DAY must be an integer.") from exc

        if new_cards_per_day < 0:
            raise RuntimeError("NEW_CARDS_PER_DAY must not be negative.")

        study_timezone = os.getenv("STUDY_TIMEZONE", DEFAULT_TIMEZONE)
        try:
            ZoneInfo(study_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise RuntimeError(f"STUDY_TIMEZONE {study_timezone!r} is not a known time zone.") from exc

        return cls(
            app_name=app_name,
            app_env=app_env,
            log_level=log_level,
            telegram_bot_token=telegram_bot_token,
            new_cards_per_day=new_cards_per_day,
            study_timezone=study_timezone,
        )

    def study_config(self) -> StudyConfig:
        return StudyConfig(
            new_cards_per_day=self.new_cards_per_day,
            timezone=ZoneInfo(self.study_timezone),
        )
