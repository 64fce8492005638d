from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_BACKEND_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
_DOTENV_LOADED = False


def ensure_backend_env_loaded() -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    if load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False):
        logger.debug("Loaded environment from %s", _BACKEND_ENV_PATH)
    _DOTENV_LOADED = True


@dataclass(frozen=True)
class RegularHoursWindow:
    """Regular working hours applied on each local day; outside it is overtime."""

    start: time = time(8, 30)
    end: time = time(17, 30)

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ConfigurationError(
                f"regular hours window end {self.end:%H:%M} must be after start {self.start:%H:%M}"
            )

    def bounds_on(self, value: datetime) -> tuple[datetime, datetime]:
        day = value.date()
        return datetime.combine(day, self.start), datetime.combine(day, self.end)


@dataclass(frozen=True)
class ScoreBounds:
    minimum: int = 1
    maximum: int = 5

    def __post_init__(self) -> None:
        if self.minimum > self.maximum:
            raise ConfigurationError(
                f"SCORE_MIN ({self.minimum}) must not exceed SCORE_MAX ({self.maximum})"
            )

    def contains(self, weight: int) -> bool:
        return self.minimum <= weight <= self.maximum


@dataclass(frozen=True)
class EngineConfig:
    """Everything the pure aggregation pipeline needs besides the events."""

    regular_hours: RegularHoursWindow = RegularHoursWindow()
    day_end: time = time(23, 59, 59)
    score_bounds: ScoreBounds = ScoreBounds()

    def day_end_on(self, value: datetime) -> datetime:
        return datetime.combine(value.date(), self.day_end)


@dataclass(frozen=True)
class Settings:
    engine: EngineConfig
    report_timezone: ZoneInfo
    db_timezone: ZoneInfo
    report_workers: int
    report_max_range_days: int
    log_level: str
    log_format: str


def _parse_time(name: str, value: str | None, default: time) -> time:
    if value is None or not value.strip():
        return default
    text = value.strip()
    for pattern in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(text, pattern).time()
        except ValueError:
            continue
    raise ConfigurationError(f"{name} must be HH:MM or HH:MM:SS, got {text!r}")


def _parse_int(name: str, value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _parse_zone(name: str, value: str | None, default: str) -> ZoneInfo:
    text = (value or "").strip() or default
    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"{name} is not a known timezone: {text!r}") from exc


def load_settings() -> Settings:
    ensure_backend_env_loaded()

    window = RegularHoursWindow(
        start=_parse_time("REGULAR_HOURS_START", os.getenv("REGULAR_HOURS_START"), time(8, 30)),
        end=_parse_time("REGULAR_HOURS_END", os.getenv("REGULAR_HOURS_END"), time(17, 30)),
    )
    day_end = _parse_time("DAY_END_TIME", os.getenv("DAY_END_TIME"), time(23, 59, 59))
    if day_end < window.end:
        raise ConfigurationError("DAY_END_TIME must not be earlier than REGULAR_HOURS_END")

    bounds = ScoreBounds(
        minimum=_parse_int("SCORE_MIN", os.getenv("SCORE_MIN"), 1),
        maximum=_parse_int("SCORE_MAX", os.getenv("SCORE_MAX"), 5),
    )

    workers = _parse_int("REPORT_WORKERS", os.getenv("REPORT_WORKERS"), 4)
    if workers < 1:
        raise ConfigurationError("REPORT_WORKERS must be at least 1")

    max_range = _parse_int("REPORT_MAX_RANGE_DAYS", os.getenv("REPORT_MAX_RANGE_DAYS"), 62)
    if max_range < 1:
        raise ConfigurationError("REPORT_MAX_RANGE_DAYS must be at least 1")

    log_format = (os.getenv("LOG_FORMAT") or "text").strip().lower() or "text"
    if log_format not in {"text", "json"}:
        raise ConfigurationError("LOG_FORMAT must be 'text' or 'json'")

    return Settings(
        engine=EngineConfig(regular_hours=window, day_end=day_end, score_bounds=bounds),
        report_timezone=_parse_zone("REPORT_TIMEZONE", os.getenv("REPORT_TIMEZONE"), "UTC"),
        db_timezone=_parse_zone("DB_TIMEZONE", os.getenv("DB_TIMEZONE"), "UTC"),
        report_workers=workers,
        report_max_range_days=max_range,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        log_format=log_format,
    )


settings = load_settings()
