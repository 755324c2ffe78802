"""Configuration management for Optima."""

import logging
import os
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .core.energy import INTENTION_MULTIPLIERS
from .core.slots import DEFAULT_HORIZON_DAYS, DEFAULT_WINDOWS, SlotSettings, TimeRange

logger = logging.getLogger(__name__)

OPTIMA_HOME = Path(os.environ.get("OPTIMA_HOME", Path.home() / "optima"))
CONFIG_FILE = OPTIMA_HOME / "config" / "optima.conf"
DATA_DIR = OPTIMA_HOME / "data"


@dataclass
class Config:
    """Optima configuration."""

    timezone: str = "UTC"
    work_hours: str = "09:00-17:00"
    windows: dict[str, str] = field(
        default_factory=lambda: {name: r.format() for name, r in DEFAULT_WINDOWS.items()}
    )
    daily_capacity_minutes: int | None = None
    day_intention: str = "balance"
    calendar_feed: str = ""
    data_dir: str = ""
    schedule_horizon_days: int = DEFAULT_HORIZON_DAYS

    def tzinfo(self) -> tzinfo:
        """The configured timezone, UTC if it cannot be resolved."""
        if not self.timezone or self.timezone.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {self.timezone!r}, using UTC")
            return timezone.utc

    def slot_settings(self) -> SlotSettings:
        """Work hours and windows for the slot finder. Bad ranges fall back to defaults."""
        try:
            work_hours = TimeRange.parse(self.work_hours)
        except ValueError as e:
            logger.warning(f"Invalid WORK_HOURS: {e}")
            work_hours = SlotSettings().work_hours

        windows = dict(DEFAULT_WINDOWS)
        for name, value in self.windows.items():
            try:
                windows[name] = TimeRange.parse(value)
            except ValueError as e:
                logger.warning(f"Invalid {name.upper()}_WINDOW: {e}")
        return SlotSettings(work_hours=work_hours, windows=windows)

    def data_path(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return DATA_DIR


def _strip_value(value: str) -> str:
    # Quoted values may be followed by an inline comment: "value" # comment
    if value[:1] in ('"', "'"):
        quote = value[0]
        end_quote = value.find(quote, 1)
        return value[1:end_quote] if end_quote != -1 else value[1:]
    if "#" in value:
        return value.split("#")[0].strip()
    return value


def _parse_int(key: str, value: str, minimum: int = 0) -> int | None:
    try:
        number = int(value)
    except ValueError:
        logger.warning(f"Ignoring {key.upper()}={value!r}: not a whole number")
        return None
    if number < minimum:
        logger.warning(f"Ignoring {key.upper()}={value!r}: must be at least {minimum}")
        return None
    return number


def load_config(path: Path | str | None = None) -> Config:
    """Load configuration from optima.conf. Missing file means defaults."""
    config = Config()
    config_file = Path(path).expanduser() if path else CONFIG_FILE

    if not config_file.exists():
        return config

    for line in config_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = _strip_value(value.strip())

        match key:
            case "timezone":
                config.timezone = value
            case "work_hours":
                config.work_hours = value
            case "morning_window" | "afternoon_window" | "evening_window":
                config.windows[key.removesuffix("_window")] = value
            case "daily_capacity_minutes":
                config.daily_capacity_minutes = _parse_int(key, value) if value else None
            case "day_intention":
                if value in INTENTION_MULTIPLIERS:
                    config.day_intention = value
                else:
                    logger.warning(f"Ignoring unknown DAY_INTENTION {value!r}")
            case "calendar_feed":
                config.calendar_feed = value
            case "data_dir":
                config.data_dir = value
            case "schedule_horizon_days":
                days = _parse_int(key, value)
                if days is not None:
                    config.schedule_horizon_days = days

    return config
