"""Tests for configuration loading."""

from datetime import timezone
from zoneinfo import ZoneInfo

from optima.config import DATA_DIR, Config, load_config
from optima.core.slots import TimeRange


def write_conf(tmp_path, text: str):
    path = tmp_path / "optima.conf"
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.conf")
        assert config == Config()
        assert config.windows["morning"] == "09:00-12:00"

    def test_reads_keys(self, tmp_path):
        path = write_conf(
            tmp_path,
            "\n".join(
                [
                    "# Optima settings",
                    'TIMEZONE="America/Toronto"',
                    "WORK_HOURS=08:00-16:00  # early bird",
                    "MORNING_WINDOW='07:00-11:00'",
                    "DAILY_CAPACITY_MINUTES=600",
                    "DAY_INTENTION=push",
                    "CALENDAR_FEED=https://example.com/cal.ics",
                    "DATA_DIR=~/planner",
                    "SCHEDULE_HORIZON_DAYS=3",
                    "UNKNOWN_KEY=ignored",
                    "not a setting",
                ]
            ),
        )
        config = load_config(path)
        assert config.timezone == "America/Toronto"
        assert config.work_hours == "08:00-16:00"
        assert config.windows["morning"] == "07:00-11:00"
        assert config.windows["evening"] == "17:00-21:00"
        assert config.daily_capacity_minutes == 600
        assert config.day_intention == "push"
        assert config.calendar_feed == "https://example.com/cal.ics"
        assert config.data_dir == "~/planner"
        assert config.schedule_horizon_days == 3

    def test_bad_values_fall_back(self, tmp_path, caplog):
        path = write_conf(tmp_path, "DAILY_CAPACITY_MINUTES=lots\nDAY_INTENTION=party\nSCHEDULE_HORIZON_DAYS=-2\n")
        config = load_config(path)
        assert config.daily_capacity_minutes is None
        assert config.day_intention == "balance"
        assert config.schedule_horizon_days == 7
        assert "DAY_INTENTION" in caplog.text


class TestConfigBridges:
    def test_slot_settings(self):
        config = Config(work_hours="08:00-18:00", windows={"morning": "06:00-10:00"})
        settings = config.slot_settings()
        assert settings.work_hours == TimeRange.parse("08:00-18:00")
        assert settings.windows["morning"] == TimeRange.parse("06:00-10:00")
        assert settings.windows["afternoon"] == TimeRange.parse("12:00-17:00")

    def test_bad_ranges_use_defaults(self, caplog):
        settings = Config(work_hours="late", windows={"evening": "21:00-17:00"}).slot_settings()
        assert settings.work_hours == TimeRange.parse("09:00-17:00")
        assert settings.windows["evening"] == TimeRange.parse("17:00-21:00")
        assert "WORK_HOURS" in caplog.text

    def test_tzinfo(self):
        assert Config().tzinfo() is timezone.utc
        assert Config(timezone="Europe/Paris").tzinfo() == ZoneInfo("Europe/Paris")
        assert Config(timezone="Mars/Olympus").tzinfo() is timezone.utc

    def test_data_path(self, tmp_path):
        assert Config().data_path() == DATA_DIR
        assert Config(data_dir=str(tmp_path)).data_path() == tmp_path
