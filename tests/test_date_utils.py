import logging

import pytest

from tracker.utils import date as date_utils
from tracker.utils.date import parse_flexible_date


@pytest.mark.parametrize("value, expected", [
    ("2024-09-04", "2024-09-04"),
    ("2024-9-4", "2024-09-04"),
    ("2024-09-04T23:09:18Z", "2024-09-04"),
    ("15/03/2024", "2024-03-15"),
    ("03/15/2024", "2024-03-15"),
    ("15.03.24", "2024-03-15"),
    ("Jan 5, 2024", "2024-01-05"),
    ("5 January 2024", "2024-01-05"),
])
def test_supported_formats(value, expected):
    assert parse_flexible_date(value) == expected


@pytest.mark.parametrize("value", [None, "", "   ", "someday", "2024-02-30", "31/31/2024"])
def test_unparseable_values(value):
    assert parse_flexible_date(value, log_failures=False) is None


def test_ambiguous_dates_follow_setting(monkeypatch):
    assert parse_flexible_date("04/05/2024") == "2024-04-05"
    monkeypatch.setattr(date_utils.settings, "date_default_dayfirst", True)
    assert parse_flexible_date("04/05/2024") == "2024-05-04"


def test_failures_are_logged_with_context(caplog, monkeypatch):
    monkeypatch.setattr(date_utils, "_failure_stats", {})
    with caplog.at_level(logging.WARNING, logger="tracker.utils.date"):
        parse_flexible_date("whenever", log_context="appliedDate")
    assert "Failed to parse date (appliedDate) value 'whenever'" in caplog.text


def test_failure_warnings_are_sampled(caplog, monkeypatch):
    monkeypatch.setattr(date_utils, "_failure_stats", {})
    with caplog.at_level(logging.WARNING, logger="tracker.utils.date"):
        for i in range(20):
            parse_flexible_date(f"bad value {i}x", log_context="sampled")
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == date_utils.FAILED_SAMPLE_LIMIT
