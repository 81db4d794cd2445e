"""Smoke tests for initial project wiring."""

from datetime import UTC, datetime

from harvest.utils_time import format_block_time, from_unix


def test_pytest_runs() -> None:
    assert True


def test_format_block_time_renders_utc() -> None:
    assert format_block_time(1700000000) == "2023-11-14 22:13:20"


def test_from_unix_is_timezone_aware() -> None:
    assert from_unix(0) == datetime(1970, 1, 1, tzinfo=UTC)
