"""Time utility helpers."""

from datetime import UTC, datetime

LEDGER_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def from_unix(timestamp: int) -> datetime:
    """Return a timezone-aware UTC datetime for unix seconds."""
    return datetime.fromtimestamp(int(timestamp), tz=UTC)


def format_block_time(timestamp: int) -> str:
    """Render block time the way ledger rows show it."""
    return from_unix(timestamp).strftime(LEDGER_DATE_FORMAT)
