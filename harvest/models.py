"""Typed records used by the harvest pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

BASE_DECIMALS = 6
QUOTE_DECIMALS = 9


class Direction(str, Enum):
    """Swap side seen from the trader, inferred from the router's balances."""

    BUY = "Buy"
    SELL = "Sell"


class FetchStatus(str, Enum):
    """Per-signature result of a transaction fetch."""

    OK = "ok"
    NOT_FOUND = "not_found"
    EXECUTION_FAILED = "execution_failed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TokenBalance:
    """One token-balance snapshot entry of a transaction."""

    owner: str
    mint: str
    amount: str


@dataclass(frozen=True)
class RawTransaction:
    """Fetched transaction detail reduced to what classification needs."""

    signature: str
    failed: bool
    block_time: int | None
    pre_token_balances: tuple[TokenBalance, ...] = ()
    post_token_balances: tuple[TokenBalance, ...] = ()
    slot: int | None = None


@dataclass(frozen=True)
class FetchOutcome:
    """Result of fetching one signature."""

    signature: str
    status: FetchStatus
    transaction: RawTransaction | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK


@dataclass(frozen=True)
class ClassifiedTransaction:
    """One Buy/Sell swap against the router account."""

    signature: str
    timestamp: int
    date: str
    direction: Direction
    base_amount: Decimal
    quote_amount: Decimal

    def to_record(self) -> dict[str, object]:
        """Convert the swap into a serializable record."""
        return {
            "signature": self.signature,
            "timestamp": self.timestamp,
            "date": self.date,
            "direction": self.direction.value,
            "base_amount": f"{self.base_amount:.{BASE_DECIMALS}f}",
            "quote_amount": f"{self.quote_amount:.{QUOTE_DECIMALS}f}",
        }

    def to_row(self, base_symbol: str, quote_symbol: str) -> dict[str, object]:
        """Convert the swap into one ledger row keyed by ledger column."""
        return {
            "Date": self.date,
            "Timestamp": self.timestamp,
            "Type": self.direction.value,
            base_symbol: f"{self.base_amount:.{BASE_DECIMALS}f}",
            quote_symbol: f"{self.quote_amount:.{QUOTE_DECIMALS}f}",
            "Txn": self.signature,
        }


@dataclass
class HarvestStats:
    """Counters collected over one harvest run."""

    pages: int = 0
    signatures_seen: int = 0
    fetched: int = 0
    classified: int = 0
    persisted: int = 0
    duplicates: int = 0
    skipped: dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1

    def to_record(self) -> dict[str, object]:
        return {
            "pages": self.pages,
            "signatures_seen": self.signatures_seen,
            "fetched": self.fetched,
            "classified": self.classified,
            "persisted": self.persisted,
            "duplicates": self.duplicates,
            "skipped": dict(sorted(self.skipped.items())),
        }
