"""Append-only CSV ledger of classified swaps."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

import pyarrow as pa
import pyarrow.csv as pa_csv

from harvest.errors import PersistenceError
from harvest.models import ClassifiedTransaction

SIGNATURE_COLUMN = "Txn"


def ledger_columns(base_symbol: str, quote_symbol: str) -> list[str]:
    """Return the fixed six-column ledger header."""
    return ["Date", "Timestamp", "Type", base_symbol, quote_symbol, SIGNATURE_COLUMN]


def ledger_schema(base_symbol: str, quote_symbol: str) -> pa.Schema:
    """Arrow schema of ledger rows; amounts stay pre-rendered fixed-point text."""
    return pa.schema(
        [
            ("Date", pa.string()),
            ("Timestamp", pa.int64()),
            ("Type", pa.string()),
            (base_symbol, pa.string()),
            (quote_symbol, pa.string()),
            (SIGNATURE_COLUMN, pa.string()),
        ]
    )


def read_ledger(path: str | Path, base_symbol: str, quote_symbol: str) -> pa.Table:
    """Read a ledger file back with amounts kept as text."""
    schema = ledger_schema(base_symbol, quote_symbol)
    try:
        return pa_csv.read_csv(
            path,
            convert_options=pa_csv.ConvertOptions(
                column_types={field.name: field.type for field in schema}
            ),
        )
    except (OSError, pa.ArrowInvalid) as exc:
        raise PersistenceError(f"cannot read ledger {path}: {exc}") from exc


class LedgerAggregator:
    """Deduplicates classified swaps and appends them durably to a CSV file.

    The header is written once, on the first write to an empty file. An
    existing ledger is reopened in append mode and its signatures seed the
    seen set, so restarted runs never duplicate rows.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        base_symbol: str,
        quote_symbol: str,
        sort_by_timestamp: bool = False,
    ) -> None:
        self.path = Path(path)
        self.base_symbol = base_symbol
        self.quote_symbol = quote_symbol
        self.sort_by_timestamp = sort_by_timestamp
        self.columns = ledger_columns(base_symbol, quote_symbol)
        self.schema = ledger_schema(base_symbol, quote_symbol)
        self.seen: set[str] = set()
        self.count = 0
        self.total_rows = 0
        self.logger = logging.getLogger("harvest")
        self._load_existing()

    @property
    def has_header(self) -> bool:
        return self.path.exists() and self.path.stat().st_size > 0

    def _load_existing(self) -> None:
        if not self.has_header:
            return

        try:
            with self.path.open("r", encoding="utf-8") as handle:
                header = handle.readline().strip()
        except OSError as exc:
            raise PersistenceError(f"cannot read ledger {self.path}: {exc}") from exc
        if [cell.strip('"') for cell in header.split(",")] != self.columns:
            raise PersistenceError(
                f"ledger {self.path} header {header!r} does not match "
                f"{','.join(self.columns)!r}"
            )

        table = read_ledger(self.path, self.base_symbol, self.quote_symbol)
        self.seen.update(
            value for value in table.column(SIGNATURE_COLUMN).to_pylist() if value
        )
        self.total_rows = table.num_rows
        self.logger.info(
            "resuming ledger %s with %s existing rows", self.path, self.total_rows
        )

    def _select(
        self, records: Iterable[ClassifiedTransaction]
    ) -> list[ClassifiedTransaction]:
        batch: list[ClassifiedTransaction] = []
        batch_signatures: set[str] = set()
        for record in records:
            if record.signature in self.seen or record.signature in batch_signatures:
                continue
            batch_signatures.add(record.signature)
            batch.append(record)
        if self.sort_by_timestamp:
            batch.sort(key=lambda record: (record.timestamp, record.signature))
        return batch

    def persist(
        self,
        records: Iterable[ClassifiedTransaction],
        *,
        limit: int | None = None,
    ) -> list[ClassifiedTransaction]:
        """Append unseen records and return those actually written.

        ``limit`` caps how many rows this call may append. Rows are flushed
        and fsynced before the call returns.
        """
        batch = self._select(records)
        if limit is not None:
            batch = batch[: max(0, limit)]
        if not batch:
            return []

        rows = [record.to_row(self.base_symbol, self.quote_symbol) for record in batch]
        table = pa.Table.from_pylist(rows, schema=self.schema)
        buffer = pa.BufferOutputStream()

        try:
            pa_csv.write_csv(
                table,
                buffer,
                write_options=pa_csv.WriteOptions(
                    include_header=False,
                    quoting_style="none",
                ),
            )
            payload = buffer.getvalue().to_pybytes()
            if not self.has_header:
                payload = (",".join(self.columns) + "\n").encode("utf-8") + payload
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("ab") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
        except (OSError, pa.ArrowInvalid) as exc:
            raise PersistenceError(f"cannot append to ledger {self.path}: {exc}") from exc

        self.seen.update(record.signature for record in batch)
        self.count += len(batch)
        self.total_rows += len(batch)
        return batch
