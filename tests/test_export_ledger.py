"""Tests for ledger Parquet export and metadata."""

from __future__ import annotations

import json
from pathlib import Path

import pyarrow.parquet as pq

from harvest.export import export_ledger

LEDGER = (
    "Date,Timestamp,Type,TOKEN,SOL,Txn\n"
    "2023-11-14 22:13:20,1700000000,Buy,5.000000,5.000000000,sig1\n"
    "2023-11-14 22:14:20,1700000060,Sell,1.250000,0.500000000,sig2\n"
    "2023-11-14 22:15:20,1700000120,Buy,2.000000,0.750000000,sig3\n"
)


def _write_ledger(tmp_path: Path) -> Path:
    path = tmp_path / "ledger.csv"
    path.write_text(LEDGER)
    return path


def test_export_writes_parquet_and_metadata(tmp_path) -> None:
    ledger = _write_ledger(tmp_path)

    result = export_ledger(
        str(ledger),
        base_symbol="TOKEN",
        quote_symbol="SOL",
        output_dir=str(tmp_path / "processed"),
    )

    table = pq.read_table(result.parquet_path)
    assert table.num_rows == 3
    assert table.column("SOL").to_pylist() == [
        "5.000000000",
        "0.500000000",
        "0.750000000",
    ]

    metadata = json.loads(Path(result.metadata_path).read_text())
    assert metadata["row_count"] == 3
    assert metadata["columns"] == ["Date", "Timestamp", "Type", "TOKEN", "SOL", "Txn"]
    assert metadata["direction_counts"] == {"Buy": 2, "Sell": 1}
    assert metadata["window"] == {
        "start_time_utc": "2023-11-14T22:13:20Z",
        "end_time_utc": "2023-11-14T22:15:20Z",
    }
    assert len(metadata["parquet_sha256"]) == 64
    assert Path(result.parquet_path).name.startswith("swaps_")


def test_export_is_deterministic_for_same_config(tmp_path) -> None:
    ledger = _write_ledger(tmp_path)
    kwargs = {
        "base_symbol": "TOKEN",
        "quote_symbol": "SOL",
        "output_dir": str(tmp_path / "processed"),
        "config": {"command": "export-ledger"},
    }

    first = export_ledger(str(ledger), **kwargs)
    second = export_ledger(str(ledger), **kwargs)

    assert first.parquet_path == second.parquet_path
    assert first.metadata["config_hash"] == second.metadata["config_hash"]


def test_export_of_header_only_ledger_has_empty_window(tmp_path) -> None:
    ledger = tmp_path / "ledger.csv"
    ledger.write_text("Date,Timestamp,Type,TOKEN,SOL,Txn\n")

    result = export_ledger(
        str(ledger),
        base_symbol="TOKEN",
        quote_symbol="SOL",
        output_dir=str(tmp_path / "processed"),
        dataset_name="empty",
    )

    assert result.metadata["row_count"] == 0
    assert result.metadata["window"] == {"start_time_utc": None, "end_time_utc": None}
    assert result.metadata["direction_counts"] == {}
