"""Parquet + metadata export of a harvested ledger."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.parquet as pq

from harvest.ledger import read_ledger
from harvest.utils_time import from_unix


@dataclass(frozen=True)
class ExportResult:
    """Paths and metadata from an export run."""

    parquet_path: str
    metadata_path: str
    metadata: dict[str, Any]


def _as_utc_iso(timestamp: int) -> str:
    return from_unix(timestamp).isoformat().replace("+00:00", "Z")


def _config_hash(config: dict[str, Any]) -> str:
    canonical = json.dumps(config, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(8192)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def _direction_counts(table: pa.Table) -> dict[str, int]:
    counts: dict[str, int] = {}
    for value in table.column("Type").to_pylist():
        counts[value] = counts.get(value, 0) + 1
    return dict(sorted(counts.items()))


def _window(table: pa.Table) -> dict[str, str | None]:
    if table.num_rows == 0:
        return {"start_time_utc": None, "end_time_utc": None}
    bounds = pc.min_max(table.column("Timestamp"))
    return {
        "start_time_utc": _as_utc_iso(bounds["min"].as_py()),
        "end_time_utc": _as_utc_iso(bounds["max"].as_py()),
    }


def export_ledger(
    ledger_path: str,
    *,
    base_symbol: str,
    quote_symbol: str,
    output_dir: str = "data/processed",
    dataset_name: str = "swaps",
    config: dict[str, Any] | None = None,
) -> ExportResult:
    """Export a CSV ledger to Parquet and write metadata JSON."""
    export_config = dict(config or {})
    export_config.setdefault("base_symbol", base_symbol)
    export_config.setdefault("quote_symbol", quote_symbol)
    config_hash = _config_hash(export_config)

    table = read_ledger(ledger_path, base_symbol, quote_symbol)

    processed_dir = Path(output_dir)
    processed_dir.mkdir(parents=True, exist_ok=True)
    prefix = f"{dataset_name}_{config_hash[:12]}"
    parquet_path = processed_dir / f"{prefix}.parquet"
    metadata_path = processed_dir / f"{prefix}.metadata.json"

    pq.write_table(table, parquet_path)

    metadata: dict[str, Any] = {
        "dataset_name": dataset_name,
        "source_ledger": str(ledger_path),
        "window": _window(table),
        "row_count": table.num_rows,
        "column_count": len(table.column_names),
        "columns": table.column_names,
        "direction_counts": _direction_counts(table),
        "config_hash": config_hash,
        "config": export_config,
        "parquet_file": str(parquet_path),
        "parquet_sha256": _file_sha256(parquet_path),
    }

    metadata_path.write_text(
        json.dumps(metadata, indent=2, sort_keys=True),
        encoding="utf-8",
    )

    return ExportResult(
        parquet_path=str(parquet_path),
        metadata_path=str(metadata_path),
        metadata=metadata,
    )
