"""Run summaries for harvest runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from harvest.config import HarvestConfig

if TYPE_CHECKING:
    from harvest.pipeline import HarvestResult


def build_run_report(result: HarvestResult, config: HarvestConfig) -> dict[str, Any]:
    """Summarize one harvest run as a JSON-like payload."""
    stats = result.stats.to_record()
    skipped = stats["skipped"]
    dropped = sum(skipped.values()) if isinstance(skipped, dict) else 0
    return {
        "run_id": result.run_id,
        "state": result.state.value,
        "stop_reason": result.stop_reason.value if result.stop_reason else None,
        "rounds": result.rounds,
        "persisted": result.persisted,
        "ledger_rows": result.ledger_rows,
        "ledger_path": result.ledger_path,
        "cursor_before": result.before,
        "elapsed_seconds": round(result.elapsed_seconds, 3),
        "dropped": dropped,
        "stats": stats,
        "config": config.describe(),
    }


def write_run_report(path: str, report: dict[str, Any]) -> None:
    """Write a run report JSON to disk."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(report, indent=2, sort_keys=True),
        encoding="utf-8",
    )
