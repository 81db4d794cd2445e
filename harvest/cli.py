"""CLI for harvest workflows."""

from __future__ import annotations

import argparse
import os
from collections.abc import Sequence
from typing import Any

from dotenv import load_dotenv

from harvest.config import HarvestConfig, load_config
from harvest.errors import ConfigError, PersistenceError, UpstreamError
from harvest.export import export_ledger
from harvest.logging import get_logger
from harvest.pipeline import run_harvest

# config field -> environment variable read when the flag is absent
_ENV_FALLBACKS = {
    "rpc_url": "SOLANA_RPC_URL",
    "token_mint": "HARVEST_TOKEN_MINT",
    "quote_mint": "HARVEST_QUOTE_MINT",
    "router_account": "HARVEST_ROUTER_ACCOUNT",
    "base_symbol": "HARVEST_BASE_SYMBOL",
    "quote_symbol": "HARVEST_QUOTE_SYMBOL",
    "target_count": "HARVEST_TARGET_COUNT",
    "rate_per_second": "HARVEST_RATE_PER_SECOND",
    "burst": "HARVEST_BURST",
    "output_path": "HARVEST_OUTPUT_PATH",
}


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--rpc-url", default=None)
    parser.add_argument("--token-mint", default=None)
    parser.add_argument("--quote-mint", default=None)
    parser.add_argument("--router-account", default=None)
    parser.add_argument("--base-symbol", default=None)
    parser.add_argument("--quote-symbol", default=None)
    parser.add_argument("--target-count", default=None, type=int)
    parser.add_argument("--page-size", default=None, type=int)
    parser.add_argument("--workers", default=None, type=int)
    parser.add_argument("--rate-per-second", default=None, type=float)
    parser.add_argument("--burst", default=None, type=int)
    parser.add_argument("--output-path", default=None)
    parser.add_argument("--run-log-dir", default=None)
    parser.add_argument("--cursor-checkpoint-path", default=None)
    parser.add_argument("--max-rounds", default=None, type=int)
    parser.add_argument("--rpc-timeout-seconds", default=None, type=int)
    parser.add_argument("--rpc-max-retries", default=None, type=int)
    parser.add_argument(
        "--sort-by-timestamp",
        action=argparse.BooleanOptionalAction,
        default=None,
    )
    parser.add_argument(
        "--strict-quota",
        action=argparse.BooleanOptionalAction,
        default=None,
    )
    parser.add_argument("--log-level", default=None)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for harvest commands."""
    parser = argparse.ArgumentParser(prog="harvest-cli")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_config = subparsers.add_parser(
        "check-config", help="Load and validate config without harvesting."
    )
    _add_config_arguments(check_config)

    harvest = subparsers.add_parser(
        "harvest",
        help="Harvest router swaps for a token into the CSV ledger.",
    )
    _add_config_arguments(harvest)

    export = subparsers.add_parser(
        "export-ledger",
        help="Export a CSV ledger to Parquet + metadata JSON.",
    )
    export.add_argument("--ledger-path", required=True)
    export.add_argument("--base-symbol", default="TOKEN")
    export.add_argument("--quote-symbol", default="SOL")
    export.add_argument("--output-dir", default="data/processed")
    export.add_argument("--dataset-name", default="swaps")

    return parser


def _config_from_args(args: argparse.Namespace) -> HarvestConfig:
    load_dotenv()
    settings: dict[str, Any] = {}
    for key, value in vars(args).items():
        if key == "command":
            continue
        if value is None and key in _ENV_FALLBACKS:
            value = os.getenv(_ENV_FALLBACKS[key]) or None
        settings[key] = value
    if not settings.get("token_mint"):
        raise ConfigError(
            "token mint is required: pass --token-mint or set HARVEST_TOKEN_MINT"
        )
    return load_config(**settings)


def run_check_config(args: argparse.Namespace) -> int:
    """Validate config and log the effective settings."""
    logger = get_logger()
    try:
        config = _config_from_args(args)
    except ConfigError as exc:
        logger.error("invalid configuration: %s", exc)
        return 1
    logger.info("configuration ok: %s", config.describe())
    return 0


def run_harvest_command(args: argparse.Namespace) -> int:
    """Run a harvest and report how it ended."""
    logger = get_logger()
    try:
        config = _config_from_args(args)
    except ConfigError as exc:
        logger.error("invalid configuration: %s", exc)
        return 1

    try:
        result = run_harvest(config)
    except UpstreamError as exc:
        logger.error("harvest aborted, upstream failure: %s", exc)
        return 1
    except PersistenceError as exc:
        logger.error("harvest aborted, ledger unwritable: %s", exc)
        return 1

    logger.info(
        "harvest completed run_id=%s stop=%s rounds=%s persisted=%s ledger=%s",
        result.run_id,
        result.stop_reason.value if result.stop_reason else None,
        result.rounds,
        result.persisted,
        result.ledger_path,
    )
    return 0


def run_export_ledger(args: argparse.Namespace) -> int:
    """Export a ledger file to Parquet + metadata files."""
    logger = get_logger()
    try:
        result = export_ledger(
            args.ledger_path,
            base_symbol=args.base_symbol,
            quote_symbol=args.quote_symbol,
            output_dir=args.output_dir,
            dataset_name=args.dataset_name,
            config={"source_file": args.ledger_path, "command": "export-ledger"},
        )
    except PersistenceError as exc:
        logger.error("export failed: %s", exc)
        return 1
    logger.info(
        "export wrote parquet=%s metadata=%s rows=%s",
        result.parquet_path,
        result.metadata_path,
        result.metadata["row_count"],
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "check-config":
        return run_check_config(args)
    if args.command == "harvest":
        return run_harvest_command(args)
    if args.command == "export-ledger":
        return run_export_ledger(args)

    parser.error(f"unsupported command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
