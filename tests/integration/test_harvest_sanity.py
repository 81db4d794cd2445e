"""Opt-in live sanity checks against a Solana RPC endpoint.

These tests are integration-only and require explicit env vars.
Run with: `pytest -m integration tests/integration/test_harvest_sanity.py`
"""

from __future__ import annotations

import os
from urllib import error

import pytest
from dotenv import load_dotenv

from harvest.config import load_config
from harvest.pipeline import HarvestState, run_harvest
from harvest.sources.solana_rpc import UrllibSolanaRPCClient, parse_signature_page

load_dotenv()


def _required_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        pytest.skip(f"missing required env var: {name}")
    return value


@pytest.mark.integration
def test_live_signature_page_sanity() -> None:
    client = UrllibSolanaRPCClient(rpc_url=_required_env("SOLANA_RPC_URL"))
    token_mint = _required_env("HARVEST_TOKEN_MINT")

    try:
        rows = client.get_signatures_for_address(token_mint, limit=5)
    except error.URLError as exc:
        pytest.skip(f"rpc unavailable: {exc}")

    signatures = parse_signature_page(rows)
    assert len(signatures) <= 5
    assert len(set(signatures)) == len(signatures)


@pytest.mark.integration
def test_live_small_harvest(tmp_path) -> None:
    config = load_config(
        rpc_url=_required_env("SOLANA_RPC_URL"),
        token_mint=_required_env("HARVEST_TOKEN_MINT"),
        target_count=3,
        page_size=50,
        max_rounds=2,
        workers=2,
        rate_per_second=2.0,
        burst=2,
        output_path=str(tmp_path / "ledger.csv"),
    )

    result = run_harvest(config)

    assert result.state is HarvestState.DONE
    assert result.persisted <= 3
    if result.persisted:
        lines = (tmp_path / "ledger.csv").read_text().splitlines()
        assert lines[0] == "Date,Timestamp,Type,TOKEN,SOL,Txn"
        assert len(lines) == result.persisted + 1
