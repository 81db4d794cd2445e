"""Tests for config and CLI contract."""

from __future__ import annotations

import pytest

from harvest.cli import main
from harvest.config import RAYDIUM_AMM_AUTHORITY, WSOL_MINT, load_config
from harvest.errors import ConfigError
from harvest.logging import get_logger

TOKEN_MINT = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


def test_config_defaults() -> None:
    config = load_config(token_mint=TOKEN_MINT)
    assert config.quote_mint == WSOL_MINT
    assert config.router_account == RAYDIUM_AMM_AUTHORITY
    assert config.quote_symbol == "SOL"
    assert config.page_size == 1000
    assert config.strict_quota is True
    assert config.sort_by_timestamp is False


def test_config_ignores_none_overrides() -> None:
    config = load_config(token_mint=TOKEN_MINT, workers=None, burst=None)
    assert config.workers == 8
    assert config.burst == 5


def test_config_requires_token_mint() -> None:
    with pytest.raises(ConfigError):
        load_config()


def test_config_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        load_config(token_mint="not-an-address!")


@pytest.mark.parametrize(
    "overrides",
    [
        {"target_count": 0},
        {"page_size": 1001},
        {"workers": 0},
        {"rate_per_second": 0},
        {"burst": 0},
        {"quote_mint": TOKEN_MINT},
        {"base_symbol": "SOL"},
        {"base_symbol": "Txn"},
        {"quote_symbol": "SO,L"},
        {"rpc_url": "ftp://example.com"},
        {"log_level": "LOUD"},
    ],
)
def test_config_rejects_invalid_values(overrides: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        load_config(token_mint=TOKEN_MINT, **overrides)


def test_describe_redacts_rpc_path() -> None:
    config = load_config(
        token_mint=TOKEN_MINT,
        rpc_url="https://rpc.example.com/secret-key",
    )
    assert config.describe()["rpc_url"] == "https://rpc.example.com/***"


def test_cli_help_exits_zero() -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--help"])
    assert exc.value.code == 0


def test_cli_check_config_exits_zero() -> None:
    assert main(["check-config", "--token-mint", TOKEN_MINT]) == 0


def test_cli_check_config_rejects_bad_settings() -> None:
    assert main(["check-config", "--token-mint", TOKEN_MINT, "--burst", "0"]) == 1


def test_logger_reuses_single_handler() -> None:
    logger_one = get_logger(name="harvest.test")
    handler_count = len(logger_one.handlers)

    logger_two = get_logger(name="harvest.test")

    assert logger_one is logger_two
    assert len(logger_two.handlers) == handler_count == 1
