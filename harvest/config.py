"""Configuration contract for harvest runs."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from harvest.errors import ConfigError

WSOL_MINT = "So11111111111111111111111111111111111111112"
RAYDIUM_AMM_AUTHORITY = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"

RESERVED_COLUMNS = {"Date", "Timestamp", "Type", "Txn"}

_BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_SYMBOL = re.compile(r"^[A-Za-z0-9_]+$")


class HarvestConfig(BaseModel):
    """Typed runtime settings for a harvest run."""

    token_mint: str
    rpc_url: str = Field(default=MAINNET_RPC_URL)
    quote_mint: str = Field(default=WSOL_MINT)
    router_account: str = Field(default=RAYDIUM_AMM_AUTHORITY)
    base_symbol: str = Field(default="TOKEN")
    quote_symbol: str = Field(default="SOL")
    target_count: int = Field(default=1000, gt=0)
    page_size: int = Field(default=1000, ge=1, le=1000)
    workers: int = Field(default=8, ge=1)
    rate_per_second: float = Field(default=5.0, gt=0)
    burst: int = Field(default=5, ge=1)
    output_path: str = Field(default="data/ledger.csv")
    run_log_dir: str | None = Field(default=None)
    cursor_checkpoint_path: str | None = Field(default=None)
    sort_by_timestamp: bool = Field(default=False)
    strict_quota: bool = Field(default=True)
    max_rounds: int | None = Field(default=None, gt=0)
    rpc_timeout_seconds: int = Field(default=30, gt=0)
    rpc_max_retries: int = Field(default=3, ge=1)
    log_level: str = Field(default="INFO")

    @field_validator("token_mint", "quote_mint", "router_account")
    @classmethod
    def _check_address(cls, value: str) -> str:
        value = value.strip()
        if not _BASE58_ADDRESS.match(value):
            raise ValueError(f"not a base58 account address: {value!r}")
        return value

    @field_validator("base_symbol", "quote_symbol")
    @classmethod
    def _check_symbol(cls, value: str) -> str:
        value = value.strip()
        if not _SYMBOL.match(value):
            raise ValueError("symbols may only contain letters, digits and '_'")
        if value in RESERVED_COLUMNS:
            raise ValueError(f"symbol {value!r} collides with a ledger column")
        return value

    @field_validator("rpc_url")
    @classmethod
    def _check_rpc_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("rpc_url must be an http(s) URL")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _validate_pairs(self) -> "HarvestConfig":
        if self.token_mint == self.quote_mint:
            raise ValueError("token_mint and quote_mint must differ")
        if self.base_symbol == self.quote_symbol:
            raise ValueError("base_symbol and quote_symbol must differ")
        return self

    def describe(self) -> dict[str, Any]:
        """Return settings safe to log; the RPC URL may embed an API key."""
        payload = self.model_dump()
        payload["rpc_url"] = _redact_url(self.rpc_url)
        return payload


def _redact_url(url: str) -> str:
    scheme, _, rest = url.partition("://")
    host = rest.split("/", 1)[0].split("?", 1)[0]
    if rest != host:
        return f"{scheme}://{host}/***"
    return url


def load_config(**kwargs: Any) -> HarvestConfig:
    """Build and validate harvest configuration."""
    settings = {key: value for key, value in kwargs.items() if value is not None}
    try:
        return HarvestConfig(**settings)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
