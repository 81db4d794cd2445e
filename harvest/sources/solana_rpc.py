"""Solana JSON-RPC access for signature listing and transaction detail."""

from __future__ import annotations

import http.client
import json
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib import error, request

from harvest.models import RawTransaction, TokenBalance

MAX_SIGNATURE_PAGE = 1000


class SolanaRPCError(RuntimeError):
    """Raised when Solana RPC responses are invalid."""


class SolanaRPCClientProtocol:
    """Protocol-like base for Solana RPC clients."""

    def get_signatures_for_address(
        self,
        address: str,
        *,
        before: str | None = None,
        limit: int = MAX_SIGNATURE_PAGE,
    ) -> list[Mapping[str, Any]]:
        """Return signature info rows newest-first, empty when exhausted."""
        raise NotImplementedError

    def get_transaction(self, signature: str) -> Mapping[str, Any] | None:
        """Return transaction JSON for a signature or None if unknown."""
        raise NotImplementedError


@dataclass
class UrllibSolanaRPCClient(SolanaRPCClientProtocol):
    """Solana JSON-RPC client with bounded retries."""

    rpc_url: str
    timeout_seconds: int = 30
    max_retries: int = 3
    retry_backoff_seconds: float = 0.5
    commitment: str = "confirmed"

    def _rpc_call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }
        req = request.Request(
            self.rpc_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        attempts = max(1, self.max_retries)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                with request.urlopen(req, timeout=self.timeout_seconds) as response:
                    body = response.read().decode("utf-8")
                parsed = json.loads(body)
                if not isinstance(parsed, Mapping):
                    raise SolanaRPCError("RPC response must be a JSON object")
                if parsed.get("error"):
                    raise SolanaRPCError(f"RPC error: {parsed['error']}")
                if "result" not in parsed:
                    raise SolanaRPCError("RPC response missing result")
                return parsed["result"]
            except error.HTTPError as exc:
                if not _is_retryable_http_error(exc) or attempt >= attempts:
                    raise
                last_error = exc
            except (OSError, http.client.HTTPException) as exc:
                # covers URLError, timeouts and dropped connections
                if attempt >= attempts:
                    raise
                last_error = exc

            time.sleep(self.retry_backoff_seconds * attempt)

        if last_error is not None:
            raise last_error
        raise RuntimeError("unreachable retry state")

    def get_signatures_for_address(
        self,
        address: str,
        *,
        before: str | None = None,
        limit: int = MAX_SIGNATURE_PAGE,
    ) -> list[Mapping[str, Any]]:
        options: dict[str, Any] = {"limit": limit, "commitment": self.commitment}
        if before:
            options["before"] = before
        result = self._rpc_call("getSignaturesForAddress", [address, options])
        if not isinstance(result, list):
            raise SolanaRPCError("unexpected getSignaturesForAddress payload")
        return result

    def get_transaction(self, signature: str) -> Mapping[str, Any] | None:
        result = self._rpc_call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self.commitment,
                },
            ],
        )
        if result is None:
            return None
        if not isinstance(result, Mapping):
            raise SolanaRPCError("unexpected transaction payload")
        return result


def _is_retryable_http_error(exc: error.HTTPError) -> bool:
    return exc.code == 429 or exc.code >= 500


def parse_signature_page(rows: Sequence[Mapping[str, Any]]) -> list[str]:
    """Extract signature strings from one getSignaturesForAddress page."""
    signatures: list[str] = []
    for row in rows:
        if not isinstance(row, Mapping) or not row.get("signature"):
            raise SolanaRPCError("signature row missing signature field")
        signatures.append(str(row["signature"]))
    return signatures


def _ui_amount(token_amount: Mapping[str, Any]) -> str:
    ui_string = token_amount.get("uiAmountString")
    if ui_string is not None:
        return str(ui_string)

    raw_amount = token_amount.get("amount")
    decimals = token_amount.get("decimals")
    if raw_amount is None or decimals is None:
        return "0"
    try:
        return str(Decimal(str(raw_amount)).scaleb(-int(decimals)))
    except (InvalidOperation, TypeError, ValueError):
        return "0"


def _parse_balances(entries: Any) -> tuple[TokenBalance, ...]:
    if not entries:
        return ()
    if not isinstance(entries, list):
        raise SolanaRPCError("token balances must be a list")

    balances: list[TokenBalance] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise SolanaRPCError("token balance entry must be an object")
        token_amount = entry.get("uiTokenAmount") or {}
        balances.append(
            TokenBalance(
                owner=str(entry.get("owner") or ""),
                mint=str(entry.get("mint") or ""),
                amount=_ui_amount(token_amount),
            )
        )
    return tuple(balances)


def parse_raw_transaction(
    signature: str, payload: Mapping[str, Any]
) -> RawTransaction:
    """Parse a getTransaction payload into a RawTransaction."""
    meta = payload.get("meta")
    if meta is None:
        meta = {}
    if not isinstance(meta, Mapping):
        raise SolanaRPCError("transaction meta must be an object")

    block_time = payload.get("blockTime")
    slot = payload.get("slot")
    try:
        block_time = int(block_time) if block_time is not None else None
        slot = int(slot) if slot is not None else None
    except (TypeError, ValueError) as exc:
        raise SolanaRPCError("transaction blockTime/slot must be integers") from exc

    return RawTransaction(
        signature=signature,
        failed=meta.get("err") is not None,
        block_time=block_time,
        pre_token_balances=_parse_balances(meta.get("preTokenBalances")),
        post_token_balances=_parse_balances(meta.get("postTokenBalances")),
        slot=slot,
    )
