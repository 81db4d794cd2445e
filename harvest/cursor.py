"""Paginated signature discovery walking backwards through history."""

from __future__ import annotations

import http.client
import json
import logging
from pathlib import Path

from harvest.errors import PersistenceError, UpstreamError
from harvest.sources.solana_rpc import (
    MAX_SIGNATURE_PAGE,
    SolanaRPCClientProtocol,
    SolanaRPCError,
    parse_signature_page,
)


class SignatureCursor:
    """Walks ``getSignaturesForAddress`` pages from newest to oldest."""

    def __init__(
        self,
        client: SolanaRPCClientProtocol,
        token_address: str,
        *,
        page_size: int = MAX_SIGNATURE_PAGE,
        before: str | None = None,
    ) -> None:
        _check_page_size(page_size)
        self.client = client
        self.token_address = token_address
        self.page_size = page_size
        self.before = before
        self.exhausted = False

    def next(
        self,
        token_address: str,
        before: str | None,
        page_size: int,
    ) -> list[str]:
        """Return up to ``page_size`` signatures older than ``before``.

        An empty list means history is exhausted. Transport and payload
        failures surface as UpstreamError.
        """
        _check_page_size(page_size)
        try:
            rows = self.client.get_signatures_for_address(
                token_address,
                before=before,
                limit=page_size,
            )
            return parse_signature_page(rows)
        except (
            SolanaRPCError,
            OSError,
            http.client.HTTPException,
            ValueError,
        ) as exc:
            raise UpstreamError(
                f"signature listing failed for {token_address} before={before}: {exc}"
            ) from exc

    def advance(self) -> list[str]:
        """Fetch the next page and move the cursor to its oldest signature."""
        if self.exhausted:
            return []
        page = self.next(self.token_address, self.before, self.page_size)
        if not page:
            self.exhausted = True
            return []
        self.before = page[-1]
        return page


def _check_page_size(page_size: int) -> None:
    if page_size < 1 or page_size > MAX_SIGNATURE_PAGE:
        raise ValueError(f"page_size must be between 1 and {MAX_SIGNATURE_PAGE}")


def load_cursor_checkpoint(path: str | Path, token_address: str) -> str | None:
    """Read a saved ``before`` signature for a token, if one exists."""
    checkpoint = Path(path)
    if not checkpoint.exists():
        return None
    try:
        payload = json.loads(checkpoint.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise PersistenceError(f"unreadable cursor checkpoint {checkpoint}") from exc
    if not isinstance(payload, dict) or payload.get("token_address") != token_address:
        logging.getLogger("harvest").warning(
            "cursor checkpoint %s belongs to another token; starting from newest",
            checkpoint,
        )
        return None
    before = payload.get("before")
    return str(before) if before else None


def save_cursor_checkpoint(
    path: str | Path, token_address: str, before: str | None
) -> None:
    """Persist the cursor position next to the ledger."""
    checkpoint = Path(path)
    try:
        checkpoint.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = checkpoint.with_suffix(checkpoint.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps({"token_address": token_address, "before": before}),
            encoding="utf-8",
        )
        tmp_path.replace(checkpoint)
    except OSError as exc:
        raise PersistenceError(f"cannot write cursor checkpoint {checkpoint}") from exc
