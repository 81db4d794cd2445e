"""Bounded-concurrency, rate-limited transaction retrieval."""

from __future__ import annotations

import concurrent.futures
import http.client
import logging
import threading
from collections.abc import Iterable, Iterator

from harvest.errors import Cancelled, ExecutionFailure, FetchError
from harvest.models import FetchOutcome, FetchStatus, RawTransaction
from harvest.rate_limit import RateLimiter
from harvest.sources.solana_rpc import (
    SolanaRPCClientProtocol,
    SolanaRPCError,
    parse_raw_transaction,
)


class ConcurrentFetcher:
    """Fetches transaction detail for signature batches on a fixed worker pool.

    Each work unit takes a rate-limiter token before calling the RPC. One bad
    fetch only drops its own signature. Signatures resolved earlier in the run
    are never requested again.
    """

    def __init__(
        self,
        client: SolanaRPCClientProtocol,
        rate_limiter: RateLimiter,
        *,
        workers: int = 8,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.client = client
        self.rate_limiter = rate_limiter
        self.workers = workers
        self._resolved: set[str] = set()
        self.logger = logging.getLogger("harvest")

    @property
    def resolved_count(self) -> int:
        return len(self._resolved)

    def _fetch_one(self, signature: str) -> RawTransaction | None:
        try:
            payload = self.client.get_transaction(signature)
            if payload is None:
                return None
            raw_tx = parse_raw_transaction(signature, payload)
        except (
            SolanaRPCError,
            OSError,
            http.client.HTTPException,
            ValueError,
        ) as exc:
            raise FetchError(f"fetch failed for {signature}: {exc}") from exc
        if raw_tx.failed:
            raise ExecutionFailure(f"transaction {signature} failed on chain")
        return raw_tx

    def _work(
        self, signature: str, cancel: threading.Event | None
    ) -> FetchOutcome:
        try:
            self.rate_limiter.acquire(cancel)
        except Cancelled:
            return FetchOutcome(signature, FetchStatus.CANCELLED)

        try:
            raw_tx = self._fetch_one(signature)
        except ExecutionFailure as exc:
            return FetchOutcome(
                signature, FetchStatus.EXECUTION_FAILED, error=str(exc)
            )
        except FetchError as exc:
            return FetchOutcome(signature, FetchStatus.ERROR, error=str(exc))
        if raw_tx is None:
            return FetchOutcome(signature, FetchStatus.NOT_FOUND)
        return FetchOutcome(signature, FetchStatus.OK, transaction=raw_tx)

    def _pending(self, signatures: Iterable[str]) -> list[str]:
        pending: list[str] = []
        queued: set[str] = set()
        for signature in signatures:
            if signature in self._resolved or signature in queued:
                continue
            queued.add(signature)
            pending.append(signature)
        return pending

    def iter_batch(
        self,
        signatures: Iterable[str],
        cancel: threading.Event | None = None,
    ) -> Iterator[FetchOutcome]:
        """Yield one outcome per new signature, in completion order.

        Once ``cancel`` is set, queued signatures are reported as cancelled
        without a request while in-flight fetches finish normally.
        """
        pending = self._pending(signatures)
        if not pending:
            return

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self.workers, len(pending)),
            thread_name_prefix="harvest-fetch",
        ) as executor:
            futures = {
                executor.submit(self._work, signature, cancel): signature
                for signature in pending
            }
            for future in concurrent.futures.as_completed(futures):
                outcome = future.result()
                self._log_outcome(outcome)
                if outcome.status is not FetchStatus.CANCELLED:
                    self._resolved.add(outcome.signature)
                yield outcome

    def fetch_batch(
        self,
        signatures: Iterable[str],
        cancel: threading.Event | None = None,
    ) -> list[FetchOutcome]:
        """Fetch a whole batch and return every outcome."""
        return list(self.iter_batch(signatures, cancel))

    def _log_outcome(self, outcome: FetchOutcome) -> None:
        if outcome.status is FetchStatus.ERROR:
            self.logger.warning("dropping %s: %s", outcome.signature, outcome.error)
        elif outcome.status is FetchStatus.NOT_FOUND:
            self.logger.info("dropping %s: not found", outcome.signature)
        elif outcome.status is FetchStatus.EXECUTION_FAILED:
            self.logger.debug("dropping %s: failed on chain", outcome.signature)
