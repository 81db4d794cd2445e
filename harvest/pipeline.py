"""Harvest orchestration: signature pages -> fetch -> classify -> ledger."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from harvest.classify import classify_with_reason
from harvest.config import HarvestConfig
from harvest.cursor import (
    SignatureCursor,
    load_cursor_checkpoint,
    save_cursor_checkpoint,
)
from harvest.fetcher import ConcurrentFetcher
from harvest.ledger import LedgerAggregator
from harvest.logging import get_logger
from harvest.models import ClassifiedTransaction, FetchStatus, HarvestStats
from harvest.rate_limit import RateLimiter
from harvest.reporting import build_run_report, write_run_report
from harvest.sources.solana_rpc import (
    SolanaRPCClientProtocol,
    UrllibSolanaRPCClient,
)


class HarvestState(str, Enum):
    """Orchestrator states; Done is terminal."""

    SEEKING = "Seeking"
    PROCESSING = "Processing"
    PERSISTING = "Persisting"
    DONE = "Done"


class StopReason(str, Enum):
    """Why a harvest reached Done."""

    EXHAUSTED = "history_exhausted"
    QUOTA = "quota_reached"
    MAX_ROUNDS = "max_rounds"


@dataclass
class HarvestResult:
    """Summary of one harvest run."""

    run_id: str
    state: HarvestState
    stop_reason: StopReason | None
    rounds: int
    persisted: int
    ledger_rows: int
    ledger_path: str
    before: str | None
    stats: HarvestStats
    run_log_path: str | None = None
    elapsed_seconds: float = 0.0
    records: list[ClassifiedTransaction] = field(default_factory=list, repr=False)


def _run_id(now: datetime | None = None) -> str:
    dt = (now or datetime.now(UTC)).astimezone(UTC)
    return dt.strftime("%Y%m%dT%H%M%SZ")


class HarvestOrchestrator:
    """Drives rounds of Seeking -> Processing -> Persisting until Done.

    Quota is re-evaluated after every round. With ``strict_quota`` the
    round also stops queueing fetches once enough swaps are classified and
    the persisted batch is capped at the remaining quota.
    """

    def __init__(
        self,
        *,
        cursor: SignatureCursor,
        fetcher: ConcurrentFetcher,
        aggregator: LedgerAggregator,
        quote_mint: str,
        base_mint: str,
        router_account: str,
        target_count: int,
        strict_quota: bool = True,
        max_rounds: int | None = None,
        cursor_checkpoint_path: str | None = None,
        keep_records: bool = False,
    ) -> None:
        if target_count < 1:
            raise ValueError("target_count must be positive")
        self.cursor = cursor
        self.fetcher = fetcher
        self.aggregator = aggregator
        self.quote_mint = quote_mint
        self.base_mint = base_mint
        self.router_account = router_account
        self.target_count = target_count
        self.strict_quota = strict_quota
        self.max_rounds = max_rounds
        self.cursor_checkpoint_path = cursor_checkpoint_path
        self.keep_records = keep_records
        self.state = HarvestState.SEEKING
        self.stop_reason: StopReason | None = None
        self.rounds = 0
        self.stats = HarvestStats()
        self.records: list[ClassifiedTransaction] = []
        self.logger = logging.getLogger("harvest")

    @property
    def remaining(self) -> int:
        return max(0, self.target_count - self.aggregator.count)

    def _finish(self, reason: StopReason) -> None:
        self.state = HarvestState.DONE
        self.stop_reason = reason
        self.logger.info(
            "harvest done after %s rounds: %s (%s rows persisted)",
            self.rounds,
            reason.value,
            self.aggregator.count,
        )

    def _process(
        self, signatures: list[str]
    ) -> tuple[list[ClassifiedTransaction], int]:
        cancel = threading.Event()
        classified: list[ClassifiedTransaction] = []
        cancelled = 0
        wanted = self.remaining

        for outcome in self.fetcher.iter_batch(signatures, cancel):
            if outcome.status is FetchStatus.CANCELLED:
                cancelled += 1
                self.stats.skip("cancelled")
                continue
            if outcome.transaction is None:
                self.stats.skip(outcome.status.value)
                continue

            self.stats.fetched += 1
            record, reason = classify_with_reason(
                outcome.transaction,
                outcome.signature,
                quote_mint=self.quote_mint,
                base_mint=self.base_mint,
                router_account=self.router_account,
            )
            if record is None:
                self.stats.skip(reason or "not_relevant")
                self.logger.debug("skipping %s: %s", outcome.signature, reason)
                continue

            self.stats.classified += 1
            classified.append(record)
            if (
                self.strict_quota
                and not cancel.is_set()
                and self._unseen_count(classified) >= wanted
            ):
                self.logger.info(
                    "quota within reach mid-round; draining in-flight fetches"
                )
                cancel.set()

        return classified, cancelled

    def _unseen_count(self, records: list[ClassifiedTransaction]) -> int:
        return len({r.signature for r in records} - self.aggregator.seen)

    def step(self) -> HarvestState:
        """Run one round and return the state reached."""
        if self.state is HarvestState.DONE:
            return self.state

        self.state = HarvestState.SEEKING
        page_start = self.cursor.before
        page = self.cursor.advance()
        self.stats.pages += 1
        if not page:
            self._finish(StopReason.EXHAUSTED)
            return self.state
        self.stats.signatures_seen += len(page)

        self.state = HarvestState.PROCESSING
        classified, cancelled = self._process(page)

        self.state = HarvestState.PERSISTING
        fresh = self._unseen_count(classified)
        self.stats.duplicates += len(classified) - fresh
        limit = self.remaining if self.strict_quota else None
        written = self.aggregator.persist(classified, limit=limit)
        self.stats.persisted += len(written)
        if self.keep_records:
            self.records.extend(written)
        if self.cursor_checkpoint_path:
            # a page cut short by the quota must be walked again on resume
            incomplete = cancelled > 0 or len(written) < fresh
            save_cursor_checkpoint(
                self.cursor_checkpoint_path,
                self.cursor.token_address,
                page_start if incomplete else self.cursor.before,
            )

        self.rounds += 1
        self.logger.info(
            "round %s: %s signatures, %s classified, %s persisted (%s/%s)",
            self.rounds,
            len(page),
            len(classified),
            len(written),
            self.aggregator.count,
            self.target_count,
        )

        if self.aggregator.count >= self.target_count:
            self._finish(StopReason.QUOTA)
        elif self.max_rounds is not None and self.rounds >= self.max_rounds:
            self._finish(StopReason.MAX_ROUNDS)
        else:
            self.state = HarvestState.SEEKING
        return self.state

    def run(self) -> HarvestState:
        """Loop rounds until Done; UpstreamError and PersistenceError propagate."""
        while self.state is not HarvestState.DONE:
            self.step()
        return self.state


def run_harvest(
    config: HarvestConfig,
    *,
    client: SolanaRPCClientProtocol | None = None,
    rate_limiter: RateLimiter | None = None,
    keep_records: bool = False,
) -> HarvestResult:
    """Build collaborators from config, run the harvest and write the run log."""
    logger = get_logger(level=config.log_level)
    run_id = _run_id()
    started = time.monotonic()

    rpc_client = client or UrllibSolanaRPCClient(
        rpc_url=config.rpc_url,
        timeout_seconds=config.rpc_timeout_seconds,
        max_retries=config.rpc_max_retries,
    )
    before = None
    if config.cursor_checkpoint_path:
        before = load_cursor_checkpoint(config.cursor_checkpoint_path, config.token_mint)
        if before:
            logger.info("resuming signature walk before %s", before)

    orchestrator = HarvestOrchestrator(
        cursor=SignatureCursor(
            rpc_client,
            config.token_mint,
            page_size=config.page_size,
            before=before,
        ),
        fetcher=ConcurrentFetcher(
            rpc_client,
            rate_limiter or RateLimiter(config.rate_per_second, config.burst),
            workers=config.workers,
        ),
        aggregator=LedgerAggregator(
            config.output_path,
            base_symbol=config.base_symbol,
            quote_symbol=config.quote_symbol,
            sort_by_timestamp=config.sort_by_timestamp,
        ),
        quote_mint=config.quote_mint,
        base_mint=config.token_mint,
        router_account=config.router_account,
        target_count=config.target_count,
        strict_quota=config.strict_quota,
        max_rounds=config.max_rounds,
        cursor_checkpoint_path=config.cursor_checkpoint_path,
        keep_records=keep_records,
    )
    logger.info(
        "harvest %s starting for %s (target=%s, workers=%s, rate=%s/s burst=%s)",
        run_id,
        config.token_mint,
        config.target_count,
        config.workers,
        config.rate_per_second,
        config.burst,
    )
    orchestrator.run()

    result = HarvestResult(
        run_id=run_id,
        state=orchestrator.state,
        stop_reason=orchestrator.stop_reason,
        rounds=orchestrator.rounds,
        persisted=orchestrator.aggregator.count,
        ledger_rows=orchestrator.aggregator.total_rows,
        ledger_path=str(orchestrator.aggregator.path),
        before=orchestrator.cursor.before,
        stats=orchestrator.stats,
        elapsed_seconds=time.monotonic() - started,
        records=orchestrator.records,
    )

    if config.run_log_dir:
        run_log_file = Path(config.run_log_dir) / f"harvest_run_{run_id}.json"
        write_run_report(str(run_log_file), build_run_report(result, config))
        result.run_log_path = str(run_log_file)
        logger.info("harvest run log written to %s", run_log_file)

    return result
