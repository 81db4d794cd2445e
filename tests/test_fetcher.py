"""Tests for rate-limited concurrent transaction fetching."""

from __future__ import annotations

import http.client
import threading
from unittest.mock import patch
from urllib import error

from harvest.fetcher import ConcurrentFetcher
from harvest.models import FetchStatus
from harvest.rate_limit import RateLimiter
from harvest.sources.solana_rpc import SolanaRPCClientProtocol, UrllibSolanaRPCClient


def _payload(block_time: int = 1700000000, err=None) -> dict:
    return {
        "slot": 1,
        "blockTime": block_time,
        "meta": {
            "err": err,
            "preTokenBalances": [],
            "postTokenBalances": [],
        },
    }


class FakeTransactionClient(SolanaRPCClientProtocol):
    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def get_transaction(self, signature):
        with self._lock:
            self.calls.append(signature)
        response = self.responses.get(signature)
        if isinstance(response, Exception):
            raise response
        return response


def _fetcher(client: SolanaRPCClientProtocol, workers: int = 4) -> ConcurrentFetcher:
    return ConcurrentFetcher(client, RateLimiter(10_000, 100), workers=workers)


def test_one_failing_fetch_does_not_drop_the_others() -> None:
    client = FakeTransactionClient(
        {
            "a": _payload(),
            "b": error.URLError("reset"),
            "c": _payload(),
        }
    )

    outcomes = {o.signature: o for o in _fetcher(client).fetch_batch(["a", "b", "c"])}

    assert outcomes["a"].status is FetchStatus.OK
    assert outcomes["a"].transaction is not None
    assert outcomes["b"].status is FetchStatus.ERROR
    assert "reset" in (outcomes["b"].error or "")
    assert outcomes["c"].ok


def test_not_found_and_failed_transactions_are_reported() -> None:
    client = FakeTransactionClient(
        {
            "gone": None,
            "failed": _payload(err={"InstructionError": [0, "Custom"]}),
            "garbled": {"meta": "oops"},
        }
    )

    outcomes = {
        o.signature: o.status
        for o in _fetcher(client).fetch_batch(["gone", "failed", "garbled"])
    }

    assert outcomes == {
        "gone": FetchStatus.NOT_FOUND,
        "failed": FetchStatus.EXECUTION_FAILED,
        "garbled": FetchStatus.ERROR,
    }


def test_signatures_are_fetched_once_per_run() -> None:
    client = FakeTransactionClient({"a": _payload(), "b": None, "c": _payload()})
    fetcher = _fetcher(client)

    first = fetcher.fetch_batch(["a", "a", "b"])
    second = fetcher.fetch_batch(["b", "c", "a"])

    assert sorted(o.signature for o in first) == ["a", "b"]
    assert [o.signature for o in second] == ["c"]
    assert sorted(client.calls) == ["a", "b", "c"]
    assert fetcher.resolved_count == 3


def test_cancelled_batch_issues_no_requests() -> None:
    client = FakeTransactionClient({"a": _payload(), "b": _payload()})
    fetcher = _fetcher(client)
    cancel = threading.Event()
    cancel.set()

    outcomes = fetcher.fetch_batch(["a", "b"], cancel)

    assert {o.status for o in outcomes} == {FetchStatus.CANCELLED}
    assert client.calls == []
    # cancelled signatures stay eligible for a later batch
    assert fetcher.resolved_count == 0
    assert len(fetcher.fetch_batch(["a", "b"])) == 2


def test_every_fetch_takes_a_rate_limiter_token() -> None:
    client = FakeTransactionClient({f"s{i}": _payload() for i in range(6)})
    limiter = RateLimiter(0.001, 6)
    fetcher = ConcurrentFetcher(client, limiter, workers=3)

    fetcher.fetch_batch([f"s{i}" for i in range(6)])

    assert limiter.available < 1
    assert len(client.calls) == 6


def test_empty_batch_yields_nothing() -> None:
    fetcher = _fetcher(FakeTransactionClient({}))

    assert fetcher.fetch_batch([]) == []


def test_connection_reset_drops_only_that_signature() -> None:
    client = FakeTransactionClient(
        {
            "a": _payload(),
            "b": ConnectionResetError("connection reset by peer"),
            "c": _payload(),
        }
    )

    outcomes = {o.signature: o.status for o in _fetcher(client).fetch_batch(["a", "b", "c"])}

    assert outcomes == {
        "a": FetchStatus.OK,
        "b": FetchStatus.ERROR,
        "c": FetchStatus.OK,
    }


def test_real_client_transport_failures_become_error_outcomes() -> None:
    client = UrllibSolanaRPCClient(
        rpc_url="https://rpc.example", max_retries=2, retry_backoff_seconds=0
    )

    with patch(
        "harvest.sources.solana_rpc.request.urlopen",
        side_effect=http.client.RemoteDisconnected("closed"),
    ):
        outcomes = _fetcher(client).fetch_batch(["a", "b"])

    assert {o.status for o in outcomes} == {FetchStatus.ERROR}
    assert len(outcomes) == 2
