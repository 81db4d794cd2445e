"""Buy/sell classification from router token-balance deltas."""

from __future__ import annotations

from decimal import ROUND_DOWN, Context, Decimal, InvalidOperation

from harvest.errors import ClassificationSkip
from harvest.models import (
    BASE_DECIMALS,
    QUOTE_DECIMALS,
    ClassifiedTransaction,
    Direction,
    RawTransaction,
    TokenBalance,
)
from harvest.utils_time import format_block_time

SKIP_EXECUTION_FAILED = "execution_failed"
SKIP_MISSING_TIMESTAMP = "missing_timestamp"
SKIP_NO_DELTA = "no_router_delta"
SKIP_DUST = "dust"

_ZERO = Decimal(0)
_WIDE_CONTEXT = Context(prec=60)


def parse_amount(value: str | None) -> Decimal:
    """Parse a decimal-string token amount; unparseable input counts as zero."""
    if value is None:
        return _ZERO
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return _ZERO
    if not parsed.is_finite():
        return _ZERO
    return parsed


def truncate_amount(value: Decimal, places: int) -> Decimal:
    """Truncate toward zero to a fixed number of fractional digits."""
    return value.quantize(
        Decimal(1).scaleb(-places),
        rounding=ROUND_DOWN,
        context=_WIDE_CONTEXT,
    )


def _find_post(
    post_balances: tuple[TokenBalance, ...], owner: str, mint: str
) -> TokenBalance | None:
    for entry in post_balances:
        if entry.owner == owner and entry.mint == mint:
            return entry
    return None


def _router_deltas(
    raw_tx: RawTransaction,
    *,
    quote_mint: str,
    base_mint: str,
    router_account: str,
) -> tuple[Direction | None, Decimal, Decimal]:
    direction: Direction | None = None
    quote_delta = _ZERO
    base_delta = _ZERO

    for pre in raw_tx.pre_token_balances:
        if pre.owner != router_account:
            continue
        post = _find_post(raw_tx.post_token_balances, pre.owner, pre.mint)
        if post is None:
            continue

        pre_amount = parse_amount(pre.amount)
        post_amount = parse_amount(post.amount)
        if pre.mint == quote_mint:
            if post_amount > pre_amount:
                direction = Direction.BUY
                quote_delta = post_amount - pre_amount
            elif post_amount < pre_amount:
                direction = Direction.SELL
                quote_delta = pre_amount - post_amount
        elif pre.mint == base_mint:
            base_delta = post_amount - pre_amount

    return direction, quote_delta, base_delta


def classify_or_skip(
    raw_tx: RawTransaction,
    signature: str,
    *,
    quote_mint: str,
    base_mint: str,
    router_account: str,
) -> ClassifiedTransaction:
    """Classify a transaction, raising ClassificationSkip when it is not a swap."""
    if raw_tx.failed:
        raise ClassificationSkip(SKIP_EXECUTION_FAILED)

    direction, quote_delta, base_delta = _router_deltas(
        raw_tx,
        quote_mint=quote_mint,
        base_mint=base_mint,
        router_account=router_account,
    )
    if quote_delta == 0 and base_delta == 0:
        raise ClassificationSkip(SKIP_NO_DELTA)

    if raw_tx.block_time is None:
        raise ClassificationSkip(SKIP_MISSING_TIMESTAMP)

    if direction is None:
        # quote leg unchanged: tokens leaving the router mean the trader bought
        direction = Direction.BUY if base_delta < 0 else Direction.SELL

    base_amount = truncate_amount(base_delta, BASE_DECIMALS).copy_abs()
    quote_amount = truncate_amount(quote_delta, QUOTE_DECIMALS).copy_abs()
    if base_amount == 0 and quote_amount == 0:
        raise ClassificationSkip(SKIP_DUST)

    return ClassifiedTransaction(
        signature=signature,
        timestamp=raw_tx.block_time,
        date=format_block_time(raw_tx.block_time),
        direction=direction,
        base_amount=base_amount,
        quote_amount=quote_amount,
    )


def classify_with_reason(
    raw_tx: RawTransaction,
    signature: str,
    *,
    quote_mint: str,
    base_mint: str,
    router_account: str,
) -> tuple[ClassifiedTransaction | None, str | None]:
    """Return ``(record, None)`` or ``(None, skip_reason)``."""
    try:
        record = classify_or_skip(
            raw_tx,
            signature,
            quote_mint=quote_mint,
            base_mint=base_mint,
            router_account=router_account,
        )
    except ClassificationSkip as exc:
        return None, exc.reason
    return record, None


def classify(
    raw_tx: RawTransaction,
    signature: str,
    quote_mint: str,
    base_mint: str,
    router_account: str,
) -> ClassifiedTransaction | None:
    """Return the swap record for a transaction, or None when not relevant."""
    record, _ = classify_with_reason(
        raw_tx,
        signature,
        quote_mint=quote_mint,
        base_mint=base_mint,
        router_account=router_account,
    )
    return record
