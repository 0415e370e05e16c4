"""
Pool accounting over the context's ledger.

Pool amounts, impact pools, collateral sums, open interest, claimable
balances and the funding/borrowing accumulators. Every mutation goes through
a helper here so the non-negativity rules and events stay in one place.
"""

from __future__ import annotations

import logging

from ..state import ledger as tables
from ..state.markets import Market
from .context import AccountingContext
from .errors import (
    InsufficientPoolBalance,
    InsufficientReserve,
    MaxPoolAmountExceeded,
)
from .math import apply_exponent_factor, apply_factor, mul_div, sum_return_uint, to_factor
from .pricing import MarketPrices

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pool amounts
# ---------------------------------------------------------------------------

def get_pool_amount(ctx: AccountingContext, market: Market, token: str) -> int:
    return ctx.ledger.get(tables.POOL_AMOUNT, (market.market_token, token))


def apply_delta_to_pool_amount(ctx: AccountingContext, market: Market, token: str, delta: int) -> int:
    balance = get_pool_amount(ctx, market, token)
    if balance + delta < 0:
        raise InsufficientPoolBalance(market.market_token, token, balance, delta)
    next_value = ctx.ledger.add(tables.POOL_AMOUNT, (market.market_token, token), delta)
    ctx.emit("PoolAmountUpdated", market=market.market_token, token=token, delta=delta, next_value=next_value)
    return next_value


def increase_pool_amount(ctx: AccountingContext, market: Market, token: str, amount: int) -> int:
    if amount < 0:
        raise ValueError(f"amount must be non-negative: {amount}")
    return apply_delta_to_pool_amount(ctx, market, token, amount)


def decrease_pool_amount(ctx: AccountingContext, market: Market, token: str, amount: int) -> int:
    if amount < 0:
        raise ValueError(f"amount must be non-negative: {amount}")
    return apply_delta_to_pool_amount(ctx, market, token, -amount)


def validate_pool_amount(ctx: AccountingContext, market: Market, token: str) -> None:
    max_pool_amount = ctx.config.for_market(market.market_token).max_pool_amount
    pool_amount = get_pool_amount(ctx, market, token)
    if pool_amount > max_pool_amount:
        raise MaxPoolAmountExceeded(pool_amount, max_pool_amount)


def get_pool_usd_for_side(
    ctx: AccountingContext,
    market: Market,
    prices: MarketPrices,
    is_long: bool,
    maximize: bool = False,
) -> int:
    if is_long:
        token, price = market.long_token, prices.long_token_price
    else:
        token, price = market.short_token, prices.short_token_price
    return get_pool_amount(ctx, market, token) * price.pick_price(maximize)


# ---------------------------------------------------------------------------
# Open interest and reserve
# ---------------------------------------------------------------------------

def get_open_interest(ctx: AccountingContext, market: Market, is_long: bool) -> int:
    return sum(
        ctx.ledger.get(tables.OPEN_INTEREST, (market.market_token, token, is_long))
        for token in (market.long_token, market.short_token)
    )


def get_open_interest_in_tokens(ctx: AccountingContext, market: Market, is_long: bool) -> int:
    return sum(
        ctx.ledger.get(tables.OPEN_INTEREST_IN_TOKENS, (market.market_token, token, is_long))
        for token in (market.long_token, market.short_token)
    )


def apply_delta_to_open_interest(
    ctx: AccountingContext,
    market: Market,
    collateral_token: str,
    is_long: bool,
    delta: int,
) -> int:
    key = (market.market_token, collateral_token, is_long)
    next_value = sum_return_uint(ctx.ledger.get(tables.OPEN_INTEREST, key), delta)
    ctx.ledger.set(tables.OPEN_INTEREST, key, next_value)
    ctx.emit(
        "OpenInterestUpdated",
        market=market.market_token,
        collateral_token=collateral_token,
        is_long=is_long,
        delta=delta,
        next_value=next_value,
    )
    return next_value


def apply_delta_to_open_interest_in_tokens(
    ctx: AccountingContext,
    market: Market,
    collateral_token: str,
    is_long: bool,
    delta: int,
) -> int:
    key = (market.market_token, collateral_token, is_long)
    next_value = sum_return_uint(ctx.ledger.get(tables.OPEN_INTEREST_IN_TOKENS, key), delta)
    ctx.ledger.set(tables.OPEN_INTEREST_IN_TOKENS, key, next_value)
    ctx.emit(
        "OpenInterestInTokensUpdated",
        market=market.market_token,
        collateral_token=collateral_token,
        is_long=is_long,
        delta=delta,
        next_value=next_value,
    )
    return next_value


def get_reserved_usd(ctx: AccountingContext, market: Market, prices: MarketPrices, is_long: bool) -> int:
    """
    USD the pool must hold back for one side's open interest.

    Longs are valued at the current index price (their payout grows with it);
    shorts at their open-interest notional, the most they can be owed.
    """
    if is_long:
        return get_open_interest_in_tokens(ctx, market, True) * prices.index_token_price.max
    return get_open_interest(ctx, market, False)


def validate_reserve(ctx: AccountingContext, market: Market, prices: MarketPrices, is_long: bool) -> None:
    config = ctx.config.for_market(market.market_token)
    pool_usd = get_pool_usd_for_side(ctx, market, prices, is_long, maximize=False)
    max_reserved_usd = apply_factor(pool_usd, config.reserve_factor)
    reserved_usd = get_reserved_usd(ctx, market, prices, is_long)
    if reserved_usd > max_reserved_usd:
        raise InsufficientReserve(reserved_usd, max_reserved_usd)


# ---------------------------------------------------------------------------
# Collateral, impact pools and claimables
# ---------------------------------------------------------------------------

def apply_delta_to_collateral_sum(
    ctx: AccountingContext,
    market: Market,
    collateral_token: str,
    is_long: bool,
    delta: int,
) -> int:
    key = (market.market_token, collateral_token, is_long)
    next_value = sum_return_uint(ctx.ledger.get(tables.COLLATERAL_SUM, key), delta)
    ctx.ledger.set(tables.COLLATERAL_SUM, key, next_value)
    ctx.emit(
        "CollateralSumUpdated",
        market=market.market_token,
        collateral_token=collateral_token,
        is_long=is_long,
        delta=delta,
        next_value=next_value,
    )
    return next_value


def get_swap_impact_pool_amount(ctx: AccountingContext, market: Market, token: str) -> int:
    return ctx.ledger.get(tables.SWAP_IMPACT_POOL_AMOUNT, (market.market_token, token))


def apply_delta_to_swap_impact_pool(ctx: AccountingContext, market: Market, token: str, delta: int) -> int:
    balance = get_swap_impact_pool_amount(ctx, market, token)
    if balance + delta < 0:
        raise InsufficientPoolBalance(market.market_token, token, balance, delta)
    next_value = ctx.ledger.add(tables.SWAP_IMPACT_POOL_AMOUNT, (market.market_token, token), delta)
    ctx.emit("SwapImpactPoolAmountUpdated", market=market.market_token, token=token, delta=delta, next_value=next_value)
    return next_value


def get_position_impact_pool_amount(ctx: AccountingContext, market: Market) -> int:
    return ctx.ledger.get(tables.POSITION_IMPACT_POOL_AMOUNT, (market.market_token,))


def apply_delta_to_position_impact_pool(ctx: AccountingContext, market: Market, delta: int) -> int:
    balance = get_position_impact_pool_amount(ctx, market)
    if balance + delta < 0:
        raise InsufficientPoolBalance(market.market_token, market.index_token, balance, delta)
    next_value = ctx.ledger.add(tables.POSITION_IMPACT_POOL_AMOUNT, (market.market_token,), delta)
    ctx.emit("PositionImpactPoolAmountUpdated", market=market.market_token, delta=delta, next_value=next_value)
    return next_value


def credit_claimable_funding(
    ctx: AccountingContext,
    market: Market,
    token: str,
    account: str,
    amount: int,
) -> None:
    if amount == 0:
        return
    next_value = ctx.ledger.add(tables.CLAIMABLE_FUNDING_AMOUNT, (market.market_token, token, account), amount)
    ctx.emit(
        "ClaimableFundingUpdated",
        market=market.market_token,
        token=token,
        account=account,
        delta=amount,
        next_value=next_value,
    )


# ---------------------------------------------------------------------------
# Funding and borrowing accumulators
# ---------------------------------------------------------------------------

def get_cumulative_funding_factor(ctx: AccountingContext, market: Market, is_long: bool) -> int:
    return ctx.ledger.get(tables.CUMULATIVE_FUNDING_FACTOR, (market.market_token, is_long))


def get_cumulative_claimable_funding_factor(ctx: AccountingContext, market: Market, is_long: bool) -> int:
    return ctx.ledger.get(tables.CUMULATIVE_CLAIMABLE_FUNDING_FACTOR, (market.market_token, is_long))


def get_cumulative_borrowing_factor(ctx: AccountingContext, market: Market, is_long: bool) -> int:
    return ctx.ledger.get(tables.CUMULATIVE_BORROWING_FACTOR, (market.market_token, is_long))


def get_funding_factor_per_second(ctx: AccountingContext, market: Market) -> tuple[int, bool]:
    """Return (factor per second, longs_pay). Zero when either side is empty."""
    config = ctx.config.for_market(market.market_token)
    long_oi = get_open_interest(ctx, market, True)
    short_oi = get_open_interest(ctx, market, False)
    if long_oi == 0 or short_oi == 0 or long_oi == short_oi:
        return 0, long_oi > short_oi

    diff = abs(long_oi - short_oi)
    diff_after_exponent = apply_exponent_factor(diff, config.funding_exponent_factor)
    per_second = mul_div(diff_after_exponent, config.funding_factor, long_oi + short_oi)
    return per_second, long_oi > short_oi


def _elapsed(ctx: AccountingContext, table: str, market: Market) -> int:
    updated_at = ctx.ledger.get(table, (market.market_token,))
    if updated_at == 0 or ctx.current_time <= updated_at:
        return 0
    return ctx.current_time - updated_at


def _stamp(ctx: AccountingContext, table: str, market: Market) -> None:
    if ctx.current_time > ctx.ledger.get(table, (market.market_token,)):
        ctx.ledger.set(table, (market.market_token,), ctx.current_time)


def update_funding_state(ctx: AccountingContext, market: Market) -> None:
    """
    Advance the funding accumulators to `ctx.current_time`.

    The larger side's paid factor grows by `per_second * dt`; the smaller side's
    claimable factor grows by the same amount scaled by `larger / smaller`, so
    what one side pays the other side can claim.
    """
    dt = _elapsed(ctx, tables.FUNDING_UPDATED_AT, market)
    if dt > 0:
        per_second, longs_pay = get_funding_factor_per_second(ctx, market)
        if per_second > 0:
            payer_oi = get_open_interest(ctx, market, longs_pay)
            receiver_oi = get_open_interest(ctx, market, not longs_pay)
            paid_delta = per_second * dt
            claimable_delta = mul_div(paid_delta, payer_oi, receiver_oi)

            ctx.ledger.add(tables.CUMULATIVE_FUNDING_FACTOR, (market.market_token, longs_pay), paid_delta)
            ctx.ledger.add(
                tables.CUMULATIVE_CLAIMABLE_FUNDING_FACTOR, (market.market_token, not longs_pay), claimable_delta
            )
            logger.debug(
                "funding %s: dt=%s per_second=%s longs_pay=%s claimable_delta=%s",
                market.market_token,
                dt,
                per_second,
                longs_pay,
                claimable_delta,
            )
            ctx.emit(
                "FundingStateUpdated",
                market=market.market_token,
                longs_pay=longs_pay,
                funding_factor_delta=paid_delta,
                claimable_funding_factor_delta=claimable_delta,
            )
    _stamp(ctx, tables.FUNDING_UPDATED_AT, market)


def get_borrowing_factor_per_second(
    ctx: AccountingContext,
    market: Market,
    prices: MarketPrices,
    is_long: bool,
) -> int:
    config = ctx.config.for_market(market.market_token)
    reserved_usd = get_reserved_usd(ctx, market, prices, is_long)
    if reserved_usd == 0:
        return 0
    pool_usd = get_pool_usd_for_side(ctx, market, prices, is_long, maximize=False)
    if pool_usd == 0:
        return 0
    reserved_after_exponent = apply_exponent_factor(reserved_usd, config.borrowing_exponent_factor)
    utilization = to_factor(reserved_after_exponent, pool_usd)
    return apply_factor(utilization, config.borrowing_factor(is_long))


def update_borrowing_state(ctx: AccountingContext, market: Market, prices: MarketPrices) -> None:
    dt = _elapsed(ctx, tables.BORROWING_UPDATED_AT, market)
    if dt > 0:
        for is_long in (True, False):
            per_second = get_borrowing_factor_per_second(ctx, market, prices, is_long)
            if per_second == 0:
                continue
            delta = per_second * dt
            ctx.ledger.add(tables.CUMULATIVE_BORROWING_FACTOR, (market.market_token, is_long), delta)
            ctx.emit(
                "CumulativeBorrowingFactorUpdated",
                market=market.market_token,
                is_long=is_long,
                delta=delta,
            )
    _stamp(ctx, tables.BORROWING_UPDATED_AT, market)


def update_funding_and_borrowing_state(ctx: AccountingContext, market: Market, prices: MarketPrices) -> None:
    update_funding_state(ctx, market)
    update_borrowing_state(ctx, market, prices)
