"""
Multi-hop swap execution over an explicit market path.

Each hop trades one bounding token of a market for the other at oracle
prices, charging swap fees and applying price impact from the market's
swap-impact pool. Intermediate hops pay the next market in the path; only the
last hop pays the receiver (and only the last hop may unwrap the native token).

The minimum output is checked once, after the last hop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from ..state.markets import Market
from .context import AccountingContext
from .errors import (
    DuplicatedMarketInSwapPath,
    InsufficientSwapOutputAmount,
    InvalidTokenIn,
    SwapPriceImpactExceedsAmountIn,
)
from .fees import SwapFees, get_swap_fees
from .impact import get_swap_impact_amount_with_cap, get_swap_price_impact_usd
from .math import mul_div
from .pool import (
    apply_delta_to_pool_amount,
    apply_delta_to_swap_impact_pool,
    get_pool_amount,
    get_swap_impact_pool_amount,
    validate_pool_amount,
    validate_reserve,
)
from .pricing import MarketPrices, PriceSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapParams:
    """
    `token_in_holder` is the bank address currently holding `amount_in`; if it
    is not the first market of the path the tokens are moved there first.
    """

    token_in: str
    amount_in: int
    swap_path: Tuple[Market, ...]
    min_output_amount: int
    receiver: str
    token_in_holder: str
    should_unwrap_native_token: bool = False

    def __post_init__(self) -> None:
        for name in ("amount_in", "min_output_amount"):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v < 0:
                raise ValueError(f"{name} must be non-negative: {v}")
        if not isinstance(self.swap_path, tuple):
            raise TypeError("swap_path must be a tuple of markets")


@dataclass(frozen=True)
class SwapHop:
    market_token: str
    token_in: str
    token_out: str
    amount_in: int
    amount_in_used: int
    amount_out: int
    price_impact_usd: int
    price_impact_amount: int
    fees: SwapFees
    receiver: str


@dataclass(frozen=True)
class SwapResult:
    token_out: str
    output_amount: int
    hops: Tuple[SwapHop, ...] = ()


def _validate_path(path: Tuple[Market, ...]) -> None:
    seen = set()
    for market in path:
        if market.market_token in seen:
            raise DuplicatedMarketInSwapPath(market.market_token)
        seen.add(market.market_token)


def _swap_hop(
    ctx: AccountingContext,
    market: Market,
    prices: MarketPrices,
    token_in: str,
    amount_in: int,
    receiver: str,
    should_unwrap_native_token: bool,
) -> SwapHop:
    token_out = market.other_token(token_in)
    if token_out is None:
        raise InvalidTokenIn(token_in, market.market_token)

    config = ctx.config.for_market(market.market_token)
    price_in = prices.token_price(market, token_in)
    price_out = prices.token_price(market, token_out)

    pool_usd_in = get_pool_amount(ctx, market, token_in) * price_in.mid()
    pool_usd_out = get_pool_amount(ctx, market, token_out) * price_out.mid()
    # The fee factor follows the impact sign of the full input; the impact
    # itself is charged on the post-fee amount.
    gross_impact_usd = get_swap_price_impact_usd(config, pool_usd_in, pool_usd_out, amount_in * price_in.mid())
    fees = get_swap_fees(config, amount_in, for_positive_impact=gross_impact_usd > 0)
    price_impact_usd = get_swap_price_impact_usd(
        config, pool_usd_in, pool_usd_out, fees.amount_after_fees * price_in.mid()
    )
    ctx.credit_fee_receiver(market.market_token, token_in, fees.fee_receiver_amount, "swap_fee")

    if price_impact_usd > 0:
        amount_in_used = fees.amount_after_fees
        pool_amount_out = mul_div(amount_in_used, price_in.min, price_out.max)
        # Paid from the token-out impact pool; never more than it holds.
        price_impact_amount = get_swap_impact_amount_with_cap(
            price_impact_usd, price_out, get_swap_impact_pool_amount(ctx, market, token_out)
        )
        apply_delta_to_swap_impact_pool(ctx, market, token_out, -price_impact_amount)
        amount_out = pool_amount_out + price_impact_amount
    else:
        price_impact_amount = get_swap_impact_amount_with_cap(price_impact_usd, price_in, 0)
        negative_impact_amount = -price_impact_amount
        if negative_impact_amount > fees.amount_after_fees:
            raise SwapPriceImpactExceedsAmountIn(fees.amount_after_fees, negative_impact_amount)
        apply_delta_to_swap_impact_pool(ctx, market, token_in, negative_impact_amount)
        amount_in_used = fees.amount_after_fees - negative_impact_amount
        pool_amount_out = mul_div(amount_in_used, price_in.min, price_out.max)
        amount_out = pool_amount_out

    apply_delta_to_pool_amount(ctx, market, token_in, amount_in_used + fees.fee_amount_for_pool)
    apply_delta_to_pool_amount(ctx, market, token_out, -pool_amount_out)
    validate_pool_amount(ctx, market, token_in)
    validate_reserve(ctx, market, prices, is_long=token_out == market.long_token)

    ctx.transfer_out(market.market_token, token_out, receiver, amount_out, should_unwrap_native_token)

    logger.debug(
        "swap hop %s: %s %s -> %s %s (impact_usd=%s impact_amount=%s fee=%s)",
        market.market_token,
        amount_in,
        token_in,
        amount_out,
        token_out,
        price_impact_usd,
        price_impact_amount,
        fees.fee_amount,
    )
    ctx.emit(
        "SwapFeesCollected",
        market=market.market_token,
        token=token_in,
        fee_receiver_amount=fees.fee_receiver_amount,
        fee_amount_for_pool=fees.fee_amount_for_pool,
        amount_after_fees=fees.amount_after_fees,
    )
    ctx.emit(
        "SwapInfo",
        market=market.market_token,
        receiver=receiver,
        token_in=token_in,
        token_out=token_out,
        amount_in=amount_in,
        amount_in_after_fees=fees.amount_after_fees,
        amount_out=amount_out,
        price_impact_usd=price_impact_usd,
        price_impact_amount=price_impact_amount,
    )
    return SwapHop(
        market_token=market.market_token,
        token_in=token_in,
        token_out=token_out,
        amount_in=amount_in,
        amount_in_used=amount_in_used,
        amount_out=amount_out,
        price_impact_usd=price_impact_usd,
        price_impact_amount=price_impact_amount,
        fees=fees,
        receiver=receiver,
    )


def swap(ctx: AccountingContext, prices: PriceSnapshot, params: SwapParams) -> SwapResult:
    """
    Route `params.amount_in` of `params.token_in` through `params.swap_path`.

    An empty path pays the input straight to the receiver (still subject to
    the minimum output).

    Raises:
        DuplicatedMarketInSwapPath, InvalidTokenIn, SwapPriceImpactExceedsAmountIn,
        InsufficientPoolBalance, InsufficientReserve, MaxPoolAmountExceeded,
        InsufficientSwapOutputAmount
    """
    path = params.swap_path
    _validate_path(path)

    if not path:
        if params.amount_in < params.min_output_amount:
            raise InsufficientSwapOutputAmount(params.amount_in, params.min_output_amount)
        ctx.transfer_out(
            params.token_in_holder,
            params.token_in,
            params.receiver,
            params.amount_in,
            params.should_unwrap_native_token,
        )
        return SwapResult(token_out=params.token_in, output_amount=params.amount_in)

    first = path[0]
    if params.token_in_holder != first.market_token:
        ctx.transfer_out(params.token_in_holder, params.token_in, first.market_token, params.amount_in)

    token = params.token_in
    amount = params.amount_in
    hops = []
    for i, market in enumerate(path):
        is_last = i == len(path) - 1
        receiver = params.receiver if is_last else path[i + 1].market_token
        hop = _swap_hop(
            ctx,
            market,
            MarketPrices.for_market(market, prices),
            token,
            amount,
            receiver,
            params.should_unwrap_native_token if is_last else False,
        )
        hops.append(hop)
        token, amount = hop.token_out, hop.amount_out

    if amount < params.min_output_amount:
        raise InsufficientSwapOutputAmount(amount, params.min_output_amount)

    logger.info(
        "swap %s %s -> %s %s via %s",
        params.amount_in,
        params.token_in,
        amount,
        token,
        ",".join(m.market_token for m in path),
    )
    return SwapResult(token_out=token, output_amount=amount, hops=tuple(hops))
