"""
Position math: PnL, capped decrease impact, liquidation and collateral checks.
"""

from __future__ import annotations

from ..state.markets import Market
from ..state.positions import Position
from .config import MarketConfig
from .context import AccountingContext
from .errors import InvalidPositionSizeValues, LiquidatablePosition
from .fees import get_position_fees
from .impact import (
    cap_negative_position_impact_usd,
    cap_positive_position_impact_usd,
    get_position_price_impact_usd,
)
from .math import apply_factor, div_trunc, mul_div, roundup_division
from .pool import (
    get_cumulative_borrowing_factor,
    get_cumulative_claimable_funding_factor,
    get_cumulative_funding_factor,
    get_open_interest,
    get_position_impact_pool_amount,
)
from .pricing import MarketPrices, Price, usd_to_token_amount_in, usd_to_token_amount_out


def get_position_pnl_usd(position: Position, size_delta_usd: int, index_price: int) -> tuple[int, int]:
    """
    Realized PnL for closing `size_delta_usd` at `index_price`.

    Returns (pnl_usd, size_delta_in_tokens). A full close takes every token;
    a partial long rounds the token share up and a partial short rounds it
    down, so the rounding always works against the trader.
    """
    if position.size_in_usd == 0 or position.size_in_tokens == 0:
        raise InvalidPositionSizeValues(position.size_in_usd, position.size_in_tokens)

    position_value = position.size_in_tokens * index_price
    if position.is_long:
        total_pnl = position_value - position.size_in_usd
    else:
        total_pnl = position.size_in_usd - position_value

    if size_delta_usd == position.size_in_usd:
        size_delta_in_tokens = position.size_in_tokens
    elif position.is_long:
        size_delta_in_tokens = roundup_division(position.size_in_tokens * size_delta_usd, position.size_in_usd)
    else:
        size_delta_in_tokens = div_trunc(position.size_in_tokens * size_delta_usd, position.size_in_usd)

    pnl_usd = mul_div(total_pnl, size_delta_in_tokens, position.size_in_tokens)
    return pnl_usd, size_delta_in_tokens


def pnl_usd_to_collateral_amount(pnl_usd: int, collateral_token_price: Price) -> int:
    """Profit paid at `price.max` (truncated); loss charged at `price.min` (rounded up)."""
    if pnl_usd > 0:
        return usd_to_token_amount_out(pnl_usd, collateral_token_price)
    return -usd_to_token_amount_in(-pnl_usd, collateral_token_price)


def get_decrease_price_impact_usd(
    ctx: AccountingContext,
    config: MarketConfig,
    market: Market,
    prices: MarketPrices,
    is_long: bool,
    size_delta_usd: int,
    is_liquidation: bool,
) -> int:
    """Impact of removing `size_delta_usd` of open interest, capped both ways."""
    if size_delta_usd == 0:
        return 0
    impact_usd = get_position_price_impact_usd(
        config,
        get_open_interest(ctx, market, True),
        get_open_interest(ctx, market, False),
        -size_delta_usd,
        is_long,
    )
    impact_usd = cap_positive_position_impact_usd(
        impact_usd, get_position_impact_pool_amount(ctx, market), prices.index_token_price
    )
    max_factor = (
        config.max_position_impact_factor_for_liquidations
        if is_liquidation
        else config.max_position_impact_factor_negative
    )
    return cap_negative_position_impact_usd(impact_usd, size_delta_usd, max_factor)


def is_position_liquidatable(
    ctx: AccountingContext,
    market: Market,
    prices: MarketPrices,
    position: Position,
    should_validate_min_collateral_usd: bool = True,
) -> tuple[bool, str]:
    """
    Whether the position's collateral, after PnL at the worse price, negative
    closing impact and accrued costs, is below the maintenance bounds.
    """
    config = ctx.config.for_market(market.market_token)
    collateral_price = prices.token_price(market, position.collateral_token)

    pnl_usd, _ = get_position_pnl_usd(
        position,
        position.size_in_usd,
        prices.index_token_price.pick_price_for_pnl(position.is_long, False),
    )
    impact_usd = get_decrease_price_impact_usd(
        ctx, config, market, prices, position.is_long, position.size_in_usd, is_liquidation=True
    )
    # Only a penalty counts toward liquidation.
    impact_usd = min(impact_usd, 0)

    fees = get_position_fees(
        config,
        position,
        collateral_price,
        position.size_in_usd,
        for_positive_impact=False,
        cumulative_funding_factor=get_cumulative_funding_factor(ctx, market, position.is_long),
        cumulative_claimable_funding_factor=get_cumulative_claimable_funding_factor(ctx, market, position.is_long),
        cumulative_borrowing_factor=get_cumulative_borrowing_factor(ctx, market, position.is_long),
    )

    collateral_usd = position.collateral_amount * collateral_price.min
    cost_usd = fees.total_cost_amount * collateral_price.min
    remaining_collateral_usd = collateral_usd + pnl_usd + impact_usd - cost_usd

    if should_validate_min_collateral_usd and remaining_collateral_usd < config.min_collateral_usd:
        return True, "min collateral"
    if remaining_collateral_usd <= 0:
        return True, "< 0"
    if remaining_collateral_usd < apply_factor(position.size_in_usd, config.min_collateral_factor):
        return True, "min collateral for leverage"
    return False, ""


def will_position_collateral_be_sufficient(
    config: MarketConfig,
    position: Position,
    collateral_token_price: Price,
    collateral_delta_amount: int,
    realized_pnl_usd: int,
    next_size_in_usd: int,
) -> tuple[bool, int]:
    """Return (sufficient, estimated remaining collateral USD) for a planned withdrawal."""
    remaining_collateral_usd = (position.collateral_amount - collateral_delta_amount) * collateral_token_price.min
    # Realized losses come out of the remaining collateral; profits go to the output.
    if realized_pnl_usd < 0:
        remaining_collateral_usd += realized_pnl_usd
    if remaining_collateral_usd < 0:
        return False, remaining_collateral_usd
    min_for_leverage = apply_factor(next_size_in_usd, config.min_collateral_factor)
    return remaining_collateral_usd >= min_for_leverage, remaining_collateral_usd


def validate_position_size_values(position: Position) -> None:
    if (position.size_in_usd == 0) != (position.size_in_tokens == 0):
        raise InvalidPositionSizeValues(position.size_in_usd, position.size_in_tokens)


def validate_position(
    ctx: AccountingContext,
    market: Market,
    prices: MarketPrices,
    position: Position,
) -> None:
    """A position left open by a decrease must be well-formed and not liquidatable."""
    validate_position_size_values(position)
    liquidatable, reason = is_position_liquidatable(
        ctx, market, prices, position, should_validate_min_collateral_usd=False
    )
    if liquidatable:
        raise LiquidatablePosition(reason)
