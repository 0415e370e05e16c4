"""
Position decrease settlement.

``decrease_position(ctx, params)`` settles one size reduction (or full close,
or liquidation) in a single pass over the accounting context:

1. Refresh the market's funding and borrowing accumulators.
2. Gate liquidations on `is_position_liquidatable`.
3. Adjust the requested size and collateral deltas (clamp, auto-close,
   withdrawal reset) according to the order type's rules.
4. Net PnL, price impact and costs against output and collateral.
5. Update the position record and the pool ledger.

The output stays in the market's custody; paying it out (directly or through
a swap path) is left to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..state.markets import Market
from ..state.positions import Position
from .config import MarketConfig
from .context import AccountingContext
from .errors import (
    EmptyPosition,
    InsufficientCollateral,
    InvalidLiquidation,
    InvalidOrderSize,
    UnableToWithdrawCollateral,
)
from .fees import PositionFees, empty_position_fees, get_position_fees
from .impact import get_position_impact_amount
from .math import mul_div
from .order import DecreaseOrder, OrderRules
from .pool import (
    apply_delta_to_collateral_sum,
    apply_delta_to_open_interest,
    apply_delta_to_open_interest_in_tokens,
    apply_delta_to_pool_amount,
    apply_delta_to_position_impact_pool,
    credit_claimable_funding,
    get_cumulative_borrowing_factor,
    get_cumulative_claimable_funding_factor,
    get_cumulative_funding_factor,
    update_funding_and_borrowing_state,
    validate_reserve,
)
from .position import (
    get_decrease_price_impact_usd,
    get_position_pnl_usd,
    is_position_liquidatable,
    pnl_usd_to_collateral_amount,
    validate_position,
    validate_position_size_values,
    will_position_collateral_be_sufficient,
)
from .pricing import MarketPrices, Price, get_execution_price_for_decrease

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecreasePositionParams:
    market: Market
    prices: MarketPrices
    order: DecreaseOrder

    def __post_init__(self) -> None:
        if self.order.market != self.market.market_token:
            raise ValueError(f"order market {self.order.market} != {self.market.market_token}")


@dataclass(frozen=True)
class DecreasePositionResult:
    position_key: str
    output_token: str
    output_amount: int
    adjusted_size_delta_usd: int
    adjusted_collateral_delta_amount: int
    size_delta_in_tokens: int
    execution_price: int
    price_impact_usd: int
    price_impact_amount: int
    pnl_usd: int
    pnl_amount: int
    fees: PositionFees
    pool_delta_amount: int
    remaining_collateral_amount: int
    position_removed: bool
    is_liquidation: bool


@dataclass(frozen=True)
class _CollateralOutcome:
    execution_price: int
    price_impact_usd: int
    pnl_usd: int
    pnl_amount: int
    size_delta_in_tokens: int
    fees: PositionFees
    output_amount: int
    remaining_collateral_amount: int
    collateral_delta_amount: int


# ---------------------------------------------------------------------------
# Request adjustment
# ---------------------------------------------------------------------------

def _adjust_size_delta(ctx: AccountingContext, order: DecreaseOrder, rules: OrderRules, position: Position) -> int:
    size_delta_usd = order.size_delta_usd
    if rules.is_liquidation and size_delta_usd < position.size_in_usd:
        # Liquidations always close the whole position.
        logger.warning(
            "liquidating %s in full: requested %s of %s",
            order.position_key,
            size_delta_usd,
            position.size_in_usd,
        )
        ctx.emit(
            "OrderSizeDeltaAutoUpdated",
            position_key=order.position_key,
            size_delta_usd=size_delta_usd,
            next_size_delta_usd=position.size_in_usd,
        )
        return position.size_in_usd
    if size_delta_usd <= position.size_in_usd:
        return size_delta_usd
    if not rules.clamps_size:
        raise InvalidOrderSize(size_delta_usd, position.size_in_usd)
    logger.warning(
        "clamping size delta %s to position size %s for %s",
        size_delta_usd,
        position.size_in_usd,
        order.position_key,
    )
    ctx.emit(
        "OrderSizeDeltaAutoUpdated",
        position_key=order.position_key,
        size_delta_usd=size_delta_usd,
        next_size_delta_usd=position.size_in_usd,
    )
    return position.size_in_usd


def _adjust_collateral_delta(ctx: AccountingContext, order: DecreaseOrder, rules: OrderRules, position: Position) -> int:
    if rules.is_liquidation:
        return 0
    collateral_delta = order.initial_collateral_delta_amount
    if collateral_delta > position.collateral_amount:
        ctx.emit(
            "OrderCollateralDeltaAmountAutoUpdated",
            position_key=order.position_key,
            collateral_delta_amount=collateral_delta,
            next_collateral_delta_amount=position.collateral_amount,
        )
        collateral_delta = position.collateral_amount
    return collateral_delta


def _apply_remaining_position_rules(
    ctx: AccountingContext,
    config: MarketConfig,
    order: DecreaseOrder,
    position: Position,
    prices: MarketPrices,
    collateral_token_price: Price,
    size_delta_usd: int,
    collateral_delta: int,
) -> tuple[int, int]:
    """
    Rules for a decrease that leaves the position open: a withdrawal that
    would undercollateralize it is dropped, and a remainder that would be too
    small (in size or collateral) is closed instead.
    """
    estimated_pnl_usd, _ = get_position_pnl_usd(
        position,
        position.size_in_usd,
        prices.index_token_price.pick_price_for_pnl(position.is_long, False),
    )
    estimated_realized_pnl_usd = mul_div(estimated_pnl_usd, size_delta_usd, position.size_in_usd)
    estimated_remaining_pnl_usd = estimated_pnl_usd - estimated_realized_pnl_usd
    next_size_in_usd = position.size_in_usd - size_delta_usd

    if collateral_delta > 0:
        sufficient, estimated_remaining_usd = will_position_collateral_be_sufficient(
            config,
            position,
            collateral_token_price,
            collateral_delta,
            estimated_realized_pnl_usd,
            next_size_in_usd,
        )
        if not sufficient:
            if size_delta_usd == 0:
                raise UnableToWithdrawCollateral(estimated_remaining_usd)
            logger.warning(
                "dropping collateral withdrawal of %s for %s: estimated remaining collateral %s",
                collateral_delta,
                order.position_key,
                estimated_remaining_usd,
            )
            ctx.emit(
                "OrderCollateralDeltaAmountAutoUpdated",
                position_key=order.position_key,
                collateral_delta_amount=collateral_delta,
                next_collateral_delta_amount=0,
            )
            collateral_delta = 0

    estimated_remaining_collateral_usd = (
        (position.collateral_amount - collateral_delta) * collateral_token_price.min
        + min(estimated_realized_pnl_usd, 0)
        + estimated_remaining_pnl_usd
    )
    too_small = (
        next_size_in_usd < config.min_position_size_usd
        or estimated_remaining_collateral_usd < config.min_collateral_usd
    )
    if too_small:
        if size_delta_usd == 0:
            raise UnableToWithdrawCollateral(estimated_remaining_collateral_usd)
        logger.warning(
            "closing %s in full: remaining size %s, estimated remaining collateral %s",
            order.position_key,
            next_size_in_usd,
            estimated_remaining_collateral_usd,
        )
        ctx.emit(
            "OrderSizeDeltaAutoUpdated",
            position_key=order.position_key,
            size_delta_usd=size_delta_usd,
            next_size_delta_usd=position.size_in_usd,
        )
        size_delta_usd = position.size_in_usd
    return size_delta_usd, collateral_delta


# ---------------------------------------------------------------------------
# Collateral processing
# ---------------------------------------------------------------------------

def _process_collateral(
    ctx: AccountingContext,
    config: MarketConfig,
    market: Market,
    prices: MarketPrices,
    position: Position,
    order: DecreaseOrder,
    rules: OrderRules,
    size_delta_usd: int,
    collateral_delta: int,
) -> _CollateralOutcome:
    collateral_price = prices.token_price(market, position.collateral_token)
    remaining = position.collateral_amount
    output = 0

    price_impact_usd = get_decrease_price_impact_usd(
        ctx, config, market, prices, position.is_long, size_delta_usd, rules.is_liquidation
    )
    execution_price = get_execution_price_for_decrease(
        prices.index_token_price,
        position.size_in_usd,
        position.size_in_tokens,
        size_delta_usd,
        price_impact_usd,
        order.acceptable_price,
        position.is_long,
    )

    if size_delta_usd > 0:
        pnl_usd, size_delta_in_tokens = get_position_pnl_usd(position, size_delta_usd, execution_price)
    else:
        pnl_usd, size_delta_in_tokens = 0, 0
    pnl_amount = pnl_usd_to_collateral_amount(pnl_usd, collateral_price)
    if pnl_amount > 0:
        output += pnl_amount
    else:
        remaining += pnl_amount

    if rules.is_liquidation and remaining < 0:
        # The loss exceeds the collateral: the pool absorbs the shortfall and
        # takes all of the collateral; fees are forgone.
        logger.warning(
            "liquidation shortfall on %s: pnl %s exceeds collateral %s",
            order.position_key,
            pnl_amount,
            position.collateral_amount,
        )
        ctx.emit(
            "PositionShortfallAbsorbed",
            position_key=order.position_key,
            pnl_amount=pnl_amount,
            collateral_amount=position.collateral_amount,
        )
        return _CollateralOutcome(
            execution_price=execution_price,
            price_impact_usd=price_impact_usd,
            pnl_usd=pnl_usd,
            pnl_amount=-position.collateral_amount,
            size_delta_in_tokens=size_delta_in_tokens,
            fees=empty_position_fees(collateral_price),
            output_amount=0,
            remaining_collateral_amount=0,
            collateral_delta_amount=0,
        )

    fees = get_position_fees(
        config,
        position,
        collateral_price,
        size_delta_usd,
        for_positive_impact=price_impact_usd > 0,
        cumulative_funding_factor=get_cumulative_funding_factor(ctx, market, position.is_long),
        cumulative_claimable_funding_factor=get_cumulative_claimable_funding_factor(ctx, market, position.is_long),
        cumulative_borrowing_factor=get_cumulative_borrowing_factor(ctx, market, position.is_long),
    )
    if rules.is_liquidation and fees.total_cost_amount > remaining + output:
        logger.warning(
            "waiving fees of %s on %s: only %s left",
            fees.total_cost_amount,
            order.position_key,
            remaining + output,
        )
        ctx.emit(
            "PositionFeesWaived",
            position_key=order.position_key,
            total_cost_amount=fees.total_cost_amount,
        )
        fees = empty_position_fees(collateral_price)

    # Costs come out of the output first, then the collateral.
    if output >= fees.total_cost_amount:
        output -= fees.total_cost_amount
    else:
        remaining -= fees.total_cost_amount - output
        output = 0

    remaining -= collateral_delta
    output += collateral_delta

    logger.debug(
        "collateral %s: pnl_usd=%s pnl_amount=%s impact_usd=%s costs=%s output=%s remaining=%s",
        order.position_key,
        pnl_usd,
        pnl_amount,
        price_impact_usd,
        fees.total_cost_amount,
        output,
        remaining,
    )
    return _CollateralOutcome(
        execution_price=execution_price,
        price_impact_usd=price_impact_usd,
        pnl_usd=pnl_usd,
        pnl_amount=pnl_amount,
        size_delta_in_tokens=size_delta_in_tokens,
        fees=fees,
        output_amount=output,
        remaining_collateral_amount=remaining,
        collateral_delta_amount=collateral_delta,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def decrease_position(ctx: AccountingContext, params: DecreasePositionParams) -> DecreasePositionResult:
    """
    Settle one decrease order against the context.

    Raises:
        EmptyPosition, InvalidPositionSizeValues, InvalidLiquidation,
        InvalidOrderSize, UnableToWithdrawCollateral, InvalidAcceptablePrice,
        PriceImpactLargerThanOrderSize, InsufficientCollateral,
        InsufficientPoolBalance, InsufficientReserve, LiquidatablePosition
    """
    market, prices, order = params.market, params.prices, params.order
    rules = order.rules
    key = order.position_key

    position = ctx.get_position(key)
    if position is None or position.size_in_usd == 0:
        raise EmptyPosition(key)
    validate_position_size_values(position)

    config = ctx.config.for_market(market.market_token)
    collateral_token_price = prices.token_price(market, position.collateral_token)

    update_funding_and_borrowing_state(ctx, market, prices)

    if rules.is_liquidation:
        liquidatable, reason = is_position_liquidatable(ctx, market, prices, position)
        if not liquidatable:
            raise InvalidLiquidation(key)
        logger.info("liquidating %s (%s)", key, reason)

    size_delta_usd = _adjust_size_delta(ctx, order, rules, position)
    collateral_delta = _adjust_collateral_delta(ctx, order, rules, position)
    if not rules.is_liquidation and size_delta_usd < position.size_in_usd:
        size_delta_usd, collateral_delta = _apply_remaining_position_rules(
            ctx,
            config,
            order,
            position,
            prices,
            collateral_token_price,
            size_delta_usd,
            collateral_delta,
        )

    outcome = _process_collateral(
        ctx, config, market, prices, position, order, rules, size_delta_usd, collateral_delta
    )
    if outcome.remaining_collateral_amount < 0:
        raise InsufficientCollateral(outcome.remaining_collateral_amount)

    # -- position record ------------------------------------------------------
    initial_collateral_amount = position.collateral_amount
    initial_size_in_usd = position.size_in_usd
    initial_size_in_tokens = position.size_in_tokens
    next_size_in_usd = position.size_in_usd - size_delta_usd
    next_size_in_tokens = position.size_in_tokens - outcome.size_delta_in_tokens
    output_amount = outcome.output_amount
    remaining_collateral = outcome.remaining_collateral_amount

    position_removed = next_size_in_usd == 0 or next_size_in_tokens == 0
    if position_removed:
        output_amount += remaining_collateral
        remaining_collateral = 0
        position.size_in_usd = 0
        position.size_in_tokens = 0
        position.collateral_amount = 0
    else:
        position.size_in_usd = next_size_in_usd
        position.size_in_tokens = next_size_in_tokens
        position.collateral_amount = remaining_collateral
        position.funding_factor = get_cumulative_funding_factor(ctx, market, position.is_long)
        position.claimable_funding_factor = get_cumulative_claimable_funding_factor(ctx, market, position.is_long)
        position.borrowing_factor = get_cumulative_borrowing_factor(ctx, market, position.is_long)
    position.decreased_at_block = ctx.current_block

    # -- pool ledger ----------------------------------------------------------
    fees = outcome.fees
    apply_delta_to_collateral_sum(
        ctx, market, position.collateral_token, position.is_long, remaining_collateral - initial_collateral_amount
    )
    # A removed position takes its whole open interest, rounding remainders included.
    open_interest_delta = initial_size_in_usd if position_removed else size_delta_usd
    open_interest_in_tokens_delta = initial_size_in_tokens if position_removed else outcome.size_delta_in_tokens
    if open_interest_delta > 0 or open_interest_in_tokens_delta > 0:
        apply_delta_to_open_interest(ctx, market, position.collateral_token, position.is_long, -open_interest_delta)
        apply_delta_to_open_interest_in_tokens(
            ctx, market, position.collateral_token, position.is_long, -open_interest_in_tokens_delta
        )

    pool_delta = fees.fee_amount_for_pool - outcome.pnl_amount - fees.funding.claimable_funding_amount
    apply_delta_to_pool_amount(ctx, market, position.collateral_token, pool_delta)
    if pool_delta < 0:
        validate_reserve(ctx, market, prices, is_long=position.collateral_token == market.long_token)

    ctx.credit_fee_receiver(market.market_token, position.collateral_token, fees.fee_receiver_amount, "position_fee")
    credit_claimable_funding(
        ctx, market, position.collateral_token, position.account, fees.funding.claimable_funding_amount
    )

    price_impact_amount = get_position_impact_amount(outcome.price_impact_usd, prices.index_token_price)
    if price_impact_amount != 0:
        apply_delta_to_position_impact_pool(ctx, market, -price_impact_amount)

    if position_removed:
        ctx.remove_position(key, position.account)
    else:
        ctx.set_position(key, position.account, position)
        if not rules.is_liquidation:
            validate_position(ctx, market, prices, position)

    if output_amount < 0:
        raise AssertionError(f"negative output amount: {output_amount}")

    ctx.emit(
        "PositionFeesCollected",
        position_key=key,
        fee_receiver_amount=fees.fee_receiver_amount,
        fee_amount_for_pool=fees.fee_amount_for_pool,
        position_fee_amount=fees.position_fee_amount,
        borrowing_fee_amount=fees.borrowing.borrowing_fee_amount,
        funding_fee_amount=fees.funding.funding_fee_amount,
        claimable_funding_amount=fees.funding.claimable_funding_amount,
    )
    ctx.emit(
        "PositionDecrease",
        position_key=key,
        account=position.account,
        market=market.market_token,
        collateral_token=position.collateral_token,
        is_long=position.is_long,
        size_delta_usd=size_delta_usd,
        size_delta_in_tokens=outcome.size_delta_in_tokens,
        collateral_delta_amount=outcome.collateral_delta_amount,
        execution_price=outcome.execution_price,
        price_impact_usd=outcome.price_impact_usd,
        pnl_usd=outcome.pnl_usd,
        output_amount=output_amount,
        order_type=order.order_type.value,
        position_removed=position_removed,
    )
    logger.info(
        "decreased %s by %s usd: output %s %s, pnl_usd=%s, removed=%s",
        key,
        size_delta_usd,
        output_amount,
        position.collateral_token,
        outcome.pnl_usd,
        position_removed,
    )

    return DecreasePositionResult(
        position_key=key,
        output_token=position.collateral_token,
        output_amount=output_amount,
        adjusted_size_delta_usd=size_delta_usd,
        adjusted_collateral_delta_amount=outcome.collateral_delta_amount,
        size_delta_in_tokens=outcome.size_delta_in_tokens,
        execution_price=outcome.execution_price,
        price_impact_usd=outcome.price_impact_usd,
        price_impact_amount=price_impact_amount,
        pnl_usd=outcome.pnl_usd,
        pnl_amount=outcome.pnl_amount,
        fees=fees,
        pool_delta_amount=pool_delta,
        remaining_collateral_amount=remaining_collateral,
        position_removed=position_removed,
        is_liquidation=rules.is_liquidation,
    )
