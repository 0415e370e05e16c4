"""Tests for position decrease settlement."""

import pytest

from conftest import ETH_USDC, FP, WETH_DAI, World
from poolsettle.core.config import MarketConfig
from poolsettle.core.decrease import DecreasePositionParams, decrease_position
from poolsettle.core.errors import (
    EmptyPosition,
    InsufficientCollateral,
    InvalidAcceptablePrice,
    InvalidLiquidation,
    InvalidOrderSize,
    LiquidatablePosition,
    UnableToWithdrawCollateral,
)
from poolsettle.core.invariants import ledger_obligations
from poolsettle.core.order import DecreaseOrder, OrderType
from poolsettle.core.pool import get_open_interest, get_pool_amount, get_position_impact_pool_amount
from poolsettle.state import ledger as tables


def _order(size_delta_usd=10_000 * FP, order_type=OrderType.MARKET_DECREASE, is_long=True, **kwargs):
    return DecreaseOrder(
        account="alice",
        market=ETH_USDC.market_token,
        collateral_token="USDC",
        is_long=is_long,
        order_type=order_type,
        size_delta_usd=size_delta_usd,
        receiver="alice",
        **kwargs,
    )


def _decrease(world, order):
    ctx = world.context()
    result = decrease_position(ctx, DecreasePositionParams(market=ETH_USDC, prices=world.prices(), order=order))
    return ctx, result


def _world(config=None):
    w = World(config)
    w.seed_pool(ETH_USDC, "WETH", 100_000)
    w.seed_pool(ETH_USDC, "USDC", 100_000)
    w.open_position()
    return w


def _obligation_change(before, ctx):
    after = ledger_obligations(ctx.ledger)
    return sum(after.values()) - sum(before.values())


# ---------------------------------------------------------------------------
# Full and partial closes
# ---------------------------------------------------------------------------

class TestClose:
    def test_full_close_with_loss(self, world):
        world.open_position()
        world.set_price("ETH", FP * 995 // 1_000)
        ctx, result = _decrease(world, _order())
        assert result.output_amount == 950
        assert result.pnl_amount == -50
        assert result.position_removed
        assert ctx.get_position(result.position_key) is None
        assert get_pool_amount(ctx, ETH_USDC, "USDC") == 100_050
        assert ctx.ledger.get(tables.COLLATERAL_SUM, ("ETH-USDC", "USDC", True)) == 0
        assert get_open_interest(ctx, ETH_USDC, True) == 0

    def test_partial_close_with_profit(self, world):
        world.open_position()
        world.set_price("ETH", FP * 11 // 10)
        ctx, result = _decrease(world, _order(5_000 * FP))
        assert result.output_amount == 500
        assert result.size_delta_in_tokens == 5_000
        assert not result.position_removed
        position = ctx.get_position(result.position_key)
        assert (position.size_in_usd, position.size_in_tokens, position.collateral_amount) == (5_000 * FP, 5_000, 1_000)
        assert position.decreased_at_block == 7
        assert get_pool_amount(ctx, ETH_USDC, "USDC") == 99_500

    def test_partial_close_with_withdrawal(self, world):
        world.open_position()
        ctx, result = _decrease(world, _order(5_000 * FP, initial_collateral_delta_amount=300))
        assert result.output_amount == 300
        assert result.adjusted_collateral_delta_amount == 300
        assert ctx.get_position(result.position_key).collateral_amount == 700

    def test_short_profit(self, world):
        world.open_position(is_long=False)
        world.set_price("ETH", FP * 9 // 10)
        ctx, result = _decrease(world, _order(is_long=False))
        assert result.output_amount == 2_000
        assert get_pool_amount(ctx, ETH_USDC, "USDC") == 99_000

    def test_positions_are_staged_until_commit(self, world):
        position = world.open_position()
        _decrease(world, _order())
        assert world.positions.get(position.key) is not None

    def test_events(self, world):
        world.open_position()
        ctx, _ = _decrease(world, _order())
        names = [name for name, _ in ctx.events]
        assert names[-2:] == ["PositionFeesCollected", "PositionDecrease"]
        decrease_event = ctx.events[-1][1]
        assert decrease_event["order_type"] == "market_decrease"
        assert decrease_event["position_removed"] is True


# ---------------------------------------------------------------------------
# Request adjustment
# ---------------------------------------------------------------------------

class TestAdjustment:
    def test_limit_order_clamps_size(self, world):
        world.open_position()
        ctx, result = _decrease(world, _order(20_000 * FP, order_type=OrderType.LIMIT_DECREASE))
        assert result.adjusted_size_delta_usd == 10_000 * FP
        assert result.position_removed
        assert "OrderSizeDeltaAutoUpdated" in [name for name, _ in ctx.events]

    def test_market_order_rejects_oversize(self, world):
        world.open_position()
        with pytest.raises(InvalidOrderSize):
            _decrease(world, _order(20_000 * FP))

    def test_withdrawal_clamped_to_collateral(self, world):
        world.open_position()
        ctx, result = _decrease(world, _order(initial_collateral_delta_amount=5_000))
        assert result.adjusted_collateral_delta_amount == 1_000
        assert result.output_amount == 1_000
        assert "OrderCollateralDeltaAmountAutoUpdated" in [name for name, _ in ctx.events]

    def test_open_position_cannot_be_emptied(self, world):
        world.open_position()
        with pytest.raises(LiquidatablePosition):
            _decrease(world, _order(5_000 * FP, initial_collateral_delta_amount=1_000))

    def test_undercollateralizing_withdrawal_dropped(self):
        w = _world(MarketConfig(min_collateral_factor=FP // 10))
        ctx, result = _decrease(w, _order(5_000 * FP, initial_collateral_delta_amount=600))
        assert result.adjusted_collateral_delta_amount == 0
        assert result.output_amount == 0
        assert ctx.get_position(result.position_key).collateral_amount == 1_000

    def test_withdraw_only_rejected(self):
        w = _world(MarketConfig(min_collateral_factor=FP // 10))
        with pytest.raises(UnableToWithdrawCollateral):
            _decrease(w, _order(0, initial_collateral_delta_amount=1))

    def test_withdraw_only(self, world):
        world.open_position()
        ctx, result = _decrease(world, _order(0, initial_collateral_delta_amount=100))
        assert result.output_amount == 100
        assert result.size_delta_in_tokens == 0
        assert ctx.get_position(result.position_key).size_in_usd == 10_000 * FP

    def test_small_remainder_closes_in_full(self):
        w = _world(MarketConfig(min_position_size_usd=6_000 * FP))
        _, result = _decrease(w, _order(5_000 * FP))
        assert result.adjusted_size_delta_usd == 10_000 * FP
        assert result.position_removed
        assert result.output_amount == 1_000


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------

class TestRejections:
    def test_missing_position(self, world):
        with pytest.raises(EmptyPosition):
            _decrease(world, _order())

    def test_loss_exceeding_collateral(self, world):
        world.open_position()
        world.set_price("ETH", FP * 85 // 100)
        with pytest.raises(InsufficientCollateral) as exc:
            _decrease(world, _order())
        assert exc.value.remaining_collateral_amount == -500

    def test_acceptable_price(self, world):
        world.open_position()
        world.set_price("ETH", FP * 995 // 1_000)
        with pytest.raises(InvalidAcceptablePrice):
            _decrease(world, _order(acceptable_price=FP))

    def test_order_market_must_match(self, world):
        order = _order()
        with pytest.raises(ValueError):
            DecreasePositionParams(market=WETH_DAI, prices=world.prices(), order=order)


# ---------------------------------------------------------------------------
# Liquidation
# ---------------------------------------------------------------------------

class TestLiquidation:
    def test_healthy_position(self):
        w = _world(MarketConfig(min_collateral_factor=FP // 100))
        with pytest.raises(InvalidLiquidation):
            _decrease(w, _order(order_type=OrderType.LIQUIDATION))

    def test_shortfall_absorbed_by_pool(self, world):
        world.open_position()
        world.set_price("ETH", FP * 85 // 100)
        ctx, result = _decrease(world, _order(order_type=OrderType.LIQUIDATION))
        assert result.is_liquidation
        assert result.output_amount == 0
        assert result.pnl_amount == -1_000
        assert result.fees.is_empty
        assert get_pool_amount(ctx, ETH_USDC, "USDC") == 101_000
        assert "PositionShortfallAbsorbed" in [name for name, _ in ctx.events]

    def test_partial_liquidation_closes_whole_position(self, world):
        position = world.open_position()
        world.set_price("ETH", FP * 7 // 10)
        ctx, result = _decrease(world, _order(5_000 * FP, order_type=OrderType.LIQUIDATION))
        assert result.adjusted_size_delta_usd == 10_000 * FP
        assert result.position_removed
        assert result.pnl_amount == -1_000
        assert ctx.get_position(position.key) is None
        assert get_open_interest(ctx, ETH_USDC, True) == 0
        assert get_pool_amount(ctx, ETH_USDC, "USDC") == 101_000
        assert "OrderSizeDeltaAutoUpdated" in [name for name, _ in ctx.events]

    def test_fees_waived(self):
        w = _world(MarketConfig(position_fee_factor_for_negative_impact=FP // 50))
        w.set_price("ETH", FP * 91 // 100)
        ctx, result = _decrease(w, _order(order_type=OrderType.LIQUIDATION))
        assert result.output_amount == 100
        assert result.fees.total_cost_amount == 0
        assert get_pool_amount(ctx, ETH_USDC, "USDC") == 100_900
        assert "PositionFeesWaived" in [name for name, _ in ctx.events]

    def test_liquidation_ignores_withdrawal(self):
        w = _world(MarketConfig(position_fee_factor_for_negative_impact=FP // 50))
        w.set_price("ETH", FP * 91 // 100)
        _, result = _decrease(w, _order(order_type=OrderType.LIQUIDATION, initial_collateral_delta_amount=50))
        assert result.adjusted_collateral_delta_amount == 0


# ---------------------------------------------------------------------------
# Fees, funding and impact
# ---------------------------------------------------------------------------

class TestCosts:
    def test_borrowing_and_funding(self):
        w = _world(MarketConfig(borrowing_fee_receiver_factor=FP // 5))
        w.ledger.set(tables.CUMULATIVE_BORROWING_FACTOR, ("ETH-USDC", True), FP // 100)
        w.ledger.set(tables.CUMULATIVE_FUNDING_FACTOR, ("ETH-USDC", True), FP // 1_000)
        before = ledger_obligations(w.ledger)
        ctx, result = _decrease(w, _order())
        assert result.fees.total_cost_amount == 110
        assert result.output_amount == 890
        assert result.pool_delta_amount == 90
        assert ctx.ledger.get(tables.CLAIMABLE_FEE_AMOUNT, ("ETH-USDC", "USDC")) == 20
        assert ctx.fee_credits == [("ETH-USDC", "USDC", 20, "position_fee")]
        assert _obligation_change(before, ctx) + result.output_amount == 0

    def test_claimable_funding(self):
        w = _world()
        w.ledger.set(tables.CUMULATIVE_CLAIMABLE_FUNDING_FACTOR, ("ETH-USDC", True), FP // 500)
        before = ledger_obligations(w.ledger)
        ctx, result = _decrease(w, _order())
        assert result.fees.funding.claimable_funding_amount == 20
        assert result.output_amount == 1_000
        assert get_pool_amount(ctx, ETH_USDC, "USDC") == 99_980
        assert ctx.ledger.get(tables.CLAIMABLE_FUNDING_AMOUNT, ("ETH-USDC", "USDC", "alice")) == 20
        assert _obligation_change(before, ctx) + result.output_amount == 0

    def test_negative_impact(self):
        w = _world(MarketConfig(position_impact_factor_negative=FP // 1_000))
        w.seed_open_interest(ETH_USDC, "USDC", False, 20_000 * FP, 20_000)
        ctx, result = _decrease(w, _order())
        assert result.price_impact_usd == -10 * FP
        assert result.execution_price == FP - FP // 1_000
        assert result.output_amount == 990
        assert result.price_impact_amount == -10
        assert get_position_impact_pool_amount(ctx, ETH_USDC) == 10

    def test_positive_impact_capped_by_impact_pool(self):
        w = _world(MarketConfig(position_impact_factor_positive=FP // 1_000))
        w.seed_open_interest(ETH_USDC, "WETH", True, 20_000 * FP, 20_000)
        w.seed_open_interest(ETH_USDC, "USDC", False, 10_000 * FP, 10_000)
        w.ledger.set(tables.POSITION_IMPACT_POOL_AMOUNT, ("ETH-USDC",), 4)
        ctx, result = _decrease(w, _order())
        assert result.price_impact_usd == 4 * FP
        assert result.output_amount == 1_004
        assert get_position_impact_pool_amount(ctx, ETH_USDC) == 0

    def test_accumulators_refreshed_before_settlement(self):
        w = _world(MarketConfig(borrowing_factor_for_longs=10**20))
        w.ledger.set(tables.BORROWING_UPDATED_AT, ("ETH-USDC",), 990)
        ctx, result = _decrease(w, _order())
        assert ctx.ledger.get(tables.CUMULATIVE_BORROWING_FACTOR, ("ETH-USDC", True)) > 0
        assert ctx.ledger.get(tables.BORROWING_UPDATED_AT, ("ETH-USDC",)) == 1_000
        assert result.fees.borrowing.latest_borrowing_factor == ctx.ledger.get(
            tables.CUMULATIVE_BORROWING_FACTOR, ("ETH-USDC", True)
        )
