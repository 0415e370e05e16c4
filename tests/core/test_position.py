"""Tests for PnL, decrease impact and the liquidation and collateral checks."""

import pytest

from conftest import ETH_USDC, FP, World
from poolsettle.core.config import MarketConfig
from poolsettle.core.errors import InvalidPositionSizeValues, LiquidatablePosition
from poolsettle.core.position import (
    get_decrease_price_impact_usd,
    get_position_pnl_usd,
    is_position_liquidatable,
    pnl_usd_to_collateral_amount,
    validate_position,
    validate_position_size_values,
    will_position_collateral_be_sufficient,
)
from poolsettle.core.pricing import Price
from poolsettle.state.positions import Position


def _position(is_long=True, size_in_usd=10_000 * FP, size_in_tokens=10_000, collateral_amount=1_000):
    return Position(
        account="alice",
        market="ETH-USDC",
        collateral_token="USDC",
        is_long=is_long,
        size_in_usd=size_in_usd,
        size_in_tokens=size_in_tokens,
        collateral_amount=collateral_amount,
    )


# ---------------------------------------------------------------------------
# PnL
# ---------------------------------------------------------------------------

class TestPnl:
    def test_long_profit(self):
        assert get_position_pnl_usd(_position(), 10_000 * FP, FP * 11 // 10) == (1_000 * FP, 10_000)

    def test_short_loss(self):
        assert get_position_pnl_usd(_position(is_long=False), 10_000 * FP, FP * 11 // 10) == (-1_000 * FP, 10_000)

    def test_partial_long_rounds_tokens_up(self):
        _, tokens = get_position_pnl_usd(_position(size_in_tokens=3_333), 5_000 * FP, FP)
        assert tokens == 1_667

    def test_partial_short_rounds_tokens_down(self):
        _, tokens = get_position_pnl_usd(_position(is_long=False, size_in_tokens=3_333), 5_000 * FP, FP)
        assert tokens == 1_666

    def test_partial_pnl_is_proportional(self):
        pnl, tokens = get_position_pnl_usd(_position(), 2_500 * FP, 2 * FP)
        assert (pnl, tokens) == (2_500 * FP, 2_500)

    def test_empty_position(self):
        with pytest.raises(InvalidPositionSizeValues):
            get_position_pnl_usd(_position(size_in_usd=0, size_in_tokens=0), 0, FP)


class TestPnlToCollateral:
    def test_profit_truncated_at_max(self):
        assert pnl_usd_to_collateral_amount(10 * FP, Price(2 * FP, 3 * FP)) == 3

    def test_loss_rounded_up_at_min(self):
        assert pnl_usd_to_collateral_amount(-10 * FP, Price(3 * FP, 4 * FP)) == -4

    def test_zero(self):
        assert pnl_usd_to_collateral_amount(0, Price.single(FP)) == 0


# ---------------------------------------------------------------------------
# Impact
# ---------------------------------------------------------------------------

class TestDecreaseImpact:
    def _world(self):
        w = World(
            MarketConfig(
                position_impact_factor_negative=FP // 1_000,
                max_position_impact_factor_negative=FP // 20_000,
            )
        )
        w.open_position()
        w.seed_open_interest(ETH_USDC, "USDC", False, 20_000 * FP, 20_000)
        return w

    def test_regular_cap(self):
        w = self._world()
        ctx = w.context()
        config = ctx.config.for_market("ETH-USDC")
        impact = get_decrease_price_impact_usd(ctx, config, ETH_USDC, w.prices(), True, 10_000 * FP, False)
        assert impact == -(FP // 2)

    def test_liquidation_cap(self):
        w = self._world()
        ctx = w.context()
        config = ctx.config.for_market("ETH-USDC")
        impact = get_decrease_price_impact_usd(ctx, config, ETH_USDC, w.prices(), True, 10_000 * FP, True)
        assert impact == -10 * FP

    def test_zero_size(self):
        w = self._world()
        ctx = w.context()
        config = ctx.config.for_market("ETH-USDC")
        assert get_decrease_price_impact_usd(ctx, config, ETH_USDC, w.prices(), True, 0, False) == 0


# ---------------------------------------------------------------------------
# Liquidation and collateral checks
# ---------------------------------------------------------------------------

class TestLiquidatable:
    def _check(self, config=None, eth_price=FP, validate_min_usd=True):
        w = World(config)
        position = w.open_position()
        w.set_price("ETH", eth_price)
        return is_position_liquidatable(w.context(), ETH_USDC, w.prices(), position, validate_min_usd)

    def test_healthy(self):
        assert self._check() == (False, "")

    def test_min_collateral_usd(self):
        assert self._check(MarketConfig(min_collateral_usd=2_000 * FP)) == (True, "min collateral")

    def test_min_collateral_usd_skipped(self):
        assert self._check(MarketConfig(min_collateral_usd=2_000 * FP), validate_min_usd=False) == (False, "")

    def test_negative_remaining(self):
        assert self._check(eth_price=FP * 85 // 100, validate_min_usd=False) == (True, "< 0")

    def test_negative_remaining_reported_as_min_collateral(self):
        assert self._check(eth_price=FP * 85 // 100) == (True, "min collateral")

    def test_leverage(self):
        assert self._check(MarketConfig(min_collateral_factor=FP // 5)) == (True, "min collateral for leverage")

    def test_costs_count(self):
        config = MarketConfig(position_fee_factor_for_negative_impact=FP // 10)
        assert self._check(config) == (True, "< 0")

    def test_validate_position_raises(self):
        w = World(MarketConfig(min_collateral_factor=FP // 5))
        position = w.open_position()
        with pytest.raises(LiquidatablePosition):
            validate_position(w.context(), ETH_USDC, w.prices(), position)


class TestCollateralSufficient:
    CONFIG = MarketConfig(min_collateral_factor=FP // 10)

    def test_insufficient(self):
        result = will_position_collateral_be_sufficient(self.CONFIG, _position(), Price.single(FP), 600, 0, 5_000 * FP)
        assert result == (False, 400 * FP)

    def test_sufficient(self):
        result = will_position_collateral_be_sufficient(self.CONFIG, _position(), Price.single(FP), 500, 0, 5_000 * FP)
        assert result == (True, 500 * FP)

    def test_realized_loss_counts(self):
        result = will_position_collateral_be_sufficient(
            self.CONFIG, _position(), Price.single(FP), 400, -100 * FP, 5_000 * FP
        )
        assert result == (True, 500 * FP)

    def test_realized_profit_ignored(self):
        result = will_position_collateral_be_sufficient(
            self.CONFIG, _position(), Price.single(FP), 600, 100 * FP, 5_000 * FP
        )
        assert result == (False, 400 * FP)

    def test_negative_remaining(self):
        result = will_position_collateral_be_sufficient(self.CONFIG, _position(), Price.single(FP), 1_000, -FP, 0)
        assert result == (False, -FP)


class TestSizeValues:
    def test_mismatched(self):
        with pytest.raises(InvalidPositionSizeValues):
            validate_position_size_values(_position(size_in_usd=FP, size_in_tokens=0))

    def test_both_zero_ok(self):
        validate_position_size_values(_position(size_in_usd=0, size_in_tokens=0))
