"""Tests for the price impact curve and its caps."""

import pytest

from conftest import FP
from poolsettle.core.config import MarketConfig
from poolsettle.core.errors import UsdDeltaExceedsPoolValue
from poolsettle.core.impact import (
    apply_impact_factor,
    cap_negative_position_impact_usd,
    cap_positive_position_impact_usd,
    get_position_impact_amount,
    get_position_price_impact_usd,
    get_price_impact_usd_for_balances,
    get_swap_impact_amount_with_cap,
    get_swap_price_impact_usd,
)
from poolsettle.core.pricing import Price


# ---------------------------------------------------------------------------
# Curve
# ---------------------------------------------------------------------------

class TestImpactCurve:
    def test_linear(self):
        assert apply_impact_factor(100 * FP, FP // 10, FP) == 10 * FP

    def test_quadratic(self):
        assert apply_impact_factor(50_000 * FP, FP // 10**6, 2 * FP) == 2_500 * FP

    def test_balancing_is_positive(self):
        impact = get_price_impact_usd_for_balances(100 * FP, 200 * FP, 150 * FP, 150 * FP, FP // 10, FP // 5, FP)
        assert impact == 10 * FP

    def test_unbalancing_is_negative(self):
        impact = get_price_impact_usd_for_balances(150 * FP, 150 * FP, 200 * FP, 100 * FP, FP // 10, FP // 5, FP)
        assert impact == -20 * FP

    def test_crossover(self):
        impact = get_price_impact_usd_for_balances(100 * FP, 200 * FP, 250 * FP, 50 * FP, FP // 10, FP // 5, FP)
        assert impact == 10 * FP - 40 * FP


class TestSwapImpact:
    def test_positive(self):
        config = MarketConfig(
            swap_impact_factor_positive=FP // 10**6,
            swap_impact_exponent_factor=2 * FP,
        )
        assert get_swap_price_impact_usd(config, 50_000 * FP, 100_000 * FP, 1_000 * FP) == 196 * FP

    def test_negative(self):
        config = MarketConfig(
            swap_impact_factor_negative=FP // 10**6,
            swap_impact_exponent_factor=2 * FP,
        )
        assert get_swap_price_impact_usd(config, 100_000 * FP, 50_000 * FP, 1_000 * FP) == -204 * FP

    def test_delta_exceeds_out_side(self):
        with pytest.raises(UsdDeltaExceedsPoolValue):
            get_swap_price_impact_usd(MarketConfig(), 10 * FP, 5 * FP, 6 * FP)


class TestPositionImpact:
    def test_closing_the_minority_side_is_negative(self):
        config = MarketConfig(position_impact_factor_negative=FP // 1_000)
        impact = get_position_price_impact_usd(config, 10_000 * FP, 20_000 * FP, -10_000 * FP, is_long=True)
        assert impact == -10 * FP

    def test_closing_the_majority_side_is_positive(self):
        config = MarketConfig(position_impact_factor_positive=FP // 1_000)
        impact = get_position_price_impact_usd(config, 30_000 * FP, 10_000 * FP, -10_000 * FP, is_long=True)
        assert impact == 10 * FP

    def test_delta_larger_than_side(self):
        with pytest.raises(UsdDeltaExceedsPoolValue):
            get_position_price_impact_usd(MarketConfig(), 0, 10 * FP, -1, is_long=True)


# ---------------------------------------------------------------------------
# Caps and amounts
# ---------------------------------------------------------------------------

class TestCaps:
    def test_positive_capped_by_impact_pool(self):
        assert cap_positive_position_impact_usd(100 * FP, 50, Price.single(FP)) == 50 * FP

    def test_positive_under_cap(self):
        assert cap_positive_position_impact_usd(10 * FP, 50, Price.single(FP)) == 10 * FP

    def test_negative_capped_by_factor(self):
        assert cap_negative_position_impact_usd(-100 * FP, 1_000 * FP, FP // 20) == -50 * FP

    def test_caps_ignore_other_sign(self):
        assert cap_positive_position_impact_usd(-5, 0, Price.single(FP)) == -5
        assert cap_negative_position_impact_usd(5, 0, 0) == 5


class TestImpactAmounts:
    def test_swap_positive_capped_by_pool(self):
        assert get_swap_impact_amount_with_cap(196 * FP, Price.single(FP), 100) == 100

    def test_swap_positive_truncates_at_max(self):
        assert get_swap_impact_amount_with_cap(10 * FP, Price(2 * FP, 3 * FP), 100) == 3

    def test_swap_negative_rounds_magnitude_up(self):
        assert get_swap_impact_amount_with_cap(-10 * FP, Price.single(3 * FP), 0) == -4

    def test_position_amounts(self):
        assert get_position_impact_amount(10 * FP, Price.single(3 * FP)) == 3
        assert get_position_impact_amount(-10 * FP, Price.single(3 * FP)) == -4
        assert get_position_impact_amount(0, Price.single(FP)) == 0
