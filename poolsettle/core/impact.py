"""
Price impact (pure functions).

Impact is a signed USD amount from the convex curve `factor * diff ^ exponent`
applied to the imbalance between two balances: token-in vs token-out pool value
for swaps, long vs short open interest for positions. Positive impact means
the action moves the balances toward each other.
"""

from __future__ import annotations

from .config import MarketConfig
from .errors import UsdDeltaExceedsPoolValue
from .math import abs_diff, apply_exponent_factor, apply_factor
from .pricing import Price, usd_to_token_amount_in, usd_to_token_amount_out


def apply_impact_factor(diff_usd: int, impact_factor: int, exponent_factor: int) -> int:
    return apply_factor(apply_exponent_factor(diff_usd, exponent_factor), impact_factor)


def get_price_impact_usd_for_balances(
    initial_a: int,
    initial_b: int,
    next_a: int,
    next_b: int,
    positive_factor: int,
    negative_factor: int,
    exponent_factor: int,
) -> int:
    initial_diff = abs_diff(initial_a, initial_b)
    next_diff = abs_diff(next_a, next_b)

    is_same_side = (initial_a <= initial_b) == (next_a <= next_b)
    if is_same_side:
        has_positive_impact = next_diff < initial_diff
        factor = positive_factor if has_positive_impact else negative_factor
        delta = abs_diff(
            apply_impact_factor(initial_diff, factor, exponent_factor),
            apply_impact_factor(next_diff, factor, exponent_factor),
        )
        return delta if has_positive_impact else -delta

    # Crossover: credit for closing the old gap, charge for opening the new one.
    positive = apply_impact_factor(initial_diff, positive_factor, exponent_factor)
    negative = apply_impact_factor(next_diff, negative_factor, exponent_factor)
    return positive - negative


def get_swap_price_impact_usd(
    config: MarketConfig,
    pool_usd_in: int,
    pool_usd_out: int,
    usd_delta: int,
) -> int:
    """Impact of moving `usd_delta` of value from the token-out side to the token-in side."""
    if usd_delta > pool_usd_out:
        raise UsdDeltaExceedsPoolValue(usd_delta, pool_usd_out)
    return get_price_impact_usd_for_balances(
        pool_usd_in,
        pool_usd_out,
        pool_usd_in + usd_delta,
        pool_usd_out - usd_delta,
        config.swap_impact_factor_positive,
        config.swap_impact_factor_negative,
        config.swap_impact_exponent_factor,
    )


def get_position_price_impact_usd(
    config: MarketConfig,
    long_open_interest: int,
    short_open_interest: int,
    usd_delta: int,
    is_long: bool,
) -> int:
    """Impact of changing one side's open interest by a signed `usd_delta`."""
    next_long = long_open_interest + usd_delta if is_long else long_open_interest
    next_short = short_open_interest if is_long else short_open_interest + usd_delta
    if next_long < 0 or next_short < 0:
        raise UsdDeltaExceedsPoolValue(usd_delta, long_open_interest if is_long else short_open_interest)
    return get_price_impact_usd_for_balances(
        long_open_interest,
        short_open_interest,
        next_long,
        next_short,
        config.position_impact_factor_positive,
        config.position_impact_factor_negative,
        config.position_impact_exponent_factor,
    )


def cap_positive_position_impact_usd(price_impact_usd: int, impact_pool_amount: int, index_token_price: Price) -> int:
    """Positive impact can never exceed what the position-impact pool holds."""
    if price_impact_usd <= 0:
        return price_impact_usd
    return min(price_impact_usd, impact_pool_amount * index_token_price.min)


def cap_negative_position_impact_usd(price_impact_usd: int, size_delta_usd: int, max_impact_factor: int) -> int:
    if price_impact_usd >= 0:
        return price_impact_usd
    max_negative = apply_factor(size_delta_usd, max_impact_factor)
    return max(price_impact_usd, -max_negative)


def get_swap_impact_amount_with_cap(price_impact_usd: int, token_price: Price, impact_pool_amount: int) -> int:
    """
    Signed token amount for a swap impact.

    Positive: paid from the impact pool at `price.max`, capped at the pool balance.
    Negative: charged at `price.min`, magnitude rounded up.
    """
    if price_impact_usd > 0:
        return min(usd_to_token_amount_out(price_impact_usd, token_price), impact_pool_amount)
    return -usd_to_token_amount_in(-price_impact_usd, token_price)


def get_position_impact_amount(price_impact_usd: int, index_token_price: Price) -> int:
    """Signed index-token amount leaving (positive) or entering (negative) the impact pool."""
    if price_impact_usd > 0:
        return usd_to_token_amount_out(price_impact_usd, index_token_price)
    return -usd_to_token_amount_in(-price_impact_usd, index_token_price)
