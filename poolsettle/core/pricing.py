"""
Pricing primitives (stateless).

A `Price` is the (min, max) band reported for one token. Conversions between
USD and token amounts always pick the side that is unfavorable to the party
receiving value from the pool.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from ..state.markets import Market
from .errors import (
    EmptyPrice,
    InvalidAcceptablePrice,
    InvalidTokenIn,
    PriceImpactLargerThanOrderSize,
)
from .math import check_uint, div_trunc, mul_div, roundup_division


@dataclass(frozen=True)
class Price:
    min: int
    max: int

    def __post_init__(self) -> None:
        for name, v in (("min", self.min), ("max", self.max)):
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            check_uint(v, name)
        if self.min > self.max:
            raise ValueError(f"min price {self.min} exceeds max price {self.max}")

    @classmethod
    def single(cls, value: int) -> "Price":
        return cls(value, value)

    @property
    def is_empty(self) -> bool:
        return self.min == 0 or self.max == 0

    def mid(self) -> int:
        return (self.min + self.max) // 2

    def pick_price(self, maximize: bool) -> int:
        return self.max if maximize else self.min

    def pick_price_for_pnl(self, is_long: bool, maximize: bool) -> int:
        # Longs gain when the price rises, shorts when it falls.
        if is_long:
            return self.pick_price(maximize)
        return self.pick_price(not maximize)


PriceSnapshot = Mapping[str, Price]


@dataclass(frozen=True)
class MarketPrices:
    index_token_price: Price
    long_token_price: Price
    short_token_price: Price

    def token_price(self, market: Market, token: str) -> Price:
        if token == market.long_token:
            return self.long_token_price
        if token == market.short_token:
            return self.short_token_price
        if token == market.index_token:
            return self.index_token_price
        raise InvalidTokenIn(token, market.market_token)

    @classmethod
    def for_market(
        cls,
        market: Market,
        snapshot: PriceSnapshot,
        index_price_override: Optional[Price] = None,
    ) -> "MarketPrices":
        """Assemble the three prices a market needs from a token -> Price mapping."""

        def lookup(token: str) -> Price:
            price = snapshot.get(token)
            if price is None or price.is_empty:
                raise EmptyPrice(token)
            return price

        index_price = index_price_override if index_price_override is not None else lookup(market.index_token)
        if index_price.is_empty:
            raise EmptyPrice(market.index_token)
        return cls(
            index_token_price=index_price,
            long_token_price=lookup(market.long_token),
            short_token_price=lookup(market.short_token),
        )


# ---------------------------------------------------------------------------
# USD <-> token conversions
# ---------------------------------------------------------------------------

def token_amount_to_usd(amount: int, price: Price, maximize: bool) -> int:
    return check_uint(amount * price.pick_price(maximize), "usd")


def usd_to_token_amount_out(usd: int, price: Price) -> int:
    """Tokens leaving the pool for `usd`: priced at max, truncated."""
    return div_trunc(usd, price.max)


def usd_to_token_amount_in(usd: int, price: Price) -> int:
    """Tokens owed to the pool for `usd`: priced at min, rounded up."""
    return roundup_division(usd, price.min)


# ---------------------------------------------------------------------------
# Execution price
# ---------------------------------------------------------------------------

def is_price_acceptable(price: int, acceptable_price: int, is_long: bool, is_increase: bool) -> bool:
    # Opening a long or closing a short wants a low price; the others want a high one.
    should_be_smaller = is_long == is_increase
    if should_be_smaller:
        return price <= acceptable_price
    return price >= acceptable_price


def get_execution_price_for_decrease(
    index_token_price: Price,
    size_in_usd: int,
    size_in_tokens: int,
    size_delta_usd: int,
    price_impact_usd: int,
    acceptable_price: Optional[int],
    is_long: bool,
) -> int:
    """
    Execution price of a decrease, folding the price impact into the index price.

    The base price is the side worse for the trader (`min` for a long closing,
    `max` for a short). Impact shifts it by `avg_price * |impact| / size_delta_usd`
    where `avg_price = size_in_usd / size_in_tokens`.

    Raises:
        PriceImpactLargerThanOrderSize: negative impact exceeds the size delta
        InvalidAcceptablePrice: result violates `acceptable_price`
    """
    price = index_token_price.pick_price(not is_long)

    if size_delta_usd > 0 and size_in_tokens > 0:
        if price_impact_usd < 0 and -price_impact_usd > size_delta_usd:
            raise PriceImpactLargerThanOrderSize(price_impact_usd, size_delta_usd)

        adjustment = div_trunc(mul_div(size_in_usd, abs(price_impact_usd), size_in_tokens), size_delta_usd)
        # Positive impact improves the price: higher for a long closing, lower for a short.
        if (price_impact_usd > 0) == is_long:
            price = price + adjustment
        else:
            price = price - adjustment
        if price < 0:
            raise InvalidAcceptablePrice(price, acceptable_price if acceptable_price is not None else 0)

    if acceptable_price is not None and not is_price_acceptable(price, acceptable_price, is_long, False):
        raise InvalidAcceptablePrice(price, acceptable_price)
    return price
