"""
Market descriptors and the market-store collaborator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional, Protocol


@dataclass(frozen=True)
class Market:
    """
    One pool: an index token priced by the market, backed by a long token and
    a short token. `market_token` is the pool's address and custody holder.
    """

    market_token: str
    index_token: str
    long_token: str
    short_token: str

    def __post_init__(self) -> None:
        for name in ("market_token", "index_token", "long_token", "short_token"):
            v = getattr(self, name)
            if not isinstance(v, str) or not v:
                raise TypeError(f"{name} must be a non-empty string")
        if self.long_token == self.short_token:
            raise ValueError(f"long_token and short_token must differ: {self.long_token}")

    def is_bounding_token(self, token: str) -> bool:
        return token == self.long_token or token == self.short_token

    def other_token(self, token: str) -> Optional[str]:
        """The opposite bounding token, or None if `token` does not back this market."""
        if token == self.long_token:
            return self.short_token
        if token == self.short_token:
            return self.long_token
        return None


class MarketStore(Protocol):
    def get(self, market_token: str) -> Market: ...


class InMemoryMarketStore:
    """Reference market store."""

    def __init__(self, markets: Iterable[Market] = ()):
        self._markets: Dict[str, Market] = {}
        for market in markets:
            self.add(market)

    def add(self, market: Market) -> None:
        if market.market_token in self._markets:
            raise ValueError(f"market already registered: {market.market_token}")
        self._markets[market.market_token] = market

    def get(self, market_token: str) -> Market:
        try:
            return self._markets[market_token]
        except KeyError:
            raise KeyError(f"unknown market: {market_token}") from None

    def __contains__(self, market_token: object) -> bool:
        return market_token in self._markets

    def __iter__(self) -> Iterator[Market]:
        return iter(sorted(self._markets.values(), key=lambda m: m.market_token))
