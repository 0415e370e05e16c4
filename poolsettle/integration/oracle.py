"""
In-memory price oracle with freshness checks.

Prices are set by the caller (the imperative shell fetches them from wherever
they come from). Primary prices value every token; custom prices carry the
trigger price a limit or stop-loss order executes at.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Protocol

from ..core.errors import EmptyPrice, StalePrice
from ..core.pricing import Price


@dataclass(frozen=True)
class OraclePrice:
    price: Price
    timestamp: int

    def __post_init__(self) -> None:
        if self.timestamp < 0:
            raise ValueError(f"timestamp must be non-negative: {self.timestamp}")


class PriceOracle(Protocol):
    def get_primary_price(self, token: str) -> Price: ...

    def get_custom_price(self, token: str) -> Price: ...

    def validate_fresh(self, tokens: Iterable[str], current_timestamp: int) -> None: ...


def is_fresh(price_timestamp: int, current_timestamp: int, max_staleness_seconds: int) -> bool:
    """Return True if the price timestamp is within the max staleness window."""
    if current_timestamp < 0:
        raise ValueError(f"current_timestamp must be non-negative: {current_timestamp}")
    if price_timestamp > current_timestamp:
        return False
    return (current_timestamp - price_timestamp) <= max_staleness_seconds


class InMemoryOracle:
    def __init__(self, max_staleness_seconds: int = 300):
        if max_staleness_seconds <= 0:
            raise ValueError(f"max_staleness_seconds must be positive: {max_staleness_seconds}")
        self.max_staleness_seconds = max_staleness_seconds
        self._primary: Dict[str, OraclePrice] = {}
        self._custom: Dict[str, OraclePrice] = {}

    def set_primary_price(self, token: str, price: Price, timestamp: int = 0) -> None:
        self._primary[token] = OraclePrice(price, timestamp)

    def set_custom_price(self, token: str, price: Price, timestamp: int = 0) -> None:
        self._custom[token] = OraclePrice(price, timestamp)

    @staticmethod
    def _lookup(table: Dict[str, OraclePrice], token: str) -> OraclePrice:
        entry = table.get(token)
        if entry is None or entry.price.is_empty:
            raise EmptyPrice(token)
        return entry

    def get_primary_price(self, token: str) -> Price:
        return self._lookup(self._primary, token).price

    def get_custom_price(self, token: str) -> Price:
        return self._lookup(self._custom, token).price

    def validate_fresh(self, tokens: Iterable[str], current_timestamp: int) -> None:
        """
        Raises:
            EmptyPrice: a token has no primary price
            StalePrice: a primary price is older than the staleness window
        """
        for token in tokens:
            entry = self._lookup(self._primary, token)
            if not is_fresh(entry.timestamp, current_timestamp, self.max_staleness_seconds):
                raise StalePrice(token, entry.timestamp, current_timestamp)

    def snapshot(self, tokens: Iterable[str]) -> Dict[str, Price]:
        return {token: self.get_primary_price(token) for token in tokens}
