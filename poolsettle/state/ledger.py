"""
Pool ledger: the shared bookkeeping every settlement and swap mutates.

Each table maps a tuple key to a non-negative int:

- `pool_amount`                      (market, token)
- `swap_impact_pool_amount`          (market, token)
- `position_impact_pool_amount`      (market,)
- `collateral_sum`                   (market, collateral_token, is_long)
- `open_interest`                    (market, collateral_token, is_long)   USD, 1e30
- `open_interest_in_tokens`          (market, collateral_token, is_long)
- `cumulative_funding_factor`        (market, is_long)
- `cumulative_claimable_funding_factor` (market, is_long)
- `cumulative_borrowing_factor`      (market, is_long)
- `funding_updated_at`               (market,)
- `borrowing_updated_at`             (market,)
- `claimable_fee_amount`             (market, token)
- `claimable_funding_amount`         (market, token, account)

Note: tables are plain dicts. Callers needing a deterministic order must sort
keys explicitly (see `snapshot`).
"""

from __future__ import annotations

from typing import Dict, Iterator, Tuple

POOL_AMOUNT = "pool_amount"
SWAP_IMPACT_POOL_AMOUNT = "swap_impact_pool_amount"
POSITION_IMPACT_POOL_AMOUNT = "position_impact_pool_amount"
COLLATERAL_SUM = "collateral_sum"
OPEN_INTEREST = "open_interest"
OPEN_INTEREST_IN_TOKENS = "open_interest_in_tokens"
CUMULATIVE_FUNDING_FACTOR = "cumulative_funding_factor"
CUMULATIVE_CLAIMABLE_FUNDING_FACTOR = "cumulative_claimable_funding_factor"
CUMULATIVE_BORROWING_FACTOR = "cumulative_borrowing_factor"
FUNDING_UPDATED_AT = "funding_updated_at"
BORROWING_UPDATED_AT = "borrowing_updated_at"
CLAIMABLE_FEE_AMOUNT = "claimable_fee_amount"
CLAIMABLE_FUNDING_AMOUNT = "claimable_funding_amount"

TABLES: Tuple[str, ...] = (
    POOL_AMOUNT,
    SWAP_IMPACT_POOL_AMOUNT,
    POSITION_IMPACT_POOL_AMOUNT,
    COLLATERAL_SUM,
    OPEN_INTEREST,
    OPEN_INTEREST_IN_TOKENS,
    CUMULATIVE_FUNDING_FACTOR,
    CUMULATIVE_CLAIMABLE_FUNDING_FACTOR,
    CUMULATIVE_BORROWING_FACTOR,
    FUNDING_UPDATED_AT,
    BORROWING_UPDATED_AT,
    CLAIMABLE_FEE_AMOUNT,
    CLAIMABLE_FUNDING_AMOUNT,
)

Key = Tuple[object, ...]


class PoolLedger:
    """Non-negative integer tables keyed by tuples."""

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[Key, int]] = {name: {} for name in TABLES}

    def _table(self, table: str) -> Dict[Key, int]:
        try:
            return self._tables[table]
        except KeyError:
            raise KeyError(f"unknown ledger table: {table}") from None

    def get(self, table: str, key: Key) -> int:
        """Value at `key`, 0 if absent."""
        return self._table(table).get(key, 0)

    def set(self, table: str, key: Key, value: int) -> None:
        """
        Raises:
            ValueError: If value is negative
        """
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"{table}{key} must be an int")
        if value < 0:
            raise ValueError(f"{table}{key} cannot be negative: {value}")
        entries = self._table(table)
        if value == 0:
            entries.pop(key, None)
        else:
            entries[key] = value

    def add(self, table: str, key: Key, delta: int) -> int:
        """Add a signed delta and return the new value."""
        value = self.get(table, key) + delta
        self.set(table, key, value)
        return value

    def items(self, table: str) -> Iterator[Tuple[Key, int]]:
        return iter(list(self._table(table).items()))

    def snapshot(self) -> Dict[str, Dict[Key, int]]:
        """Deterministic (key-sorted) copy of every non-empty table."""
        return {
            name: dict(sorted(entries.items(), key=lambda kv: repr(kv[0])))
            for name, entries in self._tables.items()
            if entries
        }

    def copy(self) -> "PoolLedger":
        clone = PoolLedger()
        clone._tables = {name: dict(entries) for name, entries in self._tables.items()}
        return clone

    def update_from(self, other: "PoolLedger") -> None:
        """Adopt every table of `other` (used to commit a working copy)."""
        self._tables = {name: dict(entries) for name, entries in other._tables.items()}

    def __repr__(self) -> str:
        return f"PoolLedger({sum(len(t) for t in self._tables.values())} entries)"
