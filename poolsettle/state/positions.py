"""
Position records and the position-store collaborator.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Protocol, Tuple


def position_key(account: str, market: str, collateral_token: str, is_long: bool) -> str:
    """Deterministic key for the one position per (account, market, collateral, side)."""
    material = "|".join((account, market, collateral_token, "long" if is_long else "short"))
    return "0x" + hashlib.sha256(material.encode("utf-8")).hexdigest()


@dataclass
class Position:
    """
    Mutable position record.

    Units:
    - `size_in_usd` is USD scaled by 1e30.
    - `size_in_tokens` is in index-token units.
    - `collateral_amount` is in collateral-token units.
    - factor snapshots are the market accumulators captured at the last update.
    """

    account: str
    market: str
    collateral_token: str
    is_long: bool
    size_in_usd: int = 0
    size_in_tokens: int = 0
    collateral_amount: int = 0
    funding_factor: int = 0
    claimable_funding_factor: int = 0
    borrowing_factor: int = 0
    increased_at_block: int = 0
    decreased_at_block: int = 0

    def __post_init__(self) -> None:
        for name in (
            "size_in_usd",
            "size_in_tokens",
            "collateral_amount",
            "funding_factor",
            "claimable_funding_factor",
            "borrowing_factor",
            "increased_at_block",
            "decreased_at_block",
        ):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v < 0:
                raise ValueError(f"{name} must be non-negative: {v}")

    @property
    def key(self) -> str:
        return position_key(self.account, self.market, self.collateral_token, self.is_long)

    @property
    def is_empty(self) -> bool:
        return self.size_in_usd == 0 and self.size_in_tokens == 0 and self.collateral_amount == 0


class PositionStore(Protocol):
    def get(self, key: str) -> Optional[Position]: ...

    def set(self, key: str, account: str, position: Position) -> None: ...

    def remove(self, key: str, account: str) -> None: ...


class InMemoryPositionStore:
    """
    Reference position store.

    `get` hands out a copy so callers work on a snapshot; only `set` writes.
    """

    def __init__(self) -> None:
        self._positions: Dict[str, Position] = {}
        self._by_account: Dict[str, List[str]] = {}

    def get(self, key: str) -> Optional[Position]:
        position = self._positions.get(key)
        return None if position is None else replace(position)

    def set(self, key: str, account: str, position: Position) -> None:
        if position.account != account:
            raise ValueError(f"position account {position.account} != {account}")
        if key != position.key:
            raise ValueError(f"position key mismatch: {key}")
        if key not in self._positions:
            self._by_account.setdefault(account, []).append(key)
        self._positions[key] = replace(position)

    def remove(self, key: str, account: str) -> None:
        if key not in self._positions:
            raise KeyError(f"unknown position: {key}")
        del self._positions[key]
        self._by_account[account].remove(key)

    def keys_for_account(self, account: str) -> Tuple[str, ...]:
        return tuple(self._by_account.get(account, ()))

    def __contains__(self, key: object) -> bool:
        return key in self._positions

    def __len__(self) -> int:
        return len(self._positions)
