"""
State management for the settlement core
"""

from .bank import NATIVE_TOKEN, Bank
from .ledger import PoolLedger
from .markets import InMemoryMarketStore, Market, MarketStore
from .positions import InMemoryPositionStore, Position, PositionStore, position_key

__all__ = [
    "NATIVE_TOKEN",
    "Bank",
    "PoolLedger",
    "InMemoryMarketStore",
    "Market",
    "MarketStore",
    "InMemoryPositionStore",
    "Position",
    "PositionStore",
    "position_key",
]
