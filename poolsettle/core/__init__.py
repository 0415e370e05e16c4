"""
Settlement core: fixed-point math, pricing, fees, impact, pool accounting,
the swap engine and the position decrease engine.
"""

from .config import ConfigStore, MarketConfig, load_config
from .context import AccountingContext
from .decrease import DecreasePositionParams, DecreasePositionResult, decrease_position
from .errors import OrderError, PoolError, SettlementError
from .fees import PositionFees, SwapFees
from .invariants import check_all
from .math import FLOAT_PRECISION
from .order import DecreaseOrder, OrderType
from .pricing import MarketPrices, Price
from .swap import SwapParams, SwapResult, swap

__all__ = [
    "ConfigStore",
    "MarketConfig",
    "load_config",
    "AccountingContext",
    "DecreasePositionParams",
    "DecreasePositionResult",
    "decrease_position",
    "OrderError",
    "PoolError",
    "SettlementError",
    "PositionFees",
    "SwapFees",
    "check_all",
    "FLOAT_PRECISION",
    "DecreaseOrder",
    "OrderType",
    "MarketPrices",
    "Price",
    "SwapParams",
    "SwapResult",
    "swap",
]
