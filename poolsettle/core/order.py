"""Decrease orders and the per-type settlement rules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Optional, Tuple

from ..state.positions import position_key


@unique
class OrderType(Enum):
    MARKET_DECREASE = "market_decrease"
    LIMIT_DECREASE = "limit_decrease"
    STOP_LOSS_DECREASE = "stop_loss_decrease"
    LIQUIDATION = "liquidation"


@dataclass(frozen=True)
class OrderRules:
    # Oversized requests are clamped to the position size instead of rejected.
    clamps_size: bool
    is_liquidation: bool
    # The index token is valued at the order's trigger (custom) price.
    uses_trigger_price: bool


ORDER_RULES: dict[OrderType, OrderRules] = {
    OrderType.MARKET_DECREASE: OrderRules(clamps_size=False, is_liquidation=False, uses_trigger_price=False),
    OrderType.LIMIT_DECREASE: OrderRules(clamps_size=True, is_liquidation=False, uses_trigger_price=True),
    OrderType.STOP_LOSS_DECREASE: OrderRules(clamps_size=True, is_liquidation=False, uses_trigger_price=True),
    OrderType.LIQUIDATION: OrderRules(clamps_size=False, is_liquidation=True, uses_trigger_price=False),
}


@dataclass(frozen=True)
class DecreaseOrder:
    """
    A request to shrink (or close) one position.

    `acceptable_price=None` disables the execution-price bound (liquidations
    normally carry none). `swap_path` lists market tokens the output is routed
    through before reaching `receiver`.
    """

    account: str
    market: str
    collateral_token: str
    is_long: bool
    order_type: OrderType
    size_delta_usd: int
    receiver: str
    initial_collateral_delta_amount: int = 0
    acceptable_price: Optional[int] = None
    swap_path: Tuple[str, ...] = ()
    min_output_amount: int = 0
    should_unwrap_native_token: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.order_type, OrderType):
            raise TypeError("order_type must be an OrderType")
        for name in ("size_delta_usd", "initial_collateral_delta_amount", "min_output_amount"):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v < 0:
                raise ValueError(f"{name} must be non-negative: {v}")
        if self.acceptable_price is not None and (
            not isinstance(self.acceptable_price, int) or self.acceptable_price < 0
        ):
            raise ValueError("acceptable_price must be a non-negative int or None")
        if not isinstance(self.swap_path, tuple):
            raise TypeError("swap_path must be a tuple")

    @property
    def rules(self) -> OrderRules:
        return ORDER_RULES[self.order_type]

    @property
    def position_key(self) -> str:
        return position_key(self.account, self.market, self.collateral_token, self.is_long)
