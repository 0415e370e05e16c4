"""Exception types for the settlement core.

Every error is terminal for the current call: the integration shell discards
the accounting context and nothing is persisted.

Two families let callers tell "your order parameters were invalid"
(``OrderError``) apart from "the pool cannot currently support this action"
(``PoolError``).
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for every failure raised by the core."""

    code: str = "settlement_error"


class OrderError(SettlementError):
    """The request itself cannot be settled as given."""

    code = "order_error"


class PoolError(SettlementError):
    """The pool or ledger state cannot support the request."""

    code = "pool_error"


class ArithmeticOverflowError(SettlementError):
    """A fixed-point value left the 256-bit domain, or a division by zero."""

    code = "arithmetic_overflow"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ConfigError(SettlementError):
    """Market configuration is missing or malformed."""

    code = "config_error"


# -- order errors ------------------------------------------------------------

class InvalidLiquidation(OrderError):
    code = "invalid_liquidation"

    def __init__(self, position_key: str, reason: str = "position is not liquidatable") -> None:
        self.position_key = position_key
        self.reason = reason
        super().__init__(f"{reason}: {position_key}")


class InvalidOrderSize(OrderError):
    code = "invalid_order_size"

    def __init__(self, size_delta_usd: int, size_in_usd: int) -> None:
        self.size_delta_usd = size_delta_usd
        self.size_in_usd = size_in_usd
        super().__init__(f"size delta {size_delta_usd} exceeds position size {size_in_usd}")


class InsufficientCollateral(OrderError):
    code = "insufficient_collateral"

    def __init__(self, remaining_collateral_amount: int) -> None:
        self.remaining_collateral_amount = remaining_collateral_amount
        super().__init__(f"remaining collateral would be negative: {remaining_collateral_amount}")


class InvalidAcceptablePrice(OrderError):
    code = "invalid_acceptable_price"

    def __init__(self, execution_price: int, acceptable_price: int) -> None:
        self.execution_price = execution_price
        self.acceptable_price = acceptable_price
        super().__init__(
            f"execution price {execution_price} is outside acceptable price {acceptable_price}"
        )


class PriceImpactLargerThanOrderSize(OrderError):
    code = "price_impact_larger_than_order_size"

    def __init__(self, price_impact_usd: int, size_delta_usd: int) -> None:
        self.price_impact_usd = price_impact_usd
        self.size_delta_usd = size_delta_usd
        super().__init__(f"price impact {price_impact_usd} exceeds size delta {size_delta_usd}")


class InsufficientSwapOutputAmount(OrderError):
    code = "insufficient_swap_output_amount"

    def __init__(self, actual: int, minimum: int) -> None:
        self.actual = actual
        self.minimum = minimum
        super().__init__(f"swap output {actual} is below minimum {minimum}")


class SwapPriceImpactExceedsAmountIn(OrderError):
    code = "swap_price_impact_exceeds_amount_in"

    def __init__(self, amount_after_fees: int, negative_impact_amount: int) -> None:
        self.amount_after_fees = amount_after_fees
        self.negative_impact_amount = negative_impact_amount
        super().__init__(
            f"negative impact {negative_impact_amount} exceeds amount after fees {amount_after_fees}"
        )


class InvalidTokenIn(OrderError):
    code = "invalid_token_in"

    def __init__(self, token: str, market_token: str) -> None:
        self.token = token
        self.market_token = market_token
        super().__init__(f"token {token} is not a bounding token of market {market_token}")


class DuplicatedMarketInSwapPath(OrderError):
    code = "duplicated_market_in_swap_path"

    def __init__(self, market_token: str) -> None:
        self.market_token = market_token
        super().__init__(f"market {market_token} appears twice in the swap path")


class EmptyPosition(OrderError):
    code = "empty_position"

    def __init__(self, position_key: str) -> None:
        self.position_key = position_key
        super().__init__(f"position not found or empty: {position_key}")


class InvalidPositionSizeValues(OrderError):
    code = "invalid_position_size_values"

    def __init__(self, size_in_usd: int, size_in_tokens: int) -> None:
        self.size_in_usd = size_in_usd
        self.size_in_tokens = size_in_tokens
        super().__init__(f"size_in_usd={size_in_usd} size_in_tokens={size_in_tokens}")


class LiquidatablePosition(OrderError):
    code = "liquidatable_position"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"position would be liquidatable after decrease: {reason}")


class UnableToWithdrawCollateral(OrderError):
    code = "unable_to_withdraw_collateral"

    def __init__(self, estimated_remaining_collateral_usd: int) -> None:
        self.estimated_remaining_collateral_usd = estimated_remaining_collateral_usd
        super().__init__(
            f"withdrawal leaves insufficient collateral: {estimated_remaining_collateral_usd}"
        )


class InvalidReceiver(OrderError):
    code = "invalid_receiver"

    def __init__(self, receiver: str) -> None:
        self.receiver = receiver
        super().__init__(f"invalid receiver: {receiver}")


class EmptyPrice(OrderError):
    code = "empty_price"

    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"no price for token {token}")


class StalePrice(OrderError):
    code = "stale_price"

    def __init__(self, token: str, price_timestamp: int, current_timestamp: int) -> None:
        self.token = token
        self.price_timestamp = price_timestamp
        self.current_timestamp = current_timestamp
        super().__init__(
            f"price for {token} at {price_timestamp} is stale at {current_timestamp}"
        )


# -- pool errors -------------------------------------------------------------

class InsufficientPoolBalance(PoolError):
    code = "insufficient_pool_balance"

    def __init__(self, market_token: str, token: str, balance: int, delta: int) -> None:
        self.market_token = market_token
        self.token = token
        self.balance = balance
        self.delta = delta
        super().__init__(
            f"pool {market_token}/{token} balance {balance} cannot absorb delta {delta}"
        )


class InsufficientReserve(PoolError):
    code = "insufficient_reserve"

    def __init__(self, reserved_usd: int, max_reserved_usd: int) -> None:
        self.reserved_usd = reserved_usd
        self.max_reserved_usd = max_reserved_usd
        super().__init__(f"reserved usd {reserved_usd} exceeds max reserved usd {max_reserved_usd}")


class MaxPoolAmountExceeded(PoolError):
    code = "max_pool_amount_exceeded"

    def __init__(self, pool_amount: int, max_pool_amount: int) -> None:
        self.pool_amount = pool_amount
        self.max_pool_amount = max_pool_amount
        super().__init__(f"pool amount {pool_amount} exceeds max pool amount {max_pool_amount}")


class LedgerInvariantError(PoolError):
    """Raised when a committed ledger violates one or more invariants."""

    code = "ledger_invariant"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


class UsdDeltaExceedsPoolValue(PoolError):
    code = "usd_delta_exceeds_pool_value"

    def __init__(self, usd_delta: int, pool_usd: int) -> None:
        self.usd_delta = usd_delta
        self.pool_usd = pool_usd
        super().__init__(f"usd delta {usd_delta} exceeds pool value {pool_usd}")
