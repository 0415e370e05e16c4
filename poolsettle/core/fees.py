"""
Fee kernels (deterministic, integer-only).

Every fee is split in two: a fee-receiver share and a pool share. The receiver
share is truncated and the rounding remainder always stays with the pool, so
the two parts sum to the fee exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..state.positions import Position
from .config import MarketConfig
from .errors import ArithmeticOverflowError
from .math import apply_factor, div_trunc
from .pricing import Price, usd_to_token_amount_in, usd_to_token_amount_out


def _require_amounts(obj: object, names: tuple[str, ...]) -> None:
    for name in names:
        v = getattr(obj, name)
        if not isinstance(v, int) or isinstance(v, bool):
            raise TypeError(f"{name} must be an int")
        if v < 0:
            raise ValueError(f"{name} must be non-negative: {v}")


def split_fee(fee_amount: int, receiver_factor: int) -> tuple[int, int]:
    """Return (fee_receiver_amount, fee_amount_for_pool)."""
    if fee_amount < 0:
        raise ValueError(f"fee_amount must be non-negative: {fee_amount}")
    receiver = apply_factor(fee_amount, receiver_factor)
    return receiver, fee_amount - receiver


# ---------------------------------------------------------------------------
# Swap fees
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SwapFees:
    fee_receiver_amount: int
    fee_amount_for_pool: int
    amount_after_fees: int

    def __post_init__(self) -> None:
        _require_amounts(self, ("fee_receiver_amount", "fee_amount_for_pool", "amount_after_fees"))

    @property
    def fee_amount(self) -> int:
        return self.fee_receiver_amount + self.fee_amount_for_pool


def get_swap_fees(config: MarketConfig, amount: int, for_positive_impact: bool) -> SwapFees:
    """Fees on a swap input; the factor depends on the sign of the price impact."""
    fee_factor = (
        config.swap_fee_factor_for_positive_impact
        if for_positive_impact
        else config.swap_fee_factor_for_negative_impact
    )
    fee_amount = apply_factor(amount, fee_factor)
    receiver, for_pool = split_fee(fee_amount, config.swap_fee_receiver_factor)
    return SwapFees(
        fee_receiver_amount=receiver,
        fee_amount_for_pool=for_pool,
        amount_after_fees=amount - fee_amount,
    )


# ---------------------------------------------------------------------------
# Position fees
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PositionFundingFees:
    funding_fee_amount: int = 0
    claimable_funding_amount: int = 0
    latest_funding_factor: int = 0
    latest_claimable_funding_factor: int = 0

    def __post_init__(self) -> None:
        _require_amounts(
            self,
            (
                "funding_fee_amount",
                "claimable_funding_amount",
                "latest_funding_factor",
                "latest_claimable_funding_factor",
            ),
        )


@dataclass(frozen=True)
class PositionBorrowingFees:
    borrowing_fee_usd: int = 0
    borrowing_fee_amount: int = 0
    borrowing_fee_amount_for_fee_receiver: int = 0
    latest_borrowing_factor: int = 0

    def __post_init__(self) -> None:
        _require_amounts(
            self,
            (
                "borrowing_fee_usd",
                "borrowing_fee_amount",
                "borrowing_fee_amount_for_fee_receiver",
                "latest_borrowing_factor",
            ),
        )


@dataclass(frozen=True)
class PositionFees:
    """
    Costs of one decrease, in collateral-token units.

    `fee_receiver_amount` leaves the pool's books for the claimable fee ledger;
    `fee_amount_for_pool` (position fee pool share, borrowing pool share and
    funding paid) is added to the pool. Claimable funding is not a cost: it is
    owed to the account and backed by the pool.
    """

    collateral_token_price: Price
    position_fee_factor: int = 0
    position_fee_amount: int = 0
    position_fee_amount_for_pool: int = 0
    funding: PositionFundingFees = field(default_factory=PositionFundingFees)
    borrowing: PositionBorrowingFees = field(default_factory=PositionBorrowingFees)
    fee_receiver_amount: int = 0
    fee_amount_for_pool: int = 0
    total_cost_amount_excluding_funding: int = 0
    total_cost_amount: int = 0

    def __post_init__(self) -> None:
        _require_amounts(
            self,
            (
                "position_fee_factor",
                "position_fee_amount",
                "position_fee_amount_for_pool",
                "fee_receiver_amount",
                "fee_amount_for_pool",
                "total_cost_amount_excluding_funding",
                "total_cost_amount",
            ),
        )
        if self.fee_receiver_amount + self.fee_amount_for_pool != self.total_cost_amount:
            raise AssertionError("fee parts must sum to the total cost")

    @property
    def is_empty(self) -> bool:
        return self.total_cost_amount == 0 and self.funding.claimable_funding_amount == 0


def empty_position_fees(collateral_token_price: Price) -> PositionFees:
    return PositionFees(collateral_token_price=collateral_token_price)


def get_funding_fees(
    position: Position,
    collateral_token_price: Price,
    cumulative_funding_factor: int,
    cumulative_claimable_funding_factor: int,
) -> PositionFundingFees:
    """Funding paid since the last snapshot (rounded up) and funding earned (truncated)."""
    funding_delta = cumulative_funding_factor - position.funding_factor
    claimable_delta = cumulative_claimable_funding_factor - position.claimable_funding_factor
    if funding_delta < 0 or claimable_delta < 0:
        raise ArithmeticOverflowError("funding accumulator below position snapshot")

    funding_fee_usd = apply_factor(position.size_in_usd, funding_delta)
    claimable_usd = apply_factor(position.size_in_usd, claimable_delta)
    return PositionFundingFees(
        funding_fee_amount=usd_to_token_amount_in(funding_fee_usd, collateral_token_price),
        claimable_funding_amount=usd_to_token_amount_out(claimable_usd, collateral_token_price),
        latest_funding_factor=cumulative_funding_factor,
        latest_claimable_funding_factor=cumulative_claimable_funding_factor,
    )


def get_borrowing_fees(
    config: MarketConfig,
    position: Position,
    collateral_token_price: Price,
    cumulative_borrowing_factor: int,
) -> PositionBorrowingFees:
    borrowing_delta = cumulative_borrowing_factor - position.borrowing_factor
    if borrowing_delta < 0:
        raise ArithmeticOverflowError("borrowing accumulator below position snapshot")

    borrowing_fee_usd = apply_factor(position.size_in_usd, borrowing_delta)
    borrowing_fee_amount = div_trunc(borrowing_fee_usd, collateral_token_price.min)
    return PositionBorrowingFees(
        borrowing_fee_usd=borrowing_fee_usd,
        borrowing_fee_amount=borrowing_fee_amount,
        borrowing_fee_amount_for_fee_receiver=apply_factor(
            borrowing_fee_amount, config.borrowing_fee_receiver_factor
        ),
        latest_borrowing_factor=cumulative_borrowing_factor,
    )


def get_position_fees(
    config: MarketConfig,
    position: Position,
    collateral_token_price: Price,
    size_delta_usd: int,
    for_positive_impact: bool,
    cumulative_funding_factor: int,
    cumulative_claimable_funding_factor: int,
    cumulative_borrowing_factor: int,
) -> PositionFees:
    """
    Closing fee on `size_delta_usd` plus borrowing and funding accrued on the
    whole position since its last snapshot, converted at `collateral_token_price.min`.
    """
    position_fee_factor = (
        config.position_fee_factor_for_positive_impact
        if for_positive_impact
        else config.position_fee_factor_for_negative_impact
    )
    position_fee_amount = div_trunc(
        apply_factor(size_delta_usd, position_fee_factor), collateral_token_price.min
    )
    position_fee_for_receiver, position_fee_for_pool = split_fee(
        position_fee_amount, config.position_fee_receiver_factor
    )

    funding = get_funding_fees(
        position,
        collateral_token_price,
        cumulative_funding_factor,
        cumulative_claimable_funding_factor,
    )
    borrowing = get_borrowing_fees(config, position, collateral_token_price, cumulative_borrowing_factor)

    fee_receiver_amount = position_fee_for_receiver + borrowing.borrowing_fee_amount_for_fee_receiver
    fee_amount_for_pool = (
        position_fee_for_pool
        + (borrowing.borrowing_fee_amount - borrowing.borrowing_fee_amount_for_fee_receiver)
        + funding.funding_fee_amount
    )
    total_excluding_funding = position_fee_amount + borrowing.borrowing_fee_amount

    return PositionFees(
        collateral_token_price=collateral_token_price,
        position_fee_factor=position_fee_factor,
        position_fee_amount=position_fee_amount,
        position_fee_amount_for_pool=position_fee_for_pool,
        funding=funding,
        borrowing=borrowing,
        fee_receiver_amount=fee_receiver_amount,
        fee_amount_for_pool=fee_amount_for_pool,
        total_cost_amount_excluding_funding=total_excluding_funding,
        total_cost_amount=total_excluding_funding + funding.funding_fee_amount,
    )
