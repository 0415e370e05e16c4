"""
Exchange shell (imperative side of the settlement core).

Wires the stores, the oracle and the custody bank around the pure engines:
- Validate price freshness and assemble the price snapshot
- Open an accounting context and run the engine against it
- Check ledger invariants and commit (fail-closed: any error discards the context)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.config import ConfigStore
from ..core.context import AccountingContext, EventSink, FeeReceiver
from ..core.decrease import DecreasePositionParams, DecreasePositionResult, decrease_position
from ..core.errors import LedgerInvariantError, SettlementError
from ..core.invariants import check_all
from ..core.order import DecreaseOrder
from ..core.pricing import MarketPrices, Price
from ..core.swap import SwapParams, SwapResult, swap
from ..state.bank import Bank
from ..state.ledger import PoolLedger
from ..state.markets import Market, MarketStore
from ..state.positions import PositionStore
from .oracle import InMemoryOracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecreaseExecution:
    decrease: DecreasePositionResult
    payout: SwapResult


@dataclass(frozen=True)
class SettlementResult:
    ok: bool
    decrease: Optional[DecreasePositionResult] = None
    swap: Optional[SwapResult] = None
    error: Optional[str] = None
    code: Optional[str] = None


class Exchange:
    def __init__(
        self,
        *,
        markets: MarketStore,
        positions: PositionStore,
        oracle: InMemoryOracle,
        config: ConfigStore,
        ledger: Optional[PoolLedger] = None,
        bank: Optional[Bank] = None,
        events: Optional[EventSink] = None,
        fee_receiver: Optional[FeeReceiver] = None,
        check_invariants: bool = True,
    ):
        self.markets = markets
        self.positions = positions
        self.oracle = oracle
        self.config = config
        self.ledger = ledger if ledger is not None else PoolLedger()
        self.bank = bank if bank is not None else Bank()
        self.events = events
        self.fee_receiver = fee_receiver
        self.check_invariants = check_invariants

    # -- plumbing ------------------------------------------------------------

    def open_context(self, *, current_time: int, current_block: int = 0) -> AccountingContext:
        return AccountingContext(
            ledger=self.ledger,
            bank=self.bank,
            config=self.config,
            positions=self.positions,
            current_time=current_time,
            current_block=current_block,
        )

    def commit(self, ctx: AccountingContext) -> None:
        if self.check_invariants:
            violations = check_all(ctx.ledger, ctx.bank)
            if violations:
                raise LedgerInvariantError(violations)
        ctx.commit(self.events, self.fee_receiver)

    def _resolve_path(self, swap_path: Sequence[str]) -> Tuple[Market, ...]:
        return tuple(self.markets.get(market_token) for market_token in swap_path)

    def _price_snapshot(self, markets: Iterable[Market], current_time: int) -> dict[str, Price]:
        tokens: List[str] = []
        for market in markets:
            for token in (market.index_token, market.long_token, market.short_token):
                if token not in tokens:
                    tokens.append(token)
        self.oracle.validate_fresh(tokens, current_time)
        return self.oracle.snapshot(tokens)

    # -- decrease ------------------------------------------------------------

    def execute_decrease(
        self,
        order: DecreaseOrder,
        *,
        current_time: int,
        current_block: int = 0,
    ) -> DecreaseExecution:
        """
        Settle a decrease order and pay its output to `order.receiver`,
        through `order.swap_path` when one is set.
        """
        market = self.markets.get(order.market)
        path = self._resolve_path(order.swap_path)
        snapshot = self._price_snapshot((market,) + path, current_time)

        index_override = None
        if order.rules.uses_trigger_price:
            index_override = self.oracle.get_custom_price(market.index_token)
        prices = MarketPrices.for_market(market, snapshot, index_override)

        ctx = self.open_context(current_time=current_time, current_block=current_block)
        result = decrease_position(ctx, DecreasePositionParams(market=market, prices=prices, order=order))
        payout = swap(
            ctx,
            snapshot,
            SwapParams(
                token_in=result.output_token,
                amount_in=result.output_amount,
                swap_path=path,
                min_output_amount=order.min_output_amount,
                receiver=order.receiver,
                token_in_holder=market.market_token,
                should_unwrap_native_token=order.should_unwrap_native_token,
            ),
        )
        self.commit(ctx)
        return DecreaseExecution(decrease=result, payout=payout)

    def step_decrease(
        self,
        order: DecreaseOrder,
        *,
        current_time: int,
        current_block: int = 0,
    ) -> SettlementResult:
        try:
            execution = self.execute_decrease(order, current_time=current_time, current_block=current_block)
        except SettlementError as exc:
            logger.info("decrease %s rejected: %s", order.position_key, exc)
            return SettlementResult(ok=False, error=str(exc), code=exc.code)
        return SettlementResult(ok=True, decrease=execution.decrease, swap=execution.payout)

    # -- swap ----------------------------------------------------------------

    def execute_swap(
        self,
        *,
        token_in: str,
        amount_in: int,
        swap_path: Sequence[str],
        receiver: str,
        min_output_amount: int = 0,
        token_in_holder: Optional[str] = None,
        should_unwrap_native_token: bool = False,
        current_time: int,
        current_block: int = 0,
    ) -> SwapResult:
        """
        Swap tokens already held by `token_in_holder` (default: the first
        market of the path, i.e. tokens sent to the pool before the call).
        """
        path = self._resolve_path(swap_path)
        if token_in_holder is None:
            if not path:
                raise ValueError("token_in_holder is required for an empty swap path")
            token_in_holder = path[0].market_token
        snapshot = self._price_snapshot(path, current_time)

        ctx = self.open_context(current_time=current_time, current_block=current_block)
        result = swap(
            ctx,
            snapshot,
            SwapParams(
                token_in=token_in,
                amount_in=amount_in,
                swap_path=path,
                min_output_amount=min_output_amount,
                receiver=receiver,
                token_in_holder=token_in_holder,
                should_unwrap_native_token=should_unwrap_native_token,
            ),
        )
        self.commit(ctx)
        return result

    def step_swap(self, **kwargs) -> SettlementResult:
        try:
            result = self.execute_swap(**kwargs)
        except SettlementError as exc:
            logger.info("swap rejected: %s", exc)
            return SettlementResult(ok=False, error=str(exc), code=exc.code)
        return SettlementResult(ok=True, swap=result)
