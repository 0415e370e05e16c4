"""
Accounting context: the working copy one settlement or swap runs against.

The context copies the pool ledger and the bank, stages position writes and
buffers events. `commit()` publishes all of it at once; dropping the context
discards it. The core never touches the base state directly.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from ..state.bank import Bank
from ..state.ledger import CLAIMABLE_FEE_AMOUNT, PoolLedger
from ..state.positions import Position, PositionStore
from .config import ConfigStore
from .errors import InvalidReceiver

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def emit(self, name: str, data: Mapping[str, Any]) -> None: ...


class FeeReceiver(Protocol):
    def credit(self, market_token: str, token: str, amount: int, fee_type: str) -> None: ...


class AccountingContext:
    def __init__(
        self,
        *,
        ledger: PoolLedger,
        bank: Bank,
        config: ConfigStore,
        positions: PositionStore,
        current_time: int,
        current_block: int = 0,
    ):
        if current_time < 0 or current_block < 0:
            raise ValueError("current_time and current_block must be non-negative")
        self._base_ledger = ledger
        self._base_bank = bank
        self._positions = positions
        self.ledger = ledger.copy()
        self.bank = bank.copy()
        self.config = config
        self.current_time = current_time
        self.current_block = current_block
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.fee_credits: List[Tuple[str, str, int, str]] = []
        self._staged: Dict[str, Tuple[str, Optional[Position]]] = {}
        self._committed = False

    # -- positions -----------------------------------------------------------

    def get_position(self, key: str) -> Optional[Position]:
        if key in self._staged:
            return self._staged[key][1]
        return self._positions.get(key)

    def set_position(self, key: str, account: str, position: Position) -> None:
        self._staged[key] = (account, position)

    def remove_position(self, key: str, account: str) -> None:
        self._staged[key] = (account, None)

    # -- custody and fees ----------------------------------------------------

    def transfer_out(
        self,
        holder: str,
        token: str,
        receiver: str,
        amount: int,
        should_unwrap_native: bool = False,
    ) -> None:
        if not receiver or receiver == holder:
            raise InvalidReceiver(receiver)
        if amount == 0:
            return
        self.bank.transfer_out(holder, token, receiver, amount, should_unwrap_native)

    def credit_fee_receiver(self, market_token: str, token: str, amount: int, fee_type: str) -> None:
        """Book a fee-receiver share; the tokens stay in the market's custody."""
        if amount == 0:
            return
        self.ledger.add(CLAIMABLE_FEE_AMOUNT, (market_token, token), amount)
        self.fee_credits.append((market_token, token, amount, fee_type))
        self.emit(
            "ClaimableFeeAmountUpdated",
            market=market_token,
            token=token,
            delta=amount,
            fee_type=fee_type,
        )

    # -- events --------------------------------------------------------------

    def emit(self, name: str, **data: Any) -> None:
        self.events.append((name, data))

    # -- commit --------------------------------------------------------------

    def commit(
        self,
        events: Optional[EventSink] = None,
        fee_receiver: Optional[FeeReceiver] = None,
    ) -> None:
        if self._committed:
            raise RuntimeError("accounting context already committed")
        self._committed = True

        self._base_ledger.update_from(self.ledger)
        self._base_bank.update_from(self.bank)
        for key, (account, position) in self._staged.items():
            if position is None:
                self._positions.remove(key, account)
            else:
                self._positions.set(key, account, position)

        if fee_receiver is not None:
            for market_token, token, amount, fee_type in self.fee_credits:
                fee_receiver.credit(market_token, token, amount, fee_type)
        if events is not None:
            for name, data in self.events:
                events.emit(name, data)
        logger.debug(
            "committed context: %s position writes, %s events, %s fee credits",
            len(self._staged),
            len(self.events),
            len(self.fee_credits),
        )
