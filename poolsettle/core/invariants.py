"""Invariant checkers for the pool ledger and custody.

Each function returns True when the invariant holds, and `check_all()` returns
the list of violated invariant IDs (empty = all pass).

Note: custody is checked as solvency (each market holds at least what its
ledger owes), not equality, since tokens may be sent to a market ahead of the
call that books them.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict, Tuple

from ..state import ledger as tables
from ..state.bank import Bank
from ..state.ledger import PoolLedger

State = Tuple[PoolLedger, Bank]


def ledger_obligations(ledger: PoolLedger) -> Dict[Tuple[str, str], int]:
    """Tokens each (market, token) owes: pool, swap-impact pool, collateral, claimables."""
    owed: Dict[Tuple[str, str], int] = defaultdict(int)
    for table in (tables.POOL_AMOUNT, tables.SWAP_IMPACT_POOL_AMOUNT, tables.CLAIMABLE_FEE_AMOUNT):
        for (market, token), amount in ledger.items(table):
            owed[(market, token)] += amount
    for (market, token, _is_long), amount in ledger.items(tables.COLLATERAL_SUM):
        owed[(market, token)] += amount
    for (market, token, _account), amount in ledger.items(tables.CLAIMABLE_FUNDING_AMOUNT):
        owed[(market, token)] += amount
    return dict(owed)


def inv_ledger_non_negative(s: State) -> bool:
    ledger, _ = s
    return all(amount >= 0 for table in tables.TABLES for _, amount in ledger.items(table))


def inv_custody_covers_ledger(s: State) -> bool:
    ledger, bank = s
    return all(bank.get(market, token) >= owed for (market, token), owed in ledger_obligations(ledger).items())


def inv_open_interest_paired(s: State) -> bool:
    # Open interest in USD and in tokens are zero together.
    ledger, _ = s
    usd = {k for k, v in ledger.items(tables.OPEN_INTEREST) if v}
    in_tokens = {k for k, v in ledger.items(tables.OPEN_INTEREST_IN_TOKENS) if v}
    return usd == in_tokens


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[State], bool]] = {
    "inv_ledger_non_negative": inv_ledger_non_negative,
    "inv_custody_covers_ledger": inv_custody_covers_ledger,
    "inv_open_interest_paired": inv_open_interest_paired,
}


def check_all(ledger: PoolLedger, bank: Bank) -> list[str]:
    """Return the list of violated invariant IDs (empty = all pass)."""
    state = (ledger, bank)
    return [name for name, fn in INVARIANT_REGISTRY.items() if not fn(state)]
