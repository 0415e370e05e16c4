"""
Token custody with deterministic ordering.

Implements Bank[holder, token] -> amount. Holders are market tokens (each
market's pool contract holds its own custody) and receiver accounts.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple


# Type aliases
Address = str
TokenId = str
Amount = int  # Non-negative integer (arbitrary precision)

# Asset credited when a wrapped-native transfer is unwrapped
NATIVE_TOKEN = "native"


class Bank:
    """
    Custody table mapping (holder, token) -> amount.

    This is the reference implementation of the token-custody collaborator.
    Tokens only move through `record_transfer_in` (deposits from outside the
    system) and `transfer_out`.
    """

    def __init__(self, wrapped_native_token: Optional[TokenId] = None):
        self.wrapped_native_token = wrapped_native_token
        self._balances: Dict[Tuple[Address, TokenId], Amount] = {}

    def get(self, holder: Address, token: TokenId) -> Amount:
        """Get balance for (holder, token). Returns 0 if not found."""
        return self._balances.get((holder, token), 0)

    def _set(self, holder: Address, token: TokenId, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            # Remove zero balances to keep table sparse
            self._balances.pop((holder, token), None)
        else:
            self._balances[(holder, token)] = amount

    def record_transfer_in(self, holder: Address, token: TokenId, amount: Amount) -> None:
        """Credit tokens that arrived from outside the system."""
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative: {amount}")
        self._set(holder, token, self.get(holder, token) + amount)

    def transfer_out(
        self,
        holder: Address,
        token: TokenId,
        receiver: Address,
        amount: Amount,
        should_unwrap_native: bool = False,
    ) -> None:
        """
        Move `amount` of `token` from `holder` to `receiver`.

        If `should_unwrap_native` is set and `token` is the wrapped native
        token, the receiver is credited with `NATIVE_TOKEN` instead.

        Raises:
            ValueError: If receiver is the holder itself, the amount is
                negative, or the holder's balance is insufficient
        """
        if receiver == holder:
            raise ValueError(f"Cannot transfer to self: {holder}")
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative: {amount}")
        current = self.get(holder, token)
        if current < amount:
            raise ValueError(f"Insufficient balance: {holder} holds {current} {token}, needs {amount}")
        self._set(holder, token, current - amount)

        credited = token
        if should_unwrap_native and self.wrapped_native_token is not None and token == self.wrapped_native_token:
            credited = NATIVE_TOKEN
        self._set(receiver, credited, self.get(receiver, credited) + amount)

    def get_all_balances(self) -> Dict[Tuple[Address, TokenId], Amount]:
        return dict(self._balances)

    def copy(self) -> "Bank":
        clone = Bank(self.wrapped_native_token)
        clone._balances = dict(self._balances)
        return clone

    def update_from(self, other: "Bank") -> None:
        """Adopt every balance of `other` (used to commit a working copy)."""
        self._balances = dict(other._balances)

    def __repr__(self) -> str:
        return f"Bank({len(self._balances)} entries)"
