"""Tests for poolsettle/state/bank.py."""

import pytest

from poolsettle.state.bank import NATIVE_TOKEN, Bank


class TestBank:
    def test_default_zero(self):
        assert Bank().get("alice", "USDC") == 0

    def test_transfer_in_and_out(self):
        bank = Bank()
        bank.record_transfer_in("pool", "USDC", 100)
        bank.transfer_out("pool", "USDC", "alice", 40)
        assert bank.get("pool", "USDC") == 60
        assert bank.get("alice", "USDC") == 40

    def test_zero_balances_are_dropped(self):
        bank = Bank()
        bank.record_transfer_in("pool", "USDC", 5)
        bank.transfer_out("pool", "USDC", "alice", 5)
        assert ("pool", "USDC") not in bank.get_all_balances()

    def test_insufficient(self):
        bank = Bank()
        bank.record_transfer_in("pool", "USDC", 5)
        with pytest.raises(ValueError, match="Insufficient"):
            bank.transfer_out("pool", "USDC", "alice", 6)

    def test_self_transfer(self):
        with pytest.raises(ValueError):
            Bank().transfer_out("pool", "USDC", "pool", 0)

    def test_negative_amount(self):
        with pytest.raises(ValueError):
            Bank().record_transfer_in("pool", "USDC", -1)

    def test_unwrap(self):
        bank = Bank(wrapped_native_token="WETH")
        bank.record_transfer_in("pool", "WETH", 10)
        bank.transfer_out("pool", "WETH", "alice", 10, should_unwrap_native=True)
        assert bank.get("alice", NATIVE_TOKEN) == 10
        assert bank.get("alice", "WETH") == 0

    def test_unwrap_ignored_for_other_tokens(self):
        bank = Bank(wrapped_native_token="WETH")
        bank.record_transfer_in("pool", "USDC", 10)
        bank.transfer_out("pool", "USDC", "alice", 10, should_unwrap_native=True)
        assert bank.get("alice", "USDC") == 10


class TestBankCopy:
    def test_copy_is_independent(self):
        bank = Bank("WETH")
        bank.record_transfer_in("pool", "USDC", 10)
        clone = bank.copy()
        clone.transfer_out("pool", "USDC", "alice", 10)
        assert bank.get("pool", "USDC") == 10
        assert clone.wrapped_native_token == "WETH"

    def test_update_from(self):
        bank = Bank()
        clone = bank.copy()
        clone.record_transfer_in("pool", "USDC", 3)
        bank.update_from(clone)
        assert bank.get("pool", "USDC") == 3
