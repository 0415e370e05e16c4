"""Shared fixtures: a small in-memory world with one or more markets."""

from __future__ import annotations

from typing import Iterable, Optional

import pytest

from poolsettle.core.config import ConfigStore, MarketConfig
from poolsettle.core.context import AccountingContext
from poolsettle.core.math import FLOAT_PRECISION
from poolsettle.core.pricing import MarketPrices, Price
from poolsettle.integration.events import RecordingEventSink, RecordingFeeReceiver
from poolsettle.integration.exchange import Exchange
from poolsettle.integration.oracle import InMemoryOracle
from poolsettle.state import ledger as tables
from poolsettle.state.bank import Bank
from poolsettle.state.ledger import PoolLedger
from poolsettle.state.markets import InMemoryMarketStore, Market
from poolsettle.state.positions import InMemoryPositionStore, Position

FP = FLOAT_PRECISION
NOW = 1_000

ETH_USDC = Market(market_token="ETH-USDC", index_token="ETH", long_token="WETH", short_token="USDC")
WETH_DAI = Market(market_token="WETH-DAI", index_token="WETH", long_token="WETH", short_token="DAI")
DAI_USDC = Market(market_token="DAI-USDC", index_token="DAI", long_token="DAI", short_token="USDC")

ALL_MARKETS = (ETH_USDC, WETH_DAI, DAI_USDC)


class World:
    def __init__(self, config: Optional[MarketConfig] = None, markets: Iterable[Market] = ALL_MARKETS):
        self.markets = InMemoryMarketStore(markets)
        self.positions = InMemoryPositionStore()
        self.oracle = InMemoryOracle(max_staleness_seconds=300)
        self.config = ConfigStore(default=config or MarketConfig())
        self.ledger = PoolLedger()
        self.bank = Bank(wrapped_native_token="WETH")
        self.events = RecordingEventSink()
        self.fee_receiver = RecordingFeeReceiver()
        self.exchange = Exchange(
            markets=self.markets,
            positions=self.positions,
            oracle=self.oracle,
            config=self.config,
            ledger=self.ledger,
            bank=self.bank,
            events=self.events,
            fee_receiver=self.fee_receiver,
        )
        for token in ("ETH", "WETH", "USDC", "DAI"):
            self.set_price(token, FP)

    def set_price(self, token: str, min_price: int, max_price: Optional[int] = None, timestamp: int = NOW) -> None:
        self.oracle.set_primary_price(token, Price(min_price, max_price if max_price is not None else min_price), timestamp)

    def prices(self, market: Market = ETH_USDC) -> MarketPrices:
        return MarketPrices.for_market(market, self.oracle.snapshot((market.index_token, market.long_token, market.short_token)))

    def snapshot(self) -> dict:
        tokens = {"ETH", "WETH", "USDC", "DAI"}
        return self.oracle.snapshot(tokens)

    def seed_pool(self, market: Market, token: str, amount: int) -> None:
        self.ledger.add(tables.POOL_AMOUNT, (market.market_token, token), amount)
        self.bank.record_transfer_in(market.market_token, token, amount)

    def seed_swap_impact_pool(self, market: Market, token: str, amount: int) -> None:
        self.ledger.add(tables.SWAP_IMPACT_POOL_AMOUNT, (market.market_token, token), amount)
        self.bank.record_transfer_in(market.market_token, token, amount)

    def seed_open_interest(self, market: Market, collateral_token: str, is_long: bool, size_in_usd: int, size_in_tokens: int) -> None:
        self.ledger.add(tables.OPEN_INTEREST, (market.market_token, collateral_token, is_long), size_in_usd)
        self.ledger.add(tables.OPEN_INTEREST_IN_TOKENS, (market.market_token, collateral_token, is_long), size_in_tokens)

    def open_position(
        self,
        *,
        account: str = "alice",
        market: Market = ETH_USDC,
        collateral_token: str = "USDC",
        is_long: bool = True,
        size_in_usd: int = 10_000 * FP,
        size_in_tokens: int = 10_000,
        collateral_amount: int = 1_000,
        **snapshots: int,
    ) -> Position:
        position = Position(
            account=account,
            market=market.market_token,
            collateral_token=collateral_token,
            is_long=is_long,
            size_in_usd=size_in_usd,
            size_in_tokens=size_in_tokens,
            collateral_amount=collateral_amount,
            **snapshots,
        )
        self.positions.set(position.key, account, position)
        self.ledger.add(tables.COLLATERAL_SUM, (market.market_token, collateral_token, is_long), collateral_amount)
        self.seed_open_interest(market, collateral_token, is_long, size_in_usd, size_in_tokens)
        self.bank.record_transfer_in(market.market_token, collateral_token, collateral_amount)
        return position

    def context(self, current_time: int = NOW, current_block: int = 7) -> AccountingContext:
        return self.exchange.open_context(current_time=current_time, current_block=current_block)


@pytest.fixture
def make_world():
    """Factory so property tests can build a fresh world per example."""
    return World


@pytest.fixture
def world() -> World:
    w = World()
    w.seed_pool(ETH_USDC, "WETH", 100_000)
    w.seed_pool(ETH_USDC, "USDC", 100_000)
    return w
