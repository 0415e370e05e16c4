#!/usr/bin/env python3
"""Offline demo: one swap and one position close against an in-memory exchange."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from poolsettle.core.config import ConfigStore, MarketConfig, load_config, parse_factor
from poolsettle.core.math import FLOAT_PRECISION as FP
from poolsettle.core.order import DecreaseOrder, OrderType
from poolsettle.core.pricing import Price
from poolsettle.integration import Exchange, InMemoryOracle, LoggingEventSink, RecordingEventSink, RecordingFeeReceiver
from poolsettle.state import ledger as tables
from poolsettle.state.bank import Bank
from poolsettle.state.ledger import PoolLedger
from poolsettle.state.markets import InMemoryMarketStore, Market
from poolsettle.state.positions import InMemoryPositionStore, Position

ETH_USDC = Market(market_token="ETH-USDC", index_token="ETH", long_token="WETH", short_token="USDC")
NOW = 1_700_000_000


def _build(config: ConfigStore) -> tuple[Exchange, RecordingEventSink, RecordingFeeReceiver]:
    oracle = InMemoryOracle()
    for token in ("ETH", "WETH", "USDC"):
        oracle.set_primary_price(token, Price.single(FP), NOW)

    ledger, bank = PoolLedger(), Bank(wrapped_native_token="WETH")
    for token in ("WETH", "USDC"):
        ledger.add(tables.POOL_AMOUNT, (ETH_USDC.market_token, token), 1_000_000)
        bank.record_transfer_in(ETH_USDC.market_token, token, 1_000_000)

    events = RecordingEventSink(forward_to=LoggingEventSink())
    fee_receiver = RecordingFeeReceiver()
    exchange = Exchange(
        markets=InMemoryMarketStore([ETH_USDC]),
        positions=InMemoryPositionStore(),
        oracle=oracle,
        config=config,
        ledger=ledger,
        bank=bank,
        events=events,
        fee_receiver=fee_receiver,
    )
    return exchange, events, fee_receiver


def _open_position(exchange: Exchange) -> Position:
    position = Position(
        account="alice",
        market=ETH_USDC.market_token,
        collateral_token="USDC",
        is_long=True,
        size_in_usd=10_000 * FP,
        size_in_tokens=10_000,
        collateral_amount=1_000,
    )
    exchange.positions.set(position.key, position.account, position)
    key = (ETH_USDC.market_token, "USDC", True)
    exchange.ledger.add(tables.COLLATERAL_SUM, key, position.collateral_amount)
    exchange.ledger.add(tables.OPEN_INTEREST, key, position.size_in_usd)
    exchange.ledger.add(tables.OPEN_INTEREST_IN_TOKENS, key, position.size_in_tokens)
    exchange.bank.record_transfer_in(ETH_USDC.market_token, "USDC", position.collateral_amount)
    return position


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, help="market config YAML (default: built-in 0.1%% fees)")
    parser.add_argument("--eth-price", default="1.05", help="ETH close price in USD per unit (decimal string)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every ledger event")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config is not None:
        config = load_config(args.config)
    else:
        config = ConfigStore(
            default=MarketConfig(
                swap_fee_factor_for_positive_impact=FP // 1_000,
                swap_fee_factor_for_negative_impact=FP // 1_000,
                position_fee_factor_for_positive_impact=FP // 1_000,
                position_fee_factor_for_negative_impact=FP // 1_000,
                position_fee_receiver_factor=FP // 2,
            )
        )
    exchange, events, fee_receiver = _build(config)

    exchange.bank.record_transfer_in(ETH_USDC.market_token, "USDC", 5_000)
    swap = exchange.step_swap(
        token_in="USDC",
        amount_in=5_000,
        swap_path=[ETH_USDC.market_token],
        receiver="bob",
        current_time=NOW,
    )
    if not swap.ok:
        print(f"[settlement-demo] FAIL (swap): {swap.code}: {swap.error}")
        return 1
    print(f"[settlement-demo] swap: 5000 USDC -> {swap.swap.output_amount} {swap.swap.token_out}")

    position = _open_position(exchange)
    eth_price = parse_factor(args.eth_price, "eth_price")
    exchange.oracle.set_primary_price("ETH", Price.single(eth_price), NOW + 60)
    order = DecreaseOrder(
        account=position.account,
        market=position.market,
        collateral_token=position.collateral_token,
        is_long=position.is_long,
        order_type=OrderType.MARKET_DECREASE,
        size_delta_usd=position.size_in_usd,
        receiver="alice",
    )
    close = exchange.step_decrease(order, current_time=NOW + 60)
    if not close.ok:
        print(f"[settlement-demo] FAIL (close): {close.code}: {close.error}")
        return 1

    result = close.decrease
    print(f"[settlement-demo] close: pnl_amount={result.pnl_amount} fees={result.fees.total_cost_amount}")
    print(f"[settlement-demo] close: output={result.output_amount} {result.output_token} to alice")
    print(f"[settlement-demo] fee receiver totals: {dict(fee_receiver.totals)}")
    print(f"[settlement-demo] {len(events.events)} events committed")
    print("[settlement-demo] OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
