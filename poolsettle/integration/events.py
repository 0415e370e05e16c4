"""Event sinks and fee receivers for the integration shell."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..core.context import EventSink

logger = logging.getLogger("poolsettle.events")


class LoggingEventSink:
    """Logs every event on the `poolsettle.events` logger."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def emit(self, name: str, data: Mapping[str, Any]) -> None:
        logger.log(self.level, "%s %s", name, dict(data))


class RecordingEventSink:
    """Keeps every event in memory, optionally forwarding to another sink."""

    def __init__(self, forward_to: Optional[EventSink] = None):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self._forward_to = forward_to

    def emit(self, name: str, data: Mapping[str, Any]) -> None:
        self.events.append((name, dict(data)))
        if self._forward_to is not None:
            self._forward_to.emit(name, data)

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> List[Dict[str, Any]]:
        return [data for n, data in self.events if n == name]


class RecordingFeeReceiver:
    """Accumulates fee-receiver credits per (market, token)."""

    def __init__(self) -> None:
        self.totals: Dict[Tuple[str, str], int] = defaultdict(int)
        self.credits: List[Tuple[str, str, int, str]] = []

    def credit(self, market_token: str, token: str, amount: int, fee_type: str) -> None:
        self.totals[(market_token, token)] += amount
        self.credits.append((market_token, token, amount, fee_type))
