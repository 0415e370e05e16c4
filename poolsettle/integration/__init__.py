"""
Integration shell: exchange orchestration, oracle and event sinks.
"""

from .events import LoggingEventSink, RecordingEventSink, RecordingFeeReceiver
from .exchange import DecreaseExecution, Exchange, SettlementResult
from .oracle import InMemoryOracle

__all__ = [
    "LoggingEventSink",
    "RecordingEventSink",
    "RecordingFeeReceiver",
    "DecreaseExecution",
    "Exchange",
    "SettlementResult",
    "InMemoryOracle",
]
