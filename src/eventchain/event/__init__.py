"""
eventchain Event System

Exports the EventBus and the types, engine pieces and metrics it is built
from.
"""

from eventchain.event.bus import EventBus
from eventchain.event.chain import ChainCompletion, ChainDeclaration, ChainEngine
from eventchain.event.dispatcher import Dispatcher
from eventchain.event.metrics import EventMetrics, EventMetricsRecorder
from eventchain.event.registry import ListenerRegistry
from eventchain.event.scheduler import TurnScheduler
from eventchain.event.tally import CompletionTally
from eventchain.event.types import (
    ERROR_EVENT,
    LISTENING_EVENT,
    ChainMode,
    ChainSnapshot,
    CompletionSignal,
    ListenerCallback,
    ListenerRecord,
    TallyResult,
)

__all__ = [
    # Bus
    "EventBus",
    # Types
    "ERROR_EVENT",
    "LISTENING_EVENT",
    "ChainMode",
    "ChainSnapshot",
    "CompletionSignal",
    "ListenerCallback",
    "ListenerRecord",
    "TallyResult",
    # Components
    "ChainCompletion",
    "ChainDeclaration",
    "ChainEngine",
    "CompletionTally",
    "Dispatcher",
    "ListenerRegistry",
    "TurnScheduler",
    # Metrics
    "EventMetrics",
    "EventMetricsRecorder",
]
