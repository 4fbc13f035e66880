"""
eventchain: a synchronous event bus with completion tallies and
dependency-chain events.

>>> from eventchain import EventBus, ChainMode
>>> bus = EventBus()
"""

from eventchain.core.exceptions import (
    CapacityExceeded,
    ChainDeclarationError,
    EventChainException,
    MalformedChainArrival,
)
from eventchain.event import (
    ERROR_EVENT,
    LISTENING_EVENT,
    ChainMode,
    ChainSnapshot,
    EventBus,
    EventMetrics,
    TallyResult,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "EventBus",
    "ChainMode",
    "ChainSnapshot",
    "TallyResult",
    "EventMetrics",
    "ERROR_EVENT",
    "LISTENING_EVENT",
    "EventChainException",
    "CapacityExceeded",
    "ChainDeclarationError",
    "MalformedChainArrival",
]
