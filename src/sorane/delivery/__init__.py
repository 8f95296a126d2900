"""Buffering, batching and adaptive-pause delivery.

Architecture::

    buffer.py        BufferStore        per-type FIFO with atomic take
    pause.py         PauseState         global / feature pauses with TTL
    gateway.py       ApiGateway         batch HTTP client → BatchResult
    classifier.py    classify()         BatchResult → Action
    dispatcher.py    BatchDispatcher    take → send → classify → reconcile
                     DispatchJob        unique, bounded-retry wrapper
    retry.py         ScheduledBackoff   [60, 300, 900] schedule + state store
    scheduler.py     DispatchScheduler  periodic ticks on a daemon thread
"""

from sorane.delivery.buffer import BufferedItem, BufferStore
from sorane.delivery.classifier import Action, classify
from sorane.delivery.dispatcher import BatchDispatcher, DispatchJob
from sorane.delivery.gateway import ApiGateway, BatchResult
from sorane.delivery.pause import PauseRecord, PauseState
from sorane.delivery.scheduler import DispatchScheduler

__all__ = [
    "Action",
    "ApiGateway",
    "BatchDispatcher",
    "BatchResult",
    "BufferedItem",
    "BufferStore",
    "DispatchJob",
    "DispatchScheduler",
    "PauseRecord",
    "PauseState",
    "classify",
]
