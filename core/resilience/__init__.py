"""
Core resilience: fault tolerance primitives.

- DeadLetterQueue: capture and replay side-effect events that failed
"""
from core.resilience.dlq import (
    DeadLetter,
    DeadLetterQueue,
    DLQStats,
    DLQStatus,
)

__all__ = [
    "DeadLetter",
    "DeadLetterQueue",
    "DLQStats",
    "DLQStatus",
]
