"""Feed watching and debounced scan scheduling."""

from .feed import FeedWatcher, Outcome, PostRecord, PostState
from .scheduler import LoopTimers, ScanScheduler, Timers

__all__ = [
    "FeedWatcher",
    "Outcome",
    "PostRecord",
    "PostState",
    "LoopTimers",
    "ScanScheduler",
    "Timers",
]
