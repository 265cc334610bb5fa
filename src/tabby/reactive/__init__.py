"""Reactive layer — file changes to store updates and cache re-population.

Connects the content watcher to the content store, navigation index and
cache engine through the rebuild coordinator, with image optimization
behind a debounce timer.
"""

from tabby.reactive.coordinator import EventClass, RebuildCoordinator, RebuildOutcome
from tabby.reactive.debounce import DebounceState, DebounceTimer

__all__ = [
    "DebounceState",
    "DebounceTimer",
    "EventClass",
    "RebuildCoordinator",
    "RebuildOutcome",
]
