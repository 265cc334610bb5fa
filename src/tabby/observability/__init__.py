"""Runtime observability — one event model for content, cache, rebuilds and HTTP.

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from the watcher thread, image workers and request
handlers.

Quick Start:
    >>> from tabby.observability import StackCollector, EventLog
    >>> collector = StackCollector(EventLog())
    >>> collector.record_request("/", 200, "precompressed", encoding="br")
    >>> collector.request_metrics()["cache_hits"]
    1

"""

from tabby.observability.collector import StackCollector
from tabby.observability.events import (
    BuildEvent,
    CacheInvalidated,
    ContentLoaded,
    ImagesOptimized,
    RebuildCompleted,
    RequestServed,
    StackEvent,
    now_ns,
)
from tabby.observability.log import EventLog

__all__ = [
    "BuildEvent",
    "CacheInvalidated",
    "ContentLoaded",
    "EventLog",
    "ImagesOptimized",
    "RebuildCompleted",
    "RequestServed",
    "StackCollector",
    "StackEvent",
    "now_ns",
]
