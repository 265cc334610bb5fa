"""Unified event model for runtime observability.

Defines event types for the content pipeline, the cache engine, the rebuild
coordinator, and the HTTP surface.  Pounce lifecycle events are stored as-is.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Content pipeline events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ContentLoaded:
    """A content file was loaded into (or dropped from) the store.

    Attributes:
        path: Content path relative to the content root (web-style).
        slug: Slug of the record, empty when the file was skipped.
        action: What happened to the record.
        duration_ms: Time spent reading, parsing and rendering the body.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    path: str
    slug: str
    action: Literal["loaded", "reloaded", "removed", "skipped", "failed"]
    duration_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Cache engine events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CacheInvalidated:
    """Entries were dropped from one or more cache tiers.

    Attributes:
        keys: Cache keys (or artifact names) that were removed.
        reason: Why they were removed.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    keys: tuple[str, ...]
    reason: Literal["content", "aggregate", "theme", "config", "clear", "removed", "image"]
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Rebuild coordinator events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RebuildCompleted:
    """The coordinator finished handling one filesystem event.

    Attributes:
        event_class: Classified event (content-change, theme-change, ...).
        path: File that triggered the rebuild.
        pages_rendered: Pages eagerly re-rendered into the cache tiers.
        navigation_rebuilt: Whether the navigation tree was rebuilt.
        duration_ms: Total handling time.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    event_class: str
    path: str
    pages_rendered: int
    navigation_rebuilt: bool
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ImagesOptimized:
    """One image optimization pass completed.

    Attributes:
        images: Unique source images considered.
        optimized: Images whose derivatives were regenerated.
        failed: Images that failed to transcode.
        orphans_removed: Stale derivative files deleted.
        duration_ms: Wall-clock time for the pass.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    images: int
    optimized: int
    failed: int
    orphans_removed: int
    duration_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Build pipeline events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BuildEvent:
    """A static-export action occurred.

    Attributes:
        kind: The type of build action.
        source: Source file path (or description).
        target: Output file path (or description).
        duration_ms: Time taken in milliseconds.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    kind: Literal[
        "content",
        "listing",
        "artifact",
        "asset",
        "image",
        "file",
        "error_page",
        "redirect",
    ]
    source: str
    target: str
    duration_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# HTTP events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RequestServed:
    """An HTTP request was answered.

    Attributes:
        path: Request path.
        status: Response status code.
        tier: Where the body came from.
        encoding: Content-Encoding of the body, empty for identity.
        duration_ms: Handler time in milliseconds.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    path: str
    status: int
    tier: Literal["precompressed", "rendered", "render", "dynamic", "static", "none"]
    encoding: str
    duration_ms: float
    timestamp_ns: int

    @property
    def cache_hit(self) -> bool:
        """True when the body was served without rendering."""
        return self.tier in ("precompressed", "rendered", "dynamic", "static") or self.status == 304


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type StackEvent = (
    ContentLoaded
    | CacheInvalidated
    | RebuildCompleted
    | ImagesOptimized
    | BuildEvent
    | RequestServed
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
