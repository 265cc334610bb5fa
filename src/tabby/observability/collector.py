"""Stack collector — one sink for runtime, build and server events.

Implements Pounce's ``LifecycleCollector`` protocol so it can be passed
directly to Pounce workers.  Also provides typed ``record_*`` helpers for
the content store, cache engine, rebuild coordinator and HTTP handlers.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.

"""

from __future__ import annotations

from typing import Any

from tabby.observability.events import (
    BuildEvent,
    CacheInvalidated,
    ContentLoaded,
    ImagesOptimized,
    RebuildCompleted,
    RequestServed,
    now_ns,
)
from tabby.observability.log import EventLog


class StackCollector:
    """Unified event collector.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    # ----- Pounce LifecycleCollector protocol -----

    def record(self, event: Any) -> None:
        """Record a Pounce lifecycle event (already a frozen dataclass)."""
        self._log.append(event)

    # ----- Content -----

    def record_content(
        self,
        path: str,
        slug: str,
        action: str,
        *,
        duration_ms: float = 0.0,
    ) -> None:
        """Record a content load/reload/removal."""
        self._log.append(
            ContentLoaded(
                path=path,
                slug=slug,
                action=action,  # type: ignore[arg-type]
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Cache -----

    def record_invalidation(self, keys: list[str] | tuple[str, ...], reason: str) -> None:
        """Record dropped cache entries. Empty key lists are not recorded."""
        if not keys:
            return
        self._log.append(
            CacheInvalidated(
                keys=tuple(keys),
                reason=reason,  # type: ignore[arg-type]
                timestamp_ns=now_ns(),
            )
        )

    # ----- Coordinator -----

    def record_rebuild(
        self,
        event_class: str,
        path: str,
        *,
        pages_rendered: int = 0,
        navigation_rebuilt: bool = False,
        duration_ms: float = 0.0,
    ) -> None:
        """Record one coordinator pass."""
        self._log.append(
            RebuildCompleted(
                event_class=event_class,
                path=path,
                pages_rendered=pages_rendered,
                navigation_rebuilt=navigation_rebuilt,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    def record_images(
        self,
        *,
        images: int,
        optimized: int,
        failed: int = 0,
        orphans_removed: int = 0,
        duration_ms: float = 0.0,
    ) -> None:
        """Record one image optimization pass."""
        self._log.append(
            ImagesOptimized(
                images=images,
                optimized=optimized,
                failed=failed,
                orphans_removed=orphans_removed,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Build -----

    def record_build(
        self,
        kind: str,
        source: str,
        target: str,
        *,
        duration_ms: float = 0.0,
    ) -> None:
        """Record a static-export action."""
        self._log.append(
            BuildEvent(
                kind=kind,  # type: ignore[arg-type]
                source=source,
                target=target,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    # ----- HTTP -----

    def record_request(
        self,
        path: str,
        status: int,
        tier: str,
        *,
        encoding: str = "",
        duration_ms: float = 0.0,
    ) -> None:
        """Record an answered request."""
        self._log.append(
            RequestServed(
                path=path,
                status=status,
                tier=tier,  # type: ignore[arg-type]
                encoding=encoding,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    def request_metrics(self, since_ns: int = 0) -> dict[str, Any]:
        """Summarise retained ``RequestServed`` events.

        Returns request count, cache hits/misses, hit rate (percent) and
        average handler time.
        """
        served = [
            e for e in self._log.of_type(RequestServed) if e.timestamp_ns >= since_ns
        ]
        hits = sum(1 for e in served if e.cache_hit)
        total = len(served)
        return {
            "requests": total,
            "cache_hits": hits,
            "cache_misses": total - hits,
            "hit_rate": round(hits / total * 100, 1) if total else 0.0,
            "avg_ms": round(sum(e.duration_ms for e in served) / total, 3) if total else 0.0,
        }
