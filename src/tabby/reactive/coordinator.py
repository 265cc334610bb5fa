"""Rebuild coordinator — keeps the store and every cache tier in step with disk.

Flow:
    1. ContentWatcher reports a file change (ChangeEvent)
    2. The change is classified into one event class
    3. The store and navigation index are updated
    4. Affected cache entries are invalidated and eagerly re-rendered
    5. Image optimization is debounced and run at most once at a time

After startup this is the only writer of the store, the navigation index
and the rendered and precompressed tiers.  Handlers run on the event loop
one at a time, so a pass is never interleaved with another pass.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from tabby._errors import ConfigError, ContentError, TabbyError
from tabby.cache.resolver import FILE_PREFIX
from tabby.content.metadata import is_content_file, to_web_path
from tabby.images.optimizer import unique_sources
from tabby.reactive.debounce import DebounceTimer

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from tabby.content.records import ContentRecord, ImageReference
    from tabby.content.watcher import ChangeEvent, ContentWatcher
    from tabby.images.optimizer import OptimizeResult
    from tabby.runtime import SiteRuntime

type EventClass = Literal[
    "content-change",
    "content-rename-in",
    "content-rename-out",
    "theme-change",
    "config-change",
    "image-change",
]


@dataclass(frozen=True, slots=True)
class RebuildOutcome:
    """What one coordinator pass did."""

    event_class: EventClass
    path: str
    pages_rendered: int = 0
    navigation_rebuilt: bool = False
    removed: tuple[str, ...] = ()


class RebuildCoordinator:
    """Reacts to file changes for one :class:`SiteRuntime`.

    Args:
        runtime: The site whose store and caches are kept current.
        clock: Monotonic clock for the image debounce timer.
        sleep: Awaitable sleep used while a debounce deadline is pending.

    """

    def __init__(
        self,
        runtime: SiteRuntime,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._runtime = runtime
        self._timer = DebounceTimer(runtime.config.debounce_ms, clock=clock)
        self._sleep = sleep
        self._image_task: asyncio.Task[None] | None = None
        self._optimizing = False
        self.image_passes = 0

    @property
    def timer(self) -> DebounceTimer:
        return self._timer

    @property
    def optimizing(self) -> bool:
        """True while an image optimization pass is in flight."""
        return self._optimizing

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self, watcher: ContentWatcher) -> None:
        """Consume watcher events until the watcher stops."""
        async for event in watcher.changes():
            try:
                await self.handle(event)
            except Exception as exc:
                print(f"  Rebuild error: {exc}", file=sys.stderr)

    async def handle(self, event: ChangeEvent) -> RebuildOutcome | None:
        """Process one change. Per-item failures are logged, never raised."""
        start = time.perf_counter()
        event_class = self.classify(event)
        rel = self._relative(event.path)
        try:
            outcome = self._dispatch(event_class, rel, event.path)
        except TabbyError as exc:
            print(f"  Rebuild error: {rel}: {exc}", file=sys.stderr)
            return None

        elapsed = (time.perf_counter() - start) * 1000
        print(
            f"  {event_class}: {rel} ({outcome.pages_rendered} pages, {elapsed:.0f}ms)",
            file=sys.stderr,
        )
        collector = self._runtime.collector
        if collector is not None:
            collector.record_rebuild(
                event_class,
                rel,
                pages_rendered=outcome.pages_rendered,
                navigation_rebuilt=outcome.navigation_rebuilt,
                duration_ms=elapsed,
            )
        return outcome

    def classify(self, event: ChangeEvent) -> EventClass:
        """Map a watcher event onto the event class that decides the rebuild."""
        if event.category == "config":
            return "config-change"
        if event.category == "theme":
            return "theme-change"
        if event.category == "image":
            return "image-change"

        rel = self._relative(event.path)
        if event.kind == "deleted" or not event.path.exists():
            return "content-rename-out"
        if event.path.is_dir():
            return "content-rename-in"
        if is_content_file(rel) and self._runtime.store.by_path(rel) is None:
            return "content-rename-in"
        return "content-change"

    def _dispatch(self, event_class: EventClass, rel: str, path: Path) -> RebuildOutcome:
        match event_class:
            case "content-change":
                return self._content_changed(rel)
            case "content-rename-in":
                return self._content_added(rel, path)
            case "content-rename-out":
                return self._content_removed(rel)
            case "theme-change":
                pages = self._runtime.reload_theme()
                return RebuildOutcome(event_class, rel, pages_rendered=pages)
            case "config-change":
                return self._config_changed(rel)
            case _:
                return self._image_changed(rel, path)

    def _relative(self, path: Path) -> str:
        runtime = self._runtime
        for root in (runtime.config.content_path, runtime.config.root):
            try:
                return to_web_path(path.relative_to(root))
            except ValueError:
                continue
        return to_web_path(path)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def _content_changed(self, rel: str) -> RebuildOutcome:
        """One existing file changed: reload it and re-render what shows it."""
        runtime = self._runtime
        if not is_content_file(rel):
            # Verbatim content-tree file (PDF, archive, ...)
            runtime.engine.static.discard(FILE_PREFIX + rel)
            return RebuildOutcome("content-change", rel)

        previous = runtime.store.by_path(rel)
        record = runtime.store.load_one(rel)
        if record is None:
            # Became a draft
            return self._content_removed(rel, event_class="content-change")
        try:
            runtime.store.upsert(record)
        except ContentError as exc:
            print(f"  Skipped: {exc}", file=sys.stderr)
            return RebuildOutcome("content-change", rel)

        keys = [record.slug]
        if previous is not None and previous.slug != record.slug:
            keys.append(previous.slug)
        engine = runtime.engine
        engine.invalidate(keys, "content")
        engine.invalidate_listings("aggregate")
        engine.invalidate_dynamic("aggregate")

        # Titles, dates and tags appear on other pages (navigation, related,
        # previous/next); any change there re-renders the site once.
        listed_elsewhere = previous is None or _listing_view(previous) != _listing_view(record)
        navigation = runtime.navigation.refresh(runtime.store.mapping(), force=listed_elsewhere)
        if navigation or listed_elsewhere:
            pages = self._rerender_all()
        else:
            pages = engine.populate_all([record.slug, *runtime.renderer.listing_keys()])
        runtime.warm_dynamic()

        if record.images or (previous is not None and previous.images):
            self.schedule_images()
        return RebuildOutcome(
            "content-change",
            rel,
            pages_rendered=pages,
            navigation_rebuilt=navigation,
        )

    def _content_added(self, rel: str, path: Path) -> RebuildOutcome:
        """A file (or a whole folder) appeared in the content tree."""
        runtime = self._runtime
        if path.is_dir():
            prefix = rel.rstrip("/") + "/"
            candidates = [p for p in runtime.store.iter_content_files() if p.startswith(prefix)]
        elif is_content_file(rel):
            candidates = [rel]
        else:
            runtime.engine.static.discard(FILE_PREFIX + rel)
            return RebuildOutcome("content-rename-in", rel)

        added = [record for candidate in candidates if (record := self._load(candidate))]
        if not added:
            return RebuildOutcome("content-rename-in", rel)
        navigation = runtime.navigation.refresh(runtime.store.mapping())
        runtime.engine.invalidate_dynamic("aggregate")
        pages = self._rerender_all()
        runtime.warm_dynamic()
        if any(record.images for record in added):
            self.schedule_images()
        return RebuildOutcome(
            "content-rename-in",
            rel,
            pages_rendered=pages,
            navigation_rebuilt=navigation,
        )

    def _content_removed(
        self,
        rel: str,
        *,
        event_class: EventClass = "content-rename-out",
    ) -> RebuildOutcome:
        """A file or folder is gone (or became a draft): drop every trace of it."""
        runtime = self._runtime
        runtime.engine.static.discard(FILE_PREFIX + rel)
        record = runtime.store.remove_path(rel)
        removed = [record] if record is not None else runtime.store.remove_prefix(rel)
        if not removed:
            return RebuildOutcome(event_class, rel)

        slugs = tuple(r.slug for r in removed)
        engine = runtime.engine
        engine.invalidate(slugs, "removed")
        engine.invalidate_listings("aggregate")
        engine.invalidate_dynamic("aggregate")
        navigation = runtime.navigation.refresh(runtime.store.mapping())
        pages = self._rerender_all()
        runtime.warm_dynamic()
        if any(r.images for r in removed):
            # Orphan cleanup runs as part of the optimization pass
            self.schedule_images()
        return RebuildOutcome(
            event_class,
            rel,
            pages_rendered=pages,
            navigation_rebuilt=navigation,
            removed=slugs,
        )

    def _load(self, rel: str) -> ContentRecord | None:
        store = self._runtime.store
        try:
            record = store.load_one(rel)
            if record is not None:
                store.upsert(record)
        except ContentError as exc:
            print(f"  Skipped: {exc}", file=sys.stderr)
            return None
        return record

    def _rerender_all(self) -> int:
        """Drop keys that no longer render, then re-render every page once."""
        runtime = self._runtime
        live = set(runtime.renderer.all_keys())
        stale = [key for key in list(runtime.engine.rendered) if key not in live]
        runtime.engine.invalidate(stale, "removed")
        return runtime.engine.populate_all()

    # ------------------------------------------------------------------
    # Config and images
    # ------------------------------------------------------------------

    def _config_changed(self, rel: str) -> RebuildOutcome:
        try:
            pages = self._runtime.reconfigure()
        except ConfigError as exc:
            print(f"  Config error (keeping previous config): {exc}", file=sys.stderr)
            return RebuildOutcome("config-change", rel)
        self._timer.delay = self._runtime.config.debounce_ms / 1000
        return RebuildOutcome(
            "config-change",
            rel,
            pages_rendered=pages,
            navigation_rebuilt=True,
        )

    def _image_changed(self, rel: str, path: Path) -> RebuildOutcome:
        """A source image changed: drop cached bytes, re-size referencing pages."""
        runtime = self._runtime
        engine = runtime.engine
        engine.static.discard(FILE_PREFIX + rel)

        referencing = [
            record
            for record in runtime.store.records()
            if any(ref.resolved_path == path for ref in record.images)
        ]
        for ref in (r for record in referencing for r in record.images if r.resolved_path == path):
            engine.static.discard_prefix(_derivative_prefix(ref))

        reloaded = [record for old in referencing if (record := self._load(old.path))]
        keys = [record.slug for record in reloaded]
        engine.invalidate(keys, "image")
        pages = engine.populate_all(keys)
        self.schedule_images()
        return RebuildOutcome("image-change", rel, pages_rendered=pages)

    def schedule_images(self) -> None:
        """(Re)start the debounce window; one pass runs when it elapses.

        A trigger that arrives while a pass is running is dropped, not
        queued; the next file event schedules a fresh window.
        """
        if self._optimizing:
            print("  Image optimization already running, trigger dropped", file=sys.stderr)
            return
        self._timer.schedule()
        if self._image_task is None or self._image_task.done():
            self._image_task = asyncio.create_task(self._image_loop())

    async def _image_loop(self) -> None:
        while self._timer.pending:
            remaining = self._timer.remaining()
            if remaining:
                await self._sleep(remaining)
            if self._timer.fire():
                await self.optimize_images()

    async def optimize_images(self) -> OptimizeResult | None:
        """Run one optimization pass unless one is already in flight.

        A trigger that arrives mid-pass is dropped, not queued.
        """
        if self._optimizing:
            print("  Image optimization already running, trigger dropped", file=sys.stderr)
            return None
        self._optimizing = True
        try:
            refs = self._runtime.store.image_references()
            result = await self._runtime.optimizer.run(refs)
            for ref in unique_sources(refs):
                self._runtime.engine.static.discard_prefix(_derivative_prefix(ref))
            self.image_passes += 1
            return result
        finally:
            self._optimizing = False

    async def drain(self) -> None:
        """Wait for a pending or running image pass to finish."""
        task = self._image_task
        if task is not None and not task.done():
            await task

    async def close(self) -> None:
        task = self._image_task
        self._timer.cancel()
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def _listing_view(record: ContentRecord) -> dict[str, object]:
    view = record.summary()
    view.pop("updated_at", None)
    return view


def _derivative_prefix(ref: ImageReference) -> str:
    return f"{FILE_PREFIX}{ref.url_base}{ref.basename}-"
