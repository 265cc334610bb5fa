"""Site runtime — one object owning every component of a running site.

SiteRuntime replaces module-level state: the content store, navigation
index, theme, render service, cache engine, resolver, image optimizer and
rebuild coordinator all hang off one instance, so independent sites can
live side by side (one per test, for example).

Lifecycle:
    runtime = SiteRuntime.from_root("my-site/")
    runtime.load()      # scan content, build navigation
    runtime.warm()      # pre-render every page and artifact into the caches
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

from tabby._errors import RenderError, TabbyError
from tabby.cache.engine import NOT_FOUND_KEY, CacheEngine
from tabby.cache.resolver import ASSET_PREFIX, CacheResolver
from tabby.config_loader import load_config
from tabby.content.navigation import NavigationIndex
from tabby.content.store import ContentStore
from tabby.images.optimizer import DimensionCache, ImageOptimizer
from tabby.observability.collector import StackCollector
from tabby.reactive.coordinator import RebuildCoordinator
from tabby.render.service import ARTIFACTS, HTML_TYPE, RenderService
from tabby.theme import ThemeRegistry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tabby.config import TabbyConfig
    from tabby.content.store import ScanResult
    from tabby.export.static import ExportResult, StaticExporter
    from tabby.images.optimizer import OptimizeResult


class SiteRuntime:
    """All live state of one site.

    Args:
        config: Site configuration.
        collector: Event sink shared by every component.
        overrides: Config overrides re-applied when the config file changes.
        clock: Clock for the coordinator's debounce timer.
        sleep: Sleep used by the coordinator while a debounce is pending.

    """

    def __init__(
        self,
        config: TabbyConfig,
        *,
        collector: StackCollector | None = None,
        overrides: dict[str, object] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.collector = collector if collector is not None else StackCollector()
        self.dimensions = DimensionCache()
        self.navigation = NavigationIndex()
        self._overrides = dict(overrides or {})
        self._assemble(config)
        self.engine = CacheEngine(
            self.renderer,
            compress_min_bytes=config.compress_min_bytes,
            static_bytes=config.static_cache_bytes,
            static_max_file=config.static_cache_max_file,
            collector=self.collector,
        )
        self.resolver = CacheResolver(self.engine, config.content_path, config.cache_path)
        self.coordinator = RebuildCoordinator(self, clock=clock, sleep=sleep)
        self.building = False

    @classmethod
    def from_root(cls, root: str | Path = ".", **overrides: object) -> SiteRuntime:
        """Load ``tabby.yaml`` (if any) from *root* and build a runtime."""
        config = load_config(Path(root), **overrides)
        return cls(config, overrides=overrides)

    def _assemble(self, config: TabbyConfig) -> None:
        """(Re)create the config-dependent components."""
        self.store = ContentStore(config, collector=self.collector, dimensions=self.dimensions)
        self.theme = ThemeRegistry(config)
        self.renderer = RenderService(config, self.store, self.navigation, self.theme)
        self.optimizer = ImageOptimizer(
            config.cache_path,
            quality=config.image_quality,
            workers=config.image_workers,
            collector=self.collector,
        )

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def load(self) -> ScanResult:
        """Scan the content root and build the navigation index.

        Raises:
            ContentError: The content root is unreadable or two files share a slug.

        """
        result = self.store.scan()
        self.navigation.refresh(self.store.mapping(), force=True)
        return result

    def warm(self) -> int:
        """Pre-render every page, artifact and the 404 page. Returns pages rendered."""
        pages = self.engine.populate_all()
        self.warm_dynamic()
        return pages

    def warm_dynamic(self) -> None:
        """Render the aggregate artifacts and the 404 page into the dynamic map."""
        for name in ARTIFACTS:
            if self.engine.get_dynamic(name) is not None:
                continue
            try:
                artifact = self.renderer.render_artifact(name)
            except RenderError as exc:
                print(f"  Render error: {name}: {exc}", file=sys.stderr)
                continue
            if artifact is not None:
                self.engine.put_dynamic(name, artifact.body, artifact.content_type)
        if self.engine.get_dynamic(NOT_FOUND_KEY) is None:
            body = self.renderer.render_not_found().encode("utf-8")
            self.engine.put_dynamic(NOT_FOUND_KEY, body, HTML_TYPE)

    async def optimize_images(self) -> OptimizeResult | None:
        """One image pass over every referenced image (guarded against overlap)."""
        return await self.coordinator.optimize_images()

    def export(self) -> ExportResult:
        """Write the whole site to ``config.output``.

        Runs the image pass with its own event loop; when a loop is already
        running, take ``exporter()`` on the loop and run its ``export`` in
        a worker thread instead.

        Raises:
            ExportError: A required template is missing or the output
                directory cannot be written.

        """
        return self.exporter().export()

    def exporter(self) -> StaticExporter:
        """A static exporter over a snapshot of the current content.

        The coordinator keeps mutating the live store while an export runs
        in a thread; the exporter only ever sees the snapshot.
        """
        from tabby.export.static import StaticExporter

        store = self.store.snapshot()
        navigation = NavigationIndex()
        navigation.refresh(store.mapping(), force=True)
        renderer = RenderService(self.config, store, navigation, self.theme)
        return StaticExporter(self.config, store, renderer, collector=self.collector)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_cache(self) -> int:
        """Empty every cache tier, then repopulate. Returns entries freed."""
        freed = self.engine.clear()
        self.warm()
        return freed

    def reload_theme(self) -> int:
        """Reload templates and re-render everything once. Returns pages rendered."""
        self.theme.reload()
        self.engine.static.discard_prefix(ASSET_PREFIX)
        self.engine.invalidate_pages("theme")
        self.engine.invalidate_dynamic("theme")
        return self.warm()

    def reconfigure(self) -> int:
        """Re-read the config file and rebuild everything that depends on it.

        Host, port and worker settings only take effect on restart.

        Raises:
            TabbyError: The new configuration, theme or content is unusable
                (the previous state stays in place).

        """
        config = load_config(self.config.root, **self._overrides)
        if (config.host, config.port, config.workers) != (
            self.config.host,
            self.config.port,
            self.config.workers,
        ):
            print("  Server settings changed; restart to apply them", file=sys.stderr)
        previous = (self.config, self.store, self.theme, self.renderer, self.optimizer)
        self.config = config
        try:
            self._assemble(config)
            self.load()
        except TabbyError:
            self.config, self.store, self.theme, self.renderer, self.optimizer = previous
            self.navigation.refresh(self.store.mapping(), force=True)
            raise
        self.engine.rebind(
            self.renderer,
            compress_min_bytes=config.compress_min_bytes,
        )
        self.resolver = CacheResolver(self.engine, config.content_path, config.cache_path)
        self.engine.clear()
        return self.warm()
