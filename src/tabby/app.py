"""Tabby application — the three entry points.

``dev`` serves a site with the watcher and rebuild coordinator running,
``build`` exports it as static files, and ``serve`` runs the cached site
under multiple Pounce workers without a watcher.
"""

import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

from tabby.config_loader import load_config

if TYPE_CHECKING:
    from chirp import App

    from tabby._types import Authorizer, TabbyMode
    from tabby.export.static import ExportResult
    from tabby.runtime import SiteRuntime


def _load_runtime(root: str | Path, mode: TabbyMode, overrides: dict[str, object]) -> SiteRuntime:
    """Load config, pick a free port (dev/serve), scan content.

    Raises:
        ConfigError: Bad configuration or no free port.
        ContentError: The content root is unreadable.

    """
    from tabby.runtime import SiteRuntime

    config = load_config(Path(root), **overrides)
    if mode != "build":
        from tabby.server.ports import find_port

        port = find_port(config.host, config.port, config.port_attempts)
        if port != config.port:
            print(f"  Port {config.port} is busy, using {port}", file=sys.stderr)
            overrides = {**overrides, "port": port}
            config = load_config(Path(root), **overrides)

    runtime = SiteRuntime(config, overrides=overrides)
    runtime.load()
    return runtime


def _collect_warnings(runtime: SiteRuntime) -> list[str]:
    warnings = [
        f"theme has no {name}.html, using the default"
        for name in runtime.theme.missing_required()
    ]
    broken = runtime.store.broken_images()
    if broken:
        warnings.append(f"{len(broken)} broken image reference(s)")
    if not len(runtime.store):
        warnings.append(f"no content found in {runtime.config.content_path}")
    return warnings


def _banner(runtime: SiteRuntime, mode: TabbyMode, load_ms: float, cached: int = 0) -> None:
    from tabby.banner import print_banner
    from tabby.images.optimizer import unique_sources

    print_banner(
        runtime.config,
        len(runtime.store),
        mode,
        theme_name=runtime.theme.info.name,
        image_count=len(unique_sources(runtime.store.image_references())),
        cached_count=cached,
        load_ms=load_ms,
        warnings=_collect_warnings(runtime),
    )


def _start_watcher(runtime: SiteRuntime, app: App) -> object:
    """Wire the ContentWatcher to the rebuild coordinator via Chirp lifecycle hooks.

    Flow:
        on_startup  → start the watcher thread, spawn the coordinator task,
                      schedule the first image pass
        file change → coordinator.handle()
        on_shutdown → stop the watcher, cancel the coordinator and any
                      pending image pass

    Returns the ContentWatcher instance.

    """
    import asyncio

    from tabby.content.watcher import ContentWatcher

    watcher = ContentWatcher(runtime.config)
    _task: asyncio.Task[None] | None = None

    @app.on_startup
    async def _start_rebuild_loop() -> None:
        nonlocal _task
        watcher.start()
        _task = asyncio.create_task(runtime.coordinator.run(watcher))
        if runtime.store.image_references():
            runtime.coordinator.schedule_images()

    @app.on_shutdown
    async def _stop_rebuild_loop() -> None:
        watcher.stop()
        if _task is not None and not _task.done():
            _task.cancel()
        await runtime.coordinator.close()

    return watcher


def _run_server(runtime: SiteRuntime, app: App, *, workers: int) -> None:
    """Run *app* under Pounce.

    Pounce compression stays off: bodies are already encoded by the cache.
    """
    from pounce.config import ServerConfig
    from pounce.server import Server

    config = runtime.config
    server_config = ServerConfig(
        host=config.host,
        port=config.port,
        workers=workers,
        compression=False,
    )
    server = Server(server_config, app, lifecycle_collector=runtime.collector)
    server.run()


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def dev(root: str | Path = ".", *, authorizer: Authorizer | None = None, **kwargs: object) -> None:
    """Start the development server.

    Single worker with the watcher and rebuild coordinator active: content,
    theme, image and config edits update the caches in place.  Images are
    optimized in the background shortly after startup.

    Args:
        root: Path to the site root directory.
        authorizer: Predicate for the admin routes (default: bearer token).
        **kwargs: Override TabbyConfig fields.

    """
    from tabby.server.router import create_app

    t0 = time.perf_counter()
    runtime = _load_runtime(root, "dev", kwargs)
    cached = runtime.warm()
    app = create_app(runtime, mode="dev", authorizer=authorizer)
    _start_watcher(runtime, app)
    load_ms = (time.perf_counter() - t0) * 1000

    _banner(runtime, "dev", load_ms, cached)
    _run_server(runtime, app, workers=1)


def build(root: str | Path = ".", **kwargs: object) -> ExportResult:
    """Export the site as static files.

    Args:
        root: Path to the site root directory.
        **kwargs: Override TabbyConfig fields.

    Raises:
        ExportError: A required template is missing or output is unwritable.

    """
    t0 = time.perf_counter()
    runtime = _load_runtime(root, "build", kwargs)
    load_ms = (time.perf_counter() - t0) * 1000

    _banner(runtime, "build", load_ms)
    result = runtime.export()
    _print_export_summary(result)
    return result


def _print_export_summary(result: ExportResult) -> None:
    """Print export completion summary to stderr."""
    lines = [
        "",
        "─" * 41,
        f"  Exported {result.total_pages} page{'s' if result.total_pages != 1 else ''}",
    ]
    if result.total_assets > 0:
        lines.append(
            f"  Copied {result.total_assets} asset{'s' if result.total_assets != 1 else ''}"
        )
    if result.images_optimized > 0:
        lines.append(f"  Optimized {result.images_optimized} image(s)")
    if result.failed:
        lines.append(f"  Skipped {len(result.failed)} failed item(s): {', '.join(result.failed)}")
    lines.append(f"  Output: {result.output_dir}")
    lines.append(f"  Done in {result.duration_ms:.0f}ms")

    print("\n".join(lines), file=sys.stderr)


def serve(root: str | Path = ".", *, authorizer: Authorizer | None = None, **kwargs: object) -> None:
    """Run the site as a live Pounce server in production.

    Every page, listing and artifact is rendered into the caches before the
    first request.  Multiple workers share the runtime read-only; there is
    no watcher, so content changes need a restart (or an admin clear-cache).

    Args:
        root: Path to the site root directory.
        authorizer: Predicate for the admin routes (default: bearer token).
        **kwargs: Override TabbyConfig fields.

    """
    from tabby.server.router import create_app

    t0 = time.perf_counter()
    runtime = _load_runtime(root, "serve", kwargs)
    cached = runtime.warm()
    app = create_app(runtime, mode="serve", authorizer=authorizer)
    load_ms = (time.perf_counter() - t0) * 1000

    _banner(runtime, "serve", load_ms, cached)
    _run_server(runtime, app, workers=runtime.config.workers)
