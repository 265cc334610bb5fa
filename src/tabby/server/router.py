"""Site router — serves a SiteRuntime through Chirp routes.

Every page request goes through the multi-tier cache resolver; handlers
only read the caches.  The route table:

    GET  /                      homepage (index slug, ``index`` record, or listing 1)
    GET  /page/{n}              listing page n
    GET  /tag/{tag}             tag listing
    GET  /category/{name}       category listing
    GET  /series/{name}         series listing
    GET  /search.json ...       aggregate artifacts
    GET  /tag/{tag}/rss.xml     per-tag feed (likewise category and series)
    GET  /assets/{path}         theme assets
    POST /__tabby/build         static export (admin)
    POST /__tabby/clear-cache   empty and re-warm every tier (admin)
    GET  /__tabby/stats         event log and request metrics (dev)
    GET  /{path}                content page, then content-tree file, then 404
"""

from __future__ import annotations

import asyncio
import sys
import time
from typing import TYPE_CHECKING, Any

from chirp import Request
from chirp.http.response import Response

from tabby._errors import TabbyError
from tabby.cache.keys import category_key, index_key, is_reserved_slug, series_key, tag_key
from tabby.content.metadata import slug_from_url
from tabby.render.service import ARTIFACTS, FEED_NAME, feed_name
from tabby.server.auth import token_authorizer
from tabby.server.responses import json_response, to_response

if TYPE_CHECKING:
    from chirp import App

    from tabby._types import Authorizer, TabbyMode
    from tabby.cache.http import HttpResult
    from tabby.runtime import SiteRuntime

ADMIN_PREFIX = "/__tabby"
BUILD_ENDPOINT = f"{ADMIN_PREFIX}/build"
CLEAR_CACHE_ENDPOINT = f"{ADMIN_PREFIX}/clear-cache"
STATS_ENDPOINT = f"{ADMIN_PREFIX}/stats"


class SiteRouter:
    """Registers the site's routes on a Chirp app.

    Handlers look up ``runtime.resolver`` per request, so a runtime that
    swaps its resolver (after a config change) is picked up immediately.

    Args:
        runtime: The live site.
        app: Chirp App to register routes on (must not yet be frozen).
        authorizer: Predicate gating the admin routes; defaults to a bearer
            token check against ``admin_token``.
        mode: ``"dev"`` also registers the stats endpoint.

    """

    def __init__(
        self,
        runtime: SiteRuntime,
        app: App,
        *,
        authorizer: Authorizer | None = None,
        mode: TabbyMode = "serve",
    ) -> None:
        self._runtime = runtime
        self._app = app
        self._authorize = authorizer or token_authorizer(runtime.config.admin_token)
        self._mode = mode
        self._route_count = 0

    @property
    def route_count(self) -> int:
        """Number of routes registered."""
        return self._route_count

    def register(self) -> None:
        """Register every route.  Must run before the app is frozen."""
        self.register_pages()
        self.register_artifacts()
        self.register_assets()
        self.register_admin()
        if self._mode == "dev":
            self.register_stats_endpoint()
        self.register_catch_all()

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def register_pages(self) -> None:
        """Homepage, numbered listings and taxonomy listings."""
        runtime = self._runtime

        async def home(request: Request) -> Response:
            start = time.perf_counter()
            key = runtime.renderer.homepage_key()
            return self._finish(request, self._resolve(request, key), start)

        async def listing(request: Request, n: int) -> Response:
            start = time.perf_counter()
            return self._finish(request, self._resolve(request, index_key(n)), start)

        async def tag_listing(request: Request, tag: str) -> Response:
            start = time.perf_counter()
            return self._finish(request, self._resolve(request, tag_key(tag)), start)

        async def category_listing(request: Request, name: str) -> Response:
            start = time.perf_counter()
            return self._finish(request, self._resolve(request, category_key(name)), start)

        async def series_listing(request: Request, name: str) -> Response:
            start = time.perf_counter()
            return self._finish(request, self._resolve(request, series_key(name)), start)

        self._add("/", home, "tabby:home")
        self._add("/page/{n:int}", listing, "tabby:listing")
        self._add("/tag/{tag}", tag_listing, "tabby:tag")
        self._add("/category/{name}", category_listing, "tabby:category")
        self._add("/series/{name}", series_listing, "tabby:series")

    def register_artifacts(self) -> None:
        """``/search.json``, ``/rss.xml``, ``/sitemap.xml``, ``/robots.txt``, ``/llms.txt``
        and the ``rss.xml`` feed under every tag, category and series.
        """
        for name in ARTIFACTS:
            self._add(f"/{name}", self._make_artifact_handler(name), f"tabby:{name}")
        self.register_feeds()

    def register_feeds(self) -> None:
        async def tag_feed(request: Request, tag: str) -> Response:
            return self._serve_artifact(request, feed_name("tag", tag))

        async def category_feed(request: Request, name: str) -> Response:
            return self._serve_artifact(request, feed_name("category", name))

        async def series_feed(request: Request, name: str) -> Response:
            return self._serve_artifact(request, feed_name("series", name))

        self._add(f"/tag/{{tag}}/{FEED_NAME}", tag_feed, "tabby:tag-feed")
        self._add(f"/category/{{name}}/{FEED_NAME}", category_feed, "tabby:category-feed")
        self._add(f"/series/{{name}}/{FEED_NAME}", series_feed, "tabby:series-feed")

    def _make_artifact_handler(self, name: str) -> Any:
        async def artifact_handler(request: Request) -> Response:
            return self._serve_artifact(request, name)

        artifact_handler.__name__ = f"artifact_{name.replace('.', '_')}"
        artifact_handler.__qualname__ = f"SiteRouter.{artifact_handler.__name__}"
        return artifact_handler

    def register_assets(self) -> None:
        """Theme assets under ``/assets/``."""
        runtime = self._runtime

        async def asset(request: Request, path: str) -> Response:
            start = time.perf_counter()
            accept_encoding, if_none_match = _conditional_headers(request)
            result = runtime.resolver.resolve_asset(path, accept_encoding, if_none_match)
            if result is None:
                result = runtime.resolver.not_found(accept_encoding, if_none_match)
            return self._finish(request, result, start)

        self._add("/assets/{path:path}", asset, "tabby:asset")

    def register_catch_all(self) -> None:
        """Content pages by URL, then content-tree files and image derivatives."""
        runtime = self._runtime

        async def catch_all(request: Request, path: str) -> Response:
            start = time.perf_counter()
            accept_encoding, if_none_match = _conditional_headers(request)
            resolver = runtime.resolver

            result: HttpResult | None = None
            slug = slug_from_url(path)
            if not is_reserved_slug(slug):
                result = resolver.resolve(slug, accept_encoding, if_none_match)
            if result is None:
                result = await resolver.resolve_file(path, accept_encoding, if_none_match)
            if result is None:
                result = resolver.not_found(accept_encoding, if_none_match)
            return self._finish(request, result, start)

        self._add("/{path:path}", catch_all, "tabby:content")

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def register_admin(self) -> None:
        """Build and clear-cache endpoints, both behind the authorizer."""
        runtime = self._runtime
        authorize = self._authorize

        async def build_handler(request: Request) -> Response:
            if not authorize(request):
                return json_response({"success": False, "message": "Forbidden"}, status=403)
            if runtime.building:
                return json_response(
                    {"success": False, "message": "Build already in progress"},
                    status=409,
                )
            runtime.building = True
            try:
                exporter = runtime.exporter()
                result = await asyncio.to_thread(exporter.export)
            except TabbyError as exc:
                print(f"  Build failed: {exc}", file=sys.stderr)
                return json_response({"success": False, "message": str(exc)}, status=500)
            finally:
                runtime.building = False
            return json_response({
                "success": True,
                "pages": result.total_pages,
                "assets": result.total_assets,
                "images": result.images_optimized,
                "failed": list(result.failed),
                "output": str(result.output_dir),
                "duration_ms": round(result.duration_ms, 1),
            })

        async def clear_cache_handler(request: Request) -> Response:
            if not authorize(request):
                return json_response({"success": False, "message": "Forbidden"}, status=403)
            freed = runtime.clear_cache()
            print(f"  Cache cleared ({freed} entries)", file=sys.stderr)
            return json_response({"success": True, "freed": freed})

        self._add(BUILD_ENDPOINT, build_handler, "tabby:build", methods=["POST"])
        self._add(CLEAR_CACHE_ENDPOINT, clear_cache_handler, "tabby:clear-cache", methods=["POST"])

    def register_stats_endpoint(self) -> None:
        """``/__tabby/stats``: event log summary, request metrics and tier sizes."""
        runtime = self._runtime

        async def stats_handler(request: Request) -> Response:
            collector = runtime.collector
            return json_response({
                "event_log": collector.log.stats(),
                "requests": collector.request_metrics(),
                "cache": runtime.engine.stats(),
            })

        self._add(STATS_ENDPOINT, stats_handler, "tabby:stats")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add(
        self,
        path: str,
        handler: Any,
        name: str,
        *,
        methods: list[str] | None = None,
    ) -> None:
        self._app.route(path, methods=methods or ["GET"], name=name)(handler)
        self._route_count += 1

    def _serve_artifact(self, request: Request, name: str) -> Response:
        start = time.perf_counter()
        accept_encoding, if_none_match = _conditional_headers(request)
        resolver = self._runtime.resolver
        result = resolver.resolve_artifact(name, accept_encoding, if_none_match)
        if result is None:
            result = resolver.not_found(accept_encoding, if_none_match)
        return self._finish(request, result, start)

    def _resolve(self, request: Request, key: str) -> HttpResult:
        accept_encoding, if_none_match = _conditional_headers(request)
        return self._runtime.resolver.resolve_or_404(key, accept_encoding, if_none_match)

    def _finish(self, request: Request, result: HttpResult, start: float) -> Response:
        self._runtime.collector.record_request(
            request.path,
            result.status,
            result.tier,
            encoding=result.encoding,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        return to_response(result)


def _conditional_headers(request: Request) -> tuple[str | None, str | None]:
    headers = request.headers
    return headers.get("accept-encoding"), headers.get("if-none-match")


def create_app(
    runtime: SiteRuntime,
    *,
    mode: TabbyMode = "serve",
    authorizer: Authorizer | None = None,
) -> App:
    """Create a Chirp App serving *runtime*.

    Chirp's HTML injection features are disabled: cached bodies, their
    ETags and the static export must stay byte-identical.
    """
    from chirp import App, AppConfig

    config = runtime.config
    app_config = AppConfig(
        template_dir=config.root,
        static_dir=None,
        debug=False,
        host=config.host,
        port=config.port,
        safe_target=False,
        sse_lifecycle=False,
        skip_contract_checks=True,
    )
    app = App(config=app_config)
    SiteRouter(runtime, app, authorizer=authorizer, mode=mode).register()
    return app
