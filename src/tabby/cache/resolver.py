"""Multi-tier cache resolver — cache key in, fully-decided HTTP result out.

Pages resolve in order, first hit wins:

1. precompressed tier, for the client's preferred encoding
2. rendered tier, through the standard HTTP-cache path
3. a fresh render, stored into the rendered tier

The tier lookups are plain dictionary reads and never touch the disk.
Only on-disk files (content-tree files, image derivatives) are read, off
the event loop, and only on a static-cache miss.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from tabby._errors import RenderError
from tabby.cache.engine import NOT_FOUND_KEY
from tabby.cache.http import (
    HttpResult,
    cache_control_for,
    cached_response,
    etag_for,
    etag_matches,
    negotiate_encoding,
    not_modified,
)
from tabby.cache.static import StaticEntry
from tabby.content.metadata import is_content_file, is_draft_path
from tabby.render.service import HTML_TYPE, content_type_for

if TYPE_CHECKING:
    from tabby.cache.engine import CacheEngine, CacheEntry
    from tabby.cache.http import Tier

ASSET_PREFIX = "asset:"
FILE_PREFIX = "file:"

SERVER_ERROR = b"500 Internal Server Error"


def server_error() -> HttpResult:
    """Minimal 500 for a failed render; never cached."""
    return HttpResult(
        status=500,
        body=SERVER_ERROR,
        content_type="text/plain; charset=utf-8",
        headers=(("Cache-Control", "no-store"),),
        tier="render",
    )


def _within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


class CacheResolver:
    """Answers requests from a :class:`CacheEngine`.

    Args:
        engine: The cache engine to read (and, on a tier-3 miss, fill).
        content_root: Root of the content tree (verbatim files).
        derivative_root: Directory holding optimized image derivatives.

    """

    def __init__(
        self,
        engine: CacheEngine,
        content_root: Path,
        derivative_root: Path,
    ) -> None:
        self._engine = engine
        self._content_root = content_root
        self._derivative_root = derivative_root

    @property
    def engine(self) -> CacheEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def resolve(
        self,
        key: str,
        accept_encoding: str | None = None,
        if_none_match: str | None = None,
    ) -> HttpResult | None:
        """Resolve a page key; ``None`` when no page lives at *key*."""
        engine = self._engine

        encoding = negotiate_encoding(accept_encoding)
        if encoding is not None:
            encoded = engine.get_encoded(key, encoding)
            if encoded is not None:
                if etag_matches(if_none_match, encoded.etag):
                    return not_modified(encoded.etag, encoded.content_type, tier="precompressed")
                return HttpResult(
                    status=200,
                    body=encoded.body,
                    content_type=encoded.content_type,
                    headers=(
                        ("ETag", encoded.etag),
                        ("Cache-Control", cache_control_for(encoded.content_type)),
                        ("Vary", "Accept-Encoding"),
                        ("Content-Encoding", encoding),
                    ),
                    tier="precompressed",
                    encoding=encoding,
                )

        entry = engine.get_rendered(key)
        tier: Tier = "rendered"
        if entry is None:
            try:
                html = engine.renderer.render_key(key)
            except RenderError as exc:
                print(f"  Render error: {key}: {exc}", file=sys.stderr)
                return server_error()
            if html is None:
                return None
            entry = engine.store_rendered(key, html.encode("utf-8"))
            tier = "render"
        return self._respond(entry, accept_encoding, if_none_match, tier=tier)

    def not_found(
        self,
        accept_encoding: str | None = None,
        if_none_match: str | None = None,
    ) -> HttpResult:
        """The 404 page, rendered once and kept in the dynamic map."""
        entry = self._engine.get_dynamic(NOT_FOUND_KEY)
        tier: Tier = "dynamic"
        if entry is None:
            body = self._engine.renderer.render_not_found().encode("utf-8")
            entry = self._engine.put_dynamic(NOT_FOUND_KEY, body, HTML_TYPE)
            tier = "render"
        return self._respond(entry, accept_encoding, if_none_match, tier=tier, status=404)

    def resolve_or_404(
        self,
        key: str,
        accept_encoding: str | None = None,
        if_none_match: str | None = None,
    ) -> HttpResult:
        result = self.resolve(key, accept_encoding, if_none_match)
        if result is None:
            return self.not_found(accept_encoding, if_none_match)
        return result

    # ------------------------------------------------------------------
    # Aggregate artifacts and theme assets
    # ------------------------------------------------------------------

    def resolve_artifact(
        self,
        name: str,
        accept_encoding: str | None = None,
        if_none_match: str | None = None,
    ) -> HttpResult | None:
        """An aggregate artifact or taxonomy feed, rendered on first request."""
        entry = self._engine.get_dynamic(name)
        tier: Tier = "dynamic"
        if entry is None:
            try:
                artifact = self._engine.renderer.render_artifact(name)
            except RenderError as exc:
                print(f"  Render error: {name}: {exc}", file=sys.stderr)
                return server_error()
            if artifact is None:
                return None
            entry = self._engine.put_dynamic(name, artifact.body, artifact.content_type)
            tier = "render"
        return self._respond(entry, accept_encoding, if_none_match, tier=tier)

    def resolve_asset(
        self,
        name: str,
        accept_encoding: str | None = None,
        if_none_match: str | None = None,
    ) -> HttpResult | None:
        """A theme asset; templated assets are rendered once per theme load."""
        key = ASSET_PREFIX + name
        cached = self._engine.static.get(key)
        tier: Tier = "static"
        if cached is None:
            try:
                artifact = self._engine.renderer.render_asset(name)
            except RenderError as exc:
                print(f"  Render error: assets/{name}: {exc}", file=sys.stderr)
                return server_error()
            if artifact is None:
                return None
            cached = StaticEntry(
                body=artifact.body,
                content_type=artifact.content_type,
                etag=etag_for(artifact.body),
            )
            self._engine.static.put(key, cached)
            tier = "render"
        return self._respond_static(cached, accept_encoding, if_none_match, tier=tier)

    # ------------------------------------------------------------------
    # On-disk files
    # ------------------------------------------------------------------

    def locate_file(self, rel_path: str) -> Path | None:
        """Disk path for a content-tree file or image derivative, if servable.

        Content sources, drafts and anything outside the two roots are
        never served as files.
        """
        rel_path = rel_path.strip("/")
        if not rel_path or is_content_file(rel_path) or is_draft_path(rel_path):
            return None
        parts = rel_path.split("/")
        if ".." in parts:
            return None
        for root in (self._content_root, self._derivative_root):
            candidate = root.joinpath(*parts)
            if candidate.is_file() and _within(candidate, root):
                return candidate
        return None

    async def resolve_file(
        self,
        rel_path: str,
        accept_encoding: str | None = None,
        if_none_match: str | None = None,
    ) -> HttpResult | None:
        """Serve a file from the content tree or the derivative cache."""
        key = FILE_PREFIX + rel_path.strip("/")
        cached = self._engine.static.get(key)
        if cached is not None:
            return self._respond_static(cached, accept_encoding, if_none_match, tier="static")

        path = self.locate_file(rel_path)
        if path is None:
            return None
        try:
            body = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            print(f"  Read error: {rel_path}: {exc}", file=sys.stderr)
            return None
        entry = StaticEntry(body=body, content_type=content_type_for(path.name), etag=etag_for(body))
        self._engine.static.put(key, entry)
        return self._respond_static(entry, accept_encoding, if_none_match, tier="none")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _respond(
        self,
        entry: CacheEntry,
        accept_encoding: str | None,
        if_none_match: str | None,
        *,
        tier: Tier,
        status: int = 200,
    ) -> HttpResult:
        return cached_response(
            entry.body,
            entry.content_type,
            accept_encoding=accept_encoding,
            if_none_match=if_none_match,
            etag=entry.etag,
            compress_min_bytes=self._engine.compress_min_bytes,
            status=status,
            tier=tier,
        )

    def _respond_static(
        self,
        entry: StaticEntry,
        accept_encoding: str | None,
        if_none_match: str | None,
        *,
        tier: Tier,
    ) -> HttpResult:
        return cached_response(
            entry.body,
            entry.content_type,
            accept_encoding=accept_encoding,
            if_none_match=if_none_match,
            etag=entry.etag,
            compress_min_bytes=self._engine.compress_min_bytes,
            tier=tier,
        )
