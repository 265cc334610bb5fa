"""Cache engine — one object owning every cache tier of a site.

Tiers:

- ``rendered``: identity HTML bytes per cache key, with its ETag.
- ``precompressed``: brotli and gzip encodings per (key, encoding), always
  derived from the bytes currently in ``rendered`` for the same key.
- ``dynamic``: aggregate artifacts (search index, feeds, sitemap, robots,
  llms) and the 404 page, keyed by artifact name.
- ``static``: byte-budgeted FIFO of on-disk files served verbatim.

After startup the rebuild coordinator is the only writer of the rendered
and precompressed tiers.  Invalidating a key always drops both tiers
before either can be served again.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tabby._errors import RenderError
from tabby.cache.http import ENCODINGS, compress, decompress, etag_for
from tabby.cache.keys import is_listing_key
from tabby.cache.static import FifoByteCache
from tabby.render.service import HTML_TYPE

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tabby._types import Encoding
    from tabby.observability.collector import StackCollector
    from tabby.render.service import RenderService

NOT_FOUND_KEY = "404"


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Identity bytes of one rendered page or artifact."""

    body: bytes
    etag: str
    content_type: str = HTML_TYPE


@dataclass(frozen=True, slots=True)
class EncodedEntry:
    """Pre-encoded bytes; ``etag`` is the ETag of the identity body."""

    body: bytes
    etag: str
    encoding: Encoding
    content_type: str = HTML_TYPE


class CacheEngine:
    """All cache tiers for one site instance.

    Args:
        renderer: Render service used to (re)populate entries.
        compress_min_bytes: Bodies at or below this size are not precompressed.
        static_bytes: Byte budget of the static-asset cache.
        static_max_file: Files at or above this size bypass the static cache.
        collector: Optional event sink for invalidations.

    """

    def __init__(
        self,
        renderer: RenderService,
        *,
        compress_min_bytes: int = 1024,
        static_bytes: int = 50 * 1024 * 1024,
        static_max_file: int = 5 * 1024 * 1024,
        collector: StackCollector | None = None,
    ) -> None:
        self._renderer = renderer
        self._compress_min = compress_min_bytes
        self._collector = collector
        self.rendered: dict[str, CacheEntry] = {}
        self.precompressed: dict[tuple[str, Encoding], EncodedEntry] = {}
        self.dynamic: dict[str, CacheEntry] = {}
        self.static = FifoByteCache(static_bytes, static_max_file)

    @property
    def renderer(self) -> RenderService:
        return self._renderer

    @property
    def compress_min_bytes(self) -> int:
        return self._compress_min

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def populate(self, key: str) -> bool:
        """Render *key* into the rendered tier and precompress it.

        Returns False when nothing lives at *key* (its entries are dropped)
        or the render failed (logged; the previous entries are dropped so a
        stale page is never served as current).
        """
        try:
            html = self._renderer.render_key(key)
        except RenderError as exc:
            print(f"  Render error: {key}: {exc}", file=sys.stderr)
            self._drop(key)
            return False
        if html is None:
            self._drop(key)
            return False
        self.store(key, html.encode("utf-8"))
        return True

    def populate_all(self, keys: Iterable[str] | None = None) -> int:
        """Populate every key (default: all renderable keys). Returns pages rendered.

        One failing page is logged and skipped; the rest still render.
        """
        targets = list(keys) if keys is not None else self._renderer.all_keys()
        return sum(1 for key in targets if self.populate(key))

    def store(self, key: str, body: bytes, content_type: str = HTML_TYPE) -> CacheEntry:
        """Replace the rendered entry for *key* and re-derive its encodings."""
        entry = CacheEntry(body=body, etag=etag_for(body), content_type=content_type)
        encoded = {}
        if len(body) > self._compress_min:
            encoded = {
                encoding: EncodedEntry(
                    body=compress(body, encoding),
                    etag=entry.etag,
                    encoding=encoding,
                    content_type=content_type,
                )
                for encoding in ENCODINGS
            }
        self._drop_encoded(key)
        self.rendered[key] = entry
        for encoding, value in encoded.items():
            self.precompressed[(key, encoding)] = value
        return entry

    def store_rendered(self, key: str, body: bytes, content_type: str = HTML_TYPE) -> CacheEntry:
        """Fallback-path store: rendered tier only, any encodings dropped."""
        entry = CacheEntry(body=body, etag=etag_for(body), content_type=content_type)
        self._drop_encoded(key)
        self.rendered[key] = entry
        return entry

    def rebind(self, renderer: RenderService, *, compress_min_bytes: int | None = None) -> None:
        """Point the engine at a new render service (after a config reload)."""
        self._renderer = renderer
        if compress_min_bytes is not None:
            self._compress_min = compress_min_bytes

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_rendered(self, key: str) -> CacheEntry | None:
        return self.rendered.get(key)

    def get_encoded(self, key: str, encoding: Encoding) -> EncodedEntry | None:
        return self.precompressed.get((key, encoding))

    def get_dynamic(self, name: str) -> CacheEntry | None:
        return self.dynamic.get(name)

    def put_dynamic(self, name: str, body: bytes, content_type: str) -> CacheEntry:
        entry = CacheEntry(body=body, etag=etag_for(body), content_type=content_type)
        self.dynamic[name] = entry
        return entry

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def _drop_encoded(self, key: str) -> None:
        for encoding in ENCODINGS:
            self.precompressed.pop((key, encoding), None)

    def _drop(self, key: str) -> bool:
        self._drop_encoded(key)
        return self.rendered.pop(key, None) is not None

    def invalidate(self, keys: Iterable[str], reason: str = "content") -> list[str]:
        """Drop *keys* from the rendered and precompressed tiers."""
        dropped = [key for key in keys if self._drop(key)]
        self._record(dropped, reason)
        return dropped

    def invalidate_listings(self, reason: str = "aggregate") -> list[str]:
        """Drop every listing page (index, tag, category, series)."""
        return self.invalidate([k for k in list(self.rendered) if is_listing_key(k)], reason)

    def invalidate_dynamic(self, reason: str = "aggregate") -> list[str]:
        """Drop every aggregate artifact and the cached 404 page."""
        dropped = list(self.dynamic)
        self.dynamic.clear()
        self._record(dropped, reason)
        return dropped

    def invalidate_pages(self, reason: str = "theme") -> list[str]:
        """Drop the whole rendered and precompressed tiers."""
        dropped = list(self.rendered)
        self.rendered.clear()
        self.precompressed.clear()
        self._record(dropped, reason)
        return dropped

    def clear(self) -> int:
        """Empty every tier. Returns the number of entries freed."""
        freed = (
            len(self.rendered)
            + len(self.precompressed)
            + len(self.dynamic)
            + self.static.clear()
        )
        keys = [*self.rendered, *self.dynamic]
        self.rendered.clear()
        self.precompressed.clear()
        self.dynamic.clear()
        self._record(keys, "clear")
        return freed

    def _record(self, keys: list[str], reason: str) -> None:
        if self._collector is not None:
            self._collector.record_invalidation(keys, reason)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_consistent(self, key: str) -> bool:
        """True when every encoding of *key* decodes to its rendered bytes."""
        entry = self.rendered.get(key)
        for encoding in ENCODINGS:
            encoded = self.precompressed.get((key, encoding))
            if encoded is None:
                continue
            if entry is None or decompress(encoded.body, encoding) != entry.body:
                return False
            if encoded.etag != entry.etag:
                return False
        return True

    def stats(self) -> dict[str, int]:
        return {
            "rendered": len(self.rendered),
            "precompressed": len(self.precompressed),
            "dynamic": len(self.dynamic),
            "static": len(self.static),
            "static_bytes": self.static.size,
        }
