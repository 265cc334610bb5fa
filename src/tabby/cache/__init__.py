"""Caching — one engine object per site, read by handlers, written by the coordinator.

The leaf helpers are re-exported here.  The engine and resolver depend on
the render service (which itself uses the cache keys), so import them from
``tabby.cache.engine`` and ``tabby.cache.resolver``.

Quick Start:
    >>> from tabby.cache import FifoByteCache, StaticEntry
    >>> cache = FifoByteCache(max_bytes=8, max_entry_bytes=8)
    >>> cache.put("a", StaticEntry(b"12345", "text/plain", '"a"'))
    True
    >>> cache.put("b", StaticEntry(b"1234", "text/plain", '"b"'))
    True
    >>> cache.keys()
    ['b']

"""

from tabby.cache.http import (
    HttpResult,
    cache_control_for,
    cached_response,
    etag_for,
    etag_matches,
    negotiate_encoding,
)
from tabby.cache.keys import category_key, index_key, parse_key, series_key, tag_key
from tabby.cache.static import FifoByteCache, StaticEntry

__all__ = [
    "FifoByteCache",
    "HttpResult",
    "StaticEntry",
    "cache_control_for",
    "cached_response",
    "category_key",
    "etag_for",
    "etag_matches",
    "index_key",
    "negotiate_encoding",
    "parse_key",
    "series_key",
    "tag_key",
]
