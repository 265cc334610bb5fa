"""Cache keys — one namespace per artifact kind.

Content pages are keyed by slug.  Synthetic pages use reserved prefixes
that no slug can produce (the content store rejects slugs starting with
``__``), so unrelated artifacts never collide.
"""

from __future__ import annotations

from typing import Literal

RESERVED_PREFIX = "__"
INDEX_PREFIX = "__index_"
TAG_PREFIX = "__tag_"
CATEGORY_PREFIX = "__category_"
SERIES_PREFIX = "__series_"

type KeyKind = Literal["content", "index", "tag", "category", "series"]

_PREFIXES: tuple[tuple[str, KeyKind], ...] = (
    (INDEX_PREFIX, "index"),
    (TAG_PREFIX, "tag"),
    (CATEGORY_PREFIX, "category"),
    (SERIES_PREFIX, "series"),
)


def index_key(page: int) -> str:
    return f"{INDEX_PREFIX}{page}"


def tag_key(tag: str) -> str:
    return f"{TAG_PREFIX}{tag}"


def category_key(name: str) -> str:
    return f"{CATEGORY_PREFIX}{name}"


def series_key(name: str) -> str:
    return f"{SERIES_PREFIX}{name}"


def parse_key(key: str) -> tuple[KeyKind, str]:
    """Split a cache key into its kind and argument.

    >>> parse_key("__tag_python")
    ('tag', 'python')
    >>> parse_key("docs/intro")
    ('content', 'docs/intro')

    """
    for prefix, kind in _PREFIXES:
        if key.startswith(prefix):
            return kind, key[len(prefix) :]
    return "content", key


def is_reserved_slug(slug: str) -> bool:
    """True when *slug* would land in the synthetic-key namespace."""
    return slug.startswith(RESERVED_PREFIX)


def is_listing_key(key: str) -> bool:
    """True for synthetic keys whose page aggregates several records."""
    return parse_key(key)[0] != "content"
