"""Shared type definitions for tabby."""

from collections.abc import Callable
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from chirp import Request

# Mode of operation
type TabbyMode = Literal["dev", "build", "serve"]

# Unique content identifier derived from the relative path (e.g. "docs/intro")
type Slug = str

# Cache key: a slug, or a synthetic key such as "__index_2" / "__tag_python"
type CacheKey = str

# Negotiated content encoding
type Encoding = Literal["br", "gzip"]

# How content slugs are derived from file names
type UrlMode = Literal["clean", "path"]

# Predicate gating the admin routes (build, clear-cache)
type Authorizer = Callable[[Request], bool]
