"""Content data model — one frozen record per source file.

Records are immutable; the store replaces a record wholesale when its file
changes, so readers on the request path never observe a half-updated record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

type ContentType = Literal["markdown", "text", "html"]


@dataclass(frozen=True, slots=True)
class ImageReference:
    """A local image referenced from a content file.

    Attributes:
        src: The reference exactly as written in the source.
        resolved_path: Absolute path of the source image on disk.
        output_path: Web-style path of the image relative to the content root.
        basename: File stem used for derivative names.
        content_hash: 8 hex chars identifying the source (cache-busting).
        sizes: Derivative widths to generate, ascending.

    """

    src: str
    resolved_path: Path
    output_path: str
    basename: str
    content_hash: str
    sizes: tuple[int, ...]

    @property
    def url_base(self) -> str:
        """Web directory prefix of the derivatives (``""`` or ``"dir/"``)."""
        parent = self.output_path.rpartition("/")[0]
        return f"{parent}/" if parent else ""

    def derivative_name(self, size: int, fmt: str) -> str:
        """File name of one derivative: ``{basename}-{size}-{hash}.{fmt}``."""
        return f"{self.basename}-{size}-{self.content_hash}.{fmt}"

    def derivative_url(self, size: int, fmt: str) -> str:
        """Absolute URL path of one derivative."""
        return f"/{self.url_base}{self.derivative_name(size, fmt)}"

    @property
    def middle_size(self) -> int:
        """Width used for the ``<img>`` fallback and Open Graph images."""
        return self.sizes[len(self.sizes) // 2] if self.sizes else 800


@dataclass(frozen=True, slots=True)
class Heading:
    """A rendered heading (used for tables of contents)."""

    level: int
    text: str
    anchor: str


@dataclass(frozen=True, slots=True)
class TocItem:
    """One table-of-contents entry with nested children."""

    level: int
    text: str
    anchor: str
    children: tuple[TocItem, ...] = ()


@dataclass(frozen=True, slots=True)
class BrokenImage:
    """An image reference whose source file does not exist."""

    content_path: str
    src: str
    resolved_path: Path


@dataclass(frozen=True, slots=True)
class ContentRecord:
    """A parsed content file.

    ``rendered_html`` is non-null only for raw HTML documents that are served
    verbatim; ``body_html`` always holds the HTML that templates wrap.
    """

    slug: str
    url: str
    path: str
    title: str
    created_at: str
    updated_at: str
    content_type: ContentType
    body_html: str
    raw_content: str
    rendered_html: str | None = None
    tags: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    series: str | None = None
    description: str = ""
    section: str | None = None
    word_count: int = 0
    reading_time: int = 0
    images: tuple[ImageReference, ...] = ()
    headings: tuple[Heading, ...] = ()
    toc: tuple[TocItem, ...] = ()
    og_image: str | None = None
    front_matter: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_raw(self) -> bool:
        """True when the record is served verbatim, skipping templates."""
        return self.rendered_html is not None

    @property
    def template_hint(self) -> str | None:
        """Explicit ``template`` front-matter value, when it is a name."""
        value = self.front_matter.get("template")
        return value if isinstance(value, str) and value not in ("none", "") else None

    def summary(self) -> dict[str, Any]:
        """Listing-card view of the record used by index, tag and feed templates."""
        return {
            "slug": self.slug,
            "url": self.url,
            "title": self.title,
            "date": self.created_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "tags": list(self.tags),
            "categories": list(self.categories),
            "series": self.series,
            "description": self.description,
            "reading_time": self.reading_time,
        }
