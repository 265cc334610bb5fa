"""Markdown rendering with an image-reference side channel.

Patitas parses the body once.  A single ``transform`` pass rewrites every
local image into a responsive ``<picture>`` element and records an
``ImageReference`` for the optimizer, while headings are collected for the
table of contents.  Nothing re-parses the source to find images later.
"""

from __future__ import annotations

import html
import posixpath
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from patitas import Markdown, extract_text, transform
from patitas.nodes import Heading as HeadingNode
from patitas.nodes import HtmlInline, Image
from patitas.utils.text import slugify as heading_slugify

from tabby.content.records import Heading, ImageReference, TocItem
from tabby.images.optimizer import source_hash, target_sizes

if TYPE_CHECKING:
    from patitas.nodes import Node

type DimensionLookup = Callable[[Path], int | None]

_EXTERNAL_PREFIXES = ("http://", "https://", "//", "data:")
_TOC_LEVELS = (2, 3, 4)


@dataclass(frozen=True, slots=True)
class RenderedMarkdown:
    """Output of one markdown render."""

    html: str
    images: tuple[ImageReference, ...]
    headings: tuple[Heading, ...]

    @property
    def toc(self) -> tuple[TocItem, ...]:
        return build_toc(self.headings)


def is_external(src: str) -> bool:
    """True for absolute URLs that the optimizer must leave alone."""
    return src.lower().startswith(_EXTERNAL_PREFIXES)


def resolve_image(src: str, web_path: str, content_root: Path) -> tuple[Path, str]:
    """Resolve an image reference to ``(absolute_path, web_output_path)``.

    ``/x.png`` is relative to the content root; anything else is relative to
    the directory of the referencing file.  The output path is always
    forward-slashed, independent of the host OS.
    """
    target = src.split("#", 1)[0].split("?", 1)[0]
    if target.startswith("/"):
        output = posixpath.normpath(target.lstrip("/"))
    else:
        base = posixpath.dirname(web_path)
        output = posixpath.normpath(posixpath.join(base, target))
    output = output.lstrip("/")
    return content_root.joinpath(*output.split("/")), output


def picture_markup(ref: ImageReference, alt: str, title: str | None = None) -> str:
    """Responsive ``<picture>`` with WebP and JPEG sources for *ref*."""
    sizes = ref.sizes
    middle = ref.middle_size
    sizes_attr = (
        f"(max-width: {sizes[0]}px) {sizes[0]}px, "
        f"(max-width: {middle}px) {middle}px, {sizes[-1]}px"
    )
    webp = ", ".join(f"{ref.derivative_url(s, 'webp')} {s}w" for s in sizes)
    jpg = ", ".join(f"{ref.derivative_url(s, 'jpg')} {s}w" for s in sizes)
    title_attr = f' title="{html.escape(title)}"' if title else ""
    return (
        "<picture>"
        f'<source srcset="{webp}" type="image/webp" sizes="{sizes_attr}">'
        f'<source srcset="{jpg}" type="image/jpeg" sizes="{sizes_attr}">'
        f'<img src="{ref.derivative_url(middle, "jpg")}" alt="{html.escape(alt)}"'
        f'{title_attr} loading="lazy" decoding="async">'
        "</picture>"
    )


def build_toc(headings: tuple[Heading, ...] | list[Heading]) -> tuple[TocItem, ...]:
    """Nest a flat heading list into table-of-contents items.

    A heading becomes the child of the closest preceding heading with a
    lower level; skipped levels are tolerated.
    """

    def _build(start: int, parent_level: int) -> tuple[list[TocItem], int]:
        items: list[TocItem] = []
        i = start
        while i < len(headings):
            heading = headings[i]
            if heading.level <= parent_level:
                break
            children, i = _build(i + 1, heading.level)
            items.append(
                TocItem(
                    level=heading.level,
                    text=heading.text,
                    anchor=heading.anchor,
                    children=tuple(children),
                )
            )
        return items, i

    items, _ = _build(0, 0)
    return tuple(items)


class MarkdownRenderer:
    """Render markdown bodies to HTML for one content root.

    Args:
        content_root: Absolute path of the content directory.
        sizes: Standard derivative widths.
        dimensions: Returns the natural width of an image file, or ``None``
            when it cannot be read.  Called synchronously before markup is
            produced so derivative sizing never races the render.

    """

    def __init__(
        self,
        content_root: Path,
        sizes: tuple[int, ...] = (400, 800, 1200),
        dimensions: DimensionLookup | None = None,
    ) -> None:
        self._content_root = content_root
        self._sizes = tuple(sorted(sizes))
        self._dimensions = dimensions
        self._md = Markdown(plugins=["table"])

    def render(self, body: str, web_path: str) -> RenderedMarkdown:
        """Render *body* (front matter already stripped) of the file at *web_path*."""
        images: list[ImageReference] = []
        headings: list[Heading] = []
        seen_anchors: set[str] = set()

        def visit(node: Node) -> Node | None:
            if isinstance(node, Image) and not is_external(node.url):
                ref = self._reference(node.url, web_path)
                images.append(ref)
                return HtmlInline(
                    location=node.location,
                    html=picture_markup(ref, node.alt, node.title),
                )
            if isinstance(node, HeadingNode):
                headings.append(self._heading(node, body, seen_anchors))
            return node

        doc = self._md.parse(body, source_file=web_path)
        doc = transform(doc, visit)
        markup = self._md.render(doc, source=body)
        toc_headings = tuple(h for h in headings if h.level in _TOC_LEVELS)
        return RenderedMarkdown(html=markup, images=tuple(images), headings=toc_headings)

    def _reference(self, src: str, web_path: str) -> ImageReference:
        resolved, output = resolve_image(src, web_path, self._content_root)
        natural = self._dimensions(resolved) if self._dimensions is not None else None
        return ImageReference(
            src=src,
            resolved_path=resolved,
            output_path=output,
            basename=resolved.stem,
            content_hash=source_hash(output),
            sizes=target_sizes(natural, self._sizes),
        )

    @staticmethod
    def _heading(node: HeadingNode, source: str, seen: set[str]) -> Heading:
        # Same anchor rules as the HTML renderer: explicit id, else slug,
        # de-duplicated with a numeric suffix.
        text = extract_text(node, source=source)
        anchor = node.explicit_id or heading_slugify(text)
        original, counter = anchor, 1
        while anchor in seen:
            anchor = f"{original}-{counter}"
            counter += 1
        seen.add(anchor)
        return Heading(level=node.level, text=text, anchor=anchor)
