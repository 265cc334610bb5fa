"""Render service — records, listings and aggregate artifacts to bytes.

Every function here reads the store, the navigation index and the theme,
and returns a rendered body.  Nothing is cached here; the cache engine
and the static exporter both call the same methods, so a live response and
an exported file are identical for the same inputs.
"""

from __future__ import annotations

import json
import mimetypes
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tabby._errors import RenderError, ThemeError
from tabby.cache.keys import (
    category_key,
    index_key,
    parse_key,
    series_key,
    tag_key,
)
from tabby.content.metadata import search_text, slugify
from tabby.render.feeds import generate_rss
from tabby.render.pagination import pagination_context, total_pages
from tabby.render.sitemap import generate_sitemap, sitemap_entries

if TYPE_CHECKING:
    from tabby.config import TabbyConfig
    from tabby.content.navigation import NavigationIndex
    from tabby.content.records import ContentRecord, TocItem
    from tabby.content.store import ContentStore
    from tabby.theme import ThemeRegistry

HTML_TYPE = "text/html; charset=utf-8"

ARTIFACTS: dict[str, str] = {
    "search.json": "application/json; charset=utf-8",
    "rss.xml": "application/rss+xml; charset=utf-8",
    "sitemap.xml": "application/xml; charset=utf-8",
    "robots.txt": "text/plain; charset=utf-8",
    "llms.txt": "text/plain; charset=utf-8",
}

FEED_NAME = "rss.xml"
FEED_KINDS = ("tag", "category", "series")

LLMS_RECENT = 10
RELATED_LIMIT = 3

DEFAULT_NOT_FOUND = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>404 Not Found</title></head>
<body><h1>404 Not Found</h1><p>The requested page does not exist.</p><p><a href="/">Home</a></p></body>
</html>
"""


@dataclass(frozen=True, slots=True)
class Artifact:
    """A rendered body and its media type."""

    body: bytes
    content_type: str


def content_type_for(name: str) -> str:
    """Media type for a file name, with ``charset`` for text types."""
    guessed, _ = mimetypes.guess_type(name)
    if guessed is None:
        return "application/octet-stream"
    if guessed.startswith("text/") or guessed in ("application/javascript", "application/json"):
        return f"{guessed}; charset=utf-8"
    return guessed


def feed_name(kind: str, name: str) -> str:
    """Artifact name of the taxonomy feed, e.g. ``tag/python/rss.xml``."""
    return f"{kind}/{name}/{FEED_NAME}"


def parse_feed_name(name: str) -> tuple[str, str] | None:
    """Split ``<kind>/<name>/rss.xml`` into ``(kind, name)``; ``None`` otherwise."""
    kind, _, rest = name.partition("/")
    if kind not in FEED_KINDS or not rest.endswith(f"/{FEED_NAME}"):
        return None
    arg = rest.removesuffix(f"/{FEED_NAME}")
    if not arg or "/" in arg:
        return None
    return kind, arg


def _toc_dicts(items: tuple[TocItem, ...]) -> list[dict[str, Any]]:
    return [
        {
            "level": item.level,
            "text": item.text,
            "anchor": item.anchor,
            "children": _toc_dicts(item.children),
        }
        for item in items
    ]


class RenderService:
    """Renders pages and artifacts for one site.

    Args:
        config: Site configuration.
        store: Content store (read only).
        navigation: Navigation index (read only).
        theme: Active theme registry.

    """

    def __init__(
        self,
        config: TabbyConfig,
        store: ContentStore,
        navigation: NavigationIndex,
        theme: ThemeRegistry,
    ) -> None:
        self._config = config
        self._store = store
        self._navigation = navigation
        self._theme = theme

    @property
    def theme(self) -> ThemeRegistry:
        return self._theme

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def homepage_key(self) -> str:
        """Configured index slug, then an ``index`` record, then listing page 1."""
        if self._config.index and self._config.index in self._store:
            return self._config.index
        if "index" in self._store:
            return "index"
        return index_key(1)

    def listing_pages(self) -> int:
        return total_pages(len(self._store), self._config.posts_per_page)

    def listing_keys(self) -> list[str]:
        """Keys of every synthetic listing page (index, tag, category, series)."""
        keys = [index_key(n) for n in range(1, self.listing_pages() + 1)]
        keys.extend(tag_key(tag) for tag in self._store.all_tags())
        keys.extend(category_key(name) for name in self._store.all_categories())
        keys.extend(series_key(slugify(name)) for name in self._store.all_series())
        return keys

    def all_keys(self) -> list[str]:
        """Every key that renders to a page, in pre-render order."""
        return [record.slug for record in self._store.records()] + self.listing_keys()

    def render_key(self, key: str) -> str | None:
        """Render the page behind *key*; ``None`` when nothing lives there.

        Raises:
            RenderError: The page exists but failed to render.

        """
        kind, arg = parse_key(key)
        if kind == "content":
            record = self._store.get(arg)
            return self.render_content(record) if record is not None else None
        if kind == "index":
            try:
                page = int(arg)
            except ValueError:
                return None
            return self.render_listing(page)
        if kind == "tag":
            return self.render_taxonomy("tag", arg, self._store.by_tag(arg))
        if kind == "category":
            return self.render_taxonomy("category", arg, self._store.by_category(arg))
        records = self._store.by_series(arg)
        name = records[0].series if records else arg
        return self.render_taxonomy("series", name or arg, records)

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def base_context(self) -> dict[str, Any]:
        return {
            "site": self._config.site_context(),
            "navigation": self._navigation.as_dicts(),
            "theme": {"name": self._theme.info.name, "version": self._theme.info.version},
            "all_tags": self._store.all_tags(),
            "all_categories": self._store.all_categories(),
            "all_series": self._store.all_series(),
        }

    def template_for(self, record: ContentRecord) -> str:
        """Front matter ``template`` → section → ``index`` for the index slug → post → page → index."""
        candidates = [
            record.template_hint or "",
            record.section or "",
            "index" if record.slug == "index" else "",
            "post",
            "page",
        ]
        return self._theme.first_available(candidates) or "index"

    def render_content(self, record: ContentRecord) -> str:
        """Full HTML page for *record*; raw HTML documents are returned verbatim.

        Raises:
            RenderError: The template failed, or no template could be found.

        """
        if record.rendered_html is not None:
            return record.rendered_html
        prev_post, next_post = self.adjacent(record)
        context = {
            **self.base_context(),
            "post": self._post_context(record),
            "page_title": record.title,
            "related": [r.summary() for r in self.related(record)],
            "prev_post": prev_post.summary() if prev_post else None,
            "next_post": next_post.summary() if next_post else None,
            "posts": [],
            "pagination": None,
        }
        return self._render(self.template_for(record), context)

    def render_listing(self, page: int) -> str | None:
        """Listing page *page* (1-based); ``None`` past the last page."""
        total = self.listing_pages()
        if page < 1 or page > total:
            return None
        per_page = self._config.posts_per_page
        records = self._store.records()[(page - 1) * per_page : page * per_page]
        context = {
            **self.base_context(),
            "posts": [r.summary() for r in records],
            "pagination": pagination_context(page, total),
            "page_title": self._config.title,
        }
        return self._render("index", context)

    def render_taxonomy(
        self,
        kind: str,
        name: str,
        records: list[ContentRecord],
    ) -> str | None:
        """Listing of *records* under a tag, category or series; ``None`` when empty."""
        if not records:
            return None
        context = {
            **self.base_context(),
            "posts": [r.summary() for r in records],
            "listing": {"kind": kind, "name": name, "label": kind.capitalize()},
            "tag": name if kind == "tag" else None,
            "pagination": None,
            "page_title": name,
        }
        template = self._theme.first_available([kind, "tag", "index"]) or "index"
        return self._render(template, context)

    def render_not_found(self, path: str = "") -> str:
        """The 404 page; a plain built-in page when the theme cannot render one."""
        if not self._theme.has_template("404"):
            return DEFAULT_NOT_FOUND
        try:
            return self._render("404", {**self.base_context(), "path": path})
        except RenderError:
            return DEFAULT_NOT_FOUND

    def _render(self, template: str, context: dict[str, Any]) -> str:
        try:
            return self._theme.render(template, context)
        except ThemeError as exc:
            raise RenderError(str(exc)) from exc

    def _post_context(self, record: ContentRecord) -> dict[str, Any]:
        return {
            **record.summary(),
            "content": record.body_html,
            "path": record.path,
            "section": record.section,
            "series_slug": slugify(record.series) if record.series else None,
            "word_count": record.word_count,
            "toc": _toc_dicts(record.toc),
            "og_image": record.og_image,
            "front_matter": record.front_matter,
        }

    def related(self, record: ContentRecord, limit: int = RELATED_LIMIT) -> list[ContentRecord]:
        """Records sharing the most tags with *record*, newest first on ties."""
        if not record.tags:
            return []
        tags = set(record.tags)
        scored = [
            (len(tags.intersection(other.tags)), other)
            for other in self._store.records()
            if other.slug != record.slug
        ]
        ranked = [
            other
            for score, other in sorted(scored, key=lambda pair: pair[0], reverse=True)
            if score > 0
        ]
        return ranked[:limit]

    def adjacent(
        self,
        record: ContentRecord,
    ) -> tuple[ContentRecord | None, ContentRecord | None]:
        """``(previous, next)`` by date: previous is older, next is newer."""
        ordered = self._store.records()
        for i, other in enumerate(ordered):
            if other.slug == record.slug:
                newer = ordered[i - 1] if i > 0 else None
                older = ordered[i + 1] if i + 1 < len(ordered) else None
                return older, newer
        return None, None

    # ------------------------------------------------------------------
    # Aggregate artifacts
    # ------------------------------------------------------------------

    def render_artifact(self, name: str) -> Artifact | None:
        """Render ``search.json``, ``rss.xml``, ``sitemap.xml``, ``robots.txt``, ``llms.txt``
        or a taxonomy feed such as ``tag/python/rss.xml``.
        """
        content_type = ARTIFACTS.get(name)
        if content_type is None:
            feed = parse_feed_name(name)
            return self.render_feed(*feed) if feed is not None else None
        match name:
            case "search.json":
                body = self.search_index()
            case "rss.xml":
                body = generate_rss(self._store.records(), self._config.site_context())
            case "sitemap.xml":
                body = self.sitemap()
            case "robots.txt":
                body = self.robots()
            case _:
                body = self.llms()
        return Artifact(body=body.encode("utf-8"), content_type=content_type)

    def feed_names(self) -> list[str]:
        """Artifact names of every per-tag, per-category and per-series feed."""
        names = [feed_name("tag", tag) for tag in self._store.all_tags()]
        names.extend(feed_name("category", name) for name in self._store.all_categories())
        names.extend(feed_name("series", slugify(name)) for name in self._store.all_series())
        return names

    def render_feed(self, kind: str, name: str) -> Artifact | None:
        """RSS feed of the records under one tag, category or series; ``None`` when empty."""
        match kind:
            case "tag":
                records = self._store.by_tag(name)
                label = name
            case "category":
                records = self._store.by_category(name)
                label = name
            case _:
                # by_series is oldest first; feeds are newest first
                records = list(reversed(self._store.by_series(name)))
                label = (records[0].series if records else None) or name
        if not records:
            return None
        site = {**self._config.site_context(), "title": f"{self._config.title} - {label}"}
        body = generate_rss(records, site, feed_path=f"/{feed_name(kind, name)}")
        return Artifact(body=body.encode("utf-8"), content_type=ARTIFACTS[FEED_NAME])

    def search_index(self) -> str:
        entries = [
            {
                "id": record.slug,
                "title": record.title,
                "slug": record.slug,
                "url": record.url,
                "date": record.created_at,
                "created_at": record.created_at,
                "updated_at": record.updated_at,
                "tags": list(record.tags),
                "description": record.description,
                "content": search_text(record.raw_content),
            }
            for record in self._store.records()
        ]
        return json.dumps(entries, ensure_ascii=False, separators=(",", ":"))

    def sitemap(self) -> str:
        entries = sitemap_entries(
            self._store.records(),
            self._store.all_tags(),
            self._store.all_categories(),
            self._store.all_series(),
        )
        return generate_sitemap(entries, self._config.url)

    def robots(self) -> str:
        custom = self._theme.render_asset("robots.txt")
        if custom is not None:
            return custom.decode("utf-8")
        return f"User-agent: *\nAllow: /\n\nSitemap: {self._config.url}/sitemap.xml\n"

    def llms(self) -> str:
        recent = self._store.records()[:LLMS_RECENT]
        custom = self._theme.render_asset(
            "llms.txt",
            recent_posts=[r.summary() for r in recent],
            all_tags=self._store.all_tags(),
        )
        if custom is not None:
            return custom.decode("utf-8")
        url = self._config.url
        lines = [
            f"# {self._config.title}",
            "",
            f"> {self._config.description}",
            "",
            "## Recent Posts",
            *(f"- [{r.title}]({url}{r.url})" for r in recent),
            "",
            "## Full Sitemap",
            f"{url}/sitemap.xml",
        ]
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Theme assets
    # ------------------------------------------------------------------

    def render_asset(self, name: str) -> Artifact | None:
        """Theme asset served under ``/assets/``; templated assets are rendered."""
        body = self._theme.render_asset(name)
        if body is None:
            return None
        return Artifact(body=body, content_type=content_type_for(name))
