"""Content store — slug-keyed records built from the content root.

The store is populated by one synchronous scan at startup and afterwards
mutated only by the rebuild coordinator (``load_one`` + ``upsert`` /
``remove_path``).  Request handlers only read.

Thread Safety:
    Records are frozen and replaced wholesale, so a reader sees either the
    old or the new record for a slug, never a mix.

"""

from __future__ import annotations

import os
import sys
import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from patitas.frontmatter import parse_frontmatter

from tabby._errors import ContentError
from tabby.cache.keys import is_reserved_slug
from tabby.content.markdown import MarkdownRenderer, build_toc
from tabby.content.metadata import (
    as_str_tuple,
    generate_url,
    is_content_file,
    is_draft,
    is_draft_path,
    is_image_file,
    is_raw_html,
    normalize_permalink,
    reading_stats,
    resolve_dates,
    resolve_title,
    search_text,
    slug_from_url,
    slugify,
    text_to_html,
    to_web_path,
)
from tabby.content.navigation import navigation_hash
from tabby.content.records import BrokenImage, ContentRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from tabby.config import TabbyConfig
    from tabby.content.records import ImageReference
    from tabby.observability.collector import StackCollector

_DESCRIPTION_LENGTH = 160


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Outcome of a full content scan."""

    records: dict[str, ContentRecord]
    navigation_hash: str
    skipped: int
    failed: int
    duration_ms: float


def _excerpt(text: str, limit: int = _DESCRIPTION_LENGTH) -> str:
    plain = search_text(text, limit * 2)
    if len(plain) <= limit:
        return plain
    cut = plain[:limit].rsplit(" ", 1)[0]
    return cut.rstrip(".,;:") + "..."


class ContentStore:
    """In-memory mapping from slug to ``ContentRecord``.

    Args:
        config: Site configuration (content root, URL mode, reading speed).
        collector: Optional event sink for load/remove events.
        dimensions: Image width lookup used to size responsive derivatives.

    """

    def __init__(
        self,
        config: TabbyConfig,
        *,
        collector: StackCollector | None = None,
        dimensions: Callable[[Path], int | None] | None = None,
    ) -> None:
        self._config = config
        self._collector = collector
        self._renderer = MarkdownRenderer(
            config.content_path,
            sizes=config.image_sizes,
            dimensions=dimensions,
        )
        self._records: dict[str, ContentRecord] = {}
        self._paths: dict[str, str] = {}
        self._broken: dict[str, tuple[BrokenImage, ...]] = {}

    @property
    def root(self) -> Path:
        """Absolute content root."""
        return self._config.content_path

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def scan(self) -> ScanResult:
        """Rebuild the store from the content root.

        Files that fail to load are reported and skipped.  Two files that
        resolve to the same slug abort the scan.

        Raises:
            ContentError: The content root is unreadable, or a slug collides.

        """
        start = time.perf_counter()
        root = self.root
        if not root.is_dir():
            msg = f"Content directory not found: {root}"
            raise ContentError(msg)

        records: dict[str, ContentRecord] = {}
        paths: dict[str, str] = {}
        self._broken = {}
        skipped = failed = 0

        for rel in self.iter_content_files():
            try:
                record = self.load_one(rel)
            except ContentError as exc:
                failed += 1
                print(f"  Content error: {exc}", file=sys.stderr)
                continue
            if record is None:
                skipped += 1
                continue
            existing = records.get(record.slug)
            if existing is not None:
                msg = (
                    f"Duplicate slug {record.slug!r}: {existing.path} and {record.path}"
                )
                raise ContentError(msg)
            records[record.slug] = record
            paths[record.path] = record.slug

        self._records = records
        self._paths = paths
        self._report_broken_images()
        if self._config.strict_images and self._broken:
            first = self.broken_images()[0]
            msg = f"{first.content_path}: missing image {first.src!r}"
            raise ContentError(msg)

        elapsed = (time.perf_counter() - start) * 1000
        return ScanResult(
            records=dict(records),
            navigation_hash=self.navigation_hash(),
            skipped=skipped,
            failed=failed,
            duration_ms=elapsed,
        )

    def iter_content_files(self) -> Iterator[str]:
        """Relative web paths of every non-draft content file, sorted."""
        yield from (rel for rel in self._walk() if is_content_file(rel))

    def iter_image_files(self) -> Iterator[str]:
        """Relative web paths of every non-draft image in the content tree."""
        yield from (rel for rel in self._walk() if is_image_file(rel))

    def iter_static_files(self) -> Iterator[str]:
        """Relative web paths of content-tree files that are neither content nor images."""
        yield from (
            rel
            for rel in self._walk()
            if not is_content_file(rel) and not is_image_file(rel)
        )

    def _walk(self) -> Iterator[str]:
        root = self.root
        if not root.is_dir():
            return
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            # Prune draft folders before descending into them
            dirnames[:] = [
                d for d in dirnames if not d.startswith(".") and d.lower() != "drafts"
            ]
            rel_dir = Path(dirpath).relative_to(root)
            for name in filenames:
                if name.startswith("."):
                    continue
                found.append(to_web_path(rel_dir / name))
        yield from sorted(found)

    def load_one(self, rel_path: str) -> ContentRecord | None:
        """Read, parse and render one content file.

        Returns ``None`` for drafts (dot-prefixed segment, ``drafts/``
        folder or ``draft: true`` front matter).

        Raises:
            ContentError: The file cannot be read or rendered.

        """
        start = time.perf_counter()
        web_path = to_web_path(rel_path)
        if is_draft_path(web_path):
            self._record_load(web_path, "", "skipped", start)
            return None

        path = self.root.joinpath(*web_path.split("/"))
        try:
            raw = path.read_text(encoding="utf-8")
            stat = path.stat()
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"{web_path}: {exc}"
            raise ContentError(msg) from exc

        front_matter, body = parse_frontmatter(raw)
        if is_draft(front_matter):
            self._record_load(web_path, "", "skipped", start)
            return None

        filename = web_path.rsplit("/", 1)[-1]
        if filename.startswith("_"):
            print(
                f"  Warning: {web_path} starts with '_' and is still published",
                file=sys.stderr,
            )

        try:
            record = self._build_record(web_path, filename, front_matter, body, stat)
        except ContentError:
            self._record_load(web_path, "", "failed", start)
            raise
        except Exception as exc:
            self._record_load(web_path, "", "failed", start)
            msg = f"{web_path}: {exc}"
            raise ContentError(msg) from exc

        action = "reloaded" if web_path in self._paths else "loaded"
        self._record_load(web_path, record.slug, action, start)
        return record

    def _build_record(
        self,
        web_path: str,
        filename: str,
        front_matter: dict,
        body: str,
        stat: os.stat_result,
    ) -> ContentRecord:
        suffix = Path(filename).suffix.lower()
        permalink = front_matter.get("permalink")
        url = (
            normalize_permalink(permalink)
            if permalink
            else generate_url(web_path, self._config.url_mode)
        )
        slug = slug_from_url(url)
        if is_reserved_slug(slug):
            msg = f"{web_path}: slug {slug!r} starts with the reserved '__' prefix"
            raise ContentError(msg)
        created_at, updated_at = resolve_dates(front_matter, filename, stat)
        title = resolve_title(front_matter, body, filename, is_markdown=suffix == ".md")
        parts = web_path.split("/")
        section = parts[0] if len(parts) > 1 else None
        series = front_matter.get("series")

        images: tuple[ImageReference, ...] = ()
        headings = ()
        rendered_html: str | None = None
        if suffix == ".md":
            content_type = "markdown"
            result = self._renderer.render(body, web_path)
            body_html = result.html
            images = result.images
            headings = result.headings
            words, minutes = reading_stats(body, self._config.reading_speed)
        elif suffix == ".txt":
            content_type = "text"
            body_html = text_to_html(body, escape=self._config.escape_text_files)
            words, minutes = reading_stats(body, self._config.reading_speed)
        else:
            content_type = "html"
            body_html = body
            if is_raw_html(body, front_matter):
                rendered_html = body
            words, minutes = 0, 0

        self._check_images(web_path, images)

        og_image = front_matter.get("image")
        if not og_image and images:
            first = images[0]
            og_image = first.derivative_url(first.middle_size, "jpg")

        return ContentRecord(
            slug=slug,
            url=url,
            path=web_path,
            title=title,
            created_at=created_at,
            updated_at=updated_at,
            content_type=content_type,
            body_html=body_html,
            raw_content=body,
            rendered_html=rendered_html,
            tags=as_str_tuple(front_matter.get("tags")),
            categories=as_str_tuple(front_matter.get("categories")),
            series=str(series).strip() if series else None,
            description=str(front_matter.get("description") or "")
            or (_excerpt(body) if content_type != "html" else ""),
            section=section,
            word_count=words,
            reading_time=minutes,
            images=images,
            headings=headings,
            toc=build_toc(headings),
            og_image=str(og_image) if og_image else None,
            front_matter=dict(front_matter),
        )

    def _check_images(self, web_path: str, images: tuple[ImageReference, ...]) -> None:
        broken = tuple(
            BrokenImage(content_path=web_path, src=ref.src, resolved_path=ref.resolved_path)
            for ref in images
            if not ref.resolved_path.is_file()
        )
        if broken:
            self._broken[web_path] = broken
        else:
            self._broken.pop(web_path, None)

    def _report_broken_images(self) -> None:
        broken = self.broken_images()
        if not broken:
            return
        print(f"  Warning: {len(broken)} broken image reference(s)", file=sys.stderr)
        for item in broken[:10]:
            print(f"    {item.content_path}: {item.src}", file=sys.stderr)

    def _record_load(self, path: str, slug: str, action: str, start: float) -> None:
        if self._collector is not None:
            self._collector.record_content(
                path,
                slug,
                action,
                duration_ms=(time.perf_counter() - start) * 1000,
            )

    # ------------------------------------------------------------------
    # Mutation (rebuild coordinator only)
    # ------------------------------------------------------------------

    def upsert(self, record: ContentRecord) -> ContentRecord | None:
        """Insert or replace *record*. Returns the record it replaced, if any.

        A file whose slug changed (e.g. a new ``permalink``) drops its old
        slug.  A slug already owned by a different file is rejected.

        Raises:
            ContentError: The slug belongs to another file.

        """
        owner = self._records.get(record.slug)
        if owner is not None and owner.path != record.path:
            msg = f"Duplicate slug {record.slug!r}: {owner.path} and {record.path}"
            raise ContentError(msg)

        previous_slug = self._paths.get(record.path)
        previous = self._records.get(previous_slug) if previous_slug else None
        if previous_slug is not None and previous_slug != record.slug:
            self._records.pop(previous_slug, None)
        self._records[record.slug] = record
        self._paths[record.path] = record.slug
        return previous

    def remove_path(self, rel_path: str) -> ContentRecord | None:
        """Drop the record loaded from *rel_path*. Returns it, if it existed."""
        web_path = to_web_path(rel_path)
        slug = self._paths.pop(web_path, None)
        self._broken.pop(web_path, None)
        if slug is None:
            return None
        record = self._records.pop(slug, None)
        if record is not None and self._collector is not None:
            self._collector.record_content(web_path, slug, "removed")
        return record

    def remove_prefix(self, rel_dir: str) -> list[ContentRecord]:
        """Drop every record under the directory *rel_dir* (a removed folder)."""
        prefix = to_web_path(rel_dir).rstrip("/") + "/"
        return [
            record
            for path in [p for p in self._paths if p.startswith(prefix)]
            if (record := self.remove_path(path)) is not None
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, slug: str) -> ContentRecord | None:
        return self._records.get(slug)

    def by_path(self, rel_path: str) -> ContentRecord | None:
        """Record loaded from *rel_path*, if any."""
        slug = self._paths.get(to_web_path(rel_path))
        return self._records.get(slug) if slug else None

    def __contains__(self, slug: object) -> bool:
        return slug in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ContentRecord]:
        return iter(self.records())

    def mapping(self) -> dict[str, ContentRecord]:
        """Snapshot of slug to record."""
        return dict(self._records)

    def snapshot(self) -> ContentStore:
        """Detached copy that later upserts and removals do not touch.

        Records are immutable, so copying the indexes is enough.
        """
        copy = ContentStore.__new__(ContentStore)
        copy._config = self._config
        copy._collector = self._collector
        copy._renderer = self._renderer
        copy._records = dict(self._records)
        copy._paths = dict(self._paths)
        copy._broken = dict(self._broken)
        return copy

    def slugs(self) -> list[str]:
        return sorted(self._records)

    def records(self) -> list[ContentRecord]:
        """All records, newest first (ties broken by slug)."""
        ordered = sorted(self._records.values(), key=lambda r: r.slug)
        return sorted(ordered, key=lambda r: r.created_at, reverse=True)

    def navigation_hash(self) -> str:
        return navigation_hash(self._records)

    def all_tags(self) -> list[str]:
        return sorted({tag for record in self._records.values() for tag in record.tags})

    def all_categories(self) -> list[str]:
        return sorted(
            {name for record in self._records.values() for name in record.categories}
        )

    def all_series(self) -> list[str]:
        return sorted({r.series for r in self._records.values() if r.series})

    def tag_counts(self) -> Counter[str]:
        return Counter(tag for record in self._records.values() for tag in record.tags)

    def by_tag(self, tag: str) -> list[ContentRecord]:
        return [r for r in self.records() if tag in r.tags]

    def by_category(self, name: str) -> list[ContentRecord]:
        return [r for r in self.records() if name in r.categories]

    def by_series(self, key: str) -> list[ContentRecord]:
        """Records of the series named (or slugified to) *key*, oldest first."""
        matches = [
            r for r in self.records() if r.series and key in (r.series, slugify(r.series))
        ]
        return list(reversed(matches))

    def image_references(self) -> list[ImageReference]:
        """Every image reference across all records, in record order."""
        return [ref for record in self.records() for ref in record.images]

    def broken_images(self) -> list[BrokenImage]:
        """Image references whose source file did not exist at load time."""
        return [item for path in sorted(self._broken) for item in self._broken[path]]
