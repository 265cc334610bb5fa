"""Static export — pre-render the whole site to files.

Uses the same RenderService calls as the live server, so an exported page
is byte-identical to the body served for the same URL.  Output follows the
clean-URL convention (``/about/`` → ``about/index.html``) and is deployable
to any static host.
"""

from __future__ import annotations

import asyncio
import shutil
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from tabby._errors import ExportError, RenderError
from tabby.cache.keys import category_key, index_key, series_key, tag_key
from tabby.content.metadata import slugify
from tabby.render.service import ARTIFACTS

if TYPE_CHECKING:
    from tabby.config import TabbyConfig
    from tabby.content.store import ContentStore
    from tabby.observability.collector import StackCollector
    from tabby.render.service import RenderService

type ExportKind = Literal[
    "content",
    "listing",
    "artifact",
    "asset",
    "image",
    "file",
    "error_page",
    "redirect",
]


@dataclass(frozen=True, slots=True)
class ExportedFile:
    """Record of a single file written during export.

    Attributes:
        source_path: Logical source (e.g., ``"/docs/getting-started/"``).
        output_path: Absolute filesystem path to the written file.
        source_type: Category of the exported file.
        size_bytes: Size of the written file in bytes.
        duration_ms: Time taken to render and write this file.

    """

    source_path: str
    output_path: Path
    source_type: ExportKind
    size_bytes: int
    duration_ms: float


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Aggregate result of a full static export.

    Attributes:
        files: All files written during export.
        total_pages: Number of content and listing pages exported.
        total_assets: Number of theme assets and content-tree files written.
        images_optimized: Number of source images transcoded.
        failed: Pages or images that failed and were skipped.
        duration_ms: Total wall-clock time for the export.
        output_dir: Absolute path to the output directory.

    """

    files: tuple[ExportedFile, ...]
    total_pages: int
    total_assets: int
    images_optimized: int
    failed: tuple[str, ...]
    duration_ms: float
    output_dir: Path


class StaticExporter:
    """Exports a site as static files.

    Args:
        config: Site configuration.
        store: Loaded content store.
        renderer: Render service shared with the live server.
        collector: Optional event sink for build events.

    """

    def __init__(
        self,
        config: TabbyConfig,
        store: ContentStore,
        renderer: RenderService,
        *,
        collector: StackCollector | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._renderer = renderer
        self._collector = collector
        self._failed: list[str] = []
        self._images_optimized = 0

    def export(self) -> ExportResult:
        """Run the full export pipeline and return the result.

        Pipeline order:
            1. Check required templates, clean the output directory
            2. Theme assets
            3. Image derivatives
            4. Content pages
            5. Listing pages, then tag, category and series pages
            6. RSS, sitemap, search index, robots.txt, llms.txt
            7. 404 page
            8. Redirect rules
            9. Verbatim content-tree files
            10. Fingerprint CSS/JS and rewrite references (if enabled)

        A page or image that fails is reported and skipped.

        Raises:
            ExportError: A required template is missing or the output
                directory cannot be written.

        """
        from tabby.export.assets import (
            copy_content_files,
            fingerprint_assets,
            rewrite_asset_refs,
            write_manifest,
            write_theme_assets,
        )
        from tabby.export.redirects import write_redirects

        start = time.perf_counter()
        output_dir = self._config.output_path
        self._failed = []
        self._images_optimized = 0

        missing = self._renderer.theme.missing_required()
        if "index" in missing:
            msg = f"Missing required template: index.html (theme {self._renderer.theme.info.name!r})"
            raise ExportError(msg)
        for name in missing:
            print(f"  Warning: theme has no {name}.html, using the default", file=sys.stderr)
        if not len(self._store):
            print("  Warning: no content found in the content directory", file=sys.stderr)

        try:
            self._clean_output(output_dir)
            all_files: list[ExportedFile] = []
            all_files.extend(self._record(write_theme_assets(self._renderer.theme, output_dir)))
            all_files.extend(self._optimize_images(output_dir))
            all_files.extend(self._render_content_pages(output_dir))
            all_files.extend(self._render_listing_pages(output_dir))
            all_files.extend(self._render_taxonomy_pages(output_dir))
            all_files.extend(self._render_artifacts(output_dir))
            all_files.extend(self._render_error_pages(output_dir))
            all_files.extend(self._record(write_redirects(self._config.redirects_path, output_dir)))
            all_files.extend(self._record(copy_content_files(self._store, output_dir)))

            if self._config.fingerprint:
                manifest = fingerprint_assets(output_dir)
                rewrite_asset_refs(output_dir, manifest)
                if manifest:
                    write_manifest(output_dir, manifest)
        except OSError as exc:
            msg = f"Failed to write {output_dir}: {exc}"
            raise ExportError(msg) from exc

        elapsed = (time.perf_counter() - start) * 1000
        return ExportResult(
            files=tuple(all_files),
            total_pages=sum(1 for f in all_files if f.source_type in ("content", "listing")),
            total_assets=sum(1 for f in all_files if f.source_type in ("asset", "file")),
            images_optimized=self._images_optimized,
            failed=tuple(self._failed),
            duration_ms=elapsed,
            output_dir=output_dir,
        )

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _clean_output(self, output_dir: Path) -> None:
        """Remove and recreate the output directory."""
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    def _optimize_images(self, output_dir: Path) -> list[ExportedFile]:
        """Write derivatives for every referenced image under *output_dir*."""
        from tabby.images.optimizer import FORMATS, ImageOptimizer, derivative_dir, unique_sources

        refs = self._store.image_references()
        if not refs:
            return []
        t0 = time.perf_counter()
        optimizer = ImageOptimizer(
            output_dir,
            quality=self._config.image_quality,
            workers=self._config.image_workers,
        )
        result = asyncio.run(optimizer.optimize(refs))
        self._images_optimized = result.optimized
        if result.failed:
            self._failed.append(f"{result.failed} image(s)")
        elapsed = (time.perf_counter() - t0) * 1000
        written = [
            (ref, derivative_dir(ref, output_dir) / ref.derivative_name(size, fmt))
            for ref in unique_sources(refs)
            for size in ref.sizes
            for fmt in FORMATS
        ]
        return self._record([
            ExportedFile(
                source_path=ref.output_path,
                output_path=path,
                source_type="image",
                size_bytes=path.stat().st_size,
                duration_ms=elapsed,
            )
            for ref, path in written
            if path.is_file()
        ])

    def _render_content_pages(self, output_dir: Path) -> list[ExportedFile]:
        """Render every content record to ``<url>/index.html``."""
        homepage = self._renderer.homepage_key()
        results: list[ExportedFile] = []
        for record in self._store.records():
            if record.url == "/" and homepage != record.slug:
                # The homepage slot belongs to the listing
                continue
            written = self._write_page(record.slug, record.url, output_dir, "content")
            if written is not None:
                results.append(written)
        if homepage in self._store and self._store.get(homepage).url != "/":
            written = self._write_page(homepage, "/", output_dir, "content")
            if written is not None:
                results.append(written)
        return results

    def _render_listing_pages(self, output_dir: Path) -> list[ExportedFile]:
        """Listing pages at ``/page/<n>/``; page 1 is also the homepage by default."""
        results: list[ExportedFile] = []
        homepage = self._renderer.homepage_key()
        for page in range(1, self._renderer.listing_pages() + 1):
            key = index_key(page)
            targets = [f"/page/{page}/"]
            if key == homepage:
                targets.insert(0, "/")
            for url in targets:
                written = self._write_page(key, url, output_dir, "listing")
                if written is not None:
                    results.append(written)
        return results

    def _render_taxonomy_pages(self, output_dir: Path) -> list[ExportedFile]:
        targets = [
            *((tag_key(tag), f"/tag/{tag}/") for tag in self._store.all_tags()),
            *((category_key(name), f"/category/{name}/") for name in self._store.all_categories()),
            *(
                (series_key(slugify(name)), f"/series/{slugify(name)}/")
                for name in self._store.all_series()
            ),
        ]
        results: list[ExportedFile] = []
        for key, url in targets:
            written = self._write_page(key, url, output_dir, "listing")
            if written is not None:
                results.append(written)
        return results

    def _render_artifacts(self, output_dir: Path) -> list[ExportedFile]:
        """``search.json``, ``rss.xml``, ``sitemap.xml``, ``robots.txt``, ``llms.txt``
        and the per-tag, per-category and per-series feeds.
        """
        results: list[ExportedFile] = []
        for name in [*ARTIFACTS, *self._renderer.feed_names()]:
            t0 = time.perf_counter()
            try:
                artifact = self._renderer.render_artifact(name)
            except RenderError as exc:
                print(f"  Warning: skipped {name}: {exc}", file=sys.stderr)
                continue
            if artifact is None:
                continue
            filepath = output_dir / name
            size = self._write_bytes(filepath, artifact.body)
            results.append(ExportedFile(
                source_path=f"/{name}",
                output_path=filepath,
                source_type="artifact",
                size_bytes=size,
                duration_ms=(time.perf_counter() - t0) * 1000,
            ))
        return self._record(results)

    def _render_error_pages(self, output_dir: Path) -> list[ExportedFile]:
        """Render ``404.html`` (the built-in page when the theme has none)."""
        t0 = time.perf_counter()
        if not self._renderer.theme.has_template("404"):
            print("  Warning: theme has no 404.html, using the built-in page", file=sys.stderr)
        html = self._renderer.render_not_found()
        filepath = output_dir / "404.html"
        size = self._write_html(filepath, html)
        return self._record([
            ExportedFile(
                source_path="/404.html",
                output_path=filepath,
                source_type="error_page",
                size_bytes=size,
                duration_ms=(time.perf_counter() - t0) * 1000,
            )
        ])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _write_page(
        self,
        key: str,
        url: str,
        output_dir: Path,
        kind: ExportKind,
    ) -> ExportedFile | None:
        t0 = time.perf_counter()
        try:
            html = self._renderer.render_key(key)
        except RenderError as exc:
            print(f"  Render error: {url}: {exc}", file=sys.stderr)
            self._failed.append(url)
            return None
        if html is None:
            return None
        filepath = self._permalink_to_filepath(url, output_dir)
        size = self._write_html(filepath, html)
        exported = ExportedFile(
            source_path=url,
            output_path=filepath,
            source_type=kind,
            size_bytes=size,
            duration_ms=(time.perf_counter() - t0) * 1000,
        )
        self._record([exported])
        return exported

    def _record(self, files: list[ExportedFile] | tuple[ExportedFile, ...]) -> list[ExportedFile]:
        if self._collector is not None:
            for f in files:
                self._collector.record_build(
                    f.source_type,
                    f.source_path,
                    str(f.output_path),
                    duration_ms=f.duration_ms,
                )
        return list(files)

    @staticmethod
    def _permalink_to_filepath(permalink: str, output_dir: Path) -> Path:
        """Convert a URL permalink to an output file path.

        Clean URL convention:
            ``/``                  -> ``output/index.html``
            ``/about/``           -> ``output/about/index.html``
            ``/docs/intro/``      -> ``output/docs/intro/index.html``

        """
        clean = permalink.strip("/")
        if not clean:
            return output_dir / "index.html"
        return output_dir.joinpath(*clean.split("/")) / "index.html"

    @staticmethod
    def _write_html(filepath: Path, html: str) -> int:
        """Write HTML content to a file, creating parent dirs as needed.

        Returns the size in bytes of the written file.

        """
        return StaticExporter._write_bytes(filepath, html.encode("utf-8"))

    @staticmethod
    def _write_bytes(filepath: Path, data: bytes) -> int:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_bytes(data)
        return len(data)
