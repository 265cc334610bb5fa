"""Image optimization — responsive WebP/JPEG derivatives via Pillow.

Each referenced source image gets one derivative per target width in two
formats, named ``{basename}-{width}-{hash}.{webp|jpg}`` next to where the
source sits in the content tree.  Transcoding runs in worker threads in
bounded batches: a batch is awaited in full before the next one starts.

Thread Safety:
    ``_transcode`` touches only its own source and destination files.
    The optimizer itself is driven from a single coroutine at a time; the
    rebuild coordinator guarantees passes never overlap.

"""

from __future__ import annotations

import asyncio
import hashlib
import os
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from PIL import Image, ImageOps, UnidentifiedImageError

from tabby._errors import ImageError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tabby.content.records import ImageReference
    from tabby.observability.collector import StackCollector

STANDARD_SIZES = (400, 800, 1200)
FORMATS = ("webp", "jpg")

DERIVATIVE_PATTERN = re.compile(r"^(.+)-(\d{3,4})-([a-f0-9]{8})\.(webp|jpg)$")


def source_hash(output_path: str) -> str:
    """8-hex-char identity of a source image, from its web-style path."""
    return hashlib.md5(output_path.encode("utf-8"), usedforsecurity=False).hexdigest()[:8]


def target_sizes(natural: int | None, standard: tuple[int, ...] = STANDARD_SIZES) -> tuple[int, ...]:
    """Widths to generate for an image *natural* pixels wide.

    Standard widths narrower than the image, plus the natural width itself.
    Unknown dimensions fall back to the standard widths.
    """
    if not natural:
        return tuple(sorted(standard))
    sizes = {s for s in standard if s < natural}
    sizes.add(natural)
    return tuple(sorted(sizes))


def natural_width(path: Path) -> int | None:
    """Pixel width of the image at *path*, or ``None`` when unreadable."""
    try:
        with Image.open(path) as img:
            return img.size[0]
    except (OSError, UnidentifiedImageError):
        return None


def worker_limit(configured: int = 0) -> int:
    """Transcodes per batch: *configured*, else max(2, 75% of CPUs)."""
    if configured > 0:
        return configured
    return max(2, int((os.cpu_count() or 1) * 0.75))


class DimensionCache:
    """Memoised image widths keyed by path and modification time."""

    __slots__ = ("_widths",)

    def __init__(self) -> None:
        self._widths: dict[Path, tuple[float, int | None]] = {}

    def __call__(self, path: Path) -> int | None:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None
        cached = self._widths.get(path)
        if cached is not None and cached[0] == mtime:
            return cached[1]
        width = natural_width(path)
        self._widths[path] = (mtime, width)
        return width

    def clear(self) -> None:
        self._widths.clear()


def derivative_dir(ref: ImageReference, output_root: Path) -> Path:
    """Directory that holds the derivatives of *ref* under *output_root*."""
    parent = ref.output_path.rpartition("/")[0]
    return output_root.joinpath(*parent.split("/")) if parent else output_root


def is_stale(ref: ImageReference, output_root: Path) -> bool:
    """True when any derivative is missing or older than its source."""
    try:
        source_mtime = ref.resolved_path.stat().st_mtime
    except OSError:
        return False
    directory = derivative_dir(ref, output_root)
    for size in ref.sizes:
        for fmt in FORMATS:
            target = directory / ref.derivative_name(size, fmt)
            try:
                if source_mtime > target.stat().st_mtime:
                    return True
            except OSError:
                return True
    return False


def unique_sources(refs: Iterable[ImageReference]) -> list[ImageReference]:
    """One reference per resolved source path, first occurrence wins."""
    seen: dict[Path, ImageReference] = {}
    for ref in refs:
        seen.setdefault(ref.resolved_path, ref)
    return list(seen.values())


@dataclass(frozen=True, slots=True)
class OptimizeResult:
    """Outcome of one optimization pass."""

    images: int
    optimized: int
    failed: int
    derivatives_written: int
    duration_ms: float


class ImageOptimizer:
    """Generates and prunes derivatives for one output root.

    Args:
        output_root: Where derivatives are written (the image cache in
            dev/serve mode, the export directory during a build).
        quality: WebP/JPEG encoder quality.
        workers: Transcodes per batch (0 = auto).
        collector: Optional event sink.

    """

    def __init__(
        self,
        output_root: Path,
        *,
        quality: int = 80,
        workers: int = 0,
        collector: StackCollector | None = None,
    ) -> None:
        self.output_root = output_root
        self._quality = quality
        self._workers = worker_limit(workers)
        self._collector = collector

    @property
    def batch_size(self) -> int:
        return self._workers

    async def optimize(self, refs: Iterable[ImageReference]) -> OptimizeResult:
        """Regenerate stale derivatives for every unique source in *refs*.

        A failing image is reported and skipped; the rest of the batch and
        all later batches still run.
        """
        start = time.perf_counter()
        sources = [ref for ref in unique_sources(refs) if ref.resolved_path.is_file()]
        stale = [ref for ref in sources if is_stale(ref, self.output_root)]

        optimized = failed = written = 0
        for offset in range(0, len(stale), self._workers):
            batch = stale[offset : offset + self._workers]
            results = await asyncio.gather(
                *(asyncio.to_thread(self._transcode, ref) for ref in batch),
                return_exceptions=True,
            )
            for ref, result in zip(batch, results, strict=True):
                if isinstance(result, BaseException):
                    failed += 1
                    print(f"  Image failed: {ref.output_path}: {result}", file=sys.stderr)
                else:
                    optimized += 1
                    written += result

        elapsed = (time.perf_counter() - start) * 1000
        return OptimizeResult(
            images=len(sources),
            optimized=optimized,
            failed=failed,
            derivatives_written=written,
            duration_ms=elapsed,
        )

    async def run(self, refs: Iterable[ImageReference]) -> OptimizeResult:
        """One full pass: optimize, then sweep orphans, then record the pass."""
        refs = list(refs)
        result = await self.optimize(refs)
        orphans = await asyncio.to_thread(self.cleanup_orphans, refs)
        if result.optimized or result.failed or orphans:
            print(
                f"  Images: {result.optimized} optimized, {result.failed} failed "
                f"({result.duration_ms:.0f}ms)",
                file=sys.stderr,
            )
        if self._collector is not None:
            self._collector.record_images(
                images=result.images,
                optimized=result.optimized,
                failed=result.failed,
                orphans_removed=orphans,
                duration_ms=result.duration_ms,
            )
        return result

    def _transcode(self, ref: ImageReference) -> int:
        """Write every derivative of *ref*. Returns the number of files written."""
        directory = derivative_dir(ref, self.output_root)
        directory.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            with Image.open(ref.resolved_path) as source:
                img = ImageOps.exif_transpose(source)
                rgb = img.convert("RGB")
                for size in ref.sizes:
                    if rgb.width > size:
                        height = max(1, round(rgb.height * size / rgb.width))
                        variant = rgb.resize((size, height), Image.Resampling.LANCZOS)
                    else:
                        variant = rgb
                    variant.save(
                        directory / ref.derivative_name(size, "webp"),
                        "WEBP",
                        quality=self._quality,
                    )
                    variant.save(
                        directory / ref.derivative_name(size, "jpg"),
                        "JPEG",
                        quality=self._quality,
                        optimize=True,
                        progressive=True,
                    )
                    written += 2
        except (OSError, UnidentifiedImageError, ValueError) as exc:
            msg = f"Cannot transcode {ref.resolved_path}: {exc}"
            raise ImageError(msg) from exc
        return written

    def cleanup_orphans(self, refs: Iterable[ImageReference]) -> int:
        """Delete derivatives whose hash matches no referenced source.

        Empty directories left behind are removed as well.  Returns the
        number of files deleted.
        """
        if not self.output_root.is_dir():
            return 0
        valid = {ref.content_hash for ref in refs}
        removed = 0
        for dirpath, _dirnames, filenames in os.walk(self.output_root, topdown=False):
            directory = Path(dirpath)
            for name in filenames:
                match = DERIVATIVE_PATTERN.match(name)
                if match is None or match.group(3) in valid:
                    continue
                try:
                    (directory / name).unlink()
                    removed += 1
                except OSError as exc:
                    print(f"  Cannot remove {name}: {exc}", file=sys.stderr)
            if directory != self.output_root:
                try:
                    if not any(directory.iterdir()):
                        directory.rmdir()
                except OSError:
                    continue
        if removed:
            print(f"  Removed {removed} orphaned image(s)", file=sys.stderr)
        return removed
