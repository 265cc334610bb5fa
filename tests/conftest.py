"""Shared test fixtures for tabby."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from tabby.runtime import SiteRuntime

LONG_PARAGRAPH = " ".join(["The quick brown fox jumps over the lazy dog."] * 60)


@pytest.fixture
def tmp_site(tmp_path: Path) -> Path:
    """Create a minimal site structure for testing.

    Two published posts share tag ``b``; the first also carries tag ``a``.
    A drafts folder, a dot-prefixed file and a ``draft: true`` file are
    never published.  A PDF is served verbatim from the content tree.
    """
    content = tmp_path / "content"
    content.mkdir()
    (content / "2024-01-01-welcome.md").write_text(
        "---\ntitle: Welcome\ntags: [a, b]\n---\n\n"
        f"# Welcome\n\n{LONG_PARAGRAPH}\n\n## Details\n\nMore words here.\n"
    )
    (content / "2024-02-01-second.md").write_text(
        "---\ntitle: Second Post\ntags: [b]\ncategories: [notes]\nseries: Getting Started\n---\n\n"
        "Second body.\n"
    )
    (content / "about.txt").write_text("About <this> site.\n")

    drafts = content / "drafts"
    drafts.mkdir()
    (drafts / "secret.md").write_text("---\ntitle: Secret\n---\n\nHidden.\n")
    (content / ".hidden.md").write_text("---\ntitle: Hidden\n---\n\nHidden.\n")
    (content / "wip.md").write_text("---\ntitle: Work In Progress\ndraft: true\n---\n\nSoon.\n")

    files = content / "files"
    files.mkdir()
    (files / "doc.pdf").write_bytes(b"%PDF-1.4 test document")

    (tmp_path / "tabby.yaml").write_text(
        "site:\n  title: Test Site\n  url: https://test.example\ntabby:\n  debounce_ms: 100\n"
    )
    return tmp_path


@pytest.fixture
def image_site(tmp_site: Path) -> Path:
    """Extend tmp_site with a post referencing a real 1000px-wide PNG."""
    from PIL import Image

    content = tmp_site / "content"
    Image.new("RGB", (1000, 500), (200, 40, 40)).save(content / "photo.png")
    (content / "2024-03-01-gallery.md").write_text(
        "---\ntitle: Gallery\ntags: [photos]\n---\n\n![A red photo](photo.png)\n"
    )
    return tmp_site


@pytest.fixture
def runtime(tmp_site: Path) -> SiteRuntime:
    """A loaded (not yet warmed) runtime over ``tmp_site``."""
    from tabby.runtime import SiteRuntime

    site = SiteRuntime.from_root(tmp_site)
    site.load()
    return site


@pytest.fixture
def warm_runtime(runtime: SiteRuntime) -> SiteRuntime:
    """``runtime`` with every page and artifact rendered into the caches."""
    runtime.warm()
    return runtime


class FakeClock:
    """Manually stepped monotonic clock with an awaitable ``sleep``."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        import asyncio

        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
