"""Tests for tabby.content.store — scanning, drafts, upserts and queries."""

from __future__ import annotations

from pathlib import Path

import pytest

from tabby._errors import ContentError
from tabby.config_loader import load_config
from tabby.content.store import ContentStore


def _store(root: Path, **overrides: object) -> ContentStore:
    return ContentStore(load_config(root, **overrides))


class TestScan:
    """ContentStore.scan — the startup scan."""

    def test_publishes_only_non_drafts(self, tmp_site: Path) -> None:
        store = _store(tmp_site)
        result = store.scan()
        assert sorted(result.records) == ["about", "second", "welcome"]
        assert result.failed == 0
        assert result.skipped == 1  # wip.md: draft: true

    def test_drafts_folder_and_dot_files_never_loaded(self, tmp_site: Path) -> None:
        store = _store(tmp_site)
        store.scan()
        titles = {record.title for record in store.records()}
        assert "Secret" not in titles
        assert "Hidden" not in titles
        assert "Work In Progress" not in titles

    def test_rescan_is_idempotent(self, tmp_site: Path) -> None:
        store = _store(tmp_site)
        first = store.scan()
        second = store.scan()
        assert first.records == second.records
        assert first.navigation_hash == second.navigation_hash

    def test_missing_root_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ContentError, match="not found"):
            _store(tmp_path).scan()

    def test_duplicate_slug_aborts(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "welcome.md").write_text("# Clash\n")
        with pytest.raises(ContentError, match="Duplicate slug 'welcome'"):
            _store(tmp_site).scan()

    def test_reserved_slug_skipped(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "__tag_a.md").write_text("---\ntitle: Sneaky\n---\n\nBody.\n")
        store = _store(tmp_site)
        result = store.scan()
        assert sorted(result.records) == ["about", "second", "welcome"]
        assert result.failed == 1
        with pytest.raises(ContentError, match="reserved"):
            store.load_one("__tag_a.md")

    def test_reserved_permalink_rejected(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "odd.md").write_text(
            "---\ntitle: Odd\npermalink: /__index_1/\n---\n\nBody.\n"
        )
        store = _store(tmp_site)
        with pytest.raises(ContentError, match="reserved"):
            store.load_one("odd.md")

    def test_path_url_mode_keeps_date(self, tmp_site: Path) -> None:
        store = _store(tmp_site, url_mode="path")
        store.scan()
        assert "2024-01-01-welcome" in store

    def test_strict_images(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "broken.md").write_text("![gone](missing.png)\n")
        with pytest.raises(ContentError, match="missing image"):
            _store(tmp_site, strict_images=True).scan()

    def test_broken_images_reported(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "broken.md").write_text("![gone](missing.png)\n")
        store = _store(tmp_site)
        store.scan()
        broken = store.broken_images()
        assert [(b.content_path, b.src) for b in broken] == [("broken.md", "missing.png")]


class TestRecords:
    """Record fields produced by load_one."""

    @pytest.fixture
    def store(self, tmp_site: Path) -> ContentStore:
        store = _store(tmp_site)
        store.scan()
        return store

    def test_markdown_record(self, store: ContentStore) -> None:
        record = store.get("welcome")
        assert record is not None
        assert record.url == "/welcome/"
        assert record.path == "2024-01-01-welcome.md"
        assert record.title == "Welcome"
        assert record.created_at == "2024-01-01"
        assert record.content_type == "markdown"
        assert record.tags == ("a", "b")
        assert record.rendered_html is None
        assert "<h2" in record.body_html
        assert record.word_count > 500
        assert record.reading_time >= 3
        assert [h.text for h in record.headings] == ["Details"]

    def test_taxonomy_fields(self, store: ContentStore) -> None:
        record = store.get("second")
        assert record is not None
        assert record.categories == ("notes",)
        assert record.series == "Getting Started"

    def test_text_record_escaped(self, store: ContentStore) -> None:
        record = store.get("about")
        assert record is not None
        assert record.content_type == "text"
        assert record.body_html == "<pre>About &lt;this&gt; site.\n</pre>"

    def test_raw_html_document(self, tmp_site: Path) -> None:
        doc = "<!DOCTYPE html><html><body>raw</body></html>"
        (tmp_site / "content" / "landing.html").write_text(doc)
        store = _store(tmp_site)
        store.scan()
        record = store.get("landing")
        assert record is not None
        assert record.is_raw
        assert record.rendered_html == doc

    def test_html_fragment_is_templated(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "snippet.html").write_text("<p>fragment</p>")
        store = _store(tmp_site)
        store.scan()
        record = store.get("snippet")
        assert record is not None
        assert not record.is_raw

    def test_permalink(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "p.md").write_text("---\npermalink: custom/place\n---\nx\n")
        store = _store(tmp_site)
        store.scan()
        assert store.get("custom/place") is not None

    def test_description_excerpt(self, store: ContentStore) -> None:
        record = store.get("welcome")
        assert record is not None
        assert record.description.endswith("...")
        assert len(record.description) <= 163


class TestQueries:
    @pytest.fixture
    def store(self, tmp_site: Path) -> ContentStore:
        store = _store(tmp_site)
        store.scan()
        return store

    def test_records_newest_first(self, store: ContentStore) -> None:
        slugs = [r.slug for r in store.records()]
        assert slugs.index("second") < slugs.index("welcome")

    def test_tags(self, store: ContentStore) -> None:
        assert store.all_tags() == ["a", "b"]
        assert [r.slug for r in store.by_tag("b")] == ["second", "welcome"]
        assert store.tag_counts()["b"] == 2

    def test_categories_and_series(self, store: ContentStore) -> None:
        assert store.all_categories() == ["notes"]
        assert store.all_series() == ["Getting Started"]
        assert [r.slug for r in store.by_series("getting-started")] == ["second"]

    def test_static_files(self, store: ContentStore) -> None:
        assert list(store.iter_static_files()) == ["files/doc.pdf"]


class TestMutation:
    """upsert / remove_path — the coordinator's write path."""

    @pytest.fixture
    def store(self, tmp_site: Path) -> ContentStore:
        store = _store(tmp_site)
        store.scan()
        return store

    def test_upsert_replaces(self, store: ContentStore, tmp_site: Path) -> None:
        path = tmp_site / "content" / "2024-01-01-welcome.md"
        path.write_text("---\ntitle: Welcome Back\n---\nBody\n")
        record = store.load_one("2024-01-01-welcome.md")
        assert record is not None
        previous = store.upsert(record)
        assert previous is not None
        assert previous.title == "Welcome"
        assert store.get("welcome").title == "Welcome Back"  # type: ignore[union-attr]

    def test_upsert_slug_change_drops_old_slug(self, store: ContentStore, tmp_site: Path) -> None:
        path = tmp_site / "content" / "2024-01-01-welcome.md"
        path.write_text("---\npermalink: /hello/\n---\nBody\n")
        record = store.load_one("2024-01-01-welcome.md")
        assert record is not None
        store.upsert(record)
        assert "welcome" not in store
        assert "hello" in store

    def test_upsert_rejects_foreign_slug(self, store: ContentStore, tmp_site: Path) -> None:
        (tmp_site / "content" / "other.md").write_text("---\npermalink: /welcome/\n---\nx\n")
        record = store.load_one("other.md")
        assert record is not None
        with pytest.raises(ContentError, match="Duplicate slug"):
            store.upsert(record)

    def test_load_one_draft_returns_none(self, store: ContentStore) -> None:
        assert store.load_one("wip.md") is None
        assert store.load_one("drafts/secret.md") is None

    def test_remove_path(self, store: ContentStore) -> None:
        removed = store.remove_path("2024-01-01-welcome.md")
        assert removed is not None
        assert "welcome" not in store
        assert "a" not in store.all_tags()
        assert store.remove_path("2024-01-01-welcome.md") is None

    def test_remove_prefix(self, tmp_site: Path) -> None:
        docs = tmp_site / "content" / "docs"
        docs.mkdir()
        (docs / "one.md").write_text("one\n")
        (docs / "two.md").write_text("two\n")
        store = _store(tmp_site)
        store.scan()
        removed = store.remove_prefix("docs")
        assert sorted(r.slug for r in removed) == ["docs/one", "docs/two"]
