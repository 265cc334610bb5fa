"""Tests for tabby.runtime — lifecycle and maintenance operations."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from tabby._errors import ConfigError
from tabby.config import TabbyConfig
from tabby.observability.events import CacheInvalidated
from tabby.render.service import ARTIFACTS
from tabby.runtime import SiteRuntime

if TYPE_CHECKING:
    from tabby.observability.collector import StackCollector

# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


class TestStartup:
    def test_from_root_reads_config(self, tmp_site: Path) -> None:
        site = SiteRuntime.from_root(tmp_site)
        assert site.config.title == "Test Site"
        assert site.config.debounce_ms == 100

    def test_overrides_win(self, tmp_site: Path) -> None:
        site = SiteRuntime.from_root(tmp_site, title="Override")
        assert site.config.title == "Override"

    def test_load_is_idempotent(self, runtime: SiteRuntime) -> None:
        before = {r.slug: (r.title, r.created_at) for r in runtime.store.records()}
        nav_hash = runtime.navigation.hash
        runtime.load()
        after = {r.slug: (r.title, r.created_at) for r in runtime.store.records()}
        assert before == after
        assert runtime.navigation.hash == nav_hash

    def test_warm_fills_every_tier(self, runtime: SiteRuntime) -> None:
        pages = runtime.warm()
        assert pages == len(runtime.renderer.all_keys())
        for name in ARTIFACTS:
            assert runtime.engine.get_dynamic(name) is not None
        assert runtime.engine.get_dynamic("404") is not None

    def test_warm_dynamic_keeps_existing(self, warm_runtime: SiteRuntime) -> None:
        before = warm_runtime.engine.get_dynamic("rss.xml")
        warm_runtime.warm_dynamic()
        assert warm_runtime.engine.get_dynamic("rss.xml") is before

    def test_independent_instances(self, tmp_site: Path, tmp_path_factory) -> None:
        other_root = tmp_path_factory.mktemp("other")
        (other_root / "content").mkdir()
        (other_root / "content" / "solo.md").write_text("---\ntitle: Solo\n---\n\nAlone.\n")

        first = SiteRuntime.from_root(tmp_site)
        second = SiteRuntime.from_root(other_root)
        first.load()
        second.load()
        first.warm()
        second.warm()

        assert "welcome" in first.engine.rendered
        assert "welcome" not in second.engine.rendered
        assert "solo" in second.engine.rendered
        assert first.engine is not second.engine


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class TestClearCache:
    def test_freed_count_and_repopulation(self, warm_runtime: SiteRuntime) -> None:
        stats = warm_runtime.engine.stats()
        expected = stats["rendered"] + stats["precompressed"] + stats["dynamic"] + stats["static"]
        assert warm_runtime.clear_cache() == expected
        assert warm_runtime.engine.stats()["rendered"] == stats["rendered"]
        assert warm_runtime.engine.get_dynamic("search.json") is not None

    def test_records_invalidation(self, warm_runtime: SiteRuntime) -> None:
        collector: StackCollector = warm_runtime.collector
        warm_runtime.clear_cache()
        events = collector.log.query(event_type=CacheInvalidated)
        assert any(e.reason == "clear" for e in events)


class TestReloadTheme:
    def test_edited_template_applies(self, tmp_site: Path) -> None:
        theme = tmp_site / "templates" / "paper" / "templates"
        theme.mkdir(parents=True)
        post = theme / "post.html"
        post.write_text("<p>v1 {{ post.title }}</p>")
        site = SiteRuntime(TabbyConfig(root=tmp_site, theme="paper"))
        site.load()
        site.warm()
        assert site.engine.rendered["welcome"].body == b"<p>v1 Welcome</p>"

        post.write_text("<p>v2 {{ post.title }}</p>")
        pages = site.reload_theme()

        assert pages == len(site.renderer.all_keys())
        assert site.engine.rendered["welcome"].body == b"<p>v2 Welcome</p>"


class TestReconfigure:
    def test_new_title_rendered(self, warm_runtime: SiteRuntime) -> None:
        config_file = warm_runtime.config.root / "tabby.yaml"
        config_file.write_text("site:\n  title: Renamed Site\n")
        warm_runtime.reconfigure()

        assert warm_runtime.config.title == "Renamed Site"
        assert b"Renamed Site" in warm_runtime.engine.rendered["__index_1"].body

    def test_invalid_config_keeps_previous(self, warm_runtime: SiteRuntime) -> None:
        previous = warm_runtime.config
        (warm_runtime.config.root / "tabby.yaml").write_text("tabby:\n  posts_per_page: 0\n")
        with pytest.raises(ConfigError):
            warm_runtime.reconfigure()
        assert warm_runtime.config is previous
        assert "welcome" in warm_runtime.engine.rendered

    def test_malformed_config_keeps_previous(self, warm_runtime: SiteRuntime) -> None:
        previous = warm_runtime.config
        (warm_runtime.config.root / "tabby.yaml").write_text("title: [Test Site\n")
        with pytest.raises(ConfigError, match="tabby.yaml"):
            warm_runtime.reconfigure()
        assert warm_runtime.config is previous
        assert warm_runtime.config.title == "Test Site"


class TestExporter:
    def test_snapshot_ignores_later_changes(self, warm_runtime: SiteRuntime) -> None:
        exporter = warm_runtime.exporter()
        warm_runtime.store.remove_path("2024-01-01-welcome.md")
        assert "welcome" not in warm_runtime.store

        out = exporter.export().output_dir

        assert (out / "welcome" / "index.html").is_file()
        assert b"/welcome/" in (out / "tag" / "a" / "index.html").read_bytes()

    def test_live_store_untouched_by_export(self, warm_runtime: SiteRuntime) -> None:
        before = warm_runtime.store.mapping()
        warm_runtime.export()
        assert warm_runtime.store.mapping() == before
