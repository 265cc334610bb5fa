"""Tests for tabby.cache.engine — tier population and consistency."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tabby.cache.http import decompress, etag_for
from tabby.cache.keys import index_key, is_listing_key, is_reserved_slug, parse_key, tag_key
from tabby.observability.events import CacheInvalidated

if TYPE_CHECKING:
    from tabby.runtime import SiteRuntime


class TestKeys:
    def test_parse(self) -> None:
        assert parse_key("__tag_python") == ("tag", "python")
        assert parse_key("__index_2") == ("index", "2")
        assert parse_key("docs/intro") == ("content", "docs/intro")

    def test_listing(self) -> None:
        assert is_listing_key(tag_key("x"))
        assert not is_listing_key("welcome")

    def test_reserved_slug(self) -> None:
        assert is_reserved_slug(tag_key("a"))
        assert is_reserved_slug(index_key(1))
        assert not is_reserved_slug("docs/__init__")
        assert not is_reserved_slug("_draft-ish")


class TestPopulate:
    """CacheEngine.populate / populate_all."""

    def test_warm_renders_every_key(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        assert set(engine.rendered) == set(warm_runtime.renderer.all_keys())
        assert "search.json" in engine.dynamic
        assert "404" in engine.dynamic

    def test_precompressed_decodes_to_rendered(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        entry = engine.rendered["welcome"]
        for encoding in ("br", "gzip"):
            encoded = engine.precompressed[("welcome", encoding)]
            assert decompress(encoded.body, encoding) == entry.body
            assert encoded.etag == entry.etag == etag_for(entry.body)

    def test_every_key_consistent(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        assert all(engine.is_consistent(key) for key in engine.rendered)

    def test_small_bodies_not_precompressed(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        engine.store("tiny", b"<p>tiny</p>")
        assert engine.get_encoded("tiny", "br") is None
        assert engine.get_rendered("tiny") is not None

    def test_populate_missing_key_drops_entries(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        engine.store("ghost", b"x" * 4096)
        assert not engine.populate("ghost")
        assert "ghost" not in engine.rendered
        assert engine.get_encoded("ghost", "gzip") is None

    def test_store_rendered_drops_encodings(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        engine.store_rendered("welcome", b"fresh")
        assert engine.get_encoded("welcome", "br") is None
        assert engine.is_consistent("welcome")


class TestInvalidation:
    def test_invalidate_drops_both_tiers(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        assert engine.invalidate(["welcome"]) == ["welcome"]
        assert engine.get_rendered("welcome") is None
        assert engine.get_encoded("welcome", "br") is None
        assert engine.get_encoded("welcome", "gzip") is None

    def test_invalidate_records_event(self, warm_runtime: SiteRuntime) -> None:
        warm_runtime.engine.invalidate(["welcome"], "content")
        events = warm_runtime.collector.log.of_type(CacheInvalidated)
        assert events[-1].keys == ("welcome",)
        assert events[-1].reason == "content"

    def test_invalidate_listings(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        dropped = engine.invalidate_listings()
        assert index_key(1) in dropped
        assert "welcome" in engine.rendered
        assert not any(is_listing_key(k) for k in engine.rendered)

    def test_invalidate_dynamic(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        engine.invalidate_dynamic()
        assert engine.dynamic == {}

    def test_clear(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        expected = len(engine.rendered) + len(engine.precompressed) + len(engine.dynamic)
        assert engine.clear() == expected
        assert engine.stats() == {
            "rendered": 0,
            "precompressed": 0,
            "dynamic": 0,
            "static": 0,
            "static_bytes": 0,
        }

    def test_inconsistent_entry_detected(self, warm_runtime: SiteRuntime) -> None:
        engine = warm_runtime.engine
        engine.rendered["welcome"] = engine.rendered["about"]
        assert not engine.is_consistent("welcome")
