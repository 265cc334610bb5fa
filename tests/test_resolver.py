"""Tests for tabby.cache.resolver — tier order and fallbacks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tabby._errors import RenderError
from tabby.cache.http import decompress, etag_for
from tabby.cache.keys import index_key

if TYPE_CHECKING:
    from tabby.runtime import SiteRuntime


class TestResolvePages:
    """resolve — precompressed, then rendered, then a fresh render."""

    def test_precompressed_hit(self, warm_runtime: SiteRuntime) -> None:
        result = warm_runtime.resolver.resolve("welcome", "gzip, br")
        assert result is not None
        assert result.tier == "precompressed"
        assert result.encoding == "br"
        assert result.header("Content-Encoding") == "br"
        assert result.header("Vary") == "Accept-Encoding"
        identity = warm_runtime.engine.rendered["welcome"].body
        assert decompress(result.body, "br") == identity

    def test_gzip_only_client(self, warm_runtime: SiteRuntime) -> None:
        result = warm_runtime.resolver.resolve("welcome", "gzip")
        assert result is not None
        assert result.encoding == "gzip"

    def test_rendered_hit_without_encoding(self, warm_runtime: SiteRuntime) -> None:
        result = warm_runtime.resolver.resolve("welcome")
        assert result is not None
        assert result.tier == "rendered"
        assert result.encoding == ""
        assert result.body == warm_runtime.engine.rendered["welcome"].body

    def test_cold_render_populates_rendered_tier_only(self, runtime: SiteRuntime) -> None:
        result = runtime.resolver.resolve("welcome", "br")
        assert result is not None
        assert result.tier == "render"
        # Compressed on the fly, but not stored in the precompressed tier
        assert result.encoding == "br"
        assert "welcome" in runtime.engine.rendered
        assert runtime.engine.get_encoded("welcome", "br") is None

        again = runtime.resolver.resolve("welcome")
        assert again is not None
        assert again.tier == "rendered"

    def test_etag_identical_across_encodings(self, warm_runtime: SiteRuntime) -> None:
        resolver = warm_runtime.resolver
        etags = {
            resolver.resolve("welcome", enc).header("ETag")  # type: ignore[union-attr]
            for enc in (None, "gzip", "br")
        }
        assert etags == {etag_for(warm_runtime.engine.rendered["welcome"].body)}

    @pytest.mark.parametrize("accept", [None, "br"])
    def test_not_modified(self, warm_runtime: SiteRuntime, accept: str | None) -> None:
        etag = warm_runtime.engine.rendered["welcome"].etag
        result = warm_runtime.resolver.resolve("welcome", accept, etag)
        assert result is not None
        assert result.status == 304
        assert result.body == b""

    def test_unknown_key(self, warm_runtime: SiteRuntime) -> None:
        assert warm_runtime.resolver.resolve("nope") is None
        assert warm_runtime.resolver.resolve(index_key(9)) is None

    def test_render_error_is_500(self, runtime: SiteRuntime, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom(key: str) -> str:
            raise RenderError("broken template")

        monkeypatch.setattr(runtime.renderer, "render_key", boom)
        result = runtime.resolver.resolve("welcome")
        assert result is not None
        assert result.status == 500
        assert result.header("Cache-Control") == "no-store"
        assert "welcome" not in runtime.engine.rendered


class TestNotFound:
    def test_rendered_once(self, runtime: SiteRuntime) -> None:
        first = runtime.resolver.not_found()
        second = runtime.resolver.not_found()
        assert first.status == second.status == 404
        assert first.tier == "render"
        assert second.tier == "dynamic"
        assert first.body == second.body

    def test_resolve_or_404(self, warm_runtime: SiteRuntime) -> None:
        assert warm_runtime.resolver.resolve_or_404("nope").status == 404


class TestArtifactsAndAssets:
    def test_artifact_from_dynamic(self, warm_runtime: SiteRuntime) -> None:
        result = warm_runtime.resolver.resolve_artifact("rss.xml")
        assert result is not None
        assert result.tier == "dynamic"
        assert result.content_type.startswith("application/rss+xml")

    def test_artifact_rendered_on_miss(self, runtime: SiteRuntime) -> None:
        result = runtime.resolver.resolve_artifact("robots.txt")
        assert result is not None
        assert result.tier == "render"
        assert runtime.engine.get_dynamic("robots.txt") is not None

    def test_unknown_artifact(self, runtime: SiteRuntime) -> None:
        assert runtime.resolver.resolve_artifact("nope.xml") is None

    def test_asset_cached_in_static_tier(self, runtime: SiteRuntime) -> None:
        first = runtime.resolver.resolve_asset("style.css")
        second = runtime.resolver.resolve_asset("style.css")
        assert first is not None
        assert second is not None
        assert (first.tier, second.tier) == ("render", "static")
        assert second.header("Cache-Control") == "public, max-age=31536000, immutable"


class TestFiles:
    """resolve_file — verbatim content-tree files and derivatives."""

    @pytest.mark.asyncio
    async def test_serves_content_tree_file(self, runtime: SiteRuntime) -> None:
        result = await runtime.resolver.resolve_file("files/doc.pdf")
        assert result is not None
        assert result.body == b"%PDF-1.4 test document"
        assert result.content_type == "application/pdf"
        assert "file:files/doc.pdf" in runtime.engine.static

        cached = await runtime.resolver.resolve_file("files/doc.pdf")
        assert cached is not None
        assert cached.tier == "static"

    @pytest.mark.asyncio
    async def test_serves_derivative(self, runtime: SiteRuntime) -> None:
        cache = runtime.config.cache_path
        cache.mkdir()
        (cache / "photo-400-abcdef12.jpg").write_bytes(b"jpeg")
        result = await runtime.resolver.resolve_file("photo-400-abcdef12.jpg")
        assert result is not None
        assert result.content_type == "image/jpeg"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path",
        ["2024-01-01-welcome.md", "drafts/secret.md", "../tabby.yaml", "nothing.bin"],
    )
    async def test_refuses(self, runtime: SiteRuntime, path: str) -> None:
        assert await runtime.resolver.resolve_file(path) is None
