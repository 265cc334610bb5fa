"""Tests for tabby.theme — bundled theme, fallback chain and assets."""

from __future__ import annotations

from pathlib import Path

import pytest

from tabby._errors import RenderError, ThemeError
from tabby.config import TabbyConfig
from tabby.theme import (
    ThemeRegistry,
    _bundled_theme_path,
    get_asset_dirs,
    get_template_dirs,
    is_templated_source,
)

# ---------------------------------------------------------------------------
# Bundled theme structure
# ---------------------------------------------------------------------------


class TestBundledTheme:
    """Verify the bundled default theme has all required files."""

    def test_bundled_path_exists(self) -> None:
        path = _bundled_theme_path()
        assert path.is_dir(), f"Bundled theme not found at {path}"

    def test_required_templates_present(self) -> None:
        templates = _bundled_theme_path() / "templates"
        for name in ("base.html", "post.html", "page.html", "index.html", "tag.html", "404.html"):
            assert (templates / name).is_file(), f"Missing template: {name}"

    def test_partials_present(self) -> None:
        partials = _bundled_theme_path() / "templates" / "partials"
        for name in ("header.html", "post-card.html", "pagination.html"):
            assert (partials / name).is_file()

    def test_base_template_contains_block_content(self) -> None:
        base = _bundled_theme_path() / "templates" / "base.html"
        assert "{% block content %}" in base.read_text(encoding="utf-8")

    def test_page_template_extends_base(self) -> None:
        page = _bundled_theme_path() / "templates" / "page.html"
        assert '{% extends "base.html" %}' in page.read_text(encoding="utf-8")

    def test_bundled_info(self, tmp_path: Path) -> None:
        registry = ThemeRegistry(TabbyConfig(root=tmp_path))
        assert registry.info.name == "default"
        assert registry.info.version == "1.0.0"
        assert registry.is_bundled
        assert registry.missing_required() == []


# ---------------------------------------------------------------------------
# Fallback chain
# ---------------------------------------------------------------------------


def _theme(root: Path, name: str = "paper") -> Path:
    theme = root / "templates" / name
    (theme / "templates").mkdir(parents=True)
    (theme / "assets").mkdir()
    return theme


class TestFallbackChain:
    """Template and asset directory resolution."""

    def test_bundled_only_without_theme(self, tmp_path: Path) -> None:
        config = TabbyConfig(root=tmp_path)
        assert get_template_dirs(config) == [_bundled_theme_path() / "templates"]
        assert get_asset_dirs(config) == [_bundled_theme_path() / "assets"]

    def test_active_theme_first(self, tmp_path: Path) -> None:
        config = TabbyConfig(root=tmp_path, theme="paper")
        dirs = get_template_dirs(config)
        assert dirs[0] == tmp_path / "templates" / "paper" / "templates"
        assert dirs[1] == _bundled_theme_path() / "templates"
        assert get_asset_dirs(config)[0] == tmp_path / "templates" / "paper" / "assets"

    def test_missing_theme_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ThemeError, match="not found"):
            ThemeRegistry(TabbyConfig(root=tmp_path, theme="nope"))

    def test_theme_template_overrides_bundled(self, tmp_path: Path) -> None:
        theme = _theme(tmp_path)
        (theme / "templates" / "post.html").write_text("<p>custom {{ post.title }}</p>")
        registry = ThemeRegistry(TabbyConfig(root=tmp_path, theme="paper"))

        assert registry.render("post", {"post": {"title": "Hi"}}) == "<p>custom Hi</p>"
        assert registry.has_own_template("post")
        assert not registry.has_own_template("page")
        assert registry.has_template("page")
        assert registry.missing_required() == ["index"]

    def test_unknown_template(self, tmp_path: Path) -> None:
        registry = ThemeRegistry(TabbyConfig(root=tmp_path))
        with pytest.raises(ThemeError):
            registry.render("nonexistent", {})

    def test_first_available(self, tmp_path: Path) -> None:
        registry = ThemeRegistry(TabbyConfig(root=tmp_path))
        assert registry.first_available(["", "docs", "page"]) == "page"
        assert registry.first_available(["docs"]) is None

    def test_theme_json(self, tmp_path: Path) -> None:
        theme = _theme(tmp_path)
        (theme / "theme.json").write_text('{"name": "Paper", "version": "2.0"}')
        registry = ThemeRegistry(TabbyConfig(root=tmp_path, theme="paper"))
        assert registry.info.name == "Paper"
        assert registry.info.version == "2.0"

    def test_broken_theme_json(self, tmp_path: Path) -> None:
        theme = _theme(tmp_path)
        (theme / "theme.json").write_text("{broken")
        registry = ThemeRegistry(TabbyConfig(root=tmp_path, theme="paper"))
        assert registry.info.name == "paper"

    def test_reload_picks_up_edits(self, tmp_path: Path) -> None:
        theme = _theme(tmp_path)
        post = theme / "templates" / "post.html"
        post.write_text("v1")
        registry = ThemeRegistry(TabbyConfig(root=tmp_path, theme="paper"))
        assert registry.render("post", {}) == "v1"
        post.write_text("v2")
        registry.reload()
        assert registry.render("post", {}) == "v2"


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class TestAssets:
    def test_bundled_assets(self, tmp_path: Path) -> None:
        registry = ThemeRegistry(TabbyConfig(root=tmp_path))
        assets = registry.assets()
        assert "style.css" in assets
        assert not assets["style.css"].templated
        assert assets["site.webmanifest"].templated

    def test_templated_asset_uses_site(self, tmp_path: Path) -> None:
        registry = ThemeRegistry(TabbyConfig(root=tmp_path, title="Kitten Blog"))
        body = registry.render_asset("site.webmanifest")
        assert body is not None
        assert b"Kitten Blog" in body

    def test_theme_asset_overrides_bundled(self, tmp_path: Path) -> None:
        theme = _theme(tmp_path)
        (theme / "assets" / "style.css").write_text("body { color: red; }")
        (theme / "assets" / "partials").mkdir()
        (theme / "assets" / "partials" / "x.css").write_text("")
        (theme / "assets" / "_private.css").write_text("")
        registry = ThemeRegistry(TabbyConfig(root=tmp_path, theme="paper"))

        assert registry.render_asset("style.css") == b"body { color: red; }"
        assert "site.webmanifest" in registry.assets()
        assert "partials/x.css" not in registry.assets()
        assert "_private.css" not in registry.assets()

    def test_broken_templated_asset(self, tmp_path: Path) -> None:
        theme = _theme(tmp_path)
        (theme / "assets" / "bad.js").write_text("{% if %}")
        registry = ThemeRegistry(TabbyConfig(root=tmp_path, theme="paper"))
        with pytest.raises(RenderError):
            registry.render_asset("bad.js")

    def test_missing_asset(self, tmp_path: Path) -> None:
        assert ThemeRegistry(TabbyConfig(root=tmp_path)).render_asset("nope.css") is None

    def test_is_templated_source(self) -> None:
        assert is_templated_source(b"{{ site.title }}")
        assert is_templated_source(b"{% if x %}{% endif %}")
        assert not is_templated_source(b"body { margin: 0 }")
        assert not is_templated_source(b"\x89PNG\xff\xfe")
