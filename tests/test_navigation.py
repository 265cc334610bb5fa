"""Tests for tabby.content.navigation — hash-gated navigation tree."""

from __future__ import annotations

from pathlib import Path

from tabby.config_loader import load_config
from tabby.content.navigation import NavigationIndex, build_navigation, navigation_hash
from tabby.content.store import ContentStore


def _loaded(root: Path) -> ContentStore:
    store = ContentStore(load_config(root))
    store.scan()
    return store


class TestNavigationHash:
    def test_order_independent(self) -> None:
        assert navigation_hash(["b", "a"]) == navigation_hash(["a", "b"])

    def test_changes_with_slug_set(self) -> None:
        assert navigation_hash(["a"]) != navigation_hash(["a", "b"])


class TestBuildNavigation:
    """build_navigation — folders first, then files, by name."""

    def test_folders_before_files(self, tmp_site: Path) -> None:
        docs = tmp_site / "content" / "docs"
        docs.mkdir()
        (docs / "intro.md").write_text("# Intro\n")
        store = _loaded(tmp_site)

        tree = build_navigation(store.records())
        assert tree[0].kind == "folder"
        assert tree[0].name == "docs"
        assert tree[0].children[0].slug == "docs/intro"
        assert tree[0].children[0].title == "Intro"
        assert [node.name for node in tree[1:]] == [
            "2024-01-01-welcome.md",
            "2024-02-01-second.md",
            "about.txt",
        ]

    def test_to_dict(self, tmp_site: Path) -> None:
        store = _loaded(tmp_site)
        index = NavigationIndex()
        index.refresh(store.mapping())
        file_node = index.as_dicts()[0]
        assert file_node == {
            "type": "file",
            "name": "2024-01-01-welcome.md",
            "title": "Welcome",
            "path": "2024-01-01-welcome.md",
            "slug": "welcome",
            "url": "/welcome/",
        }


class TestNavigationIndex:
    """NavigationIndex.refresh — rebuilds only when the slug set changes."""

    def test_first_refresh_builds(self, tmp_site: Path) -> None:
        index = NavigationIndex()
        assert index.refresh(_loaded(tmp_site).mapping())
        assert index.hash

    def test_same_slugs_skip_rebuild(self, tmp_site: Path) -> None:
        store = _loaded(tmp_site)
        index = NavigationIndex()
        index.refresh(store.mapping())
        assert not index.refresh(store.mapping())

    def test_force_rebuilds(self, tmp_site: Path) -> None:
        store = _loaded(tmp_site)
        index = NavigationIndex()
        index.refresh(store.mapping())
        assert index.refresh(store.mapping(), force=True)

    def test_new_slug_rebuilds(self, tmp_site: Path) -> None:
        store = _loaded(tmp_site)
        index = NavigationIndex()
        index.refresh(store.mapping())
        before = index.hash

        (tmp_site / "content" / "new.md").write_text("# New\n")
        record = store.load_one("new.md")
        assert record is not None
        store.upsert(record)

        assert index.refresh(store.mapping())
        assert index.hash != before
        assert any(node.slug == "new" for node in index.tree)
