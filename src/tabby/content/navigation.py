"""Navigation index — a folder/file tree mirroring the content root.

The tree is rebuilt only when the hash of the sorted slug set changes, so
edits that keep the same set of pages never pay for a rebuild.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from tabby.content.metadata import strip_date_prefix, title_from_filename

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from tabby.content.records import ContentRecord


@dataclass(frozen=True, slots=True)
class NavigationNode:
    """One node of the navigation tree.

    Folders carry ``children``; files carry ``slug``, ``url`` and ``title``.
    """

    kind: Literal["folder", "file"]
    name: str
    title: str
    path: str
    slug: str | None = None
    url: str | None = None
    children: tuple[NavigationNode, ...] = field(default=())

    @property
    def is_folder(self) -> bool:
        return self.kind == "folder"

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form handed to templates."""
        if self.is_folder:
            return {
                "type": "folder",
                "name": self.name,
                "title": self.title,
                "path": self.path,
                "children": [child.to_dict() for child in self.children],
            }
        return {
            "type": "file",
            "name": self.name,
            "title": self.title,
            "path": self.path,
            "slug": self.slug,
            "url": self.url,
        }


def navigation_hash(slugs: Iterable[str]) -> str:
    """Stable digest of a slug set; order of *slugs* does not matter."""
    joined = "\n".join(sorted(slugs))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


def build_navigation(records: Iterable[ContentRecord]) -> tuple[NavigationNode, ...]:
    """Build the tree from record paths. Folders sort before files, then by name."""
    root: dict[str, Any] = {}
    for record in records:
        parts = record.path.split("/")
        cursor = root
        for folder in parts[:-1]:
            cursor = cursor.setdefault(folder, {})
        cursor[parts[-1]] = record
    return _freeze(root, "")


def _freeze(level: dict[str, Any], prefix: str) -> tuple[NavigationNode, ...]:
    folders = sorted(name for name, value in level.items() if isinstance(value, dict))
    files = sorted(name for name, value in level.items() if not isinstance(value, dict))

    nodes: list[NavigationNode] = []
    for name in folders:
        path = f"{prefix}{name}"
        nodes.append(
            NavigationNode(
                kind="folder",
                name=name,
                title=strip_date_prefix(name).replace("-", " ").replace("_", " "),
                path=path,
                children=_freeze(level[name], f"{path}/"),
            )
        )
    for name in files:
        record: ContentRecord = level[name]
        nodes.append(
            NavigationNode(
                kind="file",
                name=name,
                title=record.title or title_from_filename(name),
                path=record.path,
                slug=record.slug,
                url=record.url,
            )
        )
    return tuple(nodes)


class NavigationIndex:
    """Hash-gated navigation tree.

    ``refresh`` compares the slug-set hash against the last build and
    rebuilds only on a change.
    """

    __slots__ = ("_hash", "_tree")

    def __init__(self) -> None:
        self._hash = ""
        self._tree: tuple[NavigationNode, ...] = ()

    @property
    def hash(self) -> str:
        return self._hash

    @property
    def tree(self) -> tuple[NavigationNode, ...]:
        return self._tree

    def refresh(self, records: Mapping[str, ContentRecord], *, force: bool = False) -> bool:
        """Rebuild from *records* (slug → record) if the slug set changed.

        Returns True when the tree was rebuilt.
        """
        digest = navigation_hash(records)
        if not force and digest == self._hash and self._tree:
            return False
        self._tree = build_navigation(records.values())
        self._hash = digest
        return True

    def as_dicts(self) -> list[dict[str, Any]]:
        return [node.to_dict() for node in self._tree]
