"""Asset handling — theme assets, content-tree files and fingerprinting.

Theme assets are written under ``output/assets/`` (templated assets are
rendered with the site configuration first).  Non-content, non-image files
from the content tree are copied verbatim, preserving directory structure.
When fingerprinting is enabled, CSS and JS assets are renamed with a
content-hash suffix and references in exported HTML are rewritten.
"""

from __future__ import annotations

import hashlib
import json
import shutil
import time
from pathlib import Path
from typing import TYPE_CHECKING

from tabby.export.static import ExportedFile

if TYPE_CHECKING:
    from tabby.content.store import ContentStore
    from tabby.theme import ThemeRegistry

ASSETS_DIR = "assets"

# Only these are renamed; images and fonts keep stable names
_FINGERPRINT_SUFFIXES = frozenset({".css", ".js"})


def write_theme_assets(theme: ThemeRegistry, output_dir: Path) -> tuple[ExportedFile, ...]:
    """Write every theme asset to ``output_dir/assets/``.

    Raises:
        RenderError: A templated asset failed to render.

    """
    dest_root = output_dir / ASSETS_DIR
    results: list[ExportedFile] = []

    for name in sorted(theme.assets()):
        t0 = time.perf_counter()
        body = theme.render_asset(name)
        if body is None:
            continue
        dest_file = dest_root.joinpath(*name.split("/"))
        dest_file.parent.mkdir(parents=True, exist_ok=True)
        dest_file.write_bytes(body)
        elapsed = (time.perf_counter() - t0) * 1000

        results.append(ExportedFile(
            source_path=f"/{ASSETS_DIR}/{name}",
            output_path=dest_file,
            source_type="asset",
            size_bytes=len(body),
            duration_ms=elapsed,
        ))

    return tuple(results)


def copy_content_files(store: ContentStore, output_dir: Path) -> tuple[ExportedFile, ...]:
    """Copy non-content, non-image files from the content tree verbatim.

    Drafts and dot-prefixed paths are skipped, as they are for content.
    """
    results: list[ExportedFile] = []

    for rel in store.iter_static_files():
        t0 = time.perf_counter()
        parts = rel.split("/")
        src_file = store.root.joinpath(*parts)
        dest_file = output_dir.joinpath(*parts)
        dest_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_file, dest_file)

        size = dest_file.stat().st_size
        elapsed = (time.perf_counter() - t0) * 1000

        results.append(ExportedFile(
            source_path=f"/{rel}",
            output_path=dest_file,
            source_type="file",
            size_bytes=size,
            duration_ms=elapsed,
        ))

    return tuple(results)


def fingerprint_assets(output_dir: Path) -> dict[str, str]:
    """Rename CSS and JS assets with content-hash suffixes.

    For each such file in ``output_dir/assets/``, computes an 8-character
    hex digest of its contents and renames it:

        ``style.css`` -> ``style.a1b2c3d4.css``

    Args:
        output_dir: Root export output directory.

    Returns:
        Mapping of original paths (``/assets/style.css``) to fingerprinted
        paths (``/assets/style.a1b2c3d4.css``).

    """
    assets_root = output_dir / ASSETS_DIR
    if not assets_root.is_dir():
        return {}

    manifest: dict[str, str] = {}

    for filepath in sorted(assets_root.rglob("*")):
        if not filepath.is_file() or filepath.suffix.lower() not in _FINGERPRINT_SUFFIXES:
            continue

        content = filepath.read_bytes()
        digest = hashlib.sha256(content).hexdigest()[:8]

        new_path = filepath.with_name(f"{filepath.stem}.{digest}{filepath.suffix}")
        filepath.rename(new_path)

        relative_old = filepath.relative_to(output_dir).as_posix()
        relative_new = new_path.relative_to(output_dir).as_posix()
        manifest[f"/{relative_old}"] = f"/{relative_new}"

    return manifest


def rewrite_asset_refs(output_dir: Path, manifest: dict[str, str]) -> int:
    """Rewrite asset references in all exported HTML files.

    Returns the number of files changed.
    """
    if not manifest:
        return 0

    changed = 0
    for html_file in sorted(output_dir.rglob("*.html")):
        content = html_file.read_text(encoding="utf-8")
        modified = False

        for original, fingerprinted in manifest.items():
            # Match the quoted form so /assets/site.css never rewrites /assets/site.css.map
            for quote in ('"', "'"):
                needle = f"{quote}{original}{quote}"
                if needle in content:
                    content = content.replace(needle, f"{quote}{fingerprinted}{quote}")
                    modified = True

        if modified:
            html_file.write_text(content, encoding="utf-8")
            changed += 1
    return changed


def write_manifest(output_dir: Path, manifest: dict[str, str]) -> Path:
    """Write the asset manifest to ``output_dir/manifest.json``."""
    manifest_path = output_dir / "manifest.json"
    manifest_path.write_text(
        json.dumps(manifest, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return manifest_path
