"""Redirect rules — ``redirects.json`` to host-specific files.

``redirects.json`` at the site root maps old paths to new ones::

    {"/old-post/": "/new-post/", "/feed": "/rss.xml"}

The build writes both a Netlify ``_redirects`` file and a ``vercel.json``,
all redirects permanent (301).
"""

from __future__ import annotations

import json
import sys
import time
from typing import TYPE_CHECKING

from tabby.export.static import ExportedFile

if TYPE_CHECKING:
    from pathlib import Path


def load_redirects(path: Path) -> dict[str, str]:
    """Read a redirects mapping; an unreadable or malformed file yields ``{}``."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"  Warning: failed to read {path.name}: {exc}", file=sys.stderr)
        return {}
    if not isinstance(data, dict):
        print(f"  Warning: {path.name} must be an object of path pairs", file=sys.stderr)
        return {}
    return {str(source): str(target) for source, target in data.items()}


def netlify_redirects(redirects: dict[str, str]) -> str:
    return "".join(f"{source} {target} 301\n" for source, target in redirects.items())


def vercel_config(redirects: dict[str, str]) -> str:
    config = {
        "redirects": [
            {"source": source, "destination": target, "permanent": True}
            for source, target in redirects.items()
        ]
    }
    return json.dumps(config, indent=2)


def write_redirects(redirects_path: Path, output_dir: Path) -> tuple[ExportedFile, ...]:
    """Write ``_redirects`` and ``vercel.json``; nothing when there are no rules."""
    redirects = load_redirects(redirects_path)
    if not redirects:
        return ()

    results: list[ExportedFile] = []
    for name, text in (
        ("_redirects", netlify_redirects(redirects)),
        ("vercel.json", vercel_config(redirects)),
    ):
        t0 = time.perf_counter()
        filepath = output_dir / name
        data = text.encode("utf-8")
        filepath.write_bytes(data)
        results.append(ExportedFile(
            source_path=f"/{name}",
            output_path=filepath,
            source_type="redirect",
            size_bytes=len(data),
            duration_ms=(time.perf_counter() - t0) * 1000,
        ))

    print(f"  Generated redirect rules ({len(redirects)} redirects)", file=sys.stderr)
    return tuple(results)
