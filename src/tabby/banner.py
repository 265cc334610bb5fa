"""Startup banner — mode-aware status output.

Prints the mode, content counts, theme and listen URL.  Detects
``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tabby.config import TabbyConfig


# ---------------------------------------------------------------------------
# ANSI helpers: respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""

_MODE_STYLES: dict[str, tuple[str, str]] = {
    "dev": (_GREEN, "dev"),
    "build": (_YELLOW, "build"),
    "serve": (_CYAN, "serve"),
}


def _mode_badge(mode: str) -> str:
    color, label = _MODE_STYLES.get(mode, (_DIM, mode))
    return f"{color}[{label}]{_RESET}"


def _clickable_url(url: str) -> str:
    """Wrap *url* in an OSC 8 hyperlink escape if the terminal supports it."""
    if not _COLOR:
        return url
    return f"\033]8;;{url}\033\\{_BOLD}{_CYAN}{url}{_RESET}\033]8;;\033\\"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def print_banner(
    config: TabbyConfig,
    page_count: int,
    mode: str,
    *,
    theme_name: str = "default",
    image_count: int = 0,
    cached_count: int = 0,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the Tabby startup banner to stderr.

    Args:
        config: Resolved TabbyConfig.
        page_count: Number of content records loaded.
        mode: One of ``"dev"``, ``"build"``, ``"serve"``.
        theme_name: Name of the active theme.
        image_count: Distinct images referenced by content.
        cached_count: Pages pre-rendered into the cache tiers.
        load_ms: Time spent loading the site in milliseconds.
        warnings: Optional list of warning messages to display.

    """
    from tabby import __version__

    lines: list[str] = [
        "",
        f"  {_BOLD}Tabby{_RESET} {_DIM}v{__version__}{_RESET}  {_mode_badge(mode)}",
        f"  {_DIM}{'─' * 43}{_RESET}",
    ]

    timing = f" {_DIM}in {load_ms:.0f}ms{_RESET}" if load_ms > 0 else ""
    lines.append(f"  {_DIM}├─{_RESET} {_plural(page_count, 'page')} loaded{timing}")
    if image_count > 0:
        lines.append(f"  {_DIM}├─{_RESET} {_plural(image_count, 'image')} referenced")
    if cached_count > 0:
        lines.append(f"  {_DIM}├─{_RESET} {_plural(cached_count, 'page')} cached")
    lines.append(f"  {_DIM}├─{_RESET} theme: {theme_name}")
    lines.append(f"  {_DIM}├─{_RESET} content: {_DIM}{config.content_path}{_RESET}")

    if mode == "build":
        lines.append(f"  {_DIM}└─{_RESET} output: {_DIM}{config.output_path}{_RESET}")
    elif mode == "serve":
        workers_label = str(config.workers) if config.workers > 0 else "auto"
        lines.append(f"  {_DIM}└─{_RESET} workers: {workers_label}")
    else:
        lines.append(f"  {_DIM}└─{_RESET} {_GREEN}live{_RESET} rebuilds on file changes")

    if mode in ("dev", "serve"):
        url = f"http://{config.host}:{config.port}"
        lines.append("")
        lines.append(f"  {_clickable_url(url)}")

    if mode == "dev":
        lines.append("")
        lines.append(f"  {_DIM}Watching for changes...{_RESET}")

    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")

    print("\n".join(lines), file=sys.stderr)
