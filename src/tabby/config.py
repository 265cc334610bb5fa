"""Tabby configuration.

TabbyConfig is the central configuration object, frozen after creation.
It carries both the runtime settings (paths, server, caches) and the site
metadata exposed to templates (title, description, url, author).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tabby._errors import ConfigError

_URL_MODES = frozenset({"clean", "path"})

MIB = 1024 * 1024


@dataclass(frozen=True, slots=True)
class TabbyConfig:
    """Configuration for a Tabby site.

    Attributes:
        root: Path to the site root directory (contains content/, templates/, etc.).
              Always resolved to an absolute path on construction.
        content_dir: Directory containing markdown/text/HTML sources.
        templates_dir: Directory holding one sub-directory per theme.
        theme: Active theme name under ``templates_dir``. Empty selects the
            bundled default theme.
        output: Output directory for static export.
        cache_dir: Directory for optimized image derivatives in dev/serve mode.
        host: Bind address for dev/serve modes.
        port: First port tried for dev/serve modes.
        port_attempts: Number of consecutive ports tried before giving up.
        workers: Number of Pounce workers in serve mode (0 = auto-detect).
        admin_token: Bearer token accepted by the admin routes. ``None``
            disables them.
        title: Site title.
        description: Site description.
        url: Absolute base URL (used for RSS, sitemap, robots.txt, llms.txt).
        author: Default author name.
        index: Slug served at ``/`` instead of the generated listing.
        posts_per_page: Listing page size.
        reading_speed: Words per minute for reading-time estimates.
        url_mode: ``"clean"`` drops a ``YYYY-MM-DD-`` filename prefix from
            slugs, ``"path"`` keeps the relative path verbatim.
        escape_text_files: HTML-escape ``.txt`` content inside ``<pre>``.
        strict_images: Treat broken image references as fatal during a scan.
        static_cache_bytes: Byte budget of the static-asset cache.
        static_cache_max_file: Files at or above this size bypass the cache.
        compress_min_bytes: Bodies at or below this size are sent uncompressed.
        debounce_ms: Quiet window before image optimization runs.
        image_sizes: Standard derivative widths.
        image_quality: WebP/JPEG quality for derivatives.
        image_workers: Parallel transcodes per batch (0 = max(2, 75% of CPUs)).
        fingerprint: Content-hash CSS/JS theme assets in ``tabby build``.

    """

    root: Path = field(default_factory=Path.cwd)
    content_dir: str = "content"
    templates_dir: str = "templates"
    theme: str = ""
    output: Path = field(default_factory=lambda: Path("build"))
    cache_dir: str = ".cache"
    host: str = "127.0.0.1"
    port: int = 3009
    port_attempts: int = 100
    workers: int = 0
    admin_token: str | None = None
    title: str = "My Site"
    description: str = "A site powered by Tabby"
    url: str = "https://example.com"
    author: str = "Anonymous"
    index: str | None = None
    posts_per_page: int = 10
    reading_speed: int = 200
    url_mode: str = "clean"
    escape_text_files: bool = True
    strict_images: bool = False
    static_cache_bytes: int = 50 * MIB
    static_cache_max_file: int = 5 * MIB
    compress_min_bytes: int = 1024
    debounce_ms: int = 500
    image_sizes: tuple[int, ...] = (400, 800, 1200)
    image_quality: int = 80
    image_workers: int = 0
    fingerprint: bool = False

    def __post_init__(self) -> None:
        # Resolve root to absolute so that watchfiles (which returns
        # absolute paths) can be compared via Path.relative_to().
        if not isinstance(self.root, Path):
            object.__setattr__(self, "root", Path(self.root))
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())
        if not isinstance(self.output, Path):
            object.__setattr__(self, "output", Path(str(self.output)))
        if not isinstance(self.image_sizes, tuple):
            object.__setattr__(self, "image_sizes", tuple(self.image_sizes))
        object.__setattr__(self, "url", self.url.rstrip("/"))

        if self.url_mode not in _URL_MODES:
            msg = f"url_mode must be one of {sorted(_URL_MODES)}, got {self.url_mode!r}"
            raise ConfigError(msg)
        for name in ("port", "posts_per_page", "reading_speed", "port_attempts"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                msg = f"{name} must be a positive integer, got {value!r}"
                raise ConfigError(msg)

    @property
    def content_path(self) -> Path:
        """Absolute path to content directory."""
        return self.root / self.content_dir

    @property
    def themes_path(self) -> Path:
        """Absolute path to the directory holding theme sub-directories."""
        return self.root / self.templates_dir

    @property
    def theme_path(self) -> Path | None:
        """Absolute path to the active user theme, or None for the bundled default."""
        if not self.theme:
            return None
        return self.themes_path / self.theme

    @property
    def output_path(self) -> Path:
        """Absolute path to output directory."""
        if self.output.is_absolute():
            return self.output
        return self.root / self.output

    @property
    def cache_path(self) -> Path:
        """Absolute path to the image derivative cache."""
        return self.root / self.cache_dir

    @property
    def redirects_path(self) -> Path:
        """Absolute path to the optional ``redirects.json``."""
        return self.root / "redirects.json"

    def site_context(self) -> dict[str, Any]:
        """Site metadata exposed to every template as ``site``."""
        return {
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "author": self.author,
        }
