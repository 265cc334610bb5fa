"""Tabby theme registry — fallback chain for templates and assets.

A theme lives in ``templates/<name>/`` with ``templates/`` (Kida
templates, ``partials/`` included), ``assets/`` (served under
``/assets/``) and an optional ``theme.json``.  When the active theme lacks
a template, Kida falls through to the bundled default theme.  Same pattern
for assets.

Assets whose source contains ``{{`` or ``{%`` are rendered with the site
configuration as context; all others are served byte-for-byte.

Thread Safety:
    Kida environments are safe for concurrent rendering.  ``reload`` is
    only called by the rebuild coordinator.

"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kida import Environment, FileSystemLoader, TemplateError, TemplateNotFoundError

from tabby._errors import RenderError, ThemeError
from tabby.content.metadata import to_web_path

if TYPE_CHECKING:
    from tabby.config import TabbyConfig

REQUIRED_TEMPLATES = ("index", "post")

_TEMPLATE_MARKERS = ("{{", "{%")
_SKIPPED_ASSET_DIRS = frozenset({"partials", "__pycache__"})


def _bundled_theme_path() -> Path:
    """Return the absolute path to the bundled default theme."""
    return Path(__file__).parent / "default"


def get_template_dirs(config: TabbyConfig) -> list[Path]:
    """Return template directories in priority order.

    Returns:
        ``[active_theme_templates, bundled_default_templates]``

    Kida's loader searches in order, so the active theme takes priority.

    """
    bundled = _bundled_theme_path() / "templates"
    dirs: list[Path] = []
    if config.theme_path is not None:
        dirs.append(config.theme_path / "templates")
    dirs.append(bundled)
    return dirs


def get_asset_dirs(config: TabbyConfig) -> list[Path]:
    """Return asset directories in priority order.

    Returns:
        ``[active_theme_assets, bundled_default_assets]``

    """
    bundled = _bundled_theme_path() / "assets"
    dirs: list[Path] = []
    if config.theme_path is not None:
        dirs.append(config.theme_path / "assets")
    dirs.append(bundled)
    return dirs


def _is_asset(rel: Path) -> bool:
    if any(part.startswith((".", "_")) or part in _SKIPPED_ASSET_DIRS for part in rel.parts):
        return False
    return rel.suffix.lower() != ".html"


def is_templated_source(data: bytes) -> bool:
    """True when an asset body contains Kida markup."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return any(marker in text for marker in _TEMPLATE_MARKERS)


@dataclass(frozen=True, slots=True)
class ThemeAsset:
    """One file under a theme's ``assets/`` directory."""

    name: str
    path: Path
    templated: bool


@dataclass(frozen=True, slots=True)
class ThemeInfo:
    """Metadata from ``theme.json`` (defaults when the file is absent)."""

    name: str
    version: str = ""
    description: str = ""
    author: str = ""


class ThemeRegistry:
    """Compiled templates and assets of the active theme.

    Args:
        config: Site configuration; ``config.theme`` selects the theme.

    Raises:
        ThemeError: A theme is configured but its directory does not exist.

    """

    def __init__(self, config: TabbyConfig) -> None:
        self._config = config
        theme_path = config.theme_path
        if theme_path is not None and not theme_path.is_dir():
            msg = f"Theme {config.theme!r} not found at {theme_path}"
            raise ThemeError(msg)
        self._env = self._create_env()
        self._asset_env = Environment(
            autoescape=False,
            strict_undefined=False,
            bytecode_cache=False,
        )
        self._assets: dict[str, ThemeAsset] = {}
        self.info = ThemeInfo(name=config.theme or "default")
        self.reload()

    def _create_env(self) -> Environment:
        return Environment(
            loader=FileSystemLoader([str(d) for d in get_template_dirs(self._config)]),
            autoescape=True,
            auto_reload=True,
            strict_undefined=False,
            bytecode_cache=False,
        )

    @property
    def env(self) -> Environment:
        return self._env

    @property
    def is_bundled(self) -> bool:
        return self._config.theme_path is None

    def reload(self) -> None:
        """Drop compiled templates and re-read metadata and the asset listing."""
        self._env = self._create_env()
        self.info = self._read_info()
        self._assets = self._scan_assets()

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def has_template(self, name: str) -> bool:
        """True when *name* (without ``.html``) resolves through the fallback chain."""
        filename = f"{name}.html"
        return any((d / filename).is_file() for d in get_template_dirs(self._config))

    def has_own_template(self, name: str) -> bool:
        """True when the active theme itself provides *name*."""
        dirs = get_template_dirs(self._config)
        return (dirs[0] / f"{name}.html").is_file()

    def missing_required(self) -> list[str]:
        """Required templates the active theme does not provide itself."""
        return [name for name in REQUIRED_TEMPLATES if not self.has_own_template(name)]

    def first_available(self, candidates: list[str]) -> str | None:
        """First template name in *candidates* that exists."""
        for name in candidates:
            if name and self.has_template(name):
                return name
        return None

    def render(self, name: str, context: dict[str, Any]) -> str:
        """Render template *name* (without ``.html``).

        Raises:
            ThemeError: The template does not exist anywhere in the chain.
            RenderError: The template failed while rendering.

        """
        try:
            template = self._env.get_template(f"{name}.html")
        except TemplateNotFoundError as exc:
            msg = f"Template {name!r} not found in theme {self.info.name!r}"
            raise ThemeError(msg) from exc
        try:
            return template.render(**context)
        except TemplateError as exc:
            msg = f"Template {name!r} failed: {exc}"
            raise RenderError(msg) from exc

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def assets(self) -> dict[str, ThemeAsset]:
        """Asset name (web path under ``/assets/``) to asset, active theme first."""
        return dict(self._assets)

    def asset(self, name: str) -> ThemeAsset | None:
        return self._assets.get(name.lstrip("/"))

    def render_asset(self, name: str, **context: Any) -> bytes | None:
        """Body of asset *name*; templated assets are rendered with ``site``.

        Extra keyword arguments are added to the template context.

        Raises:
            RenderError: A templated asset failed to render.

        """
        asset = self.asset(name)
        if asset is None:
            return None
        data = asset.path.read_bytes()
        if not asset.templated:
            return data
        try:
            text = self._asset_env.from_string(data.decode("utf-8")).render(
                site=self._config.site_context(),
                **context,
            )
        except TemplateError as exc:
            msg = f"Asset {name!r} failed: {exc}"
            raise RenderError(msg) from exc
        return text.encode("utf-8")

    def _scan_assets(self) -> dict[str, ThemeAsset]:
        found: dict[str, ThemeAsset] = {}
        # Bundled first so the active theme overwrites it
        for directory in reversed(get_asset_dirs(self._config)):
            if not directory.is_dir():
                continue
            for path in sorted(directory.rglob("*")):
                if not path.is_file():
                    continue
                rel = path.relative_to(directory)
                if not _is_asset(rel):
                    continue
                name = to_web_path(rel)
                try:
                    templated = is_templated_source(path.read_bytes())
                except OSError as exc:
                    print(f"  Theme asset unreadable: {name}: {exc}", file=sys.stderr)
                    continue
                found[name] = ThemeAsset(name=name, path=path, templated=templated)
        return found

    def _read_info(self) -> ThemeInfo:
        theme_path = self._config.theme_path or _bundled_theme_path()
        info_file = theme_path / "theme.json"
        default = ThemeInfo(name=self._config.theme or "default")
        if not info_file.is_file():
            return default
        try:
            data = json.loads(info_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            print(f"  Theme metadata error: {info_file}: {exc}", file=sys.stderr)
            return default
        if not isinstance(data, dict):
            return default
        return ThemeInfo(
            name=str(data.get("name") or default.name),
            version=str(data.get("version") or ""),
            description=str(data.get("description") or ""),
            author=str(data.get("author") or ""),
        )
