"""Load TabbyConfig from tabby.yaml if present.

Merges file config with CLI kwargs. CLI overrides file.
"""

from __future__ import annotations

import tomllib
from dataclasses import fields
from pathlib import Path

import yaml

from tabby._errors import ConfigError
from tabby.config import TabbyConfig

CONFIG_FILENAMES = ("tabby.yaml", "tabby.yml", "tabby.toml")

_KNOWN_KEYS = frozenset(f.name for f in fields(TabbyConfig)) - {"root"}


def load_config(root: Path, **overrides: object) -> TabbyConfig:
    """Load TabbyConfig from root, optionally merging tabby.yaml.

    Looks for tabby.yaml, tabby.yml, or tabby.toml in root. If found, loads
    and merges with overrides. Overrides take precedence; ``None`` overrides
    are ignored so unset CLI flags never shadow file values.

    Raises:
        ConfigError: The config file cannot be parsed or holds invalid values.

    """
    file_config = _read_tabby_config(root)
    merged = {**file_config, **{k: v for k, v in overrides.items() if v is not None}}
    # Normalize output to Path
    if "output" in merged and not isinstance(merged["output"], Path):
        merged["output"] = Path(str(merged["output"]))
    try:
        return TabbyConfig(root=root, **merged)
    except TypeError as exc:
        msg = f"Invalid configuration in {root}: {exc}"
        raise ConfigError(msg) from exc


def find_config_file(root: Path) -> Path | None:
    """Return the config file Tabby would read from *root*, if any."""
    for name in CONFIG_FILENAMES:
        path = root / name
        if path.is_file():
            return path
    return None


def _read_tabby_config(root: Path) -> dict[str, object]:
    """Read tabby config from yaml/toml if present. Returns empty dict otherwise."""
    path = find_config_file(root)
    if path is None:
        return {}
    if path.suffix == ".toml":
        return _parse_toml(path)
    return _parse_yaml(path)


def _parse_yaml(path: Path) -> dict[str, object]:
    """Parse YAML config.

    Raises:
        ConfigError: The file is unreadable, malformed, or not a mapping.

    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        msg = f"Cannot read {path.name}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name} must contain a mapping, got {type(data).__name__}"
        raise ConfigError(msg)
    return _flatten_sections(data)


def _parse_toml(path: Path) -> dict[str, object]:
    """Parse TOML config. Raises ConfigError when unreadable or malformed."""
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        msg = f"Cannot read {path.name}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_sections(data)


def _flatten_sections(data: dict[str, object]) -> dict[str, object]:
    """Merge top-level, ``site.*`` and ``tabby.*`` keys into one flat mapping.

    Later sections win: top level < ``site`` < ``tabby``.
    """
    result: dict[str, object] = {}
    for k, v in data.items():
        if k in _KNOWN_KEYS:
            result[k] = v
    for section in ("site", "tabby"):
        values = data.get(section)
        if isinstance(values, dict):
            for k, v in values.items():
                if k in _KNOWN_KEYS:
                    result[k] = v
    if isinstance(result.get("image_sizes"), list):
        result["image_sizes"] = tuple(result["image_sizes"])  # type: ignore[arg-type]
    return result
