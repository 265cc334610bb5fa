"""Tabby error hierarchy.

All tabby-specific errors inherit from TabbyError for easy catching.
Per-item errors (one file, one image, one request) are caught where the
caller can safely continue; structural errors abort a build.
"""


class TabbyError(Exception):
    """Base error for all tabby operations."""


class ConfigError(TabbyError):
    """Invalid configuration, or an environment the server cannot start in."""


class ContentError(TabbyError):
    """A content file could not be loaded (bad front matter, duplicate slug)."""


class ThemeError(TabbyError):
    """The active theme is missing or lacks a required template."""


class RenderError(TabbyError):
    """A page or artifact failed to render."""


class ImageError(TabbyError):
    """A source image could not be transcoded."""


class ExportError(TabbyError):
    """Error during static export."""
