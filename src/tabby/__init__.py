"""Tabby — a content-to-HTML pipeline with a cached live server.

Markdown, text and HTML files become pages, listings, feeds and a search
index.  The live server answers from an in-memory, pre-compressed cache
that a file watcher keeps current; the same renderer exports the site as
static files.

Quick start::

    import tabby

    tabby.dev("my-site/")

Three modes::

    tabby.dev("my-site/")          # Live rebuilds while editing
    tabby.build("my-site/")        # Static export
    tabby.serve("my-site/")        # Cached production server

Programmatic use::

    from tabby import SiteRuntime

    runtime = SiteRuntime.from_root("my-site/")
    runtime.load()
    runtime.warm()

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0"
__all__ = [
    "SiteRuntime",
    "TabbyConfig",
    "__version__",
    "build",
    "dev",
    "serve",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import tabby`` fast while providing a clean top-level API.
    """
    if name == "TabbyConfig":
        from tabby.config import TabbyConfig

        return TabbyConfig

    if name == "SiteRuntime":
        from tabby.runtime import SiteRuntime

        return SiteRuntime

    if name == "dev":
        from tabby.app import dev

        return dev

    if name == "build":
        from tabby.app import build

        return build

    if name == "serve":
        from tabby.app import serve

        return serve

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
