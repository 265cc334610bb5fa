"""Tabby CLI — tabby dev / tabby build / tabby serve / tabby clean.

Entry point for the ``tabby`` command-line interface.
"""

from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the tabby CLI."""
    parser = argparse.ArgumentParser(
        prog="tabby",
        description="Content-to-HTML pipeline with a cached live server and static export.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # tabby dev
    dev_parser = subparsers.add_parser(
        "dev",
        help="Start the development server with live rebuilds",
    )
    dev_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    dev_parser.add_argument("--host", default=None, help="Bind address")
    dev_parser.add_argument("--port", type=int, default=None, help="First port to try")
    dev_parser.add_argument("--theme", default=None, help="Theme directory under templates/")

    # tabby build
    build_parser = subparsers.add_parser(
        "build",
        help="Export site as static files",
    )
    build_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    build_parser.add_argument("--output", default=None, help="Output directory")
    build_parser.add_argument("--theme", default=None, help="Theme directory under templates/")
    build_parser.add_argument(
        "--fingerprint",
        action="store_true",
        default=None,
        help="Add content hashes to CSS/JS file names",
    )

    # tabby serve
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run live production server",
    )
    serve_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="First port to try")
    serve_parser.add_argument("--workers", type=int, default=None, help="Worker count (0=auto)")

    # tabby clean
    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove the optimized-image cache",
    )
    clean_parser.add_argument("root", nargs="?", default=".", help="Site root directory")

    return parser


def _get_version() -> str:
    """Get the package version."""
    from tabby import __version__

    return __version__


def clean(root: str | Path = ".") -> bool:
    """Delete the image cache directory. Returns whether anything was removed."""
    from tabby.config_loader import load_config

    config = load_config(Path(root))
    cache = config.cache_path
    if not cache.exists():
        print(f"  Nothing to clean ({cache} does not exist)", file=sys.stderr)
        return False
    shutil.rmtree(cache)
    print(f"  Removed {cache}", file=sys.stderr)
    return True


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from tabby._errors import TabbyError
    from tabby.app import build, dev, serve

    try:
        if args.command == "dev":
            dev(root=args.root, host=args.host, port=args.port, theme=args.theme)
        elif args.command == "build":
            build(
                root=args.root,
                output=args.output,
                theme=args.theme,
                fingerprint=args.fingerprint,
            )
        elif args.command == "serve":
            serve(root=args.root, host=args.host, port=args.port, workers=args.workers)
        elif args.command == "clean":
            clean(args.root)
    except TabbyError as exc:
        print(f"  Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
