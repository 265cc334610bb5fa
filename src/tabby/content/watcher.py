"""File watcher — feeds filesystem changes to the rebuild coordinator.

Monitors the content tree, the theme directory and the site configuration.
Each change is categorised so the coordinator can pick the narrowest
rebuild:

- Content file changed -> reload one record
- Image changed -> debounced image optimization
- Theme file changed -> reload templates, re-render everything
- Config changed -> full reload
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from watchfiles import Change

from tabby.config_loader import CONFIG_FILENAMES
from tabby.content.metadata import is_image_file

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from tabby.config import TabbyConfig

type ChangeKind = Literal["created", "modified", "deleted"]
type ChangeCategory = Literal["content", "image", "theme", "config"]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A file change detected by the watcher.

    Attributes:
        path: Absolute path to the changed file.
        kind: Type of filesystem change.
        category: What kind of file changed (determines the rebuild path).

    """

    path: Path
    kind: ChangeKind
    category: ChangeCategory


_CHANGE_KIND_MAP: dict[Change, ChangeKind] = {
    Change.added: "created",
    Change.modified: "modified",
    Change.deleted: "deleted",
}

_ROOT_CONFIG_FILES = frozenset({*CONFIG_FILENAMES, "redirects.json"})


def categorize_change(path: Path, config: TabbyConfig) -> ChangeCategory | None:
    """Determine the category of a changed file based on its location.

    Returns None if the file doesn't belong to any watched category.

    """
    try:
        rel = path.relative_to(config.root)
    except ValueError:
        return None

    parts = rel.parts
    if not parts:
        return None

    if len(parts) == 1 and parts[0] in _ROOT_CONFIG_FILES:
        return "config"

    first_dir = parts[0]
    if first_dir == config.content_dir:
        return "image" if is_image_file(path.name) else "content"
    if first_dir == config.templates_dir:
        return "theme"
    return None


class ContentWatcher:
    """Watches the site root and yields categorised change events.

    watchfiles runs in a background thread; events are bridged to an
    asyncio queue owned by the loop that called ``start``.

    """

    def __init__(self, config: TabbyConfig, *, debounce_ms: int = 50) -> None:
        self._config = config
        self._debounce_ms = debounce_ms
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Whether the watcher background thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start watching for file changes in a background thread."""
        if self.is_running:
            return

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="tabby-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the watcher to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        """Async iterator that yields ChangeEvent objects as they occur.

        Blocks until a change is available or the watcher is stopped.

        """
        while self.is_running or not self._queue.empty():
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except TimeoutError:
                if not self.is_running:
                    break

    def _publish(self, event: ChangeEvent) -> None:
        # asyncio.Queue is not thread-safe; hand off to the owning loop.
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        else:
            self._queue.put_nowait(event)

    def _watch_loop(self) -> None:
        """Background thread: run watchfiles and push events to the queue."""
        from watchfiles import watch

        for raw_changes in watch(
            self._config.root,
            stop_event=self._stop_event,
            debounce=self._debounce_ms,
            step=50,
        ):
            for change_type, path_str in sorted(raw_changes, key=lambda c: c[1]):
                path = Path(path_str)
                category = categorize_change(path, self._config)
                if category is None:
                    continue

                kind = _CHANGE_KIND_MAP.get(change_type, "modified")
                self._publish(ChangeEvent(path=path, kind=kind, category=category))
