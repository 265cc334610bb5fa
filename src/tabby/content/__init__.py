"""Content layer — files on disk as ordered, addressable records.

Handles scanning and parsing the content tree, the navigation index and
file watching for the rebuild coordinator.
"""

from tabby.content.navigation import NavigationIndex, NavigationNode
from tabby.content.records import ContentRecord, ImageReference
from tabby.content.store import ContentStore, ScanResult
from tabby.content.watcher import ChangeEvent, ContentWatcher

__all__ = [
    "ChangeEvent",
    "ContentRecord",
    "ContentStore",
    "ContentWatcher",
    "ImageReference",
    "NavigationIndex",
    "NavigationNode",
    "ScanResult",
]
