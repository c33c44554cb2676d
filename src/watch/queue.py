"""Pending-revision queue shared between watcher threads and the drain."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class QueueItem:
    """A file of a tracked package that needs examination."""

    package: str
    relative_path: str


class RevisionQueue:
    """Thread-safe queue of files waiting for a revision pass.

    Holds at most one marker per file: pushing a file that is already pending
    keeps its original position. The drain takes every pending item at once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[QueueItem, None] = {}

    def push(self, item: QueueItem) -> None:
        with self._lock:
            self._items.setdefault(item, None)

    def rename(self, package: str, renamed: Mapping[str, str]) -> None:
        """Follow pending files of ``package`` whose relative paths changed."""
        with self._lock:
            self._items = {
                QueueItem(package, renamed.get(item.relative_path, item.relative_path))
                if item.package == package
                else item: None
                for item in self._items
            }

    def drain_items(self) -> list[QueueItem]:
        """Remove and return the pending items in first-seen order."""
        with self._lock:
            items, self._items = self._items, {}
        return list(items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass
class WatchList:
    """Files tracked in one watched directory and their last seen mtimes."""

    timestamp: float = field(default_factory=time.time)
    tracked: dict[str, int] = field(default_factory=dict)

    def track(self, name: str, mtime: int) -> None:
        self.tracked[name] = mtime
        self.timestamp = time.time()

    def changed(self, name: str, mtime: int) -> bool:
        """Record ``mtime`` for a tracked file; True if it differs."""
        previous = self.tracked.get(name)
        if previous is None:
            return False
        if previous == mtime:
            return False
        self.tracked[name] = mtime
        self.timestamp = time.time()
        return True


__all__ = ["QueueItem", "RevisionQueue", "WatchList"]
