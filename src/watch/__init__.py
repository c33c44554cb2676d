"""Change notification and the pending-revision queue."""

from watch.queue import QueueItem, RevisionQueue, WatchList
from watch.watcher import FileWatcher

__all__ = ["FileWatcher", "QueueItem", "RevisionQueue", "WatchList"]
