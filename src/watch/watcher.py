"""Directory watching with watchdog.

Directories are watched rather than individual files: many editors save by
writing a new file and renaming it over the old one, which would drop a
watch placed on the file itself. Events for files nobody tracks are ignored.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from contract.logs import GROUP_WATCHING, log_event
from contract.report import WatchSetupFailure
from watch.queue import WatchList

if TYPE_CHECKING:
    from collections.abc import Callable

    from watchdog.observers.api import BaseObserver

    from contract.report import Failure

logger = logging.getLogger(__name__)


def _mtime(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


class _DirectoryHandler(FileSystemEventHandler):
    """Forwards file events of a watched directory to the watcher."""

    def __init__(self, watcher: FileWatcher) -> None:
        super().__init__()
        self.watcher = watcher

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(Path(os.fsdecode(event.src_path)))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(Path(os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(Path(os.fsdecode(event.dest_path)))


class FileWatcher:
    """Watches the parent directories of tracked files.

    Args:
        on_change: Called from an observer thread with the path of a tracked
            file whose modification time changed
        poll: Use a polling observer instead of native notification
        interval: Seconds between two polls
    """

    def __init__(
        self,
        on_change: Callable[[Path], None],
        *,
        poll: bool = False,
        interval: float = 5.0,
    ) -> None:
        self.on_change = on_change
        self.poll = poll
        self.interval = interval
        self.failures: list[Failure] = []
        self.unwatched: set[Path] = set()
        self._lists: dict[Path, WatchList] = {}
        self._lock = threading.Lock()
        self._handler = _DirectoryHandler(self)
        self._observer: BaseObserver | None = None
        self._fallback: BaseObserver | None = None

    @property
    def watched(self) -> list[Path]:
        return sorted(set(self._lists) - self.unwatched)

    @property
    def running(self) -> bool:
        return self._observer is not None

    def watch_file(self, path: Path) -> None:
        """Start tracking a file, watching its directory if needed."""
        path = path.resolve()
        directory = path.parent
        with self._lock:
            new_directory = directory not in self._lists
            watch_list = self._lists.setdefault(directory, WatchList())
            watch_list.track(path.name, _mtime(path) or 0)
        if new_directory and self._observer is not None:
            self._schedule(directory)

    def start(self) -> None:
        if self._observer is not None:
            return
        if self.poll:
            self._observer = PollingObserver(timeout=self.interval)
        else:
            self._observer = Observer()
        self._observer.start()
        # A running observer starts emitters on schedule, so refusals surface there.
        for directory in list(self._lists):
            self._schedule(directory)
        logger.info(
            "Watching %d director%s (%s)",
            len(self.watched),
            "y" if len(self.watched) == 1 else "ies",
            "polling" if self.poll else "native",
        )

    def stop(self) -> None:
        for observer in (self._observer, self._fallback):
            if observer is not None:
                observer.stop()
                observer.join()
        self._observer = None
        self._fallback = None

    def _schedule(self, directory: Path) -> None:
        """Watch a directory, falling back to polling if that is refused."""
        observer = self._observer
        if observer is None:
            msg = "FileWatcher must be started before scheduling directories"
            raise RuntimeError(msg)
        try:
            observer.schedule(self._handler, str(directory), recursive=False)
            return
        except OSError as exc:
            failure = WatchSetupFailure(
                f"Native watch refused, polling instead: {exc}", path=directory
            ).to_failure()
            logger.warning("%s: %s", failure.location(), failure.message)
            self.failures.append(failure)

        try:
            if self._fallback is None:
                self._fallback = PollingObserver(timeout=self.interval)
                self._fallback.start()
            self._fallback.schedule(self._handler, str(directory), recursive=False)
        except OSError as exc:
            failure = WatchSetupFailure(
                f"Directory is not watched: {exc}", path=directory
            ).to_failure()
            logger.warning("%s: %s", failure.location(), failure.message)
            self.failures.append(failure)
            self.unwatched.add(directory)

    def notify(self, path: Path) -> bool:
        """Report a possible change of ``path``.

        Returns:
            True if ``path`` is tracked and its modification time moved,
            in which case ``on_change`` has been called.
        """
        path = Path(path).resolve()
        mtime = _mtime(path)
        if mtime is None:
            return False
        with self._lock:
            watch_list = self._lists.get(path.parent)
            if watch_list is None or not watch_list.changed(path.name, mtime):
                return False
        log_event(GROUP_WATCHING, "Changed", path=str(path))
        self.on_change(path)
        return True


__all__ = ["FileWatcher"]
