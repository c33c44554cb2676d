"""The revision session: owns the snapshot store, queue and live table."""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING

from config.settings import RevisionConfig
from contract.report import Failure, RevisionReport
from live.evaluator import PythonEvaluator
from parse.declarations import parse_file
from reconcile.engine import RevisionEngine
from reconcile.reanchor import LineOffsets
from scan.files import find_source_files
from snapshot.models import FileRecord
from snapshot.store import SnapshotStore
from utils import module_name_for
from watch import watcher as file_watching
from watch.queue import QueueItem, RevisionQueue

if TYPE_CHECKING:
    import traceback
    from collections.abc import Callable, Iterable, Mapping
    from types import TracebackType

    from history.git import SourceProvider
    from live.evaluator import Evaluator
    from live.table import LiveSymbolTable
    from reconcile.engine import Target
    from snapshot.models import PackageRecord

logger = logging.getLogger(__name__)


class Revisor:
    """Keeps running code in sync with the source files it was loaded from.

    Files are registered with the scope they were evaluated into. Watchers
    mark changed files dirty from their own threads; the changes are applied
    when ``drain`` runs, directly or through ``sync_point`` in ``auto`` mode.
    Independent instances share nothing.

    Args:
        config: Session configuration (default: RevisionConfig())
        evaluator: Evaluator used to install and delete declarations
            (default: a PythonEvaluator)
    """

    def __init__(
        self,
        config: RevisionConfig | None = None,
        *,
        evaluator: Evaluator | None = None,
    ) -> None:
        self.config = config if config is not None else RevisionConfig()
        self.store = SnapshotStore()
        self.queue = RevisionQueue()
        self.evaluator: Evaluator = (
            evaluator if evaluator is not None else PythonEvaluator()
        )
        self.offsets = LineOffsets()
        self.engine = RevisionEngine(self.evaluator, self.offsets)
        self._drain_lock = threading.Lock()
        self._watcher: file_watching.FileWatcher | None = None

    @property
    def table(self) -> LiveSymbolTable:
        return self.evaluator.table

    @property
    def watcher(self) -> file_watching.FileWatcher | None:
        return self._watcher

    # Registration

    def register_file(
        self,
        unit: str,
        path: Path,
        scope: str,
        *,
        base_dir: Path | None = None,
        cached_source: str | None = None,
    ) -> FileRecord:
        """Start tracking a file whose declarations are live in ``scope``.

        Args:
            unit: Name of the loadable unit the file belongs to
            path: Source file
            scope: Scope the file was evaluated into
            base_dir: Directory relative paths of the unit resolve against
                (default: the file's directory, on first registration)
            cached_source: Text the live definitions were loaded from, when
                that is not the file on disk; parsed on the first revision

        Returns:
            The new file record.

        Raises:
            ParseFailure: The file cannot be read.
        """
        path = Path(path).resolve()
        package = self.store.ensure_package(unit, base_dir or path.parent)
        if not path.is_relative_to(package.base_dir):
            self._widen(package, path)
        record = FileRecord(
            relative_path=package.relative(path),
            scope=scope,
            cached_source=cached_source,
        )
        if cached_source is None:
            result = parse_file(path, scope)
            for failure in result.failures:
                logger.warning(
                    "Parse error at %s: %s", failure.location(), failure.message
                )
            self.engine.adopt(result.scope_map)
            record.scope_map = result.scope_map
            record.parse_failures = result.failures

        self.store.add_file(package, record)
        if self._watcher is not None:
            self._watcher.watch_file(path)
        logger.debug("Tracking %s as %s", path, scope)
        return record

    def _widen(self, package: PackageRecord, path: Path) -> None:
        """Move a unit's base directory up so that it contains ``path``."""
        base_dir = Path(os.path.commonpath([package.base_dir, path.parent]))
        logger.debug(
            "Widening %s from %s to %s", package.name, package.base_dir, base_dir
        )
        renamed = self.store.widen(package.name, base_dir)
        self.queue.rename(package.name, renamed)

    def on_unit_loaded(
        self, name: str, base_dir: Path, files: Mapping[str, str]
    ) -> PackageRecord | None:
        """Track the files of a freshly loaded unit.

        Args:
            name: Unit name
            base_dir: Directory the relative paths resolve against
            files: Relative path of each source file mapped to its scope
        """
        if name in self.config.dont_watch:
            return None
        for relative_path, scope in files.items():
            self.register_file(name, base_dir / relative_path, scope, base_dir=base_dir)
        return self.store.packages.get(name)

    def on_unit_unloaded(self, name: str) -> None:
        self.store.remove_package(name)

    def _not_tracked(self, name: str, reason: str) -> None:
        if name not in self.config.silence:
            logger.warning("%s is not tracked: %s", name, reason)

    def track_module(self, module: ModuleType) -> FileRecord | None:
        """Track the source file of an imported module."""
        name = module.__name__
        if name.split(".")[0] in self.config.dont_watch:
            return None
        filename = getattr(module, "__file__", None)
        if not filename or not filename.endswith(".py"):
            self._not_tracked(name, "no Python source file")
            return None
        return self.register_file(name, Path(filename), name)

    def track_package(
        self,
        package: ModuleType,
        source_provider: SourceProvider | None = None,
    ) -> PackageRecord | None:
        """Track every imported module of a package.

        Args:
            package: Imported package
            source_provider: Supplies the text each module was loaded from;
                when it knows a file, the file's snapshot is rebuilt from
                that text on first revision instead of from the disk now

        Returns:
            The package record, or None if nothing could be tracked.
        """
        name = package.__name__
        if name in self.config.dont_watch:
            return None
        locations = list(getattr(package, "__path__", None) or ())
        if not locations:
            self._not_tracked(name, "not a package")
            return None

        base_dir = Path(locations[0]).resolve()
        for path in find_source_files(
            base_dir,
            include_patterns=self.config.include or None,
            exclude_patterns=self.config.exclude or None,
            nested_gitignore=self.config.nested_gitignore,
        ):
            relative_path = path.relative_to(base_dir).as_posix()
            scope = module_name_for(relative_path, name)
            if scope not in sys.modules:
                continue
            cached = None if source_provider is None else source_provider.source(path)
            self.register_file(
                name, path, scope, base_dir=base_dir, cached_source=cached
            )
        return self.store.packages.get(name)

    def includet(
        self, path: Path, module: ModuleType | str | None = None
    ) -> ModuleType:
        """Execute a script into a module and track it.

        Args:
            path: Script to execute
            module: Module to execute into, or the name of one; a new
                module named after the file is created when None

        Returns:
            The module the script was executed into.
        """
        path = Path(path).resolve()
        if module is None:
            module = ModuleType(path.stem)
        elif isinstance(module, str):
            module = sys.modules.get(module) or ModuleType(module)
        module.__file__ = str(path)

        code = compile(path.read_text(encoding="utf-8"), str(path), "exec")
        bind_scope = getattr(self.evaluator, "bind_scope", None)
        if bind_scope is not None:
            bind_scope(module.__name__, module)
        exec(code, vars(module))  # noqa: S102

        self.register_file(module.__name__, path, module.__name__)
        return module

    # Revision

    def mark_dirty(self, path: Path) -> bool:
        """Queue a tracked file for the next drain; False if it is not tracked."""
        found = self.store.lookup(Path(path))
        if found is None:
            return False
        package, record = found
        self.queue.push(QueueItem(package.name, record.relative_path))
        return True

    def _targets(self) -> list[Target]:
        targets: dict[tuple[str, str], Target] = {}
        for item in self.queue.drain_items():
            found = self.store.get(item.package, item.relative_path)
            if found is not None:
                targets[(item.package, item.relative_path)] = found
        for package in self.store.packages.values():
            for record in package.files.values():
                key = (package.name, record.relative_path)
                if record.needs_retry and key not in targets:
                    targets[key] = (package, record)
        return list(targets.values())

    def drain(self) -> RevisionReport:
        """Revise every queued file and every file with pending retries.

        Returns:
            The pass report; marked ``coalesced`` and empty if another drain
            was already running.
        """
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Drain already running; coalescing")
            return RevisionReport(coalesced=True)
        try:
            targets = self._targets()
            if not targets:
                return RevisionReport()
            try:
                report = self.engine.revise(targets)
            except Exception as exc:  # noqa: BLE001
                report = self._requeue(targets, exc)
        finally:
            self._drain_lock.release()

        if report.changed:
            logger.info(
                "Revised %d file(s): %d deleted, %d installed",
                len(report.files),
                len(report.deleted),
                len(report.installed),
            )
        return report

    def _requeue(self, targets: list[Target], exc: Exception) -> RevisionReport:
        """Put the files of an aborted pass back in the queue."""
        logger.exception("Revision pass failed; requeueing %d file(s)", len(targets))
        report = RevisionReport()
        for package, record in targets:
            self.queue.push(QueueItem(package.name, record.relative_path))
            path = package.abspath(record.relative_path)
            report.files.append(path)
            report.failures.append(
                Failure(
                    kind="evaluation",
                    message=f"revision pass raised {type(exc).__name__}: {exc}",
                    path=path,
                )
            )
        return report

    def sync_point(self) -> RevisionReport | None:
        """Drain in ``auto`` mode; do nothing in ``manual`` mode."""
        if self.config.mode != "auto":
            return None
        return self.drain()

    def force_reevaluate_scope(self, scope: str) -> RevisionReport:
        """Evaluate every tracked declaration of ``scope`` again.

        Effects the diff cannot see, such as definitions generated by a
        decorator factory whose input changed elsewhere, are only refreshed
        this way.
        """
        if not self._drain_lock.acquire(blocking=False):
            return RevisionReport(coalesced=True)
        try:
            return self.engine.reevaluate(self.store.files_in_scope(scope), scope)
        finally:
            self._drain_lock.release()

    # Watching

    def _new_watcher(
        self, on_change: Callable[[Path], object]
    ) -> file_watching.FileWatcher:
        return file_watching.FileWatcher(
            on_change,
            poll=self.config.poll,
            interval=self.config.poll_interval,
        )

    def watch(self) -> file_watching.FileWatcher:
        """Start watching every tracked file."""
        if self._watcher is None:
            self._watcher = self._new_watcher(self.mark_dirty)
            for path in self.store.paths():
                self._watcher.watch_file(path)
            self._watcher.start()
        return self._watcher

    def close(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def __enter__(self) -> Revisor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def entr(
        self,
        callback: Callable[[], object],
        paths: Iterable[Path] = (),
        *,
        postpone: bool = False,
        pause: float = 0.02,
        stop: threading.Event | None = None,
    ) -> None:
        """Call ``callback`` every time a tracked file or one of ``paths`` changes.

        Tracked files are revised before each call. Runs until ``stop`` is
        set or the callback raises KeyboardInterrupt; any other exception
        from the callback is logged and watching continues.

        Args:
            callback: Function to run
            paths: Extra files to watch without tracking their declarations
            postpone: Wait for the first change instead of calling at once
            pause: Seconds to wait for further changes before calling
            stop: Event that ends the loop
        """
        stop = stop if stop is not None else threading.Event()
        changed = threading.Event()

        def on_change(path: Path) -> None:
            self.mark_dirty(path)
            changed.set()

        watcher = self._new_watcher(on_change)
        for path in [*self.store.paths(), *map(Path, paths)]:
            watcher.watch_file(path)
        watcher.start()

        def run() -> None:
            try:
                callback()
            except Exception:
                logger.exception("entr callback failed")

        try:
            if not postpone:
                run()
            while not stop.is_set():
                if not changed.wait(pause):
                    continue
                # Let a burst of writes settle before revising.
                stop.wait(pause)
                changed.clear()
                self.drain()
                run()
        finally:
            watcher.stop()

    # Diagnostics

    def correct_traceback(self, tb: TracebackType | None) -> traceback.StackSummary:
        """Extract a traceback with positions corrected for moved code."""
        return self.offsets.correct_traceback(tb, self.table.signature_for_code)


__all__ = ["Revisor"]
