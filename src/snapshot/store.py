"""Snapshot store: package records indexed by absolute file path."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from snapshot.models import PackageRecord

if TYPE_CHECKING:
    from snapshot.models import FileRecord


def _in_scope(candidate: str, scope: str) -> bool:
    return candidate == scope or candidate.startswith(f"{scope}.")


class SnapshotStore:
    """Owns every tracked package record and the path index used by watchers."""

    def __init__(self) -> None:
        self.packages: dict[str, PackageRecord] = {}
        self._paths: dict[Path, tuple[str, str]] = {}

    def ensure_package(self, name: str, base_dir: Path) -> PackageRecord:
        package = self.packages.get(name)
        if package is None:
            package = PackageRecord(name=name, base_dir=base_dir.resolve())
            self.packages[name] = package
        return package

    def add_file(self, package: PackageRecord, record: FileRecord) -> None:
        package.files[record.relative_path] = record
        self._paths[package.abspath(record.relative_path)] = (
            package.name,
            record.relative_path,
        )

    def get(
        self, name: str, relative_path: str
    ) -> tuple[PackageRecord, FileRecord] | None:
        package = self.packages.get(name)
        if package is None:
            return None
        record = package.files.get(relative_path)
        if record is None:
            return None
        return package, record

    def lookup(self, path: Path) -> tuple[PackageRecord, FileRecord] | None:
        key = self._paths.get(Path(path).resolve())
        if key is None:
            return None
        return self.get(*key)

    def widen(self, name: str, base_dir: Path) -> dict[str, str]:
        """Move a package's base directory up to ``base_dir``.

        Every file keeps its absolute path; relative paths are recomputed.

        Returns:
            The new relative path of each file keyed by its old one.
        """
        package = self.packages[name]
        base_dir = base_dir.resolve()
        renamed: dict[str, str] = {}
        files: dict[str, FileRecord] = {}
        for old, record in package.files.items():
            path = package.abspath(old)
            record.relative_path = path.relative_to(base_dir).as_posix()
            renamed[old] = record.relative_path
            files[record.relative_path] = record
            self._paths[path] = (name, record.relative_path)
        package.base_dir = base_dir
        package.files = files
        return renamed

    def remove_package(self, name: str) -> None:
        package = self.packages.pop(name, None)
        if package is None:
            return
        for relative_path in package.files:
            self._paths.pop(package.abspath(relative_path), None)

    def files_in_scope(self, scope: str) -> list[tuple[PackageRecord, FileRecord]]:
        """Return the files that populate ``scope`` or a scope nested in it."""
        matches: list[tuple[PackageRecord, FileRecord]] = []
        for package in self.packages.values():
            for record in package.files.values():
                scopes = [record.scope, *record.scope_map.scopes()]
                if any(_in_scope(candidate, scope) for candidate in scopes):
                    matches.append((package, record))
        return matches

    def paths(self) -> list[Path]:
        return sorted(self._paths)

    def __len__(self) -> int:
        return len(self._paths)


__all__ = ["SnapshotStore"]
