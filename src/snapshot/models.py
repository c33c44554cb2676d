"""Snapshot data model: signatures, per-file scope maps, file and package records."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from collections.abc import Iterator

    from contract.report import Failure
    from parse.relocatable import Declaration


@dataclass(frozen=True, order=True)
class Signature:
    """Key of one overload: scope, callable name and parameter type patterns.

    ``params`` holds one pattern per positional parameter (the annotation as
    written, or ``"Any"``); a trailing ``"*"`` marks a variadic tail.
    """

    scope: str
    name: str
    params: tuple[str, ...] = ()

    @property
    def qualname(self) -> str:
        return f"{self.scope}.{self.name}"

    def __str__(self) -> str:
        return f"{self.qualname}({', '.join(self.params)})"


SignatureSet = Union[tuple[Signature, ...], None]


class ScopeMap:
    """Ordered ``scope -> (declaration -> signatures)`` mapping for one file.

    Scope order follows first appearance in the file, and declarations keep
    on-disk order within a scope. A value of ``None`` is stored explicitly for
    declarations that define no signatures or have not been evaluated.
    """

    def __init__(self) -> None:
        self._scopes: dict[str, dict[Declaration, SignatureSet]] = {}
        self._keys: dict[str, dict[Declaration, Declaration]] = {}

    def ensure_scope(self, scope: str) -> dict[Declaration, SignatureSet]:
        self._keys.setdefault(scope, {})
        return self._scopes.setdefault(scope, {})

    def add(
        self, scope: str, declaration: Declaration, signatures: SignatureSet
    ) -> bool:
        """Add a declaration; returns False if an equal one is already present."""
        entries = self.ensure_scope(scope)
        if declaration in entries:
            return False
        entries[declaration] = signatures
        self._keys[scope][declaration] = declaration
        return True

    def set_signatures(
        self, scope: str, declaration: Declaration, signatures: SignatureSet
    ) -> None:
        entries = self._scopes[scope]
        if declaration not in entries:
            msg = f"{declaration!r} is not part of scope {scope!r}"
            raise KeyError(msg)
        entries[declaration] = signatures

    def get(self, scope: str) -> dict[Declaration, SignatureSet] | None:
        return self._scopes.get(scope)

    def lookup(self, scope: str, declaration: Declaration) -> Declaration | None:
        """Return the stored declaration equal to ``declaration``, if any."""
        keys = self._keys.get(scope)
        if keys is None:
            return None
        return keys.get(declaration)

    def scopes(self) -> list[str]:
        return list(self._scopes)

    def items(self) -> Iterator[tuple[str, Declaration, SignatureSet]]:
        for scope, entries in self._scopes.items():
            for declaration, signatures in entries.items():
                yield scope, declaration, signatures

    def signatures(self) -> Iterator[Signature]:
        for _, _, signatures in self.items():
            yield from signatures or ()

    def declaration_count(self) -> int:
        return sum(len(entries) for entries in self._scopes.values())

    def is_empty(self) -> bool:
        return self.declaration_count() == 0

    def __getitem__(self, scope: str) -> dict[Declaration, SignatureSet]:
        return self._scopes[scope]

    def __contains__(self, scope: object) -> bool:
        return scope in self._scopes

    def __iter__(self) -> Iterator[str]:
        return iter(self._scopes)

    def __len__(self) -> int:
        return len(self._scopes)

    def __repr__(self) -> str:
        counts = ", ".join(f"{s}: {len(e)}" for s, e in self._scopes.items())
        return f"ScopeMap({counts})"


@dataclass
class FileRecord:
    """Last-synchronized state of one tracked source file.

    ``cached_source`` holds the text as of a fixed historical point; while it
    is set and ``scope_map`` is empty, the live declarations are assumed to
    match it and are reconstructed from it on first revision.
    """

    relative_path: str
    scope: str
    scope_map: ScopeMap = field(default_factory=ScopeMap)
    cached_source: str | None = None
    pending: set[tuple[str, Declaration]] = field(default_factory=set)
    parse_failures: list[Failure] = field(default_factory=list)

    @property
    def needs_retry(self) -> bool:
        return bool(self.pending or self.parse_failures)


@dataclass
class PackageRecord:
    """File records of one loadable unit, resolved against ``base_dir``."""

    name: str
    base_dir: Path
    files: dict[str, FileRecord] = field(default_factory=dict)

    def abspath(self, relative_path: str) -> Path:
        return self.base_dir / relative_path

    def relative(self, path: Path) -> str:
        return path.resolve().relative_to(self.base_dir.resolve()).as_posix()


__all__ = [
    "FileRecord",
    "PackageRecord",
    "ScopeMap",
    "Signature",
    "SignatureSet",
]
