"""Live symbol table: every installed signature and the object it resolves to."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from types import CodeType, FunctionType
from typing import TYPE_CHECKING

from contract.report import DeletionTargetMissing

if TYPE_CHECKING:
    from collections.abc import Iterator

    from parse.relocatable import Declaration
    from snapshot.models import Signature


@dataclass(frozen=True)
class LiveEntry:
    signature: Signature
    declaration: Declaration
    value: object


def _functions(value: object) -> list[FunctionType]:
    """Unwrap the plain functions behind methods, properties and wrappers."""
    found: list[FunctionType] = []
    pending = [value]
    seen: set[int] = set()
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, FunctionType):
            found.append(current)
            pending.append(getattr(current, "__wrapped__", None))
        elif isinstance(current, (staticmethod, classmethod)):
            pending.append(current.__func__)
        elif isinstance(current, property):
            pending.extend([current.fget, current.fset, current.fdel])
    return found


def code_objects(value: object) -> list[CodeType]:
    """Return the code objects of a value, nested functions included."""
    codes: list[CodeType] = []
    pending = [fn.__code__ for fn in _functions(value)]
    while pending:
        code = pending.pop()
        codes.append(code)
        pending.extend(c for c in code.co_consts if isinstance(c, CodeType))
    return codes


class LiveSymbolTable:
    """Maps installed signatures to their declaration and live object."""

    def __init__(self) -> None:
        self._entries: dict[Signature, LiveEntry] = {}
        self._names: dict[tuple[str, str], set[Signature]] = defaultdict(set)
        self._code: dict[CodeType, Signature] = {}

    def add(
        self, signature: Signature, declaration: Declaration, value: object
    ) -> None:
        previous = self._entries.get(signature)
        if previous is not None:
            self._forget_code(previous)
        self._entries[signature] = LiveEntry(signature, declaration, value)
        self._names[(signature.scope, signature.name)].add(signature)
        for code in code_objects(value):
            self._code[code] = signature

    def remove(self, signature: Signature) -> LiveEntry:
        entry = self._entries.pop(signature, None)
        if entry is None:
            raise DeletionTargetMissing(signature)
        names = self._names[(signature.scope, signature.name)]
        names.discard(signature)
        if not names:
            del self._names[(signature.scope, signature.name)]
        self._forget_code(entry)
        return entry

    def _forget_code(self, entry: LiveEntry) -> None:
        for code in code_objects(entry.value):
            if self._code.get(code) == entry.signature:
                del self._code[code]

    def get(self, signature: Signature) -> LiveEntry | None:
        return self._entries.get(signature)

    def overloads(self, scope: str, name: str) -> list[Signature]:
        return sorted(self._names.get((scope, name), ()))

    def signatures(self, scope: str | None = None) -> list[Signature]:
        return sorted(
            sig for sig in self._entries if scope is None or sig.scope == scope
        )

    def signature_for_code(self, code: CodeType) -> Signature | None:
        return self._code.get(code)

    def __contains__(self, signature: object) -> bool:
        return signature in self._entries

    def __iter__(self) -> Iterator[Signature]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["LiveEntry", "LiveSymbolTable", "code_objects"]
