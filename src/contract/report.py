"""Failure taxonomy and per-pass revision reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Literal

if TYPE_CHECKING:
    from pathlib import Path

    from snapshot.models import Signature

FailureKind = Literal["parse", "evaluation", "deletion", "watch"]


@dataclass(frozen=True)
class Failure:
    """A single failure collected during a revision pass."""

    kind: FailureKind
    message: str
    path: Path | None = None
    line: int | None = None

    def location(self) -> str:
        if self.path is None:
            return "<unknown>"
        if self.line is None:
            return str(self.path)
        return f"{self.path}:{self.line}"

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "path": None if self.path is None else str(self.path),
            "line": self.line,
            "message": self.message,
        }


class RevisionError(Exception):
    """Base class for errors raised by the revision engine."""

    kind: ClassVar[FailureKind]

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.line = line

    def to_failure(self) -> Failure:
        return Failure(
            kind=self.kind, message=self.message, path=self.path, line=self.line
        )


class ParseFailure(RevisionError):
    """A file or one of its constructs could not be parsed."""

    kind = "parse"


class EvaluationFailure(RevisionError):
    """Installing a declaration raised while it was being evaluated."""

    kind = "evaluation"


class DeletionTargetMissing(RevisionError):
    """A scheduled deletion found no live overload for its signature."""

    kind = "deletion"

    def __init__(self, signature: Signature, *, path: Path | None = None) -> None:
        super().__init__(f"no live overload found for {signature}", path=path)
        self.signature = signature


class WatchSetupFailure(RevisionError):
    """A directory could not be registered for change notification."""

    kind = "watch"


@dataclass(frozen=True)
class Installed:
    """A declaration evaluated into a scope during a pass."""

    scope: str
    declaration: str
    line: int
    signatures: tuple[Signature, ...] | None

    def to_dict(self) -> dict[str, object]:
        return {
            "scope": self.scope,
            "declaration": self.declaration,
            "line": self.line,
            "signatures": (
                None
                if self.signatures is None
                else [str(sig) for sig in self.signatures]
            ),
        }


@dataclass(frozen=True)
class LineShift:
    """Position correction recorded for a signature whose source only moved."""

    signature: Signature
    line: int
    old_offset: int
    new_offset: int

    def to_dict(self) -> dict[str, object]:
        return {
            "signature": str(self.signature),
            "line": self.line,
            "old_offset": self.old_offset,
            "new_offset": self.new_offset,
        }


@dataclass
class RevisionReport:
    files: list[Path] = field(default_factory=list)
    deleted: list[Signature] = field(default_factory=list)
    installed: list[Installed] = field(default_factory=list)
    reanchored: list[LineShift] = field(default_factory=list)
    failures: list[Failure] = field(default_factory=list)
    coalesced: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def changed(self) -> bool:
        return bool(self.deleted or self.installed)

    def to_dict(self) -> dict[str, object]:
        return {
            "files": [str(path) for path in self.files],
            "deleted": [str(sig) for sig in self.deleted],
            "installed": [item.to_dict() for item in self.installed],
            "reanchored": [shift.to_dict() for shift in self.reanchored],
            "failures": [failure.to_dict() for failure in self.failures],
            "coalesced": self.coalesced,
        }


__all__ = [
    "DeletionTargetMissing",
    "EvaluationFailure",
    "Failure",
    "FailureKind",
    "Installed",
    "LineShift",
    "ParseFailure",
    "RevisionError",
    "RevisionReport",
    "WatchSetupFailure",
]
