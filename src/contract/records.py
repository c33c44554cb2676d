"""Serializable records for declarations, diffs and captured log events."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

RECORD_SCHEMA_VERSION = 1

DeclarationKind = Literal["function", "class", "statement"]


class DeclarationRecord(BaseModel):
    """One parsed declaration and the signatures it produces."""

    schema_version: int = Field(default=RECORD_SCHEMA_VERSION)
    path: str
    scope: str
    kind: DeclarationKind
    name: str | None
    start_line: int
    end_line: int
    signatures: list[str] | None = Field(
        default=None, description="Signatures, or None for non-callable statements"
    )


class DiffRecord(BaseModel):
    """Structural diff between two versions of a file."""

    schema_version: int = Field(default=RECORD_SCHEMA_VERSION)
    old_path: str
    new_path: str
    to_delete: list[str] = Field(default_factory=list)
    to_install: list[DeclarationRecord] = Field(default_factory=list)
    unchanged: int = Field(default=0, description="Count of unchanged declarations")
    moved: int = Field(
        default=0, description="Unchanged declarations whose position changed"
    )


class ActionRecord(BaseModel):
    """A captured revision log event."""

    schema_version: int = Field(default=RECORD_SCHEMA_VERSION)
    time: float
    level: str
    group: str
    message: str
    deltainfo: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "RECORD_SCHEMA_VERSION",
    "ActionRecord",
    "DeclarationKind",
    "DeclarationRecord",
    "DiffRecord",
]
