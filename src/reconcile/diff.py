"""Structural diff between two scope maps of the same file."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parse.relocatable import Declaration
    from snapshot.models import ScopeMap, Signature, SignatureSet


@dataclass(frozen=True)
class Unchanged:
    """A declaration present in both versions, possibly at another position."""

    scope: str
    declaration: Declaration
    signatures: SignatureSet
    old_line: int

    @property
    def delta(self) -> int:
        return self.declaration.lineno - self.old_line


@dataclass
class Diff:
    to_delete: list[Signature] = field(default_factory=list)
    to_install: list[tuple[Declaration, str]] = field(default_factory=list)
    unchanged: list[Unchanged] = field(default_factory=list)
    removed: list[tuple[Declaration, str]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_delete and not self.to_install

    @property
    def moved(self) -> list[Unchanged]:
        return [item for item in self.unchanged if item.delta]


def reconcile(old: ScopeMap, new: ScopeMap) -> Diff:
    """Compute the deletions and installations that turn ``old`` into ``new``.

    Declarations are matched per scope by structural equality. An old
    declaration without a match has all of its stored signatures scheduled
    for deletion, except signatures an unchanged declaration of the file
    still provides. A new declaration without a match is scheduled for
    installation, in file order.

    Args:
        old: The reference snapshot
        new: A freshly parsed scope map of the same file

    Returns:
        Diff with deletions, installations, unchanged matches (carrying the
        old signatures and position) and the removed declarations.
    """
    diff = Diff()
    deletions: list[Signature] = []

    for scope in old:
        for declaration, signatures in old[scope].items():
            match = new.lookup(scope, declaration)
            if match is None:
                diff.removed.append((declaration, scope))
                deletions.extend(signatures or ())
            else:
                diff.unchanged.append(
                    Unchanged(
                        scope=scope,
                        declaration=match,
                        signatures=signatures,
                        old_line=declaration.lineno,
                    )
                )

    for scope in new:
        for declaration in new[scope]:
            if old.lookup(scope, declaration) is None:
                diff.to_install.append((declaration, scope))

    kept = {sig for item in diff.unchanged for sig in item.signatures or ()}
    diff.to_delete = [sig for sig in dict.fromkeys(deletions) if sig not in kept]
    return diff


__all__ = ["Diff", "Unchanged", "reconcile"]
