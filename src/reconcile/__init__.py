"""Diffing of scope maps and application of revision passes."""

from reconcile.diff import Diff, Unchanged, reconcile
from reconcile.engine import RevisionEngine
from reconcile.reanchor import LineOffsets

__all__ = ["Diff", "LineOffsets", "RevisionEngine", "Unchanged", "reconcile"]
