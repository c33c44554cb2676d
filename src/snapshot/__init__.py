"""Last-synchronized snapshots of tracked source files."""

from snapshot.models import (
    FileRecord,
    PackageRecord,
    ScopeMap,
    Signature,
    SignatureSet,
)
from snapshot.store import SnapshotStore

__all__ = [
    "FileRecord",
    "PackageRecord",
    "ScopeMap",
    "Signature",
    "SignatureSet",
    "SnapshotStore",
]
