"""Relational snapshot: connection, DDL, normalization, vectors, builder."""

from vaultbuild.db.connection import Database
from vaultbuild.db.normalize import normalize_frontmatter, to_storage
from vaultbuild.db.snapshot import SnapshotResult, build_snapshot

__all__ = [
    "Database",
    "SnapshotResult",
    "build_snapshot",
    "normalize_frontmatter",
    "to_storage",
]
