"""Relational snapshot builder.

The snapshot is assembled in a temporary file next to the target path. All
rows go in through one explicit transaction; only a committed, vacuumed
database replaces the previous snapshot, so readers never see a partial
build.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import sqlite3
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

from vaultbuild import __version__
from vaultbuild.db.connection import Database
from vaultbuild.db.ddl import (
    apply_schema_columns,
    clear_rows,
    create_indexes,
    existing_columns,
    initialize,
    quote_ident,
)
from vaultbuild.db.normalize import PERMISSIVE, dump_json, normalize_frontmatter, to_storage
from vaultbuild.db.vectors import clear_vectors, ensure_vec_table, store_post_vectors
from vaultbuild.issues import IssueCollector, SnapshotError
from vaultbuild.models import MediaItem, Post
from vaultbuild.schema.analyzer import CORE_COLUMNS, FrontmatterSchema, SchemaEntry

logger = logging.getLogger(__name__)


@dataclass
class SnapshotResult:
    """Summary of a successful snapshot build."""

    db_path: Path
    size_bytes: int
    posts_count: int
    media_count: int
    tags_count: int = 0
    links_count: int = 0
    vectors_count: int = 0
    columns_added: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dbPath": str(self.db_path),
            "sizeBytes": self.size_bytes,
            "postsCount": self.posts_count,
            "mediaCount": self.media_count,
            "tagsCount": self.tags_count,
            "linksCount": self.links_count,
            "vectorsCount": self.vectors_count,
            "columnsAdded": list(self.columns_added),
        }


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


def _link_resolver(posts: Sequence[Post]) -> dict[str, str]:
    """Map every way a link may name a post (slug, id, hash) to its hash."""
    resolver: dict[str, str] = {}
    for post in posts:
        for alias in (post.slug, post.id, post.hash):
            if alias:
                resolver.setdefault(alias, post.hash)
    return resolver


def compute_backlinks(posts: Sequence[Post]) -> dict[str, list[str]]:
    """Return target hash -> sorted hashes of the posts linking to it."""
    resolver = _link_resolver(posts)
    backlinks: dict[str, set[str]] = {}
    for post in posts:
        for link in post.links:
            target = resolver.get(link.target)
            if target is not None and target != post.hash:
                backlinks.setdefault(target, set()).add(post.hash)
    return {target: sorted(sources) for target, sources in backlinks.items()}


def _insert_media(
    conn: sqlite3.Connection,
    media: Sequence[MediaItem],
    media_vectors: Mapping[str, Sequence[float]],
) -> None:
    for item in media:
        vector = media_vectors.get(item.key)
        conn.execute(
            """
            INSERT OR REPLACE INTO medias (
                id, hash, filename, path, url, width, height, filesize,
                mime_type, created, modified, embedding
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.hash or None,
                item.filename or os.path.basename(item.path),
                item.path or None,
                item.url or None,
                item.width,
                item.height,
                item.filesize,
                item.mime_type or None,
                item.created,
                item.modified,
                json.dumps(list(vector)) if vector else None,
            ),
        )


def _insert_posts(
    conn: sqlite3.Connection,
    posts: Sequence[Post],
    entries: list[SchemaEntry],
    schema: FrontmatterSchema | None,
    mode: str,
) -> tuple[int, int]:
    """Insert posts with their tag, link and media relations.

    Returns:
        ``(distinct_tags, links)`` counts.
    """
    columns = [quote_ident(c) for c in CORE_COLUMNS] + [
        quote_ident(e.column_name) for e in entries
    ]
    insert_post = (
        f"INSERT OR REPLACE INTO posts ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' for _ in columns)})"
    )
    backlinks = compute_backlinks(posts)
    resolver = _link_resolver(posts)
    tags: set[str] = set()
    links = 0

    for post in posts:
        normalized = normalize_frontmatter(post.frontmatter, schema, mode)
        raw_blob = dump_json(post.frontmatter or {})
        values: list[Any] = [
            post.hash,
            post.slug,
            post.title,
            post.html or post.content,
            json.dumps(backlinks.get(post.hash, [])),
            post.word_count,
            post.created,
            post.modified,
            post.path,
            post.type,
            raw_blob,
            dump_json(normalized) if schema is not None else raw_blob,
        ]
        values += [to_storage(normalized.get(e.name), e.storage_type) for e in entries]
        conn.execute(insert_post, values)

        for tag in post.tags:
            conn.execute("INSERT OR IGNORE INTO tags (tag) VALUES (?)", (tag,))
            row = conn.execute("SELECT id FROM tags WHERE tag = ?", (tag,)).fetchone()
            conn.execute(
                "INSERT OR IGNORE INTO post_tags (post_id, tag_id) VALUES (?, ?)",
                (post.hash, row["id"]),
            )
            tags.add(tag)

        for link in post.links:
            target = resolver.get(link.target, link.target)
            cur = conn.execute(
                "INSERT OR IGNORE INTO links (source_id, target_id) VALUES (?, ?)",
                (post.hash, target),
            )
            links += cur.rowcount

        for ref in post.media:
            if ref.id:
                conn.execute(
                    "INSERT OR IGNORE INTO post_media (post_id, media_id) VALUES (?, ?)",
                    (post.hash, ref.id),
                )

    return len(tags), links


def _store_vectors(
    conn: sqlite3.Connection,
    post_vectors: Mapping[str, Sequence[float]],
    collector: IssueCollector,
) -> int:
    """Store post vectors under a savepoint; failure is a warning only."""
    sizes = [len(v) for v in post_vectors.values() if v]
    if not sizes:
        return 0
    dimensions = max(set(sizes), key=sizes.count)

    conn.execute("SAVEPOINT vectors")
    try:
        ensure_vec_table(conn, dimensions)
        clear_vectors(conn)
        stored = store_post_vectors(conn, post_vectors, dimensions)
    except (sqlite3.Error, ValueError) as exc:
        conn.execute("ROLLBACK TO vectors")
        conn.execute("RELEASE vectors")
        logger.warning("Vector index skipped: %s", exc)
        collector.add_database_warning("vector index", exc, target="vec_posts")
        return 0
    conn.execute("RELEASE vectors")
    return stored


def _write_meta(conn: sqlite3.Connection, meta: dict[str, Any]) -> None:
    conn.executemany(
        "INSERT OR REPLACE INTO snapshot_meta (key, value) VALUES (?, ?)",
        [(k, str(v)) for k, v in meta.items()],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_snapshot(
    posts: Sequence[Post],
    media: Sequence[MediaItem],
    schema: FrontmatterSchema | None,
    db_path: Path | str,
    collector: IssueCollector,
    *,
    mode: str = PERMISSIVE,
    post_vectors: Mapping[str, Sequence[float]] | None = None,
    media_vectors: Mapping[str, Sequence[float]] | None = None,
    vector_index: bool = True,
    job_id: str = "",
) -> SnapshotResult:
    """Build the relational snapshot at *db_path*.

    A snapshot left at *db_path* by a previous build is the starting point:
    its rows are cleared and new schema columns are added to it, existing
    columns are kept as they are.

    Args:
        posts: Posts to load.
        media: Media items to load.
        schema: Inferred frontmatter schema; ``None`` (or a degraded schema)
            stores frontmatter only as an opaque JSON blob.
        db_path: Final snapshot location.
        collector: Build issue collector (non-fatal DDL problems land here).
        mode: Frontmatter normalization mode.
        post_vectors: hash -> embedding, stored in vec_posts when possible.
        media_vectors: hash -> embedding, stored as JSON in medias.embedding.
        vector_index: Whether to try building the vec_posts table.
        job_id: Recorded in snapshot_meta.

    Raises:
        SnapshotError: The bulk load failed; the transaction was rolled back
            and *db_path* is untouched.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    if schema is not None and schema.error:
        schema = None

    fd, tmp_name = tempfile.mkstemp(dir=db_path.parent, prefix=f".{db_path.name}.", suffix=".tmp")
    os.close(fd)
    tmp_path = Path(tmp_name)
    if db_path.exists():
        shutil.copyfile(db_path, tmp_path)
        logger.info("Updating previous snapshot %s", db_path)

    database = Database(tmp_path, load_vectors=vector_index)
    try:
        conn = database.connect()
    except sqlite3.Error as exc:
        tmp_path.unlink(missing_ok=True)
        raise SnapshotError(f"Cannot open snapshot {tmp_path}: {exc}") from exc

    try:
        initialize(conn)
        conn.execute("BEGIN")
        clear_rows(conn)
        if database.vectors_available:
            clear_vectors(conn)

        columns_added: list[str] = []
        entries: list[SchemaEntry] = []
        if schema is not None:
            columns_added = apply_schema_columns(conn, schema, collector)
            present = existing_columns(conn, "posts")
            entries = [e for e in schema.entries.values() if e.column_name in present]

        _insert_media(conn, media, media_vectors or {})
        tags_count, links_count = _insert_posts(conn, posts, entries, schema, mode)
        create_indexes(conn, schema, collector)

        vectors_count = 0
        if vector_index and post_vectors:
            if database.vectors_available:
                vectors_count = _store_vectors(conn, post_vectors, collector)
            else:
                collector.add_database_warning(
                    "vector index", "sqlite-vec extension not available", target="vec_posts"
                )

        posts_count = conn.execute("SELECT COUNT(*) FROM posts").fetchone()[0]
        media_count = conn.execute("SELECT COUNT(*) FROM medias").fetchone()[0]
        _write_meta(
            conn,
            {
                "jobId": job_id,
                "normalizationMode": mode if schema is not None else "none",
                "postsCount": posts_count,
                "mediaCount": media_count,
                "schemaProperties": len(entries),
                "generatedAt": datetime.now(timezone.utc).isoformat(),
                "version": __version__,
            },
        )
        conn.execute("COMMIT")
    except Exception as exc:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        conn.close()
        tmp_path.unlink(missing_ok=True)
        logger.error("Snapshot build failed, rolled back: %s", exc)
        raise SnapshotError(f"Failed to build snapshot {db_path.name}: {exc}") from exc

    try:
        conn.execute("VACUUM")
        conn.execute("PRAGMA optimize")
    except sqlite3.Error as exc:
        logger.warning("Snapshot optimize skipped: %s", exc)
        collector.add_database_warning("vacuum", exc)
    finally:
        conn.close()

    os.replace(tmp_path, db_path)
    size = db_path.stat().st_size
    logger.info(
        "Snapshot built: %s (%.2f MB, %d posts, %d media)",
        db_path,
        size / (1024 * 1024),
        posts_count,
        media_count,
    )
    return SnapshotResult(
        db_path=db_path,
        size_bytes=size,
        posts_count=posts_count,
        media_count=media_count,
        tags_count=tags_count,
        links_count=links_count,
        vectors_count=vectors_count,
        columns_added=columns_added,
    )
