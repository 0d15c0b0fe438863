"""Snapshot DDL: base tables, additive frontmatter columns, indexes."""

from __future__ import annotations

import logging
import sqlite3

from vaultbuild.issues import IssueCollector
from vaultbuild.schema.analyzer import FrontmatterSchema

logger = logging.getLogger(__name__)

_CREATE_POSTS = """
CREATE TABLE IF NOT EXISTS posts (
    "_id"                       TEXT PRIMARY KEY,
    "_slug"                     TEXT NOT NULL,
    "_title"                    TEXT,
    "_content"                  TEXT,
    "_backlinks"                TEXT NOT NULL DEFAULT '[]',
    "_wordCount"                INTEGER,
    "_created"                  TEXT,
    "_modified"                 TEXT,
    "_path"                     TEXT,
    "_type"                     TEXT,
    "_frontmatter"              TEXT NOT NULL DEFAULT '{}',
    "_frontmatter_normalized"   TEXT NOT NULL DEFAULT '{}'
)
"""

_CREATE_MEDIAS = """
CREATE TABLE IF NOT EXISTS medias (
    id          TEXT PRIMARY KEY,
    hash        TEXT,
    filename    TEXT,
    path        TEXT,
    url         TEXT,
    width       INTEGER,
    height      INTEGER,
    filesize    INTEGER,
    mime_type   TEXT,
    created     TEXT,
    modified    TEXT,
    embedding   TEXT
)
"""

_CREATE_TAGS = """
CREATE TABLE IF NOT EXISTS tags (
    id      INTEGER PRIMARY KEY AUTOINCREMENT,
    tag     TEXT NOT NULL UNIQUE
)
"""

_CREATE_POST_TAGS = """
CREATE TABLE IF NOT EXISTS post_tags (
    post_id     TEXT NOT NULL REFERENCES posts("_id") ON DELETE CASCADE,
    tag_id      INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (post_id, tag_id)
)
"""

# target_id is not a foreign key: links may point at notes outside the build.
_CREATE_LINKS = """
CREATE TABLE IF NOT EXISTS links (
    source_id   TEXT NOT NULL REFERENCES posts("_id") ON DELETE CASCADE,
    target_id   TEXT NOT NULL,
    PRIMARY KEY (source_id, target_id)
)
"""

_CREATE_POST_MEDIA = """
CREATE TABLE IF NOT EXISTS post_media (
    post_id     TEXT NOT NULL REFERENCES posts("_id") ON DELETE CASCADE,
    media_id    TEXT NOT NULL,
    PRIMARY KEY (post_id, media_id)
)
"""

_CREATE_SNAPSHOT_META = """
CREATE TABLE IF NOT EXISTS snapshot_meta (
    key     TEXT PRIMARY KEY,
    value   TEXT
)
"""

BASE_TABLES: tuple[str, ...] = (
    _CREATE_POSTS,
    _CREATE_MEDIAS,
    _CREATE_TAGS,
    _CREATE_POST_TAGS,
    _CREATE_LINKS,
    _CREATE_POST_MEDIA,
    _CREATE_SNAPSHOT_META,
)

# Child tables first so foreign keys never block the clear.
DATA_TABLES: tuple[str, ...] = (
    "post_tags",
    "links",
    "post_media",
    "tags",
    "posts",
    "medias",
    "snapshot_meta",
)

_IDENTITY_INDEXES: tuple[tuple[str, str, str], ...] = (
    ("idx_posts_slug", "posts", '"_slug"'),
    ("idx_medias_hash", "medias", "hash"),
    ("idx_tags_tag", "tags", "tag"),
    ("idx_post_tags_tag", "post_tags", "tag_id"),
    ("idx_links_target", "links", "target_id"),
    ("idx_post_media_media", "post_media", "media_id"),
)

# Frontmatter properties worth indexing when the corpus uses them.
INDEXABLE_PROPERTIES: tuple[str, ...] = (
    "draft",
    "published",
    "date",
    "author",
    "category",
    "status",
)


def quote_ident(name: str) -> str:
    """Double-quote an SQL identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def initialize(conn: sqlite3.Connection) -> None:
    """Create the base snapshot tables (idempotent)."""
    for ddl in BASE_TABLES:
        conn.execute(ddl)


def existing_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({quote_ident(table)})").fetchall()
    return {row[1] for row in rows}


def clear_rows(conn: sqlite3.Connection) -> None:
    """Delete every row while keeping tables and columns in place."""
    for table in DATA_TABLES:
        conn.execute(f"DELETE FROM {table}")


def apply_schema_columns(
    conn: sqlite3.Connection,
    schema: FrontmatterSchema,
    collector: IssueCollector | None = None,
) -> list[str]:
    """Add one posts column per schema property that doesn't have one yet.

    Strictly additive: existing columns are never dropped or retyped. A
    failing ALTER TABLE is logged and recorded, and the next column is tried.

    Returns:
        Names of the columns actually added.
    """
    present = {c.lower() for c in existing_columns(conn, "posts")}
    added: list[str] = []
    for entry in schema.entries.values():
        if entry.column_name.lower() in present:
            continue
        try:
            conn.execute(
                f"ALTER TABLE posts ADD COLUMN {quote_ident(entry.column_name)} "
                f"{entry.storage_type}"
            )
        except sqlite3.Error as exc:
            logger.warning("Could not add column %s: %s", entry.column_name, exc)
            if collector is not None:
                collector.add_database_warning("add column", exc, target=entry.column_name)
            continue
        present.add(entry.column_name.lower())
        added.append(entry.column_name)
    if added:
        logger.debug("Added %d frontmatter columns to posts", len(added))
    return added


def create_indexes(
    conn: sqlite3.Connection,
    schema: FrontmatterSchema | None = None,
    collector: IssueCollector | None = None,
) -> list[str]:
    """Create identity indexes plus indexes on common frontmatter filters.

    Each index is attempted independently; a failure is a warning.

    Returns:
        Names of the indexes created (or already present).
    """
    planned = list(_IDENTITY_INDEXES)
    if schema is not None:
        columns = existing_columns(conn, "posts")
        for prop in INDEXABLE_PROPERTIES:
            entry = schema.get(prop)
            if entry is not None and entry.column_name in columns:
                planned.append(
                    (f"idx_posts_fm_{entry.column_name}", "posts", quote_ident(entry.column_name))
                )

    created: list[str] = []
    for name, table, column in planned:
        try:
            conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table}({column})")
        except sqlite3.Error as exc:
            logger.warning("Could not create index %s: %s", name, exc)
            if collector is not None:
                collector.add_database_warning("create index", exc, target=name)
            continue
        created.append(name)
    return created
