"""sqlite-vec tables holding post embeddings inside the snapshot."""

from __future__ import annotations

import json
import sqlite3
from typing import Mapping, Sequence

VEC_TABLE = "vec_posts"
ID_TABLE = "vec_post_ids"

_CREATE_ID_TABLE = f"""
CREATE TABLE IF NOT EXISTS {ID_TABLE} (
    rowid       INTEGER PRIMARY KEY,
    post_id     TEXT NOT NULL UNIQUE
)
"""


def ensure_vec_table(conn: sqlite3.Connection, dimensions: int) -> str:
    """Create the vec_posts virtual table and its rowid mapping if missing.

    Does not commit; the snapshot builder owns the transaction.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        dimensions: Embedding vector dimensions.

    Returns:
        The vec table name.

    Raises:
        ValueError: If *dimensions* < 1, or an existing table was created
            with a different dimension.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    existing = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (VEC_TABLE,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {VEC_TABLE} USING vec0(embedding float[{dimensions}])"
        )
    elif f"float[{dimensions}]" not in (existing[0] or ""):
        # Dimension changed since the previous build; vec0 columns are fixed-size.
        conn.execute(f"DROP TABLE {VEC_TABLE}")
        if _has_table(conn, ID_TABLE):
            conn.execute(f"DELETE FROM {ID_TABLE}")
        conn.execute(
            f"CREATE VIRTUAL TABLE {VEC_TABLE} USING vec0(embedding float[{dimensions}])"
        )

    conn.execute(_CREATE_ID_TABLE)
    return VEC_TABLE


def _has_table(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone()
    return row is not None


def clear_vectors(conn: sqlite3.Connection) -> None:
    """Remove all stored vectors (tables stay in place)."""
    if _has_table(conn, VEC_TABLE):
        conn.execute(f"DELETE FROM {VEC_TABLE}")
    if _has_table(conn, ID_TABLE):
        conn.execute(f"DELETE FROM {ID_TABLE}")


def store_post_vectors(
    conn: sqlite3.Connection, vectors: Mapping[str, Sequence[float]], dimensions: int
) -> int:
    """Insert one row per post vector of the right size, in hash order.

    Returns:
        Number of vectors stored.
    """
    stored = 0
    for rowid, post_id in enumerate(sorted(vectors), start=1):
        vector = vectors[post_id]
        if len(vector) != dimensions:
            continue
        conn.execute(
            f"INSERT INTO {ID_TABLE}(rowid, post_id) VALUES (?, ?)", (rowid, post_id)
        )
        conn.execute(
            f"INSERT INTO {VEC_TABLE}(rowid, embedding) VALUES (?, ?)",
            (rowid, json.dumps([float(x) for x in vector])),
        )
        stored += 1
    return stored


def search_similar_posts(
    conn: sqlite3.Connection, embedding: Sequence[float], limit: int = 10
) -> list[tuple[str, float]]:
    """Nearest-neighbour search. Returns (post_id, distance) sorted by distance."""
    rows = conn.execute(
        f"""
        SELECT ids.post_id AS post_id, v.distance AS distance
        FROM (
            SELECT rowid, distance FROM {VEC_TABLE}
            WHERE embedding MATCH ? ORDER BY distance LIMIT ?
        ) AS v
        JOIN {ID_TABLE} AS ids ON ids.rowid = v.rowid
        ORDER BY v.distance
        """,
        (json.dumps([float(x) for x in embedding]), limit),
    ).fetchall()
    return [(row["post_id"], row["distance"]) for row in rows]
