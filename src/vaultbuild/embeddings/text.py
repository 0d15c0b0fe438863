"""Embedding input text: assembly per item kind and fixed-window chunking."""

from __future__ import annotations

import json
import os
import re

from vaultbuild.models import MediaItem, Post
from vaultbuild.schema.analyzer import to_jsonable

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_STEM_SPLIT_RE = re.compile(r"[-_.\s]+")


def strip_html(html: str) -> str:
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def build_post_text(post: Post) -> str:
    """``"{title}. {plain} {frontmatter-json}"`` for one post."""
    plain = post.plain or post.content or strip_html(post.html)
    frontmatter = json.dumps(to_jsonable(post.frontmatter or {}), ensure_ascii=False, default=str)
    return f"{post.title}. {plain} {frontmatter}".strip()


def build_media_text(media: MediaItem) -> str:
    """Filename, path stem words and mime type for one media item."""
    stem = os.path.splitext(os.path.basename(media.path or media.filename))[0]
    words = " ".join(w for w in _STEM_SPLIT_RE.split(stem) if w)
    parts = [media.filename, words, media.mime_type]
    return " ".join(p for p in parts if p).strip()


def chunk_text(text: str, chunk_size: int = 512, overlap: float = 0.10) -> list[str]:
    """Split *text* into fixed-window segments with overlap.

    Window size = ``chunk_size * 4`` characters.
    Overlap     = ``overlap`` fraction of window size.
    Segments are stripped; empty segments are omitted.

    Raises:
        ValueError: If chunk_size < 1 or overlap is outside [0, 1).
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    if not 0.0 <= overlap < 1.0:
        raise ValueError("overlap must be in [0.0, 1.0)")
    if not text.strip():
        return []

    char_size = chunk_size * 4
    overlap_chars = int(char_size * overlap)
    step = max(1, char_size - overlap_chars)

    segments: list[str] = []
    pos = 0
    length = len(text)

    while pos < length:
        end = min(pos + char_size, length)
        segment = text[pos:end].strip()
        if segment:
            segments.append(segment)
        if end >= length:
            break
        pos += step

    return segments
