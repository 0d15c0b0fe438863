"""Domain models for posts and media handed over by the content parser."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among *keys*."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class LinkRef:
    target: str


@dataclass(frozen=True)
class MediaRef:
    id: str
    hash: str = ""
    path: str = ""
    filename: str = ""


@dataclass(frozen=True)
class Post:
    """A content item derived from a source note, identified by its content hash."""

    hash: str
    slug: str
    title: str = ""
    content: str = ""
    html: str = ""
    plain: str = ""
    frontmatter: dict[str, Any] = field(default_factory=dict)
    tags: tuple[str, ...] = ()
    links: tuple[LinkRef, ...] = ()
    media: tuple[MediaRef, ...] = ()
    word_count: int = 0
    created: str | None = None
    modified: str | None = None
    path: str = ""
    type: str = "post"
    id: str = ""

    @property
    def key(self) -> str:
        """Identity used across snapshot tables and embedding caches."""
        return self.hash

    @property
    def body(self) -> str:
        """Rendered content preferring HTML, then Markdown source."""
        return self.html or self.content or self.plain

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Post:
        """Build a Post from the parser's dict shape (camelCase or snake_case keys)."""
        hash_ = str(_pick(raw, "hash", "id", default=""))
        frontmatter = raw.get("frontmatter")
        if not isinstance(frontmatter, dict):
            frontmatter = {}

        tags: list[str] = []
        for tag in raw.get("tags") or []:
            tag = str(tag)
            if tag and tag not in tags:
                tags.append(tag)

        links = tuple(
            LinkRef(target=str(link["target"]))
            for link in raw.get("links") or []
            if isinstance(link, dict) and link.get("target")
        )
        media = tuple(
            MediaRef(
                id=str(_pick(ref, "id", "hash", default="")),
                hash=str(ref.get("hash") or ""),
                path=str(_pick(ref, "path", "originalPath", default="")),
                filename=str(_pick(ref, "filename", "fileName", default="")),
            )
            for ref in raw.get("media") or raw.get("linkedMedia") or []
            if isinstance(ref, dict)
        )

        return cls(
            hash=hash_,
            slug=str(_pick(raw, "slug", "name", default=hash_)),
            title=str(raw.get("title") or ""),
            content=str(_pick(raw, "content", "markdown", default="")),
            html=str(raw.get("html") or ""),
            plain=str(raw.get("plain") or ""),
            frontmatter=frontmatter,
            tags=tuple(tags),
            links=links,
            media=media,
            word_count=_as_int(_pick(raw, "wordCount", "word_count")) or 0,
            created=_pick(raw, "created"),
            modified=_pick(raw, "modified"),
            path=str(raw.get("path") or ""),
            type=str(raw.get("type") or "post"),
            id=str(_pick(raw, "id", "hash", default=hash_)),
        )


@dataclass(frozen=True)
class MediaItem:
    """An attached media file, identified by its content hash."""

    id: str
    hash: str
    filename: str = ""
    path: str = ""
    url: str = ""
    width: int | None = None
    height: int | None = None
    filesize: int | None = None
    mime_type: str = ""
    created: str | None = None
    modified: str | None = None

    @property
    def key(self) -> str:
        return self.hash or self.id

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MediaItem:
        hash_ = str(_pick(raw, "hash", "id", default=""))
        path = str(_pick(raw, "path", "originalPath", default=""))
        filename = str(_pick(raw, "filename", "fileName", default="")) or os.path.basename(path)
        return cls(
            id=str(_pick(raw, "id", "hash", default=hash_)),
            hash=hash_,
            filename=filename,
            path=path,
            url=str(raw.get("url") or ""),
            width=_as_int(raw.get("width")),
            height=_as_int(raw.get("height")),
            filesize=_as_int(_pick(raw, "filesize", "size")),
            mime_type=str(_pick(raw, "mimeType", "mime_type", default="")),
            created=_pick(raw, "created"),
            modified=_pick(raw, "modified"),
        )


def parse_posts(raw_posts: list[dict[str, Any]] | None) -> list[Post]:
    return [Post.from_dict(p) for p in raw_posts or [] if isinstance(p, dict)]


def parse_media(raw_media: list[dict[str, Any]] | None) -> list[MediaItem]:
    return [MediaItem.from_dict(m) for m in raw_media or [] if isinstance(m, dict)]
