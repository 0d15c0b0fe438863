"""Shared pytest fixtures."""

from __future__ import annotations

import string
import time

import pytest

from vaultbuild.config import BuildConfig
from vaultbuild.db.connection import Database
from vaultbuild.db.ddl import initialize
from vaultbuild.issues import IssueCollector
from vaultbuild.models import MediaItem, Post


@pytest.fixture
def tmp_db(tmp_path):
    """File-based snapshot DB in tmp_path with base tables, closed after test."""
    db = Database(tmp_path / "content.sqlite")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def vec_db(tmp_path):
    """Like tmp_db, but skips when this SQLite build can't load sqlite-vec."""
    db = Database(tmp_path / "vectors.sqlite")
    conn = db.connect()
    if not db.vectors_available:
        conn.close()
        pytest.skip("sqlite-vec extension not loadable in this environment")
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def collector():
    return IssueCollector("job-test")


@pytest.fixture
def config():
    """Defaults, with small batches so batching paths are exercised."""
    cfg = BuildConfig()
    cfg.embedding.batch_size = 2
    cfg.embedding.concurrency = 2
    cfg.embedding.timeout_seconds = 5.0
    return cfg


# ---------------------------------------------------------------------------
# Fake embedding providers
# ---------------------------------------------------------------------------


class LetterProvider:
    """Deterministic 26-dim letter-frequency vectors; records every call."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]

    @staticmethod
    def vector(text: str) -> list[float]:
        lowered = text.lower()
        counts = [float(lowered.count(c)) for c in string.ascii_lowercase]
        return counts if any(counts) else [1.0] + [0.0] * 25

    @property
    def texts(self) -> list[str]:
        return [t for call in self.calls for t in call]


class FailingProvider:
    def __init__(self, message: str = "provider down") -> None:
        self.message = message
        self.calls = 0

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        raise RuntimeError(self.message)


class SlowProvider(LetterProvider):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    def embed(self, texts: list[str]) -> list[list[float]]:
        time.sleep(self.delay)
        return super().embed(texts)


@pytest.fixture
def provider():
    return LetterProvider()


# ---------------------------------------------------------------------------
# Sample corpus
# ---------------------------------------------------------------------------


def make_post(hash_: str, **kwargs) -> Post:
    kwargs.setdefault("slug", f"post-{hash_}")
    kwargs.setdefault("title", f"Post {hash_}")
    kwargs.setdefault("plain", f"Body of post {hash_}. " * 10)
    return Post(hash=hash_, **kwargs)


def make_media(hash_: str, filename: str, **kwargs) -> MediaItem:
    kwargs.setdefault("path", f"media/{filename}")
    kwargs.setdefault("mime_type", "image/png")
    return MediaItem(id=hash_, hash=hash_, filename=filename, **kwargs)


@pytest.fixture
def sample_posts() -> list[Post]:
    return [
        make_post(
            "h1",
            slug="first",
            title="First post",
            content="Intro ![cover](./media/cover.png) and [[second]]",
            frontmatter={
                "title": "First post",
                "date": "2024-01-02",
                "description": "The first one",
                "tags": ["a", "b"],
                "draft": False,
            },
            tags=("a", "b"),
            links=(),
        ),
        make_post(
            "h2",
            slug="second",
            title="Second post",
            frontmatter={
                "title": "Second post",
                "date": "2024-02-03T10:00:00Z",
                "tags": "solo",
                "draft": "true",
                "order": 2,
            },
            tags=("b",),
        ),
        make_post("h3", slug="third", title="Third", plain="short", frontmatter={}),
    ]


@pytest.fixture
def sample_media() -> list[MediaItem]:
    return [
        make_media("m1", "cover.png"),
        make_media("m2", "unused.jpg", mime_type="image/jpeg"),
    ]
