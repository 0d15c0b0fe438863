"""vaultbuild — content build & indexing pipeline.

Turns parsed posts and media into a portable snapshot: an inferred frontmatter
schema, a SQLite store, embedding maps with a similarity index, and
content-health reports.
"""

__version__ = "0.1.0"
