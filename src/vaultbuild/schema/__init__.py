"""Frontmatter schema inference."""

from vaultbuild.schema.analyzer import (
    FrontmatterSchema,
    SchemaEntry,
    analyze_frontmatter,
    resolve_type,
    sanitize_column_name,
)
from vaultbuild.schema.report import build_schema_report, render_schema_markdown
from vaultbuild.schema.scan import scan_frontmatter_schema
from vaultbuild.schema.types import detect_type, storage_type

__all__ = [
    "FrontmatterSchema",
    "SchemaEntry",
    "analyze_frontmatter",
    "build_schema_report",
    "detect_type",
    "render_schema_markdown",
    "resolve_type",
    "sanitize_column_name",
    "scan_frontmatter_schema",
    "storage_type",
]
