"""Schema report: conflicts, reserved-word collisions, rare properties."""

from __future__ import annotations

from typing import Any

from vaultbuild.issues import Category, IssueCollector
from vaultbuild.schema.analyzer import FrontmatterSchema, to_jsonable

_MODULE = "frontmatter-schema"


def build_schema_report(schema: FrontmatterSchema, rare_threshold: float = 0.10) -> dict[str, Any]:
    """Summarise *schema* into a JSON-serialisable report dict.

    Args:
        schema: Result of analyze_frontmatter().
        rare_threshold: Fraction of posts-with-frontmatter below which a
            property is reported as rare.
    """
    stats = schema.statistics
    warnings: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    conflicts: list[dict[str, Any]] = []
    reserved: list[str] = []

    if schema.error:
        errors.append(
            {"type": "scan_failed", "message": f"Frontmatter schema scan failed: {schema.error}"}
        )

    for name, entry in schema.entries.items():
        if entry.needs_quoting:
            reserved.append(name)
            warnings.append(
                {
                    "type": "sql_reserved_word",
                    "property": name,
                    "message": (
                        f"Property '{name}' is a SQL reserved word. "
                        "It will be quoted in queries."
                    ),
                }
            )

        if entry.has_conflict:
            conflicts.append(
                {
                    "property": name,
                    "types": list(entry.types),
                    "occurrences": entry.occurrences,
                    "distribution": dict(entry.distribution),
                    "recommendation": entry.recommended_type,
                    "samples": [to_jsonable(s) for s in entry.samples],
                }
            )
            warnings.append(
                {
                    "type": "type_conflict",
                    "property": name,
                    "message": (
                        f"Property '{name}' has conflicting types: {', '.join(entry.value_types)}"
                    ),
                }
            )

        if entry.occurrences < stats.posts_with_frontmatter * rare_threshold:
            warnings.append(
                {
                    "type": "rare_property",
                    "property": name,
                    "message": (
                        f"Property '{name}' appears in less than "
                        f"{round(rare_threshold * 100)}% of posts"
                    ),
                }
            )

    recommendations: list[dict[str, Any]] = []
    if conflicts:
        recommendations.append(
            {
                "type": "normalize_types",
                "message": "Consider normalizing frontmatter types for consistency",
                "details": [
                    {"property": c["property"], "suggestedType": c["recommendation"]}
                    for c in conflicts
                ],
            }
        )

    return {
        "summary": {
            "totalPosts": stats.total_posts,
            "postsWithFrontmatter": stats.posts_with_frontmatter,
            "uniqueProperties": stats.unique_properties,
            "propertiesWithConflicts": len(conflicts),
            "sqlReservedWords": len(reserved),
            "warnings": warnings,
            "errors": errors,
        },
        "conflicts": conflicts,
        "sqlReservedWords": reserved,
        "recommendations": recommendations,
    }


def report_schema_issues(report: dict[str, Any], collector: IssueCollector) -> None:
    """Forward report warnings/errors to the build issue collector."""
    for warning in report["summary"]["warnings"]:
        category = (
            Category.SCHEMA_CONFLICT
            if warning["type"] == "type_conflict"
            else Category.FRONTMATTER_SCHEMA
        )
        conflict = next(
            (c for c in report["conflicts"] if c["property"] == warning.get("property")),
            None,
        )
        suggestion = ""
        if category == Category.SCHEMA_CONFLICT and conflict is not None:
            suggestion = (
                f"Use '{conflict['recommendation']}' for '{conflict['property']}' in every post."
            )
        collector.warning(
            category,
            warning["message"],
            module=_MODULE,
            suggestion=suggestion,
            context=dict(conflict) if conflict is not None else dict(warning),
        )

    for error in report["summary"]["errors"]:
        collector.error(
            Category.FRONTMATTER_SCHEMA,
            error["message"],
            module=_MODULE,
            context=dict(error),
        )


def render_schema_markdown(schema: FrontmatterSchema, report: dict[str, Any]) -> str:
    """Render a human-readable Markdown version of the schema report."""
    summary = report["summary"]
    lines = [
        "# Frontmatter schema report",
        "",
        f"- Posts: {summary['totalPosts']}",
        f"- Posts with frontmatter: {summary['postsWithFrontmatter']}",
        f"- Properties: {summary['uniqueProperties']}",
        f"- Properties with type conflicts: {summary['propertiesWithConflicts']}",
        f"- SQL reserved words: {summary['sqlReservedWords']}",
    ]

    if summary["errors"]:
        lines += ["", "## Errors", ""]
        lines += [f"- {e['message']}" for e in summary["errors"]]

    if schema.entries:
        lines += [
            "",
            "## Properties",
            "",
            "| property | column | type | storage | occurrences | nullable |",
            "|---|---|---|---|---|---|",
        ]
        for name, entry in schema.entries.items():
            column = f'"{entry.column_name}"' if entry.needs_quoting else entry.column_name
            lines.append(
                f"| {name} | {column} | {entry.recommended_type} | {entry.storage_type} "
                f"| {entry.occurrences} | {'yes' if entry.nullable else 'no'} |"
            )

    if report["conflicts"]:
        lines += ["", "## Type conflicts", ""]
        for c in report["conflicts"]:
            dist = ", ".join(f"{t}: {n}" for t, n in c["distribution"].items())
            samples = ", ".join(repr(s) for s in c["samples"])
            lines.append(f"- **{c['property']}** → `{c['recommendation']}` ({dist})")
            if samples:
                lines.append(f"  - samples: {samples}")

    rare = [w for w in summary["warnings"] if w["type"] == "rare_property"]
    if rare:
        lines += ["", "## Rare properties", ""]
        lines += [f"- {w['property']}" for w in rare]

    return "\n".join(lines) + "\n"
