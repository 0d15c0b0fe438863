"""Content-health validation."""

from vaultbuild.validate.health import HealthReport, extract_media_references, validate_content

__all__ = ["HealthReport", "extract_media_references", "validate_content"]
