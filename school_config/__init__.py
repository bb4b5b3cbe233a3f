"""
school_config -- migration run configuration.

Responsibility:
    Parses the operator's YAML configuration into a frozen
    ``MigrationConfig``.  Phases, scripts and tests receive that object;
    nothing else reads configuration files or environment variables.

Architecture position:
    Configuration -- sits above ``school_kernel`` (it raises the kernel's
    ``ConfigurationError``) and below ``school_migration``.
"""

from school_config.loader import load_group_overrides, load_migration_config
from school_config.schema import (
    CATALOG_EXTRACTS,
    STAGED_EXTRACTS,
    EvaluationTemplate,
    ExtractSource,
    GroupOverride,
    ManualOverride,
    MigrationConfig,
)

__all__ = [
    "load_migration_config",
    "load_group_overrides",
    "MigrationConfig",
    "ExtractSource",
    "EvaluationTemplate",
    "GroupOverride",
    "ManualOverride",
    "STAGED_EXTRACTS",
    "CATALOG_EXTRACTS",
]
