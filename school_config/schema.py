"""
Migration configuration schema.

Defines the operator-authored, reviewable configuration for a migration
run.  YAML files are parsed into these types by ``school_config.loader``;
every other component receives a ``MigrationConfig`` and never reads
configuration files or environment variables itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

# ---------------------------------------------------------------------------
# Extracts
# ---------------------------------------------------------------------------

# Staged legacy extracts, in load order
STAGED_EXTRACTS: tuple[str, ...] = (
    "professor",
    "student",
    "group",
    "group_assignment",
    "discipline_assignment",
    "grade",
)

# Optional catalog extracts read directly by the seeder
CATALOG_EXTRACTS: tuple[str, ...] = ("course", "discipline")

KNOWN_EXTRACTS: tuple[str, ...] = STAGED_EXTRACTS + CATALOG_EXTRACTS

# csv quoting modes an extract may declare
QUOTING_MODES: tuple[str, ...] = ("minimal", "all", "none")


@dataclass(frozen=True)
class ExtractSource:
    """Where and how to read one legacy extract."""

    name: str
    path: Path
    encoding: str = "utf-8"
    delimiter: str = ";"
    has_header: bool = True
    quoting: str = "minimal"  # one of QUOTING_MODES


# ---------------------------------------------------------------------------
# Evaluations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluationTemplate:
    """Name and date of one synthesized historical evaluation."""

    kind: str  # intermediate, exam, final
    name: str
    date: date


DEFAULT_EVALUATION_TEMPLATES: tuple[EvaluationTemplate, ...] = (
    EvaluationTemplate("intermediate", "Teste (histórico)", date(2024, 1, 15)),
    EvaluationTemplate("exam", "Prova (histórico)", date(2024, 2, 15)),
    EvaluationTemplate("final", "Prova Final (histórico)", date(2024, 3, 15)),
)


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupOverride:
    """Operator-reviewed course assignment for a legacy group with no parsable semester."""

    old_group: str
    course_id: int
    semester: int = 1
    note: str = ""


@dataclass(frozen=True)
class ManualOverride:
    """Operator-chosen target for one legacy key; never replaced by automatic resolution."""

    entity: str  # professor, student, discipline
    old_key: str
    new_id: int | None
    key_kind: str = "name"  # discipline only: name or code


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MigrationConfig:
    """Complete configuration for one migration environment."""

    database_url: str
    source_dir: Path
    extracts: tuple[ExtractSource, ...]
    batch_size: int = 1000
    class_year: int = 2024
    fallback_teacher_name: str = "Sistema Migração"
    seed_teachers: bool = False
    course_prefixes: tuple[str, ...] = ()
    evaluation_templates: tuple[EvaluationTemplate, ...] = DEFAULT_EVALUATION_TEMPLATES
    group_overrides: tuple[GroupOverride, ...] = ()
    group_overrides_file: Path | None = None
    manual_overrides: tuple[ManualOverride, ...] = ()
    echo_sql: bool = False
    config_path: Path | None = field(default=None, compare=False)

    def extract(self, name: str) -> ExtractSource | None:
        """Return the configured source for an extract, or None."""
        for source in self.extracts:
            if source.name == name:
                return source
        return None

    def template(self, kind: str) -> EvaluationTemplate | None:
        for template in self.evaluation_templates:
            if template.kind == kind:
                return template
        return None

    def overrides_for(self, entity: str) -> tuple[ManualOverride, ...]:
        return tuple(o for o in self.manual_overrides if o.entity == entity)
