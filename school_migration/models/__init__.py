"""Staging, mapping and phase ledger ORM models."""

from school_migration.models.mapping import (
    DisciplineMapping,
    EvaluationMapping,
    GroupClassMapping,
    MappingRow,
    ProfessorMapping,
    StudentMapping,
)
from school_migration.models.phase_run import MigrationLock, PhaseRun
from school_migration.models.staging import (
    STAGING_MODELS,
    StagedDisciplineAssignment,
    StagedGrade,
    StagedGroup,
    StagedGroupAssignment,
    StagedProfessor,
    StagedStudent,
    StagingLoad,
    StagingRow,
)

__all__ = [
    "DisciplineMapping",
    "EvaluationMapping",
    "GroupClassMapping",
    "MappingRow",
    "MigrationLock",
    "PhaseRun",
    "ProfessorMapping",
    "STAGING_MODELS",
    "StagedDisciplineAssignment",
    "StagedGrade",
    "StagedGroup",
    "StagedGroupAssignment",
    "StagedProfessor",
    "StagedStudent",
    "StagingLoad",
    "StagingRow",
    "StudentMapping",
]
