"""
Module: school_migration.models.mapping
Responsibility: ORM persistence for the legacy -> target mapping tables.
    These tables are the permanent audit trail of how every legacy record was
    resolved, and the only interface between phases: each phase reads the
    mappings earlier phases wrote.
Architecture position: Migration > Models.  Imports from school_kernel.db only.

Invariants enforced:
    - Unique by old_key (discipline: by (key_kind, old_key); evaluation
      slot: by (class_id, discipline_id, kind)).
    - Rows are upserted, never deleted.
    - match_type = manual rows are never overwritten by automatic
      resolution (enforced by the resolver service, not the ORM).
    - new_id is NULL whenever match_type is ambiguous or not_found.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import TrackedBase


class MappingRow(TrackedBase):
    """Columns shared by every mapping table."""

    __abstract__ = True

    old_key: Mapped[str] = mapped_column(String(255), nullable=False)
    old_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    new_id: Mapped[int | None] = mapped_column(nullable=True)
    match_type: Mapped[str] = mapped_column(String(20), nullable=False)
    similarity_score: Mapped[Decimal | None] = mapped_column(Numeric(5, 4), nullable=True)
    # Comma-separated tied target ids when match_type is ambiguous
    candidate_ids: Mapped[str | None] = mapped_column(String(255), nullable=True)


class ProfessorMapping(MappingRow):
    """Legacy professor id -> teacher."""

    __tablename__ = "migration_professor_mapping"

    __table_args__ = (UniqueConstraint("old_key", name="uq_professor_mapping_old_key"),)


class StudentMapping(MappingRow):
    """Legacy matricula -> student, plus the class the student's legacy group became."""

    __tablename__ = "migration_student_mapping"

    __table_args__ = (
        UniqueConstraint("old_key", name="uq_student_mapping_old_key"),
        Index("ix_student_mapping_class", "class_id"),
    )

    old_group_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    class_id: Mapped[int | None] = mapped_column(nullable=True)


class DisciplineMapping(MappingRow):
    """Legacy discipline label (key_kind=name) or legacy id (key_kind=code) -> discipline."""

    __tablename__ = "migration_discipline_mapping"

    __table_args__ = (
        UniqueConstraint("key_kind", "old_key", name="uq_discipline_mapping_kind_key"),
    )

    key_kind: Mapped[str] = mapped_column(String(10), nullable=False)


class GroupClassMapping(MappingRow):
    """Legacy group -> class, with the parsed course label, semester and year."""

    __tablename__ = "migration_group_class_mapping"

    __table_args__ = (UniqueConstraint("old_key", name="uq_group_class_mapping_old_key"),)

    course_id: Mapped[int | None] = mapped_column(nullable=True)
    course_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    semester: Mapped[int | None] = mapped_column(nullable=True)
    year: Mapped[int | None] = mapped_column(nullable=True)


class EvaluationMapping(MappingRow):
    """(class, discipline, kind) slot -> historical evaluation."""

    __tablename__ = "migration_evaluation_mapping"

    __table_args__ = (
        UniqueConstraint(
            "class_id", "discipline_id", "kind", name="uq_evaluation_mapping_slot"
        ),
    )

    class_id: Mapped[int] = mapped_column(nullable=False)
    discipline_id: Mapped[int] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    @staticmethod
    def slot_key(class_id: int, discipline_id: int, kind: str) -> str:
        return f"{class_id}:{discipline_id}:{kind}"
