"""
Staging ORM models: one typed table per legacy extract.

Contract:
    Staging rows are disposable.  Each extract's table is cleared by
    ``StagingStore.reset()`` at the start of its load and refilled; every
    row carries the run_id of the load that produced it and its 1-based
    source_row.  Nothing outside the migration references staging rows.
    ``StagingLoad`` keeps one row per extract describing its latest load.

Architecture: school_migration/models. Imports from school_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import Base


class StagingRow(Base):
    """Columns shared by every staging table."""

    __abstract__ = True

    run_id: Mapped[str] = mapped_column(String(36), nullable=False)
    source_row: Mapped[int] = mapped_column(nullable=False)


class StagedProfessor(StagingRow):
    __tablename__ = "staging_professor"

    __table_args__ = (Index("ix_staging_professor_legacy_id", "legacy_id"),)

    legacy_id: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    login: Mapped[str | None] = mapped_column(String(100), nullable=True)


class StagedStudent(StagingRow):
    __tablename__ = "staging_student"

    __table_args__ = (Index("ix_staging_student_matricula", "matricula"),)

    matricula: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    group_id: Mapped[str | None] = mapped_column(String(50), nullable=True)


class StagedGroup(StagingRow):
    __tablename__ = "staging_group"

    __table_args__ = (Index("ix_staging_group_legacy_id", "legacy_id"),)

    legacy_id: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[int | None] = mapped_column(nullable=True)


class StagedGroupAssignment(StagingRow):
    __tablename__ = "staging_group_assignment"

    professor_id: Mapped[str] = mapped_column(String(50), nullable=False)
    group_id: Mapped[str] = mapped_column(String(50), nullable=False)


class StagedDisciplineAssignment(StagingRow):
    __tablename__ = "staging_discipline_assignment"

    professor_id: Mapped[str] = mapped_column(String(50), nullable=False)
    discipline_code: Mapped[str] = mapped_column(String(50), nullable=False)


class StagedGrade(StagingRow):
    """One legacy report-card line: a student's scores in one discipline."""

    __tablename__ = "staging_grade"

    __table_args__ = (
        Index("ix_staging_grade_matricula", "matricula"),
        Index("ix_staging_grade_discipline", "discipline"),
    )

    matricula: Mapped[str] = mapped_column(String(50), nullable=False)
    discipline: Mapped[str] = mapped_column(String(200), nullable=False)
    period: Mapped[str | None] = mapped_column(String(50), nullable=True)
    intermediate_score: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    exam_score: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    final_score: Mapped[str | None] = mapped_column(String(50), nullable=True)  # free text
    result: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    semester_label: Mapped[str | None] = mapped_column(String(200), nullable=True)
    schedule: Mapped[str | None] = mapped_column(String(100), nullable=True)


class StagingLoad(Base):
    """Latest load of one extract: which run, which file, how many rows."""

    __tablename__ = "staging_loads"

    __table_args__ = (UniqueConstraint("extract", name="uq_staging_load_extract"),)

    extract: Mapped[str] = mapped_column(String(50), nullable=False)
    run_id: Mapped[str] = mapped_column(String(36), nullable=False)
    source_path: Mapped[str] = mapped_column(String(500), nullable=False)
    rows_read: Mapped[int] = mapped_column(default=0, nullable=False)
    rows_staged: Mapped[int] = mapped_column(default=0, nullable=False)
    rows_skipped: Mapped[int] = mapped_column(default=0, nullable=False)
    loaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# Extract name -> staging model
STAGING_MODELS: dict[str, type[StagingRow]] = {
    "professor": StagedProfessor,
    "student": StagedStudent,
    "group": StagedGroup,
    "group_assignment": StagedGroupAssignment,
    "discipline_assignment": StagedDisciplineAssignment,
    "grade": StagedGrade,
}
