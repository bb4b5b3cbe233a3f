"""
Module: school_kernel.models.evaluation
Responsibility: ORM persistence for evaluations and the grades students
    obtained in them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (class_id, discipline_id, name) is unique for Evaluation.  Historical
      evaluations synthesized by the migration rely on this to stay
      re-run safe.
    - (evaluation_id, student_id) is unique for Grade.
    - Grade.value is NUMERIC(4, 2) in [0.00, 10.00] or NULL
      (ck_grade_value_range).
    - original_semester, when set, is in 1..12.

Provenance:
    original_semester, original_course_name and original_semester_raw record
    which legacy semester label an historical evaluation was derived from.
    They are NULL for evaluations created in the live system.
"""

import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import TrackedBase


class EvaluationType(str, Enum):
    """How an evaluation is scored."""

    GRADE = "grade"  # numeric 0-10
    CONCEPT = "concept"  # satisfactory / unsatisfactory


class Evaluation(TrackedBase):
    """An assessment of one discipline in one class."""

    __tablename__ = "evaluations"

    __table_args__ = (
        UniqueConstraint(
            "class_id", "discipline_id", "name", name="uq_evaluation_class_discipline_name"
        ),
        CheckConstraint(
            "original_semester IS NULL OR original_semester BETWEEN 1 AND 12",
            name="ck_evaluation_original_semester",
        ),
        Index("idx_evaluation_teacher", "teacher_id"),
        Index("idx_evaluation_original_semester", "original_semester"),
    )

    class_id: Mapped[int] = mapped_column(
        ForeignKey("classes.id", ondelete="RESTRICT"),
        nullable=False,
    )

    discipline_id: Mapped[int] = mapped_column(
        ForeignKey("disciplines.id", ondelete="RESTRICT"),
        nullable=False,
    )

    teacher_id: Mapped[int] = mapped_column(
        ForeignKey("teachers.id", ondelete="RESTRICT"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EvaluationType.GRADE.value,
    )

    # intermediate / exam / final for historical evaluations, NULL otherwise
    kind: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Provenance from the legacy semester label
    original_semester: Mapped[int | None] = mapped_column(nullable=True)

    original_course_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    original_semester_raw: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Evaluation {self.id}: {self.name} "
            f"class={self.class_id} discipline={self.discipline_id}>"
        )


class Grade(TrackedBase):
    """A student's grade in one evaluation."""

    __tablename__ = "grades"

    __table_args__ = (
        UniqueConstraint("evaluation_id", "student_id", name="uq_grade_evaluation_student"),
        CheckConstraint(
            "value IS NULL OR (value >= 0 AND value <= 10)",
            name="ck_grade_value_range",
        ),
        Index("idx_grade_student", "student_id"),
    )

    evaluation_id: Mapped[int] = mapped_column(
        ForeignKey("evaluations.id", ondelete="CASCADE"),
        nullable=False,
    )

    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="RESTRICT"),
        nullable=False,
    )

    value: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)

    def __repr__(self) -> str:
        return f"<Grade evaluation={self.evaluation_id} student={self.student_id} {self.value}>"
