"""
Module: school_kernel.models.catalog
Responsibility: ORM persistence for the reference catalogs the migration
    resolves legacy keys against: courses, disciplines, teachers and students.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from the migration package.

Invariants enforced:
    - Course.name is unique (uq_course_name).
    - Discipline.code, when present, is unique (uq_discipline_code).  The
      code carries the legacy discipline id so assignment extracts can be
      matched by identity instead of by name.
    - Student.matricula, when present, is unique (uq_student_matricula).

Failure modes:
    - IntegrityError on a duplicate name/code/matricula.
"""

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import TrackedBase


class Course(TrackedBase):
    """A degree programme ("Administração", "Psicologia")."""

    __tablename__ = "courses"

    __table_args__ = (UniqueConstraint("name", name="uq_course_name"),)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Number of semesters in the programme, if known
    duration_semesters: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Course {self.id}: {self.name}>"


class Discipline(TrackedBase):
    """A subject taught in one or more classes."""

    __tablename__ = "disciplines"

    __table_args__ = (
        UniqueConstraint("code", name="uq_discipline_code"),
        Index("idx_discipline_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Legacy discipline id as text; nullable for disciplines created after
    # the legacy system was retired
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    workload_hours: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Discipline {self.id}: {self.name}>"


class Teacher(TrackedBase):
    """
    A teacher identity.

    The fallback migration teacher is an ordinary row identified by name;
    it owns historical evaluations for which no linked teacher exists.
    """

    __tablename__ = "teachers"

    __table_args__ = (Index("idx_teacher_name", "name"),)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    email: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return f"<Teacher {self.id}: {self.name}>"


class Student(TrackedBase):
    """A student, identified across systems by the legacy matricula."""

    __tablename__ = "students"

    __table_args__ = (
        UniqueConstraint("matricula", name="uq_student_matricula"),
        Index("idx_student_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    matricula: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Student {self.id}: {self.name} ({self.matricula})>"
