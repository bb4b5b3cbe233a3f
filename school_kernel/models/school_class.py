"""
Module: school_kernel.models.school_class
Responsibility: ORM persistence for classes (a course cohort in one
    semester of one year) and their teacher and student associations.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (course_id, semester, year) is unique (uq_class_course_semester_year).
    - semester is in 1..12 (ck_class_semester_range).
    - (class_id, teacher_id, discipline_id) is unique for ClassTeacher.
    - (class_id, student_id) is unique for ClassStudent.
"""

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import TrackedBase


class SchoolClass(TrackedBase):
    """A cohort of one course in one semester of one academic year."""

    __tablename__ = "classes"

    __table_args__ = (
        UniqueConstraint(
            "course_id", "semester", "year", name="uq_class_course_semester_year"
        ),
        CheckConstraint("semester BETWEEN 1 AND 12", name="ck_class_semester_range"),
    )

    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="RESTRICT"),
        nullable=False,
    )

    semester: Mapped[int] = mapped_column(nullable=False)

    year: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<SchoolClass {self.id}: course={self.course_id} {self.semester}/{self.year}>"


class ClassTeacher(TrackedBase):
    """Teacher assigned to a class for one discipline."""

    __tablename__ = "class_teachers"

    __table_args__ = (
        UniqueConstraint(
            "class_id", "teacher_id", "discipline_id", name="uq_class_teacher_discipline"
        ),
        Index("idx_class_teacher_class_discipline", "class_id", "discipline_id"),
    )

    class_id: Mapped[int] = mapped_column(
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
    )

    teacher_id: Mapped[int] = mapped_column(
        ForeignKey("teachers.id", ondelete="RESTRICT"),
        nullable=False,
    )

    discipline_id: Mapped[int] = mapped_column(
        ForeignKey("disciplines.id", ondelete="RESTRICT"),
        nullable=False,
    )


class ClassStudent(TrackedBase):
    """Student enrolled in a class."""

    __tablename__ = "class_students"

    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_student"),
    )

    class_id: Mapped[int] = mapped_column(
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
    )

    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="RESTRICT"),
        nullable=False,
    )
