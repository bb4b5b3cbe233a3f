"""Target schema ORM models."""

from school_kernel.models.catalog import Course, Discipline, Student, Teacher
from school_kernel.models.evaluation import Evaluation, EvaluationType, Grade
from school_kernel.models.school_class import ClassStudent, ClassTeacher, SchoolClass

__all__ = [
    "Course",
    "Discipline",
    "Teacher",
    "Student",
    "SchoolClass",
    "ClassTeacher",
    "ClassStudent",
    "Evaluation",
    "EvaluationType",
    "Grade",
]
