"""
Evaluation & grade migrator.

The legacy report card stores three scores per student and discipline
(teste, prova, final); the target model needs an Evaluation for a grade to
hang on.  For every (class, discipline) pair reachable from the grade
extract, three historical evaluations are created from the configured
templates, the (class, discipline, kind) slot is recorded in the
evaluation mapping, and each score becomes a Grade.

Reachable means: the staged row's matricula maps to a student that has a
class, and its discipline label maps (by name) to a discipline.  Rows that
fail either join are counted as skipped and their keys named.

Teacher of a historical evaluation: the lowest teacher id linked to the
class for that discipline, otherwise the fallback migration teacher.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from school_config.schema import EvaluationTemplate, MigrationConfig
from school_kernel.exceptions import MissingPrerequisiteError, ParseFailureError, UnresolvedEntityError
from school_kernel.logging_config import get_logger
from school_kernel.models.catalog import Teacher
from school_kernel.models.evaluation import Evaluation, EvaluationType, Grade
from school_kernel.models.school_class import ClassTeacher
from school_migration.domain.grades import parse_grade
from school_migration.domain.types import (
    DisciplineKeyKind,
    EvaluationKind,
    MappingEntry,
    MatchType,
    PhaseResult,
    UnresolvedEntity,
)
from school_migration.models.mapping import DisciplineMapping, EvaluationMapping, StudentMapping
from school_migration.models.staging import StagedGrade
from school_migration.services.mapping_store import MappingStore, entry_from_row, resolved_targets

logger = get_logger("migration.evaluations")

# Staging column holding the legacy score of each evaluation kind
SCORE_COLUMNS: dict[str, str] = {
    EvaluationKind.INTERMEDIATE.value: "intermediate_score",
    EvaluationKind.EXAM.value: "exam_score",
    EvaluationKind.FINAL.value: "final_score",
}


@dataclass(frozen=True)
class GradeTarget:
    """Where one staged grade row lands."""

    student_id: int
    class_id: int
    discipline_id: int

    @property
    def pair(self) -> tuple[int, int]:
        return (self.class_id, self.discipline_id)


class GradeRowResolver:
    """Joins staged grade rows to the student and discipline mappings."""

    def __init__(self, session: Session):
        self.students: dict[str, tuple[int, int | None]] = {}
        for mapping in session.scalars(select(StudentMapping)):
            if entry_from_row(mapping).is_resolved:
                self.students[mapping.old_key] = (mapping.new_id, mapping.class_id)
        self.disciplines = resolved_targets(
            session, DisciplineMapping, key_kind=DisciplineKeyKind.NAME.value
        )

    def target(self, row: StagedGrade) -> GradeTarget:
        """
        Raises:
            UnresolvedEntityError: if the student, its class or the
                discipline has no usable mapping.
        """
        student = self.students.get(row.matricula)
        if student is None:
            raise UnresolvedEntityError("student", row.matricula)
        student_id, class_id = student
        if class_id is None:
            raise UnresolvedEntityError("student", row.matricula, match_type="no_class")
        discipline_id = self.disciplines.get(row.discipline)
        if discipline_id is None:
            raise UnresolvedEntityError("discipline", row.discipline, label=row.discipline)
        return GradeTarget(student_id, class_id, discipline_id)


def reachable_rows(session: Session) -> tuple[list[tuple[StagedGrade, GradeTarget]], list[UnresolvedEntityError]]:
    """Split staged grade rows into mapped (row, target) pairs and join failures."""
    resolver = GradeRowResolver(session)
    mapped: list[tuple[StagedGrade, GradeTarget]] = []
    failures: list[UnresolvedEntityError] = []
    for row in session.scalars(select(StagedGrade).order_by(StagedGrade.source_row)):
        try:
            mapped.append((row, resolver.target(row)))
        except UnresolvedEntityError as exc:
            failures.append(exc)
    return mapped, failures


class EvaluationMigrator:
    """The evaluations phase."""

    def __init__(self, session: Session, config: MigrationConfig):
        self._session = session
        self._config = config
        self._fallback_teacher_id: int | None = None

    @property
    def templates(self) -> list[EvaluationTemplate]:
        order = list(SCORE_COLUMNS)
        return sorted(self._config.evaluation_templates, key=lambda t: order.index(t.kind))

    def run(self) -> PhaseResult:
        result = PhaseResult(phase="evaluations")
        mapped, failures = reachable_rows(self._session)
        for failure in failures:
            result.unresolve(
                UnresolvedEntity(
                    failure.entity_kind, failure.old_key, failure.label, failure.match_type
                )
            )
            result.bump(f"rows_{failure.entity_kind}_unmapped")

        pairs = sorted({target.pair for _, target in mapped})
        slots = self.create_evaluations(pairs, result)
        self.migrate_grades(mapped, slots, result)
        self._session.flush()
        logger.info(
            "evaluations_migrated",
            extra={
                "pairs": len(pairs),
                "evaluations_created": result.details.get("evaluations_created", 0),
                "grades_created": result.details.get("grades_created", 0),
                "grades_updated": result.details.get("grades_updated", 0),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Evaluations
    # ------------------------------------------------------------------

    def _fallback_teacher(self) -> int:
        if self._fallback_teacher_id is None:
            name = self._config.fallback_teacher_name
            teacher_id = self._session.scalar(
                select(func.min(Teacher.id)).where(Teacher.name == name)
            )
            if teacher_id is None:
                raise MissingPrerequisiteError(
                    "fallback teacher", f"no teacher named {name!r}; run the seed phase"
                )
            self._fallback_teacher_id = teacher_id
        return self._fallback_teacher_id

    def _linked_teachers(self) -> dict[tuple[int, int], int]:
        stmt = select(
            ClassTeacher.class_id, ClassTeacher.discipline_id, func.min(ClassTeacher.teacher_id)
        ).group_by(ClassTeacher.class_id, ClassTeacher.discipline_id)
        return {(c, d): t for c, d, t in self._session.execute(stmt)}

    def create_evaluations(
        self,
        pairs: list[tuple[int, int]],
        result: PhaseResult,
    ) -> dict[tuple[int, int, str], int]:
        """
        Create the missing historical evaluations for each pair.

        Returns:
            (class_id, discipline_id, kind) -> evaluation id for every pair.
        """
        templates = self.templates
        names = [t.name for t in templates]
        existing = {
            (e.class_id, e.discipline_id, e.name): e
            for e in self._session.scalars(select(Evaluation).where(Evaluation.name.in_(names)))
        }
        linked = self._linked_teachers()
        store = MappingStore(self._session, EvaluationMapping)
        slots: dict[tuple[int, int, str], int] = {}

        for class_id, discipline_id in pairs:
            for template in templates:
                evaluation = existing.get((class_id, discipline_id, template.name))
                if evaluation is None:
                    teacher_id = linked.get((class_id, discipline_id))
                    if teacher_id is None:
                        teacher_id = self._fallback_teacher()
                        result.bump("evaluations_fallback_teacher")
                    evaluation = Evaluation(
                        class_id=class_id,
                        discipline_id=discipline_id,
                        teacher_id=teacher_id,
                        name=template.name,
                        date=template.date,
                        type=EvaluationType.GRADE.value,
                        kind=template.kind,
                    )
                    self._session.add(evaluation)
                    self._session.flush()
                    existing[(class_id, discipline_id, template.name)] = evaluation
                    result.bump("evaluations_created")

                slot = EvaluationMapping.slot_key(class_id, discipline_id, template.kind)
                store.upsert(
                    MappingEntry(
                        old_key=slot,
                        new_id=evaluation.id,
                        match_type=MatchType.EXACT,
                        old_label=template.name,
                    ),
                    class_id=class_id,
                    discipline_id=discipline_id,
                    kind=template.kind,
                )
                slots[(class_id, discipline_id, template.kind)] = evaluation.id
        return slots

    # ------------------------------------------------------------------
    # Grades
    # ------------------------------------------------------------------

    def migrate_grades(
        self,
        mapped: list[tuple[StagedGrade, GradeTarget]],
        slots: dict[tuple[int, int, str], int],
        result: PhaseResult,
    ) -> None:
        evaluation_ids = set(slots.values())
        grades: dict[tuple[int, int], Grade] = {}
        if evaluation_ids:
            stmt = select(Grade).join(Evaluation, Grade.evaluation_id == Evaluation.id).where(
                Evaluation.name.in_([t.name for t in self.templates])
            )
            grades = {(g.evaluation_id, g.student_id): g for g in self._session.scalars(stmt)}

        for row, target in mapped:
            for kind, column in SCORE_COLUMNS.items():
                evaluation_id = slots.get((target.class_id, target.discipline_id, kind))
                if evaluation_id is None:
                    continue
                try:
                    value = parse_grade(getattr(row, column), field=column)
                except ParseFailureError as exc:
                    result.skip()
                    result.bump("grades_unparsable")
                    logger.warning(
                        "grade_unparsable",
                        extra={
                            "source_row": row.source_row,
                            "matricula": row.matricula,
                            "field": exc.field,
                            "raw_value": str(exc.raw_value),
                            "reason": exc.reason,
                        },
                    )
                    continue
                if value is None:
                    result.bump("grades_empty")
                    continue
                self._upsert_grade(grades, evaluation_id, target.student_id, value, result)
                result.success()

    def _upsert_grade(
        self,
        grades: dict[tuple[int, int], Grade],
        evaluation_id: int,
        student_id: int,
        value: Decimal,
        result: PhaseResult,
    ) -> None:
        key = (evaluation_id, student_id)
        grade = grades.get(key)
        if grade is None:
            grade = Grade(evaluation_id=evaluation_id, student_id=student_id, value=value)
            self._session.add(grade)
            grades[key] = grade
            result.bump("grades_created")
        elif grade.value != value:
            grade.value = value
            result.bump("grades_updated")
