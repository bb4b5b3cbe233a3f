"""
Validator / diagnostics: read-only views over a migrated database.

``build_report()`` aggregates staged-vs-migrated counts, per-teacher
historical evaluation counts, mapping coverage and the disciplines whose
mapping resolved to nothing.  ``trace_student(matricula)`` walks one legacy
student through every stage of the pipeline and stops at the first stage
where the chain breaks; it is the tool for "missing grade" tickets.

Nothing here writes to the database.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from school_config.schema import MigrationConfig
from school_kernel.models.catalog import Teacher
from school_kernel.models.evaluation import Evaluation, Grade
from school_kernel.utils.serialization import to_json
from school_migration.domain.types import RESOLVED_MATCH_TYPES, DisciplineKeyKind, MatchType
from school_migration.models.mapping import (
    DisciplineMapping,
    EvaluationMapping,
    GroupClassMapping,
    MappingRow,
    ProfessorMapping,
    StudentMapping,
)
from school_migration.models.staging import StagedGrade
from school_migration.services.evaluations import SCORE_COLUMNS
from school_migration.services.mapping_store import entry_from_row

# Trace stages, in pipeline order
STAGING = "staging"
STUDENT_MAPPING = "student_mapping"
CLASS_MAPPING = "class_mapping"
DISCIPLINE_MAPPING = "discipline_mapping"
EVALUATION_MAPPING = "evaluation_mapping"
GRADES = "grades"

TRACE_STAGES = (STAGING, STUDENT_MAPPING, CLASS_MAPPING, DISCIPLINE_MAPPING, EVALUATION_MAPPING, GRADES)


# =============================================================================
# Report
# =============================================================================


@dataclass(frozen=True)
class MappingCoverage:
    """How many legacy keys a mapping table holds, broken down by match type."""

    total: int
    resolved: int
    by_match_type: dict[str, int]


@dataclass(frozen=True)
class TeacherEvaluations:
    teacher_id: int
    teacher_name: str
    evaluations: int
    is_fallback: bool


@dataclass(frozen=True)
class MigrationReport:
    """Aggregate post-migration report."""

    staged_grade_rows: int
    migrated_grades: int
    null_grades: int
    students_with_grades: int
    historical_evaluations: int
    evaluations_with_fallback_teacher: int
    evaluations_with_linked_teacher: int
    evaluations_by_teacher: list[TeacherEvaluations]
    evaluations_with_provenance: int
    students_with_class: int
    coverage: dict[str, MappingCoverage]
    unmapped_disciplines: list[str]
    unmapped_discipline_codes: list[str]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return to_json(self.to_dict())


# =============================================================================
# Trace
# =============================================================================


@dataclass(frozen=True)
class TraceStage:
    stage: str
    ok: bool
    detail: str


@dataclass
class DisciplineTrace:
    """The per-discipline tail of a trace: discipline -> evaluation -> grades."""

    label: str
    stages: list[TraceStage] = field(default_factory=list)

    @property
    def broken_stage(self) -> str | None:
        for stage in self.stages:
            if not stage.ok:
                return stage.stage
        return None


@dataclass
class TraceResult:
    """One legacy student walked through the pipeline."""

    matricula: str
    stages: list[TraceStage] = field(default_factory=list)
    disciplines: list[DisciplineTrace] = field(default_factory=list)

    @property
    def broken_stage(self) -> str | None:
        """First stage that failed: student-level first, then disciplines in label order."""
        for stage in self.stages:
            if not stage.ok:
                return stage.stage
        for discipline in self.disciplines:
            if discipline.broken_stage is not None:
                return discipline.broken_stage
        return None

    @property
    def is_complete(self) -> bool:
        return self.broken_stage is None

    def to_json(self) -> str:
        data = asdict(self)
        data["broken_stage"] = self.broken_stage
        return to_json(data)


# =============================================================================
# Diagnostics
# =============================================================================


class MigrationDiagnostics:
    """Read-only report and trace over the migration tables."""

    def __init__(self, session: Session, config: MigrationConfig):
        self._session = session
        self._config = config

    @property
    def _template_names(self) -> list[str]:
        return [t.name for t in self._config.evaluation_templates]

    def _count(self, stmt) -> int:
        return self._session.scalar(stmt) or 0

    def _coverage(self, model: type[MappingRow], **scope: Any) -> MappingCoverage:
        stmt = select(model.match_type, func.count()).group_by(model.match_type)
        resolved_stmt = select(func.count()).select_from(model).where(
            model.new_id.is_not(None),
            model.match_type.in_([m.value for m in RESOLVED_MATCH_TYPES]),
        )
        for column, value in scope.items():
            stmt = stmt.where(getattr(model, column) == value)
            resolved_stmt = resolved_stmt.where(getattr(model, column) == value)
        by_type = {match_type: count for match_type, count in self._session.execute(stmt)}
        return MappingCoverage(
            total=sum(by_type.values()),
            resolved=self._count(resolved_stmt),
            by_match_type=dict(sorted(by_type.items())),
        )

    def _unmapped(self, key_kind: DisciplineKeyKind) -> list[str]:
        stmt = (
            select(DisciplineMapping.old_key)
            .where(DisciplineMapping.key_kind == key_kind.value, DisciplineMapping.new_id.is_(None))
            .order_by(DisciplineMapping.old_key)
        )
        return list(self._session.scalars(stmt))

    def build_report(self) -> MigrationReport:
        names = self._template_names
        historical = select(Evaluation.id).where(Evaluation.name.in_(names))
        historical_grades = select(Grade).where(Grade.evaluation_id.in_(historical)).subquery()
        fallback_name = self._config.fallback_teacher_name

        by_teacher_stmt = (
            select(Teacher.id, Teacher.name, func.count(Evaluation.id))
            .join(Evaluation, Evaluation.teacher_id == Teacher.id)
            .where(Evaluation.name.in_(names))
            .group_by(Teacher.id, Teacher.name)
            .order_by(func.count(Evaluation.id).desc(), Teacher.id)
        )
        by_teacher = [
            TeacherEvaluations(teacher_id, name, count, name == fallback_name)
            for teacher_id, name, count in self._session.execute(by_teacher_stmt)
        ]
        with_fallback = sum(t.evaluations for t in by_teacher if t.is_fallback)
        total_evaluations = self._count(select(func.count()).select_from(historical.subquery()))

        return MigrationReport(
            staged_grade_rows=self._count(select(func.count()).select_from(StagedGrade)),
            migrated_grades=self._count(select(func.count()).select_from(historical_grades)),
            null_grades=self._count(
                select(func.count()).select_from(historical_grades).where(historical_grades.c.value.is_(None))
            ),
            students_with_grades=self._count(
                select(func.count(func.distinct(historical_grades.c.student_id)))
            ),
            historical_evaluations=total_evaluations,
            evaluations_with_fallback_teacher=with_fallback,
            evaluations_with_linked_teacher=total_evaluations - with_fallback,
            evaluations_by_teacher=by_teacher,
            evaluations_with_provenance=self._count(
                select(func.count())
                .select_from(Evaluation)
                .where(Evaluation.name.in_(names), Evaluation.original_semester_raw.is_not(None))
            ),
            students_with_class=self._count(
                select(func.count()).select_from(StudentMapping).where(StudentMapping.class_id.is_not(None))
            ),
            coverage={
                "professors": self._coverage(ProfessorMapping),
                "students": self._coverage(StudentMapping),
                "groups": self._coverage(GroupClassMapping),
                "disciplines_by_name": self._coverage(DisciplineMapping, key_kind=DisciplineKeyKind.NAME.value),
                "disciplines_by_code": self._coverage(DisciplineMapping, key_kind=DisciplineKeyKind.CODE.value),
                "evaluation_slots": self._coverage(EvaluationMapping),
            },
            unmapped_disciplines=self._unmapped(DisciplineKeyKind.NAME),
            unmapped_discipline_codes=self._unmapped(DisciplineKeyKind.CODE),
        )

    # ------------------------------------------------------------------
    # Trace
    # ------------------------------------------------------------------

    def trace_student(self, matricula: str) -> TraceResult:
        """
        Walk one legacy student through staging, mappings and grades.

        Stops at the first broken student-level stage; when the student
        reaches a class, every staged discipline is traced on its own.
        """
        matricula = matricula.strip()
        trace = TraceResult(matricula=matricula)
        rows = self._session.scalars(
            select(StagedGrade).where(StagedGrade.matricula == matricula).order_by(StagedGrade.source_row)
        ).all()
        if not rows:
            trace.stages.append(TraceStage(STAGING, False, "no staged grade rows"))
            return trace
        trace.stages.append(TraceStage(STAGING, True, f"{len(rows)} staged grade rows"))

        mapping = self._session.scalars(
            select(StudentMapping).where(StudentMapping.old_key == matricula)
        ).first()
        if mapping is None:
            trace.stages.append(TraceStage(STUDENT_MAPPING, False, "no mapping row; run the resolve phase"))
            return trace
        if not entry_from_row(mapping).is_resolved:
            trace.stages.append(
                TraceStage(STUDENT_MAPPING, False, f"match_type={mapping.match_type}, no student")
            )
            return trace
        trace.stages.append(
            TraceStage(STUDENT_MAPPING, True, f"student {mapping.new_id} ({mapping.match_type})")
        )

        class_stage = self._class_stage(mapping)
        trace.stages.append(class_stage)
        if not class_stage.ok:
            return trace

        for label in sorted({row.discipline for row in rows}):
            scored = [
                row for row in rows
                if row.discipline == label and any(
                    getattr(row, column) not in (None, "") for column in SCORE_COLUMNS.values()
                )
            ]
            trace.disciplines.append(self._trace_discipline(label, mapping, bool(scored)))
        return trace

    def _class_stage(self, mapping: StudentMapping) -> TraceStage:
        if mapping.class_id is not None:
            group = self._session.scalars(
                select(GroupClassMapping).where(GroupClassMapping.new_id == mapping.class_id)
            ).first()
            if group is None:
                return TraceStage(CLASS_MAPPING, False, f"class {mapping.class_id} has no group mapping")
            return TraceStage(CLASS_MAPPING, True, f"class {mapping.class_id} from group {group.old_key}")
        if not mapping.old_group_id:
            return TraceStage(CLASS_MAPPING, False, "student has no legacy group")
        group = self._session.scalars(
            select(GroupClassMapping).where(GroupClassMapping.old_key == mapping.old_group_id)
        ).first()
        if group is None:
            return TraceStage(CLASS_MAPPING, False, f"group {mapping.old_group_id} has no mapping row")
        if group.new_id is None:
            return TraceStage(
                CLASS_MAPPING, False, f"group {mapping.old_group_id} unresolved ({group.match_type})"
            )
        return TraceStage(CLASS_MAPPING, False, "class not copied onto the student; run the link phase")

    def _trace_discipline(self, label: str, student: StudentMapping, has_scores: bool) -> DisciplineTrace:
        trace = DisciplineTrace(label=label)
        mapping = self._session.scalars(
            select(DisciplineMapping).where(
                DisciplineMapping.key_kind == DisciplineKeyKind.NAME.value,
                DisciplineMapping.old_key == label,
            )
        ).first()
        if mapping is None:
            trace.stages.append(TraceStage(DISCIPLINE_MAPPING, False, "no mapping row"))
            return trace
        if not entry_from_row(mapping).is_resolved:
            detail = f"match_type={mapping.match_type}"
            if mapping.match_type == MatchType.AMBIGUOUS.value:
                detail = f"{detail}, candidates {mapping.candidate_ids}"
            trace.stages.append(TraceStage(DISCIPLINE_MAPPING, False, detail))
            return trace
        trace.stages.append(TraceStage(DISCIPLINE_MAPPING, True, f"discipline {mapping.new_id}"))

        slots = self._session.scalars(
            select(EvaluationMapping)
            .where(
                EvaluationMapping.class_id == student.class_id,
                EvaluationMapping.discipline_id == mapping.new_id,
            )
            .order_by(EvaluationMapping.kind)
        ).all()
        if not slots:
            trace.stages.append(TraceStage(EVALUATION_MAPPING, False, "no evaluation slots; run the evaluations phase"))
            return trace
        trace.stages.append(
            TraceStage(EVALUATION_MAPPING, True, ", ".join(f"{s.kind}={s.new_id}" for s in slots))
        )

        grades = self._count(
            select(func.count())
            .select_from(Grade)
            .where(
                Grade.student_id == student.new_id,
                Grade.evaluation_id.in_([s.new_id for s in slots]),
            )
        )
        if grades:
            trace.stages.append(TraceStage(GRADES, True, f"{grades} grades"))
        elif not has_scores:
            trace.stages.append(TraceStage(GRADES, True, "no scores in staging"))
        else:
            trace.stages.append(TraceStage(GRADES, False, "staged scores but no grade rows"))
        return trace
