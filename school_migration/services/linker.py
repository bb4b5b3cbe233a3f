"""
Relationship linker: class-teacher and class-student associations.

Teachers come from the two legacy assignment extracts: a professor is
assigned to groups (profserie) and, separately, to disciplines (profmat).
Every (group, discipline) combination of a professor becomes one
``ClassTeacher`` row once professor, group and discipline code are all
mapped.  Students are enrolled in the class their legacy group became.

Both passes only insert missing rows, so the phase can be rerun.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_kernel.logging_config import get_logger
from school_kernel.models.school_class import ClassStudent, ClassTeacher
from school_migration.domain.types import DisciplineKeyKind, PhaseResult, UnresolvedEntity
from school_migration.models.mapping import (
    DisciplineMapping,
    GroupClassMapping,
    ProfessorMapping,
    StudentMapping,
)
from school_migration.models.staging import StagedDisciplineAssignment, StagedGroupAssignment
from school_migration.services.mapping_store import entry_from_row, resolved_targets

logger = get_logger("migration.linker")


def _assignments(session: Session, model, column) -> dict[str, list[str]]:
    """Legacy professor id -> sorted distinct values of one assignment column."""
    grouped: dict[str, set[str]] = defaultdict(set)
    for professor_id, value in session.execute(select(model.professor_id, column).distinct()):
        grouped[professor_id].add(value)
    return {key: sorted(values) for key, values in grouped.items()}


class RelationshipLinker:
    """The link phase."""

    def __init__(self, session: Session):
        self._session = session

    def run(self) -> PhaseResult:
        result = PhaseResult(phase="link")
        self.link_teachers(result)
        self.link_students(result)
        self._session.flush()
        return result

    def link_teachers(self, result: PhaseResult) -> None:
        professors = resolved_targets(self._session, ProfessorMapping)
        classes = resolved_targets(self._session, GroupClassMapping)
        disciplines = resolved_targets(
            self._session, DisciplineMapping, key_kind=DisciplineKeyKind.CODE.value
        )
        groups_by_professor = _assignments(
            self._session, StagedGroupAssignment, StagedGroupAssignment.group_id
        )
        codes_by_professor = _assignments(
            self._session, StagedDisciplineAssignment, StagedDisciplineAssignment.discipline_code
        )
        existing = set(
            self._session.execute(
                select(ClassTeacher.class_id, ClassTeacher.teacher_id, ClassTeacher.discipline_id)
            ).tuples()
        )

        for professor_id in sorted(set(groups_by_professor) | set(codes_by_professor)):
            teacher_id = professors.get(professor_id)
            if teacher_id is None:
                result.unresolve(UnresolvedEntity("professor", professor_id, reason="unmapped"))
                continue

            groups = groups_by_professor.get(professor_id, [])
            codes = codes_by_professor.get(professor_id, [])
            if not groups or not codes:
                result.bump("professors_without_combinations")
                logger.info(
                    "professor_without_combinations",
                    extra={"old_key": professor_id, "groups": len(groups), "disciplines": len(codes)},
                )
                continue

            for group_id in groups:
                class_id = classes.get(group_id)
                if class_id is None:
                    result.unresolve(UnresolvedEntity("group", group_id, reason="unmapped"))
                    continue
                for code in codes:
                    discipline_id = disciplines.get(code)
                    if discipline_id is None:
                        result.skip()
                        result.bump("combinations_unmapped_discipline")
                        logger.debug(
                            "combination_skipped",
                            extra={"old_key": professor_id, "group_id": group_id, "discipline_code": code},
                        )
                        continue
                    key = (class_id, teacher_id, discipline_id)
                    if key not in existing:
                        self._session.add(
                            ClassTeacher(class_id=class_id, teacher_id=teacher_id, discipline_id=discipline_id)
                        )
                        existing.add(key)
                        result.bump("class_teachers_created")
                    result.success()

        logger.info(
            "class_teachers_linked",
            extra={
                "created": result.details.get("class_teachers_created", 0),
                "unmapped_discipline": result.details.get("combinations_unmapped_discipline", 0),
            },
        )

    def link_students(self, result: PhaseResult) -> None:
        classes = resolved_targets(self._session, GroupClassMapping)
        existing = set(
            self._session.execute(select(ClassStudent.class_id, ClassStudent.student_id)).tuples()
        )
        mappings = self._session.scalars(select(StudentMapping).order_by(StudentMapping.old_key))

        for mapping in mappings:
            class_id = classes.get(mapping.old_group_id) if mapping.old_group_id else None
            if mapping.class_id != class_id:
                mapping.class_id = class_id

            if not entry_from_row(mapping).is_resolved:
                result.unresolve(
                    UnresolvedEntity("student", mapping.old_key, mapping.old_label, mapping.match_type)
                )
                continue
            if class_id is None:
                reason = "no_group" if not mapping.old_group_id else "group_unmapped"
                result.unresolve(UnresolvedEntity("student", mapping.old_key, mapping.old_label, reason))
                continue

            key = (class_id, mapping.new_id)
            if key not in existing:
                self._session.add(ClassStudent(class_id=class_id, student_id=mapping.new_id))
                existing.add(key)
                result.bump("class_students_created")
            result.success()

        logger.info(
            "class_students_linked",
            extra={"created": result.details.get("class_students_created", 0)},
        )
