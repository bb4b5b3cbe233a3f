"""
Entity resolver: legacy professor, student and discipline keys -> target ids.

Every legacy key observed in staging gets exactly one mapping row, whatever
the outcome.  Unresolved and ambiguous keys are recorded with a NULL target,
named in the phase result and excluded from every downstream join; they
never abort the phase.

Order of precedence for one key:
    1. an operator override from config (written as ``manual``)
    2. an existing ``manual`` row (left untouched)
    3. identity match (student matricula, discipline code)
    4. name matching: exact, then scored fuzzy, with explicit ambiguity
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_config.schema import ManualOverride, MigrationConfig
from school_kernel.exceptions import ConfigurationError
from school_kernel.logging_config import get_logger
from school_kernel.models.catalog import Discipline, Student, Teacher
from school_migration.domain.matching import EXACT_SCORE, match_candidates
from school_migration.domain.types import (
    Candidate,
    DisciplineKeyKind,
    MappingEntry,
    MatchType,
    PhaseResult,
    UnresolvedEntity,
)
from school_migration.models.mapping import (
    DisciplineMapping,
    MappingRow,
    ProfessorMapping,
    StudentMapping,
)
from school_migration.models.staging import (
    StagedDisciplineAssignment,
    StagedGrade,
    StagedGroupAssignment,
    StagedProfessor,
    StagedStudent,
)
from school_migration.services.mapping_store import MappingStore, UpsertOutcome, entry_from_row

logger = get_logger("migration.resolver")


def _same_code(a: str, b: str) -> bool:
    """Legacy ids compare as text, ignoring leading zeros on numeric ids."""
    a, b = a.strip(), b.strip()
    if a == b:
        return True
    return a.isdecimal() and b.isdecimal() and int(a) == int(b)


class NameResolver:
    """
    Resolves legacy keys of one entity kind and persists the outcome.

    ``resolve(old_key, old_label)`` is the single-key operation; the phase
    drives it over every key observed in staging.
    """

    def __init__(
        self,
        entity_kind: str,
        store: MappingStore,
        candidates: Iterable[Candidate],
        identities: dict[str, int] | None = None,
    ):
        """
        Args:
            entity_kind: professor, student or discipline (for logs and results).
            store: mapping table to upsert into.
            candidates: target (id, name) pairs for name matching.
            identities: legacy key -> target id for identity matching, tried
                before names.
        """
        self.entity_kind = entity_kind
        self._store = store
        self._candidates = tuple(candidates)
        self._identities = identities or {}

    def match(self, old_key: str, old_label: str | None) -> MappingEntry:
        """Compute the automatic resolution without writing anything."""
        target = self._identities.get(old_key)
        if target is not None:
            return MappingEntry(
                old_key=old_key,
                new_id=target,
                match_type=MatchType.EXACT,
                similarity_score=EXACT_SCORE,
                old_label=old_label,
            )
        return match_candidates(old_key, old_label, self._candidates)

    def resolve(
        self,
        old_key: str,
        old_label: str | None,
        result: PhaseResult | None = None,
        **extra: Any,
    ) -> MappingEntry:
        """
        Resolve one legacy key and upsert its mapping row.

        Postconditions:
            - One mapping row exists for old_key.
            - A manual row keeps its target; only extra columns are refreshed.
        Returns:
            The entry now stored for the key.
        """
        entry = self.match(old_key, old_label)
        row, outcome = self._store.upsert(entry, **extra)
        if outcome == UpsertOutcome.MANUAL_KEPT:
            entry = entry_from_row(row)

        if result is not None:
            self._count(entry, result)
        if entry.match_type == MatchType.AMBIGUOUS:
            logger.warning(
                "entity_ambiguous",
                extra={
                    "entity_kind": self.entity_kind,
                    "old_key": old_key,
                    "old_label": old_label,
                    "candidate_ids": entry.candidate_ids,
                    "similarity_score": entry.similarity_score,
                },
            )
        elif not entry.is_resolved:
            logger.warning(
                "entity_unresolved",
                extra={"entity_kind": self.entity_kind, "old_key": old_key, "old_label": old_label},
            )
        else:
            logger.debug(
                "entity_resolved",
                extra={
                    "entity_kind": self.entity_kind,
                    "old_key": old_key,
                    "new_id": entry.new_id,
                    "match_type": entry.match_type.value,
                },
            )
        return entry

    def _count(self, entry: MappingEntry, result: PhaseResult) -> None:
        if entry.is_resolved:
            result.success()
        else:
            result.unresolve(
                UnresolvedEntity(
                    entity_kind=self.entity_kind,
                    old_key=entry.old_key,
                    label=entry.old_label,
                    reason=entry.match_type.value,
                )
            )
        result.bump(f"{self.entity_kind}_{entry.match_type.value}")


class CodeResolver(NameResolver):
    """Resolves legacy discipline ids against ``disciplines.code``; no fuzzy step."""

    def match(self, old_key: str, old_label: str | None) -> MappingEntry:
        matches = sorted({c.id for c in self._candidates if _same_code(c.label, old_key)})
        if len(matches) == 1:
            return MappingEntry(
                old_key=old_key,
                new_id=matches[0],
                match_type=MatchType.EXACT,
                similarity_score=EXACT_SCORE,
                old_label=old_label,
            )
        if matches:
            return MappingEntry(
                old_key=old_key,
                new_id=None,
                match_type=MatchType.AMBIGUOUS,
                old_label=old_label,
                candidate_ids=tuple(matches),
            )
        return MappingEntry(old_key=old_key, new_id=None, match_type=MatchType.NOT_FOUND, old_label=old_label)


class EntityResolver:
    """The resolve phase: professors, students and disciplines."""

    def __init__(self, session: Session, config: MigrationConfig):
        self._session = session
        self._config = config

    def run(self) -> PhaseResult:
        result = PhaseResult(phase="resolve")
        self.resolve_professors(result)
        self.resolve_students(result)
        self.resolve_disciplines(result)
        self._session.flush()
        return result

    # ------------------------------------------------------------------
    # Manual overrides
    # ------------------------------------------------------------------

    def _apply_overrides(
        self,
        store: MappingStore,
        overrides: Iterable[ManualOverride],
        target_model: type,
    ) -> set[str]:
        """Write operator overrides as manual rows. Returns the keys covered."""
        applied = set()
        for override in overrides:
            if override.new_id is not None and self._session.get(target_model, override.new_id) is None:
                raise ConfigurationError(
                    f"{override.entity} override {override.old_key!r} points at missing id {override.new_id}",
                    key="manual_overrides",
                )
            entry = MappingEntry(
                old_key=override.old_key,
                new_id=override.new_id,
                match_type=MatchType.MANUAL,
                old_label=override.old_key,
            )
            store.upsert(entry, manual=True)
            applied.add(override.old_key)
            logger.info(
                "manual_override_applied",
                extra={"entity_kind": override.entity, "old_key": override.old_key, "new_id": override.new_id},
            )
        return applied

    def _count_manual(self, kind: str, row: MappingRow, result: PhaseResult) -> None:
        entry = entry_from_row(row)
        if entry.is_resolved:
            result.success()
        else:
            result.unresolve(UnresolvedEntity(kind, row.old_key, row.old_label, MatchType.MANUAL.value))
        result.bump(f"{kind}_manual")

    # ------------------------------------------------------------------
    # Professors
    # ------------------------------------------------------------------

    def professor_keys(self) -> dict[str, str | None]:
        """Legacy professor id -> name, from the professor and assignment extracts."""
        keys: dict[str, str | None] = {}
        for professor in self._session.scalars(
            select(StagedProfessor).order_by(StagedProfessor.source_row)
        ):
            if professor.legacy_id not in keys or keys[professor.legacy_id] is None:
                keys[professor.legacy_id] = professor.name
        for model in (StagedGroupAssignment, StagedDisciplineAssignment):
            for (professor_id,) in self._session.execute(select(model.professor_id).distinct()):
                keys.setdefault(professor_id, None)
        return dict(sorted(keys.items()))

    def resolve_professors(self, result: PhaseResult) -> None:
        store = MappingStore(self._session, ProfessorMapping)
        manual = self._apply_overrides(store, self._config.overrides_for("professor"), Teacher)

        fallback = self._config.fallback_teacher_name
        candidates = [
            Candidate(t.id, t.name)
            for t in self._session.scalars(select(Teacher).order_by(Teacher.id))
            if t.name != fallback
        ]
        resolver = NameResolver("professor", store, candidates)
        for legacy_id, name in self.professor_keys().items():
            if legacy_id in manual:
                self._count_manual("professor", store.get(legacy_id), result)
                continue
            resolver.resolve(legacy_id, name, result)

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------

    def student_keys(self) -> dict[str, tuple[str | None, str | None]]:
        """Legacy matricula -> (name, legacy group id), from the student and grade extracts."""
        keys: dict[str, tuple[str | None, str | None]] = {}
        for student in self._session.scalars(
            select(StagedStudent).order_by(StagedStudent.source_row)
        ):
            keys.setdefault(student.matricula, (student.name, student.group_id))
        for (matricula,) in self._session.execute(select(StagedGrade.matricula).distinct()):
            keys.setdefault(matricula, (None, None))
        return dict(sorted(keys.items()))

    def resolve_students(self, result: PhaseResult) -> None:
        store = MappingStore(self._session, StudentMapping)
        manual = self._apply_overrides(store, self._config.overrides_for("student"), Student)

        students = self._session.scalars(select(Student).order_by(Student.id)).all()
        identities = {s.matricula.strip(): s.id for s in students if s.matricula}
        candidates = [Candidate(s.id, s.name) for s in students]
        resolver = NameResolver("student", store, candidates, identities)

        for matricula, (name, group_id) in self.student_keys().items():
            if matricula in manual:
                row = store.get(matricula)
                row.old_group_id = group_id
                self._count_manual("student", row, result)
                continue
            resolver.resolve(matricula, name, result, old_group_id=group_id)

    # ------------------------------------------------------------------
    # Disciplines
    # ------------------------------------------------------------------

    def resolve_disciplines(self, result: PhaseResult) -> None:
        disciplines = self._session.scalars(select(Discipline).order_by(Discipline.id)).all()
        overrides = self._config.overrides_for("discipline")

        # By name: labels observed in the grade extract
        name_store = MappingStore(self._session, DisciplineMapping, key_kind=DisciplineKeyKind.NAME.value)
        manual = self._apply_overrides(
            name_store, [o for o in overrides if o.key_kind == "name"], Discipline
        )
        resolver = NameResolver(
            "discipline", name_store, [Candidate(d.id, d.name) for d in disciplines]
        )
        labels = sorted(
            label for (label,) in self._session.execute(select(StagedGrade.discipline).distinct())
        )
        for label in labels:
            if label in manual:
                self._count_manual("discipline", name_store.get(label), result)
                continue
            resolver.resolve(label, label, result)

        # By code: legacy ids observed in the discipline-assignment extract
        code_store = MappingStore(self._session, DisciplineMapping, key_kind=DisciplineKeyKind.CODE.value)
        manual = self._apply_overrides(
            code_store, [o for o in overrides if o.key_kind == "code"], Discipline
        )
        code_resolver = CodeResolver(
            "discipline_code",
            code_store,
            [Candidate(d.id, d.code) for d in disciplines if d.code],
        )
        codes = sorted(
            code
            for (code,) in self._session.execute(
                select(StagedDisciplineAssignment.discipline_code).distinct()
            )
        )
        for code in codes:
            if code in manual:
                self._count_manual("discipline_code", code_store.get(code), result)
                continue
            code_resolver.resolve(code, code, result)
