"""
Tests for entity resolution: legacy professor, student and discipline keys.

Verifies:
- Every observed legacy key gets exactly one mapping row
- Identity (matricula, code) before names; exact before fuzzy
- Ambiguous and not-found keys are recorded with a NULL target and named
- Manual rows and configured overrides are never replaced automatically
- Rerunning the phase changes nothing
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from school_config.schema import ManualOverride
from school_kernel.exceptions import ConfigurationError
from school_migration.domain.types import MappingEntry, MatchType, PhaseResult
from school_migration.models.mapping import DisciplineMapping, ProfessorMapping, StudentMapping
from school_migration.models.staging import (
    StagedDisciplineAssignment,
    StagedGrade,
    StagedGroupAssignment,
    StagedProfessor,
    StagedStudent,
)
from school_migration.services.mapping_store import MappingStore, UpsertOutcome, resolved_targets
from school_migration.services.resolver import EntityResolver

FALLBACK_TEACHER = "Sistema Migração"


def _rows(session, model, **where):
    stmt = select(model).order_by(model.old_key)
    for column, value in where.items():
        stmt = stmt.where(getattr(model, column) == value)
    return {row.old_key: row for row in session.scalars(stmt)}


class TestMappingStore:

    def test_insert_then_unchanged(self, session):
        store = MappingStore(session, ProfessorMapping)
        entry = MappingEntry("1", 5, MatchType.EXACT, Decimal("1.0000"), "Ana")
        _, first = store.upsert(entry)
        _, second = store.upsert(entry)
        assert (first, second) == (UpsertOutcome.INSERTED, UpsertOutcome.UNCHANGED)

    def test_update(self, session):
        store = MappingStore(session, ProfessorMapping)
        store.upsert(MappingEntry("1", None, MatchType.NOT_FOUND, old_label="Ana"))
        row, outcome = store.upsert(MappingEntry("1", 5, MatchType.EXACT, Decimal("1.0000"), "Ana"))
        assert outcome == UpsertOutcome.UPDATED
        assert (row.new_id, row.match_type) == (5, "exact")

    def test_manual_row_kept(self, session):
        store = MappingStore(session, StudentMapping)
        store.upsert(MappingEntry("9", 3, MatchType.MANUAL), manual=True)
        row, outcome = store.upsert(MappingEntry("9", 4, MatchType.EXACT), old_group_id="10")
        assert outcome == UpsertOutcome.MANUAL_KEPT
        assert (row.new_id, row.match_type, row.old_group_id) == (3, "manual", "10")

    def test_candidate_ids_stored(self, session):
        store = MappingStore(session, ProfessorMapping)
        row, _ = store.upsert(MappingEntry("1", None, MatchType.AMBIGUOUS, candidate_ids=(4, 7)))
        assert row.candidate_ids == "4,7"

    def test_scope_separates_key_kinds(self, session):
        names = MappingStore(session, DisciplineMapping, key_kind="name")
        codes = MappingStore(session, DisciplineMapping, key_kind="code")
        names.upsert(MappingEntry("101", None, MatchType.NOT_FOUND))
        codes.upsert(MappingEntry("101", 2, MatchType.EXACT))
        session.flush()
        assert session.scalar(select(func.count()).select_from(DisciplineMapping)) == 2

    def test_resolved_targets_excludes_unresolved(self, session):
        store = MappingStore(session, ProfessorMapping)
        store.upsert(MappingEntry("1", 5, MatchType.EXACT))
        store.upsert(MappingEntry("2", 6, MatchType.FUZZY, Decimal("0.5000")))
        store.upsert(MappingEntry("3", None, MatchType.AMBIGUOUS, candidate_ids=(6, 7)))
        store.upsert(MappingEntry("4", None, MatchType.NOT_FOUND))
        session.flush()
        assert resolved_targets(session, ProfessorMapping) == {"1": 5, "2": 6}


class TestResolveProfessors:

    def test_exact_fuzzy_ambiguous_not_found(self, session, make_config, stage, create_teacher, fallback_teacher):
        ana = create_teacher("Ana Souza")
        create_teacher("Carlos Mendes")
        create_teacher("Carlos Mendes Filho")
        create_teacher("Paulo Reis")
        create_teacher("Paulo Reis")
        stage(StagedProfessor, legacy_id="1", name="ANA SOUZA")
        stage(StagedProfessor, legacy_id="2", name="Mendes Filho")
        stage(StagedProfessor, legacy_id="3", name="Paulo Reis")
        stage(StagedProfessor, legacy_id="4", name="Zélia Duarte")

        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_professors(result)
        rows = _rows(session, ProfessorMapping)

        assert (rows["1"].new_id, rows["1"].match_type) == (ana.id, "exact")
        assert rows["2"].match_type == "fuzzy"
        assert rows["2"].similarity_score < Decimal("1")
        assert (rows["3"].new_id, rows["3"].match_type) == (None, "ambiguous")
        assert len(rows["3"].candidate_ids.split(",")) == 2
        assert (rows["4"].new_id, rows["4"].match_type) == (None, "not_found")
        assert {e.old_key for e in result.unresolved} == {"3", "4"}
        assert result.details["professor_exact"] == 1

    def test_fallback_teacher_never_a_candidate(self, session, make_config, stage, fallback_teacher):
        stage(StagedProfessor, legacy_id="1", name=FALLBACK_TEACHER)
        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_professors(result)
        assert _rows(session, ProfessorMapping)["1"].match_type == "not_found"

    def test_assignment_only_professor_recorded(self, session, make_config, stage):
        stage(StagedGroupAssignment, professor_id="77", group_id="10")
        stage(StagedDisciplineAssignment, professor_id="78", discipline_code="101")
        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_professors(result)
        rows = _rows(session, ProfessorMapping)
        assert set(rows) == {"77", "78"}
        assert all(r.match_type == "not_found" and r.old_label is None for r in rows.values())

    def test_configured_override(self, session, make_config, stage, create_teacher):
        chosen = create_teacher("Maria Clara")
        stage(StagedProfessor, legacy_id="5", name="M. Clara")
        config = make_config(manual_overrides=(ManualOverride("professor", "5", chosen.id),))
        result = PhaseResult(phase="resolve")
        EntityResolver(session, config).resolve_professors(result)

        row = _rows(session, ProfessorMapping)["5"]
        assert (row.new_id, row.match_type) == (chosen.id, "manual")
        assert result.details == {"professor_manual": 1}
        assert result.succeeded == 1

    def test_override_to_missing_target(self, session, make_config, stage):
        stage(StagedProfessor, legacy_id="5", name="M. Clara")
        config = make_config(manual_overrides=(ManualOverride("professor", "5", 999),))
        with pytest.raises(ConfigurationError, match="missing id 999"):
            EntityResolver(session, config).resolve_professors(PhaseResult(phase="resolve"))

    def test_existing_manual_row_survives_rerun(self, session, make_config, stage, create_teacher):
        create_teacher("Ana Souza")
        operator_choice = create_teacher("Ana Souza Lima")
        stage(StagedProfessor, legacy_id="1", name="Ana Souza")
        MappingStore(session, ProfessorMapping).upsert(
            MappingEntry("1", operator_choice.id, MatchType.MANUAL, old_label="Ana Souza"), manual=True
        )
        session.flush()

        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_professors(result)
        row = _rows(session, ProfessorMapping)["1"]
        assert (row.new_id, row.match_type) == (operator_choice.id, "manual")
        assert result.details == {"professor_manual": 1}


class TestResolveStudents:

    def test_matricula_identity_before_name(self, session, make_config, stage, create_student):
        carla = create_student("Carla Dias", "20240001")
        create_student("Carla Dias", "20230077")
        stage(StagedStudent, matricula="20240001", name="Carla Dias", group_id="10")

        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_students(result)
        row = _rows(session, StudentMapping)["20240001"]
        assert (row.new_id, row.match_type, row.old_group_id) == (carla.id, "exact", "10")

    def test_name_fallback(self, session, make_config, stage, create_student):
        diego = create_student("Diego Rocha")
        stage(StagedStudent, matricula="20240002", name="diego  ROCHA", group_id="20")
        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_students(result)
        assert _rows(session, StudentMapping)["20240002"].new_id == diego.id

    def test_grade_only_matricula_recorded(self, session, make_config, stage):
        stage(StagedGrade, matricula="20249999", discipline="Estatística")
        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_students(result)
        row = _rows(session, StudentMapping)["20249999"]
        assert (row.new_id, row.match_type, row.old_group_id) == (None, "not_found", None)
        assert result.unresolved[0].entity_kind == "student"

    def test_manual_override_gets_group(self, session, make_config, stage, create_student):
        target = create_student("Elisa Prado")
        stage(StagedStudent, matricula="20240003", name="E. Prado", group_id="99")
        config = make_config(manual_overrides=(ManualOverride("student", "20240003", target.id),))
        EntityResolver(session, config).resolve_students(PhaseResult(phase="resolve"))
        row = _rows(session, StudentMapping)["20240003"]
        assert (row.new_id, row.match_type, row.old_group_id) == (target.id, "manual", "99")


class TestResolveDisciplines:

    def test_by_name_and_by_code(self, session, make_config, stage, create_discipline):
        stats = create_discipline("Estatística", "303")
        ethics = create_discipline("Ética Profissional", "0404")
        stage(StagedGrade, matricula="1", discipline="ESTATISTICA")
        stage(StagedGrade, matricula="1", discipline="Física Quântica")
        stage(StagedDisciplineAssignment, professor_id="1", discipline_code="303")
        stage(StagedDisciplineAssignment, professor_id="1", discipline_code="404")
        stage(StagedDisciplineAssignment, professor_id="1", discipline_code="555")

        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_disciplines(result)
        by_name = _rows(session, DisciplineMapping, key_kind="name")
        by_code = _rows(session, DisciplineMapping, key_kind="code")

        assert by_name["ESTATISTICA"].new_id == stats.id
        assert by_name["Física Quântica"].match_type == "not_found"
        assert by_code["303"].new_id == stats.id
        # Leading zeros on numeric ids are not significant
        assert by_code["404"].new_id == ethics.id
        assert by_code["555"].match_type == "not_found"
        assert result.details["discipline_code_exact"] == 2

    def test_code_never_fuzzy(self, session, make_config, stage, create_discipline):
        create_discipline("Estatística", "3030")
        stage(StagedDisciplineAssignment, professor_id="1", discipline_code="303")
        EntityResolver(session, make_config()).resolve_disciplines(PhaseResult(phase="resolve"))
        assert _rows(session, DisciplineMapping, key_kind="code")["303"].match_type == "not_found"

    def test_ambiguous_code(self, session, make_config, stage, create_discipline):
        create_discipline("Estatística", "303")
        create_discipline("Estatística II", "0303")
        stage(StagedDisciplineAssignment, professor_id="1", discipline_code="303")
        result = PhaseResult(phase="resolve")
        EntityResolver(session, make_config()).resolve_disciplines(result)
        row = _rows(session, DisciplineMapping, key_kind="code")["303"]
        assert (row.new_id, row.match_type) == (None, "ambiguous")
        assert result.unresolved[0].reason == "ambiguous"

    def test_code_override_leaves_name_mapping_alone(self, session, make_config, stage, create_discipline):
        stats = create_discipline("Estatística", None)
        stage(StagedGrade, matricula="1", discipline="Estatística")
        stage(StagedDisciplineAssignment, professor_id="1", discipline_code="303")
        config = make_config(manual_overrides=(ManualOverride("discipline", "303", stats.id, key_kind="code"),))
        EntityResolver(session, config).resolve_disciplines(PhaseResult(phase="resolve"))

        assert _rows(session, DisciplineMapping, key_kind="code")["303"].match_type == "manual"
        assert _rows(session, DisciplineMapping, key_kind="name")["Estatística"].match_type == "exact"


class TestResolvePhase:

    def test_one_row_per_key_and_rerun_is_stable(
        self, session, make_config, stage, create_teacher, create_student, create_discipline, captured_logs
    ):
        create_teacher("Ana Souza")
        create_student("Carla Dias", "20240001")
        create_discipline("Estatística", "303")
        stage(StagedProfessor, legacy_id="1", name="Ana Souza")
        stage(StagedProfessor, legacy_id="1", name="Ana Souza")
        stage(StagedStudent, matricula="20240001", name="Carla Dias", group_id="10")
        stage(StagedGrade, matricula="20240001", discipline="Estatística")
        stage(StagedGrade, matricula="20240001", discipline="Estatística")
        stage(StagedGrade, matricula="20240001", discipline="Anatomia")

        config = make_config()
        first = EntityResolver(session, config).run()
        snapshot = {
            model.__name__: sorted(
                (r.old_key, r.new_id, r.match_type) for r in session.scalars(select(model))
            )
            for model in (ProfessorMapping, StudentMapping, DisciplineMapping)
        }
        second = EntityResolver(session, config).run()
        again = {
            model.__name__: sorted(
                (r.old_key, r.new_id, r.match_type) for r in session.scalars(select(model))
            )
            for model in (ProfessorMapping, StudentMapping, DisciplineMapping)
        }

        assert snapshot == again
        assert len(snapshot["ProfessorMapping"]) == 1
        assert len(snapshot["DisciplineMapping"]) == 2
        assert (first.succeeded, first.skipped) == (second.succeeded, second.skipped) == (3, 1)
        assert [e.old_key for e in first.unresolved] == ["Anatomia"]
        unresolved_logs = [r for r in captured_logs() if r["message"] == "entity_unresolved"]
        assert unresolved_logs[0]["level"] == "WARNING"
        assert unresolved_logs[0]["old_key"] == "Anatomia"
