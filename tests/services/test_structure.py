"""
Tests for the structure phase: legacy groups -> classes.

Verifies:
- Parsed labels become one class per (course, semester, year)
- Degree prefixes are stripped before course matching
- Unparsable labels and unmatched courses are recorded, never guessed
- Group overrides from config and from the override file (file wins)
- Manual group rows are left as they are
"""

import pytest
import yaml
from sqlalchemy import func, select

from school_config.schema import GroupOverride
from school_kernel.exceptions import ConfigurationError
from school_kernel.models.school_class import SchoolClass
from school_migration.models.mapping import GroupClassMapping
from school_migration.models.staging import StagedGroup
from school_migration.services.structure import StructuralBuilder


def _mappings(session) -> dict[str, GroupClassMapping]:
    return {row.old_key: row for row in session.scalars(select(GroupClassMapping))}


def _class_count(session) -> int:
    return session.scalar(select(func.count()).select_from(SchoolClass))


class TestParsedGroups:

    def test_number_prefix_and_suffix(self, session, make_config, stage, create_course):
        admin = create_course("Administração", 8)
        psych = create_course("Psicologia", 10)
        stage(StagedGroup, legacy_id="10", label="8° Administração")
        stage(StagedGroup, legacy_id="20", label="Bacharelado em Psicologia 2°")

        result = StructuralBuilder(session, make_config()).run()
        rows = _mappings(session)

        assert (rows["10"].course_id, rows["10"].semester, rows["10"].year) == (admin.id, 8, 2024)
        assert (rows["20"].course_id, rows["20"].semester) == (psych.id, 2)
        assert rows["20"].course_label == "Psicologia"
        assert rows["20"].match_type == "exact"
        assert result.details == {"groups_exact": 2, "classes_created": 2}
        assert _class_count(session) == 2

        school_class = session.get(SchoolClass, rows["10"].new_id)
        assert (school_class.course_id, school_class.semester, school_class.year) == (admin.id, 8, 2024)

    def test_groups_share_a_class(self, session, make_config, stage, create_course):
        create_course("Direito")
        stage(StagedGroup, legacy_id="1", label="3° Direito")
        stage(StagedGroup, legacy_id="2", label="Direito III°")

        result = StructuralBuilder(session, make_config()).run()
        rows = _mappings(session)
        assert rows["1"].new_id == rows["2"].new_id
        assert result.details["classes_created"] == 1

    def test_existing_class_reused(self, session, make_config, stage, create_course):
        course = create_course("Direito")
        existing = SchoolClass(course_id=course.id, semester=3, year=2024)
        session.add(existing)
        session.flush()
        stage(StagedGroup, legacy_id="1", label="3° Direito")

        result = StructuralBuilder(session, make_config()).run()
        assert _mappings(session)["1"].new_id == existing.id
        assert "classes_created" not in result.details

    def test_class_year_from_config(self, session, make_config, stage, create_course):
        create_course("Direito")
        stage(StagedGroup, legacy_id="1", label="3° Direito")
        StructuralBuilder(session, make_config(class_year=2019)).run()
        assert session.scalars(select(SchoolClass.year)).one() == 2019

    def test_fuzzy_course(self, session, make_config, stage, create_course):
        course = create_course("Administração de Empresas")
        stage(StagedGroup, legacy_id="1", label="2° Administração")

        result = StructuralBuilder(session, make_config()).run()
        row = _mappings(session)["1"]
        assert (row.course_id, row.match_type) == (course.id, "fuzzy")
        assert result.details["groups_fuzzy"] == 1

    def test_rerun_changes_nothing(self, session, make_config, stage, create_course):
        create_course("Administração")
        stage(StagedGroup, legacy_id="10", label="8° Administração")
        stage(StagedGroup, legacy_id="99", label="Pós-Graduação")
        config = make_config()

        first = StructuralBuilder(session, config).run()
        before = {k: (r.new_id, r.match_type) for k, r in _mappings(session).items()}
        second = StructuralBuilder(session, config).run()

        assert {k: (r.new_id, r.match_type) for k, r in _mappings(session).items()} == before
        assert _class_count(session) == 1
        assert "classes_created" not in second.details
        assert (first.succeeded, first.skipped) == (second.succeeded, second.skipped) == (1, 1)


class TestUnresolvedGroups:

    def test_unparsable_label(self, session, make_config, stage, create_course, captured_logs):
        create_course("Administração")
        stage(StagedGroup, legacy_id="99", label="Pós-Graduação")

        result = StructuralBuilder(session, make_config()).run()
        row = _mappings(session)["99"]
        assert (row.new_id, row.semester, row.course_label) == (None, None, "Pós-Graduação")
        assert row.match_type == "not_found"
        assert result.unresolved[0].reason == "unparsable_label"
        assert result.details == {"groups_unparsable": 1}
        assert _class_count(session) == 0
        assert any(r["message"] == "group_label_unparsable" for r in captured_logs())

    def test_semester_out_of_range_is_unparsable(self, session, make_config, stage, create_course):
        create_course("Administração")
        stage(StagedGroup, legacy_id="1", label="13° Administração")
        result = StructuralBuilder(session, make_config()).run()
        assert result.details == {"groups_unparsable": 1}

    def test_course_not_found(self, session, make_config, stage, create_course):
        create_course("Administração")
        stage(StagedGroup, legacy_id="5", label="3° Medicina")

        result = StructuralBuilder(session, make_config()).run()
        row = _mappings(session)["5"]
        assert (row.new_id, row.course_id, row.semester) == (None, None, 3)
        assert row.course_label == "Medicina"
        assert result.unresolved[0].reason == "course_not_found"
        assert result.details == {"groups_course_unmatched": 1}

    def test_course_ambiguous(self, session, make_config, stage, create_course):
        penal = create_course("Direito Penal")
        civil = create_course("Direito Civil")
        stage(StagedGroup, legacy_id="7", label="4° Direito")

        result = StructuralBuilder(session, make_config()).run()
        row = _mappings(session)["7"]
        assert (row.new_id, row.match_type) == (None, "ambiguous")
        assert sorted(int(c) for c in row.candidate_ids.split(",")) == sorted([penal.id, civil.id])
        assert result.unresolved[0].reason == "course_ambiguous"
        assert _class_count(session) == 0


class TestGroupOverrides:

    def test_config_override(self, session, make_config, stage, create_course):
        course = create_course("Especialização em Gestão")
        stage(StagedGroup, legacy_id="99", label="Pós-Graduação")
        config = make_config(group_overrides=(GroupOverride("99", course.id, semester=2),))

        result = StructuralBuilder(session, config).run()
        row = _mappings(session)["99"]
        assert (row.course_id, row.semester, row.match_type) == (course.id, 2, "manual")
        assert row.new_id is not None
        assert result.details == {"groups_overridden": 1, "classes_created": 1}

    def test_override_file_wins(self, session, make_config, stage, create_course, tmp_path):
        from_config = create_course("Especialização em Gestão")
        from_file = create_course("MBA Executivo")
        stage(StagedGroup, legacy_id="99", label="Pós-Graduação")
        path = tmp_path / "overrides.yaml"
        path.write_text(
            yaml.safe_dump({"overrides": [{"old_group": "99", "course_id": from_file.id}]}),
            encoding="utf-8",
        )
        config = make_config(
            group_overrides=(GroupOverride("99", from_config.id),),
            group_overrides_file=path,
        )

        StructuralBuilder(session, config).run()
        row = _mappings(session)["99"]
        assert (row.course_id, row.semester) == (from_file.id, 1)

    def test_override_to_missing_course(self, session, make_config, stage):
        stage(StagedGroup, legacy_id="99", label="Pós-Graduação")
        config = make_config(group_overrides=(GroupOverride("99", 404),))
        with pytest.raises(ConfigurationError) as exc_info:
            StructuralBuilder(session, config).run()
        assert exc_info.value.key == "group_overrides"

    def test_manual_row_kept(self, session, make_config, stage, create_course):
        admin = create_course("Administração")
        other = create_course("Economia")
        chosen = SchoolClass(course_id=other.id, semester=1, year=2024)
        session.add(chosen)
        session.flush()
        session.add(
            GroupClassMapping(
                old_key="10",
                old_label="8° Administração",
                new_id=chosen.id,
                match_type="manual",
                course_id=other.id,
                semester=1,
                year=2024,
            )
        )
        session.flush()
        stage(StagedGroup, legacy_id="10", label="8° Administração")

        result = StructuralBuilder(session, make_config()).run()
        row = _mappings(session)["10"]
        assert (row.new_id, row.course_id) == (chosen.id, other.id)
        assert result.details == {"groups_manual": 1}
        assert result.succeeded == 1
        assert session.scalars(select(SchoolClass).where(SchoolClass.course_id == admin.id)).all() == []
