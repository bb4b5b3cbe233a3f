"""
Structural builder: legacy groups -> classes.

A legacy group label packs course and semester ("Bacharelado em Psicologia
8°").  Each staged group is parsed, its course label stripped of known
degree prefixes and matched against the course catalog, and a
``SchoolClass(course, semester, class_year)`` is found or created.  The
outcome is upserted into the group -> class mapping.

Groups whose label has no parsable semester are looked up in the
operator-reviewed override table (config ``group_overrides`` plus the
optional ``group_overrides_file``, read when the phase starts); anything
else is recorded as unresolved with a NULL class.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_config.loader import load_group_overrides
from school_config.schema import GroupOverride, MigrationConfig
from school_kernel.exceptions import ConfigurationError
from school_kernel.logging_config import get_logger
from school_kernel.models.catalog import Course
from school_kernel.models.school_class import SchoolClass
from school_migration.domain.labels import parse_label, strip_course_prefix
from school_migration.domain.matching import match_candidates
from school_migration.domain.types import (
    Candidate,
    MappingEntry,
    MatchType,
    Parsed,
    PhaseResult,
    UnresolvedEntity,
)
from school_migration.models.mapping import GroupClassMapping
from school_migration.models.staging import StagedGroup
from school_migration.services.mapping_store import MappingStore, UpsertOutcome

logger = get_logger("migration.structure")


class ClassCatalog:
    """Find-or-create access to classes, keyed by (course_id, semester, year)."""

    def __init__(self, session: Session):
        self._session = session
        self._classes = {
            (c.course_id, c.semester, c.year): c
            for c in session.scalars(select(SchoolClass))
        }

    def get_or_create(self, course_id: int, semester: int, year: int) -> tuple[SchoolClass, bool]:
        key = (course_id, semester, year)
        school_class = self._classes.get(key)
        if school_class is not None:
            return school_class, False
        school_class = SchoolClass(course_id=course_id, semester=semester, year=year)
        self._session.add(school_class)
        self._session.flush()
        self._classes[key] = school_class
        logger.info(
            "class_created",
            extra={"class_id": school_class.id, "course_id": course_id, "semester": semester, "year": year},
        )
        return school_class, True


class StructuralBuilder:
    """The structure phase."""

    def __init__(self, session: Session, config: MigrationConfig):
        self._session = session
        self._config = config

    def group_overrides(self) -> dict[str, GroupOverride]:
        """Config overrides, then the override file; the file wins on conflict."""
        overrides = {o.old_group: o for o in self._config.group_overrides}
        path = self._config.group_overrides_file
        if path is not None:
            for override in load_group_overrides(path):
                overrides[override.old_group] = override
        course_ids = set(self._session.scalars(select(Course.id)))
        for override in overrides.values():
            if override.course_id not in course_ids:
                raise ConfigurationError(
                    f"group override {override.old_group!r} points at missing course {override.course_id}",
                    key="group_overrides",
                )
        return overrides

    def staged_groups(self) -> dict[str, str | None]:
        """Legacy group id -> label, first occurrence wins, sorted by id."""
        groups: dict[str, str | None] = {}
        for group in self._session.scalars(select(StagedGroup).order_by(StagedGroup.source_row)):
            groups.setdefault(group.legacy_id, group.label)
        return dict(sorted(groups.items()))

    def run(self) -> PhaseResult:
        result = PhaseResult(phase="structure")
        overrides = self.group_overrides()
        logger.info("group_overrides_loaded", extra={"count": len(overrides)})

        courses = [
            Candidate(c.id, c.name)
            for c in self._session.scalars(select(Course).order_by(Course.id))
        ]
        classes = ClassCatalog(self._session)
        store = MappingStore(self._session, GroupClassMapping)
        year = self._config.class_year

        for legacy_id, label in self.staged_groups().items():
            override = overrides.get(legacy_id)
            if override is not None:
                school_class, created = classes.get_or_create(override.course_id, override.semester, year)
                entry = MappingEntry(
                    old_key=legacy_id,
                    new_id=school_class.id,
                    match_type=MatchType.MANUAL,
                    old_label=label,
                )
                store.upsert(
                    entry,
                    manual=True,
                    course_id=override.course_id,
                    course_label=label,
                    semester=override.semester,
                    year=year,
                )
                result.success()
                result.bump("groups_overridden")
                if created:
                    result.bump("classes_created")
                continue

            existing = store.get(legacy_id)
            if existing is not None and existing.match_type == MatchType.MANUAL.value:
                # Earlier operator decision; the row stays as it is
                if existing.new_id is not None:
                    result.success()
                else:
                    result.unresolve(UnresolvedEntity("group", legacy_id, label, MatchType.MANUAL.value))
                result.bump("groups_manual")
                continue

            parsed = parse_label(label)
            if not isinstance(parsed, Parsed):
                store.upsert(
                    MappingEntry(legacy_id, None, MatchType.NOT_FOUND, old_label=label),
                    course_id=None,
                    course_label=parsed.course,
                    semester=None,
                    year=year,
                )
                result.unresolve(UnresolvedEntity("group", legacy_id, label, "unparsable_label"))
                result.bump("groups_unparsable")
                logger.warning("group_label_unparsable", extra={"old_key": legacy_id, "old_label": label})
                continue

            course_label = strip_course_prefix(parsed.course, self._config.course_prefixes)
            course_match = match_candidates(legacy_id, course_label, courses)
            if not course_match.is_resolved:
                store.upsert(
                    MappingEntry(
                        old_key=legacy_id,
                        new_id=None,
                        match_type=course_match.match_type,
                        similarity_score=course_match.similarity_score,
                        old_label=label,
                        candidate_ids=course_match.candidate_ids,
                    ),
                    course_id=None,
                    course_label=course_label,
                    semester=parsed.semester,
                    year=year,
                )
                result.unresolve(
                    UnresolvedEntity("group", legacy_id, label, f"course_{course_match.match_type.value}")
                )
                result.bump("groups_course_unmatched")
                logger.warning(
                    "group_course_unmatched",
                    extra={
                        "old_key": legacy_id,
                        "course_label": course_label,
                        "match_type": course_match.match_type.value,
                        "candidate_ids": course_match.candidate_ids,
                    },
                )
                continue

            school_class, created = classes.get_or_create(course_match.new_id, parsed.semester, year)
            _, outcome = store.upsert(
                MappingEntry(
                    old_key=legacy_id,
                    new_id=school_class.id,
                    match_type=course_match.match_type,
                    similarity_score=course_match.similarity_score,
                    old_label=label,
                ),
                course_id=course_match.new_id,
                course_label=course_label,
                semester=parsed.semester,
                year=year,
            )
            result.success()
            result.bump(f"groups_{course_match.match_type.value}")
            if created:
                result.bump("classes_created")
            if course_match.match_type == MatchType.FUZZY and outcome == UpsertOutcome.INSERTED:
                logger.info(
                    "group_course_fuzzy",
                    extra={
                        "old_key": legacy_id,
                        "course_label": course_label,
                        "course_id": course_match.new_id,
                        "similarity_score": course_match.similarity_score,
                    },
                )

        self._session.flush()
        return result
