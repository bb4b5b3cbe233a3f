"""
Reference data seeder: target catalogs the resolver matches against.

Courses and disciplines come from optional catalog extracts and are
found-or-created by name.  A discipline that already exists under the same
name but with a different code has its code corrected, because the
relationship linker resolves assignment extracts by that code.  Teachers
are optionally created from staged legacy professors, and the fallback
"migration" teacher always exists after this phase.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_config.schema import MigrationConfig
from school_kernel.exceptions import ConfigurationError
from school_kernel.logging_config import LogContext, get_logger
from school_kernel.models.catalog import Course, Discipline, Teacher
from school_migration.adapters.csv_adapter import CsvExtractReader, HeaderMismatchError
from school_migration.adapters.extracts import coerce_row, get_definition
from school_migration.domain.types import PhaseResult
from school_migration.models.staging import StagedProfessor

logger = get_logger("migration.seeder")


def ensure_fallback_teacher(session: Session, name: str) -> tuple[Teacher, bool]:
    """Find or create the fallback migration teacher. Returns (teacher, created)."""
    teacher = session.scalars(
        select(Teacher).where(Teacher.name == name).order_by(Teacher.id)
    ).first()
    if teacher is not None:
        return teacher, False
    teacher = Teacher(name=name)
    session.add(teacher)
    session.flush()
    logger.info("fallback_teacher_created", extra={"teacher_id": teacher.id, "teacher_name": name})
    return teacher, True


class ReferenceSeeder:
    """Seeds courses, disciplines and teachers before resolution."""

    def __init__(self, session: Session, config: MigrationConfig):
        self._session = session
        self._config = config

    def seed(self) -> PhaseResult:
        result = PhaseResult(phase="seed")
        self._seed_courses(result)
        self._seed_disciplines(result)
        if self._config.seed_teachers:
            self._seed_teachers(result)
        _, created = ensure_fallback_teacher(self._session, self._config.fallback_teacher_name)
        result.success()
        if created:
            result.bump("teachers_created")
        return result

    def _catalog_rows(self, extract: str):
        source = self._config.extract(extract)
        if source is None:
            return
        if not source.path.is_file():
            logger.warning("catalog_missing", extra={"extract": extract, "path": str(source.path)})
            return
        definition = get_definition(extract)
        reader = CsvExtractReader(
            source.encoding, source.delimiter, source.has_header, source.quoting
        )
        try:
            rows = list(reader.read(source.path, definition.columns))
        except (HeaderMismatchError, UnicodeDecodeError) as exc:
            raise ConfigurationError(str(exc), key=f"extracts.{extract}") from exc
        for raw in rows:
            if raw.is_malformed:
                logger.warning("row_skipped", extra={"source_row": raw.source_row, "reason": raw.problem})
                yield raw.source_row, None
                continue
            coerced = coerce_row(definition, raw.values)
            yield raw.source_row, coerced.values if coerced.usable else None

    def _seed_courses(self, result: PhaseResult) -> None:
        existing = {c.name: c for c in self._session.scalars(select(Course))}
        with LogContext.bind(extract="course"):
            for source_row, values in self._catalog_rows("course"):
                if values is None:
                    result.skip()
                    continue
                name = values["name"]
                if name not in existing:
                    course = Course(name=name, duration_semesters=values.get("duration"))
                    self._session.add(course)
                    existing[name] = course
                    result.bump("courses_created")
                    logger.info("course_created", extra={"course_name": name, "source_row": source_row})
                result.success()
        self._session.flush()

    def _seed_disciplines(self, result: PhaseResult) -> None:
        by_name = {d.name: d for d in self._session.scalars(select(Discipline))}
        by_code = {d.code: d for d in by_name.values() if d.code}
        with LogContext.bind(extract="discipline"):
            for source_row, values in self._catalog_rows("discipline"):
                if values is None:
                    result.skip()
                    continue
                name, code = values["name"], values.get("code")
                current = by_name.get(name)
                if current is None and code and code in by_code:
                    # Code already taken by a differently named discipline
                    result.skip()
                    logger.warning(
                        "discipline_code_conflict",
                        extra={"discipline_name": name, "code": code, "source_row": source_row},
                    )
                    continue
                if current is None:
                    current = Discipline(
                        name=name,
                        code=code,
                        workload_hours=values.get("workload_hours"),
                    )
                    self._session.add(current)
                    by_name[name] = current
                    result.bump("disciplines_created")
                elif code and current.code != code:
                    holder = by_code.get(code)
                    if holder is not None and holder is not current:
                        result.skip()
                        logger.warning(
                            "discipline_code_conflict",
                            extra={"discipline_name": name, "code": code, "source_row": source_row},
                        )
                        continue
                    logger.info(
                        "discipline_code_updated",
                        extra={"discipline_name": name, "old_code": current.code, "new_code": code},
                    )
                    if current.code:
                        by_code.pop(current.code, None)
                    current.code = code
                    result.bump("discipline_codes_updated")
                if code and current.code == code:
                    by_code[code] = current
                result.success()
                self._session.flush()

    def _seed_teachers(self, result: PhaseResult) -> None:
        """Create a teacher for every staged professor whose name has none yet."""
        known = {t.name for t in self._session.scalars(select(Teacher))}
        staged = self._session.scalars(
            select(StagedProfessor).order_by(StagedProfessor.source_row)
        ).all()
        for professor in staged:
            if not professor.name:
                result.skip()
                continue
            if professor.name not in known:
                self._session.add(Teacher(name=professor.name))
                known.add(professor.name)
                result.bump("teachers_created")
            result.success()
        self._session.flush()
