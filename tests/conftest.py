"""
Pytest fixtures for the migration test suite.

Provides:
- In-memory SQLite sessions with every target, staging and mapping table
- A file-backed SQLite session factory for phase runner tests, where the
  ledger, the lock and the phase itself use separate transactions
- Factories for target catalog rows, staged legacy rows and CSV extracts
- A small legacy school export (``legacy_school``) covering every extract

PostgreSQL is only used in production; nothing here needs a server.
"""

import json
import logging
from io import StringIO
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from school_config.schema import STAGED_EXTRACTS, ExtractSource, MigrationConfig
from school_kernel.db.engine import build_engine, create_tables, reset_engine
from school_kernel.domain.clock import DeterministicClock
from school_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from school_kernel.models.catalog import Course, Discipline, Student, Teacher
from school_migration.adapters.extracts import get_definition

TEST_RUN_ID = "00000000-0000-0000-0000-000000000001"

FALLBACK_TEACHER = "Sistema Migração"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture school_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, session):
            ...
            logs = captured_logs()
            assert any(r["message"] == "entity_unresolved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("school_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory database with every table, one per test."""
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """
    Session on the in-memory database.

    Services only flush; whatever a test leaves uncommitted is rolled back.
    """
    session = Session(bind=db_engine, expire_on_commit=False)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def session_factory(tmp_path):
    """Session factory on a file database, for code that opens its own transactions."""
    engine = build_engine(f"sqlite:///{tmp_path / 'migration.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture(autouse=True)
def _reset_module_engine():
    """Scripts initialize the module-level engine; never leak it across tests."""
    yield
    reset_engine()


@pytest.fixture
def deterministic_clock():
    """Provides a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def make_config(tmp_path):
    """
    Build a MigrationConfig whose extracts live under tmp_path as <name>.csv.

    Usage::

        config = make_config(seed_teachers=True)
        config = make_config(extracts=("grade",))
    """

    def _make(extracts=STAGED_EXTRACTS, **kwargs) -> MigrationConfig:
        values = {
            "database_url": "sqlite://",
            "source_dir": tmp_path,
            "extracts": tuple(ExtractSource(name, tmp_path / f"{name}.csv") for name in extracts),
            "batch_size": 2,
            "course_prefixes": ("Bacharelado em", "Licenciatura em"),
            "fallback_teacher_name": FALLBACK_TEACHER,
        }
        values.update(kwargs)
        return MigrationConfig(**values)

    return _make


@pytest.fixture
def write_extract(tmp_path):
    """
    Write a legacy extract as a delimited file with the extract's header.

    Rows are sequences in column order; returns the file path.
    """

    def _write(name: str, rows, encoding: str = "utf-8", delimiter: str = ";", header=None) -> Path:
        columns = header if header is not None else get_definition(name).columns
        lines = [delimiter.join(columns)]
        lines.extend(delimiter.join("" if v is None else str(v) for v in row) for row in rows)
        path = tmp_path / f"{name}.csv"
        path.write_text("\n".join(lines) + "\n", encoding=encoding)
        return path

    return _write


# =============================================================================
# Target catalog factories
# =============================================================================


@pytest.fixture
def create_course(session: Session):
    def _create(name: str, duration_semesters: int | None = None) -> Course:
        course = Course(name=name, duration_semesters=duration_semesters)
        session.add(course)
        session.flush()
        return course

    return _create


@pytest.fixture
def create_discipline(session: Session):
    def _create(name: str, code: str | None = None) -> Discipline:
        discipline = Discipline(name=name, code=code)
        session.add(discipline)
        session.flush()
        return discipline

    return _create


@pytest.fixture
def create_teacher(session: Session):
    def _create(name: str) -> Teacher:
        teacher = Teacher(name=name)
        session.add(teacher)
        session.flush()
        return teacher

    return _create


@pytest.fixture
def create_student(session: Session):
    def _create(name: str, matricula: str | None = None) -> Student:
        student = Student(name=name, matricula=matricula)
        session.add(student)
        session.flush()
        return student

    return _create


@pytest.fixture
def fallback_teacher(create_teacher) -> Teacher:
    return create_teacher(FALLBACK_TEACHER)


# =============================================================================
# Staging factories
# =============================================================================


@pytest.fixture
def stage(session: Session):
    """
    Insert staged rows directly, bypassing the CSV loader.

    Usage::

        stage(StagedGrade, matricula="1", discipline="Estatística", exam_score=Decimal("7"))
    """
    counters: dict[type, int] = {}

    def _stage(model, **values):
        counters[model] = counters.get(model, 0) + 1
        row = model(run_id=TEST_RUN_ID, source_row=counters[model], **values)
        session.add(row)
        session.flush()
        return row

    return _stage


# =============================================================================
# A complete legacy export
# =============================================================================


@pytest.fixture
def legacy_school(write_extract, make_config):
    """
    A small legacy export covering every extract, and its config.

    Groups: 10 "8° Administração", 20 "Bacharelado em Psicologia 2°",
    99 "Pós-Graduação" (no semester, no override).

    Grade rows:
        20240001  Matemática Financeira          7,5 / 8 / 9,0
        20240002  Psicologia do Desenvolvimento  6 / 5,5 / (empty)
        20240002  Estatística                    12 / 4 / abc   (no linked teacher)
        20240003  Estatística                    student in group 99, no class
        20249999  Matemática Financeira          unknown student

    Target students exist for 20240001..20240003 (see ``legacy_students``).
    """
    write_extract("course", [("Administração", 8), ("Psicologia", 10)])
    write_extract(
        "discipline",
        [
            ("Matemática Financeira", "101", 60),
            ("Psicologia do Desenvolvimento", "202", 80),
            ("Estatística", "303", 60),
        ],
    )
    write_extract("professor", [(1, "Ana Souza", "ana"), (2, "Bruno Lima", "bruno")])
    write_extract(
        "student",
        [
            ("20240001", "Carla Dias", 10),
            ("20240002", "Diego Rocha", 20),
            ("20240003", "Elisa Prado", 99),
        ],
    )
    write_extract(
        "group",
        [
            (10, "8° Administração", 1),
            (20, "Bacharelado em Psicologia 2°", 1),
            (99, "Pós-Graduação", 2),
        ],
    )
    write_extract("group_assignment", [(1, 10), (2, 20)])
    write_extract("discipline_assignment", [(1, "101"), (2, "202")])
    write_extract(
        "grade",
        [
            ("20240001", "Matemática Financeira", "2023/2", "7,5", "8", "9,0", "8,2", "Aprovado", "8° Administração", "seg 19h"),
            ("20240002", "Psicologia do Desenvolvimento", "2023/2", "6", "5,5", "", "5,8", "Aprovado", "Bacharelado em Psicologia 2°", "ter 19h"),
            ("20240002", "Estatística", "2023/2", "12", "4", "abc", "", "Reprovado", "Bacharelado em Psicologia 2°", "qua 19h"),
            ("20240003", "Estatística", "2023/2", "5", "5", "5", "5", "Aprovado", "Pós-Graduação", ""),
            ("20249999", "Matemática Financeira", "2023/2", "3", "3", "3", "3", "Reprovado", "8° Administração", ""),
        ],
    )
    return make_config(
        extracts=STAGED_EXTRACTS + ("course", "discipline"),
        seed_teachers=True,
    )


LEGACY_STUDENTS = (
    ("Carla Dias", "20240001"),
    ("Diego Rocha", "20240002"),
    ("Elisa Prado", "20240003"),
)


@pytest.fixture
def legacy_students(create_student) -> dict[str, Student]:
    """Target students of ``legacy_school``, keyed by matricula, in the in-memory session."""
    return {matricula: create_student(name, matricula) for name, matricula in LEGACY_STUDENTS}


@pytest.fixture
def run_pipeline(session: Session, deterministic_clock):
    """
    Run phase services in order on the in-memory session, without the runner.

    Returns a callable taking the config and an optional last phase; the
    callable returns phase name -> PhaseResult.
    """
    from school_migration.services import (
        EntityResolver,
        EvaluationMigrator,
        ExtractLoader,
        ProvenanceRecovery,
        ReferenceSeeder,
        RelationshipLinker,
        StructuralBuilder,
    )

    steps = (
        ("load", lambda config: ExtractLoader(session, config, TEST_RUN_ID, deterministic_clock).load_all()),
        ("seed", lambda config: ReferenceSeeder(session, config).seed()),
        ("resolve", lambda config: EntityResolver(session, config).run()),
        ("structure", lambda config: StructuralBuilder(session, config).run()),
        ("link", lambda config: RelationshipLinker(session).run()),
        ("evaluations", lambda config: EvaluationMigrator(session, config).run()),
        ("recover", lambda config: ProvenanceRecovery(session, config).run()),
    )

    def _run(config: MigrationConfig, until: str = "recover") -> dict:
        results = {}
        for name, step in steps:
            results[name] = step(config)
            if name == until:
                break
        return results

    return _run


@pytest.fixture
def migrated_school(legacy_school, legacy_students, run_pipeline) -> dict:
    """``legacy_school`` taken through every phase; phase name -> PhaseResult."""
    return run_pipeline(legacy_school)
