"""
PhaseRunner -- one transaction per phase, with a ledger and a run lock.

Contract:
    ``run(phase)`` executes one phase inside its own transaction:

        NOT_RUN -> RUNNING -> COMMITTED      whole phase completed
                           -> ROLLED_BACK    any fatal error; earlier phases untouched

    The ledger row (PhaseRun) and the run lock (MigrationLock) are written
    in their own short transactions, so a rolled-back phase still leaves a
    ROLLED_BACK row and never leaves the lock behind.

Invariants enforced:
    - A phase refuses to start until every prerequisite phase has
      COMMITTED at least once (PhaseOrderError).
    - One writer at a time: a held lock raises MigrationLockedError.
    - Infrastructure errors are translated at the phase boundary:
      IntegrityError / DataError -> IntegrityViolationError,
      OperationalError / OSError -> ConnectivityFailureError,
      anything else -> UnexpectedFailureError.

Architecture: school_migration/services.  Composes the phase services; the
    scripts under scripts/ are thin argparse wrappers around this class.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import DataError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from school_config.schema import MigrationConfig
from school_kernel.db.engine import get_session_factory, session_scope
from school_kernel.domain.clock import Clock, SystemClock
from school_kernel.exceptions import (
    ConfigurationError,
    ConnectivityFailureError,
    IntegrityViolationError,
    MigrationError,
    MigrationLockedError,
    PhaseOrderError,
    UnexpectedFailureError,
)
from school_kernel.logging_config import LogContext, get_logger
from school_migration.domain.types import PhaseResult, PhaseStatus
from school_migration.models.phase_run import MigrationLock, PhaseRun
from school_migration.services.evaluations import EvaluationMigrator
from school_migration.services.linker import RelationshipLinker
from school_migration.services.loader import ExtractLoader
from school_migration.services.recovery import ProvenanceRecovery
from school_migration.services.resolver import EntityResolver
from school_migration.services.seeder import ReferenceSeeder
from school_migration.services.structure import StructuralBuilder

logger = get_logger("migration.runner")

LOCK_NAME = "migration"


@dataclass(frozen=True)
class PhaseDefinition:
    name: str
    requires: tuple[str, ...]
    description: str


# Documented run order
PHASES: tuple[PhaseDefinition, ...] = (
    PhaseDefinition("load", (), "stage legacy extracts"),
    PhaseDefinition("seed", ("load",), "seed courses, disciplines and the fallback teacher"),
    PhaseDefinition("resolve", ("load", "seed"), "resolve professors, students and disciplines"),
    PhaseDefinition("structure", ("load", "seed"), "build classes from legacy groups"),
    PhaseDefinition("link", ("resolve", "structure"), "link teachers and students to classes"),
    PhaseDefinition("evaluations", ("link",), "create historical evaluations and migrate grades"),
    PhaseDefinition("recover", ("evaluations",), "backfill semester provenance on evaluations"),
)

PHASE_NAMES: tuple[str, ...] = tuple(p.name for p in PHASES)


def get_phase(name: str) -> PhaseDefinition:
    for phase in PHASES:
        if phase.name == name:
            return phase
    raise ConfigurationError(
        f"unknown phase {name!r}; expected one of {', '.join(PHASE_NAMES)}", key="phase"
    )


class PhaseRunner:
    """Runs migration phases one at a time against one database."""

    def __init__(
        self,
        config: MigrationConfig,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        run_id: str | None = None,
    ):
        self._config = config
        self._factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self.run_id = run_id or str(uuid4())

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def committed_phases(self) -> set[str]:
        with session_scope(self._factory) as session:
            stmt = select(PhaseRun.phase).where(PhaseRun.status == PhaseStatus.COMMITTED.value).distinct()
            return set(session.scalars(stmt))

    def status(self) -> dict[str, PhaseStatus]:
        """Latest status of every phase, NOT_RUN for phases with no ledger row."""
        statuses = {name: PhaseStatus.NOT_RUN for name in PHASE_NAMES}
        with session_scope(self._factory) as session:
            for run in session.scalars(select(PhaseRun).order_by(PhaseRun.id)):
                if run.phase in statuses:
                    statuses[run.phase] = PhaseStatus(run.status)
        return statuses

    def _start_ledger(self, phase: str) -> int:
        with session_scope(self._factory) as session:
            run = PhaseRun(
                phase=phase,
                run_id=self.run_id,
                status=PhaseStatus.RUNNING.value,
                started_at=self._clock.now(),
            )
            session.add(run)
            session.flush()
            return run.id

    def _finish_ledger(
        self,
        ledger_id: int,
        status: PhaseStatus,
        result: PhaseResult | None = None,
        error: MigrationError | None = None,
    ) -> None:
        with session_scope(self._factory) as session:
            run = session.get(PhaseRun, ledger_id)
            run.status = status.value
            run.finished_at = self._clock.now()
            if result is not None:
                run.attempted = result.attempted
                run.succeeded = result.succeeded
                run.skipped = result.skipped
                run.unresolved = len(result.unresolved)
            if error is not None:
                run.error_code = error.code
                run.error_message = str(error)

    # -------------------------------------------------------------------------
    # Lock
    # -------------------------------------------------------------------------

    def acquire_lock(self, phase: str) -> None:
        """
        Raises:
            MigrationLockedError: if another run holds the lock.
        """
        with session_scope(self._factory) as session:
            holder = session.scalars(
                select(MigrationLock).where(MigrationLock.lock_name == LOCK_NAME)
            ).first()
            if holder is not None:
                raise MigrationLockedError(holder.run_id, holder.phase)
            session.add(
                MigrationLock(
                    lock_name=LOCK_NAME,
                    run_id=self.run_id,
                    phase=phase,
                    acquired_at=self._clock.now(),
                )
            )
            try:
                session.flush()
            except IntegrityError as exc:
                raise MigrationLockedError("unknown", phase) from exc
        logger.debug("lock_acquired", extra={"lock_name": LOCK_NAME})

    def release_lock(self) -> None:
        with session_scope(self._factory) as session:
            session.execute(
                delete(MigrationLock).where(
                    MigrationLock.lock_name == LOCK_NAME,
                    MigrationLock.run_id == self.run_id,
                )
            )
        logger.debug("lock_released", extra={"lock_name": LOCK_NAME})

    def force_unlock(self) -> tuple[str, str] | None:
        """Remove the lock whoever holds it. Returns the holder's (run_id, phase), if any."""
        with session_scope(self._factory) as session:
            holder = session.scalars(
                select(MigrationLock).where(MigrationLock.lock_name == LOCK_NAME)
            ).first()
            if holder is None:
                return None
            released = (holder.run_id, holder.phase)
            session.delete(holder)
        logger.warning(
            "lock_force_released",
            extra={"holder_run_id": released[0], "holder_phase": released[1]},
        )
        return released

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self, phase: str, extract: str | None = None) -> PhaseResult:
        """
        Execute one phase in its own transaction.

        Raises:
            ConfigurationError: unknown phase or invalid configuration.
            PhaseOrderError: a prerequisite phase never committed.
            MigrationLockedError: another run holds the lock.
            MigrationError: any fatal error; the phase was rolled back.
        """
        definition = get_phase(phase)
        if extract is not None and phase != "load":
            raise ConfigurationError("--extract only applies to the load phase", key="extract")

        with LogContext.bind(run_id=self.run_id, phase=phase):
            missing = tuple(p for p in definition.requires if p not in self.committed_phases())
            if missing:
                logger.error("phase_refused", extra={"missing_phases": missing})
                raise PhaseOrderError(phase, missing)

            self.acquire_lock(phase)
            try:
                return self._run_locked(phase, extract)
            finally:
                self.release_lock()

    def _run_locked(self, phase: str, extract: str | None) -> PhaseResult:
        ledger_id = self._start_ledger(phase)
        logger.info("phase_started", extra={"ledger_id": ledger_id})
        try:
            with session_scope(self._factory) as session:
                result = self._execute(session, phase, extract)
        except MigrationError as exc:
            self._fail(ledger_id, exc)
            raise
        except (IntegrityError, DataError) as exc:
            error = IntegrityViolationError(phase, str(exc.orig))
            self._fail(ledger_id, error)
            raise error from exc
        except (OperationalError, OSError) as exc:
            detail = str(exc.orig) if isinstance(exc, OperationalError) else str(exc)
            error = ConnectivityFailureError(phase, detail)
            self._fail(ledger_id, error)
            raise error from exc
        except Exception as exc:
            # The ledger row must never stay RUNNING
            error = UnexpectedFailureError(phase, f"{type(exc).__name__}: {exc}")
            self._fail(ledger_id, error)
            raise error from exc

        self._finish_ledger(ledger_id, PhaseStatus.COMMITTED, result=result)
        logger.info(
            "phase_committed",
            extra={
                "attempted": result.attempted,
                "succeeded": result.succeeded,
                "skipped": result.skipped,
                "unresolved": len(result.unresolved),
            },
        )
        return result

    def _fail(self, ledger_id: int, error: MigrationError) -> None:
        self._finish_ledger(ledger_id, PhaseStatus.ROLLED_BACK, error=error)
        logger.error("phase_rolled_back", extra={"error_code": error.code, "error": str(error)})

    def _execute(self, session: Session, phase: str, extract: str | None) -> PhaseResult:
        config = self._config
        if phase == "load":
            loader = ExtractLoader(session, config, self.run_id, clock=self._clock)
            return loader.load_extract(extract) if extract else loader.load_all()
        if phase == "seed":
            return ReferenceSeeder(session, config).seed()
        if phase == "resolve":
            return EntityResolver(session, config).run()
        if phase == "structure":
            return StructuralBuilder(session, config).run()
        if phase == "link":
            return RelationshipLinker(session).run()
        if phase == "evaluations":
            return EvaluationMigrator(session, config).run()
        return ProvenanceRecovery(session, config).run()
