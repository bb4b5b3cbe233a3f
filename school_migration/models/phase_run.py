"""
Phase ledger and run lock.

Contract:
    PhaseRun records every phase execution with its final status and counts.
    Ledger rows are written in their own short transactions, so a phase that
    rolls back still leaves a ROLLED_BACK row behind.

    MigrationLock holds at most one row (lock_name = "migration").  Its
    presence means a run is writing; a second run refuses to start.

Architecture: school_migration/models. Imports from school_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from school_kernel.db.base import Base, TrackedBase


class PhaseRun(TrackedBase):
    """One execution of one phase."""

    __tablename__ = "migration_phase_runs"

    __table_args__ = (
        Index("ix_phase_runs_phase_status", "phase", "status"),
        Index("ix_phase_runs_run_id", "run_id"),
    )

    phase: Mapped[str] = mapped_column(String(30), nullable=False)
    run_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    attempted: Mapped[int] = mapped_column(default=0, nullable=False)
    succeeded: Mapped[int] = mapped_column(default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(default=0, nullable=False)
    unresolved: Mapped[int] = mapped_column(default=0, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<PhaseRun {self.phase} {self.run_id} {self.status}>"


class MigrationLock(Base):
    """Single-writer run lock."""

    __tablename__ = "migration_lock"

    __table_args__ = (UniqueConstraint("lock_name", name="uq_migration_lock_name"),)

    lock_name: Mapped[str] = mapped_column(String(30), nullable=False)
    run_id: Mapped[str] = mapped_column(String(36), nullable=False)
    phase: Mapped[str] = mapped_column(String(30), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
