"""
Module: school_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the integer surrogate key convention, a type annotation map for consistent
    column types, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here, including the
    migration package's staging and mapping models.

Invariants enforced:
    - Integer surrogate keys: the target schema and the legacy extracts both
      use integer identifiers, and mapping tables store them as plain ints.
    - Grade precision: type_annotation_map maps Python Decimal to
      Numeric(10, 2); grade columns narrow this to Numeric(4, 2).
    - Audit timestamps: TrackedBase provides created_at and updated_at,
      set by the database server.

Failure modes:
    - IntegrityError on a duplicate natural key (every model declares its
      natural key as a UniqueConstraint).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Integer, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the system inherits from Base (or TrackedBase).
        Base provides an autoincrementing integer primary key and a
        type_annotation_map that keeps column types consistent.

    Guarantees:
        - id is an Integer primary key (maps to SQLite ROWID, PostgreSQL SERIAL).
        - Decimal maps to Numeric(10, 2).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(10, 2),
        datetime: DateTime(timezone=True),
        int: Integer,
    }

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at is set to server NOW() on INSERT and auto-updates on
          every UPDATE (via onupdate=func.now()).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
