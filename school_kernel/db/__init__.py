"""Database layer - engine, base classes and grade types."""

from school_kernel.db.base import Base, TrackedBase
from school_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from school_kernel.db.types import decimal_from_legacy, round_grade

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "decimal_from_legacy",
    "round_grade",
]
