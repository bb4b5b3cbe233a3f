"""CLI utilities: formatting, config/engine bootstrap, exit codes."""

from __future__ import annotations

import logging
import sys

from school_config.schema import MigrationConfig
from school_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from school_kernel.exceptions import MigrationError
from school_kernel.logging_config import configure_logging
from school_migration.domain.types import PhaseResult

# Exit codes
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2

W = 72


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def section(title: str) -> None:
    print()
    print(f"--- {title} ---")
    print()


def field(name: str, value, indent: int = 4) -> None:
    print(f"{' ' * indent}{name}: {value}")


def error(message: str) -> None:
    print(f"  ERROR: {message}", file=sys.stderr)


def print_result(result: PhaseResult) -> None:
    """Plain-language phase summary: counts, phase counters, unresolved keys."""
    section(f"PHASE {result.phase.upper()}")
    field("attempted", result.attempted)
    field("succeeded", result.succeeded)
    field("skipped", result.skipped)
    field("unresolved", len(result.unresolved))
    if result.details:
        section("DETAILS")
        for key in sorted(result.details):
            field(key, result.details[key])
    if result.unresolved:
        section("UNRESOLVED (manual follow-up)")
        for entity in result.unresolved:
            print(f"    - {entity.describe()}")


def connect(config: MigrationConfig, log_level: int = logging.WARNING):
    """
    Initialize logging and the engine, create missing tables.

    Returns:
        The session factory bound to the configured database.
    """
    configure_logging(level=log_level)
    init_engine_from_url(config.database_url, echo=config.echo_sql)
    create_tables()
    return get_session_factory()


def report_failure(exc: MigrationError) -> int:
    """Print a fatal error and return the matching exit code."""
    error(f"[{exc.code}] {exc}")
    return EXIT_USAGE if exc.code == "INVALID_CONFIGURATION" else EXIT_FATAL
