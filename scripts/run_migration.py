#!/usr/bin/env python3
"""
Run one phase of the legacy school-records migration.

Phases run one per invocation, in the documented order:

    load -> seed -> resolve -> structure -> link -> evaluations -> recover

Each phase commits as a whole or rolls back as a whole; a phase refuses to
start until the phases it depends on have committed.

Usage:
    python3 scripts/run_migration.py <phase> --config config/migration.yaml
    python3 scripts/run_migration.py load --config config/migration.yaml --extract grade
    python3 scripts/run_migration.py phases --config config/migration.yaml
    python3 scripts/run_migration.py unlock --config config/migration.yaml

Exit codes:
    0  phase committed (or command succeeded)
    1  fatal error, the phase was rolled back
    2  usage or configuration error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from school_config import load_migration_config  # noqa: E402
from school_kernel.exceptions import MigrationError  # noqa: E402
from school_migration.services.phase_runner import PHASE_NAMES, PHASES, PhaseRunner  # noqa: E402
from scripts.cli.util import (  # noqa: E402
    EXIT_FATAL,
    EXIT_OK,
    EXIT_USAGE,
    banner,
    connect,
    error,
    field,
    print_result,
    report_failure,
    section,
)

DEFAULT_CONFIG = ROOT / "config" / "migration.yaml"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one migration phase in its own transaction.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "command",
        choices=(*PHASE_NAMES, "phases", "unlock"),
        help="Phase to run, 'phases' to list phase status, 'unlock' to force-release a stale lock.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Migration config file (default: {DEFAULT_CONFIG.relative_to(ROOT)}).",
    )
    parser.add_argument(
        "--extract",
        help="load only: stage a single extract instead of every configured one.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Emit INFO-level JSON logs on stderr.",
    )
    return parser.parse_args(argv)


def _print_phases(runner: PhaseRunner) -> None:
    section("PHASES")
    statuses = runner.status()
    for phase in PHASES:
        requires = ", ".join(phase.requires) or "-"
        print(f"    {phase.name:<12} {statuses[phase.name].value:<12} requires: {requires:<20} {phase.description}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.extract and args.command != "load":
        error("--extract only applies to the load phase")
        return EXIT_USAGE

    try:
        config = load_migration_config(args.config)
    except MigrationError as exc:
        return report_failure(exc)

    try:
        factory = connect(config, logging.INFO if args.verbose else logging.WARNING)
    except Exception as exc:
        error(f"Cannot connect to database: {exc}")
        return EXIT_FATAL
    runner = PhaseRunner(config, session_factory=factory)

    if args.command == "phases":
        banner("MIGRATION PHASES")
        _print_phases(runner)
        return EXIT_OK

    if args.command == "unlock":
        banner("UNLOCK")
        released = runner.force_unlock()
        if released is None:
            print("    No lock held.")
        else:
            field("released run", released[0])
            field("phase", released[1])
        return EXIT_OK

    banner(f"PHASE {args.command.upper()}")
    field("run_id", runner.run_id)
    field("config", args.config)
    try:
        result = runner.run(args.command, extract=args.extract)
    except MigrationError as exc:
        print()
        print("    Phase rolled back; earlier committed phases are untouched.")
        return report_failure(exc)
    except Exception as exc:
        error(f"unexpected failure: {exc}")
        return EXIT_FATAL

    print_result(result)
    banner("COMMITTED")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
