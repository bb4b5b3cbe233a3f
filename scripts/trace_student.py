#!/usr/bin/env python3
"""
Trace one legacy student through the migration and name the first broken stage.

Stages: staging -> student mapping -> class mapping -> discipline mapping
-> evaluation mapping -> grades.  Use it to root-cause "missing grade"
tickets.

Usage:
    python3 scripts/trace_student.py 20240003 --config config/migration.yaml
    python3 scripts/trace_student.py 20240003 --json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from school_config import load_migration_config  # noqa: E402
from school_kernel.db.engine import session_scope  # noqa: E402
from school_kernel.exceptions import MigrationError  # noqa: E402
from school_migration.services.diagnostics import MigrationDiagnostics, TraceResult, TraceStage  # noqa: E402
from scripts.cli.util import (  # noqa: E402
    EXIT_FATAL,
    EXIT_OK,
    banner,
    connect,
    error,
    field,
    report_failure,
    section,
)

DEFAULT_CONFIG = ROOT / "config" / "migration.yaml"


def print_stage(stage: TraceStage, indent: int = 4) -> None:
    mark = "ok  " if stage.ok else "FAIL"
    print(f"{' ' * indent}[{mark}] {stage.stage:<20} {stage.detail}")


def print_trace(trace: TraceResult) -> None:
    banner(f"TRACE matricula {trace.matricula}")
    section("STUDENT")
    for stage in trace.stages:
        print_stage(stage)
    for discipline in trace.disciplines:
        section(f"DISCIPLINE {discipline.label}")
        for stage in discipline.stages:
            print_stage(stage)

    section("RESULT")
    if trace.is_complete:
        print("    Chain complete: every staged discipline reached its grades.")
    else:
        field("first broken stage", trace.broken_stage)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Trace a legacy student through every migration stage.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("matricula", help="Legacy student matricula.")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="Migration config file.")
    parser.add_argument("--json", action="store_true", help="Output the trace as JSON.")
    args = parser.parse_args(argv)

    try:
        config = load_migration_config(args.config)
    except MigrationError as exc:
        return report_failure(exc)

    try:
        factory = connect(config)
        with session_scope(factory) as session:
            trace = MigrationDiagnostics(session, config).trace_student(args.matricula)
    except Exception as exc:
        error(str(exc))
        return EXIT_FATAL

    if args.json:
        print(trace.to_json())
    else:
        print_trace(trace)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
