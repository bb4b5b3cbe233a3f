#!/usr/bin/env python3
"""
Post-migration report: staged vs migrated counts, teachers, coverage.

Read-only.  Prints a human-readable report, or writes it as JSON.

Usage:
    python3 scripts/migration_report.py --config config/migration.yaml
    python3 scripts/migration_report.py --config config/migration.yaml --json report.json
    python3 scripts/migration_report.py --config config/migration.yaml --json -
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
from school_migration.services.diagnostics import MigrationDiagnostics, MigrationReport  # noqa: E402
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


def print_report(report: MigrationReport) -> None:
    banner("MIGRATION REPORT")

    section("GRADES")
    field("staged grade rows", report.staged_grade_rows)
    field("migrated grades", report.migrated_grades)
    field("null grades", report.null_grades)
    field("students with grades", report.students_with_grades)
    field("students with class", report.students_with_class)

    section("HISTORICAL EVALUATIONS")
    field("total", report.historical_evaluations)
    field("with linked teacher", report.evaluations_with_linked_teacher)
    field("with fallback teacher", report.evaluations_with_fallback_teacher)
    field("with semester provenance", report.evaluations_with_provenance)
    if report.evaluations_by_teacher:
        print()
        for teacher in report.evaluations_by_teacher:
            marker = " (fallback)" if teacher.is_fallback else ""
            print(f"    {teacher.teacher_name[:40]:<40} {teacher.evaluations:>8}{marker}")

    section("MAPPING COVERAGE")
    for name, coverage in report.coverage.items():
        types = ", ".join(f"{k}={v}" for k, v in coverage.by_match_type.items()) or "-"
        print(f"    {name:<22} {coverage.resolved:>6} / {coverage.total:<6} {types}")

    section("UNMAPPED DISCIPLINES")
    if not report.unmapped_disciplines and not report.unmapped_discipline_codes:
        print("    (none)")
    for label in report.unmapped_disciplines:
        print(f"    - {label}")
    for code in report.unmapped_discipline_codes:
        print(f"    - code {code}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Read-only post-migration report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="Migration config file.")
    parser.add_argument(
        "--json",
        metavar="PATH",
        help="Write the report as JSON to PATH ('-' for stdout) instead of printing it.",
    )
    args = parser.parse_args(argv)

    try:
        config = load_migration_config(args.config)
    except MigrationError as exc:
        return report_failure(exc)

    try:
        factory = connect(config)
        with session_scope(factory) as session:
            report = MigrationDiagnostics(session, config).build_report()
    except Exception as exc:
        error(str(exc))
        return EXIT_FATAL

    if args.json == "-":
        print(report.to_json())
    elif args.json:
        Path(args.json).write_text(report.to_json() + "\n", encoding="utf-8")
        print(f"  Report written to {args.json}")
    else:
        print_report(report)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
