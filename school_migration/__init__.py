"""
school_migration -- legacy school-records migration pipeline.

Moves a predecessor system's delimited exports into the relational schema
of ``school_kernel.models`` in strictly ordered phases:

    load -> seed -> resolve / structure -> link -> evaluations -> recover

Each phase runs in its own transaction, reads only the mapping tables
earlier phases wrote, and returns a ``PhaseResult`` with attempted,
succeeded and skipped counts plus the legacy keys it could not resolve.
Mapping tables are kept permanently as the audit trail of every decision.

Architecture:
    domain/    pure types, label parser, name matcher, grade parsing
    adapters/  CSV reading and per-extract column definitions
    models/    staging, mapping and phase-ledger tables
    services/  one service per phase, the phase runner, diagnostics
"""
