"""Phase services, the phase runner and read-only diagnostics."""

from school_migration.services.diagnostics import MigrationDiagnostics, MigrationReport, TraceResult
from school_migration.services.evaluations import EvaluationMigrator
from school_migration.services.linker import RelationshipLinker
from school_migration.services.loader import ExtractLoader
from school_migration.services.phase_runner import PHASE_NAMES, PHASES, PhaseRunner
from school_migration.services.recovery import ProvenanceRecovery
from school_migration.services.resolver import EntityResolver, NameResolver
from school_migration.services.seeder import ReferenceSeeder
from school_migration.services.structure import StructuralBuilder

__all__ = [
    "EntityResolver",
    "EvaluationMigrator",
    "ExtractLoader",
    "MigrationDiagnostics",
    "MigrationReport",
    "NameResolver",
    "PHASES",
    "PHASE_NAMES",
    "PhaseRunner",
    "ProvenanceRecovery",
    "ReferenceSeeder",
    "RelationshipLinker",
    "StructuralBuilder",
    "TraceResult",
]
