"""
school_migration.domain.types -- Pure dataclasses and enums for the migration.

ZERO I/O. Imports only from the standard library.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class MatchType(str, Enum):
    """How a legacy key was resolved to a target entity."""

    EXACT = "exact"  # Normalized equality (or identity match)
    FUZZY = "fuzzy"  # Bidirectional substring containment, scored
    MANUAL = "manual"  # Operator decision; never overwritten automatically
    AMBIGUOUS = "ambiguous"  # Several targets tie for the best score
    NOT_FOUND = "not_found"  # No candidate


class PhaseStatus(str, Enum):
    """Phase execution lifecycle."""

    NOT_RUN = "not_run"
    RUNNING = "running"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class EvaluationKind(str, Enum):
    """The three historical evaluations synthesized per (class, discipline)."""

    INTERMEDIATE = "intermediate"  # legacy "teste"
    EXAM = "exam"  # legacy "prova"
    FINAL = "final"  # legacy "final"


class DisciplineKeyKind(str, Enum):
    """Which legacy field a discipline mapping was keyed on."""

    NAME = "name"  # label observed in the grade extract
    CODE = "code"  # legacy id observed in the discipline-assignment extract


# Match types whose new_id may be used downstream
RESOLVED_MATCH_TYPES: frozenset[MatchType] = frozenset(
    {MatchType.EXACT, MatchType.FUZZY, MatchType.MANUAL}
)


# =============================================================================
# Resolution
# =============================================================================


@dataclass(frozen=True)
class Candidate:
    """A target entity a legacy label may resolve to."""

    id: int
    label: str


@dataclass(frozen=True)
class MappingEntry:
    """Outcome of resolving one legacy key."""

    old_key: str
    new_id: int | None
    match_type: MatchType
    similarity_score: Decimal | None = None
    old_label: str | None = None
    candidate_ids: tuple[int, ...] = ()  # Tied candidates when ambiguous

    @property
    def is_resolved(self) -> bool:
        return self.new_id is not None and self.match_type in RESOLVED_MATCH_TYPES


# =============================================================================
# Labels
# =============================================================================


@dataclass(frozen=True)
class Parsed:
    """A group/semester label split into semester number and course label."""

    semester: int
    course: str
    raw: str


@dataclass(frozen=True)
class Unparsed:
    """A label no rule matched; the raw text is kept verbatim as course label."""

    raw: str

    @property
    def semester(self) -> None:
        return None

    @property
    def course(self) -> str:
        return self.raw


LabelResult = Parsed | Unparsed


# =============================================================================
# Phase results
# =============================================================================


@dataclass(frozen=True)
class UnresolvedEntity:
    """A legacy key that could not be carried forward, named for follow-up."""

    entity_kind: str  # professor, student, discipline, group, ...
    old_key: str
    label: str | None = None
    reason: str = MatchType.NOT_FOUND.value

    def describe(self) -> str:
        shown = self.old_key
        if self.label and self.label != self.old_key:
            shown = f"{self.old_key} ({self.label})"
        return f"{self.entity_kind} {shown}: {self.reason}"


@dataclass
class PhaseResult:
    """
    Structured outcome of one phase.

    Accumulated while the phase runs; callers assert on the counts and the
    named unresolved entities instead of scraping console output.
    """

    phase: str
    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    unresolved: list[UnresolvedEntity] = field(default_factory=list)
    details: dict[str, int] = field(default_factory=dict)

    def success(self, count: int = 1) -> None:
        self.attempted += count
        self.succeeded += count

    def skip(self, count: int = 1) -> None:
        self.attempted += count
        self.skipped += count

    def unresolve(self, entity: UnresolvedEntity) -> None:
        """Record an entity that could not be resolved (counted as skipped)."""
        self.skip()
        if entity not in self.unresolved:
            self.unresolved.append(entity)

    def bump(self, key: str, count: int = 1) -> None:
        """Increment a named phase-specific counter."""
        self.details[key] = self.details.get(key, 0) + count

    def merge(self, other: PhaseResult) -> None:
        self.attempted += other.attempted
        self.succeeded += other.succeeded
        self.skipped += other.skipped
        for entity in other.unresolved:
            if entity not in self.unresolved:
                self.unresolved.append(entity)
        for key, count in other.details.items():
            self.bump(key, count)
