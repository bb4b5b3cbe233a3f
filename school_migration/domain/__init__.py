"""Pure migration domain: types, label parsing, name matching, grades."""

from school_migration.domain.grades import parse_grade
from school_migration.domain.labels import LABEL_RULES, parse_label, strip_course_prefix
from school_migration.domain.matching import match_candidates, similarity
from school_migration.domain.types import (
    Candidate,
    DisciplineKeyKind,
    EvaluationKind,
    MappingEntry,
    MatchType,
    Parsed,
    PhaseResult,
    PhaseStatus,
    UnresolvedEntity,
    Unparsed,
)

__all__ = [
    "Candidate",
    "DisciplineKeyKind",
    "EvaluationKind",
    "LABEL_RULES",
    "MappingEntry",
    "MatchType",
    "Parsed",
    "PhaseResult",
    "PhaseStatus",
    "UnresolvedEntity",
    "Unparsed",
    "match_candidates",
    "parse_grade",
    "parse_label",
    "similarity",
    "strip_course_prefix",
]
