"""
Name matching: legacy label -> target candidate. Pure functions, ZERO I/O.

Precedence:
    1. exact   normalized equality, score 1
    2. fuzzy   one normalized string contains the other,
               score = len(shorter) / len(longer)
    3. not_found

Ties are explicit: when more than one distinct target id shares the best
score, the result is ``ambiguous`` with no target id.  Candidates are
ranked by score (descending) then by normalized label, so the reported
candidate ids are stable across runs.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from school_kernel.utils.text import normalize_text
from school_migration.domain.types import Candidate, MappingEntry, MatchType

SCORE_PLACES = Decimal("0.0001")
EXACT_SCORE = Decimal("1.0000")
# Containment never rounds up to an exact score
MAX_FUZZY_SCORE = Decimal("0.9999")


def similarity(label: str, candidate: str) -> Decimal | None:
    """
    Score two already-normalized strings, or None if neither contains the other.

    Empty strings never match.
    """
    if not label or not candidate:
        return None
    if label == candidate:
        return EXACT_SCORE
    if label in candidate or candidate in label:
        shorter, longer = sorted((len(label), len(candidate)))
        ratio = Decimal(shorter) / Decimal(longer)
        return min(ratio.quantize(SCORE_PLACES, rounding=ROUND_HALF_UP), MAX_FUZZY_SCORE)
    return None


def rank_candidates(
    label: str, candidates: Iterable[Candidate]
) -> list[tuple[Decimal, str, Candidate]]:
    """Scored matches for label, best first, ties ordered by normalized label then id."""
    normalized = normalize_text(label)
    ranked = []
    for candidate in candidates:
        cand_norm = normalize_text(candidate.label)
        score = similarity(normalized, cand_norm)
        if score is not None:
            ranked.append((score, cand_norm, candidate))
    ranked.sort(key=lambda item: (-item[0], item[1], item[2].id))
    return ranked


def match_candidates(
    old_key: str,
    label: str | None,
    candidates: Iterable[Candidate],
) -> MappingEntry:
    """
    Resolve one legacy label against target candidates.

    Postconditions:
        - An exact match always wins over any fuzzy match.
        - new_id is set only for exact/fuzzy with a single best target.
    """
    ranked = rank_candidates(label or "", candidates)
    if not ranked:
        return MappingEntry(
            old_key=old_key,
            new_id=None,
            match_type=MatchType.NOT_FOUND,
            old_label=label,
        )

    best_score = ranked[0][0]
    best_ids: list[int] = []
    for score, _, candidate in ranked:
        if score != best_score:
            break
        if candidate.id not in best_ids:
            best_ids.append(candidate.id)

    if len(best_ids) > 1:
        return MappingEntry(
            old_key=old_key,
            new_id=None,
            match_type=MatchType.AMBIGUOUS,
            similarity_score=best_score,
            old_label=label,
            candidate_ids=tuple(best_ids),
        )

    match_type = MatchType.EXACT if best_score == EXACT_SCORE else MatchType.FUZZY
    return MappingEntry(
        old_key=old_key,
        new_id=best_ids[0],
        match_type=match_type,
        similarity_score=best_score,
        old_label=label,
    )
