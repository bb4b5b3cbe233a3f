"""
Tests for legacy label -> target candidate matching.

Verifies:
- Exact (normalized) matches always win over fuzzy ones
- Fuzzy score is len(shorter) / len(longer) and never reaches 1
- Ties between distinct targets are ambiguous, with stable candidate order
- NFC and NFD spellings of the same label resolve identically
"""

import unicodedata
from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from school_migration.domain.matching import (
    EXACT_SCORE,
    MAX_FUZZY_SCORE,
    match_candidates,
    similarity,
)
from school_migration.domain.types import Candidate, MatchType

COURSES = (
    Candidate(1, "Administração"),
    Candidate(2, "Psicologia"),
    Candidate(3, "Ciências Contábeis"),
)


class TestSimilarity:

    def test_equal(self):
        assert similarity("psicologia", "psicologia") == EXACT_SCORE

    def test_containment_ratio(self):
        assert similarity("direito", "direito penal") == Decimal("0.5385")

    def test_containment_is_symmetric(self):
        assert similarity("direito penal", "direito") == similarity("direito", "direito penal")

    def test_disjoint(self):
        assert similarity("direito", "letras") is None

    def test_empty_never_matches(self):
        assert similarity("", "letras") is None
        assert similarity("letras", "") is None

    def test_near_full_containment_stays_below_exact(self):
        long = "a" * 30000
        assert similarity(long, long + "b") == MAX_FUZZY_SCORE


class TestMatchCandidates:

    def test_exact_accent_and_case_insensitive(self):
        entry = match_candidates("g1", "ADMINISTRACAO", COURSES)
        assert entry.match_type == MatchType.EXACT
        assert entry.new_id == 1
        assert entry.similarity_score == EXACT_SCORE
        assert entry.is_resolved

    def test_fuzzy_label_contains_candidate(self):
        entry = match_candidates("g2", "Psicologia Clínica", COURSES)
        assert entry.match_type == MatchType.FUZZY
        assert entry.new_id == 2
        assert Decimal(0) < entry.similarity_score < EXACT_SCORE

    def test_fuzzy_candidate_contains_label(self):
        entry = match_candidates("g3", "Contábeis", COURSES)
        assert entry.match_type == MatchType.FUZZY
        assert entry.new_id == 3

    def test_exact_wins_over_higher_ranked_fuzzy(self):
        candidates = (Candidate(10, "Direito Penal"), Candidate(11, "Direito"))
        entry = match_candidates("d", "direito", candidates)
        assert entry.match_type == MatchType.EXACT
        assert entry.new_id == 11

    def test_best_fuzzy_score_wins(self):
        candidates = (Candidate(10, "Gestão"), Candidate(11, "Gestão Pública"))
        entry = match_candidates("d", "Gestão Pública Municipal", candidates)
        assert entry.match_type == MatchType.FUZZY
        assert entry.new_id == 11

    def test_not_found(self):
        entry = match_candidates("g9", "Medicina", COURSES)
        assert entry.match_type == MatchType.NOT_FOUND
        assert entry.new_id is None
        assert entry.similarity_score is None
        assert entry.old_label == "Medicina"
        assert not entry.is_resolved

    def test_none_label_not_found(self):
        assert match_candidates("g9", None, COURSES).match_type == MatchType.NOT_FOUND

    def test_no_candidates(self):
        assert match_candidates("g9", "Psicologia", ()).match_type == MatchType.NOT_FOUND

    def test_ambiguous_exact_tie(self):
        candidates = (Candidate(7, "Estatística"), Candidate(4, "ESTATISTICA"))
        entry = match_candidates("d", "Estatística", candidates)
        assert entry.match_type == MatchType.AMBIGUOUS
        assert entry.new_id is None
        assert set(entry.candidate_ids) == {4, 7}
        assert entry.similarity_score == EXACT_SCORE

    def test_ambiguous_fuzzy_tie(self):
        candidates = (Candidate(1, "Letras Inglês"), Candidate(2, "Letras Alemão"))
        entry = match_candidates("g", "Letras", candidates)
        assert entry.match_type == MatchType.AMBIGUOUS
        assert entry.candidate_ids == (2, 1)

    def test_same_target_twice_is_not_ambiguous(self):
        candidates = (Candidate(5, "Estatística"), Candidate(5, "Estatística"))
        entry = match_candidates("d", "Estatística", candidates)
        assert entry.match_type == MatchType.EXACT
        assert entry.new_id == 5

    def test_candidate_order_does_not_change_outcome(self):
        candidates = [Candidate(1, "Letras Inglês"), Candidate(2, "Letras Alemão"), Candidate(3, "Letras")]
        forward = match_candidates("g", "Letras", candidates)
        backward = match_candidates("g", "Letras", list(reversed(candidates)))
        assert forward == backward
        assert forward.new_id == 3

    def test_nfc_nfd_symmetry(self):
        nfc = unicodedata.normalize("NFC", "Administração")
        nfd = unicodedata.normalize("NFD", "Administração")
        nfd_courses = (Candidate(1, nfd),)
        assert match_candidates("g", nfc, nfd_courses).match_type == MatchType.EXACT
        assert match_candidates("g", nfd, (Candidate(1, nfc),)).match_type == MatchType.EXACT

    @given(st.lists(st.sampled_from(["Administração", "Psicologia", "Direito", "Direito Penal", "Letras"]), min_size=1))
    def test_exact_label_always_exact_or_ambiguous(self, names):
        candidates = [Candidate(i, name) for i, name in enumerate(names)]
        entry = match_candidates("k", names[0], candidates)
        assert entry.match_type in (MatchType.EXACT, MatchType.AMBIGUOUS)
        assert entry.similarity_score == EXACT_SCORE
        if entry.match_type == MatchType.EXACT:
            assert candidates[entry.new_id].label == names[0]
