"""
Tests for the legacy group / semester label parser.

Verifies:
- Number-first and number-last shapes, arabic and roman
- Semester bounds 1..12
- Unparsed labels keep the raw text verbatim
- Degree-type prefix stripping before course lookup
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from school_migration.domain.labels import (
    ROMAN_NUMERALS,
    parse_label,
    semester_from_token,
    strip_course_prefix,
)
from school_migration.domain.types import Parsed, Unparsed


class TestParseLabel:

    def test_number_prefix(self):
        result = parse_label("8° Administração")
        assert result == Parsed(semester=8, course="Administração", raw="8° Administração")

    def test_number_prefix_ordinal_masculine(self):
        result = parse_label("3º Pedagogia")
        assert isinstance(result, Parsed)
        assert (result.semester, result.course) == (3, "Pedagogia")

    def test_number_suffix(self):
        result = parse_label("Bacharelado em Psicologia 8°")
        assert isinstance(result, Parsed)
        assert (result.semester, result.course) == (8, "Bacharelado em Psicologia")

    def test_roman_suffix(self):
        result = parse_label("Complementação Pedagógica II°")
        assert isinstance(result, Parsed)
        assert (result.semester, result.course) == (2, "Complementação Pedagógica")

    def test_roman_suffix_longest_numeral(self):
        result = parse_label("Direito VIII°")
        assert isinstance(result, Parsed)
        assert result.semester == 8

    def test_suffix_without_ordinal(self):
        result = parse_label("Psicologia 4")
        assert isinstance(result, Parsed)
        assert (result.semester, result.course) == (4, "Psicologia")

    def test_surrounding_whitespace(self):
        result = parse_label("  2° Enfermagem  ")
        assert isinstance(result, Parsed)
        assert (result.semester, result.course) == (2, "Enfermagem")
        assert result.raw == "  2° Enfermagem  "

    @pytest.mark.parametrize("label", ["0° Administração", "13° Administração", "Psicologia 99°"])
    def test_semester_out_of_range(self, label):
        result = parse_label(label)
        assert isinstance(result, Unparsed)
        assert result.raw == label

    def test_no_semester(self):
        result = parse_label("Pós-Graduação")
        assert isinstance(result, Unparsed)
        assert result.semester is None
        assert result.course == "Pós-Graduação"

    def test_none_is_unparsed(self):
        assert parse_label(None) == Unparsed(raw="")

    def test_number_only(self):
        assert isinstance(parse_label("8°"), Unparsed)

    @given(st.integers(min_value=1, max_value=12), st.sampled_from(["Administração", "Psicologia", "Direito"]))
    def test_prefix_round_trip(self, semester, course):
        result = parse_label(f"{semester}° {course}")
        assert isinstance(result, Parsed)
        assert (result.semester, result.course) == (semester, course)

    @given(st.sampled_from(sorted(ROMAN_NUMERALS)), st.sampled_from(["Letras", "Ciências Contábeis"]))
    def test_roman_suffix_every_numeral(self, numeral, course):
        result = parse_label(f"{course} {numeral}°")
        assert isinstance(result, Parsed)
        assert result.semester == ROMAN_NUMERALS[numeral]
        assert result.course == course

    @given(st.text(max_size=40))
    def test_parsed_semester_in_bounds(self, label):
        result = parse_label(label)
        if isinstance(result, Parsed):
            assert 1 <= result.semester <= 12
            assert result.course == result.course.strip()
            assert result.course
        else:
            assert result.raw == label


class TestSemesterFromToken:

    @pytest.mark.parametrize("token,expected", [("1", 1), ("12", 12), ("iv", 4), ("XII", 12), ("08", 8)])
    def test_valid(self, token, expected):
        assert semester_from_token(token) == expected

    @pytest.mark.parametrize("token", ["0", "13", "XIII", "abc", ""])
    def test_invalid(self, token):
        assert semester_from_token(token) is None


class TestStripCoursePrefix:

    PREFIXES = ("Bacharelado em", "Licenciatura em", "Licenciatura")

    def test_strips_prefix(self):
        assert strip_course_prefix("Bacharelado em Psicologia", self.PREFIXES) == "Psicologia"

    def test_case_insensitive(self):
        assert strip_course_prefix("bacharelado EM Psicologia", self.PREFIXES) == "Psicologia"

    def test_longest_prefix_first(self):
        assert strip_course_prefix("Licenciatura em Letras", self.PREFIXES) == "Letras"

    def test_prefix_must_end_at_word_boundary(self):
        assert strip_course_prefix("Licenciaturas Diversas", self.PREFIXES) == "Licenciaturas Diversas"

    def test_prefix_alone_is_kept(self):
        assert strip_course_prefix("Bacharelado em", self.PREFIXES) == "Bacharelado em"

    def test_no_prefixes(self):
        assert strip_course_prefix("  Administração ", ()) == "Administração"
