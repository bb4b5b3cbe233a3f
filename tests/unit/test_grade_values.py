"""
Unit tests for grade precision and legacy numeric parsing.

Verifies:
- Comma and dot decimal separators
- Clamping at 10.00 and half-up rounding to 2 places
- Empty values produce no grade; malformed or negative values are parse failures
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from school_kernel.db.types import GRADE_MAX, decimal_from_legacy, round_grade
from school_kernel.exceptions import ParseFailureError
from school_migration.domain.grades import parse_grade


class TestDecimalFromLegacy:

    def test_comma_separator(self):
        assert decimal_from_legacy("7,5") == Decimal("7.5")

    def test_dot_separator(self):
        assert decimal_from_legacy("7.5") == Decimal("7.5")

    def test_surrounding_whitespace(self):
        assert decimal_from_legacy("  8 ") == Decimal("8")

    def test_not_a_number(self):
        with pytest.raises(ValueError):
            decimal_from_legacy("abc")

    def test_infinity_rejected(self):
        with pytest.raises(ValueError):
            decimal_from_legacy("Infinity")


class TestRoundGrade:

    def test_clamps_to_ten(self):
        assert round_grade(Decimal("12")) == Decimal("10.00")

    def test_half_up(self):
        assert round_grade(Decimal("7.125")) == Decimal("7.13")

    def test_two_places(self):
        assert round_grade(Decimal("8")).as_tuple().exponent == -2

    @given(st.decimals(min_value=0, max_value=1000, allow_nan=False, allow_infinity=False, places=4))
    def test_result_always_in_range(self, value):
        result = round_grade(value)
        assert Decimal("0.00") <= result <= GRADE_MAX
        assert result.as_tuple().exponent == -2


class TestParseGrade:
    """Legacy score -> migrated grade value."""

    def test_none_is_no_grade(self):
        assert parse_grade(None) is None

    def test_blank_text_is_no_grade(self):
        assert parse_grade("   ") is None

    def test_decimal_passthrough(self):
        assert parse_grade(Decimal("6.5")) == Decimal("6.50")

    def test_comma_text(self):
        assert parse_grade("9,0", field="final_score") == Decimal("9.00")

    def test_above_ten_clamped(self):
        assert parse_grade(Decimal("12")) == Decimal("10.00")

    def test_zero_is_a_grade(self):
        assert parse_grade("0") == Decimal("0.00")

    def test_text_not_a_number(self):
        with pytest.raises(ParseFailureError) as exc_info:
            parse_grade("abc", field="final_score")
        assert exc_info.value.field == "final_score"
        assert exc_info.value.raw_value == "abc"
        assert exc_info.value.fatal is False

    def test_negative_rejected(self):
        with pytest.raises(ParseFailureError, match="negative"):
            parse_grade(Decimal("-1"))

    def test_negative_text_rejected(self):
        with pytest.raises(ParseFailureError):
            parse_grade("-0,5")

    @given(st.decimals(min_value=0, max_value=10, allow_nan=False, allow_infinity=False, places=2))
    def test_in_range_values_unchanged(self, value):
        assert parse_grade(value) == value

    @given(st.integers(min_value=0, max_value=100), st.integers(min_value=0, max_value=99))
    def test_comma_and_dot_agree(self, whole, cents):
        assert parse_grade(f"{whole},{cents:02d}") == parse_grade(f"{whole}.{cents:02d}")
