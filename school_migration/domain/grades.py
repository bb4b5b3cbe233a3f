"""
Grade value parsing and clamping. Pure functions, ZERO I/O.
"""

from __future__ import annotations

from decimal import Decimal

from school_kernel.db.types import GRADE_MIN, decimal_from_legacy, round_grade
from school_kernel.exceptions import ParseFailureError


def parse_grade(raw: Decimal | str | None, field: str = "grade") -> Decimal | None:
    """
    Legacy score -> migrated grade value.

    Staged numeric columns arrive as Decimal, the free-text final score as
    a string with a comma or dot separator.

    Returns:
        None for an empty value (no grade row is written), otherwise
        round(min(value, 10.00), 2) half-up.

    Raises:
        ParseFailureError: if the text is not a number, or is negative.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            value = decimal_from_legacy(raw)
        except ValueError as exc:
            raise ParseFailureError(field, raw, "not a number") from exc
    else:
        value = Decimal(raw)
        if not value.is_finite():
            raise ParseFailureError(field, raw, "not a finite number")

    if value < GRADE_MIN:
        raise ParseFailureError(field, raw, "negative grade")
    return round_grade(value)
