"""
Module: school_kernel.db.types
Responsibility: Grade precision constants and numeric helpers.
    Centralizes grade precision, clamping and the legacy comma-decimal
    conversion so that the loader, the grade migrator and the models all
    agree on one definition.
Architecture position: Kernel > DB.  May be imported by models/ and by the
    migration package.  MUST NOT import from either.

Invariants enforced:
    - Grades are Decimal with exactly 2 decimal places, in [0.00, 10.00].
      round_grade() is the only sanctioned rounding path for grade values.
    - No floats: legacy numerics are parsed straight into Decimal.

Failure modes:
    - ValueError from decimal_from_legacy() on a non-numeric string.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


# Grade precision: NUMERIC(4, 2), clamped to 10.00
GRADE_DECIMAL_PLACES = 2
GRADE_MIN = Decimal("0.00")
GRADE_MAX = Decimal("10.00")


def decimal_from_legacy(value: str) -> Decimal:
    """
    Parse a legacy numeric string, accepting a comma decimal separator.

    "7,5" -> Decimal("7.5"), " 8 " -> Decimal("8").

    Raises:
        ValueError: If value is not a finite number after normalization.
    """
    text = value.strip().replace(",", ".")
    try:
        result = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return result


def round_grade(value: Decimal) -> Decimal:
    """
    Clamp a grade at 10.00 and round half-up to 2 decimal places.

    Preconditions: value is a non-negative Decimal (negative values are
        rejected upstream as parse failures).
    Postconditions: 0.00 <= result <= 10.00, exponent == -2.

    Example:
        round_grade(Decimal("12")) -> Decimal("10.00")
        round_grade(Decimal("7.125")) -> Decimal("7.13")
    """
    clamped = min(value, GRADE_MAX)
    quantizer = Decimal(10) ** -GRADE_DECIMAL_PLACES
    return clamped.quantize(quantizer, rounding=ROUND_HALF_UP)
