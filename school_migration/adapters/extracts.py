"""
Extract definitions and field coercion.

Each legacy extract has a fixed column set.  An ``ExtractDefinition`` names
the source columns, the staging attribute each one lands in, how it is
coerced, and which fields must be present for the row to be usable.

Coercion is lenient by contract: an empty or invalid value becomes None
instead of failing the row; text longer than its staging column and
numbers outside the column range count as invalid.  Only a missing or
invalid key field makes a row malformed.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from school_kernel.db.types import decimal_from_legacy

# Staging scores are NUMERIC(10, 2)
STAGED_DECIMAL_MAX = Decimal("99999999.99")
STAGED_INTEGER_MAX = 2**31 - 1


class FieldType(str, Enum):
    """How a raw extract cell is coerced before staging."""

    STRING = "string"  # trimmed text, empty -> None
    INTEGER = "integer"  # whole number, invalid -> None
    LEGACY_DECIMAL = "legacy_decimal"  # "7,5" -> Decimal("7.5"), invalid -> None


@dataclass(frozen=True)
class FieldDef:
    """One source column -> staging attribute."""

    source: str
    target: str
    field_type: FieldType = FieldType.STRING
    required: bool = False
    max_length: int = 50  # STRING only, matches the staging column


@dataclass(frozen=True)
class ExtractDefinition:
    """Column layout of one legacy extract."""

    name: str
    fields: tuple[FieldDef, ...]

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(f.source for f in self.fields)

    @property
    def required_targets(self) -> tuple[str, ...]:
        return tuple(f.target for f in self.fields if f.required)


@dataclass(frozen=True)
class CoercedRow:
    """Result of coercing one raw row."""

    values: dict[str, Any]
    missing: tuple[str, ...] = ()
    invalid: tuple[str, ...] = ()

    @property
    def usable(self) -> bool:
        return not self.missing


def coerce_value(
    raw: str | None, field_type: FieldType, max_length: int | None = None
) -> tuple[Any, bool]:
    """
    Coerce one cell. Pure function.

    Returns:
        (value, valid) -- value is None for empty input (valid) or for
        input that could not be coerced or does not fit its staging
        column (not valid).
    """
    text = raw.strip() if raw is not None else ""
    if not text:
        return None, True

    if field_type == FieldType.STRING:
        if max_length is not None and len(text) > max_length:
            return None, False
        return text, True

    if field_type == FieldType.INTEGER:
        try:
            number = decimal_from_legacy(text)
        except ValueError:
            return None, False
        if number != number.to_integral_value() or abs(number) > STAGED_INTEGER_MAX:
            return None, False
        return int(number), True

    if field_type == FieldType.LEGACY_DECIMAL:
        try:
            number = decimal_from_legacy(text)
        except ValueError:
            return None, False
        if abs(number) > STAGED_DECIMAL_MAX:
            return None, False
        return number, True

    return None, False


def coerce_row(definition: ExtractDefinition, raw: dict[str, str]) -> CoercedRow:
    """Apply an extract definition to one raw row. Pure function."""
    values: dict[str, Any] = {}
    missing: list[str] = []
    invalid: list[str] = []
    for f in definition.fields:
        value, valid = coerce_value(raw.get(f.source), f.field_type, f.max_length)
        if not valid:
            invalid.append(f.source)
        if value is None and f.required:
            missing.append(f.source)
        values[f.target] = value
    return CoercedRow(values=values, missing=tuple(missing), invalid=tuple(invalid))


# -----------------------------------------------------------------------------
# Legacy extracts
# -----------------------------------------------------------------------------

PROFESSOR = ExtractDefinition(
    name="professor",
    fields=(
        FieldDef("professor_id", "legacy_id", required=True),
        FieldDef("professor_nome", "name", max_length=200),
        FieldDef("professor_login", "login", max_length=100),
    ),
)

STUDENT = ExtractDefinition(
    name="student",
    fields=(
        FieldDef("cliente_matricula", "matricula", required=True),
        FieldDef("cliente_nome", "name", max_length=200),
        FieldDef("cliente_sub", "group_id"),
    ),
)

GROUP = ExtractDefinition(
    name="group",
    fields=(
        FieldDef("sub_id", "legacy_id", required=True),
        FieldDef("sub_title", "label", max_length=200),
        FieldDef("sub_categoria", "category", FieldType.INTEGER),
    ),
)

GROUP_ASSIGNMENT = ExtractDefinition(
    name="group_assignment",
    fields=(
        FieldDef("profserie_prof", "professor_id", required=True),
        FieldDef("profserie_sub", "group_id", required=True),
    ),
)

DISCIPLINE_ASSIGNMENT = ExtractDefinition(
    name="discipline_assignment",
    fields=(
        FieldDef("profmat_prof", "professor_id", required=True),
        FieldDef("profmat_mat", "discipline_code", required=True),
    ),
)

GRADE = ExtractDefinition(
    name="grade",
    fields=(
        FieldDef("matricula", "matricula", required=True),
        FieldDef("disciplina", "discipline", required=True, max_length=200),
        FieldDef("periodo", "period"),
        FieldDef("teste", "intermediate_score", FieldType.LEGACY_DECIMAL),
        FieldDef("prova", "exam_score", FieldType.LEGACY_DECIMAL),
        FieldDef("final", "final_score"),  # free text, parsed at grade migration
        FieldDef("resultado", "result", FieldType.LEGACY_DECIMAL),
        FieldDef("status", "status"),
        FieldDef("semestre", "semester_label", max_length=200),
        FieldDef("dia_hora", "schedule", max_length=100),
    ),
)

# Catalog extracts, read directly by the seeder
COURSE_CATALOG = ExtractDefinition(
    name="course",
    fields=(
        FieldDef("name", "name", required=True, max_length=200),
        FieldDef("duration", "duration", FieldType.INTEGER),
    ),
)

DISCIPLINE_CATALOG = ExtractDefinition(
    name="discipline",
    fields=(
        FieldDef("name", "name", required=True, max_length=200),
        FieldDef("code", "code"),
        FieldDef("workload_hours", "workload_hours", FieldType.INTEGER),
    ),
)

EXTRACT_DEFINITIONS: dict[str, ExtractDefinition] = {
    d.name: d
    for d in (
        PROFESSOR,
        STUDENT,
        GROUP,
        GROUP_ASSIGNMENT,
        DISCIPLINE_ASSIGNMENT,
        GRADE,
        COURSE_CATALOG,
        DISCIPLINE_CATALOG,
    )
}


def get_definition(name: str) -> ExtractDefinition:
    """Look up an extract definition by name (KeyError if unknown)."""
    return EXTRACT_DEFINITIONS[name]

