"""Legacy extract readers and definitions (file I/O only, no DB)."""

from school_migration.adapters.csv_adapter import CsvExtractReader, HeaderMismatchError, RawRow
from school_migration.adapters.extracts import (
    EXTRACT_DEFINITIONS,
    ExtractDefinition,
    FieldDef,
    FieldType,
    coerce_row,
    coerce_value,
    get_definition,
)

__all__ = [
    "CsvExtractReader",
    "HeaderMismatchError",
    "RawRow",
    "EXTRACT_DEFINITIONS",
    "ExtractDefinition",
    "FieldDef",
    "FieldType",
    "coerce_row",
    "coerce_value",
    "get_definition",
]
