"""
Text normalization for name matching.

Legacy exports mix NFC and NFD encodings, stray accents, double spaces and
inconsistent casing.  Every comparison between a legacy label and a target
name goes through normalize_text() on both sides.
"""

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")


def strip_accents(value: str) -> str:
    """Decompose to NFD and drop every combining mark."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(value: str | None) -> str:
    """
    Canonical comparison form of a label.

    NFD decompose, strip combining marks, lowercase, trim, collapse
    internal whitespace.  None normalizes to the empty string.

    Example:
        normalize_text("  João  da   SILVA ") -> "joao da silva"
    """
    if value is None:
        return ""
    text = strip_accents(value).lower()
    return _WHITESPACE.sub(" ", text).strip()
