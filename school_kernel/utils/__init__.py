"""Utility modules for the school kernel."""

from school_kernel.utils.serialization import to_json
from school_kernel.utils.text import normalize_text, strip_accents

__all__ = [
    "normalize_text",
    "strip_accents",
    "to_json",
]
