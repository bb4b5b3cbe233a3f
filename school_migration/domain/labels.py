"""
Legacy group / semester label parser. Pure functions, ZERO I/O.

Legacy labels pack a course name and a semester number into one field,
in two shapes seen in the exports:

    "8° Administração"                  number first
    "Bacharelado em Psicologia 8°"      number last, arabic
    "Complementação Pedagógica II°"     number last, roman

The parser is an ordered list of rules; the first rule whose pattern
matches AND whose extractor yields a semester in 1..12 wins.  Anything
else is ``Unparsed`` with the raw string kept verbatim.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from school_migration.domain.types import LabelResult, Parsed, Unparsed

MIN_SEMESTER = 1
MAX_SEMESTER = 12

ROMAN_NUMERALS: dict[str, int] = {
    "I": 1,
    "II": 2,
    "III": 3,
    "IV": 4,
    "V": 5,
    "VI": 6,
    "VII": 7,
    "VIII": 8,
    "IX": 9,
    "X": 10,
    "XI": 11,
    "XII": 12,
}

# Longest numerals first so the alternation never stops at a prefix
_ROMAN_ALTERNATION = "|".join(sorted(ROMAN_NUMERALS, key=len, reverse=True))

_ORDINAL = "[°º]"


def semester_from_token(token: str) -> int | None:
    """Arabic or roman semester token -> int in 1..12, else None."""
    token = token.strip().upper()
    if token.isdecimal():
        value = int(token)
    else:
        value = ROMAN_NUMERALS.get(token)
        if value is None:
            return None
    if MIN_SEMESTER <= value <= MAX_SEMESTER:
        return value
    return None


@dataclass(frozen=True)
class LabelRule:
    """One parsing rule: a compiled pattern and how to read its groups."""

    name: str
    pattern: re.Pattern[str]
    extract: Callable[[re.Match[str]], tuple[str, str]]  # (semester_token, course)

    def apply(self, raw: str) -> Parsed | None:
        match = self.pattern.match(raw.strip())
        if match is None:
            return None
        token, course = self.extract(match)
        course = course.strip()
        semester = semester_from_token(token)
        if semester is None or not course:
            return None
        return Parsed(semester=semester, course=course, raw=raw)


LABEL_RULES: tuple[LabelRule, ...] = (
    LabelRule(
        name="number_prefix",
        pattern=re.compile(rf"^(\d+){_ORDINAL}\s+(.+)$", re.DOTALL),
        extract=lambda m: (m.group(1), m.group(2)),
    ),
    LabelRule(
        name="number_suffix",
        pattern=re.compile(
            rf"^(.+?)\s+(\d+|{_ROMAN_ALTERNATION}){_ORDINAL}?\s*$",
            re.IGNORECASE | re.DOTALL,
        ),
        extract=lambda m: (m.group(2), m.group(1)),
    ),
)


def parse_label(raw: str | None, rules: tuple[LabelRule, ...] = LABEL_RULES) -> LabelResult:
    """
    Split a legacy label into (semester, course).

    Postconditions:
        - ``Parsed``: 1 <= semester <= 12 and course is non-empty, trimmed.
        - ``Unparsed``: raw is the input string, unchanged.
    """
    if raw is None:
        return Unparsed(raw="")
    for rule in rules:
        parsed = rule.apply(raw)
        if parsed is not None:
            return parsed
    return Unparsed(raw=raw)


def strip_course_prefix(course: str, prefixes: tuple[str, ...]) -> str:
    """
    Remove the first matching legacy degree-type prefix ("Bacharelado em").

    Comparison is case-insensitive; the remainder keeps its original text.
    """
    stripped = course.strip()
    lowered = stripped.lower()
    for prefix in sorted(prefixes, key=len, reverse=True):
        p = prefix.strip().lower()
        if p and lowered.startswith(p) and len(stripped) > len(p):
            remainder = stripped[len(p):]
            if remainder[:1].isspace():
                return remainder.strip()
    return stripped
