"""
Delimited legacy extract reader.

Uses csv.reader with the extract's declared encoding, delimiter and quoting.
Handles BOM via utf-8-sig when encoding is utf-8. Streams rows.

Legacy exports never put a record on more than one line, so every physical
line is parsed on its own: an unbalanced quote or an oversized cell costs
its own row only.  A row the csv module rejects, or whose field count does
not match the header, is yielded as malformed instead of raising, so the
loader can skip it and carry on.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

_QUOTING = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "none": csv.QUOTE_NONE,
}


@dataclass(frozen=True)
class RawRow:
    """One data row of an extract, or the reason it could not be read."""

    source_row: int  # 1-based, header excluded
    values: dict[str, str] | None
    problem: str | None = None

    @property
    def is_malformed(self) -> bool:
        return self.values is None


class HeaderMismatchError(ValueError):
    """The extract header lacks columns the extract definition requires."""

    def __init__(self, path: Path, missing: tuple[str, ...]):
        self.path = path
        self.missing = missing
        super().__init__(f"{path.name}: missing columns {', '.join(missing)}")


def _get_encoding(encoding: str) -> str:
    if encoding.lower().replace("_", "-") in ("utf-8", "utf8"):
        return "utf-8-sig"  # Strip BOM if present
    return encoding


def _get_quoting(quoting: str | int) -> int:
    if isinstance(quoting, int):
        return quoting
    return _QUOTING.get(str(quoting).lower(), csv.QUOTE_MINIMAL)


def _normalize_header(name: str) -> str:
    return name.strip().strip('"').lower()


class CsvExtractReader:
    """Read a legacy extract as one RawRow per data line."""

    def __init__(
        self,
        encoding: str = "utf-8",
        delimiter: str = ";",
        has_header: bool = True,
        quoting: str | int = "minimal",
    ):
        self.encoding = _get_encoding(encoding)
        self.delimiter = delimiter
        self.has_header = has_header
        self.quoting = _get_quoting(quoting)

    def _parse_line(self, line: str) -> list[str]:
        row = next(csv.reader([line], delimiter=self.delimiter, quoting=self.quoting), [])
        if row and row[-1].endswith(("\r", "\n")):
            raise csv.Error("unterminated quoted field")
        return row

    def read(self, path: Path, columns: tuple[str, ...]) -> Iterator[RawRow]:
        """
        Yield rows keyed by the extract's column names.

        With a header, columns are located by (case-insensitive) name and
        extra columns are ignored.  Without one, columns are positional.

        Raises:
            FileNotFoundError: if path does not exist.
            HeaderMismatchError: if the header lacks a required column.
            UnicodeDecodeError: if the file is not in the declared encoding.
        """
        with path.open("r", encoding=self.encoding, newline="") as f:
            lines = iter(f)

            if self.has_header:
                header_line = next(lines, None)
                if header_line is None:
                    return
                try:
                    header = self._parse_line(header_line)
                except csv.Error:
                    header = []
                names = [_normalize_header(h) for h in header]
                missing = tuple(c for c in columns if c not in names)
                if missing:
                    raise HeaderMismatchError(path, missing)
                positions = {c: names.index(c) for c in columns}
                width = len(header)
            else:
                positions = {c: i for i, c in enumerate(columns)}
                width = len(columns)

            source_row = 0
            for line in lines:
                if not line.strip():
                    continue  # blank line
                try:
                    row, problem = self._parse_line(line), None
                except csv.Error as exc:
                    row, problem = [], str(exc)
                if problem is None and all(not cell.strip() for cell in row):
                    continue  # only delimiters
                source_row += 1
                if problem is None and len(row) != width:
                    problem = f"expected {width} fields, found {len(row)}"
                if problem is not None:
                    yield RawRow(source_row=source_row, values=None, problem=problem)
                    continue
                yield RawRow(
                    source_row=source_row,
                    values={c: row[i] for c, i in positions.items()},
                )
