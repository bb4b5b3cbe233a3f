"""
Keyed upsert over one mapping table.

Existing rows are preloaded into a dict so a batch loop does one SELECT per
table instead of one per legacy key; writes are select-then-update-or-insert
on the natural key, so rerunning a phase never duplicates a row.  Rows with
match_type = manual are left alone unless the caller is itself applying a
manual decision.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_migration.domain.types import RESOLVED_MATCH_TYPES, MappingEntry, MatchType
from school_migration.models.mapping import MappingRow

M = TypeVar("M", bound=MappingRow)


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    MANUAL_KEPT = "manual_kept"  # automatic result discarded, manual row wins


def entry_from_row(row: MappingRow) -> MappingEntry:
    """Rebuild the domain entry stored in a mapping row."""
    candidates = tuple(int(c) for c in row.candidate_ids.split(",")) if row.candidate_ids else ()
    return MappingEntry(
        old_key=row.old_key,
        new_id=row.new_id,
        match_type=MatchType(row.match_type),
        similarity_score=row.similarity_score,
        old_label=row.old_label,
        candidate_ids=candidates,
    )


class MappingStore(Generic[M]):
    """Upserts MappingEntry results into one mapping table, keyed by old_key."""

    def __init__(self, session: Session, model: type[M], **scope: Any):
        """
        Args:
            model: the mapping ORM class.
            scope: extra equality filters that are part of the natural key
                (e.g. key_kind="code" for the discipline mapping).
        """
        self._session = session
        self._model = model
        self._scope = scope
        self._rows: dict[str, M] | None = None

    def _load(self) -> dict[str, M]:
        if self._rows is None:
            stmt = select(self._model)
            for column, value in self._scope.items():
                stmt = stmt.where(getattr(self._model, column) == value)
            self._rows = {row.old_key: row for row in self._session.scalars(stmt)}
        return self._rows

    def get(self, old_key: str) -> M | None:
        return self._load().get(old_key)

    def rows(self) -> list[M]:
        return sorted(self._load().values(), key=lambda r: r.old_key)

    def upsert(
        self,
        entry: MappingEntry,
        *,
        manual: bool = False,
        **extra: Any,
    ) -> tuple[M, UpsertOutcome]:
        """
        Insert or update the row for entry.old_key.

        Postconditions:
            - Exactly one row exists for the key.
            - A manual row is only replaced when manual=True.
            - Columns in extra are always written; on MANUAL_KEPT they are
              the only columns that change.
        """
        rows = self._load()
        row = rows.get(entry.old_key)
        values = {
            "old_label": entry.old_label,
            "new_id": entry.new_id,
            "match_type": entry.match_type.value,
            "similarity_score": entry.similarity_score,
            "candidate_ids": ",".join(str(c) for c in entry.candidate_ids) or None,
        }

        if row is None:
            row = self._model(old_key=entry.old_key, **self._scope, **values, **extra)
            self._session.add(row)
            rows[entry.old_key] = row
            return row, UpsertOutcome.INSERTED

        if row.match_type == MatchType.MANUAL.value and not manual:
            self._assign(row, extra)
            return row, UpsertOutcome.MANUAL_KEPT

        changed = self._assign(row, {**values, **extra})
        return row, UpsertOutcome.UPDATED if changed else UpsertOutcome.UNCHANGED

    @staticmethod
    def _assign(row: MappingRow, values: dict[str, Any]) -> bool:
        changed = False
        for column, value in values.items():
            if getattr(row, column) != value:
                setattr(row, column, value)
                changed = True
        return changed


def resolved_targets(session: Session, model: type[MappingRow], **scope: Any) -> dict[str, int]:
    """old_key -> new_id for every row downstream phases may use."""
    stmt = select(model.old_key, model.new_id).where(
        model.new_id.is_not(None),
        model.match_type.in_([m.value for m in RESOLVED_MATCH_TYPES]),
    )
    for column, value in scope.items():
        stmt = stmt.where(getattr(model, column) == value)
    return {old_key: new_id for old_key, new_id in session.execute(stmt)}
