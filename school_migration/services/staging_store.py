"""
Run-scoped staging store.

Staging tables are explicit: a load calls ``reset(extract)`` before writing,
every row is stamped with the load's run_id, and ``StagingLoad`` records
which run last filled each extract.  Phases never truncate staging behind
each other's backs.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import Session

from school_kernel.logging_config import get_logger
from school_migration.models.staging import STAGING_MODELS, StagingLoad, StagingRow

logger = get_logger("migration.staging")


class StagingStore:
    """Typed access to the staging tables for one run."""

    def __init__(self, session: Session, run_id: str):
        self._session = session
        self.run_id = run_id

    @staticmethod
    def model_for(extract: str) -> type[StagingRow]:
        try:
            return STAGING_MODELS[extract]
        except KeyError:
            raise KeyError(f"No staging table for extract {extract!r}") from None

    def reset(self, extract: str) -> int:
        """Delete every staged row of an extract. Returns the number removed."""
        model = self.model_for(extract)
        result = self._session.execute(delete(model))
        removed = result.rowcount or 0
        logger.info("staging_reset", extra={"extract": extract, "rows_removed": removed})
        return removed

    def write_batch(self, extract: str, rows: Sequence[dict[str, Any]]) -> int:
        """
        Insert one batch of coerced rows.

        Each row dict carries the staging attributes plus source_row; run_id
        is stamped here.
        """
        if not rows:
            return 0
        model = self.model_for(extract)
        payload = [{**row, "run_id": self.run_id} for row in rows]
        self._session.execute(insert(model), payload)
        logger.debug("batch_staged", extra={"extract": extract, "rows": len(payload)})
        return len(payload)

    def count(self, extract: str) -> int:
        model = self.model_for(extract)
        return self._session.scalar(select(func.count()).select_from(model)) or 0

    def record_load(
        self,
        extract: str,
        source_path: str,
        rows_read: int,
        rows_staged: int,
        rows_skipped: int,
        loaded_at: datetime,
    ) -> None:
        """Upsert the StagingLoad row describing this extract's latest load."""
        load = self._session.scalars(
            select(StagingLoad).where(StagingLoad.extract == extract)
        ).first()
        if load is None:
            load = StagingLoad(extract=extract)
            self._session.add(load)
        load.run_id = self.run_id
        load.source_path = source_path
        load.rows_read = rows_read
        load.rows_staged = rows_staged
        load.rows_skipped = rows_skipped
        load.loaded_at = loaded_at
        self._session.flush()

    def latest_load(self, extract: str) -> StagingLoad | None:
        return self._session.scalars(
            select(StagingLoad).where(StagingLoad.extract == extract)
        ).first()
