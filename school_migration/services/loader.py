"""
CSV ingestion loader: legacy extract -> staging table.

Flow per extract: check the file exists, reset the extract's staging table,
read rows with the declared encoding, delimiter and quoting, coerce each field
(comma decimals, empty -> NULL), write in bounded batches, record the load.

Failure modes:
    - Missing file -> MissingSourceFileError (fatal; the phase rolls back
      and the previous staging content survives).
    - Header without the extract's columns, or a file that is not in the
      declared encoding -> ConfigurationError (fatal).
    - A line the csv module rejects, a wrong field count, or an empty or
      oversized key field -> row skipped with a ``row_skipped`` warning,
      counted as skipped.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from school_config.schema import STAGED_EXTRACTS, ExtractSource, MigrationConfig
from school_kernel.domain.clock import Clock, SystemClock
from school_kernel.exceptions import ConfigurationError, MissingSourceFileError
from school_kernel.logging_config import LogContext, get_logger
from school_migration.adapters.csv_adapter import CsvExtractReader, HeaderMismatchError
from school_migration.adapters.extracts import coerce_row, get_definition
from school_migration.domain.types import PhaseResult
from school_migration.services.staging_store import StagingStore

logger = get_logger("migration.loader")


class ExtractLoader:
    """Loads legacy extracts into the run-scoped staging store."""

    def __init__(
        self,
        session: Session,
        config: MigrationConfig,
        run_id: str,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._store = StagingStore(session, run_id)

    @property
    def store(self) -> StagingStore:
        return self._store

    def load_all(self) -> PhaseResult:
        """Load every configured staged extract, in the documented order."""
        result = PhaseResult(phase="load")
        configured = [name for name in STAGED_EXTRACTS if self._config.extract(name)]
        if not configured:
            raise ConfigurationError("no staged extracts configured", key="extracts")
        for name in configured:
            result.merge(self.load_extract(name))
        return result

    def load_extract(self, extract: str, path: Path | None = None) -> PhaseResult:
        """
        Load one extract into its staging table.

        Preconditions:
            - extract is a staged extract name; path defaults to the
              configured file.
        Postconditions:
            - The staging table holds exactly the usable rows of this file,
              stamped with this run_id.
        Raises:
            MissingSourceFileError: if the file does not exist.
            ConfigurationError: if the extract is unknown or unconfigured,
                its header lacks columns, or its encoding is wrong.
        """
        if extract not in STAGED_EXTRACTS:
            raise ConfigurationError(f"{extract!r} is not a staged extract", key="extract")
        source = self._config.extract(extract)
        if source is None and path is None:
            raise ConfigurationError(f"extract {extract!r} not configured", key=f"extracts.{extract}")
        if source is None:
            source = ExtractSource(name=extract, path=path)
        elif path is not None:
            source = replace(source, path=path)

        if not source.path.is_file():
            raise MissingSourceFileError(extract, str(source.path))

        result = PhaseResult(phase="load")
        with LogContext.bind(extract=extract):
            logger.info(
                "extract_load_started",
                extra={"path": str(source.path), "encoding": source.encoding},
            )
            self._store.reset(extract)
            try:
                rows_read = self._stage_rows(source, result)
            except HeaderMismatchError as exc:
                raise ConfigurationError(str(exc), key=f"extracts.{extract}") from exc
            except UnicodeDecodeError as exc:
                raise ConfigurationError(
                    f"{source.path.name} is not valid {source.encoding}: {exc.reason}",
                    key=f"extracts.{extract}.encoding",
                ) from exc

            self._store.record_load(
                extract,
                source_path=str(source.path),
                rows_read=rows_read,
                rows_staged=result.succeeded,
                rows_skipped=result.skipped,
                loaded_at=self._clock.now(),
            )
            result.bump(f"staged_{extract}", result.succeeded)
            logger.info(
                "extract_loaded",
                extra={
                    "rows_read": rows_read,
                    "rows_staged": result.succeeded,
                    "rows_skipped": result.skipped,
                },
            )
        return result

    def _stage_rows(self, source: ExtractSource, result: PhaseResult) -> int:
        definition = get_definition(source.name)
        reader = CsvExtractReader(
            encoding=source.encoding,
            delimiter=source.delimiter,
            has_header=source.has_header,
            quoting=source.quoting,
        )
        batch_size = self._config.batch_size
        batch: list[dict[str, Any]] = []
        rows_read = 0

        for raw in reader.read(source.path, definition.columns):
            rows_read += 1
            if raw.is_malformed:
                self._skip(result, raw.source_row, raw.problem or "malformed row")
                continue

            coerced = coerce_row(definition, raw.values)
            if not coerced.usable:
                missing = ", ".join(coerced.missing)
                self._skip(result, raw.source_row, f"empty or invalid key field {missing}")
                continue
            if coerced.invalid:
                logger.debug(
                    "field_nulled",
                    extra={"source_row": raw.source_row, "fields": coerced.invalid},
                )

            batch.append({**coerced.values, "source_row": raw.source_row})
            if len(batch) >= batch_size:
                result.success(self._store.write_batch(source.name, batch))
                batch = []

        if batch:
            result.success(self._store.write_batch(source.name, batch))
        return rows_read

    @staticmethod
    def _skip(result: PhaseResult, source_row: int, reason: str) -> None:
        result.skip()
        logger.warning("row_skipped", extra={"source_row": source_row, "reason": reason})
