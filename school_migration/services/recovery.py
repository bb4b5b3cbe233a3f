"""
Data-quality recovery pass: semester provenance on historical evaluations.

The evaluations phase anchors legacy grades on synthetic evaluations and
loses the legacy semester label in the process.  This pass walks the same
(class, discipline) pairs, re-parses each raw semester label and writes
``original_semester``, ``original_course_name`` and
``original_semester_raw`` onto the pair's historical evaluations.

Never creates evaluations.  Triples are processed in sorted order, so when a
pair carries more than one raw label the last one in that order wins on
every run.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_config.schema import MigrationConfig
from school_kernel.logging_config import get_logger
from school_kernel.models.evaluation import Evaluation
from school_migration.domain.labels import parse_label
from school_migration.domain.types import PhaseResult
from school_migration.services.evaluations import reachable_rows

logger = get_logger("migration.recovery")


class ProvenanceRecovery:
    """The recover phase."""

    def __init__(self, session: Session, config: MigrationConfig):
        self._session = session
        self._config = config

    def triples(self) -> list[tuple[int, int, str]]:
        """Sorted distinct (class_id, discipline_id, raw label) with a non-blank label."""
        mapped, _ = reachable_rows(self._session)
        return sorted(
            {
                (target.class_id, target.discipline_id, row.semester_label)
                for row, target in mapped
                if row.semester_label and row.semester_label.strip()
            }
        )

    def run(self) -> PhaseResult:
        result = PhaseResult(phase="recover")
        names = [t.name for t in self._config.evaluation_templates]
        evaluations: dict[tuple[int, int], list[Evaluation]] = {}
        for evaluation in self._session.scalars(
            select(Evaluation).where(Evaluation.name.in_(names)).order_by(Evaluation.id)
        ):
            evaluations.setdefault((evaluation.class_id, evaluation.discipline_id), []).append(evaluation)

        seen: dict[tuple[int, int], str] = {}
        for class_id, discipline_id, raw in self.triples():
            pair = (class_id, discipline_id)
            targets = evaluations.get(pair)
            if not targets:
                result.skip()
                result.bump("pairs_without_evaluations")
                continue
            if pair in seen:
                result.bump("pairs_with_several_labels")
                logger.info(
                    "semester_label_replaced",
                    extra={"class_id": class_id, "discipline_id": discipline_id, "previous": seen[pair], "raw": raw},
                )
            seen[pair] = raw

            parsed = parse_label(raw)
            if parsed.semester is None:
                result.bump("labels_unparsed")
            for evaluation in targets:
                evaluation.original_semester = parsed.semester
                evaluation.original_course_name = parsed.course.strip() or None
                evaluation.original_semester_raw = raw
                result.bump("evaluations_updated")
            result.success()

        self._session.flush()
        logger.info(
            "provenance_recovered",
            extra={"pairs": len(seen), "evaluations_updated": result.details.get("evaluations_updated", 0)},
        )
        return result
