"""Pipeline run bookkeeping."""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import PipelineRunStatus, PipelineRunType
from kbeauty_pipeline.core.schema import PipelineRun
from kbeauty_pipeline.db.repositories import PipelineRunRepository

logger = logging.getLogger(__name__)

MAX_RECORDED_ERRORS = 20


class RunTracker:
    """Creates and updates pipeline_runs rows. Every call commits."""

    def __init__(self, session: Session):
        self.session = session
        self.repo = PipelineRunRepository(session)

    def start(
        self,
        source: str,
        run_type: PipelineRunType,
        metadata: dict[str, Any] | None = None,
    ) -> PipelineRun:
        run = self.repo.create(
            PipelineRun(source=source, run_type=run_type, metadata=dict(metadata or {}))
        )
        self.session.commit()
        logger.debug(f"Started {run_type.value} run {run.id} for {source}")
        return run

    def get(self, run_id: UUID | str) -> PipelineRun | None:
        return self.repo.get_by_id(run_id)

    def update(
        self,
        run_id: UUID | str,
        metadata: dict[str, Any] | None = None,
        **counters: Any,
    ) -> PipelineRun:
        """
        Set counters (products_scraped, products_processed, ...) and merge metadata.

        Raises:
            ValueError: If the run does not exist.
        """
        run = self.repo.get_by_id(run_id)
        if run is None:
            raise ValueError(f"PipelineRun with id {run_id} not found")

        for name, value in counters.items():
            setattr(run, name, value)
        if metadata:
            run.metadata.update(metadata)

        run = self.repo.update(run)
        self.session.commit()
        return run

    def complete(
        self,
        run_id: UUID | str,
        metadata: dict[str, Any] | None = None,
        **counters: Any,
    ) -> PipelineRun:
        return self._finish(run_id, PipelineRunStatus.COMPLETED, metadata, counters)

    def fail(
        self,
        run_id: UUID | str,
        errors: list[str],
        metadata: dict[str, Any] | None = None,
        **counters: Any,
    ) -> PipelineRun:
        merged = dict(metadata or {})
        merged["errors"] = errors[-MAX_RECORDED_ERRORS:]
        return self._finish(run_id, PipelineRunStatus.FAILED, merged, counters)

    def list_recent(
        self, limit: int = 20, run_type: PipelineRunType | None = None
    ) -> list[PipelineRun]:
        return self.repo.list_recent(limit, run_type)

    def _finish(
        self,
        run_id: UUID | str,
        status: PipelineRunStatus,
        metadata: dict[str, Any] | None,
        counters: dict[str, Any],
    ) -> PipelineRun:
        run = self.repo.get_by_id(run_id)
        if run is None:
            raise ValueError(f"PipelineRun with id {run_id} not found")

        for name, value in counters.items():
            setattr(run, name, value)
        if metadata:
            run.metadata.update(metadata)
        run.status = status
        run.completed_at = datetime.now(UTC)

        run = self.repo.update(run)
        self.session.commit()
        logger.info(f"Run {run.id} ({run.run_type.value}) {status.value}")
        return run
