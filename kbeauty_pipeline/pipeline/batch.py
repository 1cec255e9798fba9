"""Batch processing of staged records into catalog products."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kbeauty_pipeline.core.schema import StagingRecord
from kbeauty_pipeline.db.errors import is_unique_violation
from kbeauty_pipeline.db.repositories import ProductRepository
from kbeauty_pipeline.ingestion.staging import StagingService
from kbeauty_pipeline.pipeline.runs import RunTracker
from kbeauty_pipeline.services.ai.cost import CostTracker
from kbeauty_pipeline.services.extraction import ExtractionError, ExtractionService

logger = logging.getLogger(__name__)

MAX_CONCURRENT = 5

Outcome = Literal["processed", "duplicate"]


@dataclass
class BatchResult:
    """Counters for one processing batch."""

    processed: int = 0
    failed: int = 0
    duplicates: int = 0
    remaining: int = 0
    cost: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "duplicates": self.duplicates,
            "remaining": self.remaining,
            "cost": self.cost,
        }


class BatchProcessor:
    """
    Claims pending staged records and turns them into catalog products.

    Records are extracted in chunks of `concurrency`; model calls in a
    chunk run concurrently, database writes for each record commit on
    their own.
    """

    def __init__(
        self,
        session: Session,
        extraction: ExtractionService,
        staging: StagingService | None = None,
        cost_tracker: CostTracker | None = None,
        concurrency: int = MAX_CONCURRENT,
    ):
        self.session = session
        self.extraction = extraction
        self.staging = staging or StagingService(session)
        self.cost_tracker = cost_tracker or CostTracker()
        self.concurrency = max(1, concurrency)
        self.products = ProductRepository(session)

    async def process_batch(self, batch_size: int = 20, run_id: UUID | str | None = None) -> BatchResult:
        """
        Process up to `batch_size` claimable records.

        Args:
            batch_size: Maximum rows to claim.
            run_id: Pipeline run whose counters and cost are updated.
        """
        result = BatchResult()
        records = self.staging.claim_batch(batch_size)

        if not records:
            result.remaining = self.staging.count_remaining()
            result.cost = self.cost_tracker.summary
            return result

        logger.info(f"Processing {len(records)} staged records")

        for start in range(0, len(records), self.concurrency):
            chunk = records[start : start + self.concurrency]
            outcomes = await asyncio.gather(
                *(self._process_one(record) for record in chunk),
                return_exceptions=True,
            )

            for record, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    result.failed += 1
                    self._fail(record, outcome)
                elif outcome == "duplicate":
                    result.duplicates += 1
                else:
                    result.processed += 1

        result.remaining = self.staging.count_remaining()
        result.cost = self.cost_tracker.summary

        if run_id is not None:
            RunTracker(self.session).update(
                run_id,
                metadata={"batch_size": batch_size, "cost_details": result.cost},
                products_processed=result.processed,
                products_failed=result.failed,
                products_duplicates=result.duplicates,
                estimated_cost_usd=result.cost["estimated_cost_usd"],
            )

        logger.info(
            f"Batch complete: {result.processed} processed, {result.duplicates} duplicates, "
            f"{result.failed} failed, {result.remaining} remaining"
        )
        return result

    async def reprocess_failed(self, batch_size: int = 20, run_id: UUID | str | None = None) -> BatchResult:
        """Move failed rows back to pending and run one normal batch."""
        if self.staging.reset_failed() == 0:
            return BatchResult(
                remaining=self.staging.count_remaining(), cost=self.cost_tracker.summary
            )
        return await self.process_batch(batch_size, run_id)

    async def _process_one(self, record: StagingRecord) -> Outcome:
        try:
            extracted = await self.extraction.extract(record.raw_data)
        except ExtractionError as e:
            self.cost_tracker.record(e.usage)
            raise
        self.cost_tracker.record(extracted.usage)
        product = extracted.product

        if self.products.find_by_name_brand(product.name_en, product.brand_en) is not None:
            self.staging.mark_duplicate(record.id)
            return "duplicate"

        try:
            created = self.products.create(product)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if not is_unique_violation(e):
                raise
            logger.debug(f"'{product.brand_en} {product.name_en}' was inserted concurrently")
            self.staging.mark_duplicate(record.id)
            return "duplicate"

        self.staging.mark_processed(record.id, created.id)
        return "processed"

    def _fail(self, record: StagingRecord, error: BaseException) -> None:
        self.session.rollback()
        message = str(error) or error.__class__.__name__
        logger.warning(f"Failed to process staging row {record.id}: {message}")
        self.staging.mark_failed(record.id, message)
