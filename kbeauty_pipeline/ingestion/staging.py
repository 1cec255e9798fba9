"""
Staging Service Module
======================

Workflow over the staging store, where scraped raw records wait for
AI extraction.

Record lifecycle:
    pending -> processing -> processed | duplicate | failed
    failed -> pending (reprocess)

Every write commits on its own so a crash part-way through a batch
leaves each row in a well-defined state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from kbeauty_pipeline.core.enums import PipelineSource, StagingStatus
from kbeauty_pipeline.core.schema import RawProductData, StagingRecord
from kbeauty_pipeline.db.repositories import ProductRepository, StagingRepository

logger = logging.getLogger(__name__)


@dataclass
class StageStats:
    """Counters for a staging pass."""

    scraped: int = 0
    new: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, int | list[str]]:
        """Convert to dictionary for serialization."""
        return {
            "scraped": self.scraped,
            "new": self.new,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "errors": self.errors,
        }


class StagingService:
    """Stage, claim and settle raw records."""

    def __init__(self, session: Session):
        self.session = session
        self.repo = StagingRepository(session)

    def stage(self, raw: RawProductData) -> bool:
        """
        Insert a raw record unless (source, source_id) is already staged.

        Returns:
            True if a new row was written.
        """
        created = self.repo.insert_if_absent(raw)
        self.session.commit()
        return created

    def stage_many(self, records: list[RawProductData], stats: StageStats | None = None) -> StageStats:
        """Stage records one by one, tallying new rows and duplicates."""
        stats = stats or StageStats()
        for raw in records:
            stats.scraped += 1
            if self.stage(raw):
                stats.new += 1
            else:
                stats.duplicates += 1
        return stats

    def claim_batch(self, limit: int) -> list[StagingRecord]:
        """
        Claim up to `limit` pending rows that carry ingredient text.

        Each candidate is moved to processing with a compare-and-swap
        update, so a row claimed by a concurrent worker in the meantime
        is dropped from this batch rather than processed twice.
        """
        candidates = self.repo.list_claimable(limit)
        claimed: list[StagingRecord] = []

        for record in candidates:
            if self.repo.compare_and_set_status(
                record.id, StagingStatus.PENDING, StagingStatus.PROCESSING
            ):
                claimed.append(record.model_copy(update={"status": StagingStatus.PROCESSING}))
            else:
                logger.debug(f"Staging row {record.id} was claimed elsewhere")
        self.session.commit()

        if len(claimed) < len(candidates):
            logger.info(f"Claimed {len(claimed)} of {len(candidates)} candidates")
        return claimed

    def mark_processed(self, record_id: UUID | str, product_id: UUID | str) -> None:
        self.repo.set_status(record_id, StagingStatus.PROCESSED, processed_product_id=product_id)
        self.session.commit()

    def mark_duplicate(self, record_id: UUID | str) -> None:
        self.repo.set_status(record_id, StagingStatus.DUPLICATE)
        self.session.commit()

    def mark_failed(self, record_id: UUID | str, message: str) -> None:
        self.repo.set_status(record_id, StagingStatus.FAILED, error_message=message[:2000])
        self.session.commit()

    def reset_failed(self) -> int:
        """Move all failed rows back to pending. Returns how many were reset."""
        count = self.repo.reset_failed()
        self.session.commit()
        logger.info(f"Reset {count} failed staging rows to pending")
        return count

    def count_remaining(self) -> int:
        """Pending rows that are ready for extraction."""
        return self.repo.count_claimable()

    def find_missing_ingredients(self, source: PipelineSource | str, limit: int) -> list[StagingRecord]:
        """Pending or processed rows of a source that still lack ingredient text."""
        return self.repo.list_missing_ingredients(_source_value(source), limit)

    def count_missing_ingredients(self, source: PipelineSource | str) -> int:
        return self.repo.count_missing_ingredients(_source_value(source))

    def update_raw_data(self, record: StagingRecord, raw: RawProductData) -> None:
        """
        Replace a row's payload with enriched data.

        For rows that were already processed, the new ingredient text is
        also copied onto the linked catalog product.
        """
        self.repo.update_raw_data(record.id, raw)
        if (
            record.status == StagingStatus.PROCESSED
            and record.processed_product_id is not None
            and raw.ingredients_raw
        ):
            ProductRepository(self.session).update_ingredients_raw(
                record.processed_product_id, raw.ingredients_raw
            )
        self.session.commit()

    def count_by_status(self) -> dict[str, int]:
        return self.repo.count_by_status()


def _source_value(source: PipelineSource | str) -> str:
    return source.value if isinstance(source, PipelineSource) else source
