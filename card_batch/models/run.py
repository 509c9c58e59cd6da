"""
ORM model for posting-run persistence.

Contract:
    PostingRunModel persists one row per controller run: run number, status,
    limits, committed counters and timestamps.  ``to_dto()`` returns the
    frozen PostingRun snapshot.

Architecture: card_batch/models.  Imports from card_kernel.db.base only.

Invariants enforced:
    - run_number is UNIQUE and allocated via SequenceService.
    - Counters are written inside each chunk's transaction, so they always
      equal the committed output.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from card_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from card_batch.domain.types import PostingRun


class PostingRunModel(TrackedBase):
    """Persistent posting run record."""

    __tablename__ = "posting_runs"

    __table_args__ = (
        Index("ix_posting_runs_status", "status"),
        Index("ix_posting_runs_processing_date", "processing_date"),
    )

    run_number: Mapped[int] = mapped_column(nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    processing_date: Mapped[date] = mapped_column(Date, nullable=False)
    chunk_size: Mapped[int] = mapped_column(Integer, nullable=False)
    retry_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    skip_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    records_read: Mapped[int] = mapped_column(default=0, nullable=False)
    records_posted: Mapped[int] = mapped_column(default=0, nullable=False)
    records_rejected: Mapped[int] = mapped_column(default=0, nullable=False)
    records_skipped: Mapped[int] = mapped_column(default=0, nullable=False)
    chunks_committed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> PostingRun:
        from card_batch.domain.types import PostingRun, RunCounters, RunStatus

        return PostingRun(
            run_id=self.id,
            run_number=self.run_number,
            status=RunStatus(self.status),
            processing_date=self.processing_date,
            chunk_size=self.chunk_size,
            retry_limit=self.retry_limit,
            skip_limit=self.skip_limit,
            counters=RunCounters(
                read=self.records_read,
                posted=self.records_posted,
                rejected=self.records_rejected,
                skipped=self.records_skipped,
            ),
            chunks_committed=self.chunks_committed,
            started_at=self.started_at,
            completed_at=self.completed_at,
            error_summary=self.error_summary,
        )
