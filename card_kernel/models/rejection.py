"""
Module: card_kernel.models.rejection
Responsibility: ORM persistence for rejected transactions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - transaction_data holds the input record verbatim (JSON), so an
      operator can correct and resubmit it as a new input.
    - Rows are immutable and append-only; a rejection is never promoted
      to a posted transaction, even if its cause is later fixed.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from card_kernel.db.base import TrackedBase, UUIDString


class TransactionRejection(TrackedBase):
    """A transaction routed to the rejection stream, with its failure reason."""

    __tablename__ = "transaction_rejections"

    __table_args__ = (
        Index("idx_rejection_run", "run_id", "record_offset"),
        Index("idx_rejection_code", "failure_code"),
    )

    transaction_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    card_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    failure_code: Mapped[int] = mapped_column(Integer, nullable=False)
    failure_description: Mapped[str] = mapped_column(String(200), nullable=False)

    transaction_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    rejected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    record_offset: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<TransactionRejection {self.failure_code} {self.transaction_id}>"
