"""
Module: card_kernel.models.transaction
Responsibility: ORM persistence for posted transactions -- the canonical,
    append-only output of a successful posting.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - transaction_id is unique across all runs.
    - Rows are immutable once flushed (db/immutability.py blocks UPDATE and
      DELETE through the ORM).
    - processed_timestamp is the pipeline's processing instant and is
      independent of original_timestamp, which is carried from the input.

Audit relevance:
    run_id and record_offset tie every posted row back to the exact input
    position of the run that produced it.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from card_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from card_kernel.models.account import Account
    from card_kernel.models.card import Card


class PostedTransaction(TrackedBase):
    """An accepted transaction and its association to account and card."""

    __tablename__ = "posted_transactions"

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_posted_transaction_id"),
        Index("idx_posted_account", "account_id"),
        Index("idx_posted_run", "run_id", "record_offset"),
    )

    transaction_id: Mapped[str] = mapped_column(String(32), nullable=False)

    type_code: Mapped[str] = mapped_column(String(2), nullable=False)
    category_code: Mapped[str] = mapped_column(String(4), nullable=False)
    source: Mapped[str | None] = mapped_column(String(10), nullable=True)
    description: Mapped[str | None] = mapped_column(String(100), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    merchant_id: Mapped[str | None] = mapped_column(String(15), nullable=True)
    merchant_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    merchant_city: Mapped[str | None] = mapped_column(String(50), nullable=True)
    merchant_zip: Mapped[str | None] = mapped_column(String(10), nullable=True)

    card_number: Mapped[str] = mapped_column(
        String(16), ForeignKey("cards.card_number"), nullable=False,
    )
    account_id: Mapped[str] = mapped_column(
        String(11), ForeignKey("accounts.account_id"), nullable=False,
    )

    original_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    processed_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    record_offset: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    account: Mapped["Account"] = relationship()
    card: Mapped["Card"] = relationship()

    def __repr__(self) -> str:
        return f"<PostedTransaction {self.transaction_id} {self.amount}>"
