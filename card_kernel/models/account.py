"""
Module: card_kernel.models.account
Responsibility: ORM persistence for card accounts -- the balance and cycle
    accumulators that every posted transaction mutates.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - Money columns are Numeric(15, 2); arithmetic on them goes through
      card_kernel.db.types so no float ever reaches a balance.
    - The credit limit is an admission check at posting time (see the
      validation chain), not a constraint on stored state.  Cycle
      accumulators may exceed it transiently and are reset by the
      statement cycle, outside this pipeline.

Failure modes:
    - A missing or inactive account surfaces as failure code 101 from the
      validation chain, never as an exception from this model.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from card_kernel.db.base import TrackedBase
from card_kernel.db.types import ZERO

if TYPE_CHECKING:
    from card_kernel.models.card import Card


class Account(TrackedBase):
    """
    A card account.

    Guarantees:
        - account_id is unique.
        - current_balance changes by exactly the posted amount per posting.
        - current_cycle_credit accumulates non-negative amounts.
        - current_cycle_debit accumulates the magnitude of negative amounts.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("account_id", name="uq_account_id"),
        Index("idx_account_active", "is_active"),
    )

    account_id: Mapped[str] = mapped_column(String(11), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False,
    )

    credit_limit: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False,
    )

    current_cycle_credit: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False,
    )

    current_cycle_debit: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False,
    )

    # Null means the account never expires
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    cards: Mapped[list["Card"]] = relationship(back_populates="account")

    def __repr__(self) -> str:
        return f"<Account {self.account_id} balance={self.current_balance}>"

    @property
    def cycle_net(self) -> Decimal:
        """Current-cycle credits minus current-cycle debits."""
        return self.current_cycle_credit - self.current_cycle_debit
