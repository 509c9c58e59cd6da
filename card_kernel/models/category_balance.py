"""
Module: card_kernel.models.category_balance
Responsibility: ORM persistence for per-account, per-category running
    balances.
Architecture position: Kernel > Models.  May import from db/base.py only.

Rows are created lazily the first time an account posts in a category and
are never deleted by the pipeline.
"""

from decimal import Decimal

from sqlalchemy import Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from card_kernel.db.base import TrackedBase
from card_kernel.db.types import ZERO


class CategoryBalance(TrackedBase):
    """Accumulated balance keyed by (account_id, category_code)."""

    __tablename__ = "category_balances"

    __table_args__ = (
        UniqueConstraint(
            "account_id", "category_code", name="uq_category_balance_key",
        ),
        Index("idx_category_balance_account", "account_id"),
    )

    account_id: Mapped[str] = mapped_column(String(11), nullable=False)

    category_code: Mapped[str] = mapped_column(String(4), nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=ZERO, nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<CategoryBalance {self.account_id}/{self.category_code} "
            f"balance={self.balance}>"
        )
