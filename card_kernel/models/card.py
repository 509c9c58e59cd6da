"""
Module: card_kernel.models.card
Responsibility: ORM persistence for payment cards and their account
    cross-reference (card number -> owning account id).
Architecture position: Kernel > Models.  May import from db/base.py only.

The posting pipeline only reads cards.  Cards are created by the card
onboarding process, which lives outside this package.
"""

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from card_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from card_kernel.models.account import Account


class Card(TrackedBase):
    """
    A payment card and the account it charges.

    Guarantees:
        - card_number is unique and exactly identifies one card.
        - account_id always references an existing Account row.
    """

    __tablename__ = "cards"

    __table_args__ = (
        UniqueConstraint("card_number", name="uq_card_number"),
        Index("idx_card_account", "account_id"),
    )

    card_number: Mapped[str] = mapped_column(String(16), nullable=False)

    account_id: Mapped[str] = mapped_column(
        String(11),
        ForeignKey("accounts.account_id"),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Null means the card never expires
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    account: Mapped["Account"] = relationship(back_populates="cards")

    def __repr__(self) -> str:
        return f"<Card {self.card_number} -> {self.account_id}>"

    def is_expired_on(self, as_of: date) -> bool:
        """True when the card's expiration date is before ``as_of``."""
        return self.expiration_date is not None and self.expiration_date < as_of
