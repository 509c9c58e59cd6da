"""
Module: card_kernel.selectors.reference_selector
Responsibility: SQLAlchemy implementation of ReferencePorts -- card, account
    and category-balance lookups used by validation and posting.
Architecture position: Kernel > Selectors.  Satisfies the
    card_kernel.domain.ports.ReferencePorts protocol.

Invariants enforced:
    - Account and CategoryBalance rows are read with SELECT ... FOR UPDATE
      (row locks on PostgreSQL; a no-op on SQLite) so concurrent runs
      serialize on the rows they mutate.
    - find_or_create_category_balance is the only write path in this module.
      It creates the row at 0.00 inside a SAVEPOINT and retries the lookup on
      a concurrent-insert IntegrityError.

Failure modes:
    - Driver errors (OperationalError and friends) propagate unchanged; the
      chunk controller classifies them as transient.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from card_kernel.db.types import ZERO
from card_kernel.logging_config import get_logger
from card_kernel.models.account import Account
from card_kernel.models.card import Card
from card_kernel.models.category_balance import CategoryBalance
from card_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.reference")


class SqlAlchemyReferencePorts(BaseSelector[Card]):
    """Reference lookups against the cards, accounts and category_balances tables."""

    def __init__(self, session: Session):
        super().__init__(session)

    def find_card_by_number(self, card_number: str) -> Card | None:
        return self.session.execute(
            select(Card).where(Card.card_number == card_number)
        ).scalar_one_or_none()

    def find_account_by_id(self, account_id: str) -> Account | None:
        return self.session.execute(
            select(Account)
            .where(Account.account_id == account_id)
            .with_for_update()
        ).scalar_one_or_none()

    def _locked_category_balance(
        self, account_id: str, category_code: str,
    ) -> CategoryBalance | None:
        return self.session.execute(
            select(CategoryBalance)
            .where(
                CategoryBalance.account_id == account_id,
                CategoryBalance.category_code == category_code,
            )
            .with_for_update()
        ).scalar_one_or_none()

    def find_or_create_category_balance(
        self, account_id: str, category_code: str,
    ) -> CategoryBalance:
        balance = self._locked_category_balance(account_id, category_code)
        if balance is not None:
            return balance

        savepoint = self.session.begin_nested()
        try:
            balance = CategoryBalance(
                account_id=account_id,
                category_code=category_code,
                balance=ZERO,
            )
            self.session.add(balance)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "category_balance_created",
                extra={"account_id": account_id, "category_code": category_code},
            )
            return balance
        except IntegrityError:
            # Another transaction created the row first
            logger.debug(
                "category_balance_race_retry",
                extra={"account_id": account_id, "category_code": category_code},
            )
            savepoint.rollback()
            balance = self._locked_category_balance(account_id, category_code)
            if balance is None:
                raise
            return balance
