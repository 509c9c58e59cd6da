"""
PostingEngine -- applies a validated transaction to reference state.

Responsibility:
    For an input whose ValidationOutcome passed: assign its transaction id,
    move the account and category balances, and append the PostedTransaction
    row.  All three writes land together or not at all.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the chunk controller
    once per accepted record, inside that record's SAVEPOINT.

Invariants enforced:
    - Exact arithmetic: balances are 2-digit fixed point, HALF_EVEN.
    - current_balance += amount.  Exactly one cycle accumulator moves:
      credits (amount >= 0) add to current_cycle_credit; debits add their
      magnitude to current_cycle_debit.
    - CategoryBalance(account, category) += amount, created on first use.
    - Transaction ids are unique.  Generated ids are a pure function of
      (processing date, run number, input offset), so re-posting a retried
      chunk regenerates identical ids.
    - Flush-only: the engine never commits.

Failure modes:
    - ValidationNotPassedError if handed a failed outcome.
    - DuplicateTransactionError if the transaction id is already posted.
    - Storage errors propagate after the engine's own SAVEPOINT is rolled
      back, leaving no partial mutation behind.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from card_kernel.db.types import money_add, money_sub
from card_kernel.domain.clock import Clock
from card_kernel.domain.dtos import (
    PostedTransactionRecord,
    TransactionInput,
    ValidationOutcome,
)
from card_kernel.domain.ports import ReferencePorts
from card_kernel.exceptions import DuplicateTransactionError, ValidationNotPassedError
from card_kernel.logging_config import get_logger
from card_kernel.models.transaction import PostedTransaction
from card_kernel.services.base import BaseService

logger = get_logger("services.posting_engine")


class TransactionIdGenerator:
    """
    Deterministic transaction ids: YYYYMMDD + 6-digit run number +
    10-digit input offset (24 characters).
    """

    RUN_NUMBER_WIDTH = 6
    OFFSET_WIDTH = 10

    def __init__(self, processing_date: date, run_number: int):
        if not 0 < run_number < 10 ** self.RUN_NUMBER_WIDTH:
            raise ValueError(f"run_number out of range: {run_number}")
        self._prefix = f"{processing_date:%Y%m%d}{run_number:0{self.RUN_NUMBER_WIDTH}d}"

    def generate(self, record_offset: int) -> str:
        if not 0 <= record_offset < 10 ** self.OFFSET_WIDTH:
            raise ValueError(f"record_offset out of range: {record_offset}")
        return f"{self._prefix}{record_offset:0{self.OFFSET_WIDTH}d}"


class PostingEngine(BaseService[PostedTransaction]):
    """
    Posts validated transactions.

    Contract:
        post() requires a passed ValidationOutcome whose account was read
        with a row lock in the current transaction.
    """

    def __init__(
        self,
        session: Session,
        ports: ReferencePorts,
        clock: Clock,
        id_generator: TransactionIdGenerator | None = None,
    ):
        super().__init__(session)
        self._ports = ports
        self._clock = clock
        self._id_generator = id_generator
        self.posted_count = 0

    def _assign_transaction_id(
        self, txn: TransactionInput, record_offset: int | None,
    ) -> str:
        if txn.transaction_id:
            return txn.transaction_id
        if self._id_generator is None or record_offset is None:
            raise ValueError(
                "Input has no transaction id and no generator/offset to build one"
            )
        return self._id_generator.generate(record_offset)

    def _ensure_not_posted(self, transaction_id: str) -> None:
        existing = self.session.execute(
            select(PostedTransaction.id)
            .where(PostedTransaction.transaction_id == transaction_id)
        ).first()
        if existing is not None:
            raise DuplicateTransactionError(transaction_id)

    def post(
        self,
        txn: TransactionInput,
        outcome: ValidationOutcome,
        *,
        run_id: UUID | None = None,
        record_offset: int | None = None,
    ) -> PostedTransactionRecord:
        """
        Apply ``txn`` to its account and category balance and record it.

        Returns:
            PostedTransactionRecord for the new row.
        """
        if not outcome.passed:
            raise ValidationNotPassedError(outcome.failure_code)

        transaction_id = self._assign_transaction_id(txn, record_offset)
        account = outcome.account
        card = outcome.card
        amount = outcome.amount

        savepoint = self.session.begin_nested()
        try:
            self._ensure_not_posted(transaction_id)

            account.current_balance = money_add(account.current_balance, amount)
            if amount >= 0:
                account.current_cycle_credit = money_add(
                    account.current_cycle_credit, amount,
                )
            else:
                account.current_cycle_debit = money_sub(
                    account.current_cycle_debit, amount,
                )

            category = self._ports.find_or_create_category_balance(
                account.account_id, txn.category_code,
            )
            category.balance = money_add(category.balance, amount)

            posted = PostedTransaction(
                transaction_id=transaction_id,
                type_code=txn.type_code,
                category_code=txn.category_code,
                source=txn.source,
                description=txn.description,
                amount=amount,
                merchant_id=txn.merchant_id,
                merchant_name=txn.merchant_name,
                merchant_city=txn.merchant_city,
                merchant_zip=txn.merchant_zip,
                card_number=card.card_number,
                account_id=account.account_id,
                original_timestamp=txn.original_timestamp,
                processed_timestamp=self._clock.now(),
                run_id=run_id,
                record_offset=record_offset,
            )
            self.session.add(posted)
            self.session.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        self.posted_count += 1
        logger.info(
            "transaction_posted",
            extra={
                "transaction_id": transaction_id,
                "account_id": account.account_id,
                "category_code": txn.category_code,
                "amount": str(amount),
            },
        )
        return PostedTransactionRecord.from_model(posted)
