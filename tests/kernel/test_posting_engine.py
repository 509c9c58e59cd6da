"""
Tests for card_kernel.services.posting_engine.

Validates balance and cycle-accumulator updates, category balance upsert,
transaction id assignment, duplicate detection and all-or-nothing writes.

Uses in-memory SQLite (see tests/conftest.py).
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from card_kernel.domain.dtos import FailureCode, ValidationOutcome
from card_kernel.domain.validation import ValidationChain
from card_kernel.exceptions import DuplicateTransactionError, ValidationNotPassedError
from card_kernel.models.account import Account
from card_kernel.models.category_balance import CategoryBalance
from card_kernel.models.transaction import PostedTransaction
from card_kernel.selectors.reference_selector import SqlAlchemyReferencePorts
from card_kernel.services.posting_engine import PostingEngine, TransactionIdGenerator

PROCESSING_DATE = date(2024, 3, 15)


class ExplodingCategoryPorts(SqlAlchemyReferencePorts):
    """Fails after the account has already been mutated in memory."""

    def find_or_create_category_balance(self, account_id, category_code):
        raise RuntimeError("category store unavailable")


@pytest.fixture
def ports(session):
    return SqlAlchemyReferencePorts(session)


@pytest.fixture
def posting(session, ports, clock):
    return PostingEngine(
        session, ports, clock, TransactionIdGenerator(PROCESSING_DATE, 7),
    )


@pytest.fixture
def validate(ports):
    chain = ValidationChain(ports, processing_date=PROCESSING_DATE)
    return chain.validate


@pytest.fixture
def account(session, add_account, add_card):
    acct = add_account(credit_limit=Decimal("500.00"))
    add_card()
    return acct


def _posted_count(session) -> int:
    return session.execute(select(func.count(PostedTransaction.id))).scalar_one()


class TestTransactionIdGenerator:
    def test_format(self):
        gen = TransactionIdGenerator(date(2024, 3, 15), 7)
        assert gen.generate(42) == "202403150000070000000042"
        assert len(gen.generate(0)) == 24

    def test_same_position_same_id(self):
        a = TransactionIdGenerator(date(2024, 3, 15), 3)
        b = TransactionIdGenerator(date(2024, 3, 15), 3)
        assert a.generate(599) == b.generate(599)

    def test_different_runs_differ(self):
        a = TransactionIdGenerator(date(2024, 3, 15), 3)
        b = TransactionIdGenerator(date(2024, 3, 15), 4)
        assert a.generate(0) != b.generate(0)

    @pytest.mark.parametrize("run_number", [0, -1, 1_000_000])
    def test_run_number_range(self, run_number):
        with pytest.raises(ValueError):
            TransactionIdGenerator(date(2024, 3, 15), run_number)

    def test_offset_range(self):
        gen = TransactionIdGenerator(date(2024, 3, 15), 1)
        with pytest.raises(ValueError):
            gen.generate(-1)
        with pytest.raises(ValueError):
            gen.generate(10_000_000_000)


class TestPostCredit:
    def test_balance_and_cycle_credit_increase_exactly(
        self, session, posting, validate, account, make_txn,
    ):
        txn = make_txn(amount=Decimal("100.00"))
        record = posting.post(txn, validate(txn), record_offset=42)

        assert account.current_balance == Decimal("100.00")
        assert account.current_cycle_credit == Decimal("100.00")
        assert account.current_cycle_debit == Decimal("0.00")
        assert record.transaction_id == "202403150000070000000042"
        assert record.amount == Decimal("100.00")
        assert record.account_id == account.account_id
        assert posting.posted_count == 1

    def test_processed_timestamp_comes_from_clock(
        self, posting, validate, account, make_txn, clock,
    ):
        txn = make_txn()
        record = posting.post(txn, validate(txn), record_offset=0)
        assert record.processed_timestamp == clock.now()
        assert record.original_timestamp == txn.original_timestamp

    def test_all_input_fields_are_carried(
        self, session, posting, validate, account, make_txn,
    ):
        txn = make_txn(merchant_name="Hardware Depot", source="ONLINE")
        posting.post(txn, validate(txn), record_offset=1)
        row = session.execute(select(PostedTransaction)).scalar_one()
        assert row.merchant_name == "Hardware Depot"
        assert row.source == "ONLINE"
        assert row.card_number == txn.card_number
        assert row.type_code == "01"
        assert row.category_code == "0001"

    def test_supplied_transaction_id_is_used(
        self, posting, validate, account, make_txn,
    ):
        txn = make_txn(transaction_id="TXN-0001")
        assert posting.post(txn, validate(txn)).transaction_id == "TXN-0001"


class TestPostDebit:
    def test_debit_grows_debit_accumulator_by_magnitude(
        self, posting, validate, account, make_txn,
    ):
        txn = make_txn(amount=Decimal("-50.00"))
        outcome = validate(txn)
        assert outcome.passed

        posting.post(txn, outcome, record_offset=0)

        assert account.current_balance == Decimal("-50.00")
        assert account.current_cycle_debit == Decimal("50.00")
        assert account.current_cycle_credit == Decimal("0.00")

    def test_zero_amount_counts_as_credit(
        self, posting, validate, account, make_txn,
    ):
        txn = make_txn(amount=Decimal("0.00"))
        posting.post(txn, validate(txn), record_offset=0)
        assert account.current_cycle_credit == Decimal("0.00")
        assert account.current_cycle_debit == Decimal("0.00")


class TestCategoryBalance:
    def test_created_with_first_amount_then_incremented(
        self, session, posting, validate, account, make_txn,
    ):
        first = make_txn(amount=Decimal("40.00"))
        posting.post(first, validate(first), record_offset=0)
        second = make_txn(amount=Decimal("-15.25"))
        posting.post(second, validate(second), record_offset=1)

        rows = session.execute(select(CategoryBalance)).scalars().all()
        assert len(rows) == 1
        assert rows[0].balance == Decimal("24.75")

    def test_categories_are_kept_apart(
        self, session, posting, validate, account, make_txn,
    ):
        for offset, category in enumerate(["0001", "0002"]):
            txn = make_txn(category_code=category, amount=Decimal("10.00"))
            posting.post(txn, validate(txn), record_offset=offset)

        balances = {
            row.category_code: row.balance
            for row in session.execute(select(CategoryBalance)).scalars()
        }
        assert balances == {"0001": Decimal("10.00"), "0002": Decimal("10.00")}


class TestPostingRefusals:
    def test_failed_outcome_is_refused(self, posting, account, make_txn):
        outcome = ValidationOutcome.failure(FailureCode.OVERLIMIT, "OVERLIMIT TRANSACTION")
        with pytest.raises(ValidationNotPassedError) as exc_info:
            posting.post(make_txn(), outcome)
        assert exc_info.value.failure_code == FailureCode.OVERLIMIT

    def test_missing_id_without_offset_is_refused(
        self, posting, validate, account, make_txn,
    ):
        txn = make_txn()
        with pytest.raises(ValueError):
            posting.post(txn, validate(txn))

    def test_duplicate_supplied_id_leaves_state_untouched(
        self, session, posting, validate, account, make_txn,
    ):
        txn = make_txn(transaction_id="TXN-DUP", amount=Decimal("20.00"))
        posting.post(txn, validate(txn))

        with pytest.raises(DuplicateTransactionError) as exc_info:
            posting.post(txn, validate(txn))

        assert exc_info.value.transaction_id == "TXN-DUP"
        assert account.current_balance == Decimal("20.00")
        assert _posted_count(session) == 1


class TestAtomicity:
    def test_failure_after_account_update_rolls_back_everything(
        self, session, account, make_txn, clock,
    ):
        ports = ExplodingCategoryPorts(session)
        engine = PostingEngine(
            session, ports, clock, TransactionIdGenerator(PROCESSING_DATE, 1),
        )
        chain = ValidationChain(ports, processing_date=PROCESSING_DATE)
        txn = make_txn(amount=Decimal("75.00"))

        with pytest.raises(RuntimeError):
            engine.post(txn, chain.validate(txn), record_offset=0)

        stored = session.execute(
            select(Account).where(Account.account_id == account.account_id)
        ).scalar_one()
        assert stored.current_balance == Decimal("0.00")
        assert stored.current_cycle_credit == Decimal("0.00")
        assert _posted_count(session) == 0
        assert engine.posted_count == 0
