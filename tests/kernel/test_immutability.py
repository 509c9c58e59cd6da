"""
Tests for card_kernel.db.immutability -- posted transactions and rejection
records are append-only.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from card_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from card_kernel.exceptions import ImmutabilityViolationError
from card_kernel.models.rejection import TransactionRejection
from card_kernel.models.transaction import PostedTransaction

NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def posted(session, add_account, add_card):
    add_account()
    add_card()
    row = PostedTransaction(
        transaction_id="TXN-IMMUTABLE",
        type_code="01",
        category_code="0001",
        amount=Decimal("10.00"),
        card_number="4000000000000001",
        account_id="00000000001",
        original_timestamp=NOW,
        processed_timestamp=NOW,
    )
    session.add(row)
    session.flush()
    return row


@pytest.fixture
def rejection(session):
    row = TransactionRejection(
        failure_code=102,
        failure_description="OVERLIMIT TRANSACTION",
        transaction_data={"amount": "10.00"},
        rejected_at=NOW,
    )
    session.add(row)
    session.flush()
    return row


class TestPostedTransactionImmutability:
    def test_update_is_blocked(self, session, posted):
        posted.amount = Decimal("99.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "PostedTransaction"
        assert exc_info.value.entity_id == "TXN-IMMUTABLE"

    def test_delete_is_blocked(self, session, posted):
        session.delete(posted)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestRejectionImmutability:
    def test_update_is_blocked(self, session, rejection):
        rejection.failure_code = 100
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_delete_is_blocked(self, session, rejection):
        session.delete(rejection)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestListenerRegistration:
    def test_unregister_allows_updates(self, session, rejection):
        unregister_immutability_listeners()
        try:
            rejection.failure_description = "CORRECTED"
            session.flush()
        finally:
            register_immutability_listeners()
        stored = session.execute(select(TransactionRejection)).scalar_one()
        assert stored.failure_description == "CORRECTED"

    def test_register_is_idempotent(self, session, rejection):
        register_immutability_listeners()
        register_immutability_listeners()
        session.delete(rejection)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
