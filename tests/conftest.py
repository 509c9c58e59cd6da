"""
Pytest fixtures for the card posting pipeline test suite.

Provides:
- In-memory SQLite engine with every pipeline table, one per test
- Session factory and session fixtures
- Deterministic clock fixed on the standard processing date
- Reference-state seed helpers and a TransactionInput builder
- Structured log capture

SQLite runs with the engine's SAVEPOINT recipe so nested transactions
behave as they do on PostgreSQL.  Because an in-memory database shares one
connection, tests close their own sessions before driving the controller.
"""

import functools
import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from card_kernel.db.engine import build_engine, create_tables, drop_tables
from card_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from card_kernel.domain.clock import DeterministicClock
from card_kernel.domain.dtos import TransactionInput
from card_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from card_kernel.models.account import Account
from card_kernel.models.card import Card

PROCESSING_DATE = date(2024, 3, 15)
PROCESSING_TIME = datetime(2024, 3, 15, 9, 0, 0, tzinfo=timezone.utc)

DEFAULT_ACCOUNT_ID = "00000000001"
DEFAULT_CARD_NUMBER = "4000000000000001"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture card_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "chunk_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("card_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with all pipeline tables."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def clock():
    return DeterministicClock(PROCESSING_TIME)


# =============================================================================
# Reference data helpers
# =============================================================================


def _add_account(session, account_id=DEFAULT_ACCOUNT_ID, **overrides):
    values = dict(
        account_id=account_id,
        is_active=True,
        current_balance=Decimal("0.00"),
        credit_limit=Decimal("1000.00"),
        current_cycle_credit=Decimal("0.00"),
        current_cycle_debit=Decimal("0.00"),
        expiration_date=date(2030, 12, 31),
    )
    values.update(overrides)
    account = Account(**values)
    session.add(account)
    session.flush()
    return account


def _add_card(
    session,
    card_number=DEFAULT_CARD_NUMBER,
    account_id=DEFAULT_ACCOUNT_ID,
    **overrides,
):
    values = dict(
        card_number=card_number,
        account_id=account_id,
        is_active=True,
        expiration_date=date(2030, 12, 31),
    )
    values.update(overrides)
    card = Card(**values)
    session.add(card)
    session.flush()
    return card


@pytest.fixture
def add_account(session):
    """Insert an Account (flush only).  Keyword overrides replace defaults."""
    return functools.partial(_add_account, session)


@pytest.fixture
def add_card(session):
    """Insert a Card (flush only).  Keyword overrides replace defaults."""
    return functools.partial(_add_card, session)


@pytest.fixture
def seed_reference(session_factory):
    """
    Commit an account and its card in a separate session.

    Returns a callable: seed_reference(account_overrides=None,
    card_overrides=None, account_id=..., card_number=...).
    """

    def _seed(
        account_id=DEFAULT_ACCOUNT_ID,
        card_number=DEFAULT_CARD_NUMBER,
        account_overrides=None,
        card_overrides=None,
    ):
        with session_factory() as s:
            _add_account(s, account_id=account_id, **(account_overrides or {}))
            _add_card(
                s, card_number=card_number, account_id=account_id,
                **(card_overrides or {}),
            )
            s.commit()

    return _seed


def _make_txn(**overrides) -> TransactionInput:
    values = dict(
        card_number=DEFAULT_CARD_NUMBER,
        type_code="01",
        category_code="0001",
        amount=Decimal("100.00"),
        original_timestamp=datetime(2024, 3, 14, 18, 30, 0, tzinfo=timezone.utc),
        transaction_id=None,
        source="POS TERM",
        description="Purchase",
        merchant_id="000000001",
        merchant_name="Corner Shop",
        merchant_city="Springfield",
        merchant_zip="12345",
    )
    values.update(overrides)
    return TransactionInput(**values)


@pytest.fixture
def make_txn():
    """Build a valid TransactionInput; keyword overrides replace defaults."""
    return _make_txn
