"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through the posting
    pipeline: TransactionInput (input), ValidationOutcome (validation result),
    PostedTransactionRecord and RejectionRecord (persistence boundary), and the
    FailureCode vocabulary.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service layer (never from validation stages).

Invariants enforced:
    - TransactionInput is frozen; no stage or service mutates an input.
    - A passed ValidationOutcome never carries a failure code; a failed one
      always does.

Data flow:
    TransactionInput -> ValidationOutcome -> PostedTransactionRecord
                                          \\-> RejectionRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import IntEnum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from card_kernel.models.account import Account
    from card_kernel.models.card import Card
    from card_kernel.models.rejection import TransactionRejection
    from card_kernel.models.transaction import PostedTransaction


class FailureCode(IntEnum):
    """
    Numeric rejection reasons, compatible with the legacy posting program.

    Card not found, card inactive and card expired all share INVALID_CARD;
    the failure description tells them apart.
    """

    INVALID_CARD = 100
    ACCOUNT_NOT_FOUND = 101
    OVERLIMIT = 102
    EXPIRED_ACCOUNT = 103
    INVALID_DATA = 104
    SYSTEM_ERROR = 109


def _payload_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


@dataclass(frozen=True)
class TransactionInput:
    """
    One decoded daily transaction record.

    ``amount`` is normally a Decimal; the decoder passes through the raw text
    (or None) when it could not type the field, and validation rejects it
    with INVALID_DATA.  ``transaction_id`` is optional: when absent the
    posting engine generates one from the record's input position.
    """

    card_number: str | None
    type_code: str | None
    category_code: str | None
    amount: Decimal | str | None
    original_timestamp: datetime | None
    transaction_id: str | None = None
    source: str | None = None
    description: str | None = None
    merchant_id: str | None = None
    merchant_name: str | None = None
    merchant_city: str | None = None
    merchant_zip: str | None = None

    _PAYLOAD_FIELDS = (
        "transaction_id",
        "type_code",
        "category_code",
        "source",
        "description",
        "amount",
        "merchant_id",
        "merchant_name",
        "merchant_city",
        "merchant_zip",
        "card_number",
        "original_timestamp",
    )

    def as_payload(self) -> dict[str, Any]:
        """JSON-safe verbatim copy of every field, for the rejection stream."""
        return {
            name: _payload_value(getattr(self, name))
            for name in self._PAYLOAD_FIELDS
        }


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of running the validation chain on one input.

    On success, carries the resolved card and account and the parsed amount
    so the posting engine does not look them up again.
    """

    passed: bool
    failure_code: FailureCode | None = None
    failure_description: str | None = None
    card: Card | None = field(default=None, compare=False)
    account: Account | None = field(default=None, compare=False)
    amount: Decimal | None = None

    def __post_init__(self) -> None:
        if self.passed and self.failure_code is not None:
            raise ValueError("A passed outcome cannot carry a failure code")
        if not self.passed and self.failure_code is None:
            raise ValueError("A failed outcome requires a failure code")

    @classmethod
    def success(
        cls, card: Card, account: Account, amount: Decimal,
    ) -> ValidationOutcome:
        return cls(passed=True, card=card, account=account, amount=amount)

    @classmethod
    def failure(cls, code: FailureCode, description: str) -> ValidationOutcome:
        return cls(passed=False, failure_code=code, failure_description=description)

    @property
    def resolved_ids(self) -> tuple[str | None, str | None]:
        """(card_number, account_id) of the resolved entities, for comparison."""
        return (
            self.card.card_number if self.card is not None else None,
            self.account.account_id if self.account is not None else None,
        )


@dataclass(frozen=True)
class PostedTransactionRecord:
    """Read-side view of a posted transaction."""

    transaction_id: str
    card_number: str
    account_id: str
    type_code: str
    category_code: str
    amount: Decimal
    original_timestamp: datetime
    processed_timestamp: datetime
    run_id: UUID | None = None
    record_offset: int | None = None

    @classmethod
    def from_model(cls, model: PostedTransaction) -> PostedTransactionRecord:
        return cls(
            transaction_id=model.transaction_id,
            card_number=model.card_number,
            account_id=model.account_id,
            type_code=model.type_code,
            category_code=model.category_code,
            amount=model.amount,
            original_timestamp=model.original_timestamp,
            processed_timestamp=model.processed_timestamp,
            run_id=model.run_id,
            record_offset=model.record_offset,
        )


@dataclass(frozen=True)
class RejectionRecord:
    """
    An input routed to the rejection stream.

    transaction_data is the verbatim input payload; rejection is terminal.
    """

    failure_code: int
    failure_description: str
    transaction_data: dict[str, Any]
    rejected_at: datetime
    transaction_id: str | None = None
    run_id: UUID | None = None
    record_offset: int | None = None

    @classmethod
    def from_model(cls, model: TransactionRejection) -> RejectionRecord:
        return cls(
            failure_code=model.failure_code,
            failure_description=model.failure_description,
            transaction_data=dict(model.transaction_data),
            rejected_at=model.rejected_at,
            transaction_id=model.transaction_id,
            run_id=model.run_id,
            record_offset=model.record_offset,
        )
