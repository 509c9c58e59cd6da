"""
Validation Stage Chain.

Responsibility:
    Decides, for one TransactionInput, whether it may be posted.  Seven
    ordered stages each either resolve more state or return a failed
    ValidationOutcome; the first failure stops the chain.

Architecture position:
    Kernel > Domain.  Stages read reference state through ReferencePorts and
    never mutate it.  No stage raises for a business failure: outcomes are
    returned as values.  Exceptions escaping a stage are system errors and
    are handled by the chunk controller.

Invariants enforced:
    - Stage order: required fields, card lookup, card status, account
      lookup, account status, credit limit, account expiration.
    - Idempotent: the same input against the same reference state yields an
      equal outcome.
    - Credit limit: projected = (cycle_credit - cycle_debit) + amount; the
      record fails only when credit_limit < projected (equality passes).
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from card_kernel.db.types import InvalidAmountError, money_add, money_sub, parse_amount
from card_kernel.domain.dtos import FailureCode, TransactionInput, ValidationOutcome
from card_kernel.domain.ports import ReferencePorts

if TYPE_CHECKING:
    from card_kernel.models.account import Account
    from card_kernel.models.card import Card


CARD_NUMBER_PATTERN = re.compile(r"^\d{16}$")

MSG_INVALID_CARD = "INVALID CARD NUMBER FOUND"
MSG_CARD_INACTIVE = "CARD IS NOT ACTIVE"
MSG_CARD_EXPIRED = "CARD IS EXPIRED"
MSG_ACCOUNT_NOT_FOUND = "ACCOUNT RECORD NOT FOUND"
MSG_ACCOUNT_INACTIVE = "ACCOUNT IS NOT ACTIVE"
MSG_OVERLIMIT = "OVERLIMIT TRANSACTION"
MSG_EXPIRED_ACCOUNT = "TRANSACTION RECEIVED AFTER ACCT EXPIRATION"

# Stored widths of the posted_transactions text columns.
FIELD_WIDTHS: dict[str, int] = {
    "transaction_id": 32,
    "type_code": 2,
    "category_code": 4,
    "source": 10,
    "description": 100,
    "merchant_id": 15,
    "merchant_name": 50,
    "merchant_city": 50,
    "merchant_zip": 10,
}


@dataclass
class ValidationContext:
    """
    Per-input working state for one pass of the chain.

    Created fresh by ValidationChain.validate(); earlier stages fill in
    amount, card and account for later ones.
    """

    ports: ReferencePorts
    processing_date: date
    amount: Decimal | None = None
    card: "Card | None" = None
    account: "Account | None" = None


Stage = Callable[[TransactionInput, ValidationContext], ValidationOutcome | None]


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def check_required_fields(
    txn: TransactionInput, ctx: ValidationContext,
) -> ValidationOutcome | None:
    """Stage 1: identity fields present, card number well formed, amount valid."""
    for name in ("card_number", "type_code", "category_code"):
        if _is_blank(getattr(txn, name)):
            return ValidationOutcome.failure(
                FailureCode.INVALID_DATA, f"MISSING REQUIRED FIELD: {name.upper()}",
            )
    if txn.original_timestamp is None:
        return ValidationOutcome.failure(
            FailureCode.INVALID_DATA, "MISSING REQUIRED FIELD: ORIGINAL_TIMESTAMP",
        )
    for name, width in FIELD_WIDTHS.items():
        value = getattr(txn, name)
        if isinstance(value, str) and len(value) > width:
            return ValidationOutcome.failure(
                FailureCode.INVALID_DATA, f"FIELD TOO LONG: {name.upper()}",
            )
    if not CARD_NUMBER_PATTERN.match(txn.card_number):
        return ValidationOutcome.failure(
            FailureCode.INVALID_DATA, "CARD NUMBER MUST BE 16 DIGITS",
        )
    try:
        ctx.amount = parse_amount(txn.amount)
    except InvalidAmountError as exc:
        return ValidationOutcome.failure(
            FailureCode.INVALID_DATA, f"INVALID AMOUNT: {exc.reason.upper()}",
        )
    return None


def check_card_exists(
    txn: TransactionInput, ctx: ValidationContext,
) -> ValidationOutcome | None:
    """Stage 2: the card number resolves to a card."""
    ctx.card = ctx.ports.find_card_by_number(txn.card_number)
    if ctx.card is None:
        return ValidationOutcome.failure(FailureCode.INVALID_CARD, MSG_INVALID_CARD)
    return None


def check_card_status(
    txn: TransactionInput, ctx: ValidationContext,
) -> ValidationOutcome | None:
    """Stage 3: the card is active and unexpired on the processing date."""
    if not ctx.card.is_active:
        return ValidationOutcome.failure(FailureCode.INVALID_CARD, MSG_CARD_INACTIVE)
    if ctx.card.is_expired_on(ctx.processing_date):
        return ValidationOutcome.failure(FailureCode.INVALID_CARD, MSG_CARD_EXPIRED)
    return None


def check_account_exists(
    txn: TransactionInput, ctx: ValidationContext,
) -> ValidationOutcome | None:
    """Stage 4: the card's account exists."""
    ctx.account = ctx.ports.find_account_by_id(ctx.card.account_id)
    if ctx.account is None:
        return ValidationOutcome.failure(
            FailureCode.ACCOUNT_NOT_FOUND, MSG_ACCOUNT_NOT_FOUND,
        )
    return None


def check_account_status(
    txn: TransactionInput, ctx: ValidationContext,
) -> ValidationOutcome | None:
    """Stage 5: the account is active."""
    if not ctx.account.is_active:
        return ValidationOutcome.failure(
            FailureCode.ACCOUNT_NOT_FOUND, MSG_ACCOUNT_INACTIVE,
        )
    return None


def projected_cycle_balance(account: "Account", amount: Decimal) -> Decimal:
    """Cycle balance the account would have after posting ``amount``."""
    return money_add(
        money_sub(account.current_cycle_credit, account.current_cycle_debit),
        amount,
    )


def check_credit_limit(
    txn: TransactionInput, ctx: ValidationContext,
) -> ValidationOutcome | None:
    """Stage 6: the projected cycle balance stays within the credit limit."""
    if ctx.account.credit_limit < projected_cycle_balance(ctx.account, ctx.amount):
        return ValidationOutcome.failure(FailureCode.OVERLIMIT, MSG_OVERLIMIT)
    return None


def check_account_expiration(
    txn: TransactionInput, ctx: ValidationContext,
) -> ValidationOutcome | None:
    """Stage 7: the transaction is not dated after the account's expiration."""
    expiration = ctx.account.expiration_date
    if expiration is not None and txn.original_timestamp.date() > expiration:
        return ValidationOutcome.failure(
            FailureCode.EXPIRED_ACCOUNT, MSG_EXPIRED_ACCOUNT,
        )
    return None


DEFAULT_STAGES: tuple[Stage, ...] = (
    check_required_fields,
    check_card_exists,
    check_card_status,
    check_account_exists,
    check_account_status,
    check_credit_limit,
    check_account_expiration,
)


class ValidationChain:
    """
    Runs the ordered stages against one input.

    Usage:
        chain = ValidationChain(ports, processing_date=date(2024, 1, 1))
        outcome = chain.validate(txn)
    """

    def __init__(
        self,
        ports: ReferencePorts,
        processing_date: date,
        stages: Sequence[Stage] = DEFAULT_STAGES,
    ):
        self._ports = ports
        self._processing_date = processing_date
        self._stages = tuple(stages)

    @property
    def processing_date(self) -> date:
        return self._processing_date

    def validate(self, txn: TransactionInput) -> ValidationOutcome:
        ctx = ValidationContext(ports=self._ports, processing_date=self._processing_date)
        for stage in self._stages:
            outcome = stage(txn, ctx)
            if outcome is not None:
                return outcome
        return ValidationOutcome.success(ctx.card, ctx.account, ctx.amount)
