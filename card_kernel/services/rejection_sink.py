"""
RejectionSink -- append-only rejection stream.

Responsibility:
    Persists one TransactionRejection per failed input: the verbatim input
    payload, the numeric failure code and its description.  Rejection is
    terminal; nothing in the pipeline promotes a rejection to a posting.

Architecture position:
    Kernel > Services.  Called by the chunk controller for failed
    validation outcomes and for per-record system errors.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from card_kernel.domain.clock import Clock
from card_kernel.domain.dtos import (
    FailureCode,
    RejectionRecord,
    TransactionInput,
    ValidationOutcome,
)
from card_kernel.logging_config import get_logger
from card_kernel.models.rejection import TransactionRejection
from card_kernel.services.base import BaseService

logger = get_logger("services.rejection_sink")

_MAX_DESCRIPTION = 200


def describe_exception(exc: BaseException) -> str:
    """Failure description for a SYSTEM_ERROR rejection."""
    detail = str(exc)
    text = f"SYSTEM ERROR: {type(exc).__name__}"
    if detail:
        text = f"{text}: {detail}"
    return text[:_MAX_DESCRIPTION]


def _truncate(value: str | None, length: int) -> str | None:
    if isinstance(value, str):
        return value[:length]
    return value


class RejectionSink(BaseService[TransactionRejection]):
    """Writes rejection records and counts them."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock
        self.rejected_count = 0

    def reject(
        self,
        txn: TransactionInput,
        outcome: ValidationOutcome,
        *,
        run_id: UUID | None = None,
        record_offset: int | None = None,
    ) -> RejectionRecord:
        """Record ``txn`` as rejected with the outcome's failure code."""
        if outcome.passed:
            raise ValueError("Cannot reject a transaction whose validation passed")
        return self._write(
            txn,
            int(outcome.failure_code),
            outcome.failure_description or "",
            run_id=run_id,
            record_offset=record_offset,
        )

    def reject_exception(
        self,
        txn: TransactionInput,
        exc: BaseException,
        *,
        run_id: UUID | None = None,
        record_offset: int | None = None,
    ) -> RejectionRecord:
        """Record ``txn`` as a SYSTEM_ERROR rejection caused by ``exc``."""
        return self._write(
            txn,
            int(FailureCode.SYSTEM_ERROR),
            describe_exception(exc),
            run_id=run_id,
            record_offset=record_offset,
        )

    def _write(
        self,
        txn: TransactionInput,
        failure_code: int,
        failure_description: str,
        *,
        run_id: UUID | None,
        record_offset: int | None,
    ) -> RejectionRecord:
        row = TransactionRejection(
            transaction_id=_truncate(txn.transaction_id, 32),
            card_number=_truncate(txn.card_number, 32),
            failure_code=failure_code,
            failure_description=failure_description[:_MAX_DESCRIPTION],
            transaction_data=txn.as_payload(),
            rejected_at=self._clock.now(),
            run_id=run_id,
            record_offset=record_offset,
        )
        self.session.add(row)
        self.session.flush()

        self.rejected_count += 1
        logger.info(
            "transaction_rejected",
            extra={
                "failure_code": failure_code,
                "failure_description": failure_description,
                "card_number": txn.card_number,
            },
        )
        return RejectionRecord.from_model(row)
