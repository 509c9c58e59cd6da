"""Pure domain layer: DTOs, ports, clock and the validation chain."""

from card_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from card_kernel.domain.dtos import (
    FailureCode,
    PostedTransactionRecord,
    RejectionRecord,
    TransactionInput,
    ValidationOutcome,
)
from card_kernel.domain.ports import ReferencePorts
from card_kernel.domain.validation import ValidationChain

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "FailureCode",
    "PostedTransactionRecord",
    "RejectionRecord",
    "TransactionInput",
    "ValidationOutcome",
    "ReferencePorts",
    "ValidationChain",
]
