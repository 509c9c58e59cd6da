"""Kernel services: posting, rejection and sequence allocation."""

from card_kernel.services.posting_engine import PostingEngine, TransactionIdGenerator
from card_kernel.services.rejection_sink import RejectionSink
from card_kernel.services.sequence_service import SequenceService

__all__ = [
    "PostingEngine",
    "TransactionIdGenerator",
    "RejectionSink",
    "SequenceService",
]
