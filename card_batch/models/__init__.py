"""ORM models for posting-run persistence."""

from card_batch.models.run import PostingRunModel

__all__ = ["PostingRunModel"]
