"""Batch services: the chunk execution controller."""

from card_batch.services.controller import ChunkExecutionController, is_transient

__all__ = ["ChunkExecutionController", "is_transient"]
