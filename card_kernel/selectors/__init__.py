"""Selectors: session-scoped queries over reference state."""

from card_kernel.selectors.base import BaseSelector
from card_kernel.selectors.reference_selector import SqlAlchemyReferencePorts

__all__ = ["BaseSelector", "SqlAlchemyReferencePorts"]
