"""
Module: card_kernel.selectors.base
Responsibility: Abstract base class for query selectors over reference state.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Session ownership: selectors do NOT create or manage their own
      sessions; the caller owns the session and its transaction scope.
    - Selectors never commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from card_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller and query within its
        transaction.
    """

    def __init__(self, session: Session):
        self.session = session
