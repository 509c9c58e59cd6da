"""
Reference lookup ports.

The validation chain and posting engine reach card, account and category
state only through this protocol.  card_kernel.selectors.reference_selector
provides the SQLAlchemy implementation; tests substitute their own.
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from card_kernel.models.account import Account
    from card_kernel.models.card import Card
    from card_kernel.models.category_balance import CategoryBalance


@runtime_checkable
class ReferencePorts(Protocol):
    """
    Lookups the pipeline needs against reference state.

    Implementations may raise TransientStorageError (or a driver-level
    transient error) when storage is temporarily unavailable; the chunk
    controller retries the chunk in that case.
    """

    def find_card_by_number(self, card_number: str) -> "Card | None":
        """Return the card, or None if no card has that number."""
        ...

    def find_account_by_id(self, account_id: str) -> "Account | None":
        """Return the account locked for update, or None if unknown."""
        ...

    def find_or_create_category_balance(
        self, account_id: str, category_code: str,
    ) -> "CategoryBalance":
        """Return the locked balance row, creating it at 0.00 when absent."""
        ...
