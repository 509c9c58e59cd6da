"""ORM models for the card posting kernel."""

from card_kernel.models.account import Account
from card_kernel.models.card import Card
from card_kernel.models.category_balance import CategoryBalance
from card_kernel.models.rejection import TransactionRejection
from card_kernel.models.transaction import PostedTransaction

__all__ = [
    "Account",
    "Card",
    "CategoryBalance",
    "PostedTransaction",
    "TransactionRejection",
]
