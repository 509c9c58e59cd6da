"""Database layer - engine, base classes, money types, and immutability."""

from card_kernel.db.base import Base, TrackedBase, UUIDString
from card_kernel.db.engine import build_engine, create_tables, drop_tables
from card_kernel.db.types import parse_amount, round_money

__all__ = [
    "build_engine",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "parse_amount",
    "round_money",
]
