"""
Card Kernel - daily transaction posting core.

A batch posting kernel for card transactions with:
- Ordered, side-effect-free validation stages
- Exact 2-digit fixed-point money arithmetic
- Single-mutation posting of account and category balances
- Append-only posted and rejected transaction streams
"""

__version__ = "0.1.0"
