"""
Base error types shared across the Florin execution contexts.
"""

from __future__ import annotations


class FlorinError(Exception):
    """Root of every error raised by Florin code."""


class SchemaViolation(FlorinError):
    """A ``ProofBundle`` (or one of its fields) is malformed or unsupported."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class AmountOutOfRange(FlorinError):
    """An amount does not fit the supported plaintext width."""

    def __init__(self, amount: int, bit_length: int, message: str = ""):
        super().__init__(
            message or f"Amount {amount} outside supported range [0, 2^{bit_length})"
        )
        self.amount = amount
        self.bit_length = bit_length


class InsufficientBalance(AmountOutOfRange):
    """Spending *amount* would drive the balance below zero."""

    def __init__(self, amount: int, balance: int, bit_length: int):
        super().__init__(
            amount, bit_length,
            f"Insufficient confidential balance: need {amount}, have {balance}",
        )
        self.balance = balance
