"""
Errors raised by the ledger-facing context.
"""

from __future__ import annotations

from typing import Optional

from florin_wire.errors import FlorinError


class NonZeroBalance(FlorinError):
    """Close attempted while a confidential balance is not zero."""

    def __init__(self, address: str, pending: int, available: int):
        super().__init__(
            f"Account {address} is not empty (pending={pending}, available={available})"
        )
        self.address = address
        self.pending = pending
        self.available = available


class InvalidAccountState(FlorinError):
    """The operation is not allowed in the account's current state."""

    def __init__(self, address: str, state: str, operation: str):
        super().__init__(f"Cannot {operation} account {address} in state {state}")
        self.address = address
        self.state = state
        self.operation = operation


class UnknownAccount(InvalidAccountState):
    def __init__(self, address: str, operation: str = "use"):
        super().__init__(address, "UNINITIALIZED", operation)


class ProofVerificationError(FlorinError):
    """A bundle failed ledger-side verification."""

    INVALID_STRUCTURE = "invalid_structure"
    EXPIRED = "expired"
    MISSING_METADATA = "missing_metadata"
    INVALID_PROOF_TYPE = "invalid_proof_type"
    VERIFICATION_FAILED = "verification_failed"
    INVALID_VERSION = "invalid_version"

    def __init__(self, reason: str, message: str):
        super().__init__(f"[{reason}] {message}")
        self.reason = reason
        self.message = message


class SubmissionError(FlorinError):
    """
    Ledger I/O failed.

    ``retryable`` tells the caller whether resubmitting the same bundle can
    succeed (transport failures, timeouts) or not (rejections).
    """

    def __init__(self, message: str, retryable: bool = False, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.code = code

    def to_dict(self) -> dict:
        return {"message": self.message, "retryable": self.retryable, "code": self.code}
