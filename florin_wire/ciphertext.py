"""
Twisted-ElGamal ciphertext value types.

A ciphertext of ``x`` under public key ``P`` with randomness ``r`` is the pair

    commitment = x*G + r*H        (a Pedersen commitment)
    handle     = r*P              (the decrypt handle)

Ciphertexts under the same key add component-wise, so balances can be
updated without decryption.  An ``EncryptedBalance`` keeps the amount split
into a low and high half (``amount = lo + 2^16 * hi``) plus an optional
authenticated-encryption snapshot the owner can open without a discrete-log
search.

All values here are immutable and carry only public data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from florin_wire.curve import (
    G,
    POINT_LEN,
    GroupElement,
    add,
    decode_point,
    encode_point,
    mul,
    sub,
)
from florin_wire.errors import AmountOutOfRange, SchemaViolation

AMOUNT_BIT_LENGTH = 32
LO_BIT_LENGTH = 16
HI_BIT_LENGTH = 16
MAX_AMOUNT = (1 << AMOUNT_BIT_LENGTH) - 1

CIPHERTEXT_LEN = 2 * POINT_LEN
AE_CIPHERTEXT_LEN = 36      # nonce(12) || ciphertext(8) || tag(16)


def check_amount(amount: int, bit_length: int = AMOUNT_BIT_LENGTH) -> int:
    """Return *amount* if it is an int in ``[0, 2^bit_length)``."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"amount must be an int, got {type(amount).__name__}")
    if amount < 0 or amount >= (1 << bit_length):
        raise AmountOutOfRange(amount, bit_length)
    return amount


def split_amount(amount: int) -> tuple[int, int]:
    """Split a supported amount into its ``(lo, hi)`` halves."""
    check_amount(amount)
    return amount & ((1 << LO_BIT_LENGTH) - 1), amount >> LO_BIT_LENGTH


def combine_amount(lo: int, hi: int) -> int:
    return lo + (hi << LO_BIT_LENGTH)


# ===================================================================
#  Ciphertext
# ===================================================================

@dataclass(frozen=True)
class Ciphertext:
    """A single-handle ElGamal ciphertext, stored as encoded points."""
    commitment: bytes
    handle: bytes

    def __post_init__(self):
        if len(self.commitment) != POINT_LEN or len(self.handle) != POINT_LEN:
            raise SchemaViolation("ciphertext", "components must be 33-byte points")

    # ---- construction ----

    @classmethod
    def from_points(cls, commitment: GroupElement, handle: GroupElement) -> Ciphertext:
        return cls(encode_point(commitment), encode_point(handle))

    @classmethod
    def zero(cls) -> Ciphertext:
        """The encrypted zero: both components are the identity."""
        return cls(bytes(POINT_LEN), bytes(POINT_LEN))

    @classmethod
    def from_bytes(cls, data: bytes, field: str = "ciphertext") -> Ciphertext:
        if len(data) != CIPHERTEXT_LEN:
            raise SchemaViolation(field, f"expected {CIPHERTEXT_LEN} bytes, got {len(data)}")
        commitment, handle = data[:POINT_LEN], data[POINT_LEN:]
        decode_point(commitment, field)
        decode_point(handle, field)
        return cls(commitment, handle)

    def to_bytes(self) -> bytes:
        return self.commitment + self.handle

    # ---- points ----

    @property
    def commitment_point(self) -> GroupElement:
        return decode_point(self.commitment, "commitment")

    @property
    def handle_point(self) -> GroupElement:
        return decode_point(self.handle, "handle")

    # ---- homomorphic arithmetic ----

    def __add__(self, other: Ciphertext) -> Ciphertext:
        return Ciphertext.from_points(
            add(self.commitment_point, other.commitment_point),
            add(self.handle_point, other.handle_point),
        )

    def __sub__(self, other: Ciphertext) -> Ciphertext:
        return Ciphertext.from_points(
            sub(self.commitment_point, other.commitment_point),
            sub(self.handle_point, other.handle_point),
        )

    def scale(self, factor: int) -> Ciphertext:
        return Ciphertext.from_points(
            mul(self.commitment_point, factor), mul(self.handle_point, factor)
        )

    def add_amount(self, amount: int) -> Ciphertext:
        """Add a public amount (zero randomness) to the encrypted value."""
        return Ciphertext.from_points(
            add(self.commitment_point, mul(G, amount)), self.handle_point
        )

    def sub_amount(self, amount: int) -> Ciphertext:
        return Ciphertext.from_points(
            sub(self.commitment_point, mul(G, amount)), self.handle_point
        )

    def is_zero(self) -> bool:
        return self == Ciphertext.zero()

    def hex(self) -> str:
        return self.to_bytes().hex()


# ===================================================================
#  Grouped ciphertext (one commitment, one handle per recipient key)
# ===================================================================

@dataclass(frozen=True)
class GroupedCiphertext:
    commitment: bytes
    handles: tuple[bytes, ...]

    def __post_init__(self):
        if len(self.commitment) != POINT_LEN or any(len(h) != POINT_LEN for h in self.handles):
            raise SchemaViolation("grouped_ciphertext", "components must be 33-byte points")

    def ciphertext(self, index: int) -> Ciphertext:
        """View the grouped ciphertext as a plain ciphertext for key *index*."""
        return Ciphertext(self.commitment, self.handles[index])

    @property
    def commitment_point(self) -> GroupElement:
        return decode_point(self.commitment, "commitment")

    def handle_points(self) -> list[GroupElement]:
        return [decode_point(h, "handle") for h in self.handles]

    def to_bytes(self) -> bytes:
        return self.commitment + b"".join(self.handles)


def combine_lo_hi(lo: Ciphertext, hi: Ciphertext) -> Ciphertext:
    """``lo + 2^16 * hi`` computed homomorphically."""
    return lo + hi.scale(1 << LO_BIT_LENGTH)


# ===================================================================
#  EncryptedBalance
# ===================================================================

@dataclass(frozen=True)
class EncryptedBalance:
    """Split-precision encrypted amount plus an optional owner snapshot."""
    lo: Ciphertext
    hi: Ciphertext
    decryptable: Optional[bytes] = None

    def __post_init__(self):
        if self.decryptable is not None and len(self.decryptable) != AE_CIPHERTEXT_LEN:
            raise SchemaViolation(
                "decryptable", f"expected {AE_CIPHERTEXT_LEN} bytes, got {len(self.decryptable)}"
            )

    @classmethod
    def zero(cls) -> EncryptedBalance:
        return cls(Ciphertext.zero(), Ciphertext.zero())

    @classmethod
    def from_combined(cls, ciphertext: Ciphertext,
                      decryptable: Optional[bytes] = None) -> EncryptedBalance:
        """Wrap a full-width ciphertext; the high half becomes the encrypted zero."""
        return cls(ciphertext, Ciphertext.zero(), decryptable)

    def combined(self) -> Ciphertext:
        if self.hi.is_zero():
            return self.lo
        return combine_lo_hi(self.lo, self.hi)

    def add(self, other: EncryptedBalance) -> EncryptedBalance:
        """Homomorphic sum.  The snapshot cannot follow and is dropped."""
        return EncryptedBalance(self.lo + other.lo, self.hi + other.hi)

    def deposit(self, amount: int) -> EncryptedBalance:
        """Add a public amount to the encrypted halves."""
        lo, hi = split_amount(amount)
        return EncryptedBalance(self.lo.add_amount(lo), self.hi.add_amount(hi))

    def with_decryptable(self, decryptable: Optional[bytes]) -> EncryptedBalance:
        return EncryptedBalance(self.lo, self.hi, decryptable)

    def same_ciphertext(self, other: EncryptedBalance) -> bool:
        """Compare encrypted values, ignoring the owner snapshot."""
        return self.lo == other.lo and self.hi == other.hi

    def is_zero(self) -> bool:
        return self.lo.is_zero() and self.hi.is_zero()

    def to_dict(self) -> dict:
        return {
            "lo": self.lo.hex(),
            "hi": self.hi.hex(),
            "decryptable": self.decryptable.hex() if self.decryptable else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], field: str = "balance") -> EncryptedBalance:
        try:
            lo = Ciphertext.from_bytes(bytes.fromhex(data["lo"]), f"{field}.lo")
            hi = Ciphertext.from_bytes(bytes.fromhex(data["hi"]), f"{field}.hi")
            raw = data.get("decryptable")
            decryptable = bytes.fromhex(raw) if raw else None
        except (KeyError, TypeError, ValueError) as exc:
            raise SchemaViolation(field, f"malformed encrypted balance: {exc}") from exc
        return cls(lo, hi, decryptable)
