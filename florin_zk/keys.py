"""
Encryption key management for the offline proof-generation context.

A ``KeyPair`` holds three pieces of key material:

  - the ElGamal decryption key ``s`` (secret scalar)
  - the encryption public key ``P = s^-1 * H`` (33-byte point)
  - a 16-byte symmetric key for decryptable balance snapshots

Secrets live in mutable ``bytearray`` buffers that are overwritten by
``zeroize()``, on context-manager exit and on garbage collection.  Key pairs
are independent of any ledger account and are never serialized into a
``ProofBundle``.

Usage:
    with derive_keypair(seed) as kp:
        bal = encrypt_amount(kp, 1000)
        assert decrypt_amount(kp, bal) == 1000
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from typing import Optional, Sequence, Union

from florin_wire.ciphertext import (
    AMOUNT_BIT_LENGTH,
    Ciphertext,
    EncryptedBalance,
    GroupedCiphertext,
    check_amount,
    split_amount,
)
from florin_wire.curve import (
    G,
    H,
    ORDER,
    SCALAR_LEN,
    GroupElement,
    add,
    decode_point,
    encode_point,
    encode_scalar,
    mul,
    points_equal,
    random_scalar,
    scalar_inverse,
    sub,
)
from florin_wire.errors import SchemaViolation
from florin_zk import discrete_log
from florin_zk.ae import AE_KEY_LEN, ae_decrypt, ae_encrypt
from florin_zk.errors import KeyDerivationError

logger = logging.getLogger("florin_zk")

MIN_SEED_LEN = 32
MAX_SEED_LEN = 65535

_SECRET_LABEL = b"Florin ElGamal secret"
_AE_LABEL = b"Florin AE key"


# ===================================================================
#  KeyPair
# ===================================================================

class KeyPair:
    """ElGamal keypair plus the owner's symmetric snapshot key."""

    def __init__(self, secret: int, symmetric_key: bytes):
        if not 0 < secret < ORDER:
            raise KeyDerivationError("Decryption key must be a non-zero scalar")
        if len(symmetric_key) != AE_KEY_LEN:
            raise KeyDerivationError(f"Symmetric key must be {AE_KEY_LEN} bytes")
        self._secret = bytearray(encode_scalar(secret))
        self._symmetric_key = bytearray(symmetric_key)
        self._public_key = encode_point(mul(H, scalar_inverse(secret)))
        self._zeroized = False

    # ---- stored key material ----

    @classmethod
    def from_bytes(cls, data: bytes) -> KeyPair:
        """Restore from ``secret(32) || symmetric_key(16)``."""
        if len(data) != SCALAR_LEN + AE_KEY_LEN:
            raise KeyDerivationError(
                f"Key material must be {SCALAR_LEN + AE_KEY_LEN} bytes, got {len(data)}"
            )
        return cls(int.from_bytes(data[:SCALAR_LEN], "big"), bytes(data[SCALAR_LEN:]))

    def to_bytes(self) -> bytes:
        self._check_live()
        return bytes(self._secret) + bytes(self._symmetric_key)

    # ---- accessors ----

    @property
    def encryption_public_key(self) -> bytes:
        return self._public_key

    @property
    def public_point(self) -> GroupElement:
        return decode_point(self._public_key, "encryption_public_key")

    @property
    def decryption_key(self) -> int:
        self._check_live()
        return int.from_bytes(self._secret, "big")

    @property
    def symmetric_key(self) -> bytes:
        self._check_live()
        return bytes(self._symmetric_key)

    # ---- lifecycle ----

    def _check_live(self) -> None:
        if self._zeroized:
            raise KeyDerivationError("Key material has been zeroized")

    def zeroize(self) -> None:
        for buf in (self._secret, self._symmetric_key):
            for i in range(len(buf)):
                buf[i] = 0
        self._zeroized = True

    @property
    def is_zeroized(self) -> bool:
        return self._zeroized

    def __enter__(self) -> KeyPair:
        return self

    def __exit__(self, *exc) -> None:
        self.zeroize()

    def __del__(self):
        if hasattr(self, "_secret"):
            self.zeroize()

    def __repr__(self) -> str:
        return f"KeyPair(pubkey={self._public_key.hex()[:16]}...)"


def derive_keypair(seed: bytes) -> KeyPair:
    """Deterministically derive a keypair from *seed* (32..65535 bytes)."""
    if not isinstance(seed, (bytes, bytearray)):
        raise KeyDerivationError(f"Seed must be bytes, got {type(seed).__name__}")
    if not MIN_SEED_LEN <= len(seed) <= MAX_SEED_LEN:
        raise KeyDerivationError(
            f"Seed must be {MIN_SEED_LEN}..{MAX_SEED_LEN} bytes, got {len(seed)}"
        )
    I = hmac.new(_SECRET_LABEL, seed, hashlib.sha512).digest()
    secret = int.from_bytes(I, "big") % ORDER
    if secret == 0:
        raise KeyDerivationError("Seed derives the zero scalar")
    ae_key = hmac.new(_AE_LABEL, seed, hashlib.sha512).digest()[:AE_KEY_LEN]
    return KeyPair(secret, ae_key)


def generate_keypair() -> KeyPair:
    return derive_keypair(os.urandom(MIN_SEED_LEN))


# ===================================================================
#  Encryption / decryption
# ===================================================================

def encrypt_with_opening(pubkey: GroupElement, amount: int,
                         opening: Optional[int] = None) -> tuple[Ciphertext, int]:
    """Encrypt *amount* under *pubkey*; returns the ciphertext and randomness."""
    r = random_scalar() if opening is None else opening
    commitment = add(mul(G, amount), mul(H, r))
    return Ciphertext.from_points(commitment, mul(pubkey, r)), r


def encrypt_grouped(pubkeys: Sequence[bytes], amount: int,
                    opening: Optional[int] = None) -> tuple[GroupedCiphertext, int]:
    """One commitment with a decrypt handle for each of *pubkeys*."""
    r = random_scalar() if opening is None else opening
    commitment = add(mul(G, amount), mul(H, r))
    handles = tuple(encode_point(mul(decode_point(pk, "pubkey"), r)) for pk in pubkeys)
    return GroupedCiphertext(encode_point(commitment), handles), r


def _public_point(key: Union[KeyPair, bytes]) -> GroupElement:
    if isinstance(key, KeyPair):
        return key.public_point
    return decode_point(key, "encryption_public_key")


def encrypt_amount(key: Union[KeyPair, bytes], amount: int) -> EncryptedBalance:
    """
    Encrypt *amount* as a split ``EncryptedBalance``.

    *key* may be a ``KeyPair`` (the snapshot is attached) or just an encoded
    public key (no snapshot).
    """
    check_amount(amount)
    pubkey = _public_point(key)
    lo, hi = split_amount(amount)
    ct_lo, _ = encrypt_with_opening(pubkey, lo)
    ct_hi, _ = encrypt_with_opening(pubkey, hi)
    decryptable = None
    if isinstance(key, KeyPair):
        decryptable = ae_encrypt(key.symmetric_key, amount)
    return EncryptedBalance(ct_lo, ct_hi, decryptable)


def decrypt_to_point(keypair: KeyPair, ciphertext: Ciphertext) -> GroupElement:
    """``C - s*D``, i.e. ``x*G`` for the encrypted ``x``."""
    return sub(
        ciphertext.commitment_point,
        mul(ciphertext.handle_point, keypair.decryption_key),
    )


def decrypt_ciphertext(keypair: KeyPair, ciphertext: Ciphertext,
                       bit_length: int = AMOUNT_BIT_LENGTH) -> int:
    return discrete_log.decode(decrypt_to_point(keypair, ciphertext), bit_length)


def decrypt_amount(keypair: KeyPair, balance: EncryptedBalance) -> int:
    """Recover the plaintext by bounded discrete-log search."""
    return decrypt_ciphertext(keypair, balance.combined())


def decrypt_snapshot(keypair: KeyPair, balance: EncryptedBalance) -> Optional[int]:
    """
    Open the decryptable snapshot and confirm it against the ciphertext.

    Returns ``None`` when there is no snapshot or it is stale.
    """
    if balance.decryptable is None:
        return None
    try:
        amount = ae_decrypt(keypair.symmetric_key, balance.decryptable)
    except ValueError:
        logger.warning("Decryptable snapshot failed authentication")
        return None
    if amount >= (1 << AMOUNT_BIT_LENGTH):
        return None
    if not points_equal(decrypt_to_point(keypair, balance.combined()), mul(G, amount)):
        return None
    return amount


def decrypt_balance(keypair: KeyPair, balance: EncryptedBalance) -> int:
    """Snapshot fast path, falling back to the discrete-log search."""
    amount = decrypt_snapshot(keypair, balance)
    if amount is None:
        amount = decrypt_amount(keypair, balance)
    return amount


# ===================================================================
#  KeyManager
# ===================================================================

class KeyManager:
    """
    Holds one account holder's keypair and exposes the key operations the
    rest of the offline context needs.
    """

    def __init__(self, keypair: KeyPair):
        self.keypair = keypair

    @classmethod
    def from_seed(cls, seed: bytes) -> KeyManager:
        return cls(derive_keypair(seed))

    @classmethod
    def generate(cls) -> KeyManager:
        return cls(generate_keypair())

    @classmethod
    def from_key_material(cls, data: bytes) -> KeyManager:
        return cls(KeyPair.from_bytes(data))

    @property
    def public_key(self) -> bytes:
        return self.keypair.encryption_public_key

    def owns(self, pubkey: bytes) -> bool:
        return pubkey == self.keypair.encryption_public_key

    def encrypt_amount(self, amount: int) -> EncryptedBalance:
        return encrypt_amount(self.keypair, amount)

    def decrypt_amount(self, balance: EncryptedBalance) -> int:
        return decrypt_amount(self.keypair, balance)

    def decrypt_balance(self, balance: EncryptedBalance) -> int:
        return decrypt_balance(self.keypair, balance)

    def decrypt_ciphertext(self, ciphertext: Ciphertext,
                           bit_length: int = AMOUNT_BIT_LENGTH) -> int:
        return decrypt_ciphertext(self.keypair, ciphertext, bit_length)

    def make_decryptable(self, amount: int) -> bytes:
        check_amount(amount)
        return ae_encrypt(self.keypair.symmetric_key, amount)

    def open_decryptable(self, blob: bytes) -> int:
        try:
            return ae_decrypt(self.keypair.symmetric_key, blob)
        except ValueError as exc:
            raise SchemaViolation("decryptable", "snapshot failed authentication") from exc

    def zeroize(self) -> None:
        self.keypair.zeroize()

    def __enter__(self) -> KeyManager:
        return self

    def __exit__(self, *exc) -> None:
        self.zeroize()
