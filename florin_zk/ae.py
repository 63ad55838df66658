"""
Authenticated-encryption snapshots of balances.

The owner stores ``AES-128-GCM(amount)`` next to each available balance so
the common read path is a symmetric decryption instead of a discrete-log
search.  Layout: ``nonce(12) || ciphertext(8) || tag(16)``.
"""

from __future__ import annotations

import os
import struct

from Crypto.Cipher import AES

from florin_wire.ciphertext import AE_CIPHERTEXT_LEN
from florin_zk.errors import KeyDerivationError

AE_KEY_LEN = 16
_NONCE_LEN = 12
_TAG_LEN = 16


def _check_key(key: bytes) -> None:
    if len(key) != AE_KEY_LEN:
        raise KeyDerivationError(f"AE key must be {AE_KEY_LEN} bytes, got {len(key)}")


def ae_encrypt(key: bytes, amount: int) -> bytes:
    _check_key(key)
    nonce = os.urandom(_NONCE_LEN)
    cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=nonce)
    ciphertext, tag = cipher.encrypt_and_digest(struct.pack(">Q", amount))
    return nonce + ciphertext + tag


def ae_decrypt(key: bytes, blob: bytes) -> int:
    """Open a snapshot.  Raises ValueError if it was tampered with."""
    _check_key(key)
    if len(blob) != AE_CIPHERTEXT_LEN:
        raise ValueError(f"AE ciphertext must be {AE_CIPHERTEXT_LEN} bytes")
    nonce, ciphertext, tag = blob[:_NONCE_LEN], blob[_NONCE_LEN:-_TAG_LEN], blob[-_TAG_LEN:]
    cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=nonce)
    return struct.unpack(">Q", cipher.decrypt_and_verify(ciphertext, tag))[0]
