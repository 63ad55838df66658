"""
Fiat-Shamir transcript.

Every message is absorbed as ``len(label) || label || len(msg) || msg`` into a
running SHA-512 state; challenges are drawn from a copy of that state and
then absorbed back, so later challenges depend on earlier ones.  Prover and
verifier must append the same messages in the same order.
"""

from __future__ import annotations

import hashlib
import struct

from florin_wire.curve import ORDER, GroupElement, encode_point, encode_scalar


class Transcript:
    """Labelled, length-prefixed hash transcript."""

    def __init__(self, domain: bytes):
        self._state = hashlib.sha512()
        self.append_message(b"dom-sep", domain)

    def append_message(self, label: bytes, message: bytes) -> None:
        self._state.update(struct.pack(">I", len(label)) + label)
        self._state.update(struct.pack(">I", len(message)) + message)

    def append_point(self, label: bytes, point: GroupElement) -> None:
        self.append_message(label, encode_point(point))

    def append_scalar(self, label: bytes, scalar: int) -> None:
        self.append_message(label, encode_scalar(scalar))

    def append_u64(self, label: bytes, value: int) -> None:
        self.append_message(label, struct.pack(">Q", value))

    def challenge_scalar(self, label: bytes) -> int:
        fork = self._state.copy()
        fork.update(struct.pack(">I", len(label)) + label)
        digest = fork.digest()
        self.append_message(label, digest)
        return int.from_bytes(digest, "big") % ORDER
