"""
Errors raised by the offline proof-generation context.
"""

from __future__ import annotations

from florin_wire.errors import FlorinError


class KeyDerivationError(FlorinError):
    """The seed or stored key material is structurally invalid."""


class DecodeOverflow(FlorinError):
    """A ciphertext's discrete log lies outside the supported search bound."""

    def __init__(self, bit_length: int):
        super().__init__(f"Encrypted value is outside [0, 2^{bit_length})")
        self.bit_length = bit_length


class ProofConstructionError(FlorinError):
    """The supplied ciphertexts do not correspond to the supplied secret key."""
