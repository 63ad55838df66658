"""
Florin wire - the interchange layer shared by both execution contexts.

The offline proof-generation context (``florin_zk``) and the ledger-facing
context (``florin_core``) never import each other.  Everything they exchange
lives here:

- secp256k1 point / scalar encodings and the Fiat-Shamir transcript
- twisted-ElGamal ciphertext value types and their homomorphic arithmetic
- binary proof payload layouts
- the versioned ``ProofBundle`` codec
- transfer / withdraw request contexts
"""

__version__ = "1.0.0"
__all__ = [
    "bundle",
    "ciphertext",
    "context",
    "curve",
    "errors",
    "payloads",
    "range_proof",
    "sigma",
    "statements",
    "transcript",
    "versioning",
]
