"""
Florin ZK - the offline proof-generation context.

Holds the account holder's secret key material and turns transfer / withdraw
requests into ``ProofBundle`` artifacts.  Nothing in this package talks to a
ledger or imports ``florin_core``; its only output is a serialized bundle.

- ``keys``          KeyPair / KeyManager, encryption and bounded decryption
- ``ae``            AES-GCM decryptable balance snapshots
- ``discrete_log``  baby-step / giant-step decoding
- ``sigma``         equality, validity and pubkey-validity provers
- ``range_proof``   batched bit-decomposition range prover
- ``generator``     ProofGenerator
- ``export``        writing bundles to files
"""

__version__ = "0.4.0"
ZK_SDK_VERSION = f"florin-zk/{__version__}"

__all__ = [
    "ae",
    "discrete_log",
    "errors",
    "export",
    "generator",
    "keys",
    "range_proof",
    "sigma",
]
