"""
Florin core - the ledger-facing context.

Keeps the encrypted balances of one confidential mint and moves proof
bundles to and from a ledger.  Holds no secret keys and never imports
``florin_zk``; bundles arrive through ``florin_wire``.

- ``store``         EncryptedBalanceStore and the account state machine
- ``verifier``      policy and cryptographic checks on incoming bundles
- ``ledger``        LedgerAdapter, Confirmation and the in-process LocalLedger
- ``rpc``           aiohttp JSON-RPC LedgerAdapter
- ``retry``         opt-in resubmission with backoff
- ``service``       ConfidentialAccountService submission flow
- ``proof_import``  reading exported bundles
- ``config``        TOML / environment configuration
"""

__version__ = "0.4.0"
__all__ = [
    "config",
    "errors",
    "ledger",
    "logging_config",
    "proof_import",
    "retry",
    "rpc",
    "service",
    "store",
    "verifier",
]
