"""
Shared pytest fixtures for the Florin test suite.
"""

import hashlib

import pytest

from florin_core.ledger import LocalLedger
from florin_core.store import EncryptedBalanceStore, MintConfig
from florin_zk.generator import ProofGenerator
from florin_zk.keys import KeyManager


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: full proof generation and verification round trips")


def seed_for(name: str) -> bytes:
    """Deterministic 32-byte seed per test identity."""
    return hashlib.sha256(f"florin-test-{name}".encode()).digest()


@pytest.fixture
def alice():
    """Deterministic key manager for Alice."""
    return KeyManager.from_seed(seed_for("alice"))


@pytest.fixture
def bob():
    return KeyManager.from_seed(seed_for("bob"))


@pytest.fixture
def generator():
    return ProofGenerator()


@pytest.fixture
def mint():
    """Plain mint: no auditor, no fee."""
    return MintConfig(mint_address="FLRmint111", decimals=6)


@pytest.fixture
def store(mint):
    return EncryptedBalanceStore(mint)


@pytest.fixture
def ledger(store):
    """In-process ledger over the plain mint's store."""
    return LocalLedger(store)
