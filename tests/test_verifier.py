"""
Tests for florin_core.verifier - ledger-side bundle verification.

Covers:
  - Expiry and future-dated bundles
  - Required metadata per proof type
  - Version policy (check_version on / off)
  - Cryptographic stage: success, stale balance, missing balance,
    metadata / payload amount mismatch, crypto disabled
  - is_proof_valid convenience wrapper
"""

from __future__ import annotations

import dataclasses
import hashlib
import unittest
from datetime import datetime, timedelta, timezone

import pytest

from florin_core.errors import ProofVerificationError
from florin_core.verifier import (
    VerificationConfig,
    check_policy,
    is_proof_expired,
    is_proof_valid,
    verify_bundle,
)
from florin_wire import bundle as codec
from florin_wire.bundle import ProofMetadata, ProofType
from florin_wire.context import WithdrawContext
from florin_zk.generator import ProofGenerator
from florin_zk.keys import KeyManager

KM = KeyManager.from_seed(hashlib.sha256(b"florin-verifier").digest())
GEN = ProofGenerator()


def _pubkey_bundle():
    return GEN.pubkey_validity(KM.keypair, "alice")


def _with_metadata(bundle, **changes):
    return dataclasses.replace(bundle, metadata=dataclasses.replace(bundle.metadata, **changes))


class TestPolicy(unittest.TestCase):

    def setUp(self):
        self.bundle = _pubkey_bundle()
        self.config = VerificationConfig()

    def assertReason(self, reason, bundle, config=None, now=None):
        with self.assertRaises(ProofVerificationError) as cm:
            check_policy(bundle, config or self.config, now)
        self.assertEqual(cm.exception.reason, reason)

    def test_fresh_bundle_passes(self):
        check_policy(self.bundle, self.config)

    def test_expired(self):
        later = self.bundle.metadata.issued_at + timedelta(seconds=3601)
        self.assertTrue(is_proof_expired(self.bundle, self.config, later))
        self.assertReason(ProofVerificationError.EXPIRED, self.bundle, now=later)

    def test_custom_max_age(self):
        later = self.bundle.metadata.issued_at + timedelta(seconds=61)
        config = VerificationConfig(max_proof_age_seconds=60)
        self.assertReason(ProofVerificationError.EXPIRED, self.bundle, config, later)

    def test_future_dated(self):
        earlier = self.bundle.metadata.issued_at - timedelta(seconds=301)
        self.assertReason(ProofVerificationError.INVALID_STRUCTURE, self.bundle, now=earlier)

    def test_small_skew_tolerated(self):
        earlier = self.bundle.metadata.issued_at - timedelta(seconds=30)
        check_policy(self.bundle, self.config, earlier)

    def test_missing_source_address(self):
        payload = self.bundle.payload()
        bundle = codec.encode(payload, ProofType.PUBKEY_VALIDITY, ProofMetadata.now(),
                              "florin-zk/test")
        self.assertReason(ProofVerificationError.MISSING_METADATA, bundle)

    def test_unsupported_version(self):
        bundle = dataclasses.replace(self.bundle, version="0.1.0")
        self.assertReason(ProofVerificationError.INVALID_VERSION, bundle)
        check_policy(bundle, VerificationConfig(check_version=False))


class TestVerifyBundle(unittest.TestCase):

    def test_pubkey_validity(self):
        result = verify_bundle(_pubkey_bundle())
        self.assertTrue(result.is_valid)
        self.assertIn("alice", result.message)

    def test_withdraw_needs_balance(self):
        bundle = _withdraw_bundle(KM.encrypt_amount(50), 5)
        with self.assertRaises(ProofVerificationError) as cm:
            verify_bundle(bundle)
        self.assertEqual(cm.exception.reason, ProofVerificationError.VERIFICATION_FAILED)

    def test_crypto_disabled(self):
        bundle = _withdraw_bundle(KM.encrypt_amount(50), 5)
        result = verify_bundle(bundle, VerificationConfig(verify_crypto=False))
        self.assertTrue(result.is_valid)

    def test_is_proof_valid(self):
        self.assertTrue(is_proof_valid(_pubkey_bundle()))
        stale = _with_metadata(
            _pubkey_bundle(),
            timestamp=codec.utc_timestamp(datetime.now(timezone.utc) - timedelta(days=1)),
        )
        self.assertFalse(is_proof_valid(stale))


def _withdraw_bundle(available, amount):
    ctx = WithdrawContext("alice", "FLRmint111", KM.public_key, available, amount, 6)
    return GEN.withdraw(ctx, KM.keypair)


@pytest.mark.slow
class TestWithdrawCrypto(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.available = KM.encrypt_amount(50)
        cls.bundle = _withdraw_bundle(cls.available, 5)

    def test_verifies(self):
        self.assertTrue(verify_bundle(self.bundle, available=self.available).is_valid)
        self.assertTrue(is_proof_valid(self.bundle, self.available))

    def test_stale_balance(self):
        with self.assertRaises(ProofVerificationError) as cm:
            verify_bundle(self.bundle, available=KM.encrypt_amount(50))
        self.assertEqual(cm.exception.reason, ProofVerificationError.VERIFICATION_FAILED)

    def test_metadata_amount_mismatch(self):
        bundle = _with_metadata(self.bundle, amount=6)
        with self.assertRaises(ProofVerificationError) as cm:
            verify_bundle(bundle, available=self.available)
        self.assertEqual(cm.exception.reason, ProofVerificationError.VERIFICATION_FAILED)

    def test_missing_amount(self):
        bundle = _with_metadata(self.bundle, amount=None)
        with self.assertRaises(ProofVerificationError) as cm:
            verify_bundle(bundle, available=self.available)
        self.assertEqual(cm.exception.reason, ProofVerificationError.MISSING_METADATA)


if __name__ == "__main__":
    unittest.main()
