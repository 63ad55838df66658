"""
Tests for florin_core.store - EncryptedBalanceStore.

Covers:
  - MintConfig validation
  - configure / deposit_public / apply_pending state machine
  - begin_transfer / begin_withdraw preconditions and snapshots
  - close: non-zero balances, withheld fees, double close
  - apply_confirmation: all-or-nothing transfers, closed or unknown destinations
  - read_balance, snapshot isolation, harvest_withheld_fees
"""

from __future__ import annotations

import hashlib
import threading
import unittest

import pytest

from florin_core.errors import InvalidAccountState, NonZeroBalance, UnknownAccount
from florin_core.ledger import Confirmation
from florin_core.store import AccountState, EncryptedBalanceStore, MintConfig
from florin_wire.ciphertext import Ciphertext
from florin_wire.errors import AmountOutOfRange, SchemaViolation
from florin_zk.generator import ProofGenerator
from florin_zk.keys import KeyManager


def _km(name: str) -> KeyManager:
    return KeyManager.from_seed(hashlib.sha256(f"florin-store-{name}".encode()).digest())


ALICE = _km("alice")
BOB = _km("bob")


class TestMintConfig(unittest.TestCase):

    def test_defaults(self):
        mint = MintConfig("FLRmint111")
        self.assertEqual(mint.decimals, 9)
        self.assertFalse(mint.has_fee)
        self.assertEqual(mint.auditor_key, bytes(33))

    def test_decimals_range(self):
        with self.assertRaises(ValueError):
            MintConfig("m", decimals=256)

    def test_fee_range(self):
        with self.assertRaises(ValueError):
            MintConfig("m", fee_basis_points=10_001, withheld_authority_pubkey=BOB.public_key)

    def test_fee_needs_authority(self):
        with self.assertRaises(ValueError):
            MintConfig("m", fee_basis_points=50)

    def test_bad_auditor_key(self):
        with self.assertRaises(SchemaViolation):
            MintConfig("m", auditor_pubkey=b"\x02" + b"\xff" * 32)

    def test_auditor_key(self):
        mint = MintConfig("m", auditor_pubkey=BOB.public_key)
        self.assertEqual(mint.auditor_key, BOB.public_key)


class StoreTestCase(unittest.TestCase):

    def setUp(self):
        self.store = EncryptedBalanceStore(MintConfig("FLRmint111", decimals=6))
        self.store.configure("alice", ALICE.public_key)
        self.store.configure("bob", BOB.public_key)


class TestStateMachine(StoreTestCase):

    def test_unknown_is_uninitialized(self):
        self.assertEqual(self.store.state_of("carol"), AccountState.UNINITIALIZED)

    def test_configure(self):
        self.assertEqual(self.store.state_of("alice"), AccountState.CONFIGURED)
        self.assertEqual(self.store.accounts(), ["alice", "bob"])

    def test_configure_twice(self):
        with self.assertRaises(InvalidAccountState):
            self.store.configure("alice", ALICE.public_key)

    def test_configure_bad_pubkey(self):
        with self.assertRaises(SchemaViolation):
            self.store.configure("carol", b"\x05" * 33)

    def test_deposit_unknown(self):
        with self.assertRaises(UnknownAccount):
            self.store.deposit_public("carol", 5)

    def test_deposit_out_of_range(self):
        with self.assertRaises(AmountOutOfRange):
            self.store.deposit_public("alice", 1 << 32)

    def test_deposit_then_apply(self):
        self.store.deposit_public("alice", 1000)
        self.assertEqual(self.store.state_of("alice"), AccountState.PENDING_ONLY)
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (1000, 0))

        self.store.apply_pending("alice", ALICE.make_decryptable(1000))
        self.assertEqual(self.store.state_of("alice"), AccountState.AVAILABLE)
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (0, 1000))
        acct = self.store.snapshot("alice")
        self.assertEqual(ALICE.open_decryptable(acct.available_balance.decryptable), 1000)

    def test_two_deposits_accumulate(self):
        self.store.deposit_public("alice", 0x1FFFF)
        self.store.deposit_public("alice", 1)
        self.store.apply_pending("alice")
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (0, 0x20000))

    def test_apply_pending_is_idempotent(self):
        self.store.deposit_public("alice", 10)
        first = self.store.apply_pending("alice")
        second = self.store.apply_pending("alice")
        self.assertEqual(first, second)
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (0, 10))

    def test_apply_pending_on_configured_is_noop(self):
        self.store.apply_pending("alice")
        self.assertEqual(self.store.state_of("alice"), AccountState.CONFIGURED)

    def test_deposit_after_available(self):
        self.store.deposit_public("alice", 10)
        self.store.apply_pending("alice")
        self.store.deposit_public("alice", 5)
        self.assertEqual(self.store.state_of("alice"), AccountState.PENDING_ONLY)
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (5, 10))


class TestBegin(StoreTestCase):

    def _fund(self, address: str, amount: int):
        self.store.deposit_public(address, amount)
        self.store.apply_pending(address)

    def test_transfer_requires_available(self):
        with self.assertRaises(InvalidAccountState):
            self.store.begin_transfer("alice", 1, "bob")
        self.store.deposit_public("alice", 10)
        with self.assertRaises(InvalidAccountState):
            self.store.begin_transfer("alice", 1, "bob")

    def test_transfer_context(self):
        self._fund("alice", 10)
        ctx = self.store.begin_transfer("alice", 4, "bob")
        self.assertEqual(ctx.source_pubkey, ALICE.public_key)
        self.assertEqual(ctx.destination_pubkey, BOB.public_key)
        self.assertEqual(ctx.mint_address, "FLRmint111")
        self.assertEqual(ALICE.decrypt_balance(ctx.available), 10)
        self.assertIsNone(ctx.auditor_pubkey)
        self.assertFalse(ctx.has_fee)

    def test_begin_does_not_mutate(self):
        self._fund("alice", 10)
        before = self.store.snapshot("alice")
        self.store.begin_transfer("alice", 4, "bob")
        self.store.begin_withdraw("alice", 4)
        self.assertEqual(self.store.snapshot("alice"), before)

    def test_transfer_to_unknown_destination(self):
        self._fund("alice", 10)
        with self.assertRaises(InvalidAccountState):
            self.store.begin_transfer("alice", 1, "carol")

    def test_transfer_to_closed_destination(self):
        self._fund("alice", 10)
        self.store.close("bob", BOB.decrypt_balance)
        with self.assertRaises(InvalidAccountState) as cm:
            self.store.begin_transfer("alice", 1, "bob")
        self.assertEqual(cm.exception.state, "CLOSED")

    def test_amount_out_of_range(self):
        self._fund("alice", 10)
        with self.assertRaises(AmountOutOfRange):
            self.store.begin_transfer("alice", -1, "bob")
        with self.assertRaises(AmountOutOfRange):
            self.store.begin_withdraw("alice", 1 << 32)

    def test_withdraw_context_carries_decimals(self):
        self._fund("alice", 10)
        ctx = self.store.begin_withdraw("alice", 3)
        self.assertEqual(ctx.decimals, 6)
        self.assertEqual(ctx.pubkey, ALICE.public_key)

    def test_fee_mint_context(self):
        store = EncryptedBalanceStore(MintConfig(
            "FLRfee", fee_basis_points=250, withheld_authority_pubkey=BOB.public_key,
            auditor_pubkey=BOB.public_key,
        ))
        store.configure("alice", ALICE.public_key)
        store.configure("bob", BOB.public_key)
        store.deposit_public("alice", 10)
        store.apply_pending("alice")
        ctx = store.begin_transfer("alice", 4, "bob")
        self.assertTrue(ctx.has_fee)
        self.assertEqual(ctx.fee_basis_points, 250)
        self.assertEqual(ctx.auditor_pubkey, BOB.public_key)


class TestClose(StoreTestCase):

    def test_close_empty(self):
        self.store.close("alice", ALICE.decrypt_balance)
        self.assertEqual(self.store.state_of("alice"), AccountState.CLOSED)

    def test_close_twice(self):
        self.store.close("alice", ALICE.decrypt_balance)
        with self.assertRaises(InvalidAccountState):
            self.store.close("alice", ALICE.decrypt_balance)

    def test_close_with_pending(self):
        self.store.deposit_public("alice", 3)
        with self.assertRaises(NonZeroBalance) as cm:
            self.store.close("alice", ALICE.decrypt_balance)
        self.assertEqual((cm.exception.pending, cm.exception.available), (3, 0))
        self.assertEqual(self.store.state_of("alice"), AccountState.PENDING_ONLY)

    def test_close_with_available(self):
        self.store.deposit_public("alice", 3)
        self.store.apply_pending("alice")
        with self.assertRaises(NonZeroBalance):
            self.store.close("alice", ALICE.decrypt_balance)

    def test_closed_rejects_deposits(self):
        self.store.close("alice", ALICE.decrypt_balance)
        with self.assertRaises(InvalidAccountState):
            self.store.deposit_public("alice", 1)
        with self.assertRaises(InvalidAccountState):
            self.store.apply_pending("alice")

    def test_withheld_fees_block_close(self):
        acct = self.store._accounts["bob"]
        acct.closable = False
        with self.assertRaises(InvalidAccountState) as cm:
            self.store.close("bob", BOB.decrypt_balance)
        self.assertEqual(cm.exception.state, "WITHHELD_FEES")
        self.store.harvest_withheld_fees("bob")
        self.store.close("bob", BOB.decrypt_balance)


def _confirmation(bundle, destination=None, snapshot=None) -> Confirmation:
    return Confirmation(
        proof_id=bundle.proof_id,
        account=bundle.metadata.source_address,
        sequence=1,
        signature="00" * 32,
        bundle=bundle,
        destination=destination,
        snapshot=snapshot,
    )


@pytest.mark.slow
class TestApplyConfirmation(StoreTestCase):

    def setUp(self):
        super().setUp()
        self.store.deposit_public("alice", 1000)
        self.store.apply_pending("alice", ALICE.make_decryptable(1000))
        ctx = self.store.begin_transfer("alice", 400, "bob")
        self.bundle = ProofGenerator().transfer(ctx, ALICE.keypair)
        self.available = ctx.available

    def apply(self, destination):
        self.store.apply_confirmation(_confirmation(self.bundle, destination, self.available))

    def test_transfer(self):
        self.apply("bob")
        self.assertTrue(self.store.is_applied(self.bundle.proof_id))
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (0, 600))
        self.assertEqual(self.store.read_balance("bob", BOB.decrypt_balance), (400, 0))
        self.assertEqual(self.store.state_of("bob"), AccountState.PENDING_ONLY)

    def test_failed_credit_leaves_source_untouched(self):
        before = self.store.snapshot("alice")
        with self.assertRaises(UnknownAccount):
            self.apply("carol")
        self.assertEqual(self.store.snapshot("alice"), before)
        self.assertFalse(self.store.is_applied(self.bundle.proof_id))

        # The same confirmation applies cleanly afterwards, and only once
        self.apply("bob")
        self.apply("bob")
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (0, 600))
        self.assertEqual(self.store.read_balance("bob", BOB.decrypt_balance), (400, 0))

    def test_missing_destination(self):
        before = self.store.snapshot("alice")
        with self.assertRaises(UnknownAccount):
            self.apply(None)
        self.assertEqual(self.store.snapshot("alice"), before)

    def test_closed_destination_refused(self):
        self.store.close("bob", BOB.decrypt_balance)
        before = self.store.snapshot("alice")
        with self.assertRaises(InvalidAccountState) as cm:
            self.apply("bob")
        self.assertEqual(cm.exception.state, "CLOSED")
        self.assertEqual(self.store.state_of("bob"), AccountState.CLOSED)
        self.assertTrue(self.store.snapshot("bob").pending_balance.is_zero())
        self.assertEqual(self.store.snapshot("alice"), before)


class TestReads(StoreTestCase):

    def test_snapshot_is_a_copy(self):
        snap = self.store.snapshot("alice")
        self.store.deposit_public("alice", 7)
        self.assertEqual(snap.state, AccountState.CONFIGURED)
        self.assertTrue(snap.pending_balance.is_zero())

    def test_snapshot_unknown(self):
        with self.assertRaises(UnknownAccount):
            self.store.snapshot("carol")

    def test_to_dict(self):
        d = self.store.snapshot("alice").to_dict()
        self.assertEqual(d["state"], "configured")
        self.assertEqual(d["pubkey"], ALICE.public_key.hex())
        self.assertIsNone(d["auditor_ciphertext"])
        self.assertTrue(d["closable"])

    def test_harvest_resets_withheld(self):
        acct = self.store._accounts["bob"]
        acct.withheld = Ciphertext.zero().add_amount(9)
        harvested = self.store.harvest_withheld_fees("bob")
        self.assertEqual(BOB.decrypt_ciphertext(harvested), 9)
        self.assertTrue(self.store.snapshot("bob").withheld.is_zero())


class TestConcurrency(StoreTestCase):

    def test_parallel_deposits(self):
        threads = [
            threading.Thread(target=self.store.deposit_public, args=("alice", 1))
            for _ in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(self.store.read_balance("alice", ALICE.decrypt_balance), (20, 0))

    def test_exclusive_is_reentrant(self):
        with self.store.exclusive("alice"):
            self.store.deposit_public("alice", 1)
        self.assertEqual(self.store.state_of("alice"), AccountState.PENDING_ONLY)


if __name__ == "__main__":
    unittest.main()
