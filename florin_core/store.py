"""
Encrypted balance store for one confidential mint.

Per account the store holds a pending and an available ``EncryptedBalance``,
the auditor ciphertext of the last confirmed outgoing transfer and the
encrypted withheld fees, and enforces the account state machine:

    UNINITIALIZED -> CONFIGURED -> (PENDING_ONLY <-> AVAILABLE) -> CLOSED

The store never sees a secret key.  Where plaintext is needed (closing an
account, reading a balance) the caller passes a ``decrypt`` callable.

Every mutation runs inside the account's exclusive section
(``exclusive(address)``); ``begin_transfer`` / ``begin_withdraw`` only read.
Debits are applied from ledger ``Confirmation``s as homomorphic deltas, so
no plaintext ever flows back into the store.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterator, Optional

from florin_wire.bundle import ProofType
from florin_wire.ciphertext import Ciphertext, EncryptedBalance, check_amount
from florin_wire.context import TransferContext, WithdrawContext
from florin_wire.curve import decode_point
from florin_wire.payloads import (
    MAX_FEE_BASIS_POINTS,
    TransferProofData,
    TransferWithFeeProofData,
    WithdrawProofData,
)
from florin_wire.statements import auditor_key, transfer_amount_ciphertext

from florin_core.errors import InvalidAccountState, NonZeroBalance, UnknownAccount

if TYPE_CHECKING:
    from florin_core.ledger import Confirmation

logger = logging.getLogger("florin_store")

Decrypt = Callable[[EncryptedBalance], int]


class AccountState(Enum):
    UNINITIALIZED = "uninitialized"
    CONFIGURED = "configured"
    PENDING_ONLY = "pending_only"
    AVAILABLE = "available"
    CLOSED = "closed"


@dataclass(frozen=True)
class MintConfig:
    """Parameters of a confidential mint."""
    mint_address: str
    decimals: int = 9
    auditor_pubkey: Optional[bytes] = None
    fee_basis_points: int = 0
    withheld_authority_pubkey: Optional[bytes] = None

    def __post_init__(self):
        if not 0 <= self.decimals <= 255:
            raise ValueError(f"decimals must fit in a byte, got {self.decimals}")
        if not 0 <= self.fee_basis_points <= MAX_FEE_BASIS_POINTS:
            raise ValueError(f"fee_basis_points must be 0..{MAX_FEE_BASIS_POINTS}")
        if self.fee_basis_points and self.withheld_authority_pubkey is None:
            raise ValueError("A fee-bearing mint needs a withheld_authority_pubkey")
        for name in ("auditor_pubkey", "withheld_authority_pubkey"):
            value = getattr(self, name)
            if value is not None:
                decode_point(value, name)

    @property
    def has_fee(self) -> bool:
        return self.fee_basis_points > 0

    @property
    def auditor_key(self) -> bytes:
        return auditor_key(self.auditor_pubkey)


@dataclass
class AccountConfidentialState:
    address: str
    pubkey: bytes
    state: AccountState = AccountState.CONFIGURED
    pending_balance: EncryptedBalance = field(default_factory=EncryptedBalance.zero)
    available_balance: EncryptedBalance = field(default_factory=EncryptedBalance.zero)
    auditor_ciphertext: Optional[EncryptedBalance] = None
    withheld: Ciphertext = field(default_factory=Ciphertext.zero)
    closable: bool = True

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "pubkey": self.pubkey.hex(),
            "state": self.state.value,
            "pending_balance": self.pending_balance.to_dict(),
            "available_balance": self.available_balance.to_dict(),
            "auditor_ciphertext": (
                self.auditor_ciphertext.to_dict() if self.auditor_ciphertext else None
            ),
            "withheld": self.withheld.hex(),
            "closable": self.closable,
        }


class EncryptedBalanceStore:
    """Confidential account states of a single mint."""

    def __init__(self, mint: MintConfig):
        self.mint = mint
        self._accounts: dict[str, AccountConfidentialState] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        # proof_ids of applied confirmations; unbounded, one entry per confirmation
        self._applied: set[str] = set()

    # ---- exclusive sections ----

    def _lock_for(self, address: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(address)
            if lock is None:
                lock = self._locks[address] = threading.RLock()
            return lock

    @contextmanager
    def exclusive(self, address: str) -> Iterator[None]:
        """At most one state-changing operation per account at a time."""
        with self._lock_for(address):
            yield

    @contextmanager
    def _exclusive_all(self, *addresses: str) -> Iterator[None]:
        """Exclusive sections of several accounts, entered in address order."""
        with ExitStack() as stack:
            for address in sorted(set(addresses)):
                stack.enter_context(self.exclusive(address))
            yield

    # ---- lookup ----

    def _get(self, address: str, operation: str) -> AccountConfidentialState:
        acct = self._accounts.get(address)
        if acct is None:
            raise UnknownAccount(address, operation)
        return acct

    def state_of(self, address: str) -> AccountState:
        acct = self._accounts.get(address)
        return acct.state if acct else AccountState.UNINITIALIZED

    def snapshot(self, address: str) -> AccountConfidentialState:
        """A consistent copy of the account, taken inside its exclusive section."""
        with self.exclusive(address):
            return dataclasses.replace(self._get(address, "read"))

    def accounts(self) -> list[str]:
        return sorted(self._accounts)

    # ================================================================
    #  State transitions
    # ================================================================

    def configure(self, address: str, pubkey: bytes) -> AccountConfidentialState:
        """Opt an account into confidential balances under *pubkey*."""
        decode_point(pubkey, "pubkey")
        with self.exclusive(address):
            if address in self._accounts:
                raise InvalidAccountState(address, self._accounts[address].state.name, "configure")
            acct = AccountConfidentialState(address=address, pubkey=pubkey)
            self._accounts[address] = acct
        logger.info(f"Configured confidential account {address}", extra={"account": address})
        return acct

    def _require_open(self, acct: AccountConfidentialState, operation: str) -> None:
        if acct.state in (AccountState.UNINITIALIZED, AccountState.CLOSED):
            raise InvalidAccountState(acct.address, acct.state.name, operation)

    def deposit_public(self, address: str, amount: int) -> EncryptedBalance:
        """
        Move a public amount into the pending balance.

        The public balance itself is checked by the ledger, not here.
        """
        check_amount(amount)
        with self.exclusive(address):
            acct = self._get(address, "deposit to")
            self._require_open(acct, "deposit to")
            acct.pending_balance = acct.pending_balance.deposit(amount)
            acct.state = AccountState.PENDING_ONLY
        logger.info(f"Deposited {amount} into pending balance of {address}",
                    extra={"account": address})
        return acct.pending_balance

    def apply_pending(self, address: str,
                      new_decryptable: Optional[bytes] = None) -> EncryptedBalance:
        """
        Fold the pending balance into the available balance.

        A no-op when nothing is pending.  *new_decryptable* is the owner's
        snapshot of the resulting available amount.
        """
        with self.exclusive(address):
            acct = self._get(address, "apply pending on")
            self._require_open(acct, "apply pending on")
            if acct.state != AccountState.PENDING_ONLY:
                return acct.available_balance
            acct.available_balance = acct.available_balance.add(acct.pending_balance)
            if new_decryptable is not None:
                acct.available_balance = acct.available_balance.with_decryptable(new_decryptable)
            acct.pending_balance = EncryptedBalance.zero()
            acct.state = AccountState.AVAILABLE
        logger.debug(f"Applied pending balance of {address}", extra={"account": address})
        return acct.available_balance

    def _require_available(self, acct: AccountConfidentialState, operation: str) -> None:
        if acct.state != AccountState.AVAILABLE:
            raise InvalidAccountState(acct.address, acct.state.name, operation)

    def begin_transfer(self, address: str, amount: int, destination: str) -> TransferContext:
        """Snapshot what the prover needs for a transfer.  Does not mutate."""
        check_amount(amount)
        with self.exclusive(address):
            acct = self._get(address, "transfer from")
            self._require_available(acct, "transfer from")
            available = acct.available_balance
        dest = self._accounts.get(destination)
        if dest is None or dest.state == AccountState.CLOSED:
            raise InvalidAccountState(
                destination, dest.state.name if dest else "UNINITIALIZED", "transfer to"
            )
        return TransferContext(
            source_address=address,
            destination_address=destination,
            mint_address=self.mint.mint_address,
            source_pubkey=acct.pubkey,
            destination_pubkey=dest.pubkey,
            available=available,
            amount=amount,
            auditor_pubkey=self.mint.auditor_pubkey,
            fee_basis_points=self.mint.fee_basis_points,
            withheld_authority_pubkey=self.mint.withheld_authority_pubkey,
        )

    def begin_withdraw(self, address: str, amount: int) -> WithdrawContext:
        check_amount(amount)
        with self.exclusive(address):
            acct = self._get(address, "withdraw from")
            self._require_available(acct, "withdraw from")
            return WithdrawContext(
                source_address=address,
                mint_address=self.mint.mint_address,
                pubkey=acct.pubkey,
                available=acct.available_balance,
                amount=amount,
                decimals=self.mint.decimals,
            )

    # ================================================================
    #  Confirmed ledger effects
    # ================================================================

    def apply_confirmation(self, confirmation: Confirmation) -> None:
        """
        Reflect a confirmed bundle.  Applying the same proof twice is a no-op.

        Every account the confirmation touches is resolved and checked before
        any of them changes, so a failed apply leaves the store as it was and
        can be retried.
        """
        proof_id = confirmation.proof_id
        with self._registry_lock:
            if proof_id in self._applied:
                logger.warning(f"Confirmation {proof_id} already applied",
                               extra={"proof_id": proof_id})
                return
            self._applied.add(proof_id)

        payload = confirmation.bundle.payload()
        proof_type = confirmation.bundle.proof_type
        try:
            if proof_type == ProofType.PUBKEY_VALIDITY:
                self.configure(confirmation.account, payload.pubkey)
            elif proof_type.is_transfer:
                self._apply_transfer(confirmation, payload)
            elif proof_type.is_withdraw:
                self._apply_withdraw(confirmation, payload)
        except Exception:
            with self._registry_lock:
                self._applied.discard(proof_id)
            raise
        logger.info(f"Applied {proof_type.value} confirmation to {confirmation.account}",
                    extra={"account": confirmation.account, "proof_id": proof_id})

    def is_applied(self, proof_id: str) -> bool:
        with self._registry_lock:
            return proof_id in self._applied

    def _debit(self, confirmation: Confirmation, acct: AccountConfidentialState,
               new_combined: Ciphertext, decryptable: bytes) -> None:
        before = acct.available_balance
        snapshot = confirmation.snapshot
        keep_snapshot = snapshot is not None and before.same_ciphertext(snapshot)
        acct.available_balance = EncryptedBalance.from_combined(
            new_combined, decryptable if keep_snapshot else None
        )
        if not keep_snapshot:
            logger.debug(
                f"Available balance of {acct.address} moved since proving; snapshot dropped",
                extra={"account": acct.address},
            )

    def _apply_transfer(self, confirmation: Confirmation, payload: TransferProofData) -> None:
        source, destination = confirmation.account, confirmation.destination
        addresses = [a for a in (source, destination) if a is not None]
        with self._exclusive_all(*addresses):
            acct = self._get(source, "debit")
            self._require_open(acct, "debit")
            dest = self._get(destination, "credit")
            self._require_open(dest, "credit")

            new_available = (
                acct.available_balance.combined()
                - transfer_amount_ciphertext(payload.amount_lo, payload.amount_hi, 0)
            )
            credit_lo = payload.amount_lo.ciphertext(1)
            withheld, closable = dest.withheld, dest.closable
            if isinstance(payload, TransferWithFeeProofData):
                credit_lo = credit_lo - payload.fee_ciphertext.ciphertext(0)
                withheld = withheld + payload.fee_ciphertext.ciphertext(1)
                closable = False
            credit = EncryptedBalance(credit_lo, payload.amount_hi.ciphertext(1))
            auditor = EncryptedBalance(
                payload.amount_lo.ciphertext(2), payload.amount_hi.ciphertext(2)
            )

            self._debit(confirmation, acct, new_available, payload.new_decryptable_available)
            acct.auditor_ciphertext = auditor
            dest.pending_balance = dest.pending_balance.add(credit)
            dest.withheld, dest.closable = withheld, closable
            dest.state = AccountState.PENDING_ONLY

    def _apply_withdraw(self, confirmation: Confirmation, payload: WithdrawProofData) -> None:
        address = confirmation.account
        with self.exclusive(address):
            acct = self._get(address, "debit")
            self._require_open(acct, "debit")
            self._debit(
                confirmation, acct,
                acct.available_balance.combined().sub_amount(payload.amount),
                payload.new_decryptable_available,
            )

    # ================================================================
    #  Fees, close and reads
    # ================================================================

    def harvest_withheld_fees(self, address: str) -> Ciphertext:
        """Remove the withheld fees (encrypted under the fee authority)."""
        with self.exclusive(address):
            acct = self._get(address, "harvest fees from")
            harvested = acct.withheld
            acct.withheld = Ciphertext.zero()
            acct.closable = True
        logger.info(f"Harvested withheld fees from {address}", extra={"account": address})
        return harvested

    def close(self, address: str, decrypt: Decrypt) -> None:
        """
        Close an account whose pending and available balances decode to zero.

        Decoding runs inside the exclusive section so no deposit can land
        between the check and the transition.
        """
        with self.exclusive(address):
            acct = self._get(address, "close")
            if acct.state == AccountState.CLOSED:
                raise InvalidAccountState(address, acct.state.name, "close")
            pending = decrypt(acct.pending_balance)
            available = decrypt(acct.available_balance)
            if pending or available:
                raise NonZeroBalance(address, pending, available)
            if not acct.closable:
                raise InvalidAccountState(address, "WITHHELD_FEES", "close")
            acct.state = AccountState.CLOSED
        logger.info(f"Closed confidential account {address}", extra={"account": address})

    def read_balance(self, address: str, decrypt: Decrypt) -> tuple[int, int]:
        """``(pending, available)`` decoded from a consistent snapshot."""
        acct = self.snapshot(address)
        return decrypt(acct.pending_balance), decrypt(acct.available_balance)
