"""
Ledger boundary.

``LedgerAdapter`` is the only interface through which bundles reach a ledger:
``await adapter.submit(account_ref, bundle)`` returns a ``Confirmation`` or
raises ``SubmissionError``.  Adapters never retry on their own; see
``florin_core.retry`` for the opt-in caller helper.

``LocalLedger`` is an in-process ledger used by tests and demos.  It enforces
what a real ledger would: replay rejection by ``proof_id``, bundle policy,
mint parameters and proof verification against the store's current balances.
It never mutates the ``EncryptedBalanceStore`` itself; the caller applies the
returned confirmation; until it does, further bundles from the same account
are rejected.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from florin_wire.bundle import ProofBundle, ProofType, utc_timestamp
from florin_wire.ciphertext import EncryptedBalance, check_amount
from florin_wire.errors import SchemaViolation

from florin_core.errors import InvalidAccountState, ProofVerificationError, SubmissionError
from florin_core.store import AccountState, EncryptedBalanceStore
from florin_core.verifier import VerificationConfig, verify_bundle

logger = logging.getLogger("florin_ledger")


@dataclass(frozen=True)
class Confirmation:
    """A ledger's positive answer to one submitted bundle."""
    proof_id: str
    account: str
    sequence: int
    signature: str
    bundle: ProofBundle
    destination: Optional[str] = None
    snapshot: Optional[EncryptedBalance] = None
    confirmed_at: str = field(default_factory=utc_timestamp)

    @property
    def proof_type(self) -> ProofType:
        return self.bundle.proof_type

    def to_dict(self) -> dict:
        return {
            "proof_id": self.proof_id,
            "proof_type": self.proof_type.value,
            "account": self.account,
            "destination": self.destination,
            "sequence": self.sequence,
            "signature": self.signature,
            "confirmed_at": self.confirmed_at,
        }


class LedgerAdapter(ABC):
    """Submits proof bundles to a ledger."""

    @abstractmethod
    async def submit(self, account_ref: str, bundle: ProofBundle) -> Confirmation:
        """Submit *bundle* on behalf of *account_ref*."""

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


def _reject(message: str, code: str) -> SubmissionError:
    return SubmissionError(message, retryable=False, code=code)


class LocalLedger(LedgerAdapter):
    """In-process ledger over one mint's ``EncryptedBalanceStore``."""

    def __init__(
        self,
        store: EncryptedBalanceStore,
        verification: Optional[VerificationConfig] = None,
        latency: float = 0.0,
    ):
        self.store = store
        self.verification = verification or VerificationConfig()
        self.latency = latency
        self.public_balances: dict[str, int] = {}
        # every confirmed proof_id; unbounded, one entry per confirmation
        self._seen: set[str] = set()
        # account -> proof_id of its latest confirmation
        self._last_confirmed: dict[str, str] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    # ---- public (non-confidential) balances ----

    def fund(self, address: str, amount: int) -> None:
        with self._lock:
            self.public_balances[address] = self.public_balances.get(address, 0) + amount

    def deposit(self, address: str, amount: int) -> EncryptedBalance:
        """Move *amount* from the public balance into the confidential pending balance."""
        check_amount(amount)
        with self._lock:
            balance = self.public_balances.get(address, 0)
            if amount > balance:
                raise _reject(
                    f"Public balance of {address} is {balance}, cannot deposit {amount}",
                    "insufficient_public_balance",
                )
            pending = self.store.deposit_public(address, amount)
            self.public_balances[address] = balance - amount
        return pending

    # ---- submission ----

    async def submit(self, account_ref: str, bundle: ProofBundle) -> Confirmation:
        if self.latency:
            await asyncio.sleep(self.latency)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._process, account_ref, bundle)

    def _process(self, account_ref: str, bundle: ProofBundle) -> Confirmation:
        with self._lock:
            if bundle.proof_id in self._seen:
                raise _reject(f"Bundle {bundle.proof_id} was already processed", "replay")
            if bundle.metadata.source_address != account_ref:
                raise _reject(
                    f"Bundle signed for {bundle.metadata.source_address}, submitted by {account_ref}",
                    "account_mismatch",
                )
            prior = self._last_confirmed.get(account_ref)
            if prior is not None and not self.store.is_applied(prior):
                raise _reject(
                    f"Confirmation {prior} for {account_ref} is not applied yet",
                    "unapplied_confirmation",
                )
            mint = bundle.metadata.mint_address
            if mint is not None and mint != self.store.mint.mint_address:
                raise _reject(f"Bundle is for mint {mint}", "wrong_mint")

            try:
                payload = bundle.payload()
            except SchemaViolation as exc:
                raise _reject(str(exc), ProofVerificationError.INVALID_STRUCTURE) from exc

            snapshot, destination = self._check_accounts(account_ref, bundle, payload)
            try:
                verify_bundle(bundle, self.verification, available=snapshot)
            except ProofVerificationError as exc:
                logger.info(f"Rejected bundle {bundle.proof_id}: {exc}",
                            extra={"proof_id": bundle.proof_id})
                raise _reject(str(exc), exc.reason) from exc

            self._seen.add(bundle.proof_id)
            self._last_confirmed[account_ref] = bundle.proof_id
            self._sequence += 1
            if bundle.proof_type.is_withdraw:
                self.public_balances[account_ref] = (
                    self.public_balances.get(account_ref, 0) + payload.amount
                )
            confirmation = Confirmation(
                proof_id=bundle.proof_id,
                account=account_ref,
                sequence=self._sequence,
                signature=hashlib.sha256(
                    bundle.proof_id.encode() + bundle.data
                ).hexdigest(),
                bundle=bundle,
                destination=destination,
                snapshot=snapshot,
            )
        logger.info(
            f"Confirmed {bundle.proof_type.value} #{confirmation.sequence} for {account_ref}",
            extra={"account": account_ref, "proof_id": bundle.proof_id},
        )
        return confirmation

    def _check_accounts(self, account_ref: str, bundle: ProofBundle,
                        payload) -> tuple[Optional[EncryptedBalance], Optional[str]]:
        """Mint and account checks; returns ``(available snapshot, destination)``."""
        store, mint = self.store, self.store.mint

        if bundle.proof_type == ProofType.PUBKEY_VALIDITY:
            if store.state_of(account_ref) != AccountState.UNINITIALIZED:
                raise _reject(f"Account {account_ref} is already configured", "already_configured")
            return None, None

        try:
            source = store.snapshot(account_ref)
        except InvalidAccountState as exc:
            raise _reject(str(exc), "unknown_account") from exc
        if source.state != AccountState.AVAILABLE:
            raise _reject(
                f"Account {account_ref} is {source.state.name}, not AVAILABLE", "invalid_state"
            )

        if bundle.proof_type.is_withdraw:
            if payload.pubkey != source.pubkey:
                raise _reject("Withdraw key is not the account's registered key", "wrong_key")
            if bundle.proof_type == ProofType.WITHDRAW_WITH_PROOF and payload.decimals != mint.decimals:
                raise _reject(
                    f"Withdraw pinned to {payload.decimals} decimals, mint has {mint.decimals}",
                    "wrong_decimals",
                )
            return source.available_balance, None

        destination = bundle.metadata.destination_address
        dest_state = store.state_of(destination)
        if dest_state in (AccountState.UNINITIALIZED, AccountState.CLOSED):
            raise _reject(f"Destination {destination} is {dest_state.name}", "invalid_destination")
        dest = store.snapshot(destination)
        if payload.source_pubkey != source.pubkey or payload.destination_pubkey != dest.pubkey:
            raise _reject("Transfer keys do not match the registered accounts", "wrong_key")
        if payload.auditor_pubkey != mint.auditor_key:
            raise _reject("Transfer auditor key does not match the mint", "wrong_auditor")
        if mint.has_fee and bundle.proof_type != ProofType.TRANSFER_WITH_PROOF:
            raise _reject("Mint charges transfer fees; a TransferWithProof bundle is required",
                          "fee_required")
        if bundle.proof_type == ProofType.TRANSFER_WITH_PROOF:
            if payload.fee_basis_points != mint.fee_basis_points:
                raise _reject("Fee rate does not match the mint", "wrong_fee")
            if payload.withheld_authority_pubkey != mint.withheld_authority_pubkey:
                raise _reject("Withheld-fee authority does not match the mint", "wrong_fee")
        return source.available_balance, destination
