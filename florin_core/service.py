"""
ConfidentialAccountService - the submission flow for one mint.

For every state-changing operation on an account:

  1. enter the account's exclusive section, take a snapshot and hand it to
     the injected prover (in an executor, proving is CPU-bound)
  2. leave the exclusive section
  3. submit the bundle under ``asyncio.wait_for``
  4. on a positive confirmation, briefly re-enter and apply it

A timeout, cancellation or ``SubmissionError`` in step 3 leaves the store
exactly as it was.  The prover is any callable mapping a
``TransferContext`` / ``WithdrawContext`` to a ``ProofBundle``; this module
never sees key material.

Usage:
    gen = ProofGenerator()
    service = ConfidentialAccountService(store, ledger, lambda ctx: gen.prove(ctx, alice_kp))
    confirmation = await service.transfer("alice", "bob", 400)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable, Optional, Union

from florin_wire.bundle import ProofBundle, ProofType
from florin_wire.ciphertext import EncryptedBalance
from florin_wire.context import TransferContext, WithdrawContext

from florin_core.config import LedgerConfig
from florin_core.errors import SubmissionError
from florin_core.ledger import Confirmation, LedgerAdapter
from florin_core.retry import submit_with_retry
from florin_core.store import Decrypt, EncryptedBalanceStore

logger = logging.getLogger("florin_service")

Prover = Callable[[Union[TransferContext, WithdrawContext]], ProofBundle]


class ConfidentialAccountService:

    def __init__(
        self,
        store: EncryptedBalanceStore,
        adapter: LedgerAdapter,
        prover: Prover,
        timeout: float = 30.0,
        max_retries: int = 0,
        retry_backoff: float = 0.5,
    ):
        self.store = store
        self.adapter = adapter
        self.prover = prover
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    @classmethod
    def from_config(cls, store: EncryptedBalanceStore, adapter: LedgerAdapter,
                    prover: Prover, config: LedgerConfig) -> ConfidentialAccountService:
        return cls(
            store, adapter, prover,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff_seconds,
        )

    # ---- steps 1-2 ----

    def _prepare_transfer(self, source: str, destination: str,
                          amount: int) -> tuple[ProofBundle, EncryptedBalance]:
        with self.store.exclusive(source):
            ctx = self.store.begin_transfer(source, amount, destination)
            return self.prover(ctx), ctx.available

    def _prepare_withdraw(self, address: str, amount: int) -> tuple[ProofBundle, EncryptedBalance]:
        with self.store.exclusive(address):
            ctx = self.store.begin_withdraw(address, amount)
            return self.prover(ctx), ctx.available

    # ---- steps 3-4 ----

    async def _submit(self, account: str, bundle: ProofBundle) -> Confirmation:
        if self.max_retries:
            submission = submit_with_retry(
                self.adapter, account, bundle, self.max_retries, self.retry_backoff
            )
        else:
            submission = self.adapter.submit(account, bundle)
        try:
            return await asyncio.wait_for(submission, self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning(f"Submission of {bundle.proof_id} timed out after {self.timeout}s",
                           extra={"account": account, "proof_id": bundle.proof_id})
            raise SubmissionError(
                f"No confirmation for {bundle.proof_id} within {self.timeout}s",
                retryable=True, code="timeout",
            ) from exc

    async def _submit_and_apply(self, account: str, bundle: ProofBundle,
                                snapshot: Optional[EncryptedBalance]) -> Confirmation:
        confirmation = await self._submit(account, bundle)
        if confirmation.proof_id != bundle.proof_id:
            raise SubmissionError(
                f"Confirmation {confirmation.proof_id} does not match {bundle.proof_id}",
                retryable=False, code="proof_id_mismatch",
            )
        if confirmation.snapshot is None and snapshot is not None:
            confirmation = dataclasses.replace(confirmation, snapshot=snapshot)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.apply_confirmation, confirmation)
        return confirmation

    # ================================================================
    #  Operations
    # ================================================================

    async def register(self, address: str, bundle: ProofBundle) -> Confirmation:
        """Submit a PubkeyValidity bundle and configure the account on confirmation."""
        if bundle.proof_type != ProofType.PUBKEY_VALIDITY:
            raise ValueError(f"register needs a PubkeyValidity bundle, got {bundle.proof_type.value}")
        return await self._submit_and_apply(address, bundle, None)

    async def transfer(self, source: str, destination: str, amount: int) -> Confirmation:
        loop = asyncio.get_running_loop()
        bundle, snapshot = await loop.run_in_executor(
            None, self._prepare_transfer, source, destination, amount
        )
        logger.info(f"Submitting transfer of {amount} to {destination}",
                    extra={"account": source, "proof_id": bundle.proof_id})
        return await self._submit_and_apply(source, bundle, snapshot)

    async def withdraw(self, address: str, amount: int) -> Confirmation:
        loop = asyncio.get_running_loop()
        bundle, snapshot = await loop.run_in_executor(
            None, self._prepare_withdraw, address, amount
        )
        logger.info(f"Submitting withdrawal of {amount}",
                    extra={"account": address, "proof_id": bundle.proof_id})
        return await self._submit_and_apply(address, bundle, snapshot)

    async def apply_pending(self, address: str,
                            new_decryptable: Optional[bytes] = None) -> EncryptedBalance:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self.store.apply_pending, address, new_decryptable
        )

    async def close_account(self, address: str, decrypt: Decrypt) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.close, address, decrypt)
