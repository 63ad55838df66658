"""
ProofGenerator - builds the proof set for one confidential operation.

Given a ``TransferContext`` / ``WithdrawContext`` snapshot and the account's
keypair, produces the payload (ciphertexts plus equality, validity and range
proofs bound to the snapshot's available balance) and wraps it into a
``ProofBundle``.

Construction is local and stateless: no network access and no shared
mutable state, so proofs for distinct accounts can be built concurrently
(see ``prove_many``).

Usage:
    gen = ProofGenerator()
    bundle = gen.transfer(ctx, keypair)
    raw = codec.to_bytes(bundle)
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Iterable, Optional, Union

from florin_wire import bundle as codec
from florin_wire.bundle import ProofBundle, ProofMetadata, ProofType
from florin_wire.ciphertext import (
    AMOUNT_BIT_LENGTH,
    HI_BIT_LENGTH,
    LO_BIT_LENGTH,
    EncryptedBalance,
    check_amount,
    split_amount,
)
from florin_wire.context import TransferContext, WithdrawContext
from florin_wire.curve import G, H, ORDER, add, encode_point, mul, random_scalar
from florin_wire.errors import InsufficientBalance
from florin_wire.payloads import (
    FEE_BITS,
    FEE_DELTA_BITS,
    MAX_FEE_BASIS_POINTS,
    NEW_BALANCE_BITS,
    PubkeyValidityProofData,
    TransferProofData,
    TransferWithFeeProofData,
    WithdrawInstructionData,
    WithdrawProofData,
)
from florin_wire.statements import (
    MAX_FEE_DELTA,
    auditor_key,
    fee_amount,
    fee_delta,
    fee_range_commitments,
    pubkey_validity_transcript,
    transfer_new_source,
    transfer_transcript,
    withdraw_new_source,
    withdraw_transcript,
)
from florin_zk import ZK_SDK_VERSION
from florin_zk.ae import ae_encrypt
from florin_zk.errors import DecodeOverflow, ProofConstructionError
from florin_zk.keys import KeyPair, decrypt_balance, encrypt_grouped
from florin_zk.range_proof import prove_range
from florin_zk.sigma import prove_equality, prove_grouped_validity, prove_pubkey_validity

logger = logging.getLogger("florin_zk")

Context = Union[TransferContext, WithdrawContext]


def _check_owner(registered: bytes, keypair: KeyPair) -> None:
    if keypair.encryption_public_key != registered:
        raise ProofConstructionError(
            "Keypair does not match the account's registered encryption key"
        )


def _spendable(keypair: KeyPair, available: EncryptedBalance, amount: int) -> int:
    """Decode the available balance and return the balance left after *amount*."""
    try:
        current = decrypt_balance(keypair, available)
    except DecodeOverflow as exc:
        raise ProofConstructionError(
            "Available balance does not decode under the supplied key"
        ) from exc
    if amount > current:
        raise InsufficientBalance(amount, current, AMOUNT_BIT_LENGTH)
    return current - amount


def _pedersen(value: int) -> tuple[bytes, int]:
    r = random_scalar()
    return encode_point(add(mul(G, value), mul(H, r))), r


class ProofGenerator:
    """Stateless builder of proof payloads and bundles."""

    def __init__(self, zk_sdk_version: str = ZK_SDK_VERSION):
        self.zk_sdk_version = zk_sdk_version

    # ================================================================
    #  Payload construction
    # ================================================================

    def build_pubkey_validity(self, keypair: KeyPair) -> PubkeyValidityProofData:
        pubkey = keypair.encryption_public_key
        proof = prove_pubkey_validity(pubkey_validity_transcript(pubkey), keypair)
        return PubkeyValidityProofData(pubkey, proof)

    def build_withdraw(self, ctx: WithdrawContext, keypair: KeyPair,
                       with_decimals: bool = False) -> WithdrawProofData:
        check_amount(ctx.amount)
        _check_owner(ctx.pubkey, keypair)
        new_balance = _spendable(keypair, ctx.available, ctx.amount)

        commitment, opening = _pedersen(new_balance)
        t = withdraw_transcript(ctx.pubkey, ctx.amount, commitment)
        new_source = withdraw_new_source(ctx.available, ctx.amount)
        equality = prove_equality(t, keypair, new_source, new_balance, commitment, opening)
        range_proof = prove_range(
            t,
            [add(mul(G, new_balance), mul(H, opening))],
            [(new_balance, opening, NEW_BALANCE_BITS)],
        )

        fields = dict(
            pubkey=ctx.pubkey,
            amount=ctx.amount,
            new_source_commitment=commitment,
            new_decryptable_available=ae_encrypt(keypair.symmetric_key, new_balance),
            equality_proof=equality,
            range_proof=range_proof,
        )
        if with_decimals:
            return WithdrawInstructionData(**fields, decimals=ctx.decimals)
        return WithdrawProofData(**fields)

    def build_transfer(self, ctx: TransferContext, keypair: KeyPair,
                       with_fee: bool = False) -> TransferProofData:
        check_amount(ctx.amount)
        _check_owner(ctx.source_pubkey, keypair)
        new_balance = _spendable(keypair, ctx.available, ctx.amount)

        auditor = auditor_key(ctx.auditor_pubkey)
        pubkeys = [ctx.source_pubkey, ctx.destination_pubkey, auditor]
        lo, hi = split_amount(ctx.amount)
        amount_lo, r_lo = encrypt_grouped(pubkeys, lo)
        amount_hi, r_hi = encrypt_grouped(pubkeys, hi)
        commitment, opening = _pedersen(new_balance)

        fee = None
        if with_fee:
            bps = ctx.fee_basis_points
            if not 0 <= bps <= MAX_FEE_BASIS_POINTS:
                raise ProofConstructionError(f"fee_basis_points {bps} out of range")
            if ctx.withheld_authority_pubkey is None:
                raise ProofConstructionError("Fee-bearing transfer needs a withheld-fee authority")
            authority = ctx.withheld_authority_pubkey
            fee_value = fee_amount(ctx.amount, bps)
            delta = fee_delta(ctx.amount, bps, fee_value)
            fee_ct, r_fee = encrypt_grouped([ctx.destination_pubkey, authority], fee_value)
            fee = (authority, bps, fee_ct)

        t = transfer_transcript(
            ctx.source_pubkey, ctx.destination_pubkey, auditor,
            amount_lo, amount_hi, commitment, fee,
        )
        new_source = transfer_new_source(ctx.available, amount_lo, amount_hi)
        equality = prove_equality(t, keypair, new_source, new_balance, commitment, opening)
        validity = prove_grouped_validity(
            t, pubkeys, [amount_lo, amount_hi], [(lo, r_lo), (hi, r_hi)]
        )

        commitments = [
            add(mul(G, new_balance), mul(H, opening)),
            amount_lo.commitment_point,
            amount_hi.commitment_point,
        ]
        openings = [
            (new_balance, opening, NEW_BALANCE_BITS),
            (lo, r_lo, LO_BIT_LENGTH),
            (hi, r_hi, HI_BIT_LENGTH),
        ]

        if fee is not None:
            authority, bps, fee_ct = fee
            fee_validity = prove_grouped_validity(
                t, [ctx.destination_pubkey, authority], [fee_ct], [(fee_value, r_fee)]
            )
            r_amount = r_lo + (r_hi << LO_BIT_LENGTH)
            r_delta = (MAX_FEE_BASIS_POINTS * r_fee - bps * r_amount) % ORDER
            c_delta, c_cmp = fee_range_commitments(amount_lo, amount_hi, fee_ct, bps)
            commitments += [fee_ct.commitment_point, c_delta, c_cmp]
            openings += [
                (fee_value, r_fee, FEE_BITS),
                (delta, r_delta, FEE_DELTA_BITS),
                (MAX_FEE_DELTA - delta, (-r_delta) % ORDER, FEE_DELTA_BITS),
            ]

        range_proof = prove_range(t, commitments, openings)

        fields = dict(
            source_pubkey=ctx.source_pubkey,
            destination_pubkey=ctx.destination_pubkey,
            auditor_pubkey=auditor,
            amount_lo=amount_lo,
            amount_hi=amount_hi,
            new_source_commitment=commitment,
            new_decryptable_available=ae_encrypt(keypair.symmetric_key, new_balance),
            equality_proof=equality,
            validity_proof=validity,
            range_proof=range_proof,
        )
        if fee is not None:
            return TransferWithFeeProofData(
                **fields,
                withheld_authority_pubkey=fee[0],
                fee_basis_points=fee[1],
                fee_ciphertext=fee[2],
                fee_validity_proof=fee_validity,
            )
        return TransferProofData(**fields)

    # ================================================================
    #  Bundles
    # ================================================================

    def _bundle(self, payload, proof_type: ProofType, metadata: ProofMetadata) -> ProofBundle:
        bundle = codec.encode(payload, proof_type, metadata, self.zk_sdk_version)
        logger.info(f"Built {proof_type.value} bundle {bundle.proof_id} ({len(bundle.data)} bytes)")
        return bundle

    def pubkey_validity(self, keypair: KeyPair, address: str) -> ProofBundle:
        return self._bundle(
            self.build_pubkey_validity(keypair),
            ProofType.PUBKEY_VALIDITY,
            ProofMetadata.now(source_address=address),
        )

    def transfer(self, ctx: TransferContext, keypair: KeyPair) -> ProofBundle:
        """Transfer bundle; fee-bearing contexts produce ``TransferWithProof``."""
        if ctx.has_fee:
            return self.transfer_with_proof(ctx, keypair)
        started = time.monotonic()
        payload = self.build_transfer(ctx, keypair)
        logger.debug(f"Transfer proof for {ctx.source_address} in {time.monotonic() - started:.2f}s")
        return self._bundle(payload, ProofType.TRANSFER, self._transfer_metadata(ctx))

    def transfer_with_proof(self, ctx: TransferContext, keypair: KeyPair) -> ProofBundle:
        payload = self.build_transfer(ctx, keypair, with_fee=True)
        return self._bundle(payload, ProofType.TRANSFER_WITH_PROOF, self._transfer_metadata(ctx))

    def withdraw(self, ctx: WithdrawContext, keypair: KeyPair) -> ProofBundle:
        payload = self.build_withdraw(ctx, keypair)
        return self._bundle(payload, ProofType.WITHDRAW, self._withdraw_metadata(ctx))

    def withdraw_with_proof(self, ctx: WithdrawContext, keypair: KeyPair) -> ProofBundle:
        payload = self.build_withdraw(ctx, keypair, with_decimals=True)
        return self._bundle(payload, ProofType.WITHDRAW_WITH_PROOF, self._withdraw_metadata(ctx))

    @staticmethod
    def _transfer_metadata(ctx: TransferContext) -> ProofMetadata:
        return ProofMetadata.now(
            source_address=ctx.source_address,
            destination_address=ctx.destination_address,
            mint_address=ctx.mint_address,
            amount=ctx.amount,
        )

    @staticmethod
    def _withdraw_metadata(ctx: WithdrawContext) -> ProofMetadata:
        return ProofMetadata.now(
            source_address=ctx.source_address,
            mint_address=ctx.mint_address,
            amount=ctx.amount,
        )

    # ================================================================
    #  Batch
    # ================================================================

    def prove(self, ctx: Context, keypair: KeyPair) -> ProofBundle:
        if isinstance(ctx, TransferContext):
            return self.transfer(ctx, keypair)
        if isinstance(ctx, WithdrawContext):
            return self.withdraw(ctx, keypair)
        raise TypeError(f"Unsupported context {type(ctx).__name__}")

    def prove_many(
        self,
        jobs: Iterable[tuple[Context, KeyPair]],
        executor: Optional[Executor] = None,
    ) -> list[ProofBundle]:
        """
        Build bundles for independent accounts concurrently.

        Results keep the order of *jobs*; the first failure propagates.
        """
        jobs = list(jobs)
        contexts = [ctx for ctx, _ in jobs]
        keypairs = [kp for _, kp in jobs]
        if executor is not None:
            return list(executor.map(self.prove, contexts, keypairs))
        with ThreadPoolExecutor(max_workers=min(8, max(1, len(jobs)))) as pool:
            return list(pool.map(self.prove, contexts, keypairs))
