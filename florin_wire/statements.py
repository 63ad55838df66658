"""
Per-operation proof statements.

Each payload type proves a fixed statement over public values.  This module
defines, once for both contexts:

  - the transcript each payload's proofs are bound to
  - the values the verifier derives rather than trusts (the new source
    ciphertext from the on-ledger available balance, the fee delta
    commitments)
  - payload-level verification composing the sigma and range checks

The new source ciphertext is always derived from the *current* available
balance, so a proof built against a stale snapshot fails here.
"""

from __future__ import annotations

from typing import Optional, Sequence

from florin_wire.ciphertext import (
    LO_BIT_LENGTH,
    Ciphertext,
    EncryptedBalance,
    GroupedCiphertext,
    combine_lo_hi,
)
from florin_wire.curve import (
    G,
    IDENTITY_BYTES,
    GroupElement,
    add,
    decode_point,
    mul,
    sub,
)
from florin_wire.payloads import (
    FEE_TRANSFER_RANGE_BITS,
    MAX_FEE_BASIS_POINTS,
    TRANSFER_RANGE_BITS,
    WITHDRAW_RANGE_BITS,
    PubkeyValidityProofData,
    TransferProofData,
    TransferWithFeeProofData,
    WithdrawProofData,
)
from florin_wire.range_proof import verify_range
from florin_wire.sigma import verify_equality, verify_grouped_validity, verify_pubkey_validity
from florin_wire.transcript import Transcript

MAX_FEE_DELTA = MAX_FEE_BASIS_POINTS - 1


# ===================================================================
#  Transcripts
# ===================================================================

def pubkey_validity_transcript(pubkey: bytes) -> Transcript:
    t = Transcript(b"Florin/pubkey-validity/v1")
    t.append_message(b"pubkey", pubkey)
    return t


def withdraw_transcript(pubkey: bytes, amount: int, new_source_commitment: bytes) -> Transcript:
    t = Transcript(b"Florin/withdraw/v1")
    t.append_message(b"pubkey", pubkey)
    t.append_u64(b"amount", amount)
    t.append_message(b"new-source-commitment", new_source_commitment)
    return t


def transfer_transcript(
    source_pubkey: bytes,
    destination_pubkey: bytes,
    auditor_pubkey: bytes,
    amount_lo: GroupedCiphertext,
    amount_hi: GroupedCiphertext,
    new_source_commitment: bytes,
    fee: Optional[tuple[bytes, int, GroupedCiphertext]] = None,
) -> Transcript:
    """*fee* is ``(withheld_authority_pubkey, fee_basis_points, fee_ciphertext)``."""
    t = Transcript(b"Florin/transfer/v1" if fee is None else b"Florin/transfer-with-fee/v1")
    t.append_message(b"source-pubkey", source_pubkey)
    t.append_message(b"destination-pubkey", destination_pubkey)
    t.append_message(b"auditor-pubkey", auditor_pubkey)
    t.append_message(b"amount-lo", amount_lo.to_bytes())
    t.append_message(b"amount-hi", amount_hi.to_bytes())
    t.append_message(b"new-source-commitment", new_source_commitment)
    if fee is not None:
        authority, bps, fee_ct = fee
        t.append_message(b"withheld-authority-pubkey", authority)
        t.append_u64(b"fee-basis-points", bps)
        t.append_message(b"fee-ciphertext", fee_ct.to_bytes())
    return t


def payload_transcript(payload: TransferProofData) -> Transcript:
    fee = None
    if isinstance(payload, TransferWithFeeProofData):
        fee = (payload.withheld_authority_pubkey, payload.fee_basis_points, payload.fee_ciphertext)
    return transfer_transcript(
        payload.source_pubkey, payload.destination_pubkey, payload.auditor_pubkey,
        payload.amount_lo, payload.amount_hi, payload.new_source_commitment, fee,
    )


# ===================================================================
#  Derived statement values
# ===================================================================

def fee_amount(amount: int, fee_basis_points: int) -> int:
    """``ceil(amount * bps / 10000)``."""
    return (amount * fee_basis_points + MAX_FEE_BASIS_POINTS - 1) // MAX_FEE_BASIS_POINTS


def fee_delta(amount: int, fee_basis_points: int, fee: int) -> int:
    return fee * MAX_FEE_BASIS_POINTS - amount * fee_basis_points


def transfer_amount_ciphertext(
    amount_lo: GroupedCiphertext, amount_hi: GroupedCiphertext, index: int
) -> Ciphertext:
    """The full transfer amount encrypted under handle *index*."""
    return combine_lo_hi(amount_lo.ciphertext(index), amount_hi.ciphertext(index))


def transfer_new_source(
    available: EncryptedBalance, amount_lo: GroupedCiphertext, amount_hi: GroupedCiphertext
) -> Ciphertext:
    return available.combined() - transfer_amount_ciphertext(amount_lo, amount_hi, 0)


def withdraw_new_source(available: EncryptedBalance, amount: int) -> Ciphertext:
    return available.combined().sub_amount(amount)


def fee_range_commitments(
    amount_lo: GroupedCiphertext,
    amount_hi: GroupedCiphertext,
    fee_ciphertext: GroupedCiphertext,
    fee_basis_points: int,
) -> tuple[GroupElement, GroupElement]:
    """
    ``C_delta = 10000*C_fee - bps*C_amount`` and ``C_cmp = 9999*G - C_delta``.

    Both lying in ``[0, 2^14)`` proves ``0 <= delta <= 9999``, i.e. the fee is
    the exact ceiling of ``amount * bps / 10000``.
    """
    c_amount = add(
        amount_lo.commitment_point,
        mul(amount_hi.commitment_point, 1 << LO_BIT_LENGTH),
    )
    c_delta = sub(
        mul(fee_ciphertext.commitment_point, MAX_FEE_BASIS_POINTS),
        mul(c_amount, fee_basis_points),
    )
    c_cmp = sub(mul(G, MAX_FEE_DELTA), c_delta)
    return c_delta, c_cmp


def transfer_range_commitments(payload: TransferProofData) -> list[GroupElement]:
    commitments = [
        decode_point(payload.new_source_commitment, "new_source_commitment"),
        payload.amount_lo.commitment_point,
        payload.amount_hi.commitment_point,
    ]
    if isinstance(payload, TransferWithFeeProofData):
        c_delta, c_cmp = fee_range_commitments(
            payload.amount_lo, payload.amount_hi,
            payload.fee_ciphertext, payload.fee_basis_points,
        )
        commitments += [payload.fee_ciphertext.commitment_point, c_delta, c_cmp]
    return commitments


def transfer_pubkeys(payload: TransferProofData) -> list[bytes]:
    return [payload.source_pubkey, payload.destination_pubkey, payload.auditor_pubkey]


def auditor_key(auditor_pubkey: Optional[bytes]) -> bytes:
    """The auditor handle key; the identity when the mint has no auditor."""
    return auditor_pubkey if auditor_pubkey is not None else IDENTITY_BYTES


# ===================================================================
#  Payload verification
# ===================================================================

def verify_pubkey_validity_payload(payload: PubkeyValidityProofData) -> bool:
    return verify_pubkey_validity(
        pubkey_validity_transcript(payload.pubkey), payload.pubkey, payload.proof
    )


def verify_withdraw_payload(payload: WithdrawProofData, available: EncryptedBalance) -> bool:
    t = withdraw_transcript(payload.pubkey, payload.amount, payload.new_source_commitment)
    new_source = withdraw_new_source(available, payload.amount)
    if not verify_equality(
        t, payload.pubkey, new_source, payload.new_source_commitment, payload.equality_proof
    ):
        return False
    commitment = decode_point(payload.new_source_commitment, "new_source_commitment")
    return verify_range(t, [commitment], payload.range_proof, WITHDRAW_RANGE_BITS)


def verify_transfer_payload(payload: TransferProofData, available: EncryptedBalance) -> bool:
    """Check every proof in a (fee-bearing or plain) transfer payload."""
    t = payload_transcript(payload)
    new_source = transfer_new_source(available, payload.amount_lo, payload.amount_hi)
    if not verify_equality(
        t, payload.source_pubkey, new_source,
        payload.new_source_commitment, payload.equality_proof,
    ):
        return False
    if not verify_grouped_validity(
        t, transfer_pubkeys(payload),
        [payload.amount_lo, payload.amount_hi], payload.validity_proof,
    ):
        return False

    expected_bits: Sequence[int] = TRANSFER_RANGE_BITS
    if isinstance(payload, TransferWithFeeProofData):
        if not verify_grouped_validity(
            t, [payload.destination_pubkey, payload.withheld_authority_pubkey],
            [payload.fee_ciphertext], payload.fee_validity_proof,
        ):
            return False
        expected_bits = FEE_TRANSFER_RANGE_BITS
    return verify_range(t, transfer_range_commitments(payload), payload.range_proof, expected_bits)
