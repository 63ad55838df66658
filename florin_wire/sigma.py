"""
Sigma-protocol statements, challenges and verification.

Prover (``florin_zk``) and verifier (``florin_core``) must absorb exactly the
same messages into the transcript, so the challenge derivation lives here
next to the verification equations.  Everything in this module works on
public data only.

    pubkey validity     s*P == H
    equality            (C, D) under P and C' = x*G + r'*H hide the same x
    grouped validity    C = x*G + r*H and D_i = r*P_i for every key P_i
"""

from __future__ import annotations

from typing import Sequence

from florin_wire.ciphertext import Ciphertext, GroupedCiphertext
from florin_wire.curve import (
    G,
    H,
    GroupElement,
    add,
    decode_point,
    is_identity,
    mul,
    points_equal,
)
from florin_wire.errors import SchemaViolation
from florin_wire.payloads import EqualityProof, PubkeyValidityProof, ValidityProof
from florin_wire.transcript import Transcript


# ===================================================================
#  Challenge derivation (shared with the prover)
# ===================================================================

def pubkey_validity_challenge(t: Transcript, pubkey: bytes, y: GroupElement) -> int:
    t.append_message(b"proof", b"pubkey-validity")
    t.append_message(b"P", pubkey)
    t.append_point(b"Y", y)
    return t.challenge_scalar(b"c")


def equality_challenge(
    t: Transcript,
    pubkey: bytes,
    ciphertext: Ciphertext,
    commitment: bytes,
    y0: GroupElement,
    y1: GroupElement,
    y2: GroupElement,
) -> int:
    t.append_message(b"proof", b"ciphertext-commitment-equality")
    t.append_message(b"P", pubkey)
    t.append_message(b"ciphertext", ciphertext.to_bytes())
    t.append_message(b"commitment", commitment)
    t.append_point(b"Y0", y0)
    t.append_point(b"Y1", y1)
    t.append_point(b"Y2", y2)
    return t.challenge_scalar(b"c")


def grouped_batch(
    t: Transcript,
    pubkeys: Sequence[bytes],
    ciphertexts: Sequence[GroupedCiphertext],
) -> tuple[int, GroupElement, list[GroupElement]]:
    """
    Absorb the statement and fold several grouped ciphertexts into one.

    Returns ``(t, C, [D_i])`` with ``C = sum t^k * C_k`` and
    ``D_i = sum t^k * D_{k,i}``; a single ciphertext uses ``t = 1``.
    """
    t.append_message(b"proof", b"grouped-ciphertext-validity")
    for pk in pubkeys:
        t.append_message(b"P", pk)
    for gc in ciphertexts:
        if len(gc.handles) != len(pubkeys):
            raise SchemaViolation("data", "grouped ciphertext handle count mismatch")
        t.append_message(b"grouped", gc.to_bytes())
    factor = t.challenge_scalar(b"t") if len(ciphertexts) > 1 else 1

    commitment: GroupElement = add()
    handles: list[GroupElement] = [add() for _ in pubkeys]
    weight = 1
    for gc in ciphertexts:
        commitment = add(commitment, mul(gc.commitment_point, weight))
        for i, d in enumerate(gc.handle_points()):
            handles[i] = add(handles[i], mul(d, weight))
        weight *= factor
    return factor, commitment, handles


def validity_challenge(t: Transcript, y0: GroupElement, y_handles: Sequence[GroupElement]) -> int:
    t.append_point(b"Y0", y0)
    for y in y_handles:
        t.append_point(b"Yi", y)
    return t.challenge_scalar(b"c")


# ===================================================================
#  Verification
# ===================================================================

def verify_pubkey_validity(t: Transcript, pubkey: bytes, proof: PubkeyValidityProof) -> bool:
    P = decode_point(pubkey, "pubkey")
    Y = decode_point(proof.y, "proof.y")
    if is_identity(P) or is_identity(Y):
        return False
    c = pubkey_validity_challenge(t, pubkey, Y)
    return points_equal(mul(P, proof.z), add(mul(H, c), Y))


def verify_equality(
    t: Transcript,
    pubkey: bytes,
    ciphertext: Ciphertext,
    commitment: bytes,
    proof: EqualityProof,
) -> bool:
    P = decode_point(pubkey, "pubkey")
    Y0 = decode_point(proof.y0, "equality_proof.y0")
    Y1 = decode_point(proof.y1, "equality_proof.y1")
    Y2 = decode_point(proof.y2, "equality_proof.y2")
    if is_identity(P) or is_identity(Y0) or is_identity(Y2):
        return False
    C, D = ciphertext.commitment_point, ciphertext.handle_point
    C_pc = decode_point(commitment, "commitment")
    c = equality_challenge(t, pubkey, ciphertext, commitment, Y0, Y1, Y2)

    return (
        points_equal(mul(P, proof.z_s), add(mul(H, c), Y0))
        and points_equal(add(mul(G, proof.z_x), mul(D, proof.z_s)), add(mul(C, c), Y1))
        and points_equal(add(mul(G, proof.z_x), mul(H, proof.z_r)), add(mul(C_pc, c), Y2))
    )


def verify_grouped_validity(
    t: Transcript,
    pubkeys: Sequence[bytes],
    ciphertexts: Sequence[GroupedCiphertext],
    proof: ValidityProof,
) -> bool:
    if len(proof.y_handles) != len(pubkeys):
        return False
    _, C, Ds = grouped_batch(t, pubkeys, ciphertexts)
    Y0 = decode_point(proof.y0, "validity_proof.y0")
    if is_identity(Y0):
        return False
    Ys = [decode_point(y, "validity_proof.yi") for y in proof.y_handles]
    c = validity_challenge(t, Y0, Ys)

    if not points_equal(add(mul(H, proof.z_r), mul(G, proof.z_x)), add(mul(C, c), Y0)):
        return False
    for pk, D, Y in zip(pubkeys, Ds, Ys):
        P = decode_point(pk, "pubkey")
        if not points_equal(mul(P, proof.z_r), add(mul(D, c), Y)):
            return False
    return True
