"""
Batched bit-decomposition range proofs: transcript layout and verification.

For a Pedersen commitment ``C = v*G + r*H`` and a bit length ``n`` the proof
carries bit commitments ``C_i = b_i*G + r_i*H`` with ``sum 2^i * C_i == C``
and, per bit, a Chaum-Pedersen OR-proof that ``C_i`` opens to 0 or to 1.
All bits of all components share one challenge: every announcement is
absorbed first, then ``c`` is drawn and each bit splits it as ``c0 + c1 = c``.
"""

from __future__ import annotations

from typing import Sequence

from florin_wire.curve import (
    G,
    H,
    ORDER,
    GroupElement,
    add,
    decode_point,
    mul,
    points_equal,
    sub,
)
from florin_wire.payloads import RangeComponent, RangeProof
from florin_wire.transcript import Transcript


def absorb_statement(
    t: Transcript,
    commitments: Sequence[GroupElement],
    components: Sequence[RangeComponent],
) -> None:
    t.append_message(b"proof", b"batched-range")
    for commitment, comp in zip(commitments, components):
        t.append_point(b"C", commitment)
        t.append_u64(b"n", comp.bit_length)
        for ci in comp.bit_commitments:
            t.append_message(b"Ci", ci)


def bit_announcements(
    commitment: GroupElement, c0: int, c1: int, z0: int, z1: int
) -> tuple[GroupElement, GroupElement]:
    """Recompute ``(A0, A1)`` from a bit proof's responses."""
    a0 = sub(mul(H, z0), mul(commitment, c0))
    a1 = sub(mul(H, z1), mul(sub(commitment, G), c1))
    return a0, a1


def range_challenge(t: Transcript, announcements: Sequence[tuple[GroupElement, GroupElement]]) -> int:
    for a0, a1 in announcements:
        t.append_point(b"A0", a0)
        t.append_point(b"A1", a1)
    return t.challenge_scalar(b"c")


def _recompose(bits: Sequence[GroupElement]) -> GroupElement:
    acc = add()
    for ci in reversed(bits):
        acc = add(acc, acc, ci)
    return acc


def verify_range(
    t: Transcript,
    commitments: Sequence[GroupElement],
    proof: RangeProof,
    expected_bits: Sequence[int],
) -> bool:
    if tuple(proof.bit_lengths) != tuple(expected_bits) or len(commitments) != len(expected_bits):
        return False
    absorb_statement(t, commitments, proof.components)

    announcements = []
    for commitment, comp in zip(commitments, proof.components):
        bits = [decode_point(ci, "range_proof.bit") for ci in comp.bit_commitments]
        if not points_equal(_recompose(bits), commitment):
            return False
        for ci, bp in zip(bits, comp.bit_proofs):
            c1 = (proof.challenge - bp.c0) % ORDER
            announcements.append(bit_announcements(ci, bp.c0, c1, bp.z0, bp.z1))

    return range_challenge(t, announcements) == proof.challenge

