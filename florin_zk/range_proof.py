"""
Batched range-proof prover.

Each ``(value, blinding, bits)`` opening is split into bit commitments whose
blindings sum (weighted by powers of two) to the original blinding, so the
bit commitments recompose to the original commitment.  Every bit gets a
Chaum-Pedersen OR-proof; the real branch is answered after the shared
challenge, the other branch is simulated up front.
"""

from __future__ import annotations

from typing import Sequence

from florin_wire.curve import (
    G,
    H,
    ORDER,
    GroupElement,
    add,
    encode_point,
    mul,
    random_scalar,
    scalar_inverse,
    sub,
)
from florin_wire.errors import AmountOutOfRange
from florin_wire.payloads import BitProof, RangeComponent, RangeProof
from florin_wire.range_proof import absorb_statement, range_challenge
from florin_wire.transcript import Transcript


def _bit_blindings(blinding: int, bits: int) -> list[int]:
    """Random blindings ``r_i`` with ``sum 2^i * r_i == blinding``."""
    rs = [random_scalar() for _ in range(bits - 1)]
    partial = sum(r << i for i, r in enumerate(rs)) % ORDER
    rs.append((blinding - partial) * scalar_inverse(1 << (bits - 1)) % ORDER)
    return rs


def prove_range(
    t: Transcript,
    commitments: Sequence[GroupElement],
    openings: Sequence[tuple[int, int, int]],
) -> RangeProof:
    """
    Prove each ``commitments[k] = v*G + r*H`` opens to ``0 <= v < 2^bits``
    where ``openings[k] == (v, r, bits)``.
    """
    layout = []
    components = []
    for value, blinding, bits in openings:
        if value < 0 or value >= (1 << bits):
            raise AmountOutOfRange(value, bits)
        bit_values = [(value >> i) & 1 for i in range(bits)]
        rs = _bit_blindings(blinding, bits)
        points = [add(mul(G, b), mul(H, r)) for b, r in zip(bit_values, rs)]
        layout.append((bit_values, rs, points))
        components.append(RangeComponent(tuple(encode_point(p) for p in points), ()))

    absorb_statement(t, commitments, components)

    # Announcements: real branch A = k*H, simulated branch from random (c, z)
    pending = []
    announcements = []
    for bit_values, rs, points in layout:
        for b, r, ci in zip(bit_values, rs, points):
            k = random_scalar()
            c_sim, z_sim = random_scalar(), random_scalar()
            if b == 0:
                a0 = mul(H, k)
                a1 = sub(mul(H, z_sim), mul(sub(ci, G), c_sim))
            else:
                a0 = sub(mul(H, z_sim), mul(ci, c_sim))
                a1 = mul(H, k)
            announcements.append((a0, a1))
            pending.append((b, r, k, c_sim, z_sim))

    c = range_challenge(t, announcements)

    responses = iter(pending)
    proved = []
    for comp, (bit_values, _, _) in zip(components, layout):
        bit_proofs = []
        for _ in bit_values:
            b, r, k, c_sim, z_sim = next(responses)
            c_real = (c - c_sim) % ORDER
            z_real = (k + c_real * r) % ORDER
            if b == 0:
                bit_proofs.append(BitProof(c_real, z_real, z_sim))
            else:
                bit_proofs.append(BitProof(c_sim, z_sim, z_real))
        proved.append(RangeComponent(comp.bit_commitments, tuple(bit_proofs)))
    return RangeProof(tuple(proved), c)
