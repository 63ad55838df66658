"""
Sigma-protocol provers.

Challenges are derived with the helpers in ``florin_wire.sigma`` so the
ledger-side verifier reproduces them byte for byte.
"""

from __future__ import annotations

from typing import Sequence

from florin_wire.ciphertext import Ciphertext, GroupedCiphertext
from florin_wire.curve import (
    G,
    H,
    ORDER,
    add,
    decode_point,
    encode_point,
    mul,
    random_scalar,
)
from florin_wire.payloads import EqualityProof, PubkeyValidityProof, ValidityProof
from florin_wire.sigma import (
    equality_challenge,
    grouped_batch,
    pubkey_validity_challenge,
    validity_challenge,
)
from florin_wire.transcript import Transcript
from florin_zk.keys import KeyPair


def prove_pubkey_validity(t: Transcript, keypair: KeyPair) -> PubkeyValidityProof:
    s = keypair.decryption_key
    y = random_scalar()
    Y = mul(keypair.public_point, y)
    c = pubkey_validity_challenge(t, keypair.encryption_public_key, Y)
    return PubkeyValidityProof(encode_point(Y), (c * s + y) % ORDER)


def prove_equality(
    t: Transcript,
    keypair: KeyPair,
    ciphertext: Ciphertext,
    amount: int,
    commitment: bytes,
    opening: int,
) -> EqualityProof:
    """
    Prove *ciphertext* (under the keypair) and the Pedersen *commitment*
    with blinding *opening* both hide *amount*.
    """
    s = keypair.decryption_key
    y_s, y_x, y_r = random_scalar(), random_scalar(), random_scalar()
    D = ciphertext.handle_point

    Y0 = mul(keypair.public_point, y_s)
    Y1 = add(mul(G, y_x), mul(D, y_s))
    Y2 = add(mul(G, y_x), mul(H, y_r))
    c = equality_challenge(
        t, keypair.encryption_public_key, ciphertext, commitment, Y0, Y1, Y2
    )
    return EqualityProof(
        encode_point(Y0), encode_point(Y1), encode_point(Y2),
        (c * s + y_s) % ORDER,
        (c * amount + y_x) % ORDER,
        (c * opening + y_r) % ORDER,
    )


def prove_grouped_validity(
    t: Transcript,
    pubkeys: Sequence[bytes],
    ciphertexts: Sequence[GroupedCiphertext],
    openings: Sequence[tuple[int, int]],
) -> ValidityProof:
    """*openings* holds ``(amount, randomness)`` for each ciphertext."""
    factor, _, _ = grouped_batch(t, pubkeys, ciphertexts)
    x = r = 0
    weight = 1
    for amount, opening in openings:
        x = (x + weight * amount) % ORDER
        r = (r + weight * opening) % ORDER
        weight = weight * factor % ORDER

    y_r, y_x = random_scalar(), random_scalar()
    Y0 = add(mul(H, y_r), mul(G, y_x))
    Ys = [mul(decode_point(pk, "pubkey"), y_r) for pk in pubkeys]
    c = validity_challenge(t, Y0, Ys)
    return ValidityProof(
        encode_point(Y0),
        tuple(encode_point(y) for y in Ys),
        (c * r + y_r) % ORDER,
        (c * x + y_x) % ORDER,
    )
