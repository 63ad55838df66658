"""
secp256k1 group helpers for Florin.

Wraps the ``ecdsa`` library's Jacobian point arithmetic with the handful of
operations the encryption and proof code needs:

  - ``G``  the curve generator (value base)
  - ``H``  a second generator with unknown discrete log relative to ``G``
           (blinding base), derived by try-and-increment hashing
  - 33-byte compressed point encoding, with the identity as 33 zero bytes
  - 32-byte big-endian scalar encoding

Usage:
    from florin_wire.curve import G, H, encode_point, decode_point
    c = G * 5 + H * r
    assert decode_point(encode_point(c)) == c
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Union

from ecdsa import SECP256k1
from ecdsa.ellipticcurve import INFINITY, Point, PointJacobi

from florin_wire.errors import SchemaViolation

GroupElement = Union[PointJacobi, Point]

CURVE = SECP256k1.curve
ORDER: int = SECP256k1.order
FIELD_PRIME: int = CURVE.p()

POINT_LEN = 33
SCALAR_LEN = 32
IDENTITY_BYTES = bytes(POINT_LEN)

G: PointJacobi = SECP256k1.generator


# ===================================================================
#  Encoding
# ===================================================================

def is_identity(point: GroupElement) -> bool:
    return point == INFINITY


def encode_point(point: GroupElement) -> bytes:
    """SEC1 compressed encoding; the identity maps to 33 zero bytes."""
    if is_identity(point):
        return IDENTITY_BYTES
    x, y = point.x(), point.y()
    return bytes([2 + (y & 1)]) + x.to_bytes(32, "big")


def _lift_x(x: int, odd: bool) -> PointJacobi | None:
    """Return the curve point with abscissa *x* and the requested parity."""
    if x >= FIELD_PRIME:
        return None
    rhs = (pow(x, 3, FIELD_PRIME) + CURVE.a() * x + CURVE.b()) % FIELD_PRIME
    # p = 3 (mod 4) so the square root is a single exponentiation
    y = pow(rhs, (FIELD_PRIME + 1) // 4, FIELD_PRIME)
    if (y * y) % FIELD_PRIME != rhs:
        return None
    if (y & 1) != odd:
        y = FIELD_PRIME - y
    return PointJacobi(CURVE, x, y, 1, ORDER)


def decode_point(data: bytes, field: str = "point") -> GroupElement:
    """Decode a compressed point.  Raises ``SchemaViolation`` if invalid."""
    if len(data) != POINT_LEN:
        raise SchemaViolation(field, f"expected {POINT_LEN} bytes, got {len(data)}")
    if data == IDENTITY_BYTES:
        return INFINITY
    if data[0] not in (2, 3):
        raise SchemaViolation(field, f"bad point prefix 0x{data[0]:02x}")
    point = _lift_x(int.from_bytes(data[1:], "big"), data[0] == 3)
    if point is None:
        raise SchemaViolation(field, "not a point on secp256k1")
    return point


def encode_scalar(value: int) -> bytes:
    return (value % ORDER).to_bytes(SCALAR_LEN, "big")


def decode_scalar(data: bytes, field: str = "scalar") -> int:
    if len(data) != SCALAR_LEN:
        raise SchemaViolation(field, f"expected {SCALAR_LEN} bytes, got {len(data)}")
    value = int.from_bytes(data, "big")
    if value >= ORDER:
        raise SchemaViolation(field, "scalar not reduced modulo the group order")
    return value


# ===================================================================
#  Arithmetic helpers
# ===================================================================

def negate(point: GroupElement) -> GroupElement:
    if is_identity(point):
        return INFINITY
    return PointJacobi(CURVE, point.x(), FIELD_PRIME - point.y(), 1, ORDER)


def add(*points: GroupElement) -> GroupElement:
    acc: GroupElement = INFINITY
    for p in points:
        if is_identity(p):
            continue
        acc = p if is_identity(acc) else acc + p
    return acc


def sub(a: GroupElement, b: GroupElement) -> GroupElement:
    return add(a, negate(b))


def mul(point: GroupElement, scalar: int) -> GroupElement:
    scalar %= ORDER
    if scalar == 0 or is_identity(point):
        return INFINITY
    return point * scalar


def points_equal(a: GroupElement, b: GroupElement) -> bool:
    return encode_point(a) == encode_point(b)


def random_scalar() -> int:
    """Uniform non-zero scalar."""
    return secrets.randbelow(ORDER - 1) + 1


def scalar_inverse(value: int) -> int:
    return pow(value % ORDER, -1, ORDER)


# ===================================================================
#  Second generator
# ===================================================================

def _hash_to_curve(label: bytes) -> PointJacobi:
    counter = 0
    while True:
        digest = hashlib.sha256(label + counter.to_bytes(4, "big")).digest()
        point = _lift_x(int.from_bytes(digest, "big"), False)
        if point is not None:
            return PointJacobi.from_affine(point.to_affine(), generator=True)
        counter += 1


H: PointJacobi = _hash_to_curve(b"Florin/pedersen/H/" + encode_point(G))
