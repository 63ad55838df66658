"""
Bounded discrete-log decoding.

Given ``T = x*G`` with ``0 <= x < 2^32`` recover ``x`` by baby-step /
giant-step: a table of ``j*G`` for ``j < 2^16`` is built once per process,
then ``T - i*(2^16*G)`` is looked up for ``i < 2^16``.  Values outside the
bound are never guessed; they raise ``DecodeOverflow``.

The arithmetic runs on affine integer pairs rather than ``ecdsa`` point
objects; the inner loops only ever add one fixed point.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from florin_wire.ciphertext import AMOUNT_BIT_LENGTH
from florin_wire.curve import CURVE, FIELD_PRIME, G, GroupElement, is_identity, mul
from florin_zk.errors import DecodeOverflow

logger = logging.getLogger("florin_zk")

BABY_STEP_BITS = 16
_BABY_STEPS = 1 << BABY_STEP_BITS

Affine = Optional[tuple[int, int]]     # None is the identity


def _to_affine(point: GroupElement) -> Affine:
    if is_identity(point):
        return None
    return point.x(), point.y()


def _affine_add(a: Affine, b: Affine) -> Affine:
    if a is None:
        return b
    if b is None:
        return a
    p = FIELD_PRIME
    x1, y1 = a
    x2, y2 = b
    if x1 == x2:
        if (y1 + y2) % p == 0:
            return None
        lam = (3 * x1 * x1 + CURVE.a()) * pow(2 * y1, -1, p) % p
    else:
        lam = (y2 - y1) * pow(x2 - x1, -1, p) % p
    x3 = (lam * lam - x1 - x2) % p
    return x3, (lam * (x1 - x3) - y1) % p


# ── Baby-step table (process-wide, built lazily) ────────────────────

_BABY_TABLE: dict[Affine, int] | None = None
_TABLE_LOCK = threading.Lock()


def _get_baby_table() -> dict[Affine, int]:
    global _BABY_TABLE
    if _BABY_TABLE is None:
        with _TABLE_LOCK:
            if _BABY_TABLE is None:
                started = time.monotonic()
                table: dict[Affine, int] = {}
                step = _to_affine(G)
                acc: Affine = None
                for j in range(_BABY_STEPS):
                    table[acc] = j
                    acc = _affine_add(acc, step)
                _BABY_TABLE = table
                logger.debug(
                    f"Built discrete-log table ({_BABY_STEPS} entries) "
                    f"in {time.monotonic() - started:.2f}s"
                )
    return _BABY_TABLE


def decode(point: GroupElement, bit_length: int = AMOUNT_BIT_LENGTH) -> int:
    """Return ``x`` with ``point == x*G`` and ``0 <= x < 2^bit_length``."""
    if bit_length > 2 * BABY_STEP_BITS:
        raise ValueError(f"bit_length {bit_length} exceeds the decodable width")
    table = _get_baby_table()
    giant_steps = max(1, 1 << max(0, bit_length - BABY_STEP_BITS))
    stride = _to_affine(mul(G, _BABY_STEPS))
    minus_stride = None if stride is None else (stride[0], (-stride[1]) % FIELD_PRIME)

    target = _to_affine(point)
    for i in range(giant_steps):
        j = table.get(target)
        if j is not None:
            value = i * _BABY_STEPS + j
            if value < (1 << bit_length):
                return value
            break
        target = _affine_add(target, minus_stride)
    raise DecodeOverflow(bit_length)
