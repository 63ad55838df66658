"""
Binary layouts of the proof payloads carried in ``ProofBundle.data``.

Every payload starts with a one-byte type tag followed by a fixed field order
(points are 33 bytes, scalars 32 bytes, integers big-endian).  Parsing is
strict: a wrong tag, a truncated field, an invalid point or trailing bytes all
raise ``SchemaViolation``.  This is what lets the codec reject a bundle whose
declared ``proof_type`` does not match the shape of its data.

None of the structures here have default values.  Proof structures offer an
explicit ``zeroed()`` constructor for placeholders; a zeroed proof never
verifies.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

from florin_wire.ciphertext import AE_CIPHERTEXT_LEN, GroupedCiphertext
from florin_wire.curve import (
    IDENTITY_BYTES,
    POINT_LEN,
    SCALAR_LEN,
    decode_point,
    decode_scalar,
    encode_scalar,
)
from florin_wire.errors import SchemaViolation

TRANSFER_HANDLES = 3        # source, destination, auditor
FEE_HANDLES = 2             # destination, withheld-fee authority

NEW_BALANCE_BITS = 32
FEE_BITS = 32
FEE_DELTA_BITS = 14
TRANSFER_RANGE_BITS = (NEW_BALANCE_BITS, 16, 16)
FEE_TRANSFER_RANGE_BITS = TRANSFER_RANGE_BITS + (FEE_BITS, FEE_DELTA_BITS, FEE_DELTA_BITS)
WITHDRAW_RANGE_BITS = (NEW_BALANCE_BITS,)

MAX_FEE_BASIS_POINTS = 10_000


# ===================================================================
#  Byte reader / writer
# ===================================================================

class _Reader:
    """Cursor over a payload buffer that fails closed."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def take(self, n: int, field: str) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise SchemaViolation("data", f"truncated while reading {field}")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def point(self, field: str) -> bytes:
        raw = self.take(POINT_LEN, field)
        decode_point(raw, f"data.{field}")
        return raw

    def scalar(self, field: str) -> int:
        return decode_scalar(self.take(SCALAR_LEN, field), f"data.{field}")

    def u8(self, field: str) -> int:
        return self.take(1, field)[0]

    def u16(self, field: str) -> int:
        return struct.unpack(">H", self.take(2, field))[0]

    def u64(self, field: str) -> int:
        return struct.unpack(">Q", self.take(8, field))[0]

    def grouped(self, handles: int, field: str) -> GroupedCiphertext:
        commitment = self.point(f"{field}.commitment")
        return GroupedCiphertext(
            commitment, tuple(self.point(f"{field}.handle{i}") for i in range(handles))
        )

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise SchemaViolation(
                "data", f"{len(self._data) - self._pos} trailing bytes after payload"
            )


class _Writer:
    def __init__(self):
        self._buf = bytearray()

    def raw(self, data: bytes) -> _Writer:
        self._buf += data
        return self

    def scalar(self, value: int) -> _Writer:
        return self.raw(encode_scalar(value))

    def u8(self, value: int) -> _Writer:
        return self.raw(struct.pack(">B", value))

    def u16(self, value: int) -> _Writer:
        return self.raw(struct.pack(">H", value))

    def u64(self, value: int) -> _Writer:
        return self.raw(struct.pack(">Q", value))

    def getvalue(self) -> bytes:
        return bytes(self._buf)


# ===================================================================
#  Proof structures
# ===================================================================

@dataclass(frozen=True)
class PubkeyValidityProof:
    """Knowledge of ``s`` with ``s*P = H``."""
    y: bytes
    z: int

    @classmethod
    def zeroed(cls) -> PubkeyValidityProof:
        return cls(IDENTITY_BYTES, 0)

    def write(self, w: _Writer) -> None:
        w.raw(self.y).scalar(self.z)

    @classmethod
    def read(cls, r: _Reader, field: str) -> PubkeyValidityProof:
        return cls(r.point(f"{field}.y"), r.scalar(f"{field}.z"))


@dataclass(frozen=True)
class EqualityProof:
    """A ciphertext and a Pedersen commitment hide the same value."""
    y0: bytes
    y1: bytes
    y2: bytes
    z_s: int
    z_x: int
    z_r: int

    @classmethod
    def zeroed(cls) -> EqualityProof:
        return cls(IDENTITY_BYTES, IDENTITY_BYTES, IDENTITY_BYTES, 0, 0, 0)

    def write(self, w: _Writer) -> None:
        w.raw(self.y0).raw(self.y1).raw(self.y2)
        w.scalar(self.z_s).scalar(self.z_x).scalar(self.z_r)

    @classmethod
    def read(cls, r: _Reader, field: str) -> EqualityProof:
        return cls(
            r.point(f"{field}.y0"), r.point(f"{field}.y1"), r.point(f"{field}.y2"),
            r.scalar(f"{field}.z_s"), r.scalar(f"{field}.z_x"), r.scalar(f"{field}.z_r"),
        )


@dataclass(frozen=True)
class ValidityProof:
    """Grouped-ciphertext validity, batched over one or more ciphertexts."""
    y0: bytes
    y_handles: tuple[bytes, ...]
    z_r: int
    z_x: int

    @classmethod
    def zeroed(cls, handles: int) -> ValidityProof:
        return cls(IDENTITY_BYTES, (IDENTITY_BYTES,) * handles, 0, 0)

    def write(self, w: _Writer) -> None:
        w.raw(self.y0)
        for y in self.y_handles:
            w.raw(y)
        w.scalar(self.z_r).scalar(self.z_x)

    @classmethod
    def read(cls, r: _Reader, handles: int, field: str) -> ValidityProof:
        y0 = r.point(f"{field}.y0")
        ys = tuple(r.point(f"{field}.y{i + 1}") for i in range(handles))
        return cls(y0, ys, r.scalar(f"{field}.z_r"), r.scalar(f"{field}.z_x"))


@dataclass(frozen=True)
class BitProof:
    """OR-proof that a bit commitment opens to 0 or 1."""
    c0: int
    z0: int
    z1: int


@dataclass(frozen=True)
class RangeComponent:
    bit_commitments: tuple[bytes, ...]
    bit_proofs: tuple[BitProof, ...]

    @property
    def bit_length(self) -> int:
        return len(self.bit_commitments)


@dataclass(frozen=True)
class RangeProof:
    """Batched bit-decomposition range proof under one shared challenge."""
    components: tuple[RangeComponent, ...]
    challenge: int

    @classmethod
    def zeroed(cls, bit_lengths: tuple[int, ...]) -> RangeProof:
        return cls(
            tuple(
                RangeComponent((IDENTITY_BYTES,) * n, (BitProof(0, 0, 0),) * n)
                for n in bit_lengths
            ),
            0,
        )

    @property
    def bit_lengths(self) -> tuple[int, ...]:
        return tuple(c.bit_length for c in self.components)

    def write(self, w: _Writer) -> None:
        w.u8(len(self.components))
        for comp in self.components:
            w.u8(comp.bit_length)
            for c in comp.bit_commitments:
                w.raw(c)
            for bp in comp.bit_proofs:
                w.scalar(bp.c0).scalar(bp.z0).scalar(bp.z1)
        w.scalar(self.challenge)

    @classmethod
    def read(cls, r: _Reader, expected_bits: tuple[int, ...], field: str) -> RangeProof:
        count = r.u8(f"{field}.count")
        if count != len(expected_bits):
            raise SchemaViolation(
                "data", f"{field} has {count} components, expected {len(expected_bits)}"
            )
        components = []
        for idx, bits in enumerate(expected_bits):
            n = r.u8(f"{field}[{idx}].bits")
            if n != bits:
                raise SchemaViolation(
                    "data", f"{field}[{idx}] proves {n} bits, expected {bits}"
                )
            commitments = tuple(r.point(f"{field}[{idx}].bit{i}") for i in range(n))
            proofs = tuple(
                BitProof(
                    r.scalar(f"{field}[{idx}].c0"),
                    r.scalar(f"{field}[{idx}].z0"),
                    r.scalar(f"{field}[{idx}].z1"),
                )
                for _ in range(n)
            )
            components.append(RangeComponent(commitments, proofs))
        return cls(tuple(components), r.scalar(f"{field}.challenge"))


# ===================================================================
#  Payloads
# ===================================================================

class _Payload:
    TAG: ClassVar[int]

    def to_bytes(self) -> bytes:
        w = _Writer().u8(self.TAG)
        self._write(w)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes):
        r = _Reader(data)
        tag = r.u8("tag")
        if tag != cls.TAG:
            raise SchemaViolation(
                "data", f"payload tag 0x{tag:02x} does not match {cls.__name__} (0x{cls.TAG:02x})"
            )
        payload = cls._read(r)
        r.finish()
        return payload

    def _write(self, w: _Writer) -> None:
        raise NotImplementedError

    @classmethod
    def _read(cls, r: _Reader):
        raise NotImplementedError


@dataclass(frozen=True)
class PubkeyValidityProofData(_Payload):
    TAG: ClassVar[int] = 0x03

    pubkey: bytes
    proof: PubkeyValidityProof

    def _write(self, w: _Writer) -> None:
        w.raw(self.pubkey)
        self.proof.write(w)

    @classmethod
    def _read(cls, r: _Reader) -> PubkeyValidityProofData:
        return cls(r.point("pubkey"), PubkeyValidityProof.read(r, "proof"))


@dataclass(frozen=True)
class WithdrawProofData(_Payload):
    TAG: ClassVar[int] = 0x02

    pubkey: bytes
    amount: int
    new_source_commitment: bytes
    new_decryptable_available: bytes
    equality_proof: EqualityProof
    range_proof: RangeProof

    def _write(self, w: _Writer) -> None:
        w.raw(self.pubkey).u64(self.amount).raw(self.new_source_commitment)
        w.raw(self.new_decryptable_available)
        self.equality_proof.write(w)
        self.range_proof.write(w)

    @classmethod
    def _read_fields(cls, r: _Reader) -> dict:
        return dict(
            pubkey=r.point("pubkey"),
            amount=r.u64("amount"),
            new_source_commitment=r.point("new_source_commitment"),
            new_decryptable_available=r.take(AE_CIPHERTEXT_LEN, "new_decryptable_available"),
            equality_proof=EqualityProof.read(r, "equality_proof"),
            range_proof=RangeProof.read(r, WITHDRAW_RANGE_BITS, "range_proof"),
        )

    @classmethod
    def _read(cls, r: _Reader) -> WithdrawProofData:
        return cls(**cls._read_fields(r))


@dataclass(frozen=True)
class WithdrawInstructionData(WithdrawProofData):
    """Withdraw proof in instruction-data form, pinned to the mint decimals."""
    TAG: ClassVar[int] = 0x05

    decimals: int

    def _write(self, w: _Writer) -> None:
        super()._write(w)
        w.u8(self.decimals)

    @classmethod
    def _read(cls, r: _Reader) -> WithdrawInstructionData:
        fields = cls._read_fields(r)
        return cls(**fields, decimals=r.u8("decimals"))


@dataclass(frozen=True)
class TransferProofData(_Payload):
    TAG: ClassVar[int] = 0x01
    RANGE_BITS: ClassVar[tuple[int, ...]] = TRANSFER_RANGE_BITS

    source_pubkey: bytes
    destination_pubkey: bytes
    auditor_pubkey: bytes
    amount_lo: GroupedCiphertext
    amount_hi: GroupedCiphertext
    new_source_commitment: bytes
    new_decryptable_available: bytes
    equality_proof: EqualityProof
    validity_proof: ValidityProof
    range_proof: RangeProof

    def _write(self, w: _Writer) -> None:
        w.raw(self.source_pubkey).raw(self.destination_pubkey).raw(self.auditor_pubkey)
        w.raw(self.amount_lo.to_bytes()).raw(self.amount_hi.to_bytes())
        w.raw(self.new_source_commitment).raw(self.new_decryptable_available)
        self.equality_proof.write(w)
        self.validity_proof.write(w)
        self.range_proof.write(w)

    @classmethod
    def _read_fields(cls, r: _Reader) -> dict:
        return dict(
            source_pubkey=r.point("source_pubkey"),
            destination_pubkey=r.point("destination_pubkey"),
            auditor_pubkey=r.point("auditor_pubkey"),
            amount_lo=r.grouped(TRANSFER_HANDLES, "amount_lo"),
            amount_hi=r.grouped(TRANSFER_HANDLES, "amount_hi"),
            new_source_commitment=r.point("new_source_commitment"),
            new_decryptable_available=r.take(AE_CIPHERTEXT_LEN, "new_decryptable_available"),
            equality_proof=EqualityProof.read(r, "equality_proof"),
            validity_proof=ValidityProof.read(r, TRANSFER_HANDLES, "validity_proof"),
        )

    @classmethod
    def _read(cls, r: _Reader) -> TransferProofData:
        fields = cls._read_fields(r)
        return cls(**fields, range_proof=RangeProof.read(r, cls.RANGE_BITS, "range_proof"))

    @property
    def has_auditor(self) -> bool:
        return self.auditor_pubkey != IDENTITY_BYTES


@dataclass(frozen=True)
class TransferWithFeeProofData(TransferProofData):
    """Fee-bearing transfer: the transfer proof set plus the fee ciphertext."""
    TAG: ClassVar[int] = 0x04
    RANGE_BITS: ClassVar[tuple[int, ...]] = FEE_TRANSFER_RANGE_BITS

    withheld_authority_pubkey: bytes
    fee_basis_points: int
    fee_ciphertext: GroupedCiphertext
    fee_validity_proof: ValidityProof

    def _write(self, w: _Writer) -> None:
        super()._write(w)
        w.raw(self.withheld_authority_pubkey).u16(self.fee_basis_points)
        w.raw(self.fee_ciphertext.to_bytes())
        self.fee_validity_proof.write(w)

    @classmethod
    def _read(cls, r: _Reader) -> TransferWithFeeProofData:
        fields = cls._read_fields(r)
        fields["range_proof"] = RangeProof.read(r, cls.RANGE_BITS, "range_proof")
        fields["withheld_authority_pubkey"] = r.point("withheld_authority_pubkey")
        bps = r.u16("fee_basis_points")
        if bps > MAX_FEE_BASIS_POINTS:
            raise SchemaViolation("data", f"fee_basis_points {bps} exceeds {MAX_FEE_BASIS_POINTS}")
        fields["fee_basis_points"] = bps
        fields["fee_ciphertext"] = r.grouped(FEE_HANDLES, "fee_ciphertext")
        fields["fee_validity_proof"] = ValidityProof.read(r, FEE_HANDLES, "fee_validity_proof")
        return cls(**fields)
