"""
Request messages handed from the ledger-facing store to the offline prover.

``begin_transfer`` / ``begin_withdraw`` produce these without mutating any
state.  They carry only public data: the available-balance ciphertext the
proof must be bound to, the registered public keys and the mint parameters.
Both serialize to plain dicts so they can cross a process boundary.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from florin_wire.ciphertext import EncryptedBalance, check_amount
from florin_wire.curve import POINT_LEN, decode_point
from florin_wire.errors import SchemaViolation


def _hex_point(value: Optional[bytes]) -> Optional[str]:
    return value.hex() if value is not None else None


def _point_from_hex(raw: Optional[str], field: str) -> Optional[bytes]:
    if raw is None:
        return None
    try:
        data = bytes.fromhex(raw)
    except (TypeError, ValueError) as exc:
        raise SchemaViolation(field, "expected a hex string") from exc
    decode_point(data, field)
    return data


def _require(data: dict, key: str) -> Any:
    if key not in data:
        raise SchemaViolation(key, "required field missing")
    return data[key]


@dataclass(frozen=True)
class TransferContext:
    source_address: str
    destination_address: str
    mint_address: str
    source_pubkey: bytes
    destination_pubkey: bytes
    available: EncryptedBalance
    amount: int
    auditor_pubkey: Optional[bytes] = None
    fee_basis_points: int = 0
    withheld_authority_pubkey: Optional[bytes] = None

    def __post_init__(self):
        check_amount(self.amount)
        for name in ("source_pubkey", "destination_pubkey"):
            if len(getattr(self, name)) != POINT_LEN:
                raise SchemaViolation(name, f"expected {POINT_LEN} bytes")

    @property
    def has_fee(self) -> bool:
        return self.fee_basis_points > 0

    def to_dict(self) -> dict:
        return {
            "source_address": self.source_address,
            "destination_address": self.destination_address,
            "mint_address": self.mint_address,
            "source_pubkey": self.source_pubkey.hex(),
            "destination_pubkey": self.destination_pubkey.hex(),
            "available": self.available.to_dict(),
            "amount": self.amount,
            "auditor_pubkey": _hex_point(self.auditor_pubkey),
            "fee_basis_points": self.fee_basis_points,
            "withheld_authority_pubkey": _hex_point(self.withheld_authority_pubkey),
        }

    @classmethod
    def from_dict(cls, data: dict) -> TransferContext:
        return cls(
            source_address=_require(data, "source_address"),
            destination_address=_require(data, "destination_address"),
            mint_address=_require(data, "mint_address"),
            source_pubkey=_point_from_hex(_require(data, "source_pubkey"), "source_pubkey"),
            destination_pubkey=_point_from_hex(
                _require(data, "destination_pubkey"), "destination_pubkey"
            ),
            available=EncryptedBalance.from_dict(_require(data, "available"), "available"),
            amount=_require(data, "amount"),
            auditor_pubkey=_point_from_hex(data.get("auditor_pubkey"), "auditor_pubkey"),
            fee_basis_points=data.get("fee_basis_points", 0),
            withheld_authority_pubkey=_point_from_hex(
                data.get("withheld_authority_pubkey"), "withheld_authority_pubkey"
            ),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> TransferContext:
        return cls.from_dict(json.loads(raw))


@dataclass(frozen=True)
class WithdrawContext:
    source_address: str
    mint_address: str
    pubkey: bytes
    available: EncryptedBalance
    amount: int
    decimals: int

    def __post_init__(self):
        check_amount(self.amount)
        if len(self.pubkey) != POINT_LEN:
            raise SchemaViolation("pubkey", f"expected {POINT_LEN} bytes")

    def to_dict(self) -> dict:
        return {
            "source_address": self.source_address,
            "mint_address": self.mint_address,
            "pubkey": self.pubkey.hex(),
            "available": self.available.to_dict(),
            "amount": self.amount,
            "decimals": self.decimals,
        }

    @classmethod
    def from_dict(cls, data: dict) -> WithdrawContext:
        return cls(
            source_address=_require(data, "source_address"),
            mint_address=_require(data, "mint_address"),
            pubkey=_point_from_hex(_require(data, "pubkey"), "pubkey"),
            available=EncryptedBalance.from_dict(_require(data, "available"), "available"),
            amount=_require(data, "amount"),
            decimals=_require(data, "decimals"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> WithdrawContext:
        return cls.from_dict(json.loads(raw))
