"""
ProofBundle codec.

A ``ProofBundle`` is the only artifact that crosses from the offline
proof-generation context into the ledger-facing context.  Its JSON form:

    {
      "version":        "1.0.0",
      "proof_id":       "<uuid4>",
      "proof_type":     "Transfer" | "Withdraw" | "PubkeyValidity"
                        | "TransferWithProof" | "WithdrawWithProof",
      "zk_sdk_version": "florin-zk/0.4.0",
      "data":           "<base64 payload>",
      "metadata": {
        "source_address": "...", "destination_address": "...",
        "mint_address": "...",   "amount": 400,
        "timestamp": "2026-10-18T12:00:00+00:00"
      }
    }

Decoding fails closed: every violation raises ``SchemaViolation`` naming the
offending field, unknown proof types and unknown keys included.  This module
is where version skew between the two contexts is reconciled.

Usage:
    from florin_wire import bundle as codec
    b = codec.encode(payload, ProofType.TRANSFER, metadata, "florin-zk/0.4.0")
    raw = codec.to_bytes(b)
    assert codec.decode(raw) == b
"""

from __future__ import annotations

import base64
import binascii
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from florin_wire.errors import SchemaViolation
from florin_wire.payloads import (
    PubkeyValidityProofData,
    TransferProofData,
    TransferWithFeeProofData,
    WithdrawInstructionData,
    WithdrawProofData,
)
from florin_wire.versioning import (
    CURRENT_DTO_VERSION,
    MIN_SUPPORTED_DTO_VERSION,
    check_version_compatibility,
    parse_version,
)

_MAX_U64 = (1 << 64) - 1


class ProofType(Enum):
    TRANSFER = "Transfer"
    WITHDRAW = "Withdraw"
    PUBKEY_VALIDITY = "PubkeyValidity"
    TRANSFER_WITH_PROOF = "TransferWithProof"
    WITHDRAW_WITH_PROOF = "WithdrawWithProof"

    @property
    def is_transfer(self) -> bool:
        return self in (ProofType.TRANSFER, ProofType.TRANSFER_WITH_PROOF)

    @property
    def is_withdraw(self) -> bool:
        return self in (ProofType.WITHDRAW, ProofType.WITHDRAW_WITH_PROOF)


PAYLOAD_CLASSES: dict[ProofType, type] = {
    ProofType.TRANSFER: TransferProofData,
    ProofType.WITHDRAW: WithdrawProofData,
    ProofType.PUBKEY_VALIDITY: PubkeyValidityProofData,
    ProofType.TRANSFER_WITH_PROOF: TransferWithFeeProofData,
    ProofType.WITHDRAW_WITH_PROOF: WithdrawInstructionData,
}

_BUNDLE_KEYS = {"version", "proof_id", "proof_type", "zk_sdk_version", "data", "metadata"}
_METADATA_KEYS = {"source_address", "destination_address", "mint_address", "amount", "timestamp"}


def utc_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str):
        raise SchemaViolation("metadata.timestamp", "expected an ISO-8601 string")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise SchemaViolation("metadata.timestamp", f"{value!r} is not ISO-8601") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ProofMetadata:
    timestamp: str
    source_address: Optional[str] = None
    destination_address: Optional[str] = None
    mint_address: Optional[str] = None
    amount: Optional[int] = None

    @classmethod
    def now(cls, **kwargs: Any) -> ProofMetadata:
        return cls(timestamp=utc_timestamp(), **kwargs)

    @property
    def issued_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"timestamp": self.timestamp}
        for key in ("source_address", "destination_address", "mint_address", "amount"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d


@dataclass(frozen=True)
class ProofBundle:
    """Immutable, self-describing proof artifact."""
    version: str
    proof_id: str
    proof_type: ProofType
    zk_sdk_version: str
    data: bytes
    metadata: ProofMetadata

    def payload(self):
        """Parse ``data`` according to the declared proof type."""
        return PAYLOAD_CLASSES[self.proof_type].from_bytes(self.data)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "proof_id": self.proof_id,
            "proof_type": self.proof_type.value,
            "zk_sdk_version": self.zk_sdk_version,
            "data": base64.b64encode(self.data).decode("ascii"),
            "metadata": self.metadata.to_dict(),
        }

    def __repr__(self) -> str:
        return f"ProofBundle({self.proof_type.value}, {self.proof_id})"


# ===================================================================
#  Encode
# ===================================================================

def encode(
    payload: Any,
    proof_type: ProofType,
    metadata: ProofMetadata,
    zk_sdk_version: str,
    proof_id: Optional[str] = None,
) -> ProofBundle:
    """Wrap a proof payload into a new bundle at the current DTO version."""
    expected = PAYLOAD_CLASSES.get(proof_type)
    if expected is None or type(payload) is not expected:
        raise SchemaViolation(
            "proof_type",
            f"{proof_type} does not match payload {type(payload).__name__}",
        )
    bundle = ProofBundle(
        version=CURRENT_DTO_VERSION,
        proof_id=proof_id or str(uuid.uuid4()),
        proof_type=proof_type,
        zk_sdk_version=zk_sdk_version,
        data=payload.to_bytes(),
        metadata=metadata,
    )
    # Run the same checks a consumer will run
    return from_dict(bundle.to_dict())


def to_json(bundle: ProofBundle, indent: Optional[int] = None) -> str:
    return json.dumps(bundle.to_dict(), indent=indent, sort_keys=True)


def to_bytes(bundle: ProofBundle) -> bytes:
    return to_json(bundle).encode("utf-8")


# ===================================================================
#  Decode
# ===================================================================

def decode(raw: Union[bytes, str]) -> ProofBundle:
    """Parse and validate a serialized bundle."""
    try:
        obj = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SchemaViolation("bundle", f"not valid JSON: {exc}") from exc
    return from_dict(obj)


def _require_str(obj: dict, key: str, field: str) -> str:
    if key not in obj:
        raise SchemaViolation(field, "required field missing")
    value = obj[key]
    if not isinstance(value, str) or not value:
        raise SchemaViolation(field, "expected a non-empty string")
    return value


def _optional_str(obj: dict, key: str) -> Optional[str]:
    value = obj.get(key)
    if value is not None and (not isinstance(value, str) or not value):
        raise SchemaViolation(f"metadata.{key}", "expected a non-empty string")
    return value


def _decode_metadata(obj: Any) -> ProofMetadata:
    if not isinstance(obj, dict):
        raise SchemaViolation("metadata", "expected an object")
    unknown = set(obj) - _METADATA_KEYS
    if unknown:
        raise SchemaViolation("metadata", f"unknown fields {sorted(unknown)}")
    timestamp = _require_str(obj, "timestamp", "metadata.timestamp")
    parse_timestamp(timestamp)
    amount = obj.get("amount")
    if amount is not None:
        if isinstance(amount, bool) or not isinstance(amount, int) or not 0 <= amount <= _MAX_U64:
            raise SchemaViolation("metadata.amount", "expected an unsigned 64-bit integer")
    return ProofMetadata(
        timestamp=timestamp,
        source_address=_optional_str(obj, "source_address"),
        destination_address=_optional_str(obj, "destination_address"),
        mint_address=_optional_str(obj, "mint_address"),
        amount=amount,
    )


def from_dict(obj: Any) -> ProofBundle:
    if not isinstance(obj, dict):
        raise SchemaViolation("bundle", "expected a JSON object")
    unknown = set(obj) - _BUNDLE_KEYS
    if unknown:
        raise SchemaViolation("bundle", f"unknown fields {sorted(unknown)}")

    version = _require_str(obj, "version", "version")
    parse_version(version)
    if not check_version_compatibility(version):
        raise SchemaViolation(
            "version",
            f"{version} outside supported range "
            f"[{MIN_SUPPORTED_DTO_VERSION}, {CURRENT_DTO_VERSION}]",
        )

    proof_id = _require_str(obj, "proof_id", "proof_id")
    try:
        canonical = str(uuid.UUID(proof_id))
    except ValueError as exc:
        raise SchemaViolation("proof_id", f"{proof_id!r} is not a UUID") from exc
    if canonical != proof_id:
        raise SchemaViolation("proof_id", "UUID must be in canonical lowercase form")

    raw_type = _require_str(obj, "proof_type", "proof_type")
    try:
        proof_type = ProofType(raw_type)
    except ValueError as exc:
        raise SchemaViolation("proof_type", f"unknown proof type {raw_type!r}") from exc

    zk_sdk_version = _require_str(obj, "zk_sdk_version", "zk_sdk_version")

    encoded = _require_str(obj, "data", "data")
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SchemaViolation("data", "not valid base64") from exc
    # Shape check: the payload must parse exactly as the declared type
    PAYLOAD_CLASSES[proof_type].from_bytes(data)

    if "metadata" not in obj:
        raise SchemaViolation("metadata", "required field missing")
    metadata = _decode_metadata(obj["metadata"])

    return ProofBundle(
        version=version,
        proof_id=proof_id,
        proof_type=proof_type,
        zk_sdk_version=zk_sdk_version,
        data=data,
        metadata=metadata,
    )
