"""
Ledger-side verification of proof bundles.

Verification runs in two stages:

  1. policy - expiry, per-type required metadata and DTO version
  2. crypto - every proof in the payload, checked against the account's
     *current* available balance as held by the ledger

Failures raise ``ProofVerificationError`` with a machine-readable ``reason``.

Usage:
    result = verify_bundle(bundle, VerificationConfig(), available=acct.available_balance)
    if result.is_valid:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from florin_wire.bundle import ProofBundle, ProofType
from florin_wire.ciphertext import EncryptedBalance
from florin_wire.errors import SchemaViolation
from florin_wire.statements import (
    verify_pubkey_validity_payload,
    verify_transfer_payload,
    verify_withdraw_payload,
)
from florin_wire.versioning import check_version_compatibility

from florin_core.errors import ProofVerificationError

logger = logging.getLogger("florin_verifier")

_REQUIRED_METADATA: dict[ProofType, tuple[str, ...]] = {
    ProofType.TRANSFER: ("source_address", "destination_address", "amount"),
    ProofType.TRANSFER_WITH_PROOF: ("source_address", "destination_address", "amount"),
    ProofType.WITHDRAW: ("source_address", "amount"),
    ProofType.WITHDRAW_WITH_PROOF: ("source_address", "amount"),
    ProofType.PUBKEY_VALIDITY: ("source_address",),
}


@dataclass
class VerificationConfig:
    max_proof_age_seconds: int = 3600
    verify_crypto: bool = True
    check_version: bool = True
    max_clock_skew_seconds: int = 300


@dataclass(frozen=True)
class VerificationResult:
    is_valid: bool
    message: Optional[str] = None


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def is_proof_expired(bundle: ProofBundle, config: VerificationConfig,
                     now: Optional[datetime] = None) -> bool:
    age = (_now(now) - bundle.metadata.issued_at).total_seconds()
    return age > config.max_proof_age_seconds


def check_policy(bundle: ProofBundle, config: VerificationConfig,
                 now: Optional[datetime] = None) -> None:
    """Everything short of cryptography."""
    if is_proof_expired(bundle, config, now):
        raise ProofVerificationError(
            ProofVerificationError.EXPIRED,
            f"Bundle {bundle.proof_id} is older than {config.max_proof_age_seconds}s",
        )
    skew = (bundle.metadata.issued_at - _now(now)).total_seconds()
    if skew > config.max_clock_skew_seconds:
        raise ProofVerificationError(
            ProofVerificationError.INVALID_STRUCTURE,
            f"Bundle {bundle.proof_id} is dated {skew:.0f}s in the future",
        )

    required = _REQUIRED_METADATA.get(bundle.proof_type)
    if required is None:
        raise ProofVerificationError(
            ProofVerificationError.INVALID_PROOF_TYPE, f"Unsupported proof type {bundle.proof_type}"
        )
    for name in required:
        if getattr(bundle.metadata, name) is None:
            raise ProofVerificationError(
                ProofVerificationError.MISSING_METADATA, f"Missing required metadata: {name}"
            )

    if config.check_version and not check_version_compatibility(bundle.version):
        raise ProofVerificationError(
            ProofVerificationError.INVALID_VERSION, f"Incompatible bundle version {bundle.version}"
        )


def check_crypto(bundle: ProofBundle, available: Optional[EncryptedBalance]) -> None:
    """Verify every proof in the payload."""
    try:
        payload = bundle.payload()
    except SchemaViolation as exc:
        raise ProofVerificationError(ProofVerificationError.INVALID_STRUCTURE, str(exc)) from exc

    if bundle.proof_type == ProofType.PUBKEY_VALIDITY:
        ok = verify_pubkey_validity_payload(payload)
    else:
        if available is None:
            raise ProofVerificationError(
                ProofVerificationError.VERIFICATION_FAILED,
                "No available balance to verify the proof against",
            )
        if bundle.proof_type.is_transfer:
            ok = verify_transfer_payload(payload, available)
        else:
            if payload.amount != bundle.metadata.amount:
                raise ProofVerificationError(
                    ProofVerificationError.VERIFICATION_FAILED,
                    "Withdraw amount does not match bundle metadata",
                )
            ok = verify_withdraw_payload(payload, available)

    if not ok:
        raise ProofVerificationError(
            ProofVerificationError.VERIFICATION_FAILED,
            f"Cryptographic verification of {bundle.proof_type.value} bundle failed",
        )


def verify_bundle(
    bundle: ProofBundle,
    config: Optional[VerificationConfig] = None,
    available: Optional[EncryptedBalance] = None,
    now: Optional[datetime] = None,
) -> VerificationResult:
    """
    Run policy and (unless disabled) cryptographic checks.

    Raises ``ProofVerificationError``; returns a valid result otherwise.
    """
    config = config or VerificationConfig()
    check_policy(bundle, config, now)
    if config.verify_crypto:
        check_crypto(bundle, available)

    md = bundle.metadata
    if bundle.proof_type.is_transfer:
        message = f"Verified transfer of {md.amount} from {md.source_address} to {md.destination_address}"
    elif bundle.proof_type.is_withdraw:
        message = f"Verified withdrawal of {md.amount} from {md.source_address}"
    else:
        message = f"Verified encryption key of {md.source_address}"
    logger.debug(message, extra={"proof_id": bundle.proof_id})
    return VerificationResult(True, message)


def is_proof_valid(
    bundle: ProofBundle,
    available: Optional[EncryptedBalance] = None,
    config: Optional[VerificationConfig] = None,
) -> bool:
    try:
        return verify_bundle(bundle, config, available).is_valid
    except ProofVerificationError as exc:
        logger.info(f"Bundle {bundle.proof_id} rejected: {exc}")
        return False
