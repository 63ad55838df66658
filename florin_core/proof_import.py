"""
Reading proof bundles exported by the proof-generation context.

Files go through the validating codec, so a malformed or tampered file fails
with ``SchemaViolation`` before anything else looks at it.  Bundles written
by an older supported DTO version are upgraded on import.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from florin_wire import bundle as codec
from florin_wire.bundle import ProofBundle
from florin_wire.ciphertext import EncryptedBalance
from florin_wire.versioning import upgrade_bundle_to_current_version

from florin_core.verifier import VerificationConfig, verify_bundle

logger = logging.getLogger("florin_import")


def import_proof_from_file(path: Union[str, Path]) -> ProofBundle:
    path = Path(path)
    bundle = codec.decode(path.read_bytes())
    bundle, upgraded = upgrade_bundle_to_current_version(bundle)
    if upgraded:
        logger.info(f"Upgraded bundle {bundle.proof_id} from {path} to version {bundle.version}")
    logger.debug(f"Imported {bundle.proof_type.value} bundle from {path}",
                 extra={"proof_id": bundle.proof_id})
    return bundle


def import_and_verify_proof(
    path: Union[str, Path],
    config: Optional[VerificationConfig] = None,
    available: Optional[EncryptedBalance] = None,
) -> ProofBundle:
    """Import a bundle and run ledger-side verification on it.

    Raises ``ProofVerificationError`` when the bundle does not verify.
    """
    bundle = import_proof_from_file(path)
    verify_bundle(bundle, config, available)
    return bundle


def import_proofs_from_directory(directory: Union[str, Path]) -> list[ProofBundle]:
    """Every ``*.json`` bundle in *directory*, sorted by file name."""
    return [import_proof_from_file(p) for p in sorted(Path(directory).glob("*.json"))]
