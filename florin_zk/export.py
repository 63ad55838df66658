"""
Writing proof bundles to files for hand-off to the ledger-facing context.

The file is the codec's JSON form, so ``florin_core.proof_import`` reads it
back through the same validating decoder.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

from florin_wire import bundle as codec
from florin_wire.bundle import ProofBundle

logger = logging.getLogger("florin_zk")


def export_proof_to_file(bundle: ProofBundle, path: Union[str, Path]) -> Path:
    """Write *bundle* atomically to *path*; returns the final path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(codec.to_json(bundle, indent=2), encoding="utf-8")
    os.replace(tmp, path)
    logger.info(f"Exported {bundle.proof_type.value} bundle {bundle.proof_id} to {path}")
    return path


def export_proofs_to_directory(bundles: list[ProofBundle], directory: Union[str, Path]) -> list[Path]:
    """One ``<proof_id>.json`` file per bundle."""
    directory = Path(directory)
    return [export_proof_to_file(b, directory / f"{b.proof_id}.json") for b in bundles]
